from __future__ import annotations

import errno
import os
import time
from pathlib import Path
from typing import BinaryIO, List, Optional

from .archive import (
    Entry,
    PFSArchive,
    WRITABLE_VERSION,
    compute_layout,
    encode_header,
    encode_file_count,
    encode_entry_record,
    encode_offset_table,
)
from .cipher import apply_keystream
from .constants import DEFAULT_CHUNK_SIZE, U32_SIZE
from .errors import PathConflictError, SourceChangedError
from .keystream import new_index_hasher
from .pathutil import iter_regular_files, to_archive_name


class ArchiveWriter:
    """Two-pass writer that produces version 8 PFS archives.

    Entries are collected first. ``finalize`` computes every offset, writes
    header and index while hashing the index into the key, then streams each
    source through the cipher. The output file is not created until
    ``finalize`` runs, and is removed again if the ``with`` block fails.
    """

    def __init__(self, out_path: str, chunk_size: int = DEFAULT_CHUNK_SIZE):
        self.out_path = out_path
        self.f: Optional[BinaryIO] = None
        self.entries: List[Entry] = []
        self.chunk_size = chunk_size
        self.key: Optional[bytes] = None
        self._created = False
        self._finalized = False

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        if exc_type is not None and self._created:
            try:
                os.remove(self.out_path)
            except FileNotFoundError:
                pass

    def close(self):
        if self.f is not None:
            self.f.close()
            self.f = None

    def add_file(self, name: str, fs_path: str, size: Optional[int] = None) -> Entry:
        """Queue a filesystem file under the archive name ``name``."""
        if size is None:
            size = os.stat(fs_path).st_size
        return self.add_entry(Entry(name=name, size=size, source_path=fs_path))

    def add_entry(self, entry: Entry) -> Entry:
        if self._finalized:
            raise RuntimeError("Archive already finalized")
        if not entry.name:
            raise ValueError("Entry name must not be empty")
        if entry.source_path is None:
            raise ValueError(f"Entry {entry.name} has no source path")
        self.entries.append(entry)
        return entry

    def finalize(self) -> PFSArchive:
        if self._finalized:
            raise RuntimeError("Archive already finalized")
        header = compute_layout(self.entries)

        self.f = open(self.out_path, "wb")
        self._created = True
        self.f.write(encode_header(header))
        # Offset table slots are relative to the end of the fixed header
        ref_pos = self.f.tell()

        hasher = new_index_hasher()
        index_len = self._append_index(encode_file_count(header.file_count), hasher)

        for e in self.entries:
            record = encode_entry_record(e)
            e.metadata_position = self.f.tell() + U32_SIZE + len(e.name_bytes)
            index_len += self._append_index(record, hasher)

        table_pos = self.f.tell()
        index_len += self._append_index(encode_offset_table(self.entries, table_pos), hasher)
        if index_len != header.info_size or self.f.tell() - ref_pos != header.info_size:
            raise RuntimeError(f"Index block is {index_len} bytes, header declares {header.info_size}")

        self.key = hasher.digest()
        for e in self.entries:
            if self.f.tell() != e.content_offset:
                raise RuntimeError(f"Payload of {e.name} would start at {self.f.tell()}, index says {e.content_offset}")
            self._write_payload(e, self.key)

        self.f.flush()
        self.close()
        self._finalized = True
        return PFSArchive(
            filename=self.out_path,
            version=WRITABLE_VERSION,
            info_size=header.info_size,
            entries=list(self.entries),
            key=self.key,
        )

    def _append_index(self, data: bytes, hasher) -> int:
        self.f.write(data)
        hasher.update(data)
        return len(data)

    def _write_payload(self, e: Entry, key: bytes) -> None:
        done = 0
        with open(e.source_path, "rb") as src:
            while True:
                chunk = src.read(self.chunk_size)
                if not chunk:
                    break
                if done + len(chunk) > e.size:
                    raise SourceChangedError(f"{e.source_path} grew while packing (expected {e.size} bytes)")
                self.f.write(apply_keystream(chunk, key, done))
                done += len(chunk)
        if done != e.size:
            raise SourceChangedError(f"{e.source_path} shrank while packing ({done} of {e.size} bytes)")


def collect_entries(input_path: str, exclude: Optional[str] = None) -> List[Entry]:
    """Build the entry list for a file or directory tree.

    A single file is stored under its base name. Files beneath a directory
    are stored under their relative path joined with backslashes, the
    separator legacy tools expect. ``exclude`` is an absolute path to leave
    out (the archive being written).
    """
    p = Path(input_path)
    entries: List[Entry] = []
    if p.is_dir():
        root = str(p)
        for fs_path, size in iter_regular_files(root):
            if exclude is not None and os.path.abspath(fs_path) == exclude:
                continue
            rel = os.path.relpath(fs_path, root)
            entries.append(Entry(name=to_archive_name(rel), size=size, source_path=fs_path))
    elif p.is_file():
        entries.append(Entry(name=p.name, size=p.stat().st_size, source_path=str(p)))
    else:
        raise FileNotFoundError(errno.ENOENT, "Input not found", str(input_path))
    return entries


def pack(input_path: str, output_path: str, *, quiet: bool = False, chunk_size: int = DEFAULT_CHUNK_SIZE) -> PFSArchive:
    """Pack a file or directory tree into a version 8 archive at ``output_path``."""
    if os.path.isdir(output_path):
        raise PathConflictError(f"{output_path} is a folder")
    if os.path.isfile(input_path) and os.path.exists(output_path) and os.path.samefile(input_path, output_path):
        raise PathConflictError(f"{output_path} is the input file; refusing to overwrite it")
    entries = collect_entries(input_path, exclude=os.path.abspath(output_path))

    t0 = time.time()
    if not quiet:
        print(f"Start archive: {input_path} -> {output_path}")
    with ArchiveWriter(output_path, chunk_size=chunk_size) as writer:
        for e in entries:
            writer.add_entry(e)
            if not quiet:
                print(f"add file: {e.name} ({e.size} bytes)")
        archive = writer.finalize()
    dt = max(0.000001, time.time() - t0)
    mib = archive.payload_size / (1024.0 * 1024.0)
    print(f"Done: archived {archive.file_count} files ({mib:.2f} MiB) in {dt:.1f}s; {mib / dt:.2f} MiB/s")
    return archive
