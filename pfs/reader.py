from __future__ import annotations

import os
from typing import BinaryIO, Iterator, List, Optional

from .archive import Entry, PFSArchive, read_archive, read_offset_table, index_size
from .cipher import apply_keystream
from .constants import DEFAULT_CHUNK_SIZE, EOF_MARKER, HEADER_SIZE
from .errors import PFSError, TruncatedArchiveError


def iter_payload(f: BinaryIO, entry: Entry, key: bytes, chunk_size: int = DEFAULT_CHUNK_SIZE) -> Iterator[bytes]:
    """Yield the deciphered payload of ``entry`` in chunks."""
    f.seek(entry.content_offset)
    done = 0
    while done < entry.size:
        want = min(chunk_size, entry.size - done)
        raw = f.read(want)
        if len(raw) != want:
            raise TruncatedArchiveError(
                f"Payload of {entry.name} truncated at {done + len(raw)}/{entry.size} bytes"
            )
        yield apply_keystream(raw, key, done)
        done += want


def extract_payload(f: BinaryIO, entry: Entry, key: bytes, out_path: str, chunk_size: int = DEFAULT_CHUNK_SIZE) -> int:
    """Write the deciphered payload of ``entry`` to ``out_path``, replacing it."""
    written = 0
    # Replace a symlink instead of writing through it
    if os.path.islink(out_path):
        os.unlink(out_path)
    with open(out_path, "wb") as wf:
        for chunk in iter_payload(f, entry, key, chunk_size):
            wf.write(chunk)
            written += len(chunk)
    return written


class ArchiveReader:
    def __init__(self, path: str, chunk_size: int = DEFAULT_CHUNK_SIZE):
        self.path = path
        self.f: Optional[BinaryIO] = None
        self.archive: Optional[PFSArchive] = None
        self.chunk_size = chunk_size

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def open(self):
        if self.f is not None:
            return
        self.f = open(self.path, "rb")
        try:
            self.archive = read_archive(self.f, self.path)
        except (PFSError, OSError):
            # Ensure file handle is closed on failure to avoid leaks
            self.close()
            raise

    def close(self):
        if self.f is not None:
            self.f.close()
            self.f = None

    def _require_open(self) -> PFSArchive:
        if self.f is None or self.archive is None:
            raise RuntimeError("Archive not open")
        return self.archive

    def list(self) -> List[Entry]:
        return self._require_open().entries

    def read(self, entry: Entry) -> bytes:
        archive = self._require_open()
        return b"".join(iter_payload(self.f, entry, archive.key, self.chunk_size))

    def extract(self, entry: Entry, out_path: str) -> int:
        archive = self._require_open()
        os.makedirs(os.path.dirname(out_path) or ".", exist_ok=True)
        return extract_payload(self.f, entry, archive.key, out_path, self.chunk_size)

    def verify(self) -> List[str]:
        """
        Check the archive's structure without touching payload contents.

        Checks that the declared index size matches the entry records, that
        the offset table points back at each record, that the table's EOF
        marker and self offset are intact, and that every payload lies after
        the index block and inside the file.

        Returns:
            A list of problem descriptions; empty when the archive is sound.
        """
        archive = self._require_open()
        problems: List[str] = []
        file_size = os.fstat(self.f.fileno()).st_size
        data_start = HEADER_SIZE + archive.info_size

        expected = index_size(archive.entries)
        if archive.info_size != expected:
            problems.append(f"Index size {archive.info_size} does not match entry records ({expected})")

        try:
            table_pos, count, slots, eof_marker, self_offset = read_offset_table(self.f, archive)
        except TruncatedArchiveError as exc:
            problems.append(str(exc))
        else:
            if count != archive.file_count + 1:
                problems.append(f"Offset table count {count} != file count + 1 ({archive.file_count + 1})")
            for e, (rel, zero) in zip(archive.entries, slots):
                if rel + HEADER_SIZE != e.metadata_position:
                    problems.append(
                        f"{e.name}: offset table points at {rel + HEADER_SIZE}, record is at {e.metadata_position}"
                    )
                if zero != 0:
                    problems.append(f"{e.name}: offset table slot padding is not zero")
            if eof_marker != EOF_MARKER:
                problems.append("Offset table EOF marker is not zero")
            if self_offset + HEADER_SIZE != table_pos:
                problems.append(f"Table self offset {self_offset} does not locate the table at {table_pos}")

        for e in archive.entries:
            if e.content_offset < data_start:
                problems.append(f"{e.name}: payload offset {e.content_offset} lies inside the index block")
            elif e.content_offset + e.size > file_size:
                problems.append(f"{e.name}: payload ends at {e.content_offset + e.size}, past end of file ({file_size})")
        return problems
