from __future__ import annotations

import os
import struct
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import BinaryIO, List, Optional

from .constants import (
    FILE_MAGIC,
    HEADER_SIZE,
    U32_SIZE,
    U32_MAX,
    OFFSET_TABLE_SLOT_SIZE,
    EOF_MARKER,
    ZERO_KEY,
)
from .errors import (
    FormatError,
    VersionError,
    TruncatedArchiveError,
    EncodingError,
    ArchiveTooLargeError,
)
from .keystream import key_for_version


_HEADER_STRUCT = struct.Struct("<2scI")
_U32 = struct.Struct("<I")
# skip placeholder, content_offset, size
_ENTRY_TAIL_STRUCT = struct.Struct("<III")
# relative metadata position, zero
_TABLE_SLOT_STRUCT = struct.Struct("<II")


class ArchiveVersion(Enum):
    """Recognized version bytes (ASCII digits)."""

    V2 = b"2"
    V6 = b"6"
    V8 = b"8"

    @property
    def keyed(self) -> bool:
        """Payloads are obfuscated with a keystream derived from the index."""
        return self is ArchiveVersion.V8

    @property
    def label(self) -> str:
        return self.value.decode("ascii")

    @classmethod
    def from_byte(cls, raw: bytes) -> "ArchiveVersion":
        try:
            return cls(raw)
        except ValueError:
            raise VersionError(f"Invalid file version: 0x{raw.hex()}") from None


WRITABLE_VERSION = ArchiveVersion.V8


@dataclass
class Entry:
    name: str
    size: int = 0
    content_offset: int = 0
    # Absolute position of the placeholder field that follows the name
    metadata_position: int = 0
    # Packer only; never serialized
    source_path: Optional[str] = None

    @property
    def name_bytes(self) -> bytes:
        return self.name.encode("utf-8")

    @property
    def info_size(self) -> int:
        """Contribution of this entry's record to the header's ``info_size``."""
        name_len = len(self.name_bytes)
        if name_len == 0:
            return 0
        # name_len, placeholder, content_offset, size + name bytes
        return 4 * U32_SIZE + name_len


@dataclass
class Header:
    version: ArchiveVersion
    info_size: int
    file_count: int


@dataclass
class PFSArchive:
    filename: str
    version: ArchiveVersion = WRITABLE_VERSION
    info_size: int = 0
    entries: List[Entry] = field(default_factory=list)
    key: bytes = ZERO_KEY

    @classmethod
    def new(cls, filename: str) -> "PFSArchive":
        return cls(filename=filename)

    @classmethod
    def from_file(cls, path: str) -> "PFSArchive":
        with open(path, "rb") as f:
            return read_archive(f, path)

    @property
    def file_count(self) -> int:
        return len(self.entries)

    @property
    def header(self) -> Header:
        return Header(version=self.version, info_size=self.info_size, file_count=self.file_count)

    @property
    def payload_size(self) -> int:
        return sum(e.size for e in self.entries)

    def default_target(self) -> str:
        """Extraction folder used when none is given: the filename without extension."""
        return Path(self.filename).stem


def _check_u32(value: int, what: str) -> None:
    if value < 0 or value > U32_MAX:
        raise ArchiveTooLargeError(f"{what} ({value}) does not fit in 32 bits")


def index_size(entries: List[Entry]) -> int:
    """Byte length of the index block, ``file_count`` through ``table_self_offset``."""
    count = len(entries)
    size = U32_SIZE  # file_count
    size += sum(e.info_size for e in entries)
    size += U32_SIZE  # offset table count
    size += count * OFFSET_TABLE_SLOT_SIZE
    size += len(EOF_MARKER)
    size += U32_SIZE  # table_self_offset
    return size


def compute_layout(entries: List[Entry]) -> Header:
    """Assign ``metadata_position`` and ``content_offset`` to every entry.

    Purely arithmetic: positions are those the entries will occupy once the
    header, index block and payloads are written back to back.
    """
    info_size = index_size(entries)
    _check_u32(info_size, "Index size")
    _check_u32(len(entries), "File count")
    record_pos = HEADER_SIZE + U32_SIZE
    payload_pos = HEADER_SIZE + info_size
    for e in entries:
        if not e.name:
            raise ValueError("Entry name must not be empty")
        _check_u32(e.size, f"Size of {e.name}")
        _check_u32(payload_pos, f"Content offset of {e.name}")
        e.metadata_position = record_pos + U32_SIZE + len(e.name_bytes)
        e.content_offset = payload_pos
        record_pos += e.info_size
        payload_pos += e.size
    return Header(version=WRITABLE_VERSION, info_size=info_size, file_count=len(entries))


def encode_header(header: Header) -> bytes:
    return _HEADER_STRUCT.pack(FILE_MAGIC, header.version.value, header.info_size)


def encode_file_count(count: int) -> bytes:
    return _U32.pack(count)


def encode_entry_record(entry: Entry) -> bytes:
    name = entry.name_bytes
    return _U32.pack(len(name)) + name + _ENTRY_TAIL_STRUCT.pack(0, entry.content_offset, entry.size)


def encode_offset_table(entries: List[Entry], table_pos: int) -> bytes:
    """Serialize the offset table that starts at absolute position ``table_pos``."""
    buf = bytearray(_U32.pack(len(entries) + 1))
    for e in entries:
        buf += _TABLE_SLOT_STRUCT.pack(e.metadata_position - HEADER_SIZE, 0)
    buf += EOF_MARKER
    buf += _U32.pack(table_pos - HEADER_SIZE)
    return bytes(buf)


def _remaining(f: BinaryIO) -> int:
    pos = f.tell()
    end = f.seek(0, os.SEEK_END)
    f.seek(pos)
    return end - pos


def read_exact(f: BinaryIO, n: int, what: str) -> bytes:
    # Lengths come from the archive itself; never ask for more than the stream holds
    available = _remaining(f)
    if n > available:
        raise TruncatedArchiveError(f"Archive truncated reading {what}: wanted {n} bytes, {available} left")
    data = f.read(n)
    if len(data) != n:
        raise TruncatedArchiveError(f"Archive truncated reading {what}: wanted {n} bytes, got {len(data)}")
    return data


def read_u32(f: BinaryIO, what: str) -> int:
    return _U32.unpack(read_exact(f, U32_SIZE, what))[0]


def read_archive(f: BinaryIO, filename: str) -> PFSArchive:
    """Parse header and index from ``f`` into a catalog.

    Strictly sequential; the first problem raises. For keyed versions the
    index block is re-read after parsing and hashed into the key.
    """
    f.seek(0)
    magic = read_exact(f, len(FILE_MAGIC), "magic")
    if magic != FILE_MAGIC:
        raise FormatError("File format not recognized")
    version = ArchiveVersion.from_byte(read_exact(f, 1, "version"))
    info_size = read_u32(f, "info size")
    file_count = read_u32(f, "file count")

    entries: List[Entry] = []
    for i in range(file_count):
        name_len = read_u32(f, f"entry {i} name length")
        raw = read_exact(f, name_len, f"entry {i} name")
        try:
            name = raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise EncodingError(f"Entry {i} name is not valid UTF-8: {exc}") from exc
        name = name.replace("\\", "/")
        position = f.tell()
        _skip, offset, size = _ENTRY_TAIL_STRUCT.unpack(read_exact(f, _ENTRY_TAIL_STRUCT.size, f"entry {i} fields"))
        entries.append(Entry(name=name, size=size, content_offset=offset, metadata_position=position))

    block = b""
    if version.keyed:
        f.seek(HEADER_SIZE)
        block = read_exact(f, info_size, "index block")
    key = key_for_version(version, block)
    return PFSArchive(filename=filename, version=version, info_size=info_size, entries=entries, key=key)


def read_offset_table(f: BinaryIO, archive: PFSArchive) -> tuple:
    """Read the offset table that follows the entry records.

    Returns ``(table_pos, count, slots, eof_marker, table_self_offset)`` where
    ``slots`` holds ``(rel_offset, zero)`` pairs.
    """
    table_pos = HEADER_SIZE + U32_SIZE + sum(U32_SIZE * 4 + len(e.name_bytes) for e in archive.entries)
    f.seek(table_pos)
    count = read_u32(f, "offset table count")
    slots = []
    for i in range(archive.file_count):
        slots.append(_TABLE_SLOT_STRUCT.unpack(read_exact(f, _TABLE_SLOT_STRUCT.size, f"offset table slot {i}")))
    eof_marker = read_exact(f, len(EOF_MARKER), "offset table EOF marker")
    self_offset = read_u32(f, "table self offset")
    return table_pos, count, slots, eof_marker, self_offset
