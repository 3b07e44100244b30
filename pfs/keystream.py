from __future__ import annotations

from Cryptodome.Hash import SHA1

from .constants import KEY_SIZE, ZERO_KEY


def new_index_hasher():
    """Incremental SHA-1 state fed with index block bytes as they are written."""
    return SHA1.new()


def derive_key(index_block: bytes) -> bytes:
    """Derive the 20-byte keystream from the serialized index block.

    The block spans ``file_count`` through ``table_self_offset`` inclusive;
    magic, version and ``info_size`` are not part of it.
    """
    key = SHA1.new(bytes(index_block)).digest()
    assert len(key) == KEY_SIZE
    return key


def key_for_version(version, index_block: bytes) -> bytes:
    if not version.keyed:
        return ZERO_KEY
    return derive_key(index_block)
