from __future__ import annotations

from Cryptodome.Util.strxor import strxor


def apply_keystream(data: bytes, key: bytes, offset: int = 0) -> bytes:
    """XOR ``data`` with ``key`` repeated cyclically.

    ``offset`` is the position of ``data[0]`` within the entry payload, so a
    payload may be processed in chunks and still line up with the key. The
    operation is its own inverse.
    """
    if not key:
        raise ValueError("Keystream key must not be empty")
    if offset < 0:
        raise ValueError("Keystream offset must be non-negative")
    n = len(data)
    if n == 0:
        return b""
    if not any(key):
        return bytes(data)
    phase = offset % len(key)
    rotated = key[phase:] + key[:phase]
    reps = -(-n // len(rotated))
    return strxor(bytes(data), (rotated * reps)[:n])
