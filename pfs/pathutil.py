from __future__ import annotations

import os
import stat
from typing import Iterator, Tuple

from .constants import ARCHIVE_SEP


def norm_path(p: str) -> str:
    """Normalize archive paths to a canonical forward-slash form.

    Rules:
    - Convert backslashes to slashes
    - Strip leading/trailing slashes
    - Remove empty and '.' segments
    - Reject '..' segments
    """
    p = p.replace("\\", "/").strip("/")
    parts = [q for q in p.split("/") if q not in ("", ".")]
    for q in parts:
        if q == "..":
            raise ValueError("Path may not contain '..'")
    return "/".join(parts)


def to_archive_name(rel_path: str) -> str:
    """Entry name for a path relative to the packed root, using the legacy separator."""
    parts = [q for q in rel_path.replace("\\", "/").split("/") if q not in ("", ".")]
    return ARCHIVE_SEP.join(parts)


def safe_join(target: str, name: str) -> str:
    """Join an entry name onto an extraction folder without escaping it."""
    normalized = norm_path(name)
    if not normalized:
        raise ValueError(f"Entry name {name!r} does not name a file")
    return os.path.join(target, *normalized.split("/"))


def iter_regular_files(root: str) -> Iterator[Tuple[str, int]]:
    """Yield ``(path, size)`` for every regular file beneath ``root``.

    Order is deterministic (sorted per directory). Symlinks are neither
    followed nor yielded; files that vanish or cannot be read are skipped.
    """
    for dirpath, dirnames, filenames in os.walk(root, followlinks=False):
        dirnames.sort()
        for fn in sorted(filenames):
            path = os.path.join(dirpath, fn)
            try:
                st = os.lstat(path)
            except OSError:
                continue
            if not stat.S_ISREG(st.st_mode):
                continue
            if not os.access(path, os.R_OK):
                continue
            yield path, st.st_size
