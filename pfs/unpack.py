from __future__ import annotations

import os
import sys
import time
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from .archive import PFSArchive
from .constants import DEFAULT_CHUNK_SIZE
from .errors import PFSError, PathConflictError
from .pathutil import safe_join
from .reader import extract_payload


@dataclass
class UnpackResult:
    """Book-keeping for one unpack run; entries either extracted or failed."""

    target: str
    dry_run: bool = False
    extracted: List[str] = field(default_factory=list)
    failed: List[Tuple[str, str]] = field(default_factory=list)
    bytes_written: int = 0

    @property
    def ok(self) -> bool:
        return not self.failed


def _ensure_folder(path: str) -> None:
    if os.path.lexists(path):
        if not os.path.isdir(path):
            raise PathConflictError(f"{path} is not folder")
        return
    os.makedirs(path, exist_ok=True)


def _ensure_parents(target: str, out_path: str) -> None:
    """Create the directories between ``target`` and ``out_path`` one component at a time."""
    rel = os.path.relpath(os.path.dirname(out_path), target)
    cur = target
    if rel != os.curdir:
        for part in rel.split(os.sep):
            cur = os.path.join(cur, part)
            if os.path.islink(cur):
                raise PathConflictError(f"{cur} is a symlink")
            _ensure_folder(cur)
    if os.path.isdir(out_path) and not os.path.islink(out_path):
        raise PathConflictError(f"{out_path} is a folder")


def unpack(
    archive: PFSArchive,
    target: Optional[str] = None,
    *,
    dry_run: bool = False,
    quiet: bool = False,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> UnpackResult:
    """Extract every entry of a parsed archive into ``target``.

    ``target`` defaults to the archive filename without its extension. A
    dry run only reports what would be extracted. Failures on individual
    entries are recorded in the result and do not stop the remaining
    entries; a target that exists as a file is fatal.
    """
    target_folder = target or archive.default_target()
    result = UnpackResult(target=target_folder, dry_run=dry_run)
    if not quiet:
        print(f"Start unarchive file: {archive.filename}")
        print(f"Save file to target: {target_folder}")

    if dry_run:
        for e in archive.entries:
            if not quiet:
                print(f"extract file: {e.name}...OK (dry run, {e.size} bytes)")
            result.extracted.append(e.name)
        print(f"Dry run: {len(result.extracted)} files would be extracted to {target_folder}")
        return result

    _ensure_folder(target_folder)
    t0 = time.time()
    with open(archive.filename, "rb") as f:
        for e in archive.entries:
            try:
                out_path = safe_join(target_folder, e.name)
                _ensure_parents(target_folder, out_path)
                written = extract_payload(f, e, archive.key, out_path, chunk_size)
            except (PFSError, OSError, ValueError) as exc:
                if not quiet:
                    print(f"extract file: {e.name}...FAILED")
                print(f"Error: cannot extract {e.name}: {exc}", file=sys.stderr)
                result.failed.append((e.name, str(exc)))
                continue
            result.extracted.append(e.name)
            result.bytes_written += written
            if not quiet:
                print(f"extract file: {e.name}...OK")

    dt = max(0.000001, time.time() - t0)
    mib = result.bytes_written / (1024.0 * 1024.0)
    print(
        f"Done: extracted {len(result.extracted)}/{archive.file_count} files ({mib:.2f} MiB) in {dt:.1f}s; "
        f"failed={len(result.failed)}"
    )
    return result
