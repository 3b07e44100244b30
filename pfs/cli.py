from __future__ import annotations

import sys
import argparse
from typing import List, Optional

from pfs.archive import PFSArchive
from pfs.reader import ArchiveReader
from pfs.unpack import unpack
from pfs.writer import pack
from pfs.errors import PFSError


def cmd_archive(input_path: str, output: str, *, quiet: bool = False) -> bool:
    """Archive a file or an entire folder.

    Args:
        input_path: File or directory to pack.
        output: Path of the archive to create; replaced if it exists.
        quiet: Only print the summary line.
    """
    pack(input_path, output, quiet=quiet)
    return True


def cmd_unarchive(archive: str, output: Optional[str] = None, *, dry: bool = False, quiet: bool = False) -> bool:
    """Unarchive a PFS file into a folder.

    Args:
        archive: Path to the .pfs file.
        output: Target folder; defaults to the archive name without extension.
        dry: Report what would be extracted without writing anything.
        quiet: Only print the summary line.

    Returns:
        True when every entry was extracted.
    """
    parsed = PFSArchive.from_file(archive)
    if not quiet:
        print(f"valid PFS version {parsed.version.label}")
        print(f"File count {parsed.file_count}")
    result = unpack(parsed, output, dry_run=dry, quiet=quiet)
    return result.ok


def cmd_list(archive: str) -> bool:
    with ArchiveReader(archive) as r:
        for e in r.list():
            print(f"{e.size}\t{e.content_offset}\t{e.name}")
    return True


def cmd_info(archive: str) -> bool:
    with ArchiveReader(archive) as r:
        a = r.archive
        print(f"Archive: {archive}")
        print(f"  Version: {a.version.label}")
        print(f"  Obfuscated: {'yes' if a.version.keyed else 'no'}")
        print(f"  Key: {a.key.hex()}")
        print(f"  Index size: {a.info_size}")
        print(f"  Entries: {a.file_count}")
        print(f"  Payload bytes: {a.payload_size}")
    return True


def cmd_verify(archive: str) -> bool:
    """Check the archive's index and offset table against its payload layout."""
    with ArchiveReader(archive) as r:
        problems = r.verify()
    if not problems:
        print("OK")
        return True
    for p in problems:
        print(p)
    print(f"FAIL: {len(problems)} problem(s)")
    return False


def main(argv: List[str] | None = None):
    ap = argparse.ArgumentParser(
        prog="pfs",
        description="PFS archive tool",
        epilog="Version 2, 6 and 8 archives can be read; new archives are written as version 8.",
    )
    sub = ap.add_subparsers(dest="cmd", required=True)

    ap_archive = sub.add_parser("archive", help="Archive a file or entire folder")
    ap_archive.add_argument("input", help="Input file or folder")
    ap_archive.add_argument("output", help="Output archive path")
    ap_archive.add_argument("--quiet", help="limit outputs to summaries only", action="store_true")

    ap_unarchive = sub.add_parser("unarchive", help="Unarchive selected pfs file")
    ap_unarchive.add_argument("input", help="Input archive path")
    ap_unarchive.add_argument("output", nargs="?", help="Output folder name (default: archive name without extension)")
    ap_unarchive.add_argument("--dry", "-d", action="store_true", help="Dry run: list what would be extracted")
    ap_unarchive.add_argument("--quiet", help="limit outputs to summaries only", action="store_true")

    ap_list = sub.add_parser("list", help="List archive contents")
    ap_list.add_argument("archive", help="Archive path")

    ap_info = sub.add_parser("info", help="Show archive information")
    ap_info.add_argument("archive", help="Archive path")

    ap_verify = sub.add_parser("verify", help="Check archive structure")
    ap_verify.add_argument("archive", help="Archive path")

    args = ap.parse_args(argv)
    try:
        if args.cmd == "archive":
            cmd_archive(args.input, args.output, quiet=args.quiet)
        elif args.cmd == "unarchive":
            ok = cmd_unarchive(args.input, args.output, dry=args.dry, quiet=args.quiet)
            if not ok:
                sys.exit(1)
        elif args.cmd == "list":
            cmd_list(args.archive)
        elif args.cmd == "info":
            cmd_info(args.archive)
        elif args.cmd == "verify":
            if not cmd_verify(args.archive):
                sys.exit(1)
        else:
            raise RuntimeError("Unknown command")
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)
    except (PFSError, OSError, ValueError, RuntimeError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)


if __name__ == "__main__":
    main()
