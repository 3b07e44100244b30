"""
PFS — reader and writer for PFS container archives.

Features:

- Parses version 2, 6 and 8 archives: header, entry records and offset table.
- Version 8 payloads are obfuscated with a 20-byte keystream, the SHA-1 digest
  of the archive's own index block; versions 2 and 6 are stored in the clear.
- Packs a file or folder into a byte-exact version 8 archive in two passes:
  all offsets are computed before the index is written and hashed, then the
  payloads are ciphered and appended.
- Unpacking with per-entry failure reporting, dry runs, listing and
  structural verification via the CLI.
"""

__version__ = "0.1"

__all__ = [
    "constants",
    "errors",
    "archive",
    "keystream",
    "cipher",
    "pathutil",
    "reader",
    "writer",
    "unpack",
    "cli",
]

# Importable programmatic API is available via pfs.writer.pack/pfs.unpack.unpack and
# the CLI functions in pfs.cli (cmd_archive/cmd_unarchive) which take normal parameters.
