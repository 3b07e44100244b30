# Magic and header layout
FILE_MAGIC = b"pf"  # 0x70 0x66
HEADER_SIZE = 7     # magic(2) + version(1) + info_size(4)

U32_SIZE = 4
U32_MAX = 0xFFFFFFFF

# Offset table: one (relative position, zero) slot per entry, then an 8-byte EOF marker
OFFSET_TABLE_SLOT_SIZE = 2 * U32_SIZE
EOF_MARKER = b"\x00" * 8

# SHA-1 digest size; the keystream repeats every KEY_SIZE bytes
KEY_SIZE = 20
ZERO_KEY = b"\x00" * KEY_SIZE

# Legacy toolchains write Windows separators into entry names
ARCHIVE_SEP = "\\"

# Payload streaming
DEFAULT_CHUNK_SIZE = 1_048_576  # 1 MiB
