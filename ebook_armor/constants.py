import os


# Repair-set file magic and version
REPAIRSET_MAGIC = b"ARMORPS\x00"  # 8 bytes: "ARMORPS\0"

VERSION_MAJOR = 1
VERSION_MINOR = 0

REPAIRSET_SUFFIX = ".armor"

# Symbol layout
MAX_DATA_SYMBOLS = 128
MIN_SYMBOL_SIZE = 512
SYMBOL_ALIGN = 64
TAG_SIZE = 16

READ_CHUNK_SIZE = 1_048_576  # 1 MiB

# Configuration defaults (environment-style names)
DEFAULT_REDUNDANCY = 10
DEFAULT_BOOK_DIR = os.path.join("~", "Desktop", "Ebooks")
DEFAULT_INDEX_NAME = "index.md5sum"
DEFAULT_CSV_NAME = "index.csv"
DEFAULT_REPAIR_NAME = "repair"

# Exit status bits
EXIT_OK = 0
EXIT_MISMATCH = 1
EXIT_FATAL = 2
EXIT_PROTECT_FAILED = 4
EXIT_DUPLICATES = 8

ZIP_MAGICS = (b"PK\x03\x04", b"PK\x05\x06", b"PK\x07\x08")
