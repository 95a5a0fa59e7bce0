"""Constants describing the block-structured log file format."""

from enum import IntEnum

__all__ = ["RecordType", "MAX_RECORD_TYPE", "BLOCK_SIZE", "HEADER_SIZE"]


class RecordType(IntEnum):
    """Type tag stored in every physical log record header."""

    ZERO = 0  # reserved for preallocated files
    FULL = 1
    FIRST = 2
    MIDDLE = 3
    LAST = 4


MAX_RECORD_TYPE = RecordType.LAST

BLOCK_SIZE = 32768

# checksum (4 bytes), length (2 bytes), type (1 byte)
HEADER_SIZE = 4 + 2 + 1