"""Internal keys, their ordering, and table file metadata."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Union

__all__ = [
    "ValueType",
    "VALUE_TYPE_FOR_SEEK",
    "MAX_SEQUENCE_NUMBER",
    "NUM_LEVELS",
    "InternalKey",
    "FileMetaData",
    "compare_user_keys",
    "compare_internal_keys",
]

NUM_LEVELS = 7
MAX_SEQUENCE_NUMBER = (1 << 56) - 1


class ValueType(IntEnum):
    """Kind of entry an internal key refers to."""

    DELETION = 0
    VALUE = 1


# Seeking wants the entry with the highest type among equal sequences.
VALUE_TYPE_FOR_SEEK = ValueType.VALUE


def _escape(data: bytes) -> str:
    return "".join(
        chr(b) if 0x20 <= b <= 0x7E else f"\\x{b:02x}" for b in data
    )


@dataclass(frozen=True)
class InternalKey:
    """A user key tagged with a sequence number and a value type."""

    user_key: bytes
    sequence: int
    type: ValueType = ValueType.VALUE

    def __post_init__(self) -> None:
        if isinstance(self.user_key, str):
            object.__setattr__(self, "user_key", self.user_key.encode())
        else:
            object.__setattr__(self, "user_key", bytes(self.user_key))
        if not 0 <= self.sequence <= MAX_SEQUENCE_NUMBER:
            raise ValueError(f"sequence number out of range: {self.sequence}")
        object.__setattr__(self, "type", ValueType(self.type))

    @property
    def packed_tag(self) -> int:
        return (self.sequence << 8) | int(self.type)

    def encode(self) -> bytes:
        """Return the on-disk form: user key followed by a fixed64 tag."""
        return self.user_key + self.packed_tag.to_bytes(8, "little")

    @classmethod
    def decode(cls, data: bytes) -> InternalKey:
        """Parse an encoded internal key; raise ValueError if malformed."""
        data = bytes(data)
        if len(data) < 8:
            raise ValueError("internal key too short")
        tag = int.from_bytes(data[-8:], "little")
        kind = tag & 0xFF
        if kind > ValueType.VALUE:
            raise ValueError(f"bad value type in internal key: {kind}")
        return cls(data[:-8], tag >> 8, ValueType(kind))

    def debug_string(self) -> str:
        """Human readable form, e.g. 'key' @ 7 : 1."""
        return f"'{_escape(self.user_key)}' @ {self.sequence} : {int(self.type)}"


KeyLike = Union[InternalKey, bytes, bytearray]


def _split(key: KeyLike) -> tuple[bytes, int]:
    if isinstance(key, InternalKey):
        return key.user_key, key.packed_tag
    data = bytes(key)
    if len(data) < 8:
        raise ValueError("internal key too short")
    return data[:-8], int.from_bytes(data[-8:], "little")


def compare_user_keys(a: bytes, b: bytes) -> int:
    """Bytewise three-way comparison."""
    a, b = bytes(a), bytes(b)
    return (a > b) - (a < b)


def compare_internal_keys(a: KeyLike, b: KeyLike) -> int:
    """Order by user key ascending, then by sequence and type descending."""
    ua, ta = _split(a)
    ub, tb = _split(b)
    result = compare_user_keys(ua, ub)
    if result:
        return result
    return (ta < tb) - (ta > tb)


def _empty_key() -> InternalKey:
    return InternalKey(b"", 0, ValueType.DELETION)


@dataclass(eq=False)
class FileMetaData:
    """Description of one table file; identity-compared."""

    number: int = 0
    file_size: int = 0
    smallest: InternalKey = field(default_factory=_empty_key)
    largest: InternalKey = field(default_factory=_empty_key)
    allowed_seeks: int = 1 << 30
    refs: int = 0