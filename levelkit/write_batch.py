"""Atomic batches of puts and deletes in their serialized form."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterator
from typing import NamedTuple, Optional, Union

from .dbkeys import ValueType

__all__ = [
    "CorruptionError",
    "WriteBatchHandler",
    "BatchRecord",
    "WriteBatch",
    "HEADER_SIZE",
]

# 8-byte sequence number followed by a 4-byte count.
HEADER_SIZE = 12

BytesLike = Union[bytes, bytearray, memoryview, str]


class CorruptionError(Exception):
    """Raised when serialized batch contents are malformed."""


class WriteBatchHandler(ABC):
    """Receives the operations of a batch in order."""

    @abstractmethod
    def put(self, key: bytes, value: bytes) -> None:
        """Handle a put of value under key."""

    @abstractmethod
    def delete(self, key: bytes) -> None:
        """Handle a deletion of key."""


class BatchRecord(NamedTuple):
    type: ValueType
    key: bytes
    value: Optional[bytes]


def _as_bytes(data: BytesLike) -> bytes:
    if isinstance(data, str):
        return data.encode()
    return bytes(data)


def _encode_varint32(n: int) -> bytes:
    out = bytearray()
    while n >= 0x80:
        out.append((n & 0x7F) | 0x80)
        n >>= 7
    out.append(n)
    return bytes(out)


def _length_prefixed(data: bytes) -> bytes:
    return _encode_varint32(len(data)) + data


def _read_varint32(data: bytes, pos: int) -> Optional[tuple[int, int]]:
    result = 0
    for shift in range(0, 35, 7):
        if pos >= len(data):
            return None
        byte = data[pos]
        pos += 1
        result |= (byte & 0x7F) << shift
        if not byte & 0x80:
            return result, pos
    return None


def _read_length_prefixed(data: bytes, pos: int) -> Optional[tuple[bytes, int]]:
    parsed = _read_varint32(data, pos)
    if parsed is None:
        return None
    length, pos = parsed
    end = pos + length
    if end > len(data):
        return None
    return data[pos:end], end


class WriteBatch:
    """A sequence of updates applied atomically."""

    def __init__(self) -> None:
        self._rep = bytearray(HEADER_SIZE)

    @classmethod
    def from_contents(cls, contents: bytes) -> WriteBatch:
        """Build a batch from its serialized form."""
        contents = bytes(contents)
        if len(contents) < HEADER_SIZE:
            raise CorruptionError("malformed WriteBatch (too small)")
        batch = cls()
        batch._rep = bytearray(contents)
        return batch

    @property
    def contents(self) -> bytes:
        return bytes(self._rep)

    @property
    def count(self) -> int:
        return int.from_bytes(self._rep[8:12], "little")

    @count.setter
    def count(self, n: int) -> None:
        self._rep[8:12] = n.to_bytes(4, "little")

    @property
    def sequence(self) -> int:
        return int.from_bytes(self._rep[0:8], "little")

    @sequence.setter
    def sequence(self, seq: int) -> None:
        self._rep[0:8] = seq.to_bytes(8, "little")

    def __len__(self) -> int:
        return self.count

    def put(self, key: BytesLike, value: BytesLike) -> None:
        self.count += 1
        self._rep.append(ValueType.VALUE)
        self._rep += _length_prefixed(_as_bytes(key))
        self._rep += _length_prefixed(_as_bytes(value))

    def delete(self, key: BytesLike) -> None:
        self.count += 1
        self._rep.append(ValueType.DELETION)
        self._rep += _length_prefixed(_as_bytes(key))

    def clear(self) -> None:
        """Drop all operations and reset the header."""
        self._rep = bytearray(HEADER_SIZE)

    def append(self, source: WriteBatch) -> None:
        """Append the operations of another batch to this one."""
        self.count += source.count
        self._rep += source._rep[HEADER_SIZE:]

    def approximate_size(self) -> int:
        return len(self._rep)

    def records(self) -> Iterator[BatchRecord]:
        """Yield operations in order; raise CorruptionError on bad data."""
        data = bytes(self._rep)
        if len(data) < HEADER_SIZE:
            raise CorruptionError("malformed WriteBatch (too small)")
        pos = HEADER_SIZE
        found = 0
        while pos < len(data):
            found += 1
            tag = data[pos]
            pos += 1
            if tag == ValueType.VALUE:
                key_part = _read_length_prefixed(data, pos)
                value_part = (
                    None if key_part is None else _read_length_prefixed(data, key_part[1])
                )
                if value_part is None:
                    raise CorruptionError("bad WriteBatch Put")
                pos = value_part[1]
                yield BatchRecord(ValueType.VALUE, key_part[0], value_part[0])
            elif tag == ValueType.DELETION:
                key_part = _read_length_prefixed(data, pos)
                if key_part is None:
                    raise CorruptionError("bad WriteBatch Delete")
                pos = key_part[1]
                yield BatchRecord(ValueType.DELETION, key_part[0], None)
            else:
                raise CorruptionError("unknown WriteBatch tag")
        if found != self.count:
            raise CorruptionError("WriteBatch has wrong count")

    def iterate(self, handler: WriteBatchHandler) -> None:
        """Feed every operation to handler in order."""
        for record in self.records():
            if record.type is ValueType.VALUE:
                handler.put(record.key, record.value)
            else:
                handler.delete(record.key)