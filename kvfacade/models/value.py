"""
Value - an engine-level value or a deletion marker.
"""

from dataclasses import dataclass
from enum import IntEnum


class ValueType(IntEnum):
    REGULAR = 0
    TOMBSTONE = 1  # Deletion marker, masks older versions of the key


@dataclass(frozen=True)
class Value:
    """
    Encoded value bytes tagged with their type.

    Serialized as [type:1][data]. An empty regular value is distinct from a
    tombstone because of the type byte.
    """

    data: bytes | None
    type: ValueType = ValueType.REGULAR

    @classmethod
    def regular(cls, data: bytes) -> "Value":
        return cls(data, ValueType.REGULAR)

    @classmethod
    def tombstone(cls) -> "Value":
        return cls(None, ValueType.TOMBSTONE)

    def is_tombstone(self) -> bool:
        return self.type == ValueType.TOMBSTONE

    def size_bytes(self) -> int:
        return 1 + len(self.data or b"")

    def __bytes__(self) -> bytes:
        return bytes([self.type]) + (self.data or b"")

    @classmethod
    def from_bytes(cls, data: bytes) -> "Value":
        if ValueType(data[0]) is ValueType.TOMBSTONE:
            return cls.tombstone()
        return cls.regular(bytes(data[1:]))
