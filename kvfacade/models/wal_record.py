"""
WALRecord dataclass for Write-Ahead Log records.
"""

from dataclasses import dataclass, field

from kvfacade.models.value import Value


@dataclass
class WALRecord:
    """
    A single checksummed unit of the Write-Ahead Log.

    A record carries one or more operations. Recovery replays a record
    completely or not at all, which is what makes batch writes atomic.

    Attributes:
        seq: Sequence number for ordering records.
        ops: (key, value) pairs in application order; tombstone values are deletes.
    """

    seq: int
    ops: list[tuple[bytes, Value]] = field(default_factory=list)

    def __bytes__(self) -> bytes:
        """
        Serialize the record to bytes for storage.

        Format: [seq:8][count:4] then per op [key_len:4][key][value_len:4][value]
        """
        parts = [self.seq.to_bytes(8, "big"), len(self.ops).to_bytes(4, "big")]
        for key, value in self.ops:
            value_bytes = bytes(value)
            parts.append(len(key).to_bytes(4, "big"))
            parts.append(key)
            parts.append(len(value_bytes).to_bytes(4, "big"))
            parts.append(value_bytes)
        return b"".join(parts)

    @classmethod
    def from_bytes(cls, data: bytes) -> "WALRecord":
        """Deserialize from bytes."""
        seq = int.from_bytes(data[0:8], "big")
        count = int.from_bytes(data[8:12], "big")
        offset = 12

        ops: list[tuple[bytes, Value]] = []
        for _ in range(count):
            key_len = int.from_bytes(data[offset : offset + 4], "big")
            offset += 4
            key = bytes(data[offset : offset + key_len])
            offset += key_len

            value_len = int.from_bytes(data[offset : offset + 4], "big")
            offset += 4
            value = Value.from_bytes(data[offset : offset + value_len])
            offset += value_len

            ops.append((key, value))

        return cls(seq=seq, ops=ops)
