"""
SortedArray - parallel key and value lists kept in order with bisect.

Lookups are O(log N). Inserts shift the tail of the lists, which is a single
memmove and stays fast at MemTable sizes.
"""

import bisect
from collections.abc import Iterator

from kvfacade.interfaces.sorted_container import SortedContainer
from kvfacade.models.value import Value


class SortedArray(SortedContainer):
    """Bisect-backed SortedContainer."""

    def __init__(self) -> None:
        self._keys: list[bytes] = []
        self._values: list[Value] = []
        self._size_bytes = 0

    def _position(self, key: bytes) -> tuple[int, bool]:
        """Insertion point of key and whether key is already stored there."""
        idx = bisect.bisect_left(self._keys, key)
        return idx, idx < len(self._keys) and self._keys[idx] == key

    def put(self, key: bytes, value: Value) -> None:
        idx, found = self._position(key)
        if found:
            self._size_bytes += value.size_bytes() - self._values[idx].size_bytes()
            self._values[idx] = value
            return
        self._keys.insert(idx, key)
        self._values.insert(idx, value)
        self._size_bytes += len(key) + value.size_bytes()

    def get(self, key: bytes) -> Value | None:
        idx, found = self._position(key)
        return self._values[idx] if found else None

    def delete(self, key: bytes) -> bool:
        idx, found = self._position(key)
        if not found:
            return False
        self._size_bytes -= len(key) + self._values[idx].size_bytes()
        del self._keys[idx]
        del self._values[idx]
        return True

    def size_bytes(self) -> int:
        return self._size_bytes

    def __len__(self) -> int:
        return len(self._keys)

    def __iter__(self) -> Iterator[tuple[bytes, Value]]:
        return zip(self._keys, self._values)
