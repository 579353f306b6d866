"""
SortedContainer - ordered map contract behind the MemTable.
"""

from abc import ABC, abstractmethod
from collections.abc import Iterator

from kvfacade.models.value import Value


class SortedContainer(ABC):
    """
    Ordered map from encoded keys to engine values.

    Iterating yields (key, value) in ascending byte order of the keys, which
    is the order SSTables are written in.
    """

    @abstractmethod
    def put(self, key: bytes, value: Value) -> None:
        """Insert key or replace its value."""

    @abstractmethod
    def get(self, key: bytes) -> Value | None:
        pass

    @abstractmethod
    def delete(self, key: bytes) -> bool:
        """Drop key entirely; False if it was not there."""

    @abstractmethod
    def size_bytes(self) -> int:
        """Encoded size of keys plus values, used for flush decisions."""

    @abstractmethod
    def __len__(self) -> int:
        pass

    @abstractmethod
    def __iter__(self) -> Iterator[tuple[bytes, Value]]:
        pass

    def __contains__(self, key: bytes) -> bool:
        return self.get(key) is not None
