"""
MemTable - the engine's in-memory write buffer.
"""

from collections.abc import Iterable, Iterator

from kvfacade.interfaces.sorted_container import SortedContainer
from kvfacade.models.value import Value


class MemTable:
    """
    Newest version of every key written since the last flush.

    Deletes are stored as tombstones so they can mask older SSTables. Once
    frozen the table is read-only and waits to be flushed.
    """

    def __init__(self, container: SortedContainer) -> None:
        self._container = container
        self._frozen = False

    @property
    def frozen(self) -> bool:
        return self._frozen

    def freeze(self) -> None:
        self._frozen = True

    def apply(self, ops: Iterable[tuple[bytes, Value]]) -> None:
        """
        Apply the operations of one WAL record in order.

        Raises:
            RuntimeError: If the table is frozen.
        """
        if self._frozen:
            raise RuntimeError("MemTable is frozen")
        for key, value in ops:
            self._container.put(key, value)

    def put(self, key: bytes, value: bytes) -> None:
        self.apply([(key, Value.regular(value))])

    def delete(self, key: bytes) -> None:
        self.apply([(key, Value.tombstone())])

    def get(self, key: bytes) -> Value | None:
        """The stored Value (possibly a tombstone), or None if key was never written here."""
        return self._container.get(key)

    def snapshot(self) -> list[tuple[bytes, Value]]:
        """Entries in key order, copied so writes can continue during a scan."""
        return list(self._container)

    def size_bytes(self) -> int:
        return self._container.size_bytes()

    def __len__(self) -> int:
        return len(self._container)

    def __iter__(self) -> Iterator[tuple[bytes, Value]]:
        return iter(self._container)
