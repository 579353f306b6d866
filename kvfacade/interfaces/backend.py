"""
Backend abstract base class: the operation contract every storage engine adapter implements.
"""

from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable
from typing import Any

from kvfacade.models.options import BackendKind, StoreOptions


class _NotFoundType:
    """Type of the NotFound sentinel."""

    _instance: "_NotFoundType | None" = None

    def __new__(cls) -> "_NotFoundType":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "NotFound"

    def __bool__(self) -> bool:
        return False

    def __reduce__(self) -> str:
        return "NotFound"


# Returned by get() for an absent key and passed to update functions in
# place of the current value. It is an expected outcome, not an error.
NotFound = _NotFoundType()


class Backend(ABC):
    """
    Uniform protocol over one storage engine.

    Every method takes the opaque state returned by start(). The state is
    valid only between start() and the matching stop()/destroy().

    Implementations:
    - VolatileBackend: in-process table, gone when stopped
    - PersistentBackend: LSM engine on disk, supports checkpoints
    """

    kind: BackendKind
    supports_checkpoint: bool = False

    @abstractmethod
    async def start(self, name: str, options: StoreOptions) -> Any:
        """
        Open the engine for the store called name.

        Returns:
            Opaque backend state.

        Raises:
            EngineOpenError: If the engine cannot be opened.
            ConfigError: If options are invalid for this engine.
        """
        pass

    @abstractmethod
    async def stop(self, state: Any) -> None:
        """Release engine resources. The state is invalid afterwards."""
        pass

    @abstractmethod
    async def destroy(self, state: Any, name: str) -> None:
        """
        Irrecoverably remove everything stored for name, stopping first if needed.

        Raises:
            StorageIOError: If files cannot be removed.
        """
        pass

    @abstractmethod
    async def put(self, state: Any, key: Any, value: Any) -> None:
        """
        Write an entry.

        Raises:
            EngineWriteError: If the engine rejects the write.
        """
        pass

    @abstractmethod
    async def get(self, state: Any, key: Any) -> Any:
        """
        Look up key.

        Returns:
            The stored value, or NotFound if key is absent.
        """
        pass

    @abstractmethod
    async def delete(self, state: Any, key: Any) -> None:
        """Remove key. Removing an absent key is not an error."""
        pass

    @abstractmethod
    async def fold(self, state: Any, fun: Callable[[Any, Any, Any], Any], acc: Any) -> Any:
        """
        Thread acc through fun(key, value, acc) once per entry in natural key order.

        Weakly consistent: writes made while the fold runs may not be seen.
        """
        pass

    @abstractmethod
    async def fold_keys(self, state: Any, fun: Callable[[Any, Any], Any], acc: Any) -> Any:
        """Like fold, but fun(key, acc) never sees values."""
        pass

    @abstractmethod
    async def from_list(self, state: Any, entries: Iterable[tuple[Any, Any]]) -> None:
        """
        Write all entries as one batch, later duplicates winning.

        Raises:
            EngineWriteError: If the batch fails; the store is left as before.
        """
        pass

    @abstractmethod
    async def status(self, state: Any, prop: str | None = None) -> str | None:
        """Engine-specific statistics as an opaque string, None if prop is unknown."""
        pass

    async def to_list(self, state: Any) -> list[tuple[Any, Any]]:
        def collect(key: Any, value: Any, acc: list) -> list:
            acc.append((key, value))
            return acc

        return await self.fold(state, collect, [])

    async def keys(self, state: Any) -> list[Any]:
        def collect(key: Any, acc: list) -> list:
            acc.append(key)
            return acc

        return await self.fold_keys(state, collect, [])

    async def update(self, state: Any, key: Any, fun: Callable[[Any, Any], Any]) -> None:
        """
        Store fun(key, current) where current is the stored value or NotFound.

        Not atomic: this is a get followed by a put, and a concurrent writer
        to the same key can slip in between and have its write lost. Errors
        from either step propagate unchanged and nothing is rolled back.
        """
        current = await self.get(state, key)
        await self.put(state, key, fun(key, current))

    async def update_value(
        self, state: Any, key: Any, value: Any, fun: Callable[[Any, Any, Any], Any]
    ) -> None:
        """
        Store fun(key, current, value), merging value with what is stored.

        Same non-atomic read-modify-write caveat as update().
        """
        current = await self.get(state, key)
        await self.put(state, key, fun(key, current, value))
