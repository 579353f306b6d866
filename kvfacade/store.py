"""
Store - the handle callers use, routing every operation to its backend.
"""

import asyncio
import os
from collections.abc import AsyncIterator, Callable, Hashable, Iterable
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

from kvfacade.backends import create_backend
from kvfacade.checkpoint import CheckpointManager
from kvfacade.interfaces.backend import Backend
from kvfacade.interfaces.codec import Codec
from kvfacade.models.exceptions import ConfigError, EngineClosedError
from kvfacade.models.options import BackendKind, StoreOptions

if TYPE_CHECKING:
    from kvfacade.registry import Registry


def _validate_name(name: str) -> str:
    if not isinstance(name, str) or not name or name in (".", ".."):
        raise ConfigError(f"Store name must be a non-empty string, got {name!r}")
    if os.sep in name or (os.altsep and os.altsep in name):
        raise ConfigError(f"Store name may not contain path separators: {name!r}")
    return name


class _KeyLock:
    """A lock shared by the updates waiting on one key."""

    def __init__(self) -> None:
        self.lock = asyncio.Lock()
        self.users = 0


class Store:
    """
    A named key-value store bound to one backend.

    Use Store.start() (or Registry.start()) to create one. The store owns its
    backend state exclusively and must be released explicitly with stop() or
    destroy(); callers must not stop it while other operations are in flight.

    Example:
        store = await Store.start("sessions", backend="volatile")
        await store.put("alice", 1)
        await store.update("alice", lambda key, value: value + 1)
        await store.stop()
    """

    def __init__(
        self,
        name: str,
        backend: Backend,
        state: Any,
        options: StoreOptions,
        registry: "Registry | None" = None,
    ) -> None:
        self._name = name
        self._backend = backend
        self._state = state
        self._options = options
        self._registry = registry
        self._stopped_state: Any = None
        self._update_locks: dict[Hashable, _KeyLock] = {}

    @classmethod
    async def start(
        cls,
        name: str,
        options: "StoreOptions | dict[str, Any] | None" = None,
        *,
        registry: "Registry | None" = None,
        codec: Codec | None = None,
        **overrides: Any,
    ) -> "Store":
        """
        Open a store, selecting its backend from options.

        Args:
            name: Logical store name; also the on-disk directory name.
            options: StoreOptions or a mapping of option names to values.
            registry: Register the store here under name once started.
            codec: Codec for the persistent backend (pickle by default).
            **overrides: Individual options, applied over options.

        Raises:
            ConfigError: Unknown backend, bad options or a name already registered.
            EngineOpenError: If the backend cannot start.
        """
        _validate_name(name)
        store_options = StoreOptions.from_mapping(options, **overrides)
        if registry is not None and name in registry:
            raise ConfigError(f"A store named {name!r} is already running")

        backend = create_backend(store_options.backend, codec=codec)
        state = await backend.start(name, store_options)
        return cls._bind(name, backend, state, store_options, registry)

    @classmethod
    async def from_checkpoint(
        cls,
        name: str,
        source: str | os.PathLike,
        options: "StoreOptions | dict[str, Any] | None" = None,
        *,
        source_name: str | None = None,
        registry: "Registry | None" = None,
        codec: Codec | None = None,
        **overrides: Any,
    ) -> "Store":
        """
        Materialize a store from the checkpoint archive in source.

        Existing on-disk state for name is deleted first. Pass source_name to
        restore a checkpoint taken from a differently named store.

        Raises:
            StorageIOError: If the archive is missing or cannot be extracted.
        """
        _validate_name(name)
        store_options = StoreOptions.from_mapping(options, **overrides)
        if registry is not None and name in registry:
            raise ConfigError(f"A store named {name!r} is already running")

        backend = create_backend(store_options.backend, codec=codec)
        manager = CheckpointManager(backend)
        state = await manager.from_checkpoint(name, store_options, source, source_name)
        return cls._bind(name, backend, state, store_options, registry)

    @classmethod
    def _bind(
        cls,
        name: str,
        backend: Backend,
        state: Any,
        options: StoreOptions,
        registry: "Registry | None",
    ) -> "Store":
        store = cls(name, backend, state, options, registry)
        if registry is not None:
            registry.register(store)
        return store

    @property
    def name(self) -> str:
        return self._name

    @property
    def kind(self) -> BackendKind:
        return self._backend.kind

    @property
    def options(self) -> StoreOptions:
        return self._options

    @property
    def backend(self) -> Backend:
        return self._backend

    @property
    def is_open(self) -> bool:
        return self._state is not None

    def _require_state(self) -> Any:
        if self._state is None:
            raise EngineClosedError(f"Store {self._name!r} is not open")
        return self._state

    def _detach(self) -> Any:
        """Take the backend state away, closing the store to callers. destroy() can still use it."""
        state = self._require_state()
        self._state = None
        self._stopped_state = state
        return state

    def _attach(self, state: Any) -> None:
        self._state = state
        self._stopped_state = None

    async def put(self, key: Any, value: Any) -> None:
        await self._backend.put(self._require_state(), key, value)

    async def get(self, key: Any) -> Any:
        """Return the value for key, or NotFound."""
        return await self._backend.get(self._require_state(), key)

    async def delete(self, key: Any) -> None:
        await self._backend.delete(self._require_state(), key)

    async def update(self, key: Any, fun: Callable[[Any, Any], Any]) -> None:
        """
        Replace the value of key with fun(key, current).

        current is NotFound when key is absent. Unless the store was started
        with serialize_updates=True this is a plain read then write, and two
        concurrent updates of one key can lose one of the writes.
        """
        if not self._options.serialize_updates:
            await self._backend.update(self._require_state(), key, fun)
            return
        async with self._exclusive(key):
            await self._backend.update(self._require_state(), key, fun)

    async def update_value(
        self, key: Any, value: Any, fun: Callable[[Any, Any, Any], Any]
    ) -> None:
        """Replace the value of key with fun(key, current, value). See update()."""
        if not self._options.serialize_updates:
            await self._backend.update_value(self._require_state(), key, value, fun)
            return
        async with self._exclusive(key):
            await self._backend.update_value(self._require_state(), key, value, fun)

    @asynccontextmanager
    async def _exclusive(self, key: Hashable) -> AsyncIterator[None]:
        """Serialize updates of one key; the lock is dropped when nobody waits on it."""
        entry = self._update_locks.get(key)
        if entry is None:
            entry = self._update_locks[key] = _KeyLock()
        entry.users += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            if entry.users == 0:
                del self._update_locks[key]

    async def fold(self, fun: Callable[[Any, Any, Any], Any], acc: Any) -> Any:
        """Apply fun(key, value, acc) to every entry; weakly consistent."""
        return await self._backend.fold(self._require_state(), fun, acc)

    async def fold_keys(self, fun: Callable[[Any, Any], Any], acc: Any) -> Any:
        return await self._backend.fold_keys(self._require_state(), fun, acc)

    async def from_list(self, entries: Iterable[tuple[Any, Any]]) -> None:
        await self._backend.from_list(self._require_state(), entries)

    async def to_list(self) -> list[tuple[Any, Any]]:
        return await self._backend.to_list(self._require_state())

    async def keys(self) -> list[Any]:
        return await self._backend.keys(self._require_state())

    async def status(self, prop: str | None = None) -> str | None:
        """Engine statistics; the format is engine specific."""
        return await self._backend.status(self._require_state(), prop)

    async def checkpoint(self, destination: str | os.PathLike) -> str:
        """
        Write destination/<name>.tar.gz and keep serving afterwards.

        Returns:
            Path of the archive.

        Raises:
            ConfigError: If the backend does not support checkpoints.
        """
        self._require_state()
        manager = CheckpointManager(self._backend)
        return await manager.checkpoint(self, destination)

    async def stop(self) -> None:
        """Release the backend. Persistent data stays on disk."""
        state = self._detach()
        self._unregister()
        await self._backend.stop(state)

    async def destroy(self) -> None:
        """Remove all stored data irrecoverably, stopping first if still open."""
        if self._state is None and self._stopped_state is None:
            raise EngineClosedError(f"Store {self._name!r} has no backend state to destroy")
        state = self._state if self._state is not None else self._stopped_state
        self._state = self._stopped_state = None
        self._unregister()
        await self._backend.destroy(state, self._name)

    def _unregister(self) -> None:
        if self._registry is not None:
            self._registry.unregister(self._name, self)

    async def __aenter__(self) -> "Store":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        if self.is_open:
            await self.stop()

    def __repr__(self) -> str:
        state = "open" if self.is_open else "closed"
        return f"<Store {self._name!r} {self.kind.value} {state}>"
