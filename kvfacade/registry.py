"""
Registry - explicit name to Store mapping with its own lifecycle.
"""

import logging
import os
from collections.abc import Iterator
from typing import Any

from kvfacade.models.exceptions import ConfigError, StoreNotRegistered
from kvfacade.models.options import StoreOptions
from kvfacade.store import Store

logger = logging.getLogger(__name__)


class Registry:
    """
    Live stores by name, for code that reaches stores by name.

    Create one at process start and hand it to whoever needs lookups;
    close_all() (or leaving `async with Registry()`) stops every store still
    registered. Stores unregister themselves when stopped or destroyed.
    """

    def __init__(self) -> None:
        self._stores: dict[str, Store] = {}

    def register(self, store: Store) -> None:
        """
        Raises:
            ConfigError: If a live store already uses the name.
        """
        if store.name in self._stores:
            raise ConfigError(f"A store named {store.name!r} is already registered")
        self._stores[store.name] = store

    def unregister(self, name: str, store: Store | None = None) -> Store | None:
        """Remove name; when store is given, only if name still maps to it."""
        current = self._stores.get(name)
        if current is None or (store is not None and current is not store):
            return None
        return self._stores.pop(name)

    def lookup(self, name: str) -> Store:
        try:
            return self._stores[name]
        except KeyError:
            raise StoreNotRegistered(name) from None

    def names(self) -> list[str]:
        return sorted(self._stores)

    def __contains__(self, name: object) -> bool:
        return name in self._stores

    def __len__(self) -> int:
        return len(self._stores)

    def __iter__(self) -> Iterator[Store]:
        return iter(list(self._stores.values()))

    async def start(
        self, name: str, options: "StoreOptions | dict[str, Any] | None" = None, **overrides: Any
    ) -> Store:
        """Start a store and register it here."""
        return await Store.start(name, options, registry=self, **overrides)

    async def restore(
        self,
        name: str,
        source: str | os.PathLike,
        options: "StoreOptions | dict[str, Any] | None" = None,
        **overrides: Any,
    ) -> Store:
        """Restore a store from a checkpoint and register it here."""
        return await Store.from_checkpoint(name, source, options, registry=self, **overrides)

    async def close_all(self) -> None:
        """Stop every registered store, reporting the first failure after trying all."""
        first_error: BaseException | None = None
        for store in list(self._stores.values()):
            try:
                await store.stop()
            except Exception as exc:
                logger.error("Failed to stop store %s: %s", store.name, exc)
                first_error = first_error or exc
        self._stores.clear()
        if first_error is not None:
            raise first_error

    async def __aenter__(self) -> "Registry":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close_all()
