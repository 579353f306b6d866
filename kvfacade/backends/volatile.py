"""
VolatileBackend - in-process table adapter.
"""

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Any

from kvfacade.interfaces.backend import Backend, NotFound
from kvfacade.models.exceptions import EngineClosedError, EngineWriteError
from kvfacade.models.options import BackendKind, StoreOptions

logger = logging.getLogger(__name__)


@dataclass
class VolatileTable:
    """Backend state of a volatile store: a dict living only in this process."""

    name: str
    entries: dict[Any, Any] = field(default_factory=dict)
    open: bool = True


class VolatileBackend(Backend):
    """
    Adapter over a plain dict.

    Keys must be hashable. Natural order is insertion order. Nothing is
    persisted, so stop and destroy both drop the contents.
    """

    kind = BackendKind.VOLATILE

    async def start(self, name: str, options: StoreOptions) -> VolatileTable:
        logger.info("Started volatile store %s", name)
        return VolatileTable(name=name)

    async def stop(self, state: VolatileTable) -> None:
        state.entries.clear()
        state.open = False
        logger.info("Stopped volatile store %s", state.name)

    async def destroy(self, state: VolatileTable, name: str) -> None:
        state.entries.clear()
        state.open = False
        logger.info("Destroyed volatile store %s", name)

    def _table(self, state: VolatileTable) -> dict[Any, Any]:
        if not state.open:
            raise EngineClosedError(f"Volatile store {state.name!r} is stopped")
        return state.entries

    async def put(self, state: VolatileTable, key: Any, value: Any) -> None:
        table = self._table(state)
        try:
            table[key] = value
        except TypeError as exc:
            raise EngineWriteError(f"Unhashable key {key!r}: {exc}") from exc

    async def get(self, state: VolatileTable, key: Any) -> Any:
        try:
            return self._table(state).get(key, NotFound)
        except TypeError:
            # An unhashable key can never have been stored
            return NotFound

    async def delete(self, state: VolatileTable, key: Any) -> None:
        try:
            self._table(state).pop(key, None)
        except TypeError as exc:
            raise EngineWriteError(f"Unhashable key {key!r}: {exc}") from exc

    async def fold(self, state: VolatileTable, fun: Callable[[Any, Any, Any], Any], acc: Any) -> Any:
        for key, value in list(self._table(state).items()):
            acc = fun(key, value, acc)
        return acc

    async def fold_keys(self, state: VolatileTable, fun: Callable[[Any, Any], Any], acc: Any) -> Any:
        for key in list(self._table(state)):
            acc = fun(key, acc)
        return acc

    async def from_list(self, state: VolatileTable, entries: Iterable[tuple[Any, Any]]) -> None:
        table = self._table(state)
        try:
            # Staged first so a bad entry leaves the table untouched
            staged = dict(entries)
        except (TypeError, ValueError) as exc:
            raise EngineWriteError(f"Invalid batch for {state.name!r}: {exc}") from exc
        table.update(staged)

    async def status(self, state: VolatileTable, prop: str | None = None) -> str | None:
        table = self._table(state)
        if prop in (None, "size"):
            return str(len(table))
        return None
