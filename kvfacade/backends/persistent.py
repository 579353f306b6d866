"""
PersistentBackend - adapter over the on-disk LSM engine.
"""

import asyncio
import logging
from collections.abc import AsyncIterator, Callable, Iterable
from contextlib import aclosing
from dataclasses import dataclass
from typing import Any

from kvfacade.engine import LSMEngine
from kvfacade.interfaces.backend import Backend, NotFound
from kvfacade.interfaces.codec import Codec
from kvfacade.models.codec import PickleCodec
from kvfacade.models.exceptions import (
    CodecError,
    ConfigError,
    CorruptionError,
    EngineOpenError,
    EngineReadError,
    EngineWriteError,
    StorageIOError,
)
from kvfacade.models.options import BackendKind, StoreOptions

logger = logging.getLogger(__name__)


@dataclass
class PersistentState:
    """Backend state of a persistent store."""

    name: str
    options: StoreOptions
    path: str
    engine: LSMEngine


class PersistentBackend(Backend):
    """
    Adapter over LSMEngine.

    Keys and values go through the codec; iteration order is the byte order
    of encoded keys. Writes are fsynced before returning when options.sync
    is set. Supports checkpoints (see kvfacade.checkpoint).
    """

    kind = BackendKind.PERSISTENT
    supports_checkpoint = True

    def __init__(self, codec: Codec | None = None) -> None:
        self._codec = codec or PickleCodec()

    async def start(self, name: str, options: StoreOptions) -> PersistentState:
        path = options.db_path(name)
        try:
            engine = await LSMEngine.open(path, sync=options.sync, **options.db_opts)
        except ValueError as exc:
            raise ConfigError(f"Invalid db_opts for store {name!r}: {exc}") from exc
        except (OSError, CorruptionError) as exc:
            raise EngineOpenError(f"Cannot open store {name!r} at {path}: {exc}") from exc

        logger.info("Started persistent store %s at %s", name, path)
        return PersistentState(name=name, options=options, path=path, engine=engine)

    async def stop(self, state: PersistentState) -> None:
        try:
            await state.engine.close()
        except (OSError, RuntimeError) as exc:
            raise EngineWriteError(f"Failed to flush store {state.name!r} on stop: {exc}") from exc
        logger.info("Stopped persistent store %s", state.name)

    async def destroy(self, state: PersistentState, name: str) -> None:
        if not state.engine.closed:
            await self.stop(state)

        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, LSMEngine.destroy, state.path)
        except OSError as exc:
            raise StorageIOError(f"Cannot remove store {name!r} at {state.path}: {exc}") from exc
        logger.info("Destroyed persistent store %s at %s", name, state.path)

    def _encode(self, obj: Any) -> bytes:
        try:
            return self._codec.encode(obj)
        except CodecError as exc:
            raise EngineWriteError(str(exc)) from exc

    def _encode_key(self, key: Any) -> bytes:
        try:
            return self._codec.encode_key(key)
        except CodecError as exc:
            raise EngineWriteError(str(exc)) from exc

    def _decode(self, data: bytes) -> Any:
        try:
            return self._codec.decode(data)
        except CodecError as exc:
            raise EngineReadError(str(exc)) from exc

    async def put(self, state: PersistentState, key: Any, value: Any) -> None:
        encoded_key, encoded_value = self._encode_key(key), self._encode(value)
        try:
            await state.engine.put(encoded_key, encoded_value)
        except OSError as exc:
            raise EngineWriteError(f"Write to store {state.name!r} failed: {exc}") from exc

    async def get(self, state: PersistentState, key: Any) -> Any:
        try:
            encoded_key = self._codec.encode_key(key)
        except CodecError:
            # A key the codec cannot encode can never have been stored
            return NotFound

        try:
            value = await state.engine.get(encoded_key)
        except (OSError, CorruptionError) as exc:
            raise EngineReadError(f"Read from store {state.name!r} failed: {exc}") from exc
        return NotFound if value is None else self._decode(value)

    async def delete(self, state: PersistentState, key: Any) -> None:
        encoded_key = self._encode_key(key)
        try:
            await state.engine.delete(encoded_key)
        except OSError as exc:
            raise EngineWriteError(f"Delete from store {state.name!r} failed: {exc}") from exc

    async def _entries(
        self, state: PersistentState, with_values: bool = True
    ) -> AsyncIterator[tuple[Any, Any]]:
        try:
            async for key, value in state.engine.scan():
                yield self._decode(key), self._decode(value) if with_values else None
        except (OSError, CorruptionError) as exc:
            raise EngineReadError(f"Scan of store {state.name!r} failed: {exc}") from exc

    async def fold(
        self, state: PersistentState, fun: Callable[[Any, Any, Any], Any], acc: Any
    ) -> Any:
        async with aclosing(self._entries(state)) as entries:
            async for key, value in entries:
                acc = fun(key, value, acc)
        return acc

    async def fold_keys(
        self, state: PersistentState, fun: Callable[[Any, Any], Any], acc: Any
    ) -> Any:
        async with aclosing(self._entries(state, with_values=False)) as entries:
            async for key, _ in entries:
                acc = fun(key, acc)
        return acc

    async def from_list(self, state: PersistentState, entries: Iterable[tuple[Any, Any]]) -> None:
        # Encode everything up front so a codec failure writes nothing
        ops = [(self._encode_key(key), self._encode(value)) for key, value in entries]
        try:
            await state.engine.write_batch(ops)
        except OSError as exc:
            raise EngineWriteError(f"Batch write to store {state.name!r} failed: {exc}") from exc

    async def status(self, state: PersistentState, prop: str | None = None) -> str | None:
        return state.engine.stats(prop or "lsm.stats")
