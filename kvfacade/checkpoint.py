"""
CheckpointManager - point-in-time archives of persistent stores.

The LSM engine has no live snapshot, so a checkpoint stops the store, archives
its directory while the files are quiescent, and starts it again. The store
is unavailable for the duration of the archiving; operations issued in that
window fail with EngineClosedError.
"""

import asyncio
import logging
import os
import shutil
import tarfile
from typing import TYPE_CHECKING, Any

from kvfacade.interfaces.backend import Backend
from kvfacade.models.exceptions import ConfigError, StorageIOError
from kvfacade.models.options import StoreOptions

if TYPE_CHECKING:
    from kvfacade.store import Store

logger = logging.getLogger(__name__)

ARCHIVE_SUFFIX = ".tar.gz"


def checkpoint_name(name: str) -> str:
    """Archive file name for the store called name."""
    return f"{name}{ARCHIVE_SUFFIX}"


class CheckpointManager:
    """Creates and restores checkpoint archives for one backend."""

    def __init__(self, backend: Backend) -> None:
        if not backend.supports_checkpoint:
            raise ConfigError(f"The {backend.kind.value} backend does not support checkpoints")
        self._backend = backend

    async def checkpoint(self, store: "Store", destination: str | os.PathLike) -> str:
        """
        Archive the store into destination/<name>.tar.gz.

        Steps: stop the backend, archive the store directory, start the
        backend again with the same name and options. The store is restarted
        even when stopping or archiving fails.

        Returns:
            Path of the written archive.

        Raises:
            StorageIOError: If the archive cannot be written.
            EngineWriteError: If the backend fails to stop cleanly.
            EngineOpenError: If the store cannot be restarted; it stays closed.
        """
        name, options = store.name, store.options
        source_dir = options.db_path(name)
        archive_path = os.path.join(os.path.abspath(destination), checkpoint_name(name))

        state = store._detach()
        loop = asyncio.get_running_loop()
        try:
            await self._backend.stop(state)
            await loop.run_in_executor(None, _write_archive, source_dir, name, archive_path)
        finally:
            store._attach(await self._backend.start(name, options))

        logger.info("Checkpoint of store %s written to %s", name, archive_path)
        return archive_path

    async def from_checkpoint(
        self,
        name: str,
        options: StoreOptions,
        source: str | os.PathLike,
        source_name: str | None = None,
    ) -> Any:
        """
        Replace the on-disk state of name with a checkpoint and start it.

        Any existing directory for name is removed first; this cannot be
        undone. A failed extraction leaves a partial directory that must not
        be used.

        Args:
            name: Store to materialize.
            options: Options to start it with.
            source: Directory holding the archive.
            source_name: Store the archive was taken from, if not name.

        Returns:
            Backend state of the started store.

        Raises:
            StorageIOError: If the archive is missing or extraction fails.
        """
        source_name = source_name or name
        archive_path = os.path.join(os.path.abspath(source), checkpoint_name(source_name))
        target_dir = options.db_path(name)

        loop = asyncio.get_running_loop()
        await loop.run_in_executor(
            None, _restore_archive, archive_path, source_name, name, target_dir
        )
        logger.info("Restored store %s from %s", name, archive_path)
        return await self._backend.start(name, options)


def _write_archive(source_dir: str, arcname: str, archive_path: str) -> None:
    """Write the archive under a temp name and rename it, so it is complete or absent."""
    temp_path = f"{archive_path}.tmp"
    try:
        os.makedirs(os.path.dirname(archive_path), exist_ok=True)
        with tarfile.open(temp_path, "w:gz") as tar:
            tar.add(source_dir, arcname=arcname)
        os.replace(temp_path, archive_path)
    except (OSError, tarfile.TarError) as exc:
        if os.path.exists(temp_path):
            os.remove(temp_path)
        raise StorageIOError(f"Cannot write checkpoint {archive_path}: {exc}") from exc


def _restore_archive(archive_path: str, source_name: str, name: str, target_dir: str) -> None:
    if not os.path.isfile(archive_path):
        raise StorageIOError(f"Checkpoint archive not found: {archive_path}")

    try:
        if os.path.exists(target_dir):
            shutil.rmtree(target_dir)
        parent = os.path.dirname(target_dir)
        os.makedirs(parent, exist_ok=True)

        with tarfile.open(archive_path, "r:gz") as tar:
            members = [_rename_root(member, source_name, name) for member in tar.getmembers()]
            tar.extractall(parent, members=members, filter="data")
    except (OSError, tarfile.TarError) as exc:
        raise StorageIOError(f"Cannot restore checkpoint {archive_path}: {exc}") from exc


def _rename_root(member: tarfile.TarInfo, source_name: str, name: str) -> tarfile.TarInfo:
    """Move a member from under source_name/ to under name/."""
    head, sep, rest = member.name.partition("/")
    if head != source_name:
        raise StorageIOError(f"Unexpected archive member {member.name!r}")
    member.name = name + sep + rest
    return member
