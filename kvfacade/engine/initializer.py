"""
EngineInitializer - Handle startup and crash recovery.
"""

import fcntl
import logging
import os
import re
from pathlib import Path
from typing import TextIO

from kvfacade.models.memtable import MemTable
from kvfacade.models.sortedcontainers import SortedArray
from kvfacade.models.sstable import SSTable
from kvfacade.models.wal import WAL

logger = logging.getLogger(__name__)

_WAL_PATTERN = re.compile(r"^wal_(\d+)\.wal$")
_SSTABLE_PATTERN = re.compile(r"^(\d+)\.sst$")


class EngineInitializer:
    """
    Handles engine initialization and crash recovery.

    Responsibilities:
    - Take the exclusive directory lock
    - Remove temp files left by interrupted flushes and compactions
    - Replay WAL files into immutable MemTables
    - Load SSTables and track the next WAL and SSTable ids
    """

    LOCK_FILE = "LOCK"

    def __init__(self, storage_dir: str) -> None:
        self.storage_dir = storage_dir
        self._wal_dir = os.path.join(storage_dir, "wal")
        self._sstable_dir = os.path.join(storage_dir, "sstables")

    def exists(self) -> bool:
        """Whether an engine has been created in storage_dir before."""
        return os.path.isdir(self._wal_dir) or os.path.isdir(self._sstable_dir)

    def acquire_lock(self) -> TextIO:
        """
        Lock the directory against a second open engine.

        Returns:
            The open lock file; closing it releases the lock.

        Raises:
            BlockingIOError: If another engine holds the lock.
        """
        lock_file = open(os.path.join(self.storage_dir, self.LOCK_FILE), "a")
        try:
            fcntl.flock(lock_file.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        except OSError as exc:
            lock_file.close()
            raise BlockingIOError(f"Storage dir already in use: {self.storage_dir}") from exc
        return lock_file

    def _list(self, directory: str, pattern: re.Pattern) -> list[tuple[int, str]]:
        """Return (id, path) pairs of files matching pattern, sorted by id."""
        if not os.path.exists(directory):
            return []

        found = []
        for filename in os.listdir(directory):
            match = pattern.match(filename)
            if match:
                found.append((int(match.group(1)), os.path.join(directory, filename)))
        return sorted(found)

    def _cleanup_temp_files(self) -> None:
        """
        Remove orphaned .tmp files from interrupted operations.

        For flushes, the data is safe in the WAL and will be re-flushed.
        For compactions, the original SSTables are still intact.
        """
        if not os.path.exists(self._sstable_dir):
            return

        for filename in os.listdir(self._sstable_dir):
            if filename.endswith(".tmp"):
                logger.warning("Removing orphaned temp file %s", filename)
                os.remove(os.path.join(self._sstable_dir, filename))

    def _replay(self, wal: WAL) -> MemTable:
        """Rebuild a MemTable by applying every complete WAL record in order."""
        memtable = MemTable(SortedArray())
        for record in wal:
            memtable.apply(record.ops)
        memtable.freeze()
        return memtable

    def recover(self) -> tuple[list[tuple[MemTable, WAL]], list[SSTable], int, int]:
        """
        Recover state from disk.

        Returns:
            Tuple of:
            - (MemTable, WAL) pairs recovered from WAL files, oldest first
            - SSTable instances, oldest first
            - Next SSTable id to use
            - Next WAL id to use

        Raises:
            WALCorruptionError: If a WAL record fails its checksum.
            SSTableCorruptionError: If an SSTable cannot be parsed.
        """
        self._cleanup_temp_files()

        memtables_and_wals: list[tuple[MemTable, WAL]] = []
        wal_files = self._list(self._wal_dir, _WAL_PATTERN)
        for wal_id, wal_path in wal_files:
            wal = WAL(id=str(wal_id), file_path=wal_path)
            memtables_and_wals.append((self._replay(wal), wal))

        sstables: list[SSTable] = []
        sstable_files = self._list(self._sstable_dir, _SSTABLE_PATTERN)
        try:
            for ss_id, sstable_path in sstable_files:
                sstable = SSTable(id=str(ss_id), file_path=sstable_path)
                sstable.open()
                sstables.append(sstable)
        except BaseException:
            for sstable in sstables:
                sstable.close()
            raise

        next_ss_id = sstable_files[-1][0] + 1 if sstable_files else 0
        next_wal_id = wal_files[-1][0] + 1 if wal_files else 0

        if memtables_and_wals:
            logger.info(
                "Recovered %d unflushed WAL(s) in %s", len(memtables_and_wals), self.storage_dir
            )
        return memtables_and_wals, sstables, next_ss_id, next_wal_id

    def __enter__(self) -> "EngineInitializer":
        Path(self._wal_dir).mkdir(parents=True, exist_ok=True)
        Path(self._sstable_dir).mkdir(parents=True, exist_ok=True)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        pass
