"""
LSMEngine - Persistent log-structured-merge key-value engine.
"""

import asyncio
import logging
import os
import shutil
from collections.abc import AsyncIterator, Iterator
from contextlib import contextmanager
from itertools import islice
from pathlib import Path
from typing import TextIO

from kvfacade.engine.compactor import SSTableCompactor
from kvfacade.engine.initializer import EngineInitializer
from kvfacade.engine.flush import flush_memtable
from kvfacade.engine.merge_iterator import live_entries, merge_newest
from kvfacade.models.exceptions import EngineClosedError
from kvfacade.models.memtable import MemTable
from kvfacade.models.sortedcontainers import SortedArray
from kvfacade.models.sstable import SSTable
from kvfacade.models.value import Value
from kvfacade.models.wal import WAL
from kvfacade.models.wal_record import WALRecord

logger = logging.getLogger(__name__)


class LSMEngine:
    """
    LSM-Tree based key-value engine over bytes.

    Provides:
    - put(key, value) / delete(key): one WAL record each
    - write_batch(ops): many operations in one WAL record, all-or-nothing
    - get(key): newest value or None
    - scan() / scan_keys(): ordered, weakly consistent iteration
    - stats(prop): engine statistics for status queries

    Architecture:
    - Writes go to the WAL (durability) then the active MemTable
    - When the MemTable exceeds its threshold it is frozen and flushed to an SSTable
    - When enough SSTables accumulate they are compacted into one
    - Reads check the active MemTable, then frozen ones, then SSTables newest first
    """

    DEFAULT_MEMTABLE_THRESHOLD = 4 * 1024 * 1024
    DEFAULT_COMPACTION_TRIGGER = 8

    # Entries pulled from disk per executor hop during scans
    SCAN_CHUNK = 256

    def __init__(
        self,
        storage_dir: str,
        *,
        sync: bool = True,
        create_if_missing: bool = True,
        error_if_exists: bool = False,
        memtable_threshold: int = DEFAULT_MEMTABLE_THRESHOLD,
        compaction_trigger: int = DEFAULT_COMPACTION_TRIGGER,
    ) -> None:
        """
        Configure the engine. Nothing touches disk until open().

        Args:
            storage_dir: Directory for persistent storage.
            sync: fsync every WAL record before acknowledging the write.
            create_if_missing: Create the store when storage_dir holds none.
            error_if_exists: Refuse to open a store that already exists.
            memtable_threshold: Size threshold for MemTable rotation in bytes.
            compaction_trigger: SSTable count that triggers a full compaction.
        """
        if not storage_dir or not str(storage_dir).strip():
            raise ValueError("storage_dir cannot be empty")
        if not isinstance(memtable_threshold, int) or memtable_threshold <= 0:
            raise ValueError(f"memtable_threshold must be positive, got {memtable_threshold!r}")
        if memtable_threshold > 1024 * 1024 * 1024:
            raise ValueError(
                f"memtable_threshold too large: {memtable_threshold} bytes. "
                f"Maximum 1GB to avoid OOM."
            )
        if not isinstance(compaction_trigger, int) or compaction_trigger < 2:
            raise ValueError(f"compaction_trigger must be >= 2, got {compaction_trigger!r}")

        self._storage_dir = os.path.abspath(storage_dir)
        self._sync = bool(sync)
        self._create_if_missing = bool(create_if_missing)
        self._error_if_exists = bool(error_if_exists)
        self._memtable_threshold = memtable_threshold
        self._compaction_trigger = compaction_trigger

        # Active MemTable and WAL (valid while open)
        self._memtable: MemTable | None = None
        self._wal: WAL | None = None

        # Frozen MemTables being flushed (newest first)
        self._immutable_memtables: list[MemTable] = []
        # The same MemTables with their WALs, oldest first, in flush order
        self._unflushed: list[tuple[MemTable, WAL]] = []

        # On-disk SSTables (newest first for reads)
        self._sstables: list[SSTable] = []

        # Compacted-away SSTables, unlinked but kept open until _readers drops to 0
        self._retired: list[SSTable] = []
        self._readers: int = 0

        self._ss_id_seq: int = 0
        self._wal_id_seq: int = 0
        self._record_seq: int = 0
        self._compactions: int = 0

        self._write_lock = asyncio.Lock()
        self._lock_file: TextIO | None = None
        self._closed = True

    @classmethod
    async def open(cls, storage_dir: str, **options) -> "LSMEngine":
        """
        Create and open an engine, recovering any state found in storage_dir.

        Raises:
            ValueError: For invalid tuning options.
            FileNotFoundError: No store exists and create_if_missing is off.
            FileExistsError: A store exists and error_if_exists is on.
            BlockingIOError: Another engine holds the directory lock.
            CorruptionError: A WAL or SSTable fails validation.
        """
        engine = cls(storage_dir, **options)
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, engine._open_sync)
        return engine

    @property
    def storage_dir(self) -> str:
        return self._storage_dir

    @property
    def closed(self) -> bool:
        return self._closed

    def _open_sync(self) -> None:
        initializer = EngineInitializer(self._storage_dir)
        if initializer.exists():
            if self._error_if_exists:
                raise FileExistsError(f"Store already exists: {self._storage_dir}")
        elif not self._create_if_missing:
            raise FileNotFoundError(f"No store at {self._storage_dir}")

        Path(self._storage_dir).mkdir(parents=True, exist_ok=True)
        self._lock_file = initializer.acquire_lock()
        try:
            with initializer:
                recovered, sstables, self._ss_id_seq, self._wal_id_seq = initializer.recover()
            self._sstables = list(reversed(sstables))

            # Fold recovered WALs into SSTables before accepting new writes
            for memtable, wal in recovered:
                self._sstables.insert(0, self._flush_sync(memtable, wal, self._next_ss_id()))

            self._create_new_memtable()
        except BaseException:
            self._close_tables()
            self._release_lock()
            raise

        self._closed = False
        logger.debug(
            "Opened LSM engine at %s with %d SSTable(s)", self._storage_dir, len(self._sstables)
        )

    def _create_new_memtable(self) -> None:
        wal_path = os.path.join(self._storage_dir, "wal", f"wal_{self._wal_id_seq}.wal")
        self._wal = WAL(id=str(self._wal_id_seq), file_path=wal_path)
        self._wal_id_seq += 1
        self._wal.open()

        self._memtable = MemTable(SortedArray())

    def _next_ss_id(self) -> str:
        ss_id = str(self._ss_id_seq)
        self._ss_id_seq += 1
        return ss_id

    def _check_open(self) -> None:
        if self._closed:
            raise EngineClosedError(f"Engine at {self._storage_dir} is closed")

    async def put(self, key: bytes, value: bytes) -> None:
        """Insert or update a key-value pair."""
        await self._apply([(key, Value.regular(value))])

    async def delete(self, key: bytes) -> None:
        """Delete a key by writing a tombstone. Deleting an absent key is fine."""
        await self._apply([(key, Value.tombstone())])

    async def write_batch(self, ops: list[tuple[bytes, bytes | None]]) -> None:
        """
        Apply several puts (value bytes) and deletes (None) atomically.

        The whole batch is one WAL record, so recovery sees all of it or none.
        Later operations on the same key win.
        """
        await self._apply(
            [
                (key, Value.tombstone() if value is None else Value.regular(value))
                for key, value in ops
            ]
        )

    async def _apply(self, ops: list[tuple[bytes, Value]]) -> None:
        async with self._write_lock:
            self._check_open()
            if not ops:
                return

            # WAL first; the MemTable is untouched if the append fails
            await self._wal.append(WALRecord(seq=self._record_seq, ops=ops), sync=self._sync)
            self._record_seq += 1

            self._memtable.apply(ops)

            if self._memtable.size_bytes() >= self._memtable_threshold:
                await self._rotate_memtable()

    async def get(self, key: bytes) -> bytes | None:
        """
        Retrieve the newest value for key.

        Returns:
            The value bytes, or None if the key is absent or deleted.
        """
        self._check_open()

        value = self._memtable.get(key)
        if value is not None:
            return None if value.is_tombstone() else value.data

        # Snapshot; flushes and compactions swap these lists between awaits
        immutable_snapshot = list(self._immutable_memtables)
        sstables_snapshot = list(self._sstables)

        for memtable in immutable_snapshot:
            value = memtable.get(key)
            if value is not None:
                return None if value.is_tombstone() else value.data

        with self._reading():
            for sstable in sstables_snapshot:
                value = await sstable.get(key)
                if value is not None:
                    return None if value.is_tombstone() else value.data

        return None

    @contextmanager
    def _reading(self) -> Iterator[None]:
        """Keep SSTables retired meanwhile open until the read is done."""
        self._readers += 1
        try:
            yield
        finally:
            self._readers -= 1
            if self._readers == 0:
                self._close_retired()

    def _close_retired(self) -> None:
        for sstable in self._retired:
            sstable.close()
        self._retired.clear()

    def _merged_sources(self) -> list[Iterator[tuple[bytes, Value]]]:
        """Sorted sources ordered newest first, captured at call time."""
        sources: list[Iterator[tuple[bytes, Value]]] = [iter(self._memtable.snapshot())]
        sources.extend(iter(memtable.snapshot()) for memtable in self._immutable_memtables)
        sources.extend(sstable.iterator() for sstable in self._sstables)
        return sources

    async def scan(self) -> AsyncIterator[tuple[bytes, bytes]]:
        """
        Yield every live (key, value) in ascending key order.

        Weakly consistent: in-memory data is copied when the scan starts and
        the SSTables in use are fixed then, so writes that land during the
        scan are not observed. Disk reads run in the thread pool in chunks.
        """
        self._check_open()
        loop = asyncio.get_running_loop()

        with self._reading():
            # Lazy; every disk read happens inside _take on the thread pool
            merged = live_entries(merge_newest(self._merged_sources()))
            while True:
                chunk = await loop.run_in_executor(None, _take, merged, self.SCAN_CHUNK)
                if not chunk:
                    return
                for key, value in chunk:
                    yield key, value.data

    async def scan_keys(self) -> AsyncIterator[bytes]:
        """Yield every live key in ascending order (see scan)."""
        async for key, _ in self.scan():
            yield key

    async def _rotate_memtable(self) -> None:
        """
        Freeze the active MemTable, start a new one and flush the frozen one.

        A failed flush is logged and the frozen MemTable keeps serving reads;
        its WAL stays on disk and it is retried on the next rotation or
        replayed on the next open. The failure is only raised while closing,
        since the write that triggered the rotation is already durable.
        """
        memtable, wal = self._memtable, self._wal
        memtable.freeze()
        wal.close()
        self._immutable_memtables.insert(0, memtable)
        self._unflushed.append((memtable, wal))

        if not self._closed:
            self._create_new_memtable()

        await self._flush_unflushed()

    async def _flush_unflushed(self) -> None:
        """
        Flush frozen MemTables oldest first, stopping at the first failure.

        SSTables then always hold a prefix of the write history and every WAL
        left on disk is newer than all of them, which recovery relies on.
        """
        loop = asyncio.get_running_loop()
        while self._unflushed:
            memtable, wal = self._unflushed[0]
            ss_id = self._next_ss_id()
            try:
                sstable = await loop.run_in_executor(None, self._flush_sync, memtable, wal, ss_id)
            except Exception:
                logger.critical(
                    "Flush of WAL %s to SSTable %s failed", wal.id, ss_id, exc_info=True
                )
                if self._closed:
                    raise
                return

            self._unflushed.pop(0)
            self._sstables.insert(0, sstable)
            self._immutable_memtables.remove(memtable)
            logger.debug(
                "Flushed MemTable to SSTable %s (%d entries)", ss_id, sstable.entry_count
            )
            await self._maybe_compact()

    def _flush_sync(self, memtable: MemTable, wal: WAL, ss_id: str) -> SSTable:
        """Flush a MemTable to an SSTable (runs in thread pool)."""
        return flush_memtable(memtable, wal, self._storage_dir, ss_id)

    async def _maybe_compact(self) -> None:
        if len(self._sstables) < self._compaction_trigger:
            return

        inputs = list(self._sstables)
        compactor = SSTableCompactor(inputs, self._storage_dir)
        ss_id = self._next_ss_id()
        loop = asyncio.get_running_loop()
        try:
            compacted = await loop.run_in_executor(None, compactor.compact, ss_id)
        except Exception:
            # Inputs are untouched; leave them in place and try again next flush
            logger.error("Compaction into SSTable %s failed", ss_id, exc_info=True)
            return

        self._sstables = [compacted]
        self._retired.extend(inputs)
        self._compactions += 1
        await loop.run_in_executor(None, compactor.retire_inputs)
        if self._readers == 0:
            self._close_retired()
        logger.debug(
            "Compacted %d SSTables into %s (%d entries)",
            len(inputs),
            ss_id,
            compacted.entry_count,
        )

    def stats(self, prop: str = "lsm.stats") -> str | None:
        """
        Report engine statistics.

        Properties:
            lsm.stats: human readable summary table
            lsm.num-sstables, lsm.memtable-bytes, lsm.sstable-bytes,
            lsm.compactions: single numbers as strings

        Returns:
            The property value, or None for an unknown property.
        """
        self._check_open()
        sstable_bytes = sum(sstable.file_size for sstable in self._sstables)

        if prop == "lsm.num-sstables":
            return str(len(self._sstables))
        if prop == "lsm.memtable-bytes":
            return str(self._memtable.size_bytes())
        if prop == "lsm.sstable-bytes":
            return str(sstable_bytes)
        if prop == "lsm.compactions":
            return str(self._compactions)
        if prop != "lsm.stats":
            return None

        lines = [
            f"MemTable: {len(self._memtable)} entries, {self._memtable.size_bytes()} bytes",
            f"Frozen MemTables: {len(self._immutable_memtables)}",
            f"Compactions: {self._compactions}",
            f"SSTables: {len(self._sstables)} ({sstable_bytes} bytes)",
            "  id        entries       bytes",
            "----------------------------------",
        ]
        for sstable in self._sstables:
            lines.append(f"  {sstable.id:<8}{sstable.entry_count:>9}{sstable.file_size:>12}")
        return "\n".join(lines)

    async def close(self) -> None:
        """Flush the active MemTable, close every file and release the lock."""
        async with self._write_lock:
            if self._closed:
                return
            self._closed = True

            try:
                if len(self._memtable) > 0:
                    await self._rotate_memtable()
                else:
                    self._wal.destroy()
            finally:
                self._close_tables()
                self._release_lock()
        logger.debug("Closed LSM engine at %s", self._storage_dir)

    def _close_tables(self) -> None:
        if self._wal is not None:
            self._wal.close()
        for sstable in self._sstables:
            sstable.close()
        self._close_retired()

    def _release_lock(self) -> None:
        if self._lock_file is not None:
            self._lock_file.close()
            self._lock_file = None

    @staticmethod
    def destroy(storage_dir: str) -> None:
        """Remove every file of the engine at storage_dir. The engine must be closed."""
        if os.path.exists(storage_dir):
            shutil.rmtree(storage_dir)

    async def __aenter__(self) -> "LSMEngine":
        if self._closed:
            loop = asyncio.get_running_loop()
            await loop.run_in_executor(None, self._open_sync)
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()


def _take(iterator: Iterator, count: int) -> list:
    return list(islice(iterator, count))
