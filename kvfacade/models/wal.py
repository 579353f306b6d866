"""
WAL - write-ahead log backing one MemTable.

Each WALRecord is stored as one frame, [length:4][payload][crc32:4], so a
batch of operations is committed or lost as a whole.
"""

import asyncio
import logging
import os
import zlib
from collections.abc import Iterator
from pathlib import Path
from typing import BinaryIO

from kvfacade.models.exceptions import WALCorruptionError
from kvfacade.models.wal_record import WALRecord

logger = logging.getLogger(__name__)


def _crc(payload: bytes) -> int:
    return zlib.crc32(payload) & 0xFFFFFFFF


def _frame(payload: bytes) -> bytes:
    return len(payload).to_bytes(4, "big") + payload + _crc(payload).to_bytes(4, "big")


def read_records(file_path: str) -> Iterator[WALRecord]:
    """
    Yield the committed records of the log at file_path, oldest first.

    A frame cut short at the end of the file was never acknowledged (the
    process died mid-append); it ends the log and is skipped with a warning.

    Raises:
        WALCorruptionError: If a complete frame fails its checksum.
    """
    if not os.path.exists(file_path):
        return

    with open(file_path, "rb") as f:
        while True:
            frame_offset = f.tell()
            header = f.read(4)
            if not header:
                return

            length = int.from_bytes(header, "big") if len(header) == 4 else -1
            payload = f.read(length) if length >= 0 else b""
            trailer = f.read(4)
            if length < 0 or len(payload) < length or len(trailer) < 4:
                logger.warning(
                    "Ignoring incomplete WAL record at offset %d in %s", frame_offset, file_path
                )
                return

            expected = int.from_bytes(trailer, "big")
            actual = _crc(payload)
            if expected != actual:
                raise WALCorruptionError(
                    expected=expected, actual=actual, entry_offset=frame_offset
                )
            yield WALRecord.from_bytes(payload)


class WAL:
    """
    Append-only log file for one MemTable.

    Opened for appending by the engine; read back with iter() during
    recovery. Deleted once its MemTable is safely in an SSTable.
    """

    def __init__(self, id: str, file_path: str) -> None:
        self.id = id
        self.file_path = file_path
        self._file: BinaryIO | None = None

    @property
    def closed(self) -> bool:
        return self._file is None

    def open(self) -> None:
        Path(self.file_path).parent.mkdir(parents=True, exist_ok=True)
        # Unbuffered: a failed append leaves nothing queued for a later write
        self._file = open(self.file_path, "ab", buffering=0)

    def _sync(self) -> None:
        # fdatasync where available (Linux), fsync elsewhere
        sync_data = getattr(os, "fdatasync", os.fsync)
        sync_data(self._file.fileno())

    async def append(self, record: WALRecord, sync: bool = True) -> None:
        """
        Append one record.

        The frame is written from the event loop and the sync runs in the
        thread pool. On any I/O error the file is cut back to its previous
        length, so a failed record never reaches recovery.

        Args:
            record: The record to append.
            sync: Wait until the record is on stable storage.

        Raises:
            RuntimeError: If the WAL is not open.
            OSError: If the write or sync fails.
        """
        if self._file is None:
            raise RuntimeError(f"WAL {self.id} is not open")

        pending = memoryview(_frame(bytes(record)))
        start = self._file.tell()
        try:
            while pending:
                written = self._file.write(pending)
                pending = pending[written:]
            if sync:
                loop = asyncio.get_running_loop()
                await loop.run_in_executor(None, self._sync)
        except OSError:
            self._rollback(start)
            raise

    def _rollback(self, size: int) -> None:
        try:
            self._file.truncate(size)
            self._file.seek(size)
        except OSError:
            logger.critical("Could not roll back partial WAL write in %s", self.file_path)

    def close(self) -> None:
        """Sync and close; safe to call more than once."""
        if self._file is None:
            return
        try:
            self._sync()
        finally:
            self._file.close()
            self._file = None

    def destroy(self) -> None:
        """Close and delete the log file."""
        self.close()
        if os.path.exists(self.file_path):
            os.remove(self.file_path)

    def __enter__(self) -> "WAL":
        if self._file is None:
            self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def __iter__(self) -> Iterator[WALRecord]:
        return read_records(self.file_path)
