"""
SSTable - immutable sorted table on disk.

File layout:
- Data: one [key_len:4][key][value_len:4][value] entry per key, in key order
- Index: [count:4] followed by [key_len:4][key][offset:8] per entry
- Footer: [index_offset:8]
"""

import asyncio
import bisect
import os
from collections.abc import Iterable, Iterator
from pathlib import Path
from typing import BinaryIO

from kvfacade.models.exceptions import SSTableCorruptionError
from kvfacade.models.value import Value

FOOTER_SIZE = 8


def _u32(value: int) -> bytes:
    return value.to_bytes(4, "big")


def _u64(value: int) -> bytes:
    return value.to_bytes(8, "big")


class SSTable:
    """
    Read side of one SSTable file.

    The whole index is held in memory as two parallel lists, so a point
    lookup is a bisect plus one positioned read. Reads use os.pread and never
    move the file offset, which lets thread pool workers share one handle.
    """

    def __init__(self, id: str, file_path: str) -> None:
        self.id = id
        self.file_path = file_path
        self._file: BinaryIO | None = None
        self._keys: list[bytes] = []
        self._offsets: list[int] = []
        self._file_size = 0

    def open(self) -> None:
        """
        Open the file and load its index.

        Raises:
            FileNotFoundError: If the file is missing.
            SSTableCorruptionError: If the footer or index is malformed.
        """
        self._file = open(self.file_path, "rb")
        try:
            self._load_index()
        except BaseException:
            self.close()
            raise

    def close(self) -> None:
        if self._file is not None:
            self._file.close()
            self._file = None

    @property
    def entry_count(self) -> int:
        return len(self._keys)

    @property
    def file_size(self) -> int:
        return self._file_size

    def _corrupt(self, reason: str) -> SSTableCorruptionError:
        return SSTableCorruptionError(self.file_path, reason)

    def _load_index(self) -> None:
        fd = self._file.fileno()
        self._file_size = os.fstat(fd).st_size
        index_end = self._file_size - FOOTER_SIZE
        if index_end < 4:
            raise self._corrupt("file too short for footer")

        index_offset = int.from_bytes(os.pread(fd, FOOTER_SIZE, index_end), "big")
        if index_offset > index_end - 4:
            raise self._corrupt("index offset out of range")

        block = memoryview(os.pread(fd, index_end - index_offset, index_offset))
        count = int.from_bytes(block[:4], "big")
        pos = 4
        keys: list[bytes] = []
        offsets: list[int] = []
        for _ in range(count):
            if pos + 4 > len(block):
                raise self._corrupt("truncated index")
            key_len = int.from_bytes(block[pos : pos + 4], "big")
            pos += 4
            if pos + key_len + 8 > len(block):
                raise self._corrupt("truncated index")
            key = bytes(block[pos : pos + key_len])
            offset = int.from_bytes(block[pos + key_len : pos + key_len + 8], "big")
            pos += key_len + 8
            if offset >= index_offset:
                raise self._corrupt("entry offset out of range")
            keys.append(key)
            offsets.append(offset)

        self._keys = keys
        self._offsets = offsets

    def _read_entry_at(self, offset: int) -> tuple[bytes, Value]:
        if self._file is None:
            raise RuntimeError(f"SSTable {self.id} is closed")
        fd = self._file.fileno()

        key_len = int.from_bytes(os.pread(fd, 4, offset), "big")
        key = os.pread(fd, key_len, offset + 4)
        value_pos = offset + 4 + key_len
        value_len = int.from_bytes(os.pread(fd, 4, value_pos), "big")
        value_bytes = os.pread(fd, value_len, value_pos + 4)
        if len(key) < key_len or value_len == 0 or len(value_bytes) < value_len:
            raise self._corrupt(f"short entry at offset {offset}")
        return key, Value.from_bytes(value_bytes)

    def _get_sync(self, key: bytes) -> Value | None:
        idx = bisect.bisect_left(self._keys, key)
        if idx == len(self._keys) or self._keys[idx] != key:
            return None
        entry_key, value = self._read_entry_at(self._offsets[idx])
        if entry_key != key:
            raise self._corrupt(f"index points at the wrong entry for offset {self._offsets[idx]}")
        return value

    async def get(self, key: bytes) -> Value | None:
        """
        Look up key, reading from disk in the thread pool.

        Returns:
            The Value (possibly a tombstone), or None if the table lacks key.
        """
        idx = bisect.bisect_left(self._keys, key)
        if idx == len(self._keys) or self._keys[idx] != key:
            return None
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._get_sync, key)

    def iterator(
        self, start: bytes | None = None, end: bytes | None = None
    ) -> Iterator[tuple[bytes, Value]]:
        """Entries with start <= key < end in key order, read lazily."""
        lo = 0 if start is None else bisect.bisect_left(self._keys, start)
        hi = len(self._keys) if end is None else bisect.bisect_left(self._keys, end)
        for idx in range(lo, hi):
            yield self._read_entry_at(self._offsets[idx])

    def __iter__(self) -> Iterator[tuple[bytes, Value]]:
        return self.iterator()

    def __enter__(self) -> "SSTable":
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    @staticmethod
    def create(id: str, file_path: str, entries: Iterable[tuple[bytes, Value]]) -> "SSTable":
        """
        Write entries, already in ascending key order, to a new SSTable.

        The file is built under a .tmp name, fsynced and renamed, so the
        final name only ever refers to a complete table.

        Returns:
            The new table, opened.
        """
        Path(file_path).parent.mkdir(parents=True, exist_ok=True)
        temp_path = f"{file_path}.tmp"

        index: list[bytes] = []
        with open(temp_path, "wb") as f:
            for key, value in entries:
                offset = f.tell()
                value_bytes = bytes(value)
                f.write(_u32(len(key)) + key + _u32(len(value_bytes)) + value_bytes)
                index.append(_u32(len(key)) + key + _u64(offset))

            index_offset = f.tell()
            f.write(_u32(len(index)))
            f.writelines(index)
            f.write(_u64(index_offset))
            f.flush()
            os.fsync(f.fileno())

        os.replace(temp_path, file_path)

        sstable = SSTable(id, file_path)
        sstable.open()
        return sstable
