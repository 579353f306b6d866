"""
Flushing a frozen MemTable to an SSTable.
"""

import os

from kvfacade.models.memtable import MemTable
from kvfacade.models.sstable import SSTable
from kvfacade.models.wal import WAL


def flush_memtable(memtable: MemTable, wal: WAL, storage_dir: str, ss_id: str) -> SSTable:
    """
    Write memtable to sstables/<ss_id>.sst and drop the WAL that backed it.

    Tombstones are written too, since an older SSTable may still hold the
    keys they mask. The WAL is removed only once the SSTable is durable, so
    a crash before that point replays it on the next open.

    Raises:
        RuntimeError: If memtable is still accepting writes.
    """
    if not memtable.frozen:
        raise RuntimeError("Only a frozen MemTable can be flushed")

    file_path = os.path.join(storage_dir, "sstables", f"{ss_id}.sst")
    sstable = SSTable.create(id=ss_id, file_path=file_path, entries=iter(memtable))
    try:
        wal.destroy()
    except OSError:
        # The table is complete but the WAL will be flushed again; drop our handle
        sstable.close()
        raise
    return sstable
