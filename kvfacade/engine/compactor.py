"""
SSTableCompactor - Compact every SSTable of an engine into one.
"""

import os

from kvfacade.engine.merge_iterator import live_entries, merge_newest
from kvfacade.models.sstable import SSTable


class SSTableCompactor:
    """
    Compacts the full set of SSTables into a single SSTable.

    - Keys are deduplicated, the newest value wins
    - Tombstones are dropped, which is only sound because every table
      takes part: no older table is left for them to mask

    Runs in a thread pool and does not touch engine state; the caller swaps
    the result in and retires the inputs.
    """

    def __init__(self, sstables: list[SSTable], storage_dir: str) -> None:
        """
        Args:
            sstables: All SSTables of the engine, ordered newest to oldest.
            storage_dir: Root directory of the engine.
        """
        self._sstables = sstables
        self._storage_dir = storage_dir

    def compact(self, new_ss_id: str) -> SSTable:
        """Merge the inputs into a new SSTable and return it opened."""
        file_path = os.path.join(self._storage_dir, "sstables", f"{new_ss_id}.sst")
        merged = merge_newest([sstable.iterator() for sstable in self._sstables])
        return SSTable.create(id=new_ss_id, file_path=file_path, entries=live_entries(merged))

    def retire_inputs(self) -> None:
        """
        Unlink the input files, oldest first.

        Deleting oldest first means a crash part way through only ever leaves
        a newer suffix of the inputs, whose tombstones still mask correctly.
        Open handles stay readable, so in-flight scans finish undisturbed.
        """
        for sstable in reversed(self._sstables):
            if os.path.exists(sstable.file_path):
                os.remove(sstable.file_path)
