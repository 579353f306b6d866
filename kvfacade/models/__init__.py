"""
Data models for the store facade and the LSM engine.
"""

from kvfacade.models.codec import PickleCodec
from kvfacade.models.memtable import MemTable
from kvfacade.models.options import BackendKind, StoreOptions
from kvfacade.models.sstable import SSTable
from kvfacade.models.value import Value, ValueType
from kvfacade.models.wal import WAL
from kvfacade.models.wal_record import WALRecord

__all__ = [
    "BackendKind",
    "MemTable",
    "PickleCodec",
    "SSTable",
    "StoreOptions",
    "Value",
    "ValueType",
    "WAL",
    "WALRecord",
]
