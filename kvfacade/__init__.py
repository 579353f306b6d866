"""
Key-value store facade over interchangeable storage engines.

A Store exposes one operation contract on either engine:
- put / get / delete, with NotFound for absent keys
- update / update_value: read-modify-write through a function
- fold / fold_keys / to_list / keys: full-store traversal
- from_list: single-batch import
- checkpoint / from_checkpoint: archives of persistent stores
- status: engine statistics

Backends:
- "volatile": an in-process table
- "persistent": the LSM engine in kvfacade.engine
"""

from kvfacade.checkpoint import CheckpointManager, checkpoint_name
from kvfacade.interfaces.backend import Backend, NotFound
from kvfacade.models.exceptions import (
    CodecError,
    ConfigError,
    EngineClosedError,
    EngineOpenError,
    EngineReadError,
    EngineWriteError,
    StorageIOError,
    StoreError,
    StoreNotRegistered,
)
from kvfacade.models.options import BackendKind, StoreOptions
from kvfacade.registry import Registry
from kvfacade.store import Store

__all__ = [
    "Backend",
    "BackendKind",
    "CheckpointManager",
    "CodecError",
    "ConfigError",
    "EngineClosedError",
    "EngineOpenError",
    "EngineReadError",
    "EngineWriteError",
    "NotFound",
    "Registry",
    "StorageIOError",
    "Store",
    "StoreError",
    "StoreNotRegistered",
    "StoreOptions",
    "checkpoint_name",
]
