"""
Store options and backend selection.
"""

import dataclasses
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from kvfacade.models.exceptions import ConfigError


class BackendKind(str, Enum):
    """Storage engine a store runs on."""

    VOLATILE = "volatile"
    PERSISTENT = "persistent"

    @classmethod
    def parse(cls, value: "BackendKind | str") -> "BackendKind":
        try:
            return cls(value)
        except ValueError as exc:
            choices = ", ".join(kind.value for kind in cls)
            raise ConfigError(f"Unknown backend {value!r}, expected one of: {choices}") from exc


DEFAULT_DB_OPTS: dict[str, Any] = {"create_if_missing": True}

# Engine tuning keys accepted in db_opts
ENGINE_OPTS = frozenset(
    {"create_if_missing", "error_if_exists", "memtable_threshold", "compaction_trigger"}
)


@dataclass
class StoreOptions:
    """
    Configuration bag for a store.

    Attributes:
        backend: Which adapter the store runs on.
        db_dir: Parent directory of the store's on-disk directory.
            None means the current working directory.
        db_opts: Engine tuning passed to the persistent engine.
        sync: Whether persistent writes fsync before acknowledging.
        serialize_updates: Guard update/update_value with a per-key lock.
            Off by default, which keeps read-modify-write updates racy.
    """

    backend: BackendKind = BackendKind.PERSISTENT
    db_dir: str | None = None
    db_opts: dict[str, Any] = field(default_factory=lambda: dict(DEFAULT_DB_OPTS))
    sync: bool = True
    serialize_updates: bool = False

    def __post_init__(self) -> None:
        self.backend = BackendKind.parse(self.backend)

        if self.db_dir is not None:
            if not isinstance(self.db_dir, (str, os.PathLike)):
                raise ConfigError(f"db_dir must be a path, got {type(self.db_dir).__name__}")
            self.db_dir = os.fspath(self.db_dir)

        if not isinstance(self.db_opts, Mapping):
            raise ConfigError(f"db_opts must be a mapping, got {type(self.db_opts).__name__}")
        unknown = set(self.db_opts) - ENGINE_OPTS
        if unknown:
            raise ConfigError(f"Unknown db_opts: {', '.join(sorted(map(str, unknown)))}")
        self.db_opts = dict(self.db_opts)

        for flag in ("sync", "serialize_updates"):
            if not isinstance(getattr(self, flag), bool):
                raise ConfigError(f"{flag} must be a bool, got {getattr(self, flag)!r}")

    @classmethod
    def from_mapping(
        cls, mapping: "Mapping[str, Any] | StoreOptions | None" = None, **overrides: Any
    ) -> "StoreOptions":
        """
        Build options from a mapping (or existing options) plus keyword overrides.

        Raises:
            ConfigError: On unknown option names or invalid values.
        """
        if isinstance(mapping, StoreOptions):
            merged = {f.name: getattr(mapping, f.name) for f in dataclasses.fields(cls)}
        else:
            merged = dict(mapping or {})
        merged.update(overrides)

        known = {f.name for f in dataclasses.fields(cls)}
        unknown = set(merged) - known
        if unknown:
            raise ConfigError(f"Unknown store options: {', '.join(sorted(map(str, unknown)))}")
        return cls(**merged)

    def db_path(self, name: str) -> str:
        """Directory holding the on-disk files of the store called name."""
        return os.path.abspath(os.path.join(self.db_dir or os.getcwd(), name))
