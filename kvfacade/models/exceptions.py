"""
Custom exceptions for the store facade and the LSM engine.
"""


class StoreError(Exception):
    """Base class for every failure surfaced by a store."""


class ConfigError(StoreError, ValueError):
    """Raised for an unknown backend selection or invalid store options."""


class EngineOpenError(StoreError):
    """Raised when a backend fails to start (permissions, corruption, lock held)."""


class EngineReadError(StoreError):
    """Raised when the underlying engine fails to serve a read."""


class EngineWriteError(StoreError):
    """Raised when the underlying engine rejects a write."""


class EngineClosedError(StoreError):
    """Raised when an operation reaches a store that is stopped or mid-checkpoint."""


class StorageIOError(StoreError, OSError):
    """Raised for filesystem failures while destroying, archiving or restoring a store."""


class StoreNotRegistered(StoreError, KeyError):
    """Raised when a registry lookup names no live store."""


class CodecError(StoreError, ValueError):
    """Raised when a key or value cannot be encoded or decoded."""


class CorruptionError(Exception):
    """Raised by the engine when on-disk state fails validation."""


class WALCorruptionError(CorruptionError):
    """
    Raised when WAL record corruption is detected via checksum mismatch.

    This is a fail-fast error indicating data integrity issues.
    """

    def __init__(self, expected: int, actual: int, entry_offset: int):
        """
        Initialize corruption error.

        Args:
            expected: Expected CRC32 checksum.
            actual: Actual CRC32 checksum computed.
            entry_offset: File offset where corruption detected.
        """
        self.expected = expected
        self.actual = actual
        self.entry_offset = entry_offset
        super().__init__(
            f"WAL corruption detected at offset {entry_offset}: "
            f"expected CRC32 0x{expected:08x}, got 0x{actual:08x}"
        )


class SSTableCorruptionError(CorruptionError):
    """Raised when an SSTable footer or index cannot be parsed."""

    def __init__(self, file_path: str, reason: str):
        self.file_path = file_path
        super().__init__(f"SSTable {file_path} is corrupt: {reason}")
