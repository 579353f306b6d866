"""
Backend engine adapters and the single point where one is selected.
"""

from kvfacade.backends.persistent import PersistentBackend, PersistentState
from kvfacade.backends.volatile import VolatileBackend, VolatileTable
from kvfacade.interfaces.backend import Backend
from kvfacade.interfaces.codec import Codec
from kvfacade.models.options import BackendKind


def create_backend(kind: BackendKind | str, codec: Codec | None = None) -> Backend:
    """
    Instantiate the adapter for kind.

    Raises:
        ConfigError: If kind names no known backend.
    """
    kind = BackendKind.parse(kind)
    if kind is BackendKind.PERSISTENT:
        return PersistentBackend(codec=codec)
    return VolatileBackend()


__all__ = [
    "PersistentBackend",
    "PersistentState",
    "VolatileBackend",
    "VolatileTable",
    "create_backend",
]
