"""
Abstract base classes and protocols for the store facade.
"""

from kvfacade.interfaces.backend import Backend, NotFound
from kvfacade.interfaces.codec import Codec
from kvfacade.interfaces.sorted_container import SortedContainer

__all__ = ["Backend", "Codec", "NotFound", "SortedContainer"]
