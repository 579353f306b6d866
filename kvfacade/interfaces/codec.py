"""
Codec abstract base class for key/value serialization.
"""

from abc import ABC, abstractmethod
from typing import Any


class Codec(ABC):
    """
    Converts application keys and values to the bytes a binary engine stores.

    encode_key must be canonical: keys that compare equal have to produce
    equal bytes, otherwise a key written once could not be found again.
    """

    @abstractmethod
    def encode(self, obj: Any) -> bytes:
        pass

    @abstractmethod
    def decode(self, data: bytes) -> Any:
        pass

    def encode_key(self, obj: Any) -> bytes:
        return self.encode(obj)
