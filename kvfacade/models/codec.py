"""
PickleCodec - default codec for the persistent backend.
"""

import io
import pickle
from typing import Any

from kvfacade.interfaces.codec import Codec
from kvfacade.models.exceptions import CodecError

_ENCODE_ERRORS = (pickle.PicklingError, TypeError, AttributeError, ValueError, RecursionError)


class _OrderedFrozenSet:
    """Pickles as frozenset(items) with items in a fixed order."""

    __slots__ = ("items",)

    def __init__(self, items: tuple) -> None:
        self.items = items

    def __reduce__(self):
        return (frozenset, (self.items,))


class PickleCodec(Codec):
    """
    Pickle-based codec with a pinned protocol.

    The protocol is fixed so the byte form of a key does not change when the
    interpreter's default protocol does.

    Keys are encoded canonically. Plain pickle output depends on object
    identity (the memo) and on the numeric type, so (s, s) and two equal but
    distinct strings differ, as do 1, 1.0 and True. For keys the memo is
    disabled and numbers are normalized: a bool or an integral float comes
    back as an int, like the first key a dict would keep. Frozenset members
    are written in byte order of their own encoding.
    """

    PROTOCOL = 4

    def encode(self, obj: Any) -> bytes:
        try:
            return pickle.dumps(obj, protocol=self.PROTOCOL)
        except _ENCODE_ERRORS as exc:
            raise CodecError(f"Cannot encode {type(obj).__name__}: {exc}") from exc

    def encode_key(self, obj: Any) -> bytes:
        try:
            return self._dump_unmemoized(self._canonical(obj))
        except _ENCODE_ERRORS as exc:
            raise CodecError(f"Cannot encode key {type(obj).__name__}: {exc}") from exc

    def decode(self, data: bytes) -> Any:
        try:
            return pickle.loads(data)
        except (
            pickle.UnpicklingError, EOFError, ValueError, IndexError, KeyError, AttributeError, ImportError
        ) as exc:
            raise CodecError(f"Cannot decode {len(data)} bytes: {exc}") from exc

    def _dump_unmemoized(self, obj: Any) -> bytes:
        buffer = io.BytesIO()
        pickler = pickle.Pickler(buffer, protocol=self.PROTOCOL)
        # No memo: repeated references are written out in full
        pickler.fast = True
        pickler.dump(obj)
        return buffer.getvalue()

    def _canonical(self, obj: Any) -> Any:
        if isinstance(obj, bool):
            return int(obj)
        if isinstance(obj, float) and obj.is_integer():
            return int(obj)
        if isinstance(obj, complex) and obj.imag == 0:
            return self._canonical(obj.real)
        if type(obj) is tuple:
            return tuple(self._canonical(item) for item in obj)
        if type(obj) is frozenset:
            items = [self._canonical(item) for item in obj]
            items.sort(key=self._dump_unmemoized)
            return _OrderedFrozenSet(tuple(items))
        return obj
