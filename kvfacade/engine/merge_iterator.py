"""
Merging of sorted engine sources.

A source is any iterator of (key, Value) in ascending key order: a MemTable
snapshot or an SSTable. Sources are given newest first, and for a key that
appears in several of them the newest version wins.
"""

import heapq
from collections.abc import Iterable, Iterator
from itertools import groupby
from operator import itemgetter

from kvfacade.models.value import Value


def _ranked(
    source: Iterable[tuple[bytes, Value]], rank: int
) -> Iterator[tuple[bytes, int, Value]]:
    for key, value in source:
        yield key, rank, value


def merge_newest(sources: list[Iterable[tuple[bytes, Value]]]) -> Iterator[tuple[bytes, Value]]:
    """
    K-way merge of sources, one entry per key.

    Heap entries are (key, rank, value); rank is unique per source, so
    values are never compared and the newest source sorts first for a key.
    Sources are read lazily, one entry at a time. Tombstones are kept.
    """
    merged = heapq.merge(*(_ranked(source, rank) for rank, source in enumerate(sources)))
    for key, versions in groupby(merged, key=itemgetter(0)):
        _, _, value = next(versions)
        yield key, value


def live_entries(merged: Iterable[tuple[bytes, Value]]) -> Iterator[tuple[bytes, Value]]:
    """Drop tombstoned keys from a merged stream."""
    for key, value in merged:
        if not value.is_tombstone():
            yield key, value
