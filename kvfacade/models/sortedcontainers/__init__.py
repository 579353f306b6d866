"""
Sorted container implementations for the LSM engine.
"""

from kvfacade.models.sortedcontainers.sorted_array import SortedArray

__all__ = ["SortedArray"]
