"""
Shared pytest fixtures for store and engine tests.
"""

import os
import tempfile

import pytest
import pytest_asyncio

from kvfacade import Store
from kvfacade.engine import LSMEngine
from kvfacade.models.memtable import MemTable
from kvfacade.models.sortedcontainers import SortedArray
from kvfacade.models.value import Value


@pytest.fixture
def temp_dir():
    """Provide a temporary directory that is cleaned up after test."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield tmpdir


@pytest_asyncio.fixture
async def engine(temp_dir):
    """Provide an open LSM engine."""
    async with await LSMEngine.open(os.path.join(temp_dir, "db")) as eng:
        yield eng


@pytest_asyncio.fixture
async def engine_small_threshold(temp_dir):
    """Provide an engine with a tiny memtable threshold for flush tests."""
    async with await LSMEngine.open(
        os.path.join(temp_dir, "db"), memtable_threshold=100, compaction_trigger=4
    ) as eng:
        yield eng


@pytest.fixture(params=["volatile", "persistent"])
def backend(request):
    """Run a test once per backend."""
    return request.param


@pytest_asyncio.fixture
async def store(backend, temp_dir):
    """Provide an open store on each backend, stopped after the test."""
    store = await Store.start("test_kv", backend=backend, db_dir=temp_dir)
    yield store
    if store.is_open:
        await store.destroy()


@pytest_asyncio.fixture
async def persistent_store(temp_dir):
    """Provide an open persistent store."""
    store = await Store.start("test_kv", backend="persistent", db_dir=temp_dir)
    yield store
    if store.is_open:
        await store.stop()


@pytest.fixture
def memtable():
    """Provide a fresh MemTable instance."""
    return MemTable(SortedArray())


@pytest.fixture
def sample_entries():
    """Provide sample key-value entries for testing."""
    return [
        (b"key1", Value.regular(b"value1")),
        (b"key2", Value.regular(b"value2")),
        (b"key3", Value.regular(b"value3")),
    ]


@pytest.fixture
def large_sample_entries():
    """Provide larger sample for stress testing."""
    return [(f"key{i:04d}".encode(), Value.regular(f"value{i}".encode())) for i in range(1000)]
