"""
Tests for the store registry.
"""

import os

import pytest

from kvfacade import ConfigError, EngineClosedError, Registry, Store, StoreNotRegistered


class TestRegistry:
    """Name lookups and lifecycle."""

    async def test_start_registers(self):
        registry = Registry()
        store = await registry.start("sessions", backend="volatile")

        assert registry.lookup("sessions") is store
        assert "sessions" in registry
        assert len(registry) == 1
        await registry.close_all()

    async def test_lookup_missing(self):
        registry = Registry()
        with pytest.raises(StoreNotRegistered):
            registry.lookup("nobody")
        with pytest.raises(KeyError):
            registry.lookup("nobody")

    async def test_duplicate_name_rejected(self):
        registry = Registry()
        await registry.start("sessions", backend="volatile")

        with pytest.raises(ConfigError):
            await registry.start("sessions", backend="volatile")
        assert len(registry) == 1
        await registry.close_all()

    async def test_stop_unregisters(self):
        registry = Registry()
        store = await registry.start("sessions", backend="volatile")
        await store.stop()

        assert "sessions" not in registry
        # The name is free again
        await registry.start("sessions", backend="volatile")
        await registry.close_all()

    async def test_destroy_unregisters(self, temp_dir):
        registry = Registry()
        store = await registry.start("users", db_dir=temp_dir)
        await store.destroy()

        assert registry.names() == []
        assert not os.path.exists(os.path.join(temp_dir, "users"))

    async def test_store_start_with_registry(self):
        registry = Registry()
        store = await Store.start("a", backend="volatile", registry=registry)
        await Store.start("b", backend="volatile", registry=registry)

        assert registry.names() == ["a", "b"]
        assert registry.lookup("a") is store
        await registry.close_all()

    async def test_unregister_only_matching_store(self):
        registry = Registry()
        store = await registry.start("a", backend="volatile")
        other = await Store.start("a", backend="volatile")

        assert registry.unregister("a", other) is None
        assert registry.lookup("a") is store
        await other.stop()
        await registry.close_all()

    async def test_context_manager_stops_all(self, temp_dir):
        async with Registry() as registry:
            first = await registry.start("one", backend="volatile")
            second = await registry.start("two", db_dir=temp_dir)

        assert not first.is_open
        assert not second.is_open
        assert len(registry) == 0

    async def test_iteration(self):
        registry = Registry()
        await registry.start("a", backend="volatile")
        await registry.start("b", backend="volatile")

        assert sorted(store.name for store in registry) == ["a", "b"]
        await registry.close_all()

    async def test_restore_registers(self, temp_dir):
        backups = os.path.join(temp_dir, "backups")
        async with Registry() as registry:
            store = await registry.start("users", db_dir=temp_dir)
            await store.put("alice", 1)
            await store.checkpoint(backups)
            await store.stop()

            restored = await registry.restore("users", backups, db_dir=temp_dir)
            assert registry.lookup("users") is restored
            assert await restored.get("alice") == 1

    async def test_close_all_reports_failure(self):
        registry = Registry()
        good = await registry.start("good", backend="volatile")
        bad = await registry.start("bad", backend="volatile")
        bad._detach()

        with pytest.raises(EngineClosedError):
            await registry.close_all()
        assert not good.is_open
        assert len(registry) == 0
