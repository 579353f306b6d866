"""
Tests for data models: Value, WALRecord, SortedArray, MemTable, SSTable and options.
"""

import os

import pytest

from kvfacade.models.codec import PickleCodec
from kvfacade.models.exceptions import CodecError, ConfigError, SSTableCorruptionError
from kvfacade.models.options import BackendKind, StoreOptions
from kvfacade.models.sortedcontainers import SortedArray
from kvfacade.models.sstable import SSTable
from kvfacade.models.value import Value, ValueType
from kvfacade.models.wal_record import WALRecord


class TestValue:
    """Tests for Value and ValueType."""

    def test_regular_value(self):
        value = Value.regular(b"test_data")
        assert value.data == b"test_data"
        assert value.type == ValueType.REGULAR
        assert not value.is_tombstone()

    def test_tombstone_value(self):
        value = Value.tombstone()
        assert value.data is None
        assert value.type == ValueType.TOMBSTONE
        assert value.is_tombstone()

    def test_value_serialization(self):
        original = Value.regular(b"test_data")
        deserialized = Value.from_bytes(bytes(original))

        assert deserialized.data == original.data
        assert deserialized.type == original.type

    def test_empty_value_is_not_a_tombstone(self):
        deserialized = Value.from_bytes(bytes(Value.regular(b"")))

        assert deserialized.data == b""
        assert not deserialized.is_tombstone()

    def test_tombstone_serialization(self):
        deserialized = Value.from_bytes(bytes(Value.tombstone()))

        assert deserialized.is_tombstone()
        assert deserialized.data is None


class TestWALRecord:
    """Tests for WALRecord."""

    def test_record_serialization(self):
        original = WALRecord(
            seq=42,
            ops=[(b"a", Value.regular(b"1")), (b"b", Value.tombstone())],
        )
        deserialized = WALRecord.from_bytes(bytes(original))

        assert deserialized.seq == 42
        assert [key for key, _ in deserialized.ops] == [b"a", b"b"]
        assert deserialized.ops[0][1].data == b"1"
        assert deserialized.ops[1][1].is_tombstone()

    def test_empty_record(self):
        deserialized = WALRecord.from_bytes(bytes(WALRecord(seq=7)))

        assert deserialized.seq == 7
        assert deserialized.ops == []


class TestSortedArray:
    """Tests for SortedArray sorted container."""

    def test_put_and_get(self):
        container = SortedArray()
        container.put(b"b", Value.regular(b"2"))
        container.put(b"a", Value.regular(b"1"))

        assert container.get(b"a").data == b"1"
        assert container.get(b"b").data == b"2"
        assert container.get(b"c") is None
        assert b"a" in container
        assert b"c" not in container

    def test_iteration_is_sorted(self):
        container = SortedArray()
        for key in [b"delta", b"alpha", b"charlie", b"bravo"]:
            container.put(key, Value.regular(key))

        assert [key for key, _ in container] == [b"alpha", b"bravo", b"charlie", b"delta"]

    def test_overwrite_keeps_size(self):
        container = SortedArray()
        container.put(b"k", Value.regular(b"short"))
        container.put(b"k", Value.regular(b"much longer value"))

        assert len(container) == 1
        assert container.get(b"k").data == b"much longer value"
        assert container.size_bytes() == len(b"k") + Value.regular(b"much longer value").size_bytes()

    def test_delete(self):
        container = SortedArray()
        container.put(b"k", Value.regular(b"v"))

        assert container.delete(b"k")
        assert not container.delete(b"k")
        assert b"k" not in container
        assert container.size_bytes() == 0


class TestMemTable:
    """Tests for MemTable."""

    def test_put_get(self, memtable):
        memtable.put(b"key", b"value")
        assert memtable.get(b"key").data == b"value"

    def test_delete_writes_tombstone(self, memtable):
        memtable.put(b"key", b"value")
        memtable.delete(b"key")

        assert memtable.get(b"key").is_tombstone()
        assert len(memtable) == 1

    def test_apply_in_order(self, memtable):
        memtable.apply([(b"k", Value.regular(b"1")), (b"k", Value.regular(b"2"))])
        assert memtable.get(b"k").data == b"2"

    def test_frozen_rejects_writes(self, memtable):
        memtable.freeze()

        assert memtable.frozen
        with pytest.raises(RuntimeError):
            memtable.put(b"key", b"value")
        assert len(memtable) == 0

    def test_snapshot_is_detached(self, memtable, sample_entries):
        memtable.apply(sample_entries)

        snapshot = memtable.snapshot()
        memtable.put(b"key0", b"later")

        assert [key for key, _ in snapshot] == [b"key1", b"key2", b"key3"]
        assert len(memtable) == 4


class TestSSTable:
    """Tests for SSTable."""

    async def test_create_and_get(self, temp_dir, sample_entries):
        path = os.path.join(temp_dir, "1.sst")
        sstable = SSTable.create(id="1", file_path=path, entries=iter(sample_entries))

        assert (await sstable.get(b"key2")).data == b"value2"
        assert await sstable.get(b"missing") is None
        assert sstable.entry_count == 3
        sstable.close()

    async def test_no_temp_file_after_create(self, temp_dir, sample_entries):
        path = os.path.join(temp_dir, "1.sst")
        sstable = SSTable.create(id="1", file_path=path, entries=iter(sample_entries))

        assert os.path.exists(path)
        assert not os.path.exists(path + ".tmp")
        sstable.close()

    def test_iterator_range(self, temp_dir, large_sample_entries):
        path = os.path.join(temp_dir, "1.sst")
        sstable = SSTable.create(id="1", file_path=path, entries=iter(large_sample_entries))

        keys = [key for key, _ in sstable.iterator(b"key0010", b"key0015")]
        assert keys == [f"key{i:04d}".encode() for i in range(10, 15)]
        sstable.close()

    def test_reopen(self, temp_dir, sample_entries):
        path = os.path.join(temp_dir, "1.sst")
        SSTable.create(id="1", file_path=path, entries=iter(sample_entries)).close()

        with SSTable(id="1", file_path=path) as sstable:
            assert [key for key, _ in sstable] == [b"key1", b"key2", b"key3"]

    def test_empty_sstable(self, temp_dir):
        path = os.path.join(temp_dir, "1.sst")
        sstable = SSTable.create(id="1", file_path=path, entries=iter([]))

        assert list(sstable) == []
        sstable.close()

    def test_truncated_file_is_corrupt(self, temp_dir, sample_entries):
        path = os.path.join(temp_dir, "1.sst")
        SSTable.create(id="1", file_path=path, entries=iter(sample_entries)).close()
        with open(path, "r+b") as f:
            f.truncate(10)

        with pytest.raises(SSTableCorruptionError):
            SSTable(id="1", file_path=path).open()


class TestPickleCodec:
    """Tests for the default codec."""

    def test_round_trip(self):
        codec = PickleCodec()
        for obj in [1, "text", b"bytes", (1, "a"), {"nested": [1, 2]}, None]:
            assert codec.decode(codec.encode(obj)) == obj

    def test_equal_keys_encode_equal(self):
        codec = PickleCodec()
        assert codec.encode(("user", 1)) == codec.encode(("user", 1))

    def test_key_encoding_ignores_identity(self):
        codec = PickleCodec()
        shared = "".join(["user", "-42"])
        distinct = ("".join(["us", "er-42"]), "".join(["user-", "42"]))

        assert codec.encode_key((shared, shared)) == codec.encode_key(distinct)

    def test_key_encoding_normalizes_numbers(self):
        codec = PickleCodec()

        assert codec.encode_key(1) == codec.encode_key(True) == codec.encode_key(1.0)
        assert codec.encode_key((0, "a")) == codec.encode_key((False, "a"))
        assert codec.encode_key(1.5) != codec.encode_key(1)
        assert codec.decode(codec.encode_key(2.0)) == 2

    def test_key_encoding_orders_frozensets(self):
        codec = PickleCodec()
        forward = frozenset(f"member{i}" for i in range(20))
        backward = frozenset(f"member{i}" for i in reversed(range(20)))

        assert codec.encode_key(forward) == codec.encode_key(backward)
        assert codec.decode(codec.encode_key(forward)) == forward

    def test_unencodable_key_raises_codec_error(self):
        with pytest.raises(CodecError):
            PickleCodec().encode_key((1, lambda: None))

    def test_unpicklable_raises_codec_error(self):
        with pytest.raises(CodecError):
            PickleCodec().encode(lambda: None)

    def test_garbage_raises_codec_error(self):
        with pytest.raises(CodecError):
            PickleCodec().decode(b"\x80\x04\xff")


class TestStoreOptions:
    """Tests for StoreOptions parsing and validation."""

    def test_defaults(self):
        options = StoreOptions()

        assert options.backend is BackendKind.PERSISTENT
        assert options.db_opts == {"create_if_missing": True}
        assert options.sync is True
        assert options.serialize_updates is False

    def test_from_mapping_with_overrides(self):
        options = StoreOptions.from_mapping({"backend": "volatile", "sync": True}, sync=False)

        assert options.backend is BackendKind.VOLATILE
        assert options.sync is False

    def test_from_existing_options(self):
        base = StoreOptions(db_dir="/data")
        options = StoreOptions.from_mapping(base, backend="volatile")

        assert options.db_dir == "/data"
        assert options.backend is BackendKind.VOLATILE
        assert base.backend is BackendKind.PERSISTENT

    def test_unknown_backend(self):
        with pytest.raises(ConfigError):
            StoreOptions(backend="rocks")

    def test_unknown_option(self):
        with pytest.raises(ConfigError):
            StoreOptions.from_mapping({"db_dri": "/tmp"})

    def test_unknown_db_opt(self):
        with pytest.raises(ConfigError):
            StoreOptions(db_opts={"paranoid_checks": True})

    def test_sync_must_be_bool(self):
        with pytest.raises(ConfigError):
            StoreOptions(sync="yes")

    def test_db_path_defaults_to_cwd(self):
        assert StoreOptions().db_path("users") == os.path.join(os.getcwd(), "users")

    def test_db_path_under_db_dir(self, temp_dir):
        options = StoreOptions(db_dir=temp_dir)
        assert options.db_path("users") == os.path.join(os.path.abspath(temp_dir), "users")
