"""Tests for saved-flowchart storage."""

import json
import typing

import pytest

from flowcharter.backend.persistence import (
    JsonFileKeyValueStore,
    MemoryKeyValueStore,
    PersistenceGateway,
    utf16_size,
)
from flowcharter.core.errors import (
    FlowchartNotFoundError,
    MalformedSnapshotError,
    PersistenceError,
    StorageQuotaExceededError,
    StorageWriteError,
)
from flowcharter.core.models import FlowchartSnapshot


def test_utf16_size():
    assert utf16_size("abc") == 6
    assert utf16_size("é") == 2
    # Astral characters take a surrogate pair
    assert utf16_size("😀") == 4


class TestGateway:
    def test_save_load_round_trip(self, gateway, store, simple_flow):
        gateway.save("order flow", store.snapshot())
        loaded = gateway.load("order flow")
        assert loaded == store.snapshot()

    def test_storage_layout(self, gateway, kv, store, simple_flow):
        gateway.save("demo", store.snapshot())
        assert json.loads(kv.get_item("flowcharter_flowchart_list")) == ["demo"]
        data = json.loads(kv.get_item("flowcharter_flowchart_demo"))
        assert data["nodeCounter"] == 3
        assert data["nodes"][0]["nodeType"] == "start"

    def test_list_keeps_save_order_without_duplicates(self, gateway, store):
        for name in ["b", "a", "b"]:
            gateway.save(name, store.snapshot())
        assert gateway.list() == ["b", "a"]

    def test_last_write_wins(self, gateway, store):
        gateway.save("x", store.snapshot())
        store.add_node("start", 0, 0)
        gateway.save("x", store.snapshot())
        assert len(gateway.load("x").nodes) == 1

    def test_delete(self, gateway, kv, store):
        gateway.save("x", store.snapshot())
        gateway.delete("x")
        assert gateway.list() == []
        assert kv.get_item("flowcharter_flowchart_x") is None
        with pytest.raises(FlowchartNotFoundError):
            gateway.delete("x")

    def test_load_missing(self, gateway):
        with pytest.raises(FlowchartNotFoundError) as exc_info:
            gateway.load("ghost")
        assert str(exc_info.value) == 'Flowchart "ghost" not found'
        assert isinstance(exc_info.value, KeyError)

    def test_load_corrupt_json(self, gateway, kv):
        kv.set_item("flowcharter_flowchart_bad", "{not json")
        with pytest.raises(MalformedSnapshotError):
            gateway.load("bad")

    def test_load_missing_collections(self, gateway, kv):
        kv.set_item("flowcharter_flowchart_bad", json.dumps({"nodes": []}))
        with pytest.raises(MalformedSnapshotError):
            gateway.load("bad")

    @pytest.mark.parametrize("name", ["", "   ", "list"])
    def test_rejects_empty_and_reserved_names(self, gateway, store, name):
        with pytest.raises(ValueError):
            gateway.save(name, store.snapshot())

    def test_corrupt_index_is_rebuilt(self, gateway, kv, store):
        gateway.save("one", store.snapshot())
        kv.set_item("flowcharter_flowchart_list", "oops")
        assert gateway.list() == ["one"]

    def test_usage_counts_prefixed_values(self, gateway, kv, store):
        kv.set_item("unrelated", "x" * 100)
        assert gateway.usage_bytes() == 0
        gateway.save("x", store.snapshot())
        expected = utf16_size(kv.get_item("flowcharter_flowchart_x")) + utf16_size(kv.get_item("flowcharter_flowchart_list"))
        assert gateway.usage_bytes() == expected
        usage = gateway.usage()
        assert usage["used_bytes"] == expected
        assert usage["quota_bytes"] == 5 * 1024 * 1024

    def test_is_available(self, gateway, kv):
        assert gateway.is_available()
        assert kv.keys() == []

    def test_index_name_is_not_a_flowchart(self, gateway, store):
        gateway.save("x", store.snapshot())
        with pytest.raises(FlowchartNotFoundError):
            gateway.load("list")

    def test_method_annotations_resolve(self):
        # A method named list must not shadow the builtin in later signatures
        hints = typing.get_type_hints(PersistenceGateway._names_from_keys)
        assert hints["return"] == list[str]


class TestQuota:
    def test_quota_exceeded(self, store, simple_flow):
        gateway = PersistenceGateway(MemoryKeyValueStore(quota_bytes=200))
        with pytest.raises(StorageQuotaExceededError) as exc_info:
            gateway.save("big", store.snapshot())
        assert str(exc_info.value) == "Storage quota exceeded. Try deleting some flowcharts first."
        assert gateway.list() == []

    def test_index_failure_rolls_back_data(self, store):
        snapshot = store.snapshot()
        size = utf16_size(json.dumps(snapshot.to_json_dict()))
        kv = MemoryKeyValueStore(quota_bytes=size + 4)
        gateway = PersistenceGateway(kv)
        with pytest.raises(StorageQuotaExceededError):
            gateway.save("x", snapshot)
        assert kv.keys() == []

    def test_overwrite_counts_replaced_value_once(self):
        kv = MemoryKeyValueStore(quota_bytes=20)
        kv.set_item("k", "a" * 10)
        kv.set_item("k", "b" * 10)
        with pytest.raises(StorageQuotaExceededError):
            kv.set_item("other", "c")

    def test_unavailable_storage(self):
        gateway = PersistenceGateway(MemoryKeyValueStore(quota_bytes=0))
        assert gateway.is_available() is False

    def test_nearly_full_storage_is_still_available(self):
        kv = MemoryKeyValueStore(quota_bytes=10)
        assert PersistenceGateway(kv).is_available() is True
        assert kv.keys() == []


class TestJsonFileStore:
    def test_persists_across_instances(self, tmp_path, store, simple_flow):
        path = tmp_path / "nested" / "storage.json"
        PersistenceGateway(JsonFileKeyValueStore(path)).save("demo", store.snapshot())

        reopened = PersistenceGateway(JsonFileKeyValueStore(path))
        assert reopened.list() == ["demo"]
        assert len(reopened.load("demo").nodes) == 3
        assert json.loads(path.read_text())["flowcharter_flowchart_list"] == '["demo"]'

    def test_no_temp_files_left(self, tmp_path, store):
        path = tmp_path / "storage.json"
        gateway = PersistenceGateway(JsonFileKeyValueStore(path))
        gateway.save("a", store.snapshot())
        gateway.delete("a")
        assert [p.name for p in tmp_path.iterdir()] == ["storage.json"]

    def test_write_failure_maps_to_storage_write_error(self, tmp_path, store, monkeypatch):
        path = tmp_path / "storage.json"
        kv = JsonFileKeyValueStore(path)

        def broken_replace(src, dst):
            raise PermissionError("read-only filesystem")

        monkeypatch.setattr("flowcharter.backend.persistence.os.replace", broken_replace)
        with pytest.raises(StorageWriteError) as exc_info:
            PersistenceGateway(kv).save("x", store.snapshot())
        assert str(exc_info.value) == "Failed to save flowchart"
        assert kv.keys() == []
        assert not path.exists()

    def test_availability_check_does_not_touch_the_file(self, tmp_path):
        path = tmp_path / "nested" / "storage.json"
        assert PersistenceGateway(JsonFileKeyValueStore(path)).is_available() is True
        assert not path.exists()
        assert list(tmp_path.iterdir()) == []

    def test_corrupt_file(self, tmp_path):
        path = tmp_path / "storage.json"
        path.write_text("not json")
        with pytest.raises(PersistenceError):
            JsonFileKeyValueStore(path)

    def test_non_object_file(self, tmp_path):
        path = tmp_path / "storage.json"
        path.write_text("[1, 2]")
        with pytest.raises(PersistenceError):
            JsonFileKeyValueStore(path)


def test_snapshot_survives_storage_unchanged(gateway):
    data = {
        "nodes": [
            {"id": "node_1", "nodeType": "start", "x": 0, "y": 0, "width": 100, "height": 50, "text": "Go"},
            {"id": "node_2", "nodeType": "end", "x": 0, "y": 200, "width": 100, "height": 50, "text": "Stop"},
        ],
        "edges": [{"id": "edge_1", "sourceId": "node_1", "targetId": "node_2", "label": "next"}],
        "nodeCounter": 2,
        "edgeCounter": 1,
    }
    gateway.save("imported", FlowchartSnapshot.from_json_dict(data))
    assert gateway.load("imported").to_json_dict() == FlowchartSnapshot.from_json_dict(data).to_json_dict()
