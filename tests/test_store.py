from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import BaseModel

from content_studio.store import CorruptRecord, FileBackend, MemoryBackend, PersistedStore


class Draft(BaseModel):
    title: str = ""
    tags: list[str] = []


def test_store_then_load_round_trips(store: PersistedStore) -> None:
    store.store("taskA_input", {"brief": "wheel bearings", "platforms": ["TikTok"]})

    assert store.load("taskA_input", {}) == {"brief": "wheel bearings", "platforms": ["TikTok"]}


def test_reset_removes_durable_record() -> None:
    backend = MemoryBackend()
    store = PersistedStore(backend)
    store.store("taskA_input", "typed text")

    assert store.reset("taskA_input", "") == ""
    assert store.load("taskA_input", "default") == "default"
    assert backend.get("taskA_input") is None


def test_load_missing_key_returns_default(store: PersistedStore) -> None:
    assert store.load("never_written", ["x"]) == ["x"]


def test_corrupt_record_falls_back_and_reports() -> None:
    events: list[CorruptRecord] = []
    backend = MemoryBackend({"taskA_input": "{not json"})
    store = PersistedStore(backend, on_corrupt=events.append)

    assert store.load("taskA_input", {"brief": ""}) == {"brief": ""}
    assert store.load("taskA_input", {"brief": ""}) == {"brief": ""}
    assert [event.key for event in events] == ["taskA_input", "taskA_input"]
    assert events[0].raw == "{not json"


def test_record_failing_type_validation_falls_back(caplog: pytest.LogCaptureFixture) -> None:
    store = PersistedStore(MemoryBackend({"draft": '{"title": ["not", "a", "string"]}'}))

    with caplog.at_level("WARNING", logger="content_studio.store"):
        value = store.load("draft", Draft(), Draft)

    assert value == Draft()
    assert "draft" in caplog.text


def test_keys_are_isolated(store: PersistedStore) -> None:
    store.store("taskA_input", "alpha")
    store.store("taskB_input", "beta")
    store.reset("taskA_input", "")

    assert store.load("taskA_input", "") == ""
    assert store.load("taskB_input", "") == "beta"


def test_slot_loads_lazily_and_writes_on_every_change() -> None:
    backend = MemoryBackend({"draft": '{"title": "saved", "tags": []}'})
    slot = PersistedStore(backend).slot("draft", Draft(), Draft)

    assert slot.value.title == "saved"
    slot.update(title="edited")
    slot.update(tags=["a"])

    assert PersistedStore(backend).load("draft", Draft(), Draft) == Draft(title="edited", tags=["a"])


def test_slot_reset_restores_fresh_default() -> None:
    backend = MemoryBackend()
    slot = PersistedStore(backend).slot("draft", {"items": []})
    slot.value["items"].append("mutated in memory")
    slot.set({"items": ["kept"]})

    assert slot.reset() == {"items": []}
    assert backend.get("draft") is None


def test_slot_key_has_a_single_owner(store: PersistedStore) -> None:
    store.slot("taskA_input", "")

    with pytest.raises(ValueError):
        store.slot("taskA_input", "")


def test_invalid_key_is_rejected(store: PersistedStore) -> None:
    with pytest.raises(ValueError):
        store.store("../escape", "x")


def test_write_failure_propagates_and_keeps_memory_value() -> None:
    class FullBackend(MemoryBackend):
        def set(self, key: str, value: str) -> None:
            raise OSError("disk full")

    slot = PersistedStore(FullBackend()).slot("draft", "initial")

    with pytest.raises(OSError):
        slot.set("new value")
    assert slot.value == "initial"


def test_file_backend_persists_across_instances(tmp_path: Path) -> None:
    PersistedStore(FileBackend(tmp_path)).store("taskA_input", {"brief": "héllo"})

    reopened = PersistedStore(FileBackend(tmp_path))

    assert reopened.load("taskA_input", {}) == {"brief": "héllo"}
    assert (tmp_path / "taskA_input.json").exists()
    reopened.reset("taskA_input", {})
    assert not (tmp_path / "taskA_input.json").exists()


def test_undecodable_file_falls_back_and_reports(tmp_path: Path) -> None:
    (tmp_path / "taskA_input.json").write_bytes(b"\xff\xfe\x00garbage")
    events: list[CorruptRecord] = []
    store = PersistedStore(FileBackend(tmp_path), on_corrupt=events.append)

    assert store.load("taskA_input", {"brief": ""}) == {"brief": ""}
    assert [event.key for event in events] == ["taskA_input"]
    assert "utf-8" in events[0].error


def test_backend_read_error_falls_back() -> None:
    class BrokenBackend(MemoryBackend):
        def get(self, key: str) -> str | None:
            raise PermissionError("read denied")

    store = PersistedStore(BrokenBackend())

    assert store.load("taskA_input", "default") == "default"


def test_slot_default_keeps_its_types() -> None:
    default = {"sizes": ("1K", "2K"), "tags": ["a"]}
    slot = PersistedStore(MemoryBackend()).slot("draft", default)

    slot.value["tags"].append("b")
    fresh = slot.reset()

    assert fresh == {"sizes": ("1K", "2K"), "tags": ["a"]}
    assert isinstance(fresh["sizes"], tuple)
    assert default["tags"] == ["a"]
