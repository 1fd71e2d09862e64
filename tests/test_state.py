from __future__ import annotations

import json
import stat
from datetime import UTC, datetime
from pathlib import Path

import pytest

from insights_agent.core.sync import SyncEngine
from insights_agent.storage import create_state_store
from insights_agent.storage.base import StateStoreError
from insights_agent.storage.files import JsonStateStore
from insights_agent.storage.memory import MemoryStateStore
from insights_agent.storage.models import InsightsConfig, ServerConfig, SyncConfig, SyncState

SYNCED_AT = datetime(2025, 1, 15, 12, 0, tzinfo=UTC)


def test_missing_file_is_empty_state(tmp_path: Path) -> None:
    state = JsonStateStore(tmp_path / "synced.json").load()

    assert state.synced_sessions == {}
    assert state.synced_plans == {}
    assert state.last_sync is None


def test_save_then_load(tmp_path: Path) -> None:
    store = JsonStateStore(tmp_path / "nested" / "synced.json")
    store.save(
        SyncState(
            synced_sessions={"abc": SYNCED_AT},
            synced_plans={"happy-otter": SYNCED_AT},
            last_sync=SYNCED_AT,
        )
    )

    state = store.load()

    assert state.synced_sessions == {"abc": SYNCED_AT}
    assert state.synced_plans == {"happy-otter": SYNCED_AT}
    assert state.last_sync == SYNCED_AT


def test_saved_file_is_owner_only(tmp_path: Path) -> None:
    path = tmp_path / "state" / "synced.json"
    JsonStateStore(path).save(SyncState())

    assert stat.S_IMODE(path.stat().st_mode) == 0o600
    assert [p.name for p in path.parent.iterdir()] == ["synced.json"]


def test_document_uses_ledger_keys(tmp_path: Path) -> None:
    path = tmp_path / "synced.json"
    JsonStateStore(path).save(SyncState(synced_sessions={"abc": SYNCED_AT}))

    document = json.loads(path.read_text())

    assert set(document) == {"synced_sessions", "synced_plans", "last_sync"}
    assert document["synced_sessions"]["abc"].startswith("2025-01-15T12:00:00")


def test_null_maps_load_as_empty(tmp_path: Path) -> None:
    path = tmp_path / "synced.json"
    path.write_text('{"synced_sessions": null, "synced_plans": null, "last_sync": null}')

    state = JsonStateStore(path).load()

    assert state.synced_sessions == {}
    assert state.synced_plans == {}


def test_naive_timestamps_are_utc(tmp_path: Path) -> None:
    path = tmp_path / "synced.json"
    path.write_text('{"synced_sessions": {"abc": "2025-01-15T12:00:00"}}')

    state = JsonStateStore(path).load()

    assert state.synced_sessions["abc"] == SYNCED_AT


def test_corrupt_file_raises(tmp_path: Path) -> None:
    path = tmp_path / "synced.json"
    path.write_text("{not json")

    with pytest.raises(StateStoreError, match="Corrupt state file"):
        JsonStateStore(path).load()


def test_unwritable_location_raises(tmp_path: Path) -> None:
    blocker = tmp_path / "file"
    blocker.write_text("")

    with pytest.raises(StateStoreError, match="Cannot write"):
        JsonStateStore(blocker / "synced.json").save(SyncState())


def test_memory_store_returns_copies() -> None:
    store = MemoryStateStore()
    state = SyncState()
    state.synced_sessions["abc"] = SYNCED_AT
    store.save(state)

    loaded = store.load()
    loaded.synced_sessions["other"] = SYNCED_AT

    assert store.load().synced_sessions == {"abc": SYNCED_AT}
    assert store.saves == 1


def test_memory_store_failures() -> None:
    store = MemoryStateStore()
    store.fail_reads = True
    store.fail_writes = True

    with pytest.raises(StateStoreError):
        store.load()
    with pytest.raises(StateStoreError):
        store.save(SyncState())


def test_factory(tmp_path: Path) -> None:
    assert isinstance(create_state_store(tmp_path / "synced.json"), JsonStateStore)
    assert isinstance(create_state_store(None), MemoryStateStore)


def test_engine_from_config_persists_to_state_path(tmp_path: Path) -> None:
    config = InsightsConfig(
        server=ServerConfig(url="http://collector.test", api_key="key-123"),
        sync=SyncConfig(logs_dir=tmp_path / ".claude", state_path=tmp_path / "synced.json"),
    )

    engine = SyncEngine.from_config(config)
    engine.client.close()

    assert isinstance(engine.state_store, JsonStateStore)
    assert engine.state_store.path == tmp_path / "synced.json"
