import sqlite3
import tempfile
from contextlib import closing
from datetime import timedelta
from pathlib import Path

import pytest

from flowforge.config.settings import Settings
from flowforge.controller.records import Run, RunStatus
from flowforge.errors import StorageError
from flowforge.graph.model import Flow, FlowNode, FlowStatus, utc_now
from flowforge.storage.base import MemoryStore
from flowforge.storage.manager import StorageManager
from flowforge.storage.repositories import FlowStore, RunStore
from flowforge.storage.sqlite_store import SqliteStore


def _flow(name: str = "Stored", status: FlowStatus = FlowStatus.DRAFT) -> Flow:
    return Flow(name=name, status=status, nodes=[FlowNode(id="a", kind="manual-trigger")])


def test_memory_store_basic_operations() -> None:
    store = MemoryStore()
    with store:
        store.set("ns", "b", {"v": 1})
        store.set("ns", "a", {"v": 2})
        store.set("ns", "b", {"v": 3})

        assert store.get("ns", "b") == {"v": 3}
        assert store.get("ns", "missing") is None
        assert store.list("ns") == [{"v": 3}, {"v": 2}]
        assert store.delete("ns", "a") is True
        assert store.delete("ns", "a") is False
        assert store.list("other") == []


def test_memory_store_returns_copies() -> None:
    store = MemoryStore()
    store.open()
    value = {"nested": {"x": 1}}
    store.set("ns", "k", value)
    value["nested"]["x"] = 2

    fetched = store.get("ns", "k")
    fetched["nested"]["x"] = 3
    assert store.get("ns", "k") == {"nested": {"x": 1}}


def test_closed_store_raises() -> None:
    store = MemoryStore()
    with pytest.raises(StorageError):
        store.get("ns", "k")


def test_sqlite_store_creates_table_and_keeps_insert_order() -> None:
    with tempfile.TemporaryDirectory() as tmp_dir:
        db_path = Path(tmp_dir) / "nested" / "flowforge.db"
        with SqliteStore(db_path=str(db_path)) as store:
            store.set("runs", "r1", {"id": "r1"})
            store.set("runs", "r2", {"id": "r2"})
            store.set("runs", "r1", {"id": "r1", "status": "success"})

            assert store.list("runs") == [{"id": "r1", "status": "success"}, {"id": "r2"}]
            assert store.get("runs", "r2") == {"id": "r2"}
            assert store.delete("runs", "r2") is True
            assert store.delete("runs", "r2") is False

        with closing(sqlite3.connect(db_path)) as conn:
            names = {
                row[0]
                for row in conn.execute("SELECT name FROM sqlite_master WHERE type='table'").fetchall()
            }
        assert "documents" in names


def test_sqlite_store_persists_across_instances(tmp_path: Path) -> None:
    db_path = str(tmp_path / "flowforge.db")
    with SqliteStore(db_path=db_path) as store:
        store.set("flows", "f1", {"id": "f1"})

    with SqliteStore(db_path=db_path) as reopened:
        assert reopened.get("flows", "f1") == {"id": "f1"}


def test_sqlite_store_requires_open(tmp_path: Path) -> None:
    store = SqliteStore(db_path=str(tmp_path / "flowforge.db"))
    with pytest.raises(StorageError, match="not open"):
        store.list("flows")


def test_sqlite_store_rejects_unserializable_value(tmp_path: Path) -> None:
    with SqliteStore(db_path=str(tmp_path / "flowforge.db")) as store:
        with pytest.raises(StorageError, match="not JSON serializable"):
            store.set("flows", "f1", {"bad": object()})


def test_flow_store_crud() -> None:
    store = MemoryStore()
    store.open()
    flows = FlowStore(store)

    created = flows.create(_flow())
    assert flows.get(created.id).to_json_dict() == created.to_json_dict()
    assert [flow.id for flow in flows.list()] == [created.id]

    updated = flows.update(created.id, {"name": "Renamed", "status": "active", "id": "ignored"})
    assert updated.id == created.id
    assert updated.name == "Renamed"
    assert updated.status == FlowStatus.ACTIVE
    assert updated.updated_at >= created.updated_at
    assert updated.created_at == created.created_at

    assert flows.update("missing", {"name": "x"}) is None
    with pytest.raises(ValueError, match="unknown field"):
        flows.update(created.id, {"colour": "blue"})

    assert flows.delete(created.id) is True
    assert flows.get(created.id) is None


def test_flow_store_rejects_duplicate_id() -> None:
    store = MemoryStore()
    store.open()
    flows = FlowStore(store)
    flow = flows.create(_flow())

    with pytest.raises(ValueError, match="flow already exists"):
        flows.create(flow)


def test_run_store_orders_most_recent_first_and_evicts_oldest() -> None:
    store = MemoryStore()
    store.open()
    runs = RunStore(store, history_limit=3)

    created = [runs.create(Run(flow_id="f", flow_name="F")) for _ in range(5)]

    listed = runs.list()
    assert [run.id for run in listed] == [run.id for run in reversed(created[2:])]
    assert runs.get(created[0].id) is None


def test_run_store_update_and_flow_filters() -> None:
    store = MemoryStore()
    store.open()
    runs = RunStore(store)
    first = runs.create(Run(flow_id="f1", flow_name="F1"))
    runs.create(Run(flow_id="f2", flow_name="F2"))
    runs.create(Run(flow_id="f1", flow_name="F1"))

    updated = runs.update(first.id, {"status": RunStatus.FAILED, "error": "boom", "durationMs": 12})
    assert updated.status == RunStatus.FAILED
    assert updated.duration_ms == 12
    assert runs.update("missing", {"error": "x"}) is None

    assert len(runs.list_for_flow("f1")) == 2
    assert runs.delete_for_flow("f1") == 2
    assert [run.flow_id for run in runs.list()] == ["f2"]


def test_run_store_rejects_zero_limit() -> None:
    with pytest.raises(ValueError):
        RunStore(MemoryStore(), history_limit=0)


def test_manager_delete_cascades_to_runs() -> None:
    with StorageManager() as storage:
        flow = storage.create_flow(_flow())
        other = storage.create_flow(_flow("Other"))
        storage.runs.create(Run(flow_id=flow.id, flow_name=flow.name))
        storage.runs.create(Run(flow_id=other.id, flow_name=other.name))

        assert storage.delete_flow(flow.id) is True
        assert storage.delete_flow(flow.id) is False
        assert storage.list_flow_runs(flow.id) == []
        assert len(storage.list_flow_runs(other.id)) == 1


def test_manager_duplicate_flow() -> None:
    with StorageManager() as storage:
        flow = storage.create_flow(_flow("Original", FlowStatus.ACTIVE))
        copy = storage.duplicate_flow(flow.id)

        assert copy.id != flow.id
        assert copy.name == "Original (Copy)"
        assert copy.status == FlowStatus.DRAFT
        assert copy.nodes == flow.nodes
        assert storage.duplicate_flow("missing") is None
        assert len(storage.list_flows()) == 2


def test_manager_stats() -> None:
    with StorageManager() as storage:
        assert storage.get_stats()["successRate"] == 100

        flow = storage.create_flow(_flow("Active", FlowStatus.ACTIVE))
        storage.create_flow(_flow("Draft"))
        for status in (RunStatus.SUCCESS, RunStatus.SUCCESS, RunStatus.FAILED):
            storage.runs.create(Run(flow_id=flow.id, flow_name=flow.name, status=status))
        storage.runs.create(
            Run(
                flow_id=flow.id,
                flow_name=flow.name,
                status=RunStatus.FAILED,
                created_at=utc_now() - timedelta(days=2),
            )
        )

        stats = storage.get_stats()

    assert stats == {
        "totalFlows": 2,
        "activeFlows": 1,
        "totalRuns": 4,
        "runsLast24h": 3,
        "successRate": 67,
        "failedRuns": 1,
    }


def test_manager_seeds_sample_flows_once() -> None:
    with StorageManager() as storage:
        seeded = storage.seed_sample_flows()
        assert [flow.id for flow in seeded] == [
            "flow-welcome-email",
            "flow-data-sync",
            "flow-notification",
            "flow-ai-processor",
        ]
        assert storage.seed_sample_flows() == []

        data_sync = storage.get_flow("flow-data-sync")
        assert data_sync.settings.retry_count == 3
        assert [edge.source_handle for edge in data_sync.edges][-2:] == ["true", "false"]


def test_manager_seed_missing_file_raises(tmp_path: Path) -> None:
    with StorageManager() as storage:
        with pytest.raises(StorageError):
            storage.seed_sample_flows(path=str(tmp_path / "missing.yaml"))


def test_manager_from_settings_uses_sqlite(tmp_path: Path) -> None:
    settings = Settings(DATA_PATH=str(tmp_path), STORE_BACKEND="sqlite", RUN_HISTORY_LIMIT=5)
    storage = StorageManager.from_settings(settings)

    assert isinstance(storage.store, SqliteStore)
    assert storage.runs.history_limit == 5
    with storage:
        storage.create_flow(_flow())
    assert (tmp_path / "flowforge.db").exists()

    assert isinstance(StorageManager.from_settings(Settings(STORE_BACKEND="memory")).store, MemoryStore)
