from __future__ import annotations

import logging
import os
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any

import yaml

from flowforge.controller.records import Run, RunStatus
from flowforge.errors import StorageError
from flowforge.graph.model import Flow, FlowStatus, new_id, utc_now
from flowforge.storage.base import MemoryStore, Store
from flowforge.storage.repositories import DEFAULT_HISTORY_LIMIT, FlowStore, RunStore
from flowforge.storage.sqlite_store import SqliteStore

if TYPE_CHECKING:
    from flowforge.config.settings import Settings


logger = logging.getLogger(__name__)

DEFAULT_SAMPLE_FLOWS_PATH = os.path.join(
    os.path.dirname(os.path.dirname(os.path.abspath(__file__))),
    "catalog",
    "sample_flows.yaml",
)


class StorageManager:
    def __init__(self, store: Store | None = None, history_limit: int = DEFAULT_HISTORY_LIMIT) -> None:
        self.store = store or MemoryStore()
        self.flows = FlowStore(self.store)
        self.runs = RunStore(self.store, history_limit=history_limit)

    @classmethod
    def from_settings(cls, settings: "Settings") -> "StorageManager":
        if settings.STORE_BACKEND == "memory":
            store: Store = MemoryStore()
        else:
            store = SqliteStore(db_path=os.path.join(settings.DATA_PATH, "flowforge.db"))
        return cls(store=store, history_limit=settings.RUN_HISTORY_LIMIT)

    def __enter__(self) -> "StorageManager":
        self.open()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def open(self) -> None:
        self.store.open()

    def close(self) -> None:
        self.store.close()

    def get_flow(self, flow_id: str) -> Flow | None:
        return self.flows.get(flow_id)

    def list_flows(self) -> list[Flow]:
        return self.flows.list()

    def create_flow(self, flow: Flow | dict[str, Any]) -> Flow:
        return self.flows.create(flow)

    def update_flow(self, flow_id: str, partial: dict[str, Any]) -> Flow | None:
        return self.flows.update(flow_id, partial)

    def delete_flow(self, flow_id: str) -> bool:
        if not self.flows.delete(flow_id):
            return False
        removed = self.runs.delete_for_flow(flow_id)
        logger.info("deleted flow %s and %d run(s)", flow_id, removed)
        return True

    def duplicate_flow(self, flow_id: str) -> Flow | None:
        flow = self.flows.get(flow_id)
        if flow is None:
            return None
        copy = flow.model_copy(
            update={
                "id": new_id("flow"),
                "name": f"{flow.name} (Copy)",
                "status": FlowStatus.DRAFT,
            },
            deep=True,
        )
        return self.flows.create(copy)

    def get_run(self, run_id: str) -> Run | None:
        return self.runs.get(run_id)

    def list_flow_runs(self, flow_id: str) -> list[Run]:
        return self.runs.list_for_flow(flow_id)

    def get_stats(self, now: datetime | None = None) -> dict[str, Any]:
        flows = self.flows.list()
        runs = self.runs.list()

        cutoff = (now or utc_now()) - timedelta(hours=24)
        recent = [run for run in runs if run.created_at > cutoff]
        succeeded = [run for run in recent if run.status == RunStatus.SUCCESS]
        failed = [run for run in recent if run.status == RunStatus.FAILED]

        success_rate = 100
        if recent:
            success_rate = int(len(succeeded) * 100 / len(recent) + 0.5)

        return {
            "totalFlows": len(flows),
            "activeFlows": sum(1 for flow in flows if flow.status == FlowStatus.ACTIVE),
            "totalRuns": len(runs),
            "runsLast24h": len(recent),
            "successRate": success_rate,
            "failedRuns": len(failed),
        }

    def seed_sample_flows(self, path: str | None = None, only_if_empty: bool = True) -> list[Flow]:
        if only_if_empty and self.flows.list():
            return []

        catalog_path = path or DEFAULT_SAMPLE_FLOWS_PATH
        try:
            with open(catalog_path, "r", encoding="utf-8") as handle:
                document = yaml.safe_load(handle) or {}
        except OSError as exc:
            raise StorageError(f"failed to read sample flows from {catalog_path}: {exc}") from exc

        seeded: list[Flow] = []
        for entry in document.get("flows", []):
            flow = Flow.model_validate(entry)
            if self.flows.get(flow.id) is not None:
                continue
            seeded.append(self.flows.create(flow))
        logger.info("seeded %d sample flow(s)", len(seeded))
        return seeded
