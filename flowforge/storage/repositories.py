from __future__ import annotations

import logging
from typing import Any, Mapping, TypeVar

from pydantic import BaseModel

from flowforge.controller.records import Run
from flowforge.graph.model import Flow, utc_now
from flowforge.storage.base import Store


logger = logging.getLogger(__name__)

FLOWS_NAMESPACE = "flows"
RUNS_NAMESPACE = "runs"
DEFAULT_HISTORY_LIMIT = 50

ModelT = TypeVar("ModelT", bound=BaseModel)


def _apply_partial(current: ModelT, partial: Mapping[str, Any], immutable: tuple[str, ...]) -> ModelT:
    """Merge ``partial`` (field names or camelCase aliases) into a copy of ``current``."""
    model_cls = type(current)
    fields = model_cls.model_fields
    aliases = {info.alias: name for name, info in fields.items() if info.alias}

    updates: dict[str, Any] = {}
    for key, value in partial.items():
        name = aliases.get(key, key)
        if name not in fields:
            raise ValueError(f"unknown field: {key}")
        if name in immutable:
            continue
        updates[name] = value

    data = current.model_dump()
    data.update(updates)
    return model_cls.model_validate(data)


class FlowStore:
    def __init__(self, store: Store) -> None:
        self.store = store

    def get(self, flow_id: str) -> Flow | None:
        document = self.store.get(FLOWS_NAMESPACE, flow_id)
        return Flow.model_validate(document) if document is not None else None

    def list(self) -> list[Flow]:
        return [Flow.model_validate(document) for document in self.store.list(FLOWS_NAMESPACE)]

    def create(self, flow: Flow | Mapping[str, Any]) -> Flow:
        candidate = flow if isinstance(flow, Flow) else Flow.model_validate(dict(flow))
        now = utc_now()
        created = candidate.model_copy(update={"created_at": now, "updated_at": now})
        if self.store.get(FLOWS_NAMESPACE, created.id) is not None:
            raise ValueError(f"flow already exists: {created.id}")
        self.store.set(FLOWS_NAMESPACE, created.id, created.to_json_dict())
        return created

    def update(self, flow_id: str, partial: Mapping[str, Any]) -> Flow | None:
        current = self.get(flow_id)
        if current is None:
            return None
        updated = _apply_partial(current, partial, immutable=("id", "created_at"))
        updated = updated.model_copy(update={"updated_at": utc_now()})
        self.store.set(FLOWS_NAMESPACE, flow_id, updated.to_json_dict())
        return updated

    def delete(self, flow_id: str) -> bool:
        return self.store.delete(FLOWS_NAMESPACE, flow_id)


class RunStore:
    """Run history, capped at ``history_limit`` records (oldest evicted first)."""

    def __init__(self, store: Store, history_limit: int = DEFAULT_HISTORY_LIMIT) -> None:
        if history_limit < 1:
            raise ValueError("history_limit must be >= 1")
        self.store = store
        self.history_limit = int(history_limit)

    def get(self, run_id: str) -> Run | None:
        document = self.store.get(RUNS_NAMESPACE, run_id)
        return Run.model_validate(document) if document is not None else None

    def list(self) -> list[Run]:
        """Most recent first."""
        documents = self.store.list(RUNS_NAMESPACE)
        return [Run.model_validate(document) for document in reversed(documents)]

    def list_for_flow(self, flow_id: str) -> list[Run]:
        return [run for run in self.list() if run.flow_id == flow_id]

    def create(self, run: Run) -> Run:
        self.store.set(RUNS_NAMESPACE, run.id, run.to_json_dict())
        self._evict()
        return run

    def update(self, run_id: str, partial: Mapping[str, Any] | Run) -> Run | None:
        current = self.get(run_id)
        if current is None:
            return None
        if isinstance(partial, Run):
            partial = {name: getattr(partial, name) for name in Run.model_fields}
        updated = _apply_partial(current, partial, immutable=("id", "created_at"))
        self.store.set(RUNS_NAMESPACE, run_id, updated.to_json_dict())
        return updated

    def delete(self, run_id: str) -> bool:
        return self.store.delete(RUNS_NAMESPACE, run_id)

    def delete_for_flow(self, flow_id: str) -> int:
        removed = 0
        for run in self.list_for_flow(flow_id):
            if self.delete(run.id):
                removed += 1
        return removed

    def _evict(self) -> None:
        documents = self.store.list(RUNS_NAMESPACE)
        overflow = len(documents) - self.history_limit
        for document in documents[: max(0, overflow)]:
            self.store.delete(RUNS_NAMESPACE, document["id"])
            logger.debug("evicted run %s from history", document["id"])
