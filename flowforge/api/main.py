import logging
from contextlib import contextmanager
from typing import Any, Iterator

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from flowforge.config.log_setup import configure_logging
from flowforge.config.settings import Settings
from flowforge.controller.records import TriggerType
from flowforge.controller.run_controller import RunController
from flowforge.errors import (
    GraphValidationError,
    InvalidFlowFormat,
    RunPersistenceError,
    StorageError,
)
from flowforge.graph.model import Flow, FlowEdge, FlowNode, FlowSettings, FlowStatus
from flowforge.graph.validator import GraphValidator
from flowforge.interchange.flow_io import export_flow, import_flow
from flowforge.storage.base import MemoryStore
from flowforge.storage.manager import StorageManager
from flowforge.workflow.demo import build_registry_from_settings
from flowforge.workflow.resolver import ExecutionOrderResolver


logger = logging.getLogger(__name__)

app = FastAPI(title="FlowForge Engine")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

_memory_store = MemoryStore()


class FlowPayload(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    name: str = Field(min_length=1)
    description: str = ""
    nodes: list[FlowNode] = Field(default_factory=list)
    edges: list[FlowEdge] = Field(default_factory=list)
    settings: FlowSettings = Field(default_factory=FlowSettings)
    status: FlowStatus = FlowStatus.DRAFT


class FlowPatch(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    name: str | None = Field(default=None, min_length=1)
    description: str | None = None
    nodes: list[FlowNode] | None = None
    edges: list[FlowEdge] | None = None
    settings: FlowSettings | None = None
    status: FlowStatus | None = None


class RunRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    trigger_type: TriggerType = TriggerType.MANUAL


def _build_storage(settings: Settings) -> StorageManager:
    if settings.STORE_BACKEND == "memory":
        return StorageManager(store=_memory_store, history_limit=settings.RUN_HISTORY_LIMIT)
    return StorageManager.from_settings(settings)


@contextmanager
def _open_storage(settings: Settings) -> Iterator[StorageManager]:
    try:
        with _build_storage(settings) as storage:
            yield storage
    except StorageError as exc:
        logger.error(f"Storage failure: {exc}")
        raise HTTPException(status_code=500, detail=exc.as_dict()) from exc


def _load_settings() -> Settings:
    settings = Settings()
    configure_logging(settings)
    return settings


def _require_flow(storage: StorageManager, flow_id: str) -> Flow:
    flow = storage.get_flow(flow_id)
    if flow is None:
        raise HTTPException(status_code=404, detail="Flow not found")
    return flow


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok", "service": "flowforge-engine"}


@app.get("/node-kinds")
def list_node_kinds() -> list[dict[str, Any]]:
    settings = _load_settings()
    return build_registry_from_settings(settings).export_all_definitions()


@app.get("/flows")
def list_flows() -> list[dict[str, Any]]:
    with _open_storage(_load_settings()) as storage:
        return [flow.to_json_dict() for flow in storage.list_flows()]


@app.post("/flows", status_code=201)
def create_flow(payload: FlowPayload) -> dict[str, Any]:
    with _open_storage(_load_settings()) as storage:
        flow = storage.create_flow(Flow.model_validate(payload.model_dump()))
        return flow.to_json_dict()


@app.post("/flows/samples", status_code=201)
def seed_sample_flows() -> list[dict[str, Any]]:
    with _open_storage(_load_settings()) as storage:
        return [flow.to_json_dict() for flow in storage.seed_sample_flows()]


@app.post("/flows/import", status_code=201)
async def import_flow_document(request: Request) -> dict[str, Any]:
    settings = _load_settings()
    text = (await request.body()).decode("utf-8", errors="replace")
    validator = GraphValidator(
        build_registry_from_settings(settings),
        strict_properties=settings.STRICT_PROPERTIES,
    )
    try:
        flow = import_flow(text, validator=validator)
    except InvalidFlowFormat as exc:
        raise HTTPException(status_code=400, detail=exc.as_dict()) from exc
    except GraphValidationError as exc:
        raise HTTPException(status_code=422, detail=exc.as_dict()) from exc

    with _open_storage(settings) as storage:
        return storage.create_flow(flow).to_json_dict()


@app.get("/flows/{flow_id}")
def get_flow(flow_id: str) -> dict[str, Any]:
    with _open_storage(_load_settings()) as storage:
        return _require_flow(storage, flow_id).to_json_dict()


@app.put("/flows/{flow_id}")
def update_flow(flow_id: str, patch: FlowPatch) -> dict[str, Any]:
    with _open_storage(_load_settings()) as storage:
        _require_flow(storage, flow_id)
        updated = storage.update_flow(flow_id, patch.model_dump(exclude_unset=True))
        if updated is None:
            raise HTTPException(status_code=404, detail="Flow not found")
        return updated.to_json_dict()


@app.delete("/flows/{flow_id}")
def delete_flow(flow_id: str) -> dict[str, Any]:
    with _open_storage(_load_settings()) as storage:
        if not storage.delete_flow(flow_id):
            raise HTTPException(status_code=404, detail="Flow not found")
        return {"deleted": True, "id": flow_id}


@app.post("/flows/{flow_id}/duplicate", status_code=201)
def duplicate_flow(flow_id: str) -> dict[str, Any]:
    with _open_storage(_load_settings()) as storage:
        duplicate = storage.duplicate_flow(flow_id)
        if duplicate is None:
            raise HTTPException(status_code=404, detail="Flow not found")
        return duplicate.to_json_dict()


@app.get("/flows/{flow_id}/export")
def export_flow_document(flow_id: str) -> Response:
    with _open_storage(_load_settings()) as storage:
        flow = _require_flow(storage, flow_id)
    return Response(content=export_flow(flow), media_type="application/json")


@app.get("/flows/{flow_id}/preview")
def preview_flow(flow_id: str) -> dict[str, Any]:
    settings = _load_settings()
    with _open_storage(settings) as storage:
        flow = _require_flow(storage, flow_id)

    validator = GraphValidator(
        build_registry_from_settings(settings),
        strict_properties=settings.STRICT_PROPERTIES,
    )
    try:
        validator.validate(flow).raise_for_error()
    except GraphValidationError as exc:
        raise HTTPException(status_code=422, detail=exc.as_dict()) from exc

    preview = ExecutionOrderResolver().preview(flow)
    return {
        "nodeIds": preview.node_ids,
        "nodes": preview.nodes,
        "estimatedTime": preview.estimated_time_ms,
    }


@app.post("/flows/{flow_id}/runs", status_code=201)
def start_run(flow_id: str, request: RunRequest | None = None) -> dict[str, Any]:
    settings = _load_settings()
    with _open_storage(settings) as storage:
        flow = _require_flow(storage, flow_id)
        controller = RunController.from_settings(settings, run_store=storage.runs)
        trigger_type = request.trigger_type if request is not None else TriggerType.MANUAL
        try:
            run = controller.start(flow, trigger_type=trigger_type)
        except GraphValidationError as exc:
            raise HTTPException(status_code=422, detail=exc.as_dict()) from exc
        except RunPersistenceError as exc:
            logger.error(f"Run {exc.run.id} finished but could not be saved: {exc}")
            raise HTTPException(
                status_code=500,
                detail={**exc.as_dict(), "run": exc.run.to_json_dict()},
            ) from exc
        return run.to_json_dict()


@app.get("/flows/{flow_id}/runs")
def list_flow_runs(flow_id: str) -> list[dict[str, Any]]:
    with _open_storage(_load_settings()) as storage:
        _require_flow(storage, flow_id)
        return [run.to_json_dict() for run in storage.list_flow_runs(flow_id)]


@app.get("/runs/{run_id}")
def get_run(run_id: str) -> dict[str, Any]:
    with _open_storage(_load_settings()) as storage:
        run = storage.get_run(run_id)
        if run is None:
            raise HTTPException(status_code=404, detail="Run not found")
        return run.to_json_dict()


@app.get("/stats")
def get_stats() -> dict[str, Any]:
    with _open_storage(_load_settings()) as storage:
        return storage.get_stats()
