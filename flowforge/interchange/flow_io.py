"""
JSON export and import of flow documents.

Exported documents drop the flow id, status and timestamps; importing always
produces a fresh draft flow with a new id.
"""
from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from flowforge.errors import InvalidFlowFormat
from flowforge.graph.model import Flow, FlowStatus, utc_now

if TYPE_CHECKING:
    from flowforge.graph.validator import GraphValidator


logger = logging.getLogger(__name__)

EXPORT_FORMAT_VERSION = "1.0.0"


def export_document(flow: Flow) -> dict[str, Any]:
    payload = flow.to_json_dict()
    return {
        "name": payload["name"],
        "description": payload["description"],
        "nodes": payload["nodes"],
        "edges": payload["edges"],
        "settings": payload["settings"],
        "exportedAt": utc_now().isoformat(),
        "version": EXPORT_FORMAT_VERSION,
    }


def export_flow(flow: Flow) -> str:
    return json.dumps(export_document(flow), indent=2)


def import_flow(text: str, validator: "GraphValidator | None" = None) -> Flow:
    try:
        document = json.loads(text)
    except (TypeError, ValueError) as exc:
        raise InvalidFlowFormat(f"Invalid flow format: {exc}") from exc

    if not isinstance(document, dict):
        raise InvalidFlowFormat("Invalid flow format: expected a JSON object")
    if not document.get("name"):
        raise InvalidFlowFormat("Invalid flow format: missing name")
    if not isinstance(document.get("nodes"), list) or not isinstance(document.get("edges"), list):
        raise InvalidFlowFormat("Invalid flow format: nodes and edges must be arrays")

    try:
        flow = Flow.model_validate(
            {
                "name": document["name"],
                "description": document.get("description") or "",
                "nodes": document["nodes"],
                "edges": document["edges"],
                "settings": document.get("settings") or {},
                "status": FlowStatus.DRAFT,
            }
        )
    except ValidationError as exc:
        raise InvalidFlowFormat(f"Invalid flow format: {exc.error_count()} invalid field(s)") from exc

    if validator is not None:
        validator.validate(flow).raise_for_error()

    logger.debug("imported flow %s with %d node(s)", flow.id, len(flow.nodes))
    return flow
