from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def new_id(prefix: str) -> str:
    return f"{prefix}-{uuid4().hex[:10]}"


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class FlowStatus(str, Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    PAUSED = "paused"
    ARCHIVED = "archived"


class Position(CamelModel):
    x: float = 0.0
    y: float = 0.0


class FlowNode(CamelModel):
    id: str = Field(min_length=1)
    kind: str = Field(min_length=1)
    label: str = ""
    properties: dict[str, Any] = Field(default_factory=dict)
    position: Position = Field(default_factory=Position)

    @model_validator(mode="before")
    @classmethod
    def normalize_editor_shape(cls, value: Any) -> Any:
        # Editor documents keep the kind under data.nodeType and use `type` for the category.
        if not isinstance(value, dict) or "kind" in value:
            return value

        normalized = dict(value)
        data = value.get("data")
        if isinstance(data, dict):
            normalized["kind"] = data.get("nodeType") or value.get("nodeType") or value.get("type")
            if not normalized.get("label") and data.get("label"):
                normalized["label"] = data["label"]
            if "properties" not in normalized and isinstance(data.get("properties"), dict):
                normalized["properties"] = data["properties"]
        else:
            normalized["kind"] = value.get("nodeType") or value.get("type")
        return normalized

    @property
    def display_name(self) -> str:
        return self.label or self.kind


class FlowEdge(CamelModel):
    id: str = Field(min_length=1)
    source: str
    source_handle: str | None = None
    target: str
    target_handle: str | None = None


class FlowSettings(CamelModel):
    timeout: int | None = Field(default=None, ge=1)
    retry_on_fail: bool = False
    retry_count: int = Field(default=0, ge=0)
    retry_delay_ms: int = Field(default=0, ge=0)
    save_to_history: bool = True
    notify_on_success: bool = False
    notify_on_failure: bool = False

    @property
    def max_attempts(self) -> int:
        return 1 + self.retry_count if self.retry_on_fail else 1


class Flow(CamelModel):
    id: str = Field(default_factory=lambda: new_id("flow"))
    name: str = Field(min_length=1)
    description: str = ""
    nodes: list[FlowNode] = Field(default_factory=list)
    edges: list[FlowEdge] = Field(default_factory=list)
    settings: FlowSettings = Field(default_factory=FlowSettings)
    status: FlowStatus = FlowStatus.DRAFT
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @model_validator(mode="after")
    def check_unique_ids(self) -> "Flow":
        seen_nodes: set[str] = set()
        for node in self.nodes:
            if node.id in seen_nodes:
                raise ValueError(f"duplicate node id: {node.id}")
            seen_nodes.add(node.id)

        seen_edges: set[str] = set()
        for edge in self.edges:
            if edge.id in seen_edges:
                raise ValueError(f"duplicate edge id: {edge.id}")
            seen_edges.add(edge.id)
        return self

    def node_ids(self) -> list[str]:
        return [node.id for node in self.nodes]

    def get_node(self, node_id: str) -> FlowNode | None:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def incoming_edges(self, node_id: str) -> list[FlowEdge]:
        return [edge for edge in self.edges if edge.target == node_id]

    def outgoing_edges(self, node_id: str) -> list[FlowEdge]:
        return [edge for edge in self.edges if edge.source == node_id]

    def successors(self, node_id: str) -> list[str]:
        return _unique(edge.target for edge in self.outgoing_edges(node_id))

    def predecessors(self, node_id: str) -> list[str]:
        return _unique(edge.source for edge in self.incoming_edges(node_id))

    def adjacency(self) -> dict[str, list[str]]:
        """Successor ids per node, in edge declaration order, for edges between known nodes."""
        adjacency: dict[str, list[str]] = {node.id: [] for node in self.nodes}
        for edge in self.edges:
            if edge.source not in adjacency or edge.target not in adjacency:
                continue
            if edge.target not in adjacency[edge.source]:
                adjacency[edge.source].append(edge.target)
        return adjacency

    def trigger_nodes(self) -> list[FlowNode]:
        targets = {edge.target for edge in self.edges}
        return [node for node in self.nodes if node.id not in targets]

    def without_node(self, node_id: str) -> "Flow":
        return self.model_copy(
            update={
                "nodes": [node for node in self.nodes if node.id != node_id],
                "edges": [
                    edge
                    for edge in self.edges
                    if edge.source != node_id and edge.target != node_id
                ],
                "updated_at": utc_now(),
            }
        )


def _unique(values: Any) -> list[str]:
    ordered: list[str] = []
    for value in values:
        if value not in ordered:
            ordered.append(value)
    return ordered
