from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable, Literal, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, create_model

from flowforge.graph.model import CamelModel, FlowNode

if TYPE_CHECKING:
    from flowforge.controller.context import RunContext
    from flowforge.workflow.executor import NodeResult


DEFAULT_CATALOG_PATH = Path(__file__).resolve().parents[1] / "catalog" / "nodes.yaml"

NodeBehavior = Callable[[FlowNode, "RunContext"], "NodeResult"]


class NodeCategory(str, Enum):
    TRIGGER = "trigger"
    ACTION = "action"
    LOGIC = "logic"
    OUTPUT = "output"
    TRANSFORM = "transform"


PropertyType = Literal[
    "string",
    "text",
    "number",
    "boolean",
    "select",
    "multiSelect",
    "json",
    "code",
    "expression",
    "credential",
]


class HandleDefinition(CamelModel):
    id: str
    type: Literal["input", "output"]
    label: str = ""
    data_type: str = "any"
    multiple: bool = False


class PropertyOption(CamelModel):
    name: str
    value: str | int | float
    description: str = ""


class PropertyDefinition(CamelModel):
    name: str
    display_name: str = ""
    type: PropertyType
    description: str = ""
    required: bool = False
    default: Any = None
    placeholder: str = ""
    min: float | None = None
    max: float | None = None
    options: list[PropertyOption] = Field(default_factory=list)


class NodeDefinition(CamelModel):
    id: str = Field(min_length=1)
    name: str
    description: str = ""
    category: NodeCategory
    icon: str = ""
    version: int = 1
    inputs: list[HandleDefinition] = Field(default_factory=list)
    outputs: list[HandleDefinition] = Field(default_factory=list)
    properties: list[PropertyDefinition] = Field(default_factory=list)
    defaults: dict[str, Any] = Field(default_factory=dict)

    def input_handle(self, handle_id: str) -> HandleDefinition | None:
        for handle in self.inputs:
            if handle.id == handle_id:
                return handle
        return None

    def output_handle(self, handle_id: str) -> HandleDefinition | None:
        for handle in self.outputs:
            if handle.id == handle_id:
                return handle
        return None


class NodeRegistryError(Exception):
    """Raised for registry lookup failures."""


_SCALAR_TYPES: dict[str, Any] = {
    "string": str,
    "text": str,
    "code": str,
    "expression": str,
    "credential": str,
    "number": float,
    "boolean": bool,
    "json": Any,
}


def _property_annotation(prop: PropertyDefinition) -> Any:
    option_values = tuple(option.value for option in prop.options)
    if prop.type == "select" and option_values:
        return Literal[option_values]
    if prop.type == "multiSelect":
        if option_values:
            return list[Literal[option_values]]
        return list[Any]
    return _SCALAR_TYPES.get(prop.type, Any)


def _compile_property_model(definition: NodeDefinition) -> type[BaseModel]:
    fields: dict[str, Any] = {}
    for prop in definition.properties:
        annotation = _property_annotation(prop)
        constraints: dict[str, Any] = {}
        if prop.type == "number":
            if prop.min is not None:
                constraints["ge"] = prop.min
            if prop.max is not None:
                constraints["le"] = prop.max

        if prop.required:
            fields[prop.name] = (annotation, Field(..., **constraints))
        else:
            fields[prop.name] = (Optional[annotation], Field(default=prop.default, **constraints))

    model_name = "".join(part.capitalize() for part in definition.id.replace("_", "-").split("-"))
    return create_model(
        f"{model_name}Properties",
        __config__=ConfigDict(extra="allow"),
        **fields,
    )


def load_catalog(catalog_path: str | Path | None = None) -> list[NodeDefinition]:
    path = Path(catalog_path) if catalog_path is not None else DEFAULT_CATALOG_PATH
    if not path.exists():
        return []

    content = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    loaded = content.get("nodes", [])
    if not isinstance(loaded, list):
        return []
    return [NodeDefinition.model_validate(item) for item in loaded if isinstance(item, dict)]


class NodeRegistry:
    def __init__(self) -> None:
        self._definitions: dict[str, NodeDefinition] = {}
        self._behaviors: dict[str, NodeBehavior] = {}
        self._property_models: dict[str, type[BaseModel]] = {}

    def register(self, definition: NodeDefinition, behavior: NodeBehavior) -> None:
        if definition.id in self._definitions:
            raise ValueError(f"Node kind already registered: {definition.id}")
        self._definitions[definition.id] = definition
        self._behaviors[definition.id] = behavior

    def get(self, kind: str) -> NodeDefinition | None:
        return self._definitions.get(kind)

    def get_behavior(self, kind: str) -> NodeBehavior | None:
        return self._behaviors.get(kind)

    def __contains__(self, kind: object) -> bool:
        return kind in self._definitions

    def list_definitions(self) -> list[NodeDefinition]:
        return [self._definitions[kind] for kind in sorted(self._definitions.keys())]

    def _property_model(self, kind: str) -> type[BaseModel]:
        model = self._property_models.get(kind)
        if model is None:
            definition = self._definitions[kind]
            model = _compile_property_model(definition)
            self._property_models[kind] = model
        return model

    def resolve_properties(self, node: FlowNode) -> dict[str, Any]:
        definition = self.get(node.kind)
        if definition is None:
            return dict(node.properties)

        resolved = {
            prop.name: prop.default
            for prop in definition.properties
            if prop.default is not None
        }
        resolved.update(definition.defaults)
        resolved.update(node.properties)
        return resolved

    def validate_properties(self, kind: str, properties: dict[str, Any]) -> tuple[bool, dict[str, Any]]:
        definition = self.get(kind)
        if definition is None:
            return False, {
                "code": "unknown_node_kind",
                "kind": kind,
                "message": f"Unknown node kind: {kind}",
                "errors": [],
            }

        merged = dict(definition.defaults)
        merged.update(properties)
        try:
            validated = self._property_model(kind).model_validate(merged)
            return True, validated.model_dump()
        except ValidationError as exc:
            return False, {
                "code": "validation_error",
                "kind": kind,
                "message": "Property validation failed",
                "errors": exc.errors(include_url=False, include_context=False),
            }

    def export_definition(self, kind: str) -> dict[str, Any]:
        definition = self.get(kind)
        if definition is None:
            raise NodeRegistryError(f"Node kind not found: {kind}")

        return {
            **definition.to_json_dict(),
            "propertiesSchema": self._property_model(kind).model_json_schema(),
        }

    def export_all_definitions(self) -> list[dict[str, Any]]:
        return [self.export_definition(kind) for kind in sorted(self._definitions.keys())]
