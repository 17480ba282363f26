from __future__ import annotations

from typing import TYPE_CHECKING, Any

from flowforge.controller.records import LogLevel
from flowforge.graph.model import FlowNode

from .simulated_node import SimulatedNode

if TYPE_CHECKING:
    from flowforge.controller.context import RunContext


class ConsoleLogNode(SimulatedNode):
    """Writes its message into the run log at the configured level."""

    def completion(self, node: FlowNode, context: "RunContext") -> tuple[str, Any]:
        props = node.properties
        try:
            level = LogLevel(str(props.get("logLevel", "info")))
        except ValueError:
            level = LogLevel.INFO

        inputs = context.inputs_for(node.id)
        message = str(props.get("message") or "").strip() or f"{node.display_name} output"
        context.log(node, level, message, inputs or None)

        data: dict[str, Any] = {"logLevel": level.value, "itemCount": len(inputs)}
        if bool(props.get("passthrough", True)):
            data["items"] = inputs
        return "Data logged", data
