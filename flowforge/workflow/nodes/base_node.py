from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from flowforge.graph.model import FlowNode

if TYPE_CHECKING:
    from flowforge.controller.context import RunContext
    from flowforge.workflow.executor import NodeResult


class BaseNode(ABC):
    def start_message(self, node: FlowNode) -> str:
        return f"Executing {node.display_name}"

    @abstractmethod
    def execute(self, node: FlowNode, context: "RunContext") -> "NodeResult":
        raise NotImplementedError

    def __call__(self, node: FlowNode, context: "RunContext") -> "NodeResult":
        return self.execute(node, context)
