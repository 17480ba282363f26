from .registry import NodeDefinition, NodeRegistry, load_catalog
from .executor import NodeExecutor, NodeResult
from .resolver import ExecutionOrderResolver, ExecutionPreview
from .nodes.base_node import BaseNode
from .nodes.console_log_node import ConsoleLogNode
from .nodes.simulated_node import SimulatedNode

__all__ = [
    "BaseNode",
    "ConsoleLogNode",
    "ExecutionOrderResolver",
    "ExecutionPreview",
    "NodeDefinition",
    "NodeExecutor",
    "NodeRegistry",
    "NodeResult",
    "SimulatedNode",
    "load_catalog",
]
