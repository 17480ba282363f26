from .base_node import BaseNode
from .console_log_node import ConsoleLogNode
from .simulated_node import SimulatedNode

__all__ = [
    "BaseNode",
    "ConsoleLogNode",
    "SimulatedNode",
]
