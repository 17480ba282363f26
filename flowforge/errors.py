from __future__ import annotations

from typing import Any


class FlowForgeError(Exception):
    """Base class for engine errors."""

    code = "flowforge_error"

    def as_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": str(self)}


class GraphValidationError(FlowForgeError):
    code = "graph_validation_error"


class DanglingEdge(GraphValidationError):
    code = "dangling_edge"

    def __init__(self, edge_id: str, missing_node_id: str) -> None:
        super().__init__(f"Edge {edge_id} references unknown node: {missing_node_id}")
        self.edge_id = edge_id
        self.missing_node_id = missing_node_id

    def as_dict(self) -> dict[str, Any]:
        return {**super().as_dict(), "edge_id": self.edge_id, "node_id": self.missing_node_id}


class UnknownHandle(GraphValidationError):
    code = "unknown_handle"

    def __init__(self, edge_id: str, handle: str) -> None:
        super().__init__(f"Edge {edge_id} uses undeclared handle: {handle}")
        self.edge_id = edge_id
        self.handle = handle

    def as_dict(self) -> dict[str, Any]:
        return {**super().as_dict(), "edge_id": self.edge_id, "handle": self.handle}


class HandleOverSubscribed(GraphValidationError):
    code = "handle_over_subscribed"

    def __init__(self, edge_id: str, handle: str) -> None:
        super().__init__(
            f"Edge {edge_id} connects to handle {handle}, which accepts a single connection"
        )
        self.edge_id = edge_id
        self.handle = handle

    def as_dict(self) -> dict[str, Any]:
        return {**super().as_dict(), "edge_id": self.edge_id, "handle": self.handle}


class CyclicGraph(GraphValidationError):
    code = "cyclic_graph"

    def __init__(self, node_ids: list[str]) -> None:
        super().__init__(f"Flow graph contains a cycle through: {', '.join(node_ids)}")
        self.node_ids = list(node_ids)

    def as_dict(self) -> dict[str, Any]:
        return {**super().as_dict(), "node_ids": self.node_ids}


class EmptyFlow(GraphValidationError):
    code = "empty_flow"

    def __init__(self) -> None:
        super().__init__("Flow has no nodes to execute")


class InvalidNodeProperties(GraphValidationError):
    code = "invalid_node_properties"

    def __init__(self, node_id: str, errors: list[dict[str, Any]]) -> None:
        super().__init__(f"Node {node_id} has invalid properties")
        self.node_id = node_id
        self.errors = errors

    def as_dict(self) -> dict[str, Any]:
        return {**super().as_dict(), "node_id": self.node_id, "errors": self.errors}


class UnknownNodeKind(FlowForgeError):
    code = "unknown_node_kind"

    def __init__(self, kind: str) -> None:
        super().__init__(f"Unknown node kind: {kind}")
        self.kind = kind


class NodeExecutionError(FlowForgeError):
    code = "node_execution_error"

    def __init__(self, node_id: str, message: str) -> None:
        super().__init__(message)
        self.node_id = node_id


class StorageError(FlowForgeError):
    code = "storage_error"


class RunPersistenceError(StorageError):
    """The run finished but its record could not be saved."""

    code = "run_persistence_error"

    def __init__(self, message: str, run: Any) -> None:
        super().__init__(message)
        self.run = run


class InvalidFlowFormat(FlowForgeError):
    code = "invalid_flow_format"


class InvalidRunTransition(ValueError):
    pass
