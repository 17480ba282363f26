"""
Structural validation of a flow graph before it is executed.
"""
from __future__ import annotations

from collections import deque
from dataclasses import dataclass

from flowforge.errors import (
    CyclicGraph,
    DanglingEdge,
    EmptyFlow,
    GraphValidationError,
    HandleOverSubscribed,
    InvalidNodeProperties,
    UnknownHandle,
)
from flowforge.graph.model import Flow
from flowforge.workflow.registry import NodeRegistry


@dataclass(frozen=True)
class ValidationResult:
    error: GraphValidationError | None = None

    @property
    def valid(self) -> bool:
        return self.error is None

    def raise_for_error(self) -> None:
        if self.error is not None:
            raise self.error


def find_cycle_nodes(flow: Flow) -> list[str]:
    """Nodes that Kahn's algorithm cannot schedule, in declaration order.

    An empty list means the graph is acyclic.
    """
    adjacency = flow.adjacency()
    indegree = {node_id: 0 for node_id in adjacency}
    for targets in adjacency.values():
        for target in targets:
            indegree[target] += 1

    queue = deque(node_id for node_id in adjacency if indegree[node_id] == 0)
    scheduled: set[str] = set()
    while queue:
        node_id = queue.popleft()
        scheduled.add(node_id)
        for target in adjacency[node_id]:
            indegree[target] -= 1
            if indegree[target] == 0:
                queue.append(target)

    return [node_id for node_id in adjacency if node_id not in scheduled]


class GraphValidator:
    """Fail-fast checks: dangling edges, handles, cycles, empty flow.

    Property checks run last and only when ``strict_properties`` is set.
    """

    def __init__(self, registry: NodeRegistry, strict_properties: bool = False) -> None:
        self.registry = registry
        self.strict_properties = strict_properties

    def validate(self, flow: Flow) -> ValidationResult:
        for check in (
            self._check_edge_endpoints,
            self._check_handles,
            self._check_acyclic,
            self._check_not_empty,
        ):
            error = check(flow)
            if error is not None:
                return ValidationResult(error)

        if self.strict_properties:
            error = self._check_properties(flow)
            if error is not None:
                return ValidationResult(error)

        return ValidationResult()

    def _check_edge_endpoints(self, flow: Flow) -> GraphValidationError | None:
        node_ids = set(flow.node_ids())
        for edge in flow.edges:
            if edge.source not in node_ids:
                return DanglingEdge(edge.id, edge.source)
            if edge.target not in node_ids:
                return DanglingEdge(edge.id, edge.target)
        return None

    def _check_handles(self, flow: Flow) -> GraphValidationError | None:
        nodes = {node.id: node for node in flow.nodes}
        connected_targets: set[tuple[str, str]] = set()

        for edge in flow.edges:
            source_definition = self.registry.get(nodes[edge.source].kind)
            if source_definition is not None and edge.source_handle is not None:
                if source_definition.output_handle(edge.source_handle) is None:
                    return UnknownHandle(edge.id, edge.source_handle)

            target_definition = self.registry.get(nodes[edge.target].kind)
            if target_definition is None or edge.target_handle is None:
                continue

            handle = target_definition.input_handle(edge.target_handle)
            if handle is None:
                return UnknownHandle(edge.id, edge.target_handle)

            key = (edge.target, edge.target_handle)
            if key in connected_targets and not handle.multiple:
                return HandleOverSubscribed(edge.id, edge.target_handle)
            connected_targets.add(key)
        return None

    def _check_acyclic(self, flow: Flow) -> GraphValidationError | None:
        cycle_nodes = find_cycle_nodes(flow)
        if cycle_nodes:
            return CyclicGraph(cycle_nodes)
        return None

    def _check_not_empty(self, flow: Flow) -> GraphValidationError | None:
        if not flow.nodes:
            return EmptyFlow()
        return None

    def _check_properties(self, flow: Flow) -> GraphValidationError | None:
        for node in flow.nodes:
            if node.kind not in self.registry:
                continue
            ok, result = self.registry.validate_properties(node.kind, node.properties)
            if not ok:
                return InvalidNodeProperties(node.id, list(result.get("errors", [])))
        return None
