from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field

from flowforge.errors import CyclicGraph
from flowforge.graph.model import Flow


ESTIMATED_NODE_MS = 800

_UNVISITED = 0
_IN_PROGRESS = 1
_DONE = 2


@dataclass(frozen=True)
class ExecutionPreview:
    node_ids: list[str] = field(default_factory=list)
    nodes: list[str] = field(default_factory=list)
    estimated_time_ms: int = 0


class ExecutionOrderResolver:
    def resolve(self, flow: Flow) -> list[str]:
        """Linear execution order: every edge source precedes its target.

        Depth-first from each trigger in declaration order; a finished node is
        placed in front of everything finished before it. Siblings and
        triggers are walked last-to-first so that, once prepended, the branch
        declared first runs first. Nodes no trigger reaches are appended in
        declaration order.
        """
        adjacency = flow.adjacency()
        triggers = [node.id for node in flow.trigger_nodes()]
        state = {node_id: _UNVISITED for node_id in adjacency}
        ordered: deque[str] = deque()

        for trigger_id in reversed(triggers):
            if state[trigger_id] == _UNVISITED:
                self._visit(trigger_id, adjacency, state, ordered)

        resolved = list(ordered)
        resolved.extend(node_id for node_id in adjacency if state[node_id] == _UNVISITED)
        return resolved

    def _visit(
        self,
        start_id: str,
        adjacency: dict[str, list[str]],
        state: dict[str, int],
        ordered: deque[str],
    ) -> None:
        state[start_id] = _IN_PROGRESS
        stack: list[tuple[str, list[str]]] = [(start_id, list(reversed(adjacency[start_id])))]

        while stack:
            node_id, pending = stack[-1]
            if not pending:
                stack.pop()
                state[node_id] = _DONE
                ordered.appendleft(node_id)
                continue

            child_id = pending.pop(0)
            if state[child_id] == _IN_PROGRESS:
                path = [entry[0] for entry in stack]
                raise CyclicGraph(path[path.index(child_id):])
            if state[child_id] == _UNVISITED:
                state[child_id] = _IN_PROGRESS
                stack.append((child_id, list(reversed(adjacency[child_id]))))

    def batches(self, flow: Flow) -> list[list[str]]:
        """Kahn ready-batches: each batch depends only on earlier batches."""
        adjacency = flow.adjacency()
        indegree = {node_id: 0 for node_id in adjacency}
        for targets in adjacency.values():
            for target in targets:
                indegree[target] += 1

        ready = [node_id for node_id in adjacency if indegree[node_id] == 0]
        position = {node_id: index for index, node_id in enumerate(adjacency)}
        batches: list[list[str]] = []
        scheduled = 0

        while ready:
            batches.append(ready)
            scheduled += len(ready)
            next_ready: list[str] = []
            for node_id in ready:
                for target in adjacency[node_id]:
                    indegree[target] -= 1
                    if indegree[target] == 0:
                        next_ready.append(target)
            ready = sorted(next_ready, key=position.__getitem__)

        if scheduled != len(adjacency):
            raise CyclicGraph([node_id for node_id in adjacency if indegree[node_id] > 0])

        return batches

    def preview(self, flow: Flow) -> ExecutionPreview:
        if not flow.nodes:
            return ExecutionPreview()

        order = self.resolve(flow)
        labels = []
        for node_id in order:
            node = flow.get_node(node_id)
            labels.append(node.display_name if node is not None else node_id)

        return ExecutionPreview(
            node_ids=order,
            nodes=labels,
            estimated_time_ms=len(order) * ESTIMATED_NODE_MS,
        )
