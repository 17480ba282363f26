from __future__ import annotations

import threading
from typing import Any, Callable

from flowforge.controller.records import LogLevel
from flowforge.graph.model import Flow, FlowNode


NodeLogFn = Callable[[FlowNode, LogLevel, str, Any], None]


class CancellationToken:
    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, seconds: float) -> bool:
        """Sleep up to ``seconds``; True when cancelled meanwhile."""
        if seconds <= 0:
            return self._event.is_set()
        return self._event.wait(seconds)


class RunContext:
    """Per-run state handed to node behaviors."""

    def __init__(
        self,
        run_id: str,
        flow: Flow,
        cancel_token: CancellationToken | None = None,
        log_fn: NodeLogFn | None = None,
    ) -> None:
        self.run_id = run_id
        self.flow = flow
        self.cancel_token = cancel_token or CancellationToken()
        self._log_fn = log_fn
        self._outputs: dict[str, Any] = {}
        self._lock = threading.Lock()

    @property
    def cancelled(self) -> bool:
        return self.cancel_token.cancelled

    def log(self, node: FlowNode, level: LogLevel, message: str, data: Any = None) -> None:
        if self._log_fn is not None:
            self._log_fn(node, level, message, data)

    def set_output(self, node_id: str, data: Any) -> None:
        with self._lock:
            self._outputs[node_id] = data

    def get_output(self, node_id: str) -> Any:
        with self._lock:
            return self._outputs.get(node_id)

    def inputs_for(self, node_id: str) -> dict[str, Any]:
        """Outputs of the node's direct predecessors that have completed."""
        with self._lock:
            return {
                source_id: self._outputs[source_id]
                for source_id in self.flow.predecessors(node_id)
                if source_id in self._outputs
            }

    def outputs(self) -> dict[str, Any]:
        with self._lock:
            return dict(self._outputs)
