from __future__ import annotations

import logging
import time
from dataclasses import dataclass, replace
from typing import Any

from flowforge.controller.context import RunContext
from flowforge.controller.records import LogLevel
from flowforge.errors import NodeExecutionError, UnknownNodeKind
from flowforge.graph.model import FlowNode
from flowforge.workflow.registry import NodeBehavior, NodeRegistry


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NodeResult:
    success: bool
    data: Any = None
    error: str | None = None
    error_code: str | None = None
    message: str | None = None
    duration_ms: int = 0
    attempts: int = 1

    @classmethod
    def ok(cls, data: Any = None, message: str | None = None) -> "NodeResult":
        return cls(success=True, data=data, message=message)

    @classmethod
    def fail(cls, error: str, error_code: str = NodeExecutionError.code, data: Any = None) -> "NodeResult":
        return cls(success=False, error=error, error_code=error_code, data=data)


def _elapsed_ms(started_ns: int) -> int:
    return max(0, time.perf_counter_ns() - started_ns) // 1_000_000


class NodeExecutor:
    def __init__(self, registry: NodeRegistry) -> None:
        self.registry = registry

    def start_message(self, node: FlowNode) -> str:
        behavior = self.registry.get_behavior(node.kind)
        describe = getattr(behavior, "start_message", None)
        if callable(describe):
            resolved_node = node.model_copy(update={"properties": self.registry.resolve_properties(node)})
            return str(describe(resolved_node))
        return f"Executing {node.display_name}"

    def execute(self, node: FlowNode, context: RunContext) -> NodeResult:
        started_ns = time.perf_counter_ns()
        behavior = self.registry.get_behavior(node.kind)
        if behavior is None:
            error = UnknownNodeKind(node.kind)
            return replace(
                NodeResult.fail(str(error), error.code),
                duration_ms=_elapsed_ms(started_ns),
            )

        resolved_node = node.model_copy(update={"properties": self.registry.resolve_properties(node)})
        settings = context.flow.settings
        max_attempts = settings.max_attempts
        retry_delay_s = settings.retry_delay_ms / 1000.0

        attempt = 0
        while True:
            attempt += 1
            result = self._attempt(behavior, resolved_node, context)
            if result.success or attempt >= max_attempts or context.cancelled:
                break

            logger.info(
                "node %s failed attempt %d/%d in run %s: %s",
                node.id,
                attempt,
                max_attempts,
                context.run_id,
                result.error,
            )
            context.log(
                node,
                LogLevel.WARN,
                f"Retrying {node.display_name} after failure "
                f"(attempt {attempt + 1} of {max_attempts}): {result.error}",
                {"attempt": attempt, "maxAttempts": max_attempts, "error": result.error},
            )
            if context.cancel_token.wait(retry_delay_s):
                break

        if result.success:
            context.set_output(node.id, result.data)
        return replace(result, duration_ms=_elapsed_ms(started_ns), attempts=attempt)

    def _attempt(self, behavior: NodeBehavior, node: FlowNode, context: RunContext) -> NodeResult:
        try:
            result = behavior(node, context)
        except NodeExecutionError as exc:
            return NodeResult.fail(str(exc), exc.code)
        except Exception as exc:
            logger.exception("node %s raised in run %s", node.id, context.run_id)
            error = NodeExecutionError(node.id, f"{type(exc).__name__}: {exc}")
            return NodeResult.fail(str(error), error.code)

        if not isinstance(result, NodeResult):
            error = NodeExecutionError(
                node.id,
                f"behavior for {node.kind} returned {type(result).__name__}, expected NodeResult",
            )
            return NodeResult.fail(str(error), error.code)

        if not result.success and result.error_code is None:
            return replace(result, error_code=NodeExecutionError.code)
        return result
