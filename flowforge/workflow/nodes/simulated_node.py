"""
Demo node behavior: bounded random latency, canned per-kind messages and
optional fault injection. No external calls are made.
"""
from __future__ import annotations

import random
import threading
from typing import TYPE_CHECKING, Any

from flowforge.graph.model import FlowNode, utc_now
from flowforge.workflow.executor import NodeResult
from flowforge.workflow.faults import FaultInjector, NeverFail

from .base_node import BaseNode

if TYPE_CHECKING:
    from flowforge.controller.context import RunContext


SIMULATED_ERROR = "Simulated failure for demo purposes"
SIMULATED_ERROR_CODE = "DEMO_ERROR"
CANCELLED_CODE = "cancelled"


class SimulatedNode(BaseNode):
    def __init__(
        self,
        fault_injector: FaultInjector | None = None,
        min_delay_ms: int = 300,
        max_delay_ms: int = 1500,
        rng: random.Random | None = None,
    ) -> None:
        if min_delay_ms < 0 or max_delay_ms < min_delay_ms:
            raise ValueError("delay range must satisfy 0 <= min_delay_ms <= max_delay_ms")
        self.fault_injector = fault_injector or NeverFail()
        self.min_delay_ms = int(min_delay_ms)
        self.max_delay_ms = int(max_delay_ms)
        self._rng = rng or random.Random()
        self._rng_lock = threading.Lock()

    def _randint(self, low: int, high: int) -> int:
        with self._rng_lock:
            return self._rng.randint(low, high)

    def _delay_seconds(self) -> float:
        if self.max_delay_ms == 0:
            return 0.0
        with self._rng_lock:
            return self._rng.uniform(self.min_delay_ms, self.max_delay_ms) / 1000.0

    def start_message(self, node: FlowNode) -> str:
        kind = node.kind
        props = node.properties
        if kind == "manual-trigger":
            return "Manual trigger activated"
        if kind == "webhook-trigger":
            return "Webhook received incoming request"
        if kind == "schedule-trigger":
            return "Schedule trigger activated"
        if kind == "http-request":
            return f"Making HTTP request to {props.get('url') or 'API endpoint'}"
        if kind == "ai-completion":
            return "Sending request to AI model"
        if kind == "json-transform":
            return "Transforming JSON data"
        if kind == "code-node":
            return "Executing custom code"
        if kind == "if-node":
            return "Evaluating condition"
        if kind == "switch-node":
            return "Evaluating switch conditions"
        if kind == "merge-node":
            return "Merging input data streams"
        if kind == "console-log":
            return "Logging data to console"
        if kind == "email-node":
            return "Preparing email for delivery"
        if kind == "telegram-node":
            return "Sending Telegram message"
        return super().start_message(node)

    def completion(self, node: FlowNode, context: "RunContext") -> tuple[str, Any]:
        kind = node.kind
        props = node.properties
        if kind == "manual-trigger":
            return "Trigger data passed to next node", {
                "triggered": True,
                "timestamp": utc_now().isoformat(),
            }
        if kind == "webhook-trigger":
            return "Webhook payload processed", {
                "method": props.get("method", "POST"),
                "path": props.get("path", "/webhook"),
                "body": {"event": "demo"},
            }
        if kind == "schedule-trigger":
            return "Schedule executed on time", {
                "schedule": props.get("schedule", "0 9 * * *"),
                "lastRun": utc_now().isoformat(),
            }
        if kind == "http-request":
            return "HTTP request completed successfully", {
                "statusCode": 200,
                "responseTime": self._randint(100, 600),
            }
        if kind == "ai-completion":
            return "AI response generated", {
                "model": props.get("model", "gpt-4"),
                "tokens": self._randint(100, 600),
            }
        if kind == "json-transform":
            return "Data transformation complete", {"itemsProcessed": self._randint(1, 10)}
        if kind == "code-node":
            return "Code execution finished", {"executionTime": f"{self._randint(0, 99)}ms"}
        if kind == "if-node":
            result = self._randint(0, 1) == 1
            return f"Condition evaluated: {'TRUE' if result else 'FALSE'}", {
                "result": result,
                "branch": "true" if result else "false",
            }
        if kind == "switch-node":
            return "Switch routing complete", {"matchedCase": "case_1"}
        if kind == "merge-node":
            inputs = context.inputs_for(node.id)
            return "Data merged successfully", {
                "inputCount": len(inputs),
                "mode": props.get("mode", "append"),
            }
        if kind == "email-node":
            return "Email sent successfully", {
                "to": props.get("to") or "demo@example.com",
                "subject": props.get("subject") or "FlowForge Notification",
            }
        if kind == "telegram-node":
            return "Message delivered", {
                "chatId": props.get("chatId") or "12345678",
                "messageId": self._randint(0, 9999),
            }
        return f"{node.display_name} completed", {"processed": True}

    def execute(self, node: FlowNode, context: "RunContext") -> NodeResult:
        if context.cancel_token.wait(self._delay_seconds()):
            return NodeResult.fail("Execution cancelled", CANCELLED_CODE)

        if self.fault_injector.should_fail(node, context):
            return NodeResult.fail(
                SIMULATED_ERROR,
                SIMULATED_ERROR_CODE,
                data={"error": SIMULATED_ERROR_CODE, "code": "E001"},
            )

        message, data = self.completion(node, context)
        return NodeResult.ok(data=data, message=message)
