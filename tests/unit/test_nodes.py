import random

import pytest

from flowforge.controller.context import CancellationToken, RunContext
from flowforge.controller.records import LogLevel
from flowforge.graph.model import Flow, FlowEdge, FlowNode
from flowforge.workflow.faults import FailNodes
from flowforge.workflow.nodes import ConsoleLogNode, SimulatedNode
from flowforge.workflow.nodes.simulated_node import SIMULATED_ERROR


def _context(flow: Flow, token: CancellationToken | None = None) -> tuple[RunContext, list[tuple]]:
    logs: list[tuple] = []
    context = RunContext(
        run_id="run-1",
        flow=flow,
        cancel_token=token,
        log_fn=lambda node, level, message, data: logs.append((node.id, level, message, data)),
    )
    return context, logs


def _instant(**kwargs) -> SimulatedNode:
    return SimulatedNode(min_delay_ms=0, max_delay_ms=0, rng=random.Random(3), **kwargs)


def test_invalid_delay_range_rejected() -> None:
    with pytest.raises(ValueError):
        SimulatedNode(min_delay_ms=10, max_delay_ms=5)


def test_trigger_completion_message() -> None:
    node = FlowNode(id="t", kind="manual-trigger")
    context, _ = _context(Flow(name="N", nodes=[node]))

    behavior = _instant()
    result = behavior(node, context)

    assert behavior.start_message(node) == "Manual trigger activated"
    assert result.success is True
    assert result.message == "Trigger data passed to next node"
    assert result.data["triggered"] is True


def test_if_node_reports_branch() -> None:
    node = FlowNode(id="if", kind="if-node")
    context, _ = _context(Flow(name="N", nodes=[node]))

    result = _instant().execute(node, context)

    assert result.data["branch"] in ("true", "false")
    assert result.message == f"Condition evaluated: {'TRUE' if result.data['result'] else 'FALSE'}"


def test_unknown_kind_uses_label() -> None:
    node = FlowNode(id="x", kind="custom", label="Custom Step")
    context, _ = _context(Flow(name="N", nodes=[node]))

    behavior = _instant()
    assert behavior.start_message(node) == "Executing Custom Step"
    assert behavior.execute(node, context).message == "Custom Step completed"


def test_injected_fault_returns_demo_error() -> None:
    node = FlowNode(id="a", kind="code-node")
    context, _ = _context(Flow(name="N", nodes=[node]))

    result = _instant(fault_injector=FailNodes(["a"])).execute(node, context)

    assert result.success is False
    assert result.error == SIMULATED_ERROR
    assert result.error_code == "DEMO_ERROR"
    assert result.data == {"error": "DEMO_ERROR", "code": "E001"}


def test_cancelled_token_interrupts_delay() -> None:
    node = FlowNode(id="a", kind="code-node")
    token = CancellationToken()
    token.cancel()
    context, _ = _context(Flow(name="N", nodes=[node]), token)

    result = SimulatedNode(min_delay_ms=1000, max_delay_ms=1000).execute(node, context)

    assert result.success is False
    assert result.error_code == "cancelled"


def test_console_log_writes_run_log_with_inputs() -> None:
    source = FlowNode(id="src", kind="code-node")
    sink = FlowNode(id="log", kind="console-log", properties={"message": "Result ready", "logLevel": "warn"})
    flow = Flow(name="N", nodes=[source, sink], edges=[FlowEdge(id="e", source="src", target="log")])
    context, logs = _context(flow)
    context.set_output("src", {"rows": 2})

    result = ConsoleLogNode(min_delay_ms=0, max_delay_ms=0).execute(sink, context)

    assert result.success is True
    assert result.message == "Data logged"
    assert result.data["itemCount"] == 1
    assert logs == [("log", LogLevel.WARN, "Result ready", {"src": {"rows": 2}})]


def test_console_log_unknown_level_falls_back_to_info() -> None:
    node = FlowNode(id="log", kind="console-log", label="Out", properties={"logLevel": "loud"})
    context, logs = _context(Flow(name="N", nodes=[node]))

    ConsoleLogNode(min_delay_ms=0, max_delay_ms=0).execute(node, context)

    assert logs == [("log", LogLevel.INFO, "Out output", None)]
