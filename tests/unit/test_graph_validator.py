import pytest

from flowforge.errors import (
    CyclicGraph,
    DanglingEdge,
    EmptyFlow,
    HandleOverSubscribed,
    InvalidNodeProperties,
    UnknownHandle,
)
from flowforge.graph.model import Flow, FlowEdge, FlowNode
from flowforge.graph.validator import GraphValidator, find_cycle_nodes
from flowforge.workflow.demo import build_demo_registry


def _validator(strict: bool = False) -> GraphValidator:
    return GraphValidator(build_demo_registry(min_delay_ms=0, max_delay_ms=0), strict_properties=strict)


def _edge(source: str, target: str, source_handle: str | None = None, target_handle: str | None = None) -> FlowEdge:
    return FlowEdge(
        id=f"{source}->{target}:{target_handle}",
        source=source,
        source_handle=source_handle,
        target=target,
        target_handle=target_handle,
    )


def test_valid_flow_passes() -> None:
    flow = Flow(
        name="Valid",
        nodes=[
            FlowNode(id="t", kind="manual-trigger"),
            FlowNode(id="a", kind="http-request"),
            FlowNode(id="b", kind="console-log"),
        ],
        edges=[_edge("t", "a", "output", "input"), _edge("a", "b", "output", "input")],
    )
    result = _validator().validate(flow)
    assert result.valid is True
    result.raise_for_error()


def test_dangling_edge_rejected() -> None:
    flow = Flow(
        name="Dangling",
        nodes=[FlowNode(id="a", kind="manual-trigger")],
        edges=[_edge("a", "ghost")],
    )
    result = _validator().validate(flow)
    assert isinstance(result.error, DanglingEdge)
    assert result.error.missing_node_id == "ghost"


def test_unknown_source_handle_rejected() -> None:
    flow = Flow(
        name="Handles",
        nodes=[FlowNode(id="a", kind="code-node"), FlowNode(id="b", kind="code-node")],
        edges=[_edge("a", "b", "bogus", "input")],
    )
    error = _validator().validate(flow).error
    assert isinstance(error, UnknownHandle)
    assert error.handle == "bogus"


def test_unknown_target_handle_rejected() -> None:
    flow = Flow(
        name="Handles",
        nodes=[FlowNode(id="a", kind="manual-trigger"), FlowNode(id="b", kind="code-node")],
        edges=[_edge("a", "b", "output", "nowhere")],
    )
    assert isinstance(_validator().validate(flow).error, UnknownHandle)


def test_if_node_branch_handles_accepted() -> None:
    flow = Flow(
        name="Branches",
        nodes=[
            FlowNode(id="t", kind="manual-trigger"),
            FlowNode(id="if", kind="if-node"),
            FlowNode(id="yes", kind="console-log"),
            FlowNode(id="no", kind="console-log"),
        ],
        edges=[
            _edge("t", "if", "output", "input"),
            _edge("if", "yes", "true", "input"),
            _edge("if", "no", "false", "input"),
        ],
    )
    assert _validator().validate(flow).valid is True


def test_single_input_handle_over_subscribed() -> None:
    flow = Flow(
        name="Merge",
        nodes=[
            FlowNode(id="a", kind="manual-trigger"),
            FlowNode(id="b", kind="manual-trigger"),
            FlowNode(id="m", kind="merge-node"),
        ],
        edges=[_edge("a", "m", "output", "input1"), _edge("b", "m", "output", "input1")],
    )
    error = _validator().validate(flow).error
    assert isinstance(error, HandleOverSubscribed)
    assert error.handle == "input1"


def test_cycle_rejected_with_cycle_members() -> None:
    flow = Flow(
        name="Cycle",
        nodes=[
            FlowNode(id="t", kind="manual-trigger"),
            FlowNode(id="A", kind="code-node"),
            FlowNode(id="B", kind="code-node"),
            FlowNode(id="C", kind="code-node"),
        ],
        edges=[_edge("t", "A"), _edge("A", "B"), _edge("B", "C"), _edge("C", "A")],
    )
    error = _validator().validate(flow).error
    assert isinstance(error, CyclicGraph)
    assert error.node_ids == ["A", "B", "C"]

    with pytest.raises(CyclicGraph):
        _validator().validate(flow).raise_for_error()


def test_find_cycle_nodes_empty_for_dag() -> None:
    flow = Flow(
        name="Dag",
        nodes=[FlowNode(id="a", kind="code-node"), FlowNode(id="b", kind="code-node")],
        edges=[_edge("a", "b")],
    )
    assert find_cycle_nodes(flow) == []


def test_empty_flow_rejected() -> None:
    assert isinstance(_validator().validate(Flow(name="Empty")).error, EmptyFlow)


def test_unknown_kind_passes_structural_checks() -> None:
    flow = Flow(name="Custom", nodes=[FlowNode(id="x", kind="custom-kind")])
    assert _validator().validate(flow).valid is True


def test_strict_properties_reports_invalid_select() -> None:
    flow = Flow(
        name="Props",
        nodes=[FlowNode(id="h", kind="http-request", properties={"method": "TRACE", "url": "https://x"})],
    )
    assert _validator(strict=False).validate(flow).valid is True

    error = _validator(strict=True).validate(flow).error
    assert isinstance(error, InvalidNodeProperties)
    assert error.node_id == "h"
    assert error.errors
    assert error.as_dict()["code"] == "invalid_node_properties"
