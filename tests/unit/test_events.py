import json
from pathlib import Path

from flowforge.controller.records import LogEntry, LogLevel, Run, RunStatus
from flowforge.events.emitter import (
    EventEmitter,
    LogAppended,
    NodeCompleted,
    NodeStarted,
    RunCallbacks,
    RunCompleted,
)
from flowforge.events.sinks import EventRecorder, JsonlEventSink, QueueChannel


def _log_entry(node_id: str = "a") -> LogEntry:
    return LogEntry(run_id="run-1", node_id=node_id, node_name="A", level=LogLevel.INFO, message="hello")


def test_emitter_delivers_in_order_to_all_subscribers() -> None:
    emitter = EventEmitter()
    first = EventRecorder()
    second = EventRecorder()
    emitter.subscribe(first)
    emitter.subscribe(second)

    emitter.emit(NodeStarted(run_id="run-1", node_id="a", node_name="A"))
    emitter.emit(NodeCompleted(run_id="run-1", node_id="a", success=True, duration_ms=4))

    assert first.types() == ["node-start", "node-complete"]
    assert second.types() == first.types()


def test_unsubscribe_stops_delivery() -> None:
    emitter = EventEmitter()
    recorder = EventRecorder()
    unsubscribe = emitter.subscribe(recorder)

    emitter.emit(NodeStarted(run_id="run-1", node_id="a", node_name="A"))
    unsubscribe()
    emitter.emit(NodeStarted(run_id="run-1", node_id="b", node_name="B"))

    assert [event.node_id for event in recorder.events] == ["a"]


def test_failing_subscriber_does_not_block_others(caplog) -> None:
    emitter = EventEmitter()
    recorder = EventRecorder()

    def _broken(event) -> None:
        raise RuntimeError("subscriber down")

    emitter.subscribe(_broken)
    emitter.subscribe(recorder)
    emitter.emit(NodeStarted(run_id="run-1", node_id="a", node_name="A"))

    assert recorder.types() == ["node-start"]
    assert "event subscriber" in caplog.text


def test_event_payloads() -> None:
    completed = NodeCompleted(run_id="run-1", node_id="a", success=False, duration_ms=7, error="bad")
    assert completed.to_dict() == {
        "type": "node-complete",
        "runId": "run-1",
        "nodeId": "a",
        "success": False,
        "durationMs": 7,
        "error": "bad",
    }

    appended = LogAppended(entry=_log_entry()).to_dict()
    assert appended["type"] == "log"
    assert appended["entry"]["nodeName"] == "A"


def test_run_callbacks_adapt_events() -> None:
    calls: list[tuple] = []
    callbacks = RunCallbacks(
        on_node_start=lambda node_id: calls.append(("start", node_id)),
        on_node_complete=lambda node_id, success: calls.append(("complete", node_id, success)),
        on_log=lambda entry: calls.append(("log", entry["message"], entry.get("nodeId"))),
        on_complete=lambda run: calls.append(("done", run.status)),
    )

    callbacks(NodeStarted(run_id="run-1", node_id="a", node_name="A"))
    callbacks(LogAppended(entry=_log_entry()))
    callbacks(LogAppended(entry=_log_entry("system")))
    callbacks(NodeCompleted(run_id="run-1", node_id="a", success=True))
    callbacks(RunCompleted(run=Run(flow_id="f", flow_name="F", status=RunStatus.SUCCESS)))

    assert calls == [
        ("start", "a"),
        ("log", "hello", "a"),
        ("log", "hello", None),
        ("complete", "a", True),
        ("done", RunStatus.SUCCESS),
    ]


def test_partial_callbacks_ignore_missing_handlers() -> None:
    RunCallbacks()(NodeStarted(run_id="run-1", node_id="a", node_name="A"))


def test_queue_channel_drains_until_run_complete() -> None:
    channel = QueueChannel()
    emitter = EventEmitter()
    emitter.subscribe(channel)

    emitter.emit(NodeStarted(run_id="run-1", node_id="a", node_name="A"))
    emitter.emit(RunCompleted(run=Run(flow_id="f", flow_name="F")))
    emitter.emit(NodeStarted(run_id="run-2", node_id="b", node_name="B"))

    drained = [event.type for event in channel.drain(timeout=1)]
    assert drained == ["node-start", "run-complete"]
    assert channel.pending() == 1


def test_jsonl_sink_appends_lines(tmp_path: Path) -> None:
    sink = JsonlEventSink(tmp_path / "events" / "run.jsonl")
    sink(NodeStarted(run_id="run-1", node_id="a", node_name="A"))
    sink(LogAppended(entry=_log_entry()))

    lines = (tmp_path / "events" / "run.jsonl").read_text(encoding="utf-8").splitlines()
    assert len(lines) == 2
    assert json.loads(lines[0])["type"] == "node-start"
    assert [event["type"] for event in sink.read_events("log")] == ["log"]


def test_jsonl_sink_missing_file_reads_empty(tmp_path: Path) -> None:
    assert JsonlEventSink(tmp_path / "none.jsonl").read_events() == []
