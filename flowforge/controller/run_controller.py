from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from typing import TYPE_CHECKING, Any, Iterable

from flowforge.controller.context import CancellationToken, RunContext
from flowforge.controller.fsm import RunStateMachine
from flowforge.controller.records import (
    SYSTEM_NODE_ID,
    SYSTEM_NODE_NAME,
    LogEntry,
    LogLevel,
    Run,
    RunStatus,
    TriggerType,
)
from flowforge.errors import RunPersistenceError, StorageError
from flowforge.events.emitter import (
    EventEmitter,
    LogAppended,
    NodeCompleted,
    NodeStarted,
    RunCompleted,
    RunEvent,
    Subscriber,
)
from flowforge.graph.model import Flow, FlowNode, utc_now
from flowforge.graph.validator import GraphValidator
from flowforge.workflow.executor import NodeExecutor, NodeResult
from flowforge.workflow.registry import NodeRegistry
from flowforge.workflow.resolver import ExecutionOrderResolver

if TYPE_CHECKING:
    from flowforge.config.settings import Settings
    from flowforge.storage.repositories import RunStore


logger = logging.getLogger(__name__)

EXECUTION_MODES = ("sequential", "parallel")


class _RunSession:
    """Mutable state of one run. Log appends and emission share the emitter lock."""

    def __init__(self, run: Run, emitter: EventEmitter, run_emitter: EventEmitter) -> None:
        self.run = run
        self.fsm = RunStateMachine()
        self._emitter = emitter
        self._run_emitter = run_emitter
        self._last_log_at = None
        self.closed = False

    def close(self) -> None:
        with self._emitter.lock:
            self.closed = True

    def emit(self, event: RunEvent) -> None:
        with self._emitter.lock:
            self._emitter.emit(event)
            self._run_emitter.emit(event)

    def log(
        self,
        node_id: str,
        node_name: str,
        level: LogLevel,
        message: str,
        data: Any = None,
    ) -> LogEntry | None:
        with self._emitter.lock:
            if self.closed:
                logger.warning("run %s is finished; dropped log from %s: %s", self.run.id, node_id, message)
                return None

            created_at = utc_now()
            # Wall clock can step backwards; log order must not.
            if self._last_log_at is not None and created_at < self._last_log_at:
                created_at = self._last_log_at
            self._last_log_at = created_at

            entry = LogEntry(
                run_id=self.run.id,
                node_id=node_id,
                node_name=node_name,
                level=level,
                message=message,
                data=data,
                created_at=created_at,
            )
            self.run.logs.append(entry)
            self.emit(LogAppended(entry))
            return entry

    def system_log(self, level: LogLevel, message: str, data: Any = None) -> LogEntry | None:
        return self.log(SYSTEM_NODE_ID, SYSTEM_NODE_NAME, level, message, data)


class RunController:
    def __init__(
        self,
        registry: NodeRegistry,
        run_store: "RunStore | None" = None,
        emitter: EventEmitter | None = None,
        execution_mode: str = "sequential",
        max_workers: int = 4,
        strict_properties: bool = False,
    ) -> None:
        if execution_mode not in EXECUTION_MODES:
            raise ValueError(f"execution_mode must be one of {', '.join(EXECUTION_MODES)}")
        if max_workers < 1:
            raise ValueError("max_workers must be >= 1")

        self.registry = registry
        self.run_store = run_store
        self.emitter = emitter or EventEmitter()
        self.execution_mode = execution_mode
        self.max_workers = int(max_workers)
        self.validator = GraphValidator(registry, strict_properties=strict_properties)
        self.resolver = ExecutionOrderResolver()
        self.executor = NodeExecutor(registry)

    @classmethod
    def from_settings(
        cls,
        settings: "Settings",
        run_store: "RunStore | None" = None,
        registry: NodeRegistry | None = None,
        emitter: EventEmitter | None = None,
    ) -> "RunController":
        from flowforge.events.sinks import JsonlEventSink
        from flowforge.workflow.demo import build_registry_from_settings

        resolved_emitter = emitter or EventEmitter()
        if settings.EVENT_LOG_PATH:
            resolved_emitter.subscribe(JsonlEventSink(settings.EVENT_LOG_PATH))

        return cls(
            registry=registry or build_registry_from_settings(settings),
            run_store=run_store,
            emitter=resolved_emitter,
            execution_mode=settings.EXECUTION_MODE,
            max_workers=settings.MAX_PARALLEL_NODES,
            strict_properties=settings.STRICT_PROPERTIES,
        )

    def start(
        self,
        flow: Flow,
        trigger_type: TriggerType = TriggerType.MANUAL,
        cancel_token: CancellationToken | None = None,
        subscribers: Iterable[Subscriber] = (),
    ) -> Run:
        """Validate ``flow``, execute it and return the terminal Run.

        Raises the validation error before any Run exists. ``subscribers``
        receive only this run's events, after the shared emitter's.
        """
        self.validator.validate(flow).raise_for_error()

        token = cancel_token or CancellationToken()
        run_emitter = EventEmitter()
        for subscriber in subscribers:
            run_emitter.subscribe(subscriber)

        started_ns = time.perf_counter_ns()
        started_at = utc_now()
        run = Run(
            flow_id=flow.id,
            flow_name=flow.name,
            trigger_type=trigger_type,
            started_at=started_at,
            created_at=started_at,
        )
        session = _RunSession(run, self.emitter, run_emitter)
        session.fsm.transition(RunStatus.RUNNING)
        run.status = RunStatus.RUNNING

        persist = flow.settings.save_to_history and self.run_store is not None
        if persist:
            self.run_store.create(run.model_copy(deep=True))

        logger.info("run %s started for flow %s (%s)", run.id, flow.id, self.execution_mode)
        session.system_log(
            LogLevel.INFO,
            f"Starting flow execution: {flow.name}",
            {"flowId": flow.id, "nodeCount": len(flow.nodes)},
        )

        context = RunContext(
            run_id=run.id,
            flow=flow,
            cancel_token=token,
            log_fn=lambda node, level, message, data: session.log(
                node.id, node.display_name, level, message, data
            ),
        )
        deadline_ns = None
        if flow.settings.timeout is not None:
            deadline_ns = started_ns + flow.settings.timeout * 1_000_000

        try:
            if self.execution_mode == "parallel":
                status, error = self._run_parallel(session, context, flow, deadline_ns)
            else:
                status, error = self._run_sequential(session, context, flow, deadline_ns)
        except Exception as exc:
            logger.exception("run %s aborted", run.id)
            status, error = RunStatus.FAILED, f"Internal error: {exc}"

        return self._finish(session, flow, status, error, started_ns, persist)

    def _interrupted(
        self,
        flow: Flow,
        context: RunContext,
        deadline_ns: int | None,
    ) -> tuple[RunStatus, str] | None:
        if context.cancelled:
            return RunStatus.CANCELLED, "Run cancelled"
        if deadline_ns is not None and time.perf_counter_ns() >= deadline_ns:
            return RunStatus.FAILED, f"Flow timed out after {flow.settings.timeout}ms"
        return None

    def _node_failure(
        self,
        node: FlowNode,
        result: NodeResult,
        context: RunContext,
    ) -> tuple[RunStatus, str]:
        if context.cancelled:
            return RunStatus.CANCELLED, f'Run cancelled during "{node.display_name}"'
        return RunStatus.FAILED, f'Node "{node.display_name}" failed: {result.error}'

    def _run_sequential(
        self,
        session: _RunSession,
        context: RunContext,
        flow: Flow,
        deadline_ns: int | None,
    ) -> tuple[RunStatus, str | None]:
        for node_id in self.resolver.resolve(flow):
            interrupted = self._interrupted(flow, context, deadline_ns)
            if interrupted is not None:
                return interrupted

            node = flow.get_node(node_id)
            result = self._run_node(session, context, node)
            if not result.success:
                return self._node_failure(node, result, context)
        return RunStatus.SUCCESS, None

    def _run_parallel(
        self,
        session: _RunSession,
        context: RunContext,
        flow: Flow,
        deadline_ns: int | None,
    ) -> tuple[RunStatus, str | None]:
        # A failing batch lets its already-dispatched siblings finish; later batches never start.
        with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="flowforge-node") as pool:
            for batch in self.resolver.batches(flow):
                interrupted = self._interrupted(flow, context, deadline_ns)
                if interrupted is not None:
                    return interrupted

                nodes = [flow.get_node(node_id) for node_id in batch]
                if len(nodes) == 1:
                    results = [self._run_node(session, context, nodes[0])]
                else:
                    futures = [pool.submit(self._run_node, session, context, node) for node in nodes]
                    results = [future.result() for future in futures]

                for node, result in zip(nodes, results):
                    if not result.success:
                        return self._node_failure(node, result, context)
        return RunStatus.SUCCESS, None

    def _run_node(self, session: _RunSession, context: RunContext, node: FlowNode) -> NodeResult:
        run_id = session.run.id
        label = node.display_name

        session.emit(NodeStarted(run_id=run_id, node_id=node.id, node_name=label))
        session.log(node.id, label, LogLevel.INFO, self.executor.start_message(node))

        result = self.executor.execute(node, context)

        if result.success:
            if isinstance(result.data, dict):
                data = {**result.data, "durationMs": result.duration_ms}
            elif result.data is None:
                data = {"durationMs": result.duration_ms}
            else:
                data = {"result": result.data, "durationMs": result.duration_ms}
            session.log(node.id, label, LogLevel.INFO, result.message or f"{label} completed", data)
            session.emit(
                NodeCompleted(run_id=run_id, node_id=node.id, success=True, duration_ms=result.duration_ms)
            )
            return result

        error_data: dict[str, Any] = {"error": result.error_code, "message": result.error}
        if isinstance(result.data, dict):
            error_data.update(result.data)
        error_data["durationMs"] = result.duration_ms
        session.log(node.id, label, LogLevel.ERROR, f"Error executing {label}: {result.error}", error_data)
        session.emit(
            NodeCompleted(
                run_id=run_id,
                node_id=node.id,
                success=False,
                duration_ms=result.duration_ms,
                error=result.error,
            )
        )
        logger.info("run %s: node %s failed (%s)", run_id, node.id, result.error_code)
        return result

    def _finish(
        self,
        session: _RunSession,
        flow: Flow,
        status: RunStatus,
        error: str | None,
        started_ns: int,
        persist: bool,
    ) -> Run:
        run = session.run
        duration_ms = max(0, time.perf_counter_ns() - started_ns) // 1_000_000

        if status == RunStatus.SUCCESS:
            session.system_log(
                LogLevel.INFO,
                f"Flow completed successfully in {duration_ms}ms",
                {"durationMs": duration_ms, "status": status.value},
            )
        elif status == RunStatus.CANCELLED:
            session.system_log(
                LogLevel.WARN,
                f"Flow execution cancelled: {error}",
                {"durationMs": duration_ms, "status": status.value},
            )
        else:
            session.system_log(
                LogLevel.ERROR,
                f"Flow execution failed: {error}",
                {"durationMs": duration_ms, "status": status.value},
            )
        session.close()

        session.fsm.transition(status)
        run.status = status
        run.error = error
        run.finished_at = utc_now()
        run.duration_ms = duration_ms
        logger.info("run %s finished: %s in %dms", run.id, status.value, duration_ms)

        persist_error: StorageError | None = None
        if persist:
            try:
                if self.run_store.update(run.id, run) is None:
                    # Evicted from history while running.
                    self.run_store.create(run.model_copy(deep=True))
            except StorageError as exc:
                logger.error("run %s could not be saved: %s", run.id, exc)
                persist_error = exc

        session.emit(RunCompleted(run=run))

        if persist_error is not None:
            raise RunPersistenceError(
                f"Run {run.id} finished with status {status.value} but could not be saved: {persist_error}",
                run,
            ) from persist_error
        return run
