"""Fault injection strategies consulted by simulated node behaviors."""
from __future__ import annotations

import random
import threading
from collections import OrderedDict
from typing import TYPE_CHECKING, Iterable, Protocol

from flowforge.graph.model import FlowNode

if TYPE_CHECKING:
    from flowforge.controller.context import RunContext


class FaultInjector(Protocol):
    def should_fail(self, node: FlowNode, context: "RunContext") -> bool:
        ...


class NeverFail:
    def should_fail(self, node: FlowNode, context: "RunContext") -> bool:
        return False


class FailNodes:
    """Force every execution of the given node ids to fail."""

    def __init__(self, node_ids: Iterable[str]) -> None:
        self.node_ids = frozenset(node_ids)

    def should_fail(self, node: FlowNode, context: "RunContext") -> bool:
        return node.id in self.node_ids


class FailFirstAttempts:
    """Fail the first ``failures`` attempts of each listed node, then succeed.

    Attempts are counted per run. Counters of only the ``max_runs`` most
    recently seen runs are kept, so one injector can serve many runs.
    """

    def __init__(self, node_ids: Iterable[str], failures: int = 1, max_runs: int = 64) -> None:
        if max_runs < 1:
            raise ValueError("max_runs must be >= 1")
        self.node_ids = frozenset(node_ids)
        self.failures = int(failures)
        self.max_runs = max_runs
        self._attempts: OrderedDict[str, dict[str, int]] = OrderedDict()
        self._lock = threading.Lock()

    def tracked_runs(self) -> list[str]:
        with self._lock:
            return list(self._attempts)

    def should_fail(self, node: FlowNode, context: "RunContext") -> bool:
        if node.id not in self.node_ids:
            return False
        with self._lock:
            run_attempts = self._attempts.get(context.run_id)
            if run_attempts is None:
                run_attempts = self._attempts[context.run_id] = {}
                while len(self._attempts) > self.max_runs:
                    self._attempts.popitem(last=False)
            else:
                self._attempts.move_to_end(context.run_id)
            attempts = run_attempts.get(node.id, 0)
            run_attempts[node.id] = attempts + 1
        return attempts < self.failures


class RandomFaults:
    def __init__(self, rate: float, seed: int | None = None) -> None:
        if not 0.0 <= rate <= 1.0:
            raise ValueError("rate must be within [0.0, 1.0]")
        self.rate = float(rate)
        self._rng = random.Random(seed)
        self._lock = threading.Lock()

    def should_fail(self, node: FlowNode, context: "RunContext") -> bool:
        if self.rate == 0.0:
            return False
        with self._lock:
            return self._rng.random() < self.rate
