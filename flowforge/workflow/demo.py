from __future__ import annotations

import random
from pathlib import Path

from flowforge.config.settings import Settings
from flowforge.workflow.faults import FaultInjector, NeverFail, RandomFaults
from flowforge.workflow.nodes import ConsoleLogNode, SimulatedNode
from flowforge.workflow.registry import NodeRegistry, load_catalog


def build_demo_registry(
    fault_injector: FaultInjector | None = None,
    min_delay_ms: int = 300,
    max_delay_ms: int = 1500,
    seed: int | None = None,
    catalog_path: str | Path | None = None,
) -> NodeRegistry:
    """Registry binding every catalog kind to a simulated behavior."""
    injector = fault_injector or NeverFail()
    rng = random.Random(seed)
    registry = NodeRegistry()

    for definition in load_catalog(catalog_path):
        node_class = ConsoleLogNode if definition.id == "console-log" else SimulatedNode
        registry.register(
            definition,
            node_class(
                fault_injector=injector,
                min_delay_ms=min_delay_ms,
                max_delay_ms=max_delay_ms,
                rng=rng,
            ),
        )
    return registry


def build_registry_from_settings(
    settings: Settings,
    fault_injector: FaultInjector | None = None,
) -> NodeRegistry:
    injector = fault_injector
    if injector is None and settings.FAULT_RATE > 0.0:
        injector = RandomFaults(settings.FAULT_RATE, seed=settings.FAULT_SEED)

    return build_demo_registry(
        fault_injector=injector,
        min_delay_ms=settings.NODE_MIN_DELAY_MS,
        max_delay_ms=settings.NODE_MAX_DELAY_MS,
        seed=settings.FAULT_SEED,
        catalog_path=settings.CATALOG_PATH,
    )
