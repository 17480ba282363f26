import sys

from flowforge.config.log_setup import configure_logging
from flowforge.config.settings import Settings
from flowforge.controller.records import RunStatus
from flowforge.controller.run_controller import RunController
from flowforge.errors import FlowForgeError, GraphValidationError
from flowforge.events.emitter import LogAppended, NodeCompleted, NodeStarted, RunCompleted, RunEvent
from flowforge.interchange.flow_io import import_flow
from flowforge.workflow.demo import build_demo_registry
from flowforge.workflow.faults import FailNodes, RandomFaults


USAGE = "usage: run_flow.py <flow.json> [--parallel] [--fail NODE_ID]... [--no-delay] [--seed N]"


def parse_args(argv: list[str]) -> dict:
    options: dict = {"path": None, "parallel": False, "fail": [], "no_delay": False, "seed": None}
    index = 0
    while index < len(argv):
        arg = argv[index]
        if arg == "--parallel":
            options["parallel"] = True
        elif arg == "--no-delay":
            options["no_delay"] = True
        elif arg in ("--fail", "--seed"):
            if index + 1 >= len(argv):
                raise ValueError(f"{arg} requires a value")
            value = argv[index + 1]
            if arg == "--fail":
                options["fail"].append(value)
            else:
                try:
                    options["seed"] = int(value)
                except ValueError:
                    raise ValueError("--seed must be an integer") from None
            index += 1
        elif arg.startswith("--"):
            raise ValueError(f"unknown option: {arg}")
        elif options["path"] is None:
            options["path"] = arg
        else:
            raise ValueError(f"unexpected argument: {arg}")
        index += 1

    if options["path"] is None:
        raise ValueError("missing flow file")
    return options


def format_event(event: RunEvent) -> str:
    if isinstance(event, NodeStarted):
        return f"> {event.node_name} ({event.node_id})"
    if isinstance(event, NodeCompleted):
        outcome = "ok" if event.success else f"FAILED: {event.error}"
        return f"< {event.node_id} {outcome} [{event.duration_ms}ms]"
    if isinstance(event, LogAppended):
        entry = event.entry
        return f"  [{entry.level.value.upper():5}] {entry.node_name}: {entry.message}"
    if isinstance(event, RunCompleted):
        run = event.run
        summary = f"run {run.id} {run.status.value} in {run.duration_ms}ms"
        return f"{summary}: {run.error}" if run.error else summary
    return repr(event)


def main(argv: list[str] | None = None) -> int:
    try:
        options = parse_args(sys.argv[1:] if argv is None else argv)
    except ValueError as exc:
        print(f"error: {exc}\n{USAGE}", file=sys.stderr)
        return 2

    settings = Settings()
    configure_logging(settings)

    try:
        with open(options["path"], "r", encoding="utf-8") as handle:
            flow = import_flow(handle.read())
    except OSError as exc:
        print(f"error: cannot read {options['path']}: {exc}", file=sys.stderr)
        return 2
    except FlowForgeError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2

    seed = options["seed"] if options["seed"] is not None else settings.FAULT_SEED
    if options["fail"]:
        injector = FailNodes(options["fail"])
    elif settings.FAULT_RATE > 0.0:
        injector = RandomFaults(settings.FAULT_RATE, seed=seed)
    else:
        injector = None

    min_delay = 0 if options["no_delay"] else settings.NODE_MIN_DELAY_MS
    max_delay = 0 if options["no_delay"] else settings.NODE_MAX_DELAY_MS
    registry = build_demo_registry(
        fault_injector=injector,
        min_delay_ms=min_delay,
        max_delay_ms=max_delay,
        seed=seed,
        catalog_path=settings.CATALOG_PATH,
    )
    controller = RunController(
        registry,
        execution_mode="parallel" if options["parallel"] else settings.EXECUTION_MODE,
        max_workers=settings.MAX_PARALLEL_NODES,
        strict_properties=settings.STRICT_PROPERTIES,
    )

    def _print_event(event: RunEvent) -> None:
        print(format_event(event), flush=True)

    try:
        run = controller.start(flow, subscribers=[_print_event])
    except GraphValidationError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2

    return 0 if run.status == RunStatus.SUCCESS else 1


if __name__ == "__main__":
    raise SystemExit(main())
