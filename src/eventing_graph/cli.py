from __future__ import annotations

import logging
import sys
from time import perf_counter
from typing import Any, Dict, Optional

from .config import RenderConfig, dump_config, load_run_config
from .export.dot import dot_source, render
from .export.jsonl import write_graph
from .graph.builder import GraphBuilder
from .logging import LogConfig, get_logger, setup_logging
from .resources.manifest import load_resource_set
from .util.errors import ConfigError, as_exit_code

LOG = get_logger(__name__)


class _StepTimers:
    def __init__(self) -> None:
        self._starts: Dict[str, float] = {}

    def start(self, key: str) -> None:
        self._starts[key] = perf_counter()

    def finish(self, key: str) -> Optional[int]:
        started = self._starts.pop(key, None)
        if started is None:
            return None
        return int((perf_counter() - started) * 1000)


def _log_event(
    logger: Any,
    level: int,
    message: str,
    *,
    step: str,
    phase: str,
    timers: Optional[_StepTimers] = None,
    **extra: Any,
) -> None:
    duration_ms = None
    if timers is not None:
        if phase == "start":
            timers.start(step)
        elif phase in {"complete", "error"}:
            duration_ms = timers.finish(step)
    payload: Dict[str, Any] = {"step": step, "phase": phase, "event": f"{step}.{phase}"}
    if duration_ms is not None:
        payload["duration_ms"] = duration_ms
    payload.update(extra)
    logger.log(level, message, extra=payload)


def build_from_config(cfg: RenderConfig) -> GraphBuilder:
    if not cfg.manifests:
        raise ConfigError("At least one manifest file or directory is required (-f/--filename)")
    timers = _StepTimers()

    _log_event(LOG, logging.INFO, "Loading manifests", step="load", phase="start", timers=timers)
    resources = load_resource_set(cfg.manifests, namespace=cfg.namespace)
    _log_event(
        LOG,
        logging.INFO,
        "Manifests loaded",
        step="load",
        phase="complete",
        timers=timers,
        resources=len(resources),
    )

    _log_event(LOG, logging.INFO, "Building graph", step="build", phase="start", timers=timers)
    builder = GraphBuilder(
        cfg.namespace,
        rainbow=cfg.rainbow,
        show_unknown_replies=cfg.show_unknown_replies,
    )
    builder.add_resources(resources)
    _log_event(
        LOG,
        logging.INFO,
        "Graph built",
        step="build",
        phase="complete",
        timers=timers,
        **builder.stats(),
    )
    return builder


def cmd_render(cfg: RenderConfig) -> int:
    builder = build_from_config(cfg)
    if cfg.output is None:
        sys.stdout.write(dot_source(builder.document))
        return 0
    path = render(builder.document, cfg.output, cfg.format)
    LOG.info("Diagram written", extra={"path": str(path), "format": cfg.format})
    return 0


def cmd_export(cfg: RenderConfig) -> int:
    builder = build_from_config(cfg)
    nodes_path, edges_path = write_graph(cfg.outdir, builder.document)
    LOG.info("Graph exported", extra={"nodes_path": str(nodes_path), "edges_path": str(edges_path)})
    return 0


def main(argv: Optional[list[str]] = None) -> None:
    try:
        command, cfg = load_run_config(argv=argv)
        setup_logging(LogConfig(level=cfg.log_level, json_logs=cfg.json_logs))
        LOG.debug("Configuration resolved", extra={"config": dump_config(cfg)})

        if command == "render":
            code = cmd_render(cfg)
        elif command == "export":
            code = cmd_export(cfg)
        else:
            raise ConfigError(f"Unknown command: {command}")

        sys.exit(code)
    except SystemExit:
        raise
    except BrokenPipeError:
        # Piping DOT into `head` closes stdout early.
        sys.exit(0)
    except Exception as e:
        setup_logging(LogConfig())
        LOG.error("Execution failed", extra={"error": str(e)})
        sys.exit(as_exit_code(e))


if __name__ == "__main__":
    main()
