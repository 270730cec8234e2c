"""Structured logging for DupGate.

One renderer setup (JSON in production, console in development) plus two
helpers the gate pipeline leans on:

  - evaluation_logger() — the logger handed to evaluate_upload(). It carries
    evaluation_id, repo_key and path for every line of one gate evaluation.
    Nothing else attaches the evaluation id; pipeline code logs through the
    logger it was given.
  - OperationTimer      — times a block and reports the elapsed milliseconds,
    escalating to WARNING past a threshold.
"""

from __future__ import annotations

import logging
import sys
import time
from typing import Any, Optional

import structlog
from structlog.types import EventDict, Processor

SERVICE_NAME = "dupgate"


def add_service(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Tag every entry with the emitting service (shared log sinks)."""
    event_dict.setdefault("service", SERVICE_NAME)
    return event_dict


def configure_logging(log_level: str = "INFO", json_output: bool = True) -> None:
    """Install the structlog pipeline.

    Args:
        log_level:   Minimum level name (DEBUG, INFO, WARNING, ERROR).
        json_output: JSON lines when True, coloured console output otherwise.
    """
    renderer: Processor = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer(colors=True)
    )
    structlog.configure(
        processors=[
            add_service,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, log_level.upper(), logging.INFO)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str = SERVICE_NAME) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def evaluation_logger(
    evaluation_id: str,
    repo_key: str,
    path: str,
) -> structlog.stdlib.BoundLogger:
    """Logger bound to one gate evaluation."""
    return get_logger("dupgate.gate").bind(
        evaluation_id=evaluation_id,
        repo_key=repo_key,
        path=path,
    )


class OperationTimer:
    """Context manager timing one pipeline stage.

    On exit logs ``"<operation> finished"`` with ``duration_ms``: at WARNING when
    ``slow_ms`` is set and exceeded, at DEBUG otherwise. ``elapsed_ms`` is
    readable both inside the block (running time) and after it (final time).
    """

    def __init__(
        self,
        operation: str,
        logger: structlog.stdlib.BoundLogger,
        slow_ms: Optional[float] = None,
    ) -> None:
        self.operation = operation
        self.logger = logger
        self.slow_ms = slow_ms
        self._started: Optional[float] = None
        self._stopped: Optional[float] = None

    @property
    def elapsed_ms(self) -> float:
        if self._started is None:
            return 0.0
        end = self._stopped if self._stopped is not None else time.perf_counter()
        return round((end - self._started) * 1000, 2)

    def __enter__(self) -> "OperationTimer":
        self._started = time.perf_counter()
        self._stopped = None
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self._stopped = time.perf_counter()
        duration_ms = self.elapsed_ms
        slow = self.slow_ms is not None and duration_ms > self.slow_ms
        log = self.logger.warning if slow else self.logger.debug
        log(
            f"{self.operation} finished",
            duration_ms=duration_ms,
            slow=slow,
            failed=exc_type is not None,
        )
