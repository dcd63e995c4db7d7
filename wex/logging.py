"""
Wex — Structured Logging

JSON log lines on stderr for every suite/experiment lifecycle event, with
a run_id shared by the whole run and a span_id per experiment. The
user-facing report is printed separately and is never a log record.

Levels:
  DEBUG    path queries, staging, full runner command lines (--debug)
  INFO     lifecycle events
  WARNING  tolerated oddities (empty suite, missing test block) — default

Usage:
    from wex.logging import RunLogger, configure_logging

    configure_logging(level="DEBUG")
    run_log = RunLogger(workflow="ci.yml", suite="wex.yaml")
    run_log.on_suite_start(total=3)
"""

from __future__ import annotations

import json
import logging
import sys
import uuid
from datetime import datetime, timezone
from typing import Any

ROOT_LOGGER = "wex"


# ═══════════════════════════════════════════════════════════════════
# Formatters
# ═══════════════════════════════════════════════════════════════════

class JSONFormatter(logging.Formatter):
    """Formats log records as JSON lines."""

    def __init__(self, service_name: str = "wex"):
        super().__init__()
        self.service_name = service_name

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(
                record.created, tz=timezone.utc
            ).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service.name": self.service_name,
        }

        if hasattr(record, "structured"):
            entry.update(record.structured)

        if record.exc_info and record.exc_info[0] is not None:
            entry["exception.type"] = record.exc_info[0].__name__
            entry["exception.message"] = str(record.exc_info[1])

        return json.dumps(entry, default=str)


class TextFormatter(logging.Formatter):
    """`[DEBUG] message key=value ...` for humans reading a terminal."""

    def format(self, record: logging.LogRecord) -> str:
        text = f"[{record.levelname}] {record.getMessage()}"
        fields = getattr(record, "structured", None)
        if fields:
            text += " " + " ".join(f"{k}={v}" for k, v in fields.items() if k != "action")
        return text


# ═══════════════════════════════════════════════════════════════════
# Configuration
# ═══════════════════════════════════════════════════════════════════

def configure_logging(
    level: str = "WARNING",
    stream: Any = None,
    fmt: str = "json",
    service_name: str = "wex",
) -> logging.Logger:
    """
    Configure the `wex` logger. Safe to call repeatedly; handlers are replaced.

    Args:
        level: DEBUG, INFO, WARNING, ERROR
        stream: Output stream (default: sys.stderr)
        fmt: "json" or "text"
    """
    logger = logging.getLogger(ROOT_LOGGER)
    numeric = getattr(logging, str(level).upper(), logging.WARNING)
    logger.setLevel(numeric)
    logger.handlers.clear()

    for name in list(logging.Logger.manager.loggerDict.keys()):
        if name.startswith(ROOT_LOGGER + "."):
            child = logging.getLogger(name)
            child.handlers.clear()
            child.setLevel(logging.NOTSET)

    handler = logging.StreamHandler(stream or sys.stderr)
    if fmt == "text":
        handler.setFormatter(TextFormatter())
    else:
        handler.setFormatter(JSONFormatter(service_name=service_name))
    handler.setLevel(numeric)
    logger.addHandler(handler)
    logger.propagate = False
    return logger


def get_logger(name: str = "") -> logging.Logger:
    """Get a child logger under the wex namespace."""
    if name:
        return logging.getLogger(f"{ROOT_LOGGER}.{name}")
    return logging.getLogger(ROOT_LOGGER)


def generate_run_id() -> str:
    return uuid.uuid4().hex


def generate_span_id() -> str:
    return uuid.uuid4().hex[:16]


# ═══════════════════════════════════════════════════════════════════
# Run logger
# ═══════════════════════════════════════════════════════════════════

class RunLogger:
    """
    Emits one structured record per lifecycle event of a suite run.
    Every record carries run_id, workflow and suite; experiment events
    also carry the experiment's span_id and title.
    """

    def __init__(self, workflow: str = "", suite: str = "", run_id: str | None = None):
        self.workflow = workflow
        self.suite = suite
        self.run_id = run_id or generate_run_id()
        self._logger = get_logger("run")
        self._spans: dict[int, str] = {}

    def _base_fields(self) -> dict[str, Any]:
        return {"run_id": self.run_id, "workflow": self.workflow, "suite": self.suite}

    def _span(self, index: int) -> str:
        if index not in self._spans:
            self._spans[index] = generate_span_id()
        return self._spans[index]

    def _emit(self, level: int, action: str, **fields):
        if not self._logger.isEnabledFor(level):
            return
        structured = {**self._base_fields(), "action": action, **fields}
        record = self._logger.makeRecord(
            name=self._logger.name,
            level=level,
            fn="", lno=0, msg=action,
            args=(), exc_info=None,
        )
        record.structured = structured
        self._logger.handle(record)

    def on_suite_start(self, total: int) -> None:
        self._emit(logging.INFO, "suite_start", total=total)

    def on_experiment_start(self, index: int, title: str, event: str) -> None:
        self._emit(logging.INFO, "experiment_start",
                   span_id=self._span(index), index=index, title=title, event=event)

    def on_trigger_normalized(self, index: int, event: str) -> None:
        self._emit(logging.INFO, "trigger_normalized", span_id=self._span(index), event=event)

    def on_steps_mutated(self, index: int, step_ids: list[str]) -> None:
        self._emit(logging.INFO, "steps_mutated", span_id=self._span(index), steps=step_ids)

    def on_runner_invoked(self, index: int, command: list[str], cwd: str) -> None:
        self._emit(logging.DEBUG, "runner_invoked",
                   span_id=self._span(index), command=command, cwd=cwd)

    def on_runner_finished(self, index: int, exit_code: int | None,
                           timed_out: bool, elapsed_s: float, log_chars: int) -> None:
        level = logging.WARNING if timed_out else logging.INFO
        self._emit(level, "runner_finished",
                   span_id=self._span(index), exit_code=exit_code, timed_out=timed_out,
                   elapsed_s=round(elapsed_s, 2), log_chars=log_chars)

    def on_assertion_result(self, index: int, passed: bool, checks: list[dict]) -> None:
        self._emit(logging.INFO, "assertion_result",
                   span_id=self._span(index), passed=passed,
                   failed_checks=[c["detail"] for c in checks if not c["passed"]])

    def on_experiment_error(self, index: int, error: str) -> None:
        self._emit(logging.WARNING, "experiment_error", span_id=self._span(index), error=error[:500])

    def on_suite_end(self, total: int, failed: int, elapsed_s: float) -> None:
        self._emit(logging.INFO, "suite_end",
                   total=total, failed=failed, elapsed_s=round(elapsed_s, 2))
