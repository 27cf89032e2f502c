from __future__ import annotations

import json
import logging
import os
import sys
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from time import perf_counter
from typing import Any, Dict, Optional

_JSON_SCALAR_TYPES = (str, int, float, bool)

_RESERVED_RECORD_KEYS = frozenset(
    (
        "name",
        "msg",
        "args",
        "levelname",
        "levelno",
        "pathname",
        "filename",
        "module",
        "exc_info",
        "exc_text",
        "stack_info",
        "lineno",
        "funcName",
        "created",
        "msecs",
        "relativeCreated",
        "thread",
        "threadName",
        "processName",
        "process",
        "taskName",
        "message",
    )
)

_START_PHASES = {"start", "order_fetching"}
_TERMINAL_PHASES = {"complete", "error", "soft_error", "order_fetched", "order_failed", "merged"}


def _is_json_safe(value: object, depth: int = 3) -> bool:
    if isinstance(value, _JSON_SCALAR_TYPES):
        return True
    if depth <= 0:
        return False
    if isinstance(value, dict):
        for k, v in value.items():
            if not isinstance(k, (str, int, float, bool)) and k is not None:
                return False
            if not _is_json_safe(v, depth - 1):
                return False
        return True
    if isinstance(value, (list, tuple)):
        return all(_is_json_safe(v, depth - 1) for v in value)
    return False


@dataclass(frozen=True)
class LogConfig:
    level: str = "INFO"
    json_logs: bool = False


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        payload: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "name": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        # Include extra fields if present
        for key, value in record.__dict__.items():
            if key in _RESERVED_RECORD_KEYS or value is None:
                continue
            if _is_json_safe(value):
                payload[key] = value
        return json.dumps(payload, sort_keys=True)


class PlainFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        timestamp = datetime.fromtimestamp(record.created, timezone.utc).isoformat(timespec="seconds")
        step = getattr(record, "step", None)
        phase = getattr(record, "phase", None)
        duration_ms = getattr(record, "duration_ms", None)
        message = record.getMessage()
        if step or phase:
            step_label = step if step else "unknown"
            phase_label = phase if phase else "unknown"
            message = f"[{step_label}:{phase_label}] {message}"
        if duration_ms is not None:
            message = f"{message} (duration_ms={duration_ms})"
        line = f"{timestamp} {record.levelname} {record.name}: {message}"
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


def _level_from_str(level: str) -> int:
    value = getattr(logging, level.upper(), None)
    if isinstance(value, int):
        return value
    return logging.INFO


def setup_logging(config: Optional[LogConfig] = None) -> None:
    """
    Configure root logger once. Subsequent calls are no-ops.
    Env overrides:
      - ORDER_AGG_LOG_LEVEL (default INFO)
      - ORDER_AGG_JSON_LOGS (1/true to enable)
    """
    if getattr(setup_logging, "_configured", False):
        return

    env_level = os.getenv("ORDER_AGG_LOG_LEVEL")
    env_json = os.getenv("ORDER_AGG_JSON_LOGS")

    level = _level_from_str((config.level if config else None) or env_level or "INFO")
    json_logs = (config.json_logs if config else False) or ((env_json or "").lower() in ("1", "true", "yes"))

    # Logs go to stderr so stdout stays clean for JSON/JSONL output.
    handler = logging.StreamHandler(stream=sys.stderr)
    if json_logs:
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(PlainFormatter())

    root = logging.getLogger()
    root.setLevel(level)
    # Avoid duplicate handlers if running under certain test runners
    root.handlers = [handler]

    # Reduce noise from 3rd-party libraries unless explicitly raised
    logging.getLogger("urllib3").setLevel(max(level, logging.WARNING))

    setattr(setup_logging, "_configured", True)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


class StepTimers:
    """Per-key start times; safe to share between the lookup worker threads."""

    def __init__(self) -> None:
        self._starts: Dict[str, float] = {}
        self._lock = threading.Lock()

    def start(self, key: str) -> None:
        with self._lock:
            self._starts[key] = perf_counter()

    def finish(self, key: str) -> Optional[int]:
        with self._lock:
            started = self._starts.pop(key, None)
        if started is None:
            return None
        return int((perf_counter() - started) * 1000)


def log_event(
    logger: Any,
    level: int,
    message: str,
    *,
    step: str,
    phase: str,
    timers: Optional[StepTimers] = None,
    timer_key: Optional[str] = None,
    exc_info: Any = None,
    **extra: Any,
) -> None:
    key = timer_key or step
    duration_ms = None
    if timers is not None:
        if phase in _START_PHASES:
            timers.start(key)
        elif phase in _TERMINAL_PHASES:
            duration_ms = timers.finish(key)
    payload: Dict[str, Any] = {"step": step, "phase": phase, "event": f"{step}.{phase}"}
    if duration_ms is not None:
        payload["duration_ms"] = duration_ms
    payload.update(extra)
    logger.log(level, message, extra=payload, exc_info=exc_info)
