"""Logging and observability for the feedback wizard.

Everything logs under the ``feedback_wizard`` logger tree. Structured
fields travel on the record as ``extra_fields`` so the JSON file handler
can flatten them into each line. Wizard and draft events also go
through :class:`ObservabilityHooks`, which lets tests and embedding
applications subscribe to them.

The console handler writes to stderr; stdout belongs to the MCP stdio
transport.
"""

from __future__ import annotations

import inspect
import json
import logging as std_logging
import time
from collections import defaultdict
from contextlib import contextmanager
from datetime import datetime, timezone
from functools import wraps
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional, Union

ROOT_LOGGER = "feedback_wizard"

CONSOLE_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"
CONSOLE_DATEFMT = "%H:%M:%S"


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def setup_logging(log_level: Union[str, int] = std_logging.INFO, log_file: Optional[Path] = None) -> None:
    """Configure the ``feedback_wizard`` logger tree.

    Replaces any handlers installed by an earlier call. With ``log_file``
    every record at DEBUG and above is also written as JSON lines.
    """
    root = std_logging.getLogger(ROOT_LOGGER)
    root.setLevel(std_logging.DEBUG if log_file else log_level)
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    console = std_logging.StreamHandler()
    console.setLevel(log_level)
    console.setFormatter(std_logging.Formatter(CONSOLE_FORMAT, datefmt=CONSOLE_DATEFMT))
    root.addHandler(console)

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        json_handler = std_logging.FileHandler(log_file, encoding="utf-8")
        json_handler.setLevel(std_logging.DEBUG)
        json_handler.setFormatter(JsonFormatter())
        root.addHandler(json_handler)

    root.debug(f"Logging configured (level={log_level}, file={log_file})")


class JsonFormatter(std_logging.Formatter):
    """One JSON object per record, with ``extra_fields`` merged in."""

    def format(self, record: std_logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
            "message": record.getMessage(),
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        entry.update(getattr(record, "extra_fields", None) or {})
        return json.dumps(entry, default=str)


class PerformanceMonitor:
    """In-process store of timing samples, keyed by metric name."""

    def __init__(self):
        self.metrics: Dict[str, List[Dict[str, Any]]] = defaultdict(list)
        self.logger = std_logging.getLogger(f"{ROOT_LOGGER}.performance")

    def record_metric(self, name: str, value: Any, tags: Optional[Dict[str, str]] = None) -> None:
        sample = {"timestamp": _utc_now_iso(), "name": name, "value": value, "tags": dict(tags or {})}
        self.metrics[name].append(sample)
        self.logger.debug(f"Metric recorded: {name}={value}", extra={"extra_fields": sample})

    def get_metrics(self, name: Optional[str] = None) -> Dict[str, List[Dict[str, Any]]]:
        """All samples, or only those for ``name``."""
        if name is not None:
            return {name: list(self.metrics.get(name, []))}
        return {key: list(samples) for key, samples in self.metrics.items()}

    def reset(self) -> None:
        self.metrics.clear()


performance_monitor = PerformanceMonitor()


@contextmanager
def _measure(operation_name: str) -> Iterator[None]:
    logger = std_logging.getLogger(f"{ROOT_LOGGER}.performance")
    metric = f"{operation_name}_duration"
    started = time.perf_counter()
    try:
        yield
    except Exception as e:
        elapsed = time.perf_counter() - started
        tags = {"status": "error", "error_type": type(e).__name__}
        performance_monitor.record_metric(metric, elapsed, tags)
        logger.warning(
            f"{operation_name} failed after {elapsed:.3f}s: {e}",
            extra={"extra_fields": {"operation": operation_name, "duration": elapsed, **tags}},
        )
        raise
    elapsed = time.perf_counter() - started
    performance_monitor.record_metric(metric, elapsed, {"status": "success"})
    logger.info(
        f"{operation_name} took {elapsed:.3f}s",
        extra={"extra_fields": {"operation": operation_name, "duration": elapsed, "status": "success"}},
    )


def log_performance(operation_name: str):
    """Time every call of the decorated function or coroutine function."""

    def decorator(func):
        if inspect.iscoroutinefunction(func):

            @wraps(func)
            async def timed_coroutine(*args, **kwargs):
                with _measure(operation_name):
                    return await func(*args, **kwargs)

            return timed_coroutine

        @wraps(func)
        def timed(*args, **kwargs):
            with _measure(operation_name):
                return func(*args, **kwargs)

        return timed

    return decorator


@contextmanager
def log_operation(operation_name: str, **extra_fields):
    """Log start and end of a block at DEBUG, and failures at ERROR."""
    logger = std_logging.getLogger(f"{ROOT_LOGGER}.operations")
    fields = {"operation": operation_name, **extra_fields}
    started = time.perf_counter()
    logger.debug(f"{operation_name} started", extra={"extra_fields": {**fields, "status": "started"}})
    try:
        yield
    except Exception as e:
        elapsed = time.perf_counter() - started
        logger.error(
            f"{operation_name} failed after {elapsed:.3f}s: {e}",
            extra={"extra_fields": {
                **fields,
                "status": "failed",
                "duration": elapsed,
                "error_type": type(e).__name__,
                "error_message": str(e),
            }},
        )
        raise
    elapsed = time.perf_counter() - started
    logger.debug(
        f"{operation_name} completed in {elapsed:.3f}s",
        extra={"extra_fields": {**fields, "status": "completed", "duration": elapsed}},
    )


class ObservabilityHooks:
    """Per-event-type subscriber lists for wizard and draft events."""

    def __init__(self):
        self.hooks: Dict[str, List[Callable[..., Any]]] = defaultdict(list)
        self.logger = std_logging.getLogger(f"{ROOT_LOGGER}.events")

    def register_hook(self, event_type: str, callback: Callable[..., Any]) -> None:
        self.hooks[event_type].append(callback)

    def unregister_hook(self, event_type: str, callback: Callable[..., Any]) -> None:
        if callback in self.hooks.get(event_type, []):
            self.hooks[event_type].remove(callback)

    def trigger_hooks(self, event_type: str, **data) -> None:
        """Call every subscriber; a failing subscriber is logged and skipped."""
        for hook in list(self.hooks.get(event_type, [])):
            try:
                hook(**data)
            except Exception as e:
                self.logger.error(f"Subscriber to {event_type} raised {type(e).__name__}: {e}")

    def log_wizard_event(self, event_type: str, project_id: Optional[str] = None, **data) -> None:
        """Log one event at INFO and notify its subscribers."""
        payload = {"timestamp": _utc_now_iso(), "project_id": project_id, **data}
        self.logger.info(event_type, extra={"extra_fields": {"event_type": event_type, **payload}})
        self.trigger_hooks(event_type, **payload)


observability_hooks = ObservabilityHooks()


def log_wizard_event(event_type: str, project_id: Optional[str] = None, **extra_fields) -> None:
    observability_hooks.log_wizard_event(event_type, project_id=project_id, **extra_fields)


def log_step_change(project_id: Optional[str], from_step: str, to_step: str, **extra_fields) -> None:
    log_wizard_event("wizard_step_changed", project_id=project_id, from_step=from_step, to_step=to_step, **extra_fields)


def log_draft_event(event_type: str, key: str, **extra_fields) -> None:
    """Emit ``draft_<event_type>`` for the draft stored under ``key``."""
    log_wizard_event(f"draft_{event_type.lower()}", key=key, **extra_fields)


def log_error_with_context(error: BaseException, context: Dict[str, Any], **extra_fields) -> None:
    """Log ``error`` with its traceback and the operation context it happened in."""
    logger = std_logging.getLogger(f"{ROOT_LOGGER}.errors")
    operation = context.get("operation", "unknown operation")
    logger.error(
        f"Error in {operation}: {error}",
        extra={"extra_fields": {
            "timestamp": _utc_now_iso(),
            "error_type": type(error).__name__,
            "error_message": str(error),
            "context": context,
            **extra_fields,
        }},
        exc_info=(type(error), error, error.__traceback__),
    )
