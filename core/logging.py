# ============================================================================
# STRUCTURED LOGGING
# ============================================================================
# STATUS: Core - Structured logging with context
# PURPOSE: Node, execution and worker context on every log line
# CREATED: 14 OCT 2026
# ============================================================================
"""
Structured Logging

Modules log through plain `logging.getLogger(__name__)`. The formatters
installed by `configure_logging` read the active LogContext, so anything
running inside `log_context(...)` is tagged with the node, execution and
message it belongs to.

The context lives in a ContextVar. asyncio copies it into every task, so
parallel dependency branches and shards each carry their own fields.

Usage:
    configure_logging("DEBUG")

    with log_context(node_id=node.id, node_name=node.name):
        logger.info("Started computing")
        log_checkpoint("lease_acquired")
"""

import json
import logging
import os
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field, fields, replace
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, Optional, Union

# Third-party loggers that flood INFO with per-request lines
NOISY_LOGGERS = ("azure.core.pipeline.policies.http_logging_policy", "azure.servicebus._pyamqp", "azure.identity")


@dataclass(frozen=True)
class LogContext:
    """Fields attached to log lines; nested contexts are derived copies."""
    node_id: Optional[str] = None
    node_name: Optional[str] = None
    execution_uuid: Optional[str] = None
    msg_id: Optional[int] = None
    worker_id: Optional[str] = None
    component: Optional[str] = None
    operation: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        result = {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if f.name != "extra" and getattr(self, f.name) is not None
        }
        result.update(self.extra)
        return result


_NAMED_FIELDS = {f for f in LogContext.__dataclass_fields__ if f != "extra"}

_current_context: ContextVar[LogContext] = ContextVar("dataflow_log_context", default=LogContext())


def get_current_context() -> LogContext:
    return _current_context.get()


@contextmanager
def log_context(**kwargs: Any) -> Iterator[LogContext]:
    """
    Push context fields for the duration of the block.

    Named LogContext fields are set directly; anything else lands in
    `extra`. Inner values shadow outer ones.

    Example:
        with log_context(node_id="abc", msg_id=3, shard=2):
            logger.info("Processing batch")
    """
    parent = get_current_context()
    named = {k: v for k, v in kwargs.items() if k in _NAMED_FIELDS}
    extra = dict(parent.extra)
    extra.update(kwargs.pop("extra", {}) or {})
    extra.update({k: v for k, v in kwargs.items() if k not in _NAMED_FIELDS})

    token = _current_context.set(replace(parent, extra=extra, **named))
    try:
        yield _current_context.get()
    finally:
        _current_context.reset(token)


def _utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class StructuredFormatter(logging.Formatter):
    """One JSON object per line, for log aggregation."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": _utc_timestamp(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        context = get_current_context().to_dict()
        if context:
            entry["context"] = context

        data = getattr(record, "data", None)
        if data:
            entry["data"] = data
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        entry["source"] = f"{record.module}:{record.lineno}"
        return json.dumps(entry, default=str)


class HumanFormatter(logging.Formatter):
    """Single-line format for terminals; context shown as short tags."""

    TAGS = (
        ("worker", "worker_id"),
        ("node", "node_name"),
        ("exec", "execution_uuid"),
        ("msg", "msg_id"),
    )

    def format(self, record: logging.LogRecord) -> str:
        context = get_current_context()
        tags = []
        for label, attr in self.TAGS:
            value = getattr(context, attr)
            if attr == "node_name" and value is None:
                value = context.node_id
            if value is None:
                continue
            if attr == "execution_uuid":
                value = value[:8]
            tags.append(f"{label}={value}")

        stamp = datetime.now(timezone.utc).strftime("%H:%M:%S.%f")[:-3]
        tag_str = f" [{' '.join(tags)}]" if tags else ""
        line = f"{stamp} {record.levelname:<7} {record.name}{tag_str}: {record.getMessage()}"
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def configure_logging(level: Union[str, int] = "INFO", json_output: bool = False) -> None:
    """
    Install a single stdout handler on the root logger.

    Args:
        level: Root log level
        json_output: Structured JSON lines (also enabled by DATAFLOW_LOG_FORMAT=json)
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    if json_output or os.getenv("DATAFLOW_LOG_FORMAT", "").lower() == "json":
        formatter: logging.Formatter = StructuredFormatter()
    else:
        formatter = HumanFormatter()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(level)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))


# ============================================================================
# CHECKPOINTS
# ============================================================================

def log_checkpoint(name: str, data: Optional[Dict[str, Any]] = None, logger: Optional[logging.Logger] = None) -> None:
    """
    Log a named milestone of a compute cycle.

    Names in use: lease_acquired, lease_released, buffers_swapped,
    dispatch_complete. JSON output carries `data` and the active context.
    """
    logger = logger or logging.getLogger("checkpoint")
    payload: Dict[str, Any] = {"checkpoint": name}
    if data:
        payload.update(data)
    logger.debug(f"CHECKPOINT: {name}", extra={"data": payload})


__all__ = [
    "LogContext",
    "StructuredFormatter",
    "HumanFormatter",
    "configure_logging",
    "log_context",
    "get_current_context",
    "log_checkpoint",
]
