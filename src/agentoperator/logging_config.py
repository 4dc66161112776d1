"""Logging setup for the operator.

A single root handler writes JSON lines (python-json-logger) or plain text.
Records logged by the control loop carry ``controller`` and ``resource``
extras; both formats render them when present so a failing reconcile can be
traced to its key.
"""

from __future__ import annotations

import logging
from typing import Dict

from pythonjsonlogger.json import JsonFormatter

CONTEXT_FIELDS = ("controller", "resource")

JSON_FIELDS = ("asctime", "levelname", "name", "message")
TEXT_FORMAT = "%(asctime)s %(levelname)s %(name)s%(context)s: %(message)s"

# Libraries that log every request at INFO.
NOISY_LOGGERS = ("httpx", "httpcore")


def reconcile_context(controller: str, resource: object) -> Dict[str, object]:
    """``extra`` mapping for log calls made on behalf of one reconcile key."""
    return {"controller": controller, "resource": resource}


def _context_of(record: logging.LogRecord) -> Dict[str, str]:
    return {
        name: str(getattr(record, name))
        for name in CONTEXT_FIELDS
        if getattr(record, name, None) is not None
    }


class ContextJsonFormatter(JsonFormatter):
    """JSON lines with the reconcile context rendered as plain strings."""

    def add_fields(self, log_record, record, message_dict):
        super().add_fields(log_record, record, message_dict)
        # ResourceKey is a tuple and would otherwise serialise as a list.
        log_record.update(_context_of(record))


class ContextTextFormatter(logging.Formatter):
    """``time LEVEL logger [controller resource]: message``."""

    def formatMessage(self, record: logging.LogRecord) -> str:
        context = _context_of(record)
        record.context = f" [{' '.join(context.values())}]" if context else ""
        return super().formatMessage(record)


def _build_formatter(fmt: str) -> logging.Formatter:
    if fmt.lower() == "json":
        return ContextJsonFormatter(fmt=" ".join(f"%({f})s" for f in JSON_FIELDS))
    return ContextTextFormatter(fmt=TEXT_FORMAT, datefmt="%Y-%m-%dT%H:%M:%S%z")


def configure_logging(level: str = "INFO", fmt: str = "json") -> None:
    log_level = getattr(logging, level.upper(), logging.INFO)

    root = logging.getLogger()
    root.setLevel(log_level)
    for existing in list(root.handlers):
        root.removeHandler(existing)

    # Everything goes through the root handler exactly once.
    for named in logging.root.manager.loggerDict.values():
        if isinstance(named, logging.Logger):
            named.handlers = []
            named.propagate = True

    handler = logging.StreamHandler()
    handler.setFormatter(_build_formatter(fmt))
    root.addHandler(handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(log_level, logging.WARNING))


__all__ = [
    "CONTEXT_FIELDS",
    "ContextJsonFormatter",
    "ContextTextFormatter",
    "configure_logging",
    "reconcile_context",
]
