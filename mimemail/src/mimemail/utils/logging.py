"""Structured JSON log lines for the assembler, cipher pipeline and transports.

What:
  :class:`JsonLogger` writes one JSON object per line carrying a UTC
  timestamp, a severity, the emitting component, any bound context and the
  call's keyword fields.

Why:
  Mail composition handles subjects, bodies, SMTP passwords and key
  passphrases. The log stream is where those leak first, so scrubbing happens
  in the single method every entry goes through, and payloads are referred to
  by checksum only.

How:
  Severity names map to numeric ranks; entries below the logger's threshold
  are dropped before any formatting. :meth:`JsonLogger.bind` derives a logger
  that repeats fixed fields (an account name, a server) on every entry.
  :func:`get_logger` caches one logger per component and reads its threshold
  from ``MIMEMAIL_LOG_LEVEL``.

Interfaces:
  :class:`JsonLogger`, :func:`get_logger`, :data:`SENSITIVE_KEYS`.

Invariants & Safety:
  - ``subject``, ``body``, ``password``, ``passphrase`` and ``key`` are
    replaced by ``[redacted]`` at any nesting depth, bound context included.
  - The stream is flushed after each entry.
"""
from __future__ import annotations

import json
import os
import sys
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional, TextIO

REDACTED = "[redacted]"
SENSITIVE_KEYS = frozenset({"subject", "body", "password", "passphrase", "key"})

LEVELS: Dict[str, int] = {"DEBUG": 10, "INFO": 20, "WARN": 30, "ERROR": 40}
_LEVEL_ENV = "MIMEMAIL_LOG_LEVEL"


@dataclass
class JsonLogger:
    """One-line-per-entry JSON logger with redaction and bound context.

    ``stream`` defaults to whatever ``sys.stderr`` is at emission time, which
    keeps pytest's ``capsys`` and CLI runners working.
    """

    stream: Optional[TextIO] = None
    component: str = "mimemail"
    level: str = "INFO"
    context: Dict[str, Any] = field(default_factory=dict)

    def enabled(self, level: str) -> bool:
        return LEVELS.get(level.upper(), 0) >= LEVELS.get(self.level.upper(), LEVELS["INFO"])

    def bind(self, **fields: Any) -> "JsonLogger":
        """Return a logger adding ``fields`` to every entry."""

        return replace(self, context={**self.context, **fields})

    def log(self, level: str, message: str, *, extra: Optional[Mapping[str, Any]] = None) -> None:
        if not self.enabled(level):
            return
        entry: Dict[str, Any] = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "lvl": level.upper(),
            "msg": message,
            "component": self.component,
        }
        entry.update(_scrub(self.context))
        if extra:
            entry.update(_scrub(extra))
        stream = self.stream if self.stream is not None else sys.stderr
        stream.write(json.dumps(entry, separators=(",", ":"), default=str) + "\n")
        stream.flush()

    def debug(self, message: str, **fields: Any) -> None:
        self.log("DEBUG", message, extra=fields)

    def info(self, message: str, **fields: Any) -> None:
        self.log("INFO", message, extra=fields)

    def warning(self, message: str, **fields: Any) -> None:
        self.log("WARN", message, extra=fields)

    def error(self, message: str, **fields: Any) -> None:
        self.log("ERROR", message, extra=fields)


def _scrub(data: Mapping[str, Any]) -> Dict[str, Any]:
    clean: Dict[str, Any] = {}
    for name, value in data.items():
        if name in SENSITIVE_KEYS:
            clean[name] = REDACTED
        elif isinstance(value, Mapping):
            clean[name] = _scrub(value)
        else:
            clean[name] = value
    return clean


_LOGGERS: Dict[str, JsonLogger] = {}


def get_logger(component: str) -> JsonLogger:
    """Return the cached logger for ``component``.

    The threshold comes from ``MIMEMAIL_LOG_LEVEL`` (default ``INFO``) when
    the logger is first requested.
    """

    logger = _LOGGERS.get(component)
    if logger is None:
        level = os.environ.get(_LEVEL_ENV, "INFO").upper()
        logger = _LOGGERS[component] = JsonLogger(component=component, level=level if level in LEVELS else "INFO")
    return logger
