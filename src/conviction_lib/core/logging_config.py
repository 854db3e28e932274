"""
Structured logging for conviction engine hosts.

The engine never configures logging.  Library modules create plain stdlib
loggers (``logging.getLogger("engine")``, ``"adapter"``, ...) and a host
process, such as the ``conviction-replay`` CLI, calls ``setup_logging()``
once to route them through ``structlog``.

``setup_logging()`` installs a single root handler and replaces the one it
installed on an earlier call, so calling it twice (tests, notebooks) does
not duplicate output.  Handlers that other code attached are left alone.

Usage::

    from conviction_lib.core.logging_config import setup_logging, get_logger

    setup_logging(service="replay")
    log = get_logger("replay", preset="sentinel_pro")
    log.info("replay_started", rows=5000)
    # => 2025-06-01T14:23:01Z [info] replay_started  preset=sentinel_pro rows=5000 service=replay

LOG_LEVEL sets the level (default INFO).  LOG_FORMAT=json switches from
the coloured console renderer to JSON lines.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import IO, Any

import structlog

_HANDLER_NAME = "conviction-structlog"


def _shared_processors() -> list[structlog.types.Processor]:
    """Processors applied to structlog events and foreign stdlib records alike."""
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.ExtraAdder(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]


def _renderer(log_format: str, stream: IO[str]) -> structlog.types.Processor:
    if log_format == "json":
        return structlog.processors.JSONRenderer()
    isatty = getattr(stream, "isatty", None)
    return structlog.dev.ConsoleRenderer(
        colors=bool(isatty and isatty()),
        pad_event_to=30,
    )


def setup_logging(
    *,
    service: str = "conviction",
    level: str | None = None,
    log_format: str | None = None,
    stream: IO[str] | None = None,
) -> None:
    """Route stdlib and structlog output through one structured handler.

    Parameters
    ----------
    service:
        Bound to every event as ``service=<name>``.
    level:
        Root level name.  Falls back to ``LOG_LEVEL``, then ``"INFO"``.
    log_format:
        ``"console"`` or ``"json"``.  Falls back to ``LOG_FORMAT``, then
        ``"console"``.
    stream:
        Where log lines go.  Defaults to ``sys.stderr`` so stdout stays
        free for replay output.
    """
    level = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    log_format = (log_format or os.getenv("LOG_FORMAT", "console")).lower()
    stream = stream if stream is not None else sys.stderr

    shared = _shared_processors()
    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            _renderer(log_format, stream),
        ],
        foreign_pre_chain=shared,
    )
    handler = logging.StreamHandler(stream)
    handler.set_name(_HANDLER_NAME)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    for old in [h for h in root.handlers if h.get_name() == _HANDLER_NAME]:
        root.removeHandler(old)
    root.addHandler(handler)
    root.setLevel(getattr(logging, level, logging.INFO))

    structlog.configure(
        processors=[
            *shared,
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )

    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(service=service)


def get_logger(name: str | None = None, **binds: Any) -> structlog.stdlib.BoundLogger:
    """Structured logger, optionally with context bound to every event.

    >>> log = get_logger("replay", preset="default")
    >>> log.info("replay_complete", bars=500)
    """
    log = structlog.get_logger(name)
    if binds:
        log = log.bind(**binds)
    return log
