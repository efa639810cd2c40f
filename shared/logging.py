"""
Structured logging for the checkout funnel automation.

Everything logs through structlog with dotted event names
(`phase.enter`, `actions.click`, `otp.awaiting_manual_entry`, ...). The
console renderer gives the human-readable step log an operator follows
during a headed run; LOG_FORMAT=json switches to one JSON object per event.

Run context (session_id, site, auth_mode, search_term) is bound once per
run through contextvars and merged into every event; the automaton adds
the current phase on entry.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Any, Mapping, Optional

import structlog


def _processors(log_format: str) -> list[structlog.types.Processor]:
    chain: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.format_exc_info,
    ]
    if log_format == "json":
        chain.append(structlog.processors.EventRenamer("message"))
        chain.append(structlog.processors.JSONRenderer())
    else:
        chain.append(structlog.dev.ConsoleRenderer(colors=False))
    return chain


def _attach(root: logging.Logger, handler: logging.Handler, level: int) -> None:
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter("%(message)s"))
    root.addHandler(handler)


def configure_logging(
    level: int = logging.INFO,
    log_file: Optional[str] = None,
    log_stdout: bool = True,
    log_format: str = "console",
) -> None:
    """
    Configure structlog on top of the standard logging module.

    Called once by the CLI; calling again replaces the previous setup.
    stdout and/or a log file receive the rendered lines. With neither
    enabled, stdout is used anyway so no event is silently dropped.
    """

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()

    if log_stdout:
        _attach(root, logging.StreamHandler(sys.stdout), level)
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        _attach(root, logging.FileHandler(log_file, encoding="utf-8"), level)
    if not root.handlers:
        _attach(root, logging.StreamHandler(sys.stdout), level)

    structlog.configure(
        processors=_processors(log_format),
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: Optional[str] = None) -> structlog.BoundLogger:
    """
    Module logger.

        logger = get_logger(__name__)
        logger.info("search.opener", clicked=True)

    Configures a console default when nothing has configured structlog yet
    (library use, tests).
    """

    if not structlog.is_configured():
        configure_logging()
    return structlog.get_logger(name) if name else structlog.get_logger()


def bind_request_context(
    *,
    session_id: Optional[str] = None,
    site: Optional[str] = None,
    auth_mode: Optional[str] = None,
    search_term: Optional[str] = None,
    **extra: Any,
) -> Mapping[str, Any]:
    """Bind run fields (None values skipped) into the logging context; returns what was bound."""

    fields = {
        "session_id": session_id,
        "site": site,
        "auth_mode": auth_mode,
        "search_term": search_term,
        **extra,
    }
    bound = {key: value for key, value in fields.items() if value is not None}
    structlog.contextvars.bind_contextvars(**bound)
    return bound


def clear_request_context() -> None:
    """Drop all bound run context (end of run)."""
    structlog.contextvars.clear_contextvars()
