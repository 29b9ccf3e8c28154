"""Structured logging with structlog, routed through the stdlib root logger.

Two scrubbing processors run on every event before rendering:
  - credential-like fields are replaced with ``***REDACTED***``
  - wallet addresses are shortened to ``GL1qq9...s2r1``

``get_logger`` configures a stderr handler from ``LOG_LEVEL`` /
``LOG_FORMAT`` on first use so library code can log at import time.
The CLI later calls ``configure_logging(..., force=True)`` with the
``observability`` section of the loaded config, which replaces the
handlers installed here (and only those).
"""

from __future__ import annotations

import logging
import os
import sys
from pathlib import Path

import structlog

_CONFIGURED = False
_INSTALLED_HANDLERS: list[logging.Handler] = []

_REDACTED_FIELDS = frozenset({
    "private_key", "secret", "password", "api_key", "api_secret",
    "passphrase", "token", "mnemonic",
})

_ADDRESS_FIELDS = frozenset({"address", "wallet", "wallet_address"})


# ─── PROCESSORS ──────────────────────────────────────────────────────

def _redact_processor(
    logger: structlog.types.WrappedLogger,
    method_name: str,
    event_dict: structlog.types.EventDict,
) -> structlog.types.EventDict:
    for key in list(event_dict.keys()):
        if key.lower() in _REDACTED_FIELDS:
            event_dict[key] = "***REDACTED***"
    return event_dict


def _mask_address(value: str) -> str:
    if len(value) <= 12:
        return value
    return f"{value[:6]}...{value[-4:]}"


def _address_processor(
    logger: structlog.types.WrappedLogger,
    method_name: str,
    event_dict: structlog.types.EventDict,
) -> structlog.types.EventDict:
    for key in _ADDRESS_FIELDS.intersection(event_dict):
        if isinstance(event_dict[key], str):
            event_dict[key] = _mask_address(event_dict[key])
    return event_dict


_SHARED_PROCESSORS: list[structlog.types.Processor] = [
    structlog.contextvars.merge_contextvars,
    _redact_processor,
    _address_processor,
    structlog.stdlib.add_log_level,
    structlog.stdlib.add_logger_name,
    structlog.processors.TimeStamper(fmt="iso"),
    structlog.processors.StackInfoRenderer(),
]


def _formatter(fmt: str, stream_is_tty: bool = False) -> logging.Formatter:
    if fmt == "json":
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=stream_is_tty)
    return structlog.stdlib.ProcessorFormatter(
        processor=renderer,
        foreign_pre_chain=_SHARED_PROCESSORS,
    )


# ─── SETUP ───────────────────────────────────────────────────────────

def _remove_installed_handlers(root: logging.Logger) -> None:
    while _INSTALLED_HANDLERS:
        handler = _INSTALLED_HANDLERS.pop()
        root.removeHandler(handler)
        handler.close()


def _install(root: logging.Logger, handler: logging.Handler, level: int,
             formatter: logging.Formatter) -> None:
    handler.setLevel(level)
    handler.setFormatter(formatter)
    root.addHandler(handler)
    _INSTALLED_HANDLERS.append(handler)


def configure_logging(
    level: str = "INFO",
    fmt: str = "json",
    log_file: str | None = None,
    file_fmt: str = "json",
    force: bool = False,
) -> None:
    """Install stderr (and optionally file) handlers on the root logger.

    Without ``force`` a second call is a no-op.  With it, handlers from
    the previous call are removed first; handlers installed by anyone
    else (pytest's capture, for one) are left alone.
    """
    global _CONFIGURED
    if _CONFIGURED and not force:
        return

    log_level = getattr(logging, level.upper(), logging.INFO)
    root = logging.getLogger()
    _remove_installed_handlers(root)
    root.setLevel(log_level)

    _install(root, logging.StreamHandler(sys.stderr), log_level,
             _formatter(fmt, sys.stderr.isatty()))

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        _install(root, logging.FileHandler(str(log_path)), log_level, _formatter(file_fmt))

    structlog.configure(
        processors=[
            *_SHARED_PROCESSORS,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
    _CONFIGURED = True


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    if not _CONFIGURED:
        configure_logging(
            level=os.environ.get("LOG_LEVEL", "INFO"),
            fmt=os.environ.get("LOG_FORMAT", "console"),
        )
    return structlog.get_logger(name)
