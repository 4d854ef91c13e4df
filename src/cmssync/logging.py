"""Logging for the cmssync CLI.

``sync`` and ``watch`` call :func:`setup_logging` with ``~/.cmssync/logs``;
``cmssync logs`` reads the files back. Everything goes to ``cmssync.log`` in
console format. Events from ``cmssync.sync`` (runner, syncers, client, engine,
scheduler) are also written as JSON lines to ``sync.log``, one object per
event with the bound ``language`` where there is one.
"""

from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

import structlog

_MAX_BYTES = 10 * 1024 * 1024  # 10 MB
_BACKUP_COUNT = 5

MAIN_LOG = "cmssync.log"
SYNC_LOG = "sync.log"

# Shared structlog pre-processors (used for both structlog-originated
# events and stdlib-originated "foreign" events).
_shared_processors: list[structlog.types.Processor] = [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_logger_name,
    structlog.stdlib.add_log_level,
    structlog.stdlib.ExtraAdder(),
    structlog.processors.TimeStamper(fmt="iso"),
    structlog.processors.StackInfoRenderer(),
    structlog.processors.UnicodeDecoder(),
]


def _rotating_handler(path: Path, formatter: logging.Formatter) -> RotatingFileHandler:
    handler = RotatingFileHandler(
        path,
        maxBytes=_MAX_BYTES,
        backupCount=_BACKUP_COUNT,
        encoding="utf-8",
    )
    handler.setFormatter(formatter)
    return handler


def setup_logging(log_level: str = "info", log_dir: Path | None = None) -> None:
    """Configure structlog and stdlib logging.

    Parameters
    ----------
    log_level:
        Python log-level name (``debug``, ``info``, ``warning``, etc.).
    log_dir:
        Directory for log files.  When *None* no file handlers are created
        (useful for testing).
    """
    level = getattr(logging, log_level.upper(), logging.INFO)

    # -- structlog pipeline (structlog → stdlib bridge) ---------------------
    structlog.configure(
        processors=[
            *_shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # -- formatters --------------------------------------------------------
    human_formatter = structlog.stdlib.ProcessorFormatter(
        processor=structlog.dev.ConsoleRenderer(colors=False),
        foreign_pre_chain=_shared_processors,
    )
    json_formatter = structlog.stdlib.ProcessorFormatter(
        processor=structlog.processors.JSONRenderer(),
        foreign_pre_chain=_shared_processors,
    )

    # -- root logger -------------------------------------------------------
    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()

    if log_dir is not None:
        log_dir.mkdir(parents=True, exist_ok=True)

        root.addHandler(_rotating_handler(log_dir / MAIN_LOG, human_formatter))

        sync_handler = _rotating_handler(log_dir / SYNC_LOG, json_formatter)
        sync_handler.addFilter(logging.Filter("cmssync.sync"))
        root.addHandler(sync_handler)

    # -- suppress noisy third-party loggers --------------------------------
    for name in ("httpx", "httpcore", "aiosqlite"):
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    # -- catch unhandled exceptions ----------------------------------------
    def _excepthook(
        exc_type: type[BaseException],
        exc_value: BaseException,
        exc_tb: object,
    ) -> None:
        if issubclass(exc_type, KeyboardInterrupt):
            sys.__excepthook__(exc_type, exc_value, exc_tb)  # type: ignore[arg-type]
            return
        logging.getLogger("cmssync").critical(
            "Unhandled exception",
            exc_info=(exc_type, exc_value, exc_tb),
        )

    sys.excepthook = _excepthook  # type: ignore[assignment]
