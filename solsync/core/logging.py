"""Application logging with Loguru + Slack alerts for failed syncs."""

import logging
import sys
from pathlib import Path
from typing import Any

import httpx
from loguru import logger

from solsync.core.config import settings

# {extra[context]} renders bound sync fields, e.g. " source=curiosity run=12"
LOG_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level} | {extra[name]}:{function}:{line}{extra[context]} | {message}"

# Libraries that log every request or statement at INFO
NOISY_LOGGERS = ("httpx", "httpcore", "sqlalchemy.engine", "alembic.runtime.migration")

_logging_configured = False


class InterceptHandler(logging.Handler):
    """Send stdlib records (uvicorn, alembic, httpx) through Loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_name == "emit":
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def _slack_sink(message: Any) -> None:
    """Post ERROR records to Slack, tagged with the source/run they belong to."""
    if not settings.SLACK_WEBHOOK_URL:
        return

    record = message.record
    extra = record["extra"]
    header = f"[{record['level'].name}] {extra.get('name', 'solsync')}"
    if extra.get("context"):
        header += f" ({extra['context'].strip()})"
    try:
        httpx.post(
            settings.SLACK_WEBHOOK_URL,
            json={"text": f"{header}\n{record['message']}"},
            timeout=5.0,
        )
    except httpx.HTTPError:
        # Never log from the sink itself
        pass


def _normalize_level(raw: str | None) -> str:
    level = (raw or "INFO").strip().upper()
    level = {"WARN": "WARNING", "FATAL": "CRITICAL"}.get(level, level)
    if level not in {"TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"}:
        level = "INFO"
    return level


def configure_logging() -> None:
    global _logging_configured

    if _logging_configured:
        return
    _logging_configured = True

    level = _normalize_level(settings.effective_log_level)

    logger.remove()
    logger.configure(extra={"name": "solsync", "context": ""})
    logger.add(sys.stdout, level=level, format=LOG_FORMAT, backtrace=False, diagnose=False)

    if settings.LOG_DIR:
        log_dir = Path(settings.LOG_DIR)
        log_dir.mkdir(parents=True, exist_ok=True)
        logger.add(
            log_dir / "sync.log",
            level=level,
            format=LOG_FORMAT,
            rotation="10 MB",
            retention="14 days",
            enqueue=True,
            backtrace=False,
            diagnose=False,
        )

    if settings.SLACK_WEBHOOK_URL:
        logger.add(_slack_sink, level="ERROR", enqueue=True)

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)

    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        logging.getLogger(name).handlers = [InterceptHandler()]
        logging.getLogger(name).propagate = False

    # Paging through a window issues hundreds of requests; keep them at DEBUG only
    if level not in ("TRACE", "DEBUG"):
        for name in NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logger.__class__:
    return logger.bind(name=name)


def with_context(bound: logger.__class__, **fields: Any) -> logger.__class__:
    """Attach sync fields (source, run, unit...) rendered after the call site."""
    context = "".join(f" {key}={value}" for key, value in fields.items() if value is not None)
    return bound.bind(context=context)


configure_logging()
