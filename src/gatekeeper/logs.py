"""Logging setup: rotating file logs, rich console output, secret redaction."""

from __future__ import annotations

import logging
import os
import re
from logging.handlers import RotatingFileHandler
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler

ROOT_LOGGER = "gatekeeper"
LOG_FORMAT = "%(asctime)s %(levelname)-5s [%(name)s] %(message)s"

_SENSITIVE_PATTERNS = [
    re.compile(r"sk-ant-[A-Za-z0-9_-]{20,}"),
    re.compile(r"sk-[A-Za-z0-9_-]{20,}"),
    re.compile(r"ghp_[A-Za-z0-9_]{36,}"),
    re.compile(r"AKIA[0-9A-Z]{16}"),
    re.compile(r"([A-Z_]+_(?:KEY|TOKEN|PASSWORD|SECRET))[=:]\s*\S+"),
    re.compile(r"(?i)passw(?:or)?d[=:]\s*\S+"),
    re.compile(r"-----BEGIN[^-]*PRIVATE KEY-----[\s\S]*?-----END[^-]*PRIVATE KEY-----"),
    re.compile(r"https?://[^:/\s]+:[^@/\s]+@"),
]


def redact(text: str) -> str:
    """Mask credentials that commonly leak into command output."""
    for pattern in _SENSITIVE_PATTERNS:
        text = pattern.sub("[REDACTED]", text)
    return text


class RedactingFilter(logging.Filter):
    """Rewrites the rendered message so secrets never reach a handler."""

    def filter(self, record: logging.LogRecord) -> bool:
        try:
            message = record.getMessage()
        except (TypeError, ValueError):
            return True
        record.msg = redact(message)
        record.args = None
        return True


def _secure_handler(log_path: Path, level: int) -> RotatingFileHandler:
    handler = RotatingFileHandler(
        log_path,
        maxBytes=10 * 1024 * 1024,
        backupCount=3,
        encoding="utf-8",
    )
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    # Log files may contain command output
    try:
        os.chmod(log_path, 0o600)
    except OSError:
        pass
    return handler


def setup_logging(
    log_dir: Path | None = None,
    level: int = logging.INFO,
    console: bool = True,
) -> logging.Logger:
    """Configure the ``gatekeeper`` logger tree once.

    Calling again replaces the handlers, which keeps tests and repeated CLI
    invocations from stacking duplicates.
    """
    logger = logging.getLogger(ROOT_LOGGER)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    logger.setLevel(logging.DEBUG)
    redactor = RedactingFilter()

    if log_dir is not None:
        log_dir.mkdir(parents=True, exist_ok=True)
        main = _secure_handler(log_dir / "gatekeeper.log", level)
        errors = _secure_handler(log_dir / "gatekeeper.error.log", logging.ERROR)
        for handler in (main, errors):
            handler.addFilter(redactor)
            logger.addHandler(handler)

    if console:
        rich_handler = RichHandler(
            console=Console(stderr=True), show_path=False, rich_tracebacks=False
        )
        rich_handler.setLevel(level)
        rich_handler.addFilter(redactor)
        logger.addHandler(rich_handler)

    logger.propagate = False
    return logger
