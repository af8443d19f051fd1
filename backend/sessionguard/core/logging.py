"""Centralized logging configuration using Loguru for the application.

This module configures Loguru and installs an intercept handler so code
that uses the standard library ``logging`` (uvicorn, SQLAlchemy, httpx) is
routed through Loguru. The log level can be adjusted via the ``LOG_LEVEL``
environment variable.

Every record passes through :func:`redact_secrets`, which masks anything
shaped like a signed access token so tokens never reach a sink even when a
third-party library logs request data.
"""

import logging
import os
import re
import sys

from loguru import logger

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

_JWT_PATTERN = re.compile(r"eyJ[\w-]+\.[\w-]+\.[\w-]*")
_BEARER_PATTERN = re.compile(r"(?i)(bearer\s+)\S+")


def redact_secrets(record) -> None:
    """Loguru patcher masking bearer credentials in the message."""
    message = _JWT_PATTERN.sub("<redacted-token>", record["message"])
    record["message"] = _BEARER_PATTERN.sub(r"\1<redacted>", message)


class InterceptHandler(logging.Handler):
    """Handler to route stdlib logging records into Loguru.

    Caller information is preserved so Loguru logs reflect the originating
    module/line rather than the interception point.
    """

    def emit(
        self, record: logging.LogRecord
    ) -> None:  # pragma: no cover - simple routing
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(
            level, record.getMessage()
        )


def setup_logging(level: str = LOG_LEVEL) -> None:
    """(Re)configure the Loguru sink and stdlib interception at `level`."""
    logger.remove()
    logger.configure(patcher=redact_secrets)
    logger.add(
        sys.stdout,
        level=level,
        format="{time:YYYY-MM-DD HH:mm:ss.SSS} | {level} | {name} | {message}",
        backtrace=True,
        diagnose=False,
    )

    logging.basicConfig(handlers=[InterceptHandler()], level=level, force=True)
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access", "sqlalchemy.engine", "httpx"):
        logging.getLogger(name).handlers = [InterceptHandler()]
        logging.getLogger(name).setLevel(level)


setup_logging()

# Usage: from core.logging import logger
