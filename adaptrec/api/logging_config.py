"""Logging configuration for AdaptRec.

JSON log lines for the HTTP service (one object per record, ``extra``
fields grouped under ``context``) and a plain formatter for the command
line tools. Training passes, recommendation passes and requests all log
through the standard ``logging`` module.
"""

import json
import logging
import os
import sys
import time
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

LOG_LEVEL_ENV = "ADAPTREC_LOG_LEVEL"
DEFAULT_LOG_LEVEL = "INFO"
SERVICE_NAME = "adaptrec"
PLAIN_FORMAT = "%(levelname)s: %(message)s"

# Third-party loggers kept at WARNING
QUIET_LOGGERS = ("uvicorn", "uvicorn.access", "multipart")

# Path prefixes whose next segment is a user id
SESSION_PATH_PREFIXES = ("sessions", "recommend")

# Attributes every LogRecord has; anything else was passed through ``extra``
_RECORD_ATTRS = frozenset(
    logging.LogRecord("", 0, "", 0, "", (), None).__dict__
) | {"message", "asctime"}


class JSONFormatter(logging.Formatter):
    """Formats log records as one JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "service": SERVICE_NAME,
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}.{record.funcName}:{record.lineno}",
        }

        context = {
            key: value for key, value in record.__dict__.items() if key not in _RECORD_ATTRS
        }
        if context:
            log_data["context"] = context
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        # numpy scalars and datetimes fall back to str
        return json.dumps(log_data, default=str)


def setup_logging(log_level: Optional[str] = None, json_format: bool = True) -> None:
    """Configure root logging.

    Args:
        log_level: Level name; defaults to ``ADAPTREC_LOG_LEVEL`` or INFO.
        json_format: JSON lines for the service, plain text for the CLI tools.

    Raises:
        ValueError: If the level name is not a logging level.
    """
    level_name = (log_level or os.getenv(LOG_LEVEL_ENV, DEFAULT_LOG_LEVEL)).upper()
    level = logging.getLevelName(level_name)
    if not isinstance(level, int):
        raise ValueError(f"Unknown log level: {level_name}")

    handler = logging.StreamHandler(sys.stdout if json_format else sys.stderr)
    handler.setFormatter(JSONFormatter() if json_format else logging.Formatter(PLAIN_FORMAT))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def session_user(path: str) -> Optional[str]:
    """User id a session-scoped path refers to, if any."""
    parts = [part for part in path.split("/") if part]
    if len(parts) >= 2 and parts[0] in SESSION_PATH_PREFIXES:
        return parts[1]
    return None


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Logs each request with its id, session user, status and duration.

    The request id is stored on ``request.state`` so error handlers can log
    it too, and is returned in the ``X-Request-ID`` header.
    """

    async def dispatch(self, request: Request, call_next: Any) -> Response:
        request_id = str(uuid.uuid4())
        request.state.request_id = request_id
        logger = logging.getLogger("adaptrec.api.main")
        start_time = time.time()

        context = {
            "request_id": request_id,
            "method": request.method,
            "path": request.url.path,
            "user_id": session_user(request.url.path),
        }
        logger.debug("Incoming request", extra=context)

        try:
            response = await call_next(request)
        except Exception as e:
            logger.exception(
                "Request failed",
                extra={
                    **context,
                    "error_type": type(e).__name__,
                    "duration_ms": round((time.time() - start_time) * 1000, 2),
                },
            )
            raise

        logger.info(
            f"{request.method} {request.url.path} -> {response.status_code}",
            extra={
                **context,
                "status_code": response.status_code,
                "duration_ms": round((time.time() - start_time) * 1000, 2),
            },
        )
        response.headers["X-Request-ID"] = request_id
        return response
