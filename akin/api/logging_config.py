"""Logging configuration for the Akin service.

Structured JSON logging for the API. Each record becomes one JSON object
carrying any ``extra`` fields (user IDs, stage names, durations) so
pipeline runs can be followed in a log aggregator. A plain-text layout is
available for local runs.
"""

import json
import logging
import sys
import time
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Iterable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

REQUEST_ID_HEADER = "X-Request-ID"

PLAIN_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

# attributes every LogRecord has; anything else came in through ``extra``
_RESERVED_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime"}


class JSONFormatter(logging.Formatter):
    """Formats log records as single-line JSON."""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "thread": record.threadName,
        }
        payload.update(
            (key, value)
            for key, value in vars(record).items()
            if key not in _RESERVED_ATTRS
        )

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        # user IDs and item metadata are not always JSON-native
        return json.dumps(payload, default=str)


def setup_logging(log_level: str = "INFO", json_format: bool = True) -> None:
    """Route every logger to stdout.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
            Unknown names fall back to INFO.
        json_format: Emit JSON lines. If False, use a plain-text layout.
    """
    level = getattr(logging, log_level.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    if json_format:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(PLAIN_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()
    root.addHandler(handler)

    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Logs every request with a request ID, status code and duration.

    A caller-supplied ``X-Request-ID`` is reused, otherwise one is generated.
    Requests to ``quiet_paths`` (health checks by default) log at DEBUG.
    """

    def __init__(self, app: Any, quiet_paths: Iterable[str] = ("/ping",)):
        super().__init__(app)
        self.quiet_paths = frozenset(quiet_paths)
        self.logger = logging.getLogger("akin.api.requests")

    async def dispatch(self, request: Request, call_next: Any) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        path = request.url.path
        level = logging.DEBUG if path in self.quiet_paths else logging.INFO
        fields = {"request_id": request_id, "method": request.method, "path": path}
        start_time = time.time()

        try:
            response = await call_next(request)
        except Exception as e:
            self.logger.error(
                f"{request.method} {path} raised {type(e).__name__}",
                extra={
                    **fields,
                    "error_type": type(e).__name__,
                    "duration_ms": round((time.time() - start_time) * 1000, 2),
                },
                exc_info=True,
            )
            raise

        self.logger.log(
            level,
            f"{request.method} {path} -> {response.status_code}",
            extra={
                **fields,
                "status_code": response.status_code,
                "duration_ms": round((time.time() - start_time) * 1000, 2),
            },
        )
        response.headers[REQUEST_ID_HEADER] = request_id
        return response
