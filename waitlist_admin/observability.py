from __future__ import annotations

import json
import logging
import os
import time
import uuid
from typing import Any, Mapping, Optional

LOGGER_NAME = "waitlist"


def configure_logging(level_name: str = "INFO") -> None:
    """Configure application logging at ``level_name`` (e.g. ``settings.log_level``).

    Emits **JSON lines** so hosted log collectors parse them into structured
    fields (severity, event, request_id, ...) without an extra logging library.
    """

    level = getattr(logging, level_name.upper().strip(), logging.INFO)
    if not isinstance(level, int):
        level = logging.INFO

    # Dedicated logger so Uvicorn's logging config doesn't clobber our format.
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("%(message)s"))

    # Replace handlers so repeated imports/reloads don't duplicate logs.
    logger.handlers.clear()
    logger.addHandler(handler)
    logger.propagate = False


def get_logger() -> logging.Logger:
    return logging.getLogger(LOGGER_NAME)


def request_id_from_headers(headers: Mapping[str, str]) -> str:
    """Determine a request ID.

    Preference order:
      1) X-Request-Id (reverse proxies)
      2) X-Correlation-Id
      3) generated UUID4
    """

    rid = headers.get("x-request-id") or headers.get("x-correlation-id")
    return (rid.strip() if rid else "") or str(uuid.uuid4())


_SEVERITY_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
}


def log_event(event: str, *, severity: str = "INFO", **fields: Any) -> None:
    """Emit one structured domain event (cleanup.completed, auth.denied, ...)."""

    payload: dict[str, Any] = {"severity": severity, "event": event}
    payload.update(fields)
    get_logger().log(_SEVERITY_LEVELS.get(severity, logging.INFO), json.dumps(payload, ensure_ascii=False, default=str))


def log_http_request(
    *,
    request_id: str,
    method: str,
    url: str,
    path: str,
    status: int,
    latency_ms: float,
    remote_ip: str,
    user_agent: str,
    limited: bool = False,
    error_type: Optional[str] = None,
    severity: str = "INFO",
) -> None:
    """Emit a structured request log."""

    payload: dict[str, Any] = {
        "severity": severity,
        "message": "http_request",
        "service": os.getenv("K_SERVICE", "waitlist-admin"),
        "request_id": request_id,
        "path": path,
        "limited": limited,
        "latency_ms": round(latency_ms, 2),
        "httpRequest": {
            "requestMethod": method,
            "requestUrl": url,
            "status": status,
            # Duration string, e.g. "0.123s".
            "latency": f"{latency_ms / 1000.0:.3f}s",
            "remoteIp": remote_ip,
            "userAgent": user_agent,
        },
    }
    if error_type:
        payload["error_type"] = error_type

    get_logger().log(_SEVERITY_LEVELS.get(severity, logging.INFO), json.dumps(payload, ensure_ascii=False))


class Timer:
    """Tiny helper for timing blocks."""

    def __init__(self) -> None:
        self._t0 = time.perf_counter()

    def ms(self) -> float:
        return (time.perf_counter() - self._t0) * 1000.0
