"""
Structured JSON logging for liveconfig (stdlib `logging` only).

Every line written by `init_structured_logging` is one JSON object carrying:
- identity: service, env, version, sha
- correlation: request_id, correlation_id
- event_type, severity, message, logger
- any `extra=` fields passed by the caller (e.g. component, keys, duration_ms)

Rebinder, binder, environment and bus code logs through `log_event`, which
gives each record a stable `event_type` such as `rebind.failed` or
`environment.changed`. The admin HTTP surface adds a request-id middleware
that binds `X-Request-ID` for the request and logs one `http.request` line.
"""

from __future__ import annotations

import json
import logging
import os
import sys
import time
import traceback
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, Optional

from liveconfig import __version__

_REQUEST_ID: ContextVar[Optional[str]] = ContextVar("liveconfig_request_id", default=None)

# Attributes every LogRecord carries; anything else on a record came from `extra=`.
_RECORD_ATTRS = frozenset(logging.LogRecord("", 0, "", 0, "", (), None).__dict__) | {"message", "asctime"}
# Keys the formatter writes itself.
_CORE_KEYS = frozenset(
    {
        "timestamp",
        "severity",
        "service",
        "env",
        "version",
        "sha",
        "request_id",
        "correlation_id",
        "event_type",
        "message",
        "logger",
    }
)

_SEVERITY_ALIASES = {"WARN": "WARNING", "FATAL": "CRITICAL"}
_SEVERITIES = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})


def _one_line(v: Any, *, limit: int = 2000) -> str:
    text = "" if v is None else str(v).replace("\r", " ").replace("\n", " ").strip()
    return text if len(text) <= limit else text[: limit - 1] + "…"


def _first_env(*names: str, default: str) -> str:
    for name in names:
        value = (os.getenv(name) or "").strip()
        if value:
            return _one_line(value, limit=128)
    return default


def severity_name(level: str | int | None) -> str:
    """Map a logging level (name or number) onto one of the five severities."""
    if isinstance(level, int):
        level = logging.getLevelName(level)
    name = _one_line(level or "INFO", limit=16).upper()
    name = _SEVERITY_ALIASES.get(name, name)
    return name if name in _SEVERITIES else "INFO"


@dataclass(frozen=True)
class LogIdentity:
    service: str
    env: str
    version: str
    sha: str

    @classmethod
    def from_env(
        cls,
        *,
        service: str | None = None,
        env: str | None = None,
        version: str | None = None,
        sha: str | None = None,
    ) -> "LogIdentity":
        return cls(
            service=service or default_service_name(),
            env=env or _first_env("LIVECONFIG_ENV", "ENVIRONMENT", default="unknown"),
            version=version or _first_env("LIVECONFIG_VERSION", default=__version__),
            sha=sha or _first_env("GIT_SHA", "COMMIT_SHA", default="unknown"),
        )


def default_service_name() -> str:
    return _first_env("LIVECONFIG_SERVICE_NAME", "SERVICE_NAME", default="liveconfig")


def get_request_id() -> Optional[str]:
    return _REQUEST_ID.get()


@contextmanager
def bind_request_id(*, request_id: str | None = None) -> Iterator[str]:
    """Bind a request id (generated when missing) for the duration of the block."""
    rid = _one_line(request_id, limit=128) or uuid.uuid4().hex
    token = _REQUEST_ID.set(rid)
    try:
        yield rid
    finally:
        _REQUEST_ID.reset(token)


class JsonLogFormatter(logging.Formatter):
    def __init__(self, identity: LogIdentity | None = None) -> None:
        super().__init__()
        self._identity = identity or LogIdentity.from_env()

    def format(self, record: logging.LogRecord) -> str:  # noqa: A003
        ident = self._identity
        extras = {k: v for k, v in record.__dict__.items() if k not in _RECORD_ATTRS and not k.startswith("_")}
        request_id = extras.pop("request_id", None) or get_request_id()

        line: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "severity": severity_name(extras.pop("severity", None) or record.levelno),
            "service": extras.pop("service", None) or ident.service,
            "env": ident.env,
            "version": ident.version,
            "sha": ident.sha,
            "request_id": request_id,
            "correlation_id": extras.pop("correlation_id", None) or request_id,
            "event_type": _one_line(extras.pop("event_type", None), limit=128) or "log",
            "message": _one_line(record.getMessage(), limit=4000),
            "logger": record.name,
        }
        for key, value in extras.items():
            if key not in _CORE_KEYS:
                line[key] = value

        if record.exc_info:
            line["exception"] = "".join(traceback.format_exception(*record.exc_info))[-8000:]
        return json.dumps(line, separators=(",", ":"), ensure_ascii=False, default=str)


def init_structured_logging(
    *,
    service: str | None = None,
    env: str | None = None,
    version: str | None = None,
    sha: str | None = None,
    level: str | int | None = None,
) -> None:
    """
    Send every log record to stdout as one JSON line. Replaces existing root
    handlers, so calling it again reconfigures.
    """
    lvl = severity_name(level or os.getenv("LIVECONFIG_LOG_LEVEL") or "INFO")
    handler = logging.StreamHandler(stream=sys.stdout)
    handler.setFormatter(
        JsonLogFormatter(LogIdentity.from_env(service=service, env=env, version=version, sha=sha))
    )

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(lvl)
    logging.captureWarnings(True)

    # uvicorn installs its own handlers; route them through root instead.
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        lg = logging.getLogger(name)
        lg.handlers = []
        lg.propagate = True


def log_event(
    logger: logging.Logger,
    event_type: str,
    *,
    severity: str = "INFO",
    message: str | None = None,
    exc_info: bool = False,
    **fields: Any,
) -> None:
    """Log a semantic event with a stable `event_type` and extra fields."""
    logger.log(
        getattr(logging, severity_name(severity)),
        message or event_type,
        exc_info=exc_info,
        extra={"event_type": event_type, **fields},
    )


def install_fastapi_request_id_middleware(app: Any, *, service: str | None = None) -> None:
    """
    Bind `X-Request-ID` (or `X-Correlation-Id`) for each request, echo it on
    the response and log one `http.request` line.
    """
    from starlette.requests import Request

    http_logger = logging.getLogger("liveconfig.http")
    svc = service or default_service_name()

    @app.middleware("http")
    async def _request_id_mw(request: Request, call_next):
        incoming = request.headers.get("x-request-id") or request.headers.get("x-correlation-id")
        start = time.perf_counter()
        status_code = 500
        with bind_request_id(request_id=incoming) as rid:
            try:
                response = await call_next(request)
                status_code = response.status_code
            finally:
                log_event(
                    http_logger,
                    "http.request",
                    severity="WARNING" if status_code >= 500 else "INFO",
                    service=svc,
                    method=request.method,
                    path=request.url.path,
                    status_code=status_code,
                    duration_ms=int((time.perf_counter() - start) * 1000),
                )
        response.headers["X-Request-ID"] = rid
        return response
