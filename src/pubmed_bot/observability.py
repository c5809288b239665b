from __future__ import annotations

import contextvars
import json
import logging
import os
import time
import uuid
from datetime import datetime, timezone

from fastapi import Request, Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest


SERVICE_NAME = "pubmed-bot"

_request_id_ctx: contextvars.ContextVar[str] = contextvars.ContextVar("request_id", default="")
_mention_id_ctx: contextvars.ContextVar[str] = contextvars.ContextVar("mention_id", default="")


REQUEST_TOTAL = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["service", "endpoint", "method", "status"],
)
REQUEST_DURATION_MS = Histogram(
    "http_request_duration_ms",
    "HTTP request latency in milliseconds",
    ["service", "endpoint", "method"],
    buckets=(5, 10, 25, 50, 100, 250, 500, 1000, 2500, 5000, 10000),
)
PUBMED_REQUESTS_TOTAL = Counter(
    "pubmed_requests_total",
    "Remote E-utilities calls by endpoint and outcome",
    ["endpoint", "outcome"],
)
PUBMED_RETRIES_TOTAL = Counter(
    "pubmed_retries_total",
    "Retried E-utilities calls by endpoint and failure kind",
    ["endpoint", "reason"],
)
CACHE_LOOKUPS_TOTAL = Counter(
    "research_cache_lookups_total",
    "Result cache lookups by outcome",
    ["result"],
)
MENTIONS_TOTAL = Counter(
    "mentions_total",
    "Handled mentions by outcome",
    ["outcome"],
)


class _ContextFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = _request_id_ctx.get("")
        record.mention_id = _mention_id_ctx.get("")
        record.service = SERVICE_NAME
        return True


class _JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, object] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "service": getattr(record, "service", SERVICE_NAME),
            "message": record.getMessage(),
            "request_id": getattr(record, "request_id", ""),
            "mention_id": getattr(record, "mention_id", ""),
        }
        for field in ("endpoint", "duration_ms", "status", "method"):
            if hasattr(record, field):
                payload[field] = getattr(record, field)
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


def configure_logging(service_name: str = SERVICE_NAME) -> None:
    global SERVICE_NAME
    SERVICE_NAME = service_name
    root_logger = logging.getLogger()
    level_name = os.getenv("LOG_LEVEL", "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)
    root_logger.setLevel(level)

    formatter = _JsonFormatter()
    has_handler = False
    for handler in root_logger.handlers:
        handler.setFormatter(formatter)
        handler.addFilter(_ContextFilter())
        has_handler = True
    if not has_handler:
        stream_handler = logging.StreamHandler()
        stream_handler.setFormatter(formatter)
        stream_handler.addFilter(_ContextFilter())
        root_logger.addHandler(stream_handler)


def set_mention_id(mention_id: str | None) -> None:
    _mention_id_ctx.set(mention_id or "")


def observe_pubmed_call(endpoint: str, outcome: str) -> None:
    PUBMED_REQUESTS_TOTAL.labels(endpoint=endpoint, outcome=outcome).inc()


def observe_pubmed_retry(endpoint: str, reason: str) -> None:
    PUBMED_RETRIES_TOTAL.labels(endpoint=endpoint, reason=reason).inc()


def observe_cache_lookup(hit: bool) -> None:
    CACHE_LOOKUPS_TOTAL.labels(result="hit" if hit else "miss").inc()


def observe_mention(outcome: str) -> None:
    MENTIONS_TOTAL.labels(outcome=outcome).inc()


async def observability_middleware(request: Request, call_next):
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request.state.request_id = request_id
    _request_id_ctx.set(request_id)

    started = time.perf_counter()
    status_code = 500
    response: Response | None = None
    try:
        response = await call_next(request)
        status_code = response.status_code
        return response
    finally:
        duration_ms = int((time.perf_counter() - started) * 1000)
        endpoint = request.url.path
        method = request.method
        REQUEST_TOTAL.labels(
            service=SERVICE_NAME,
            endpoint=endpoint,
            method=method,
            status=str(status_code),
        ).inc()
        REQUEST_DURATION_MS.labels(
            service=SERVICE_NAME,
            endpoint=endpoint,
            method=method,
        ).observe(duration_ms)
        logging.getLogger("observability").info(
            "request_completed",
            extra={
                "endpoint": endpoint,
                "duration_ms": duration_ms,
                "status": status_code,
                "method": method,
            },
        )
        if response is not None:
            response.headers["X-Request-ID"] = request_id


def metrics_response() -> Response:
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
