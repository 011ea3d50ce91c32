import json
import logging
import os
import time
import uuid
from typing import Optional

from fastapi import FastAPI, Request
from prometheus_client import Counter, Histogram
from starlette.middleware.base import BaseHTTPMiddleware

from content_approval.core.config import get_settings


_REQ_COUNT = Counter(
    "caw_http_requests_total",
    "Total HTTP requests",
    ["method", "route", "status"],
)
_REQ_LATENCY = Histogram(
    "caw_http_request_duration_seconds",
    "HTTP request duration (seconds)",
    ["method", "route"],
    buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1, 2.5, 5, 10),
)
WORKFLOW_EVENTS = Counter(
    "caw_workflow_events_total",
    "Approval workflow transitions",
    ["event"],
)


def count_event(event: str) -> None:
    WORKFLOW_EVENTS.labels(event).inc()


def _release() -> Optional[str]:
    return os.getenv("GIT_SHA") or None


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Adds a request ID and logs one JSON line per request/response.
    """

    async def dispatch(self, request: Request, call_next):
        # Propagate a request id if provided by upstream (e.g. proxy), else generate.
        request_id = (
            request.headers.get("x-request-id")
            or request.headers.get("x-requestid")
            or str(uuid.uuid4())
        )
        start = time.time()
        logger = logging.getLogger("caw.http")
        try:
            response = await call_next(request)
        except Exception:
            route_obj = request.scope.get("route")
            payload = {
                "event": "http_exception",
                "request_id": request_id,
                "method": request.method,
                "path": request.url.path,
                "route": getattr(route_obj, "path", None) or request.url.path,
                "status_code": 500,
                "duration_ms": int((time.time() - start) * 1000),
                "release": _release(),
            }
            logger.exception(json.dumps(payload, ensure_ascii=False))
            raise

        duration_ms = int((time.time() - start) * 1000)
        route_obj = request.scope.get("route")
        route = getattr(route_obj, "path", None) or request.url.path
        payload = {
            "event": "http_request",
            "request_id": request_id,
            "method": request.method,
            "path": request.url.path,
            "route": route,
            "status_code": response.status_code,
            "duration_ms": duration_ms,
            "client_ip": request.client.host if request.client else None,
            "release": _release(),
        }

        if response.status_code >= 500:
            logger.error(json.dumps(payload, ensure_ascii=False))
        elif response.status_code >= 400:
            logger.warning(json.dumps(payload, ensure_ascii=False))
        else:
            logger.info(json.dumps(payload, ensure_ascii=False))

        # Prometheus metrics (skip self-scrape + health)
        if route not in ("/metrics", "/health", "/healthz", "/readyz"):
            _REQ_COUNT.labels(request.method, route, str(response.status_code)).inc()
            _REQ_LATENCY.labels(request.method, route).observe((time.time() - start))

        response.headers["X-Request-ID"] = request_id
        return response


def configure_logging() -> None:
    """Configure a sane default logging setup for the service."""
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s [%(name)s] %(message)s")
    for name in ("caw.http", "caw.tracing", "caw.workflow", "caw.notifications", "caw.audit", "caw.reminders"):
        logging.getLogger(name).setLevel(logging.INFO)


def init_tracing(app: FastAPI) -> None:
    """
    Attach request logging and, if configured, error tracing (Sentry).
    """
    settings = get_settings()
    configure_logging()

    app.add_middleware(RequestLoggingMiddleware)

    dsn: Optional[str] = getattr(settings, "sentry_dsn", None)
    if not dsn:
        return

    try:
        import sentry_sdk  # type: ignore[import-not-found]
        from sentry_sdk.integrations.fastapi import FastApiIntegration  # type: ignore[import-not-found]

        sentry_sdk.init(
            dsn=dsn,
            environment=(getattr(settings, "sentry_env", None) or settings.environment),
            release=_release(),
            integrations=[FastApiIntegration()],
            traces_sample_rate=float(os.getenv("SENTRY_TRACES_SAMPLE_RATE", "0.05")),
        )
        logging.getLogger("caw.tracing").info("Sentry tracing initialized")
    except ImportError:
        logging.getLogger("caw.tracing").warning(
            "sentry-sdk not installed; skipping Sentry tracing setup"
        )
