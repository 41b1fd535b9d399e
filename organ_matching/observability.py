"""
Observability Module - Logging, Metrics, and Health

Provides:
- Structured JSON logging with request IDs and caller identities
- Request/response logging middleware
- Metrics collection (operation latency, proposals, confirmations, etc.)
- Health check utilities

Configuration:
- ORGAN_MATCHING_LOG_LEVEL: DEBUG, INFO, WARNING, ERROR (default: INFO)
- ORGAN_MATCHING_LOG_FORMAT: json, text (default: json in production)
- ORGAN_MATCHING_PRODUCTION: Enable production mode

Usage:
    from organ_matching.observability import get_logger, RequestContextMiddleware

    logger = get_logger(__name__)
    logger.info("Match proposed", match_id=str(ref), score=230)
"""

import json
import logging
import os
import sys
import time
import uuid
from contextvars import ContextVar
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

# Context variables for request tracking
request_id_var: ContextVar[str] = ContextVar("request_id", default="")
caller_identity_var: ContextVar[str] = ContextVar("caller_identity", default="")

CALLER_HEADER = "X-Caller-Identity"
AUTHORITY_HEADER = "X-Authority-Identity"

# Attributes every LogRecord has; anything else came in as a keyword field
_STANDARD_RECORD_FIELDS = frozenset(
    logging.LogRecord("", 0, "", 0, "", None, None).__dict__
) | {"message", "asctime"}


# ============================================================
# CONFIGURATION
# ============================================================

def _is_production() -> bool:
    return os.environ.get("ORGAN_MATCHING_PRODUCTION", "").lower() in ("1", "true", "yes")


def _get_log_level() -> int:
    level_str = os.environ.get("ORGAN_MATCHING_LOG_LEVEL", "INFO").upper()
    levels = {
        "DEBUG": logging.DEBUG,
        "INFO": logging.INFO,
        "WARNING": logging.WARNING,
        "ERROR": logging.ERROR,
        "CRITICAL": logging.CRITICAL,
    }
    return levels.get(level_str, logging.INFO)


def _use_json_logging() -> bool:
    format_str = os.environ.get("ORGAN_MATCHING_LOG_FORMAT", "").lower()
    if format_str == "json":
        return True
    if format_str == "text":
        return False
    return _is_production()


# ============================================================
# STRUCTURED LOGGING
# ============================================================

class StructuredFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    Output format:
    {
        "timestamp": "2026-01-15T10:30:00.000000+00:00",
        "level": "INFO",
        "logger": "organ_matching.core.service",
        "message": "Match confirmed",
        "request_id": "abc-123",
        "caller_identity": "k3J...=",
        "match_id": "uuid-789",
        ...extra fields...
    }
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        request_id = request_id_var.get()
        if request_id:
            log_data["request_id"] = request_id

        caller = caller_identity_var.get()
        if caller:
            log_data["caller_identity"] = caller

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key in _STANDARD_RECORD_FIELDS or key.startswith("_"):
                continue
            try:
                json.dumps(value)
                log_data[key] = value
            except (TypeError, ValueError):
                log_data[key] = str(value)

        return json.dumps(log_data)


class TextFormatter(logging.Formatter):
    """Human-readable formatter for development."""

    def format(self, record: logging.LogRecord) -> str:
        prefix = ""
        request_id = request_id_var.get()
        if request_id:
            prefix = f"[{request_id[:8]}] "

        timestamp = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")

        msg = f"{timestamp} {record.levelname:8} {prefix}{record.name}: {record.getMessage()}"

        if record.exc_info:
            msg += "\n" + self.formatException(record.exc_info)

        return msg


class ContextLogger(logging.LoggerAdapter):
    """
    Logger adapter that turns keyword arguments into record fields.

    Usage:
        logger = get_logger(__name__)
        logger.info("Donor registered", donor=str(ref), organ_type="kidney")
    """

    def process(self, msg: str, kwargs: Dict[str, Any]) -> tuple:
        extra = dict(kwargs.get("extra") or {})

        for key in list(kwargs.keys()):
            if key not in ("exc_info", "stack_info", "stacklevel", "extra"):
                extra[key] = kwargs.pop(key)

        kwargs["extra"] = extra
        return msg, kwargs


def get_logger(name: str) -> ContextLogger:
    """
    Get a structured logger for the given name.

    Args:
        name: Logger name (typically __name__)
    """
    return ContextLogger(logging.getLogger(name), {})


def setup_logging() -> None:
    """
    Configure logging for the application.

    Call this once at application startup.
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(_get_log_level())

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(_get_log_level())

    if _use_json_logging():
        handler.setFormatter(StructuredFormatter())
    else:
        handler.setFormatter(TextFormatter())

    root_logger.addHandler(handler)

    # Suppress noisy loggers
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


# ============================================================
# REQUEST CONTEXT MIDDLEWARE
# ============================================================

class RequestContextMiddleware(BaseHTTPMiddleware):
    """
    Middleware that sets up request context for logging.

    Features:
    - Generates unique request ID for each request
    - Logs request/response with timing
    - Records the caller identity header, if any
    - Records request metrics
    """

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint
    ) -> Response:
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4())[:8])
        request_id_var.set(request_id)

        caller = request.headers.get(AUTHORITY_HEADER) or request.headers.get(CALLER_HEADER)
        if caller:
            caller_identity_var.set(caller)

        logger = get_logger("organ_matching.request")
        start_time = time.perf_counter()

        logger.debug(
            f"{request.method} {request.url.path}",
            method=request.method,
            path=request.url.path,
            client_ip=request.client.host if request.client else None,
        )

        try:
            response = await call_next(request)

            duration_ms = (time.perf_counter() - start_time) * 1000
            log_level = logging.INFO if response.status_code < 400 else logging.WARNING

            logger.log(
                log_level,
                f"{request.method} {request.url.path} -> {response.status_code}",
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                duration_ms=round(duration_ms, 2),
            )
            get_metrics().record_request(duration_ms, success=response.status_code < 500)

            response.headers["X-Request-ID"] = request_id

            return response

        except Exception as e:
            duration_ms = (time.perf_counter() - start_time) * 1000
            get_metrics().record_request(duration_ms, success=False)
            logger.exception(
                f"{request.method} {request.url.path} -> 500",
                method=request.method,
                path=request.url.path,
                status_code=500,
                duration_ms=round(duration_ms, 2),
                error=str(e),
            )
            raise

        finally:
            request_id_var.set("")
            caller_identity_var.set("")


# ============================================================
# METRICS
# ============================================================

MAX_LATENCY_SAMPLES = 1000


def _percentile(data: list, p: float) -> Optional[float]:
    if not data:
        return None
    sorted_data = sorted(data)
    idx = int(len(sorted_data) * p)
    return sorted_data[min(idx, len(sorted_data) - 1)]


@dataclass
class MetricsCollector:
    """
    Simple in-memory metrics collector.

    For production, replace with Prometheus, StatsD, or similar.
    """

    # Counters
    operations_total: int = 0
    operations_failed: int = 0
    recipients_created: int = 0
    recipients_updated: int = 0
    donors_registered: int = 0
    proposals_created: int = 0
    matches_confirmed: int = 0
    searches_without_match: int = 0
    candidates_scanned: int = 0
    notifications_sent: int = 0
    notifications_failed: int = 0
    requests_total: int = 0
    requests_failed: int = 0

    # Histograms (simplified as lists)
    operation_latencies_ms: list = field(default_factory=list)
    request_latencies_ms: list = field(default_factory=list)

    def record_operation(self, latency_ms: float, success: bool) -> None:
        """Record one service operation."""
        self.operations_total += 1
        if not success:
            self.operations_failed += 1
        self.operation_latencies_ms.append(latency_ms)
        if len(self.operation_latencies_ms) > MAX_LATENCY_SAMPLES:
            self.operation_latencies_ms = self.operation_latencies_ms[-MAX_LATENCY_SAMPLES:]

    def record_recipient(self, created: bool) -> None:
        if created:
            self.recipients_created += 1
        else:
            self.recipients_updated += 1

    def record_donor(self) -> None:
        self.donors_registered += 1

    def record_search(self, candidates: int, matched: bool) -> None:
        """Record one match search and the size of its candidate list."""
        self.candidates_scanned += candidates
        if matched:
            self.proposals_created += 1
        else:
            self.searches_without_match += 1

    def record_confirmation(self) -> None:
        self.matches_confirmed += 1

    def record_notification(self, success: bool) -> None:
        if success:
            self.notifications_sent += 1
        else:
            self.notifications_failed += 1

    def record_request(self, latency_ms: float, success: bool) -> None:
        """Record a request."""
        self.requests_total += 1
        if not success:
            self.requests_failed += 1
        self.request_latencies_ms.append(latency_ms)
        if len(self.request_latencies_ms) > MAX_LATENCY_SAMPLES:
            self.request_latencies_ms = self.request_latencies_ms[-MAX_LATENCY_SAMPLES:]

    def reset(self) -> None:
        """Zero every metric (for testing)."""
        fresh = MetricsCollector()
        self.__dict__.update(fresh.__dict__)

    def get_summary(self) -> Dict[str, Any]:
        """Get metrics summary."""
        return {
            "operations_total": self.operations_total,
            "operations_failed": self.operations_failed,
            "recipients_created": self.recipients_created,
            "recipients_updated": self.recipients_updated,
            "donors_registered": self.donors_registered,
            "proposals_created": self.proposals_created,
            "matches_confirmed": self.matches_confirmed,
            "searches_without_match": self.searches_without_match,
            "candidates_scanned": self.candidates_scanned,
            "notifications_sent": self.notifications_sent,
            "notifications_failed": self.notifications_failed,
            "requests_total": self.requests_total,
            "requests_failed": self.requests_failed,
            "operation_latency_p50_ms": _percentile(self.operation_latencies_ms, 0.5),
            "operation_latency_p95_ms": _percentile(self.operation_latencies_ms, 0.95),
            "operation_latency_p99_ms": _percentile(self.operation_latencies_ms, 0.99),
            "request_latency_p50_ms": _percentile(self.request_latencies_ms, 0.5),
            "request_latency_p95_ms": _percentile(self.request_latencies_ms, 0.95),
        }


# Global metrics instance
_metrics = MetricsCollector()


def get_metrics() -> MetricsCollector:
    """Get the global metrics collector."""
    return _metrics


# ============================================================
# HEALTH CHECKS
# ============================================================

@dataclass
class HealthStatus:
    """Health check result."""
    healthy: bool
    checks: Dict[str, Dict[str, Any]]
    duration_ms: float


def check_health(service=None, store=None) -> HealthStatus:
    """
    Run all health checks.

    Args:
        service: MatchingService instance
        store: RecordStore instance

    Returns:
        HealthStatus with all check results
    """
    start = time.perf_counter()
    checks = {}
    all_healthy = True

    # Check 1: Basic liveness
    checks["liveness"] = {"status": "healthy"}

    # Check 2: Record store reachable
    if store is not None:
        try:
            store.ping()
            checks["record_store"] = {
                "status": "healthy",
                "store_type": type(store).__name__,
            }
        except Exception as e:
            checks["record_store"] = {
                "status": "unhealthy",
                "error": str(e),
            }
            all_healthy = False

    # Check 3: Program state (not initialized is reported, not a failure)
    if service is not None:
        try:
            state = service.get_program_state()
            checks["program"] = {
                "status": "healthy",
                "initialized": state is not None,
                "paused": state.paused if state else None,
                "recipient_count": state.recipient_count if state else 0,
            }
        except Exception as e:
            checks["program"] = {
                "status": "unhealthy",
                "error": str(e),
            }
            all_healthy = False

    duration_ms = (time.perf_counter() - start) * 1000

    return HealthStatus(
        healthy=all_healthy,
        checks=checks,
        duration_ms=round(duration_ms, 2),
    )
