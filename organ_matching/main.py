"""
Organ Matching Service

Main application entry point.

Run with:
    uvicorn organ_matching.main:app
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from . import __version__
from .api import register_error_handlers, router
from .core import MatchingService
from .db import create_record_store
from .observability import (
    setup_logging,
    get_logger,
    RequestContextMiddleware,
    check_health,
    get_metrics,
)

# Setup logging at import time
setup_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    if getattr(app.state, "service", None) is None:
        app.state.service = MatchingService(create_record_store())

    service = app.state.service
    state = service.get_program_state()

    logger.info(
        "Application startup complete",
        store_type=type(service.store).__name__,
        compatibility=service.config.compatibility.value,
        initialized=state is not None,
    )

    yield

    logger.info("Application shutdown complete")


def create_app(service: Optional[MatchingService] = None) -> FastAPI:
    """
    Build the application.

    Args:
        service: Use this service instead of one built from the
            environment at startup (tests pass one in).
    """
    app = FastAPI(
        title="Organ Matching Service",
        description="""
## Organ Matching Service

Allocates donated organs to waiting recipients under medical-authority oversight.

### Workflow

```
register recipients/donors → find best match (Pending) → confirm (Confirmed)
```

### Scoring

HLA agreement, urgency, time waited, pediatric priority and distance,
summed in integer points. Blood and organ types must be compatible.

### Identities

Send `X-Caller-Identity` and `X-Authority-Identity` headers holding
base64 Ed25519 public keys.

### Storage Backends

- **InMemoryRecordStore**: Development/testing (default)
- **PostgresRecordStore**: Production with full durability

Set `DATABASE_URL` or `DATABASE_HOST` environment variables to use PostgreSQL.
        """,
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    if service is not None:
        app.state.service = service

    app.add_middleware(RequestContextMiddleware)
    register_error_handlers(app)
    app.include_router(router, prefix="/api/v1")

    @app.get("/health", tags=["System"])
    async def health():
        """
        Basic health check endpoint.

        Returns 200 if the service is running.
        For detailed health, use /health/detailed
        """
        return {"status": "healthy", "service": "organ-matching"}

    @app.get("/health/detailed", tags=["System"])
    def health_detailed(request: Request):
        """
        Detailed health check.

        Checks:
        - Service liveness
        - Record store connectivity
        - Program state

        Returns 200 if healthy, 503 if unhealthy.
        """
        service = getattr(request.app.state, "service", None)
        store = service.store if service is not None else None

        health_status = check_health(service=service, store=store)

        return JSONResponse(
            status_code=200 if health_status.healthy else 503,
            content={
                "status": "healthy" if health_status.healthy else "unhealthy",
                "checks": health_status.checks,
                "duration_ms": health_status.duration_ms,
            },
        )

    @app.get("/metrics", tags=["System"])
    async def metrics():
        """
        Get application metrics.

        Returns counters and latency percentiles.
        """
        return get_metrics().get_summary()

    return app


app = create_app()
