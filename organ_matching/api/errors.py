"""
HTTP Error Mapping

Every domain, store and request validation error is returned as

    {"error": <kind>, "reason": <reason or null>, "detail": <message>}

with a status chosen by error kind. Nothing is retried server-side.
"""

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from ..core.errors import OrganMatchingError, ValidationReason
from ..db.store import ConcurrencyError, LockTimeoutError, RecordExistsError, StoreError


ERROR_STATUS = {
    "authorization": status.HTTP_403_FORBIDDEN,
    "validation": status.HTTP_422_UNPROCESSABLE_ENTITY,
    "state": status.HTTP_409_CONFLICT,
    "not_found": status.HTTP_404_NOT_FOUND,
    "no_match": status.HTTP_404_NOT_FOUND,
    "overflow": status.HTTP_409_CONFLICT,
}

# Request fields whose schema bounds mirror a domain validation rule
FIELD_REASONS = {
    "medical_urgency": ValidationReason.URGENCY,
    "age": ValidationReason.AGE,
    "medical_notes": ValidationReason.NOTES_TOO_LONG,
}


def error_body(kind: str, reason, detail: str) -> dict:
    return {"error": kind, "reason": reason, "detail": detail}


async def organ_matching_error_handler(request: Request, exc: OrganMatchingError) -> JSONResponse:
    reason = exc.reason.value if exc.reason is not None else None
    return JSONResponse(
        status_code=ERROR_STATUS.get(exc.kind, status.HTTP_400_BAD_REQUEST),
        content=error_body(exc.kind, reason, str(exc)),
    )


async def store_error_handler(request: Request, exc: StoreError) -> JSONResponse:
    if isinstance(exc, RecordExistsError):
        code, kind = status.HTTP_409_CONFLICT, "already_exists"
    elif isinstance(exc, ConcurrencyError):
        code, kind = status.HTTP_409_CONFLICT, "conflict"
    elif isinstance(exc, LockTimeoutError):
        code, kind = status.HTTP_503_SERVICE_UNAVAILABLE, "busy"
    else:
        code, kind = status.HTTP_503_SERVICE_UNAVAILABLE, "store_unavailable"

    return JSONResponse(status_code=code, content=error_body(kind, None, str(exc)))


async def request_validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Render request parsing failures in the same shape as domain validation."""
    errors = exc.errors()
    reason = None
    for error in errors:
        loc = tuple(error.get("loc", ()))
        if loc and loc[0] == "header":
            reason = ValidationReason.IDENTITY
        else:
            reason = next((FIELD_REASONS[part] for part in loc if part in FIELD_REASONS), None)
        if reason is not None:
            break

    if errors:
        first = errors[0]
        where = ".".join(str(part) for part in first.get("loc", ()))
        detail = f"{where}: {first.get('msg')}"
    else:
        detail = "Invalid request"

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=error_body("validation", reason.value if reason is not None else None, detail),
    )


def register_error_handlers(app: FastAPI) -> None:
    """Attach the domain, store and request validation handlers to an application."""
    app.add_exception_handler(OrganMatchingError, organ_matching_error_handler)
    app.add_exception_handler(StoreError, store_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_error_handler)
