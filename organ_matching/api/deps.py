"""
Dependency injection for API routes.

The service lives on app.state (set by the application lifespan or by
create_app). Caller identities arrive in headers and are trusted:
signature verification happens before requests reach this service.
"""

from fastapi import Header, HTTPException, Request, status

from ..core import MatchingService
from ..observability import AUTHORITY_HEADER, CALLER_HEADER


def get_service(request: Request) -> MatchingService:
    """The MatchingService attached to the running application."""
    service = getattr(request.app.state, "service", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Matching service not ready",
        )
    return service


def get_caller(caller: str = Header(..., alias=CALLER_HEADER)) -> str:
    """Identity on whose behalf the request is made."""
    return caller


def get_authority(authority: str = Header(..., alias=AUTHORITY_HEADER)) -> str:
    """Medical authority vouching for the request."""
    return authority
