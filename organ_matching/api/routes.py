"""
API Routes for the Organ Matching Service

Program administration:
- POST /program/initialize              - Create program state
- GET  /program                         - Read program state
- POST /program/pause                   - Pause or resume (admin)
- PUT  /authorities/{identity}          - Register/activate/deactivate an authority (admin)
- GET  /authorities/{identity}          - Read an authority

Registration:
- PUT  /recipients                      - Register or update the caller as a recipient
- GET  /recipients/{ref}                - Read a recipient
- POST /donors                          - Register the caller as a donor
- GET  /donors/{ref}                    - Read a donor

Matching:
- POST /donors/{ref}/match              - Propose the best recipient for a donor
- POST /matches/{ref}/confirm           - Confirm a pending proposal
- GET  /matches/{ref}                   - Read a proposal

Identities are taken from the X-Caller-Identity and X-Authority-Identity
headers. Errors are rendered by organ_matching.api.errors.
"""

from uuid import UUID

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field

from ..core import MatchingService, NotFoundError
from ..schemas import (
    AuthorityRecord,
    DonorData,
    DonorRecord,
    MatchProposal,
    ProgramState,
    RecipientData,
    RecipientRecord,
    ScoreBreakdown,
)
from .deps import get_authority, get_caller, get_service


router = APIRouter()


# ============================================================
# Request/Response Models
# ============================================================

class InitializeRequest(BaseModel):
    """Request to create program state."""
    admin: str = Field(..., description="Identity of the program admin")


class PauseRequest(BaseModel):
    paused: bool


class SetAuthorityRequest(BaseModel):
    """Request to register, activate or deactivate a medical authority."""
    active: bool = True


class FindMatchRequest(BaseModel):
    """Recipients to consider for a donor, in priority order for ties."""
    candidates: list[UUID] = Field(default_factory=list)


class MatchResponse(BaseModel):
    """A stored proposal with its score components."""
    proposal: MatchProposal
    breakdown: ScoreBreakdown


# ============================================================
# Program Administration
# ============================================================

@router.post(
    "/program/initialize",
    response_model=ProgramState,
    status_code=status.HTTP_201_CREATED,
    tags=["Program"],
    summary="Initialize the program",
)
def initialize_program(
    request: InitializeRequest,
    service: MatchingService = Depends(get_service),
):
    """
    Create program state. Succeeds exactly once.
    """
    return service.initialize(request.admin)


@router.get(
    "/program",
    response_model=ProgramState,
    tags=["Program"],
    summary="Get program state",
)
def get_program(service: MatchingService = Depends(get_service)):
    state = service.get_program_state()
    if state is None:
        raise NotFoundError("Program not initialized")
    return state


@router.post(
    "/program/pause",
    response_model=ProgramState,
    tags=["Program"],
    summary="Pause or resume the program",
)
def pause_program(
    request: PauseRequest,
    caller: str = Depends(get_caller),
    service: MatchingService = Depends(get_service),
):
    """
    While paused, registration, matching and confirmation are refused.
    Only the admin may change this flag.
    """
    return service.set_paused(caller, request.paused)


@router.put(
    "/authorities/{identity:path}",
    response_model=AuthorityRecord,
    tags=["Program"],
    summary="Register or update a medical authority",
)
def set_authority(
    identity: str,
    request: SetAuthorityRequest,
    caller: str = Depends(get_caller),
    service: MatchingService = Depends(get_service),
):
    """
    Admin only. Deactivation keeps the authority's confirmed-match count.
    """
    return service.set_medical_authority(caller, identity, request.active)


@router.get(
    "/authorities/{identity:path}",
    response_model=AuthorityRecord,
    tags=["Program"],
    summary="Get a medical authority",
)
def get_authority_record(
    identity: str,
    service: MatchingService = Depends(get_service),
):
    return service.get_authority(identity)


# ============================================================
# Registration
# ============================================================

@router.put(
    "/recipients",
    response_model=RecipientRecord,
    tags=["Recipients"],
    summary="Register or update the caller as a recipient",
)
def upsert_recipient(
    request: RecipientData,
    caller: str = Depends(get_caller),
    authority: str = Depends(get_authority),
    service: MatchingService = Depends(get_service),
):
    """
    The first call registers the caller. Later calls update urgency and
    distance only; everything else stays as first registered.
    """
    return service.upsert_recipient(caller, request, authority=authority)


@router.get(
    "/recipients/{ref}",
    response_model=RecipientRecord,
    tags=["Recipients"],
    summary="Get a recipient",
)
def get_recipient(ref: UUID, service: MatchingService = Depends(get_service)):
    return service.get_recipient(ref)


@router.post(
    "/donors",
    response_model=DonorRecord,
    status_code=status.HTTP_201_CREATED,
    tags=["Donors"],
    summary="Register the caller as a donor",
)
def add_donor(
    request: DonorData,
    caller: str = Depends(get_caller),
    authority: str = Depends(get_authority),
    service: MatchingService = Depends(get_service),
):
    """
    One donor record per identity; a second registration is a conflict.
    """
    return service.add_donor(caller, request, authority=authority)


@router.get(
    "/donors/{ref}",
    response_model=DonorRecord,
    tags=["Donors"],
    summary="Get a donor",
)
def get_donor(ref: UUID, service: MatchingService = Depends(get_service)):
    return service.get_donor(ref)


# ============================================================
# Matching
# ============================================================

@router.post(
    "/donors/{ref}/match",
    response_model=MatchResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["Matching"],
    summary="Find the best recipient for a donor",
)
def find_match(
    ref: UUID,
    request: FindMatchRequest,
    authority: str = Depends(get_authority),
    service: MatchingService = Depends(get_service),
):
    """
    Score the listed recipients and store a pending proposal for the best.

    Unknown recipient references are ignored. Ties go to the earliest
    candidate in the list.
    """
    result = service.find_best_match(authority, ref, request.candidates)
    return MatchResponse(proposal=result.proposal, breakdown=result.breakdown)


@router.post(
    "/matches/{ref}/confirm",
    response_model=MatchProposal,
    tags=["Matching"],
    summary="Confirm a pending proposal",
)
def confirm_match(
    ref: UUID,
    authority: str = Depends(get_authority),
    service: MatchingService = Depends(get_service),
):
    """
    Marks the proposal confirmed and the donor and recipient matched,
    and credits the confirming authority, all at once.
    """
    return service.confirm_match(authority, ref)


@router.get(
    "/matches/{ref}",
    response_model=MatchProposal,
    tags=["Matching"],
    summary="Get a proposal",
)
def get_match(ref: UUID, service: MatchingService = Depends(get_service)):
    return service.get_match(ref)
