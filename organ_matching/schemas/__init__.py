# Canonical Schemas for the Organ Matching Service

from .base import StoredRecord
from .medical import (
    BloodType,
    OrganType,
    HlaMarkers,
    HLA_MARKER_COUNT,
    MAX_MEDICAL_NOTES_LENGTH,
)
from .authority import AuthorityRecord, ProgramState
from .recipient import RecipientData, RecipientRecord, RecipientStatus
from .donor import DonorData, DonorRecord, DonorStatus
from .match import MatchProposal, MatchStatus, ScoreBreakdown
from .events import (
    EventType,
    Notification,
    RecipientUpdatedPayload,
    MatchFoundPayload,
    MatchConfirmedPayload,
)

__all__ = [
    "StoredRecord",
    # Medical vocabulary
    "BloodType",
    "OrganType",
    "HlaMarkers",
    "HLA_MARKER_COUNT",
    "MAX_MEDICAL_NOTES_LENGTH",
    # Authority
    "AuthorityRecord",
    "ProgramState",
    # Recipient
    "RecipientData",
    "RecipientRecord",
    "RecipientStatus",
    # Donor
    "DonorData",
    "DonorRecord",
    "DonorStatus",
    # Match
    "MatchProposal",
    "MatchStatus",
    "ScoreBreakdown",
    # Events
    "EventType",
    "Notification",
    "RecipientUpdatedPayload",
    "MatchFoundPayload",
    "MatchConfirmedPayload",
]
