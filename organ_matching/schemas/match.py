"""
Canonical Match Schema

A proposal produced by the matching engine, awaiting clinical
confirmation by a medical authority.
"""

from enum import Enum
from typing import ClassVar, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from .base import StoredRecord


class MatchStatus(str, Enum):
    """
    Proposals move through exactly one path.
    Pending -> Confirmed | Rejected. Both are terminal.
    """
    PENDING = "pending"
    CONFIRMED = "confirmed"
    REJECTED = "rejected"       # Reserved for a rejection workflow


class ScoreBreakdown(BaseModel):
    """
    The five score components and their sum.

    Ranges: hla 0-50, urgency 0-100, wait_time 0-50,
    pediatric 0 or 50, geographic 0-50.
    """
    hla: int = Field(..., ge=0)
    urgency: int = Field(..., ge=0)
    wait_time: int = Field(..., ge=0)
    pediatric: int = Field(..., ge=0)
    geographic: int = Field(..., ge=0)
    total: int = Field(..., ge=0)


class MatchProposal(StoredRecord):
    """
    Stored match proposal.

    ``score`` is the value computed at proposal time. It is never
    recomputed, even if the recipient's urgency changes later.
    """
    record_kind: ClassVar[str] = "match"

    recipient: UUID = Field(..., description="Recipient record reference")
    donor: UUID = Field(..., description="Donor record reference")

    score: int = Field(..., ge=0)
    timestamp: int = Field(..., description="Proposal time (unix seconds)")

    status: MatchStatus = MatchStatus.PENDING

    confirmed_by: Optional[str] = Field(
        default=None,
        description="Authority that confirmed the match"
    )
    confirmed_at: Optional[int] = Field(
        default=None,
        description="Confirmation time (unix seconds)"
    )
