"""
Canonical Notification Schema

Completed operations are announced to a notification sink.
Notifications are fire-and-forget: they describe what already
happened and never feed back into the operation.
"""

from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field


class EventType(str, Enum):
    """
    Notification types.
    You can add more later, never remove.
    """
    RECIPIENT_UPDATED = "RECIPIENT_UPDATED"
    MATCH_FOUND = "MATCH_FOUND"
    MATCH_CONFIRMED = "MATCH_CONFIRMED"

    # Future event types (reserved)
    # MATCH_REJECTED = "MATCH_REJECTED"
    # DONOR_WITHDRAWN = "DONOR_WITHDRAWN"


# ============================================================
# Event Payloads
# ============================================================

class RecipientUpdatedPayload(BaseModel):
    """Payload for RECIPIENT_UPDATED (create or update)."""
    recipient: UUID
    medical_urgency: int
    timestamp: int


class MatchFoundPayload(BaseModel):
    """Payload for MATCH_FOUND."""
    match_id: UUID
    donor: UUID
    recipient: UUID
    score: int
    timestamp: int


class MatchConfirmedPayload(BaseModel):
    """Payload for MATCH_CONFIRMED."""
    match_id: UUID
    donor: UUID
    recipient: UUID
    medical_authority: str
    timestamp: int


# ============================================================
# The Notification Envelope
# ============================================================

class Notification(BaseModel):
    """
    A single emitted notification.
    """
    event_id: UUID = Field(
        ...,
        description="Unique identifier for this notification"
    )

    event_type: EventType

    payload: dict[str, Any] = Field(
        ...,
        description="JSON-ready payload for this event type"
    )

    emitted_at: int = Field(
        ...,
        description="When the notification was emitted (unix seconds)"
    )
