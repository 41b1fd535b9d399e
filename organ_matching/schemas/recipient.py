"""
Canonical Recipient Schema

A recipient is a patient waiting for an organ.
Identity, blood type and organ type are fixed at registration;
only urgency and distance may change afterwards.
"""

from enum import Enum
from typing import ClassVar

from pydantic import BaseModel, Field

from .base import StoredRecord
from .medical import U8_MAX, U32_MAX, BloodType, HlaMarkers, OrganType


class RecipientStatus(str, Enum):
    """
    Recipients move forward only.
    Active -> Matched | Removed.
    """
    ACTIVE = "active"
    MATCHED = "matched"
    REMOVED = "removed"     # Reserved for a removal workflow


class RecipientData(BaseModel):
    """
    Recipient profile as submitted by a medical authority.
    """
    medical_urgency: int = Field(
        ...,
        ge=0,
        le=U8_MAX,
        description="Clinical urgency, 0-100"
    )

    geographical_distance: int = Field(
        ...,
        ge=0,
        le=U32_MAX,
        description="Distance to the donor site in distance units"
    )

    hla_markers: HlaMarkers

    blood_type: BloodType
    organ_type: OrganType

    age: int = Field(
        ...,
        ge=0,
        le=U8_MAX,
        description="Age in years, 0-120"
    )

    medical_notes: str = Field(
        default="",
        description="Free-text notes, at most 1000 characters"
    )


class RecipientRecord(StoredRecord):
    """
    Stored recipient.

    ``created_at`` is set once at registration and never changes.
    """
    record_kind: ClassVar[str] = "recipient"

    owner: str = Field(
        ...,
        description="Identity that registered (and owns) this record"
    )

    medical_urgency: int = Field(..., ge=0, le=U8_MAX)
    geographical_distance: int = Field(..., ge=0, le=U32_MAX)
    hla_markers: HlaMarkers
    blood_type: BloodType
    organ_type: OrganType
    age: int = Field(..., ge=0, le=U8_MAX)
    medical_notes: str = ""

    created_at: int = Field(..., description="Registration time (unix seconds)")
    last_updated: int = Field(..., description="Last update time (unix seconds)")

    status: RecipientStatus = RecipientStatus.ACTIVE
