"""
Canonical Donor Schema

One donor record per owner identity.
"""

from enum import Enum
from typing import ClassVar

from pydantic import BaseModel, Field

from .base import StoredRecord
from .medical import BloodType, HlaMarkers, OrganType


class DonorStatus(str, Enum):
    """
    Active -> Matched | Withdrawn.
    """
    ACTIVE = "active"
    MATCHED = "matched"
    WITHDRAWN = "withdrawn"     # Reserved for a withdrawal workflow


class DonorData(BaseModel):
    """Donor profile as submitted by a medical authority."""
    hla_markers: HlaMarkers
    blood_type: BloodType
    organ_type: OrganType
    medical_notes: str = Field(
        default="",
        description="Free-text notes, at most 1000 characters"
    )


class DonorRecord(StoredRecord):
    """Stored donor."""
    record_kind: ClassVar[str] = "donor"

    owner: str = Field(..., description="Identity that registered this donor")

    hla_markers: HlaMarkers
    blood_type: BloodType
    organ_type: OrganType
    medical_notes: str = ""

    created_at: int = Field(..., description="Registration time (unix seconds)")

    status: DonorStatus = DonorStatus.ACTIVE
