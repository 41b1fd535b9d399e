"""
Stored Record Base

Every persisted entity carries a storage reference and a version.
The version is owned by the RecordStore: it is bumped on each commit
and used to detect concurrent writers.
"""

from typing import ClassVar
from uuid import UUID

from pydantic import BaseModel, Field


class StoredRecord(BaseModel):
    """
    Base class for records kept in a RecordStore.

    Subclasses set ``record_kind``; the pair (record_kind, ref) is the
    storage key.
    """
    record_kind: ClassVar[str] = ""

    ref: UUID = Field(
        ...,
        description="Storage reference (derived from the owning identity)"
    )

    version: int = Field(
        default=0,
        ge=0,
        description="Store-managed revision, 0 until first commit"
    )
