"""
Canonical Authority Schema

The program administrator and the medical authorities it appoints.
Every privileged action must be attributable to an active authority.
"""

from typing import ClassVar

from pydantic import Field

from .base import StoredRecord
from .medical import U32_MAX


class ProgramState(StoredRecord):
    """
    Process-wide program configuration.

    Created once by ``initialize``; afterwards mutated only by
    admin-gated operations (and the recipient counter).
    """
    record_kind: ClassVar[str] = "program_state"

    admin: str = Field(
        ...,
        description="Identity allowed to appoint medical authorities"
    )

    recipient_count: int = Field(
        default=0,
        ge=0,
        le=U32_MAX,
        description="Number of recipient records ever created"
    )

    paused: bool = Field(
        default=False,
        description="When set, registration and matching are refused"
    )


class AuthorityRecord(StoredRecord):
    """
    A medical authority.

    The confirmed-match counter only moves forward, and only
    through match confirmation.
    """
    record_kind: ClassVar[str] = "authority"

    authority: str = Field(
        ...,
        description="Identity of the medical authority"
    )

    is_active: bool = Field(
        default=True,
        description="Whether this authority may perform privileged actions"
    )

    confirmed_match_count: int = Field(
        default=0,
        ge=0,
        le=U32_MAX,
        description="Matches confirmed by this authority"
    )
