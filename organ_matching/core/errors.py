"""
Error Taxonomy

Every failure aborts the whole operation with no partial effect.
Callers surface ``kind``, ``reason`` and the message to the end user;
nothing here is retried automatically.
"""

from enum import Enum
from typing import Optional


class OrganMatchingError(Exception):
    """Base exception for organ matching errors."""

    kind = "error"

    def __init__(self, message: str, reason: Optional[Enum] = None):
        super().__init__(message)
        self.reason = reason


class AuthorizationReason(str, Enum):
    NOT_ADMIN = "not_admin"
    INACTIVE_AUTHORITY = "inactive_authority"
    OWNER_MISMATCH = "owner_mismatch"


class ValidationReason(str, Enum):
    URGENCY = "urgency"
    AGE = "age"
    NOTES_TOO_LONG = "notes_too_long"
    IDENTITY = "identity"
    TOO_MANY_CANDIDATES = "too_many_candidates"


class StateReason(str, Enum):
    NOT_PENDING = "not_pending"
    DONOR_NOT_ACTIVE = "donor_not_active"
    RECIPIENT_NOT_ACTIVE = "recipient_not_active"
    PROGRAM_PAUSED = "program_paused"
    NOT_INITIALIZED = "not_initialized"
    ALREADY_INITIALIZED = "already_initialized"


class AuthorizationError(OrganMatchingError):
    """Raised when the caller may not perform the action."""

    kind = "authorization"

    def __init__(self, message: str, reason: AuthorizationReason):
        super().__init__(message, reason)


class ValidationError(OrganMatchingError):
    """Raised when submitted data is out of bounds."""

    kind = "validation"

    def __init__(self, message: str, reason: ValidationReason):
        super().__init__(message, reason)


class StateError(OrganMatchingError):
    """Raised when an entity is not in the state a transition requires."""

    kind = "state"

    def __init__(self, message: str, reason: StateReason):
        super().__init__(message, reason)


class NoMatchError(OrganMatchingError):
    """Raised when a search finds no eligible recipient."""

    kind = "no_match"


class NotFoundError(OrganMatchingError):
    """Raised when a referenced record does not exist."""

    kind = "not_found"


class MathOverflowError(OrganMatchingError, OverflowError):
    """Raised when a counter or score would exceed its range."""

    kind = "overflow"
