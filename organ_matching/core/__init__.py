# Core matching services
from .errors import (
    OrganMatchingError,
    AuthorizationError,
    AuthorizationReason,
    ValidationError,
    ValidationReason,
    StateError,
    StateReason,
    NoMatchError,
    NotFoundError,
    MathOverflowError,
)
from .identity import (
    Identity,
    PROGRAM_STATE_REF,
    recipient_ref,
    donor_ref,
    authority_ref,
    match_ref,
)
from .engine import MatchEngine, MatchCandidate, is_compatible, score_candidate
from .lifecycle import MatchLifecycle, Confirmation
from .authority import AuthorityRegistry
from .directory import RecipientDirectory, DonorDirectory
from .notifications import (
    NotificationSink,
    LoggingNotificationSink,
    InMemoryNotificationSink,
)
from .service import MatchingService, MatchResult

__all__ = [
    "OrganMatchingError",
    "AuthorizationError",
    "AuthorizationReason",
    "ValidationError",
    "ValidationReason",
    "StateError",
    "StateReason",
    "NoMatchError",
    "NotFoundError",
    "MathOverflowError",
    "Identity",
    "PROGRAM_STATE_REF",
    "recipient_ref",
    "donor_ref",
    "authority_ref",
    "match_ref",
    "MatchEngine",
    "MatchCandidate",
    "is_compatible",
    "score_candidate",
    "MatchLifecycle",
    "Confirmation",
    "AuthorityRegistry",
    "RecipientDirectory",
    "DonorDirectory",
    "NotificationSink",
    "LoggingNotificationSink",
    "InMemoryNotificationSink",
    "MatchingService",
    "MatchResult",
]
