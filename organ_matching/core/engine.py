"""
Match Engine

Compatibility filtering, scoring and best-candidate selection for one
donor over a caller-supplied list of recipients.

The engine is pure: it reads the records it is handed and returns a
result. It never loads, stores or iterates a registry on its own, and
it never mutates the records it scores.

SCORING (integer arithmetic only):
    hla         10 points per position-wise equal marker      0-50
    urgency     medical urgency as recorded                   0-100
    wait_time   whole 30-day months waited, capped            0-50
    pediatric   flat bonus for recipients aged 18 or under    0 or 50
    geographic  50 minus one point per 100 distance units     0-50

SELECTION:
    Single pass in input order. A candidate replaces the current best
    only with a strictly greater score, so the first of equal scores
    wins. A total of zero never wins.
"""

from dataclasses import dataclass
from typing import Iterable, Optional

from ..config import CompatibilityPolicy
from ..schemas import DonorRecord, RecipientRecord, RecipientStatus, ScoreBreakdown
from .counters import U64_MAX, checked_add
from .errors import NoMatchError


SECONDS_PER_MONTH = 2_592_000  # 30 days

HLA_POINTS_PER_MARKER = 10
MAX_WAIT_SCORE = 50
PEDIATRIC_AGE_LIMIT = 18
PEDIATRIC_BONUS = 50
MAX_GEOGRAPHIC_SCORE = 50
DISTANCE_UNITS_PER_POINT = 100


def is_compatible(
    donor: DonorRecord,
    recipient: RecipientRecord,
    policy: CompatibilityPolicy = CompatibilityPolicy.EXACT,
) -> bool:
    """
    Whether a donor organ may go to this recipient.

    Organ types must always be equal. Blood types must be equal under
    EXACT, or allowed by the donation table under ABO_DIRECTIONAL.
    """
    if donor.organ_type != recipient.organ_type:
        return False
    if policy == CompatibilityPolicy.ABO_DIRECTIONAL:
        return donor.blood_type.is_compatible_donor(recipient.blood_type)
    return donor.blood_type == recipient.blood_type


def hla_score(donor_markers: list[int], recipient_markers: list[int]) -> int:
    return HLA_POINTS_PER_MARKER * sum(
        1 for d, r in zip(donor_markers, recipient_markers) if d == r
    )


def wait_time_score(created_at: int, now: int) -> int:
    """Full months waited, capped at 50. A clock behind created_at counts as no wait."""
    waited = max(0, now - created_at)
    return min(MAX_WAIT_SCORE, waited // SECONDS_PER_MONTH)


def pediatric_score(age: int) -> int:
    return PEDIATRIC_BONUS if age <= PEDIATRIC_AGE_LIMIT else 0


def geographic_score(distance: int) -> int:
    return max(0, MAX_GEOGRAPHIC_SCORE - distance // DISTANCE_UNITS_PER_POINT)


def score_candidate(donor: DonorRecord, recipient: RecipientRecord, now: int) -> ScoreBreakdown:
    """
    Score one recipient against a donor.

    Compatibility is not checked here; callers filter first.

    Raises:
        MathOverflowError: if the total would exceed the u64 range
    """
    hla = hla_score(donor.hla_markers, recipient.hla_markers)
    urgency = recipient.medical_urgency
    wait_time = wait_time_score(recipient.created_at, now)
    pediatric = pediatric_score(recipient.age)
    geographic = geographic_score(recipient.geographical_distance)

    total = 0
    for component in (hla, urgency, wait_time, pediatric, geographic):
        total = checked_add(total, component, U64_MAX, "match score")

    return ScoreBreakdown(
        hla=hla,
        urgency=urgency,
        wait_time=wait_time,
        pediatric=pediatric,
        geographic=geographic,
        total=total,
    )


@dataclass
class MatchCandidate:
    """The winning recipient and how its score was made up."""
    recipient: RecipientRecord
    breakdown: ScoreBreakdown

    @property
    def score(self) -> int:
        return self.breakdown.total


class MatchEngine:
    """
    Selects the best recipient for a donor.

    Usage:
        engine = MatchEngine()
        best = engine.select_best(donor, recipients, now)
        best.recipient.ref, best.score
    """

    def __init__(self, policy: CompatibilityPolicy = CompatibilityPolicy.EXACT):
        self.policy = policy

    def eligible(self, donor: DonorRecord, recipient: RecipientRecord) -> bool:
        """Active and compatible; anything else is skipped silently."""
        return (
            recipient.status == RecipientStatus.ACTIVE
            and is_compatible(donor, recipient, self.policy)
        )

    def select_best(
        self,
        donor: DonorRecord,
        candidates: Iterable[RecipientRecord],
        now: int,
    ) -> MatchCandidate:
        """
        Score every eligible candidate and return the best one.

        Raises:
            NoMatchError: no eligible candidate scored above zero
            MathOverflowError: a score exceeded the u64 range
        """
        best: Optional[MatchCandidate] = None
        highest = 0

        for recipient in candidates:
            if not self.eligible(donor, recipient):
                continue

            breakdown = score_candidate(donor, recipient, now)
            if breakdown.total > highest:
                highest = breakdown.total
                best = MatchCandidate(recipient=recipient, breakdown=breakdown)

        if best is None:
            raise NoMatchError("No compatible match found")

        return best
