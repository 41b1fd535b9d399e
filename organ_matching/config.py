"""
Matching Configuration

Environment Variables:
    ORGAN_MATCHING_COMPATIBILITY: Blood-type rule for candidate filtering
        - "exact" (default): donor and recipient blood types must be equal
        - "abo_directional": standard ABO/Rh donation table
    ORGAN_MATCHING_MAX_CANDIDATES: Largest candidate list accepted by a
        single match search (default 100)
"""

import os
from dataclasses import dataclass
from enum import Enum


DEFAULT_MAX_CANDIDATES = 100


class CompatibilityPolicy(str, Enum):
    """How donor and recipient blood types are compared."""
    EXACT = "exact"
    ABO_DIRECTIONAL = "abo_directional"


@dataclass
class MatchingConfig:
    """Matching behaviour knobs."""
    compatibility: CompatibilityPolicy = CompatibilityPolicy.EXACT
    max_candidates: int = DEFAULT_MAX_CANDIDATES

    def __post_init__(self):
        if self.max_candidates < 1:
            raise ValueError(f"max_candidates must be positive, got {self.max_candidates}")

    @classmethod
    def from_env(cls) -> "MatchingConfig":
        """Load configuration from environment variables."""
        raw_policy = os.getenv("ORGAN_MATCHING_COMPATIBILITY", CompatibilityPolicy.EXACT.value)
        try:
            policy = CompatibilityPolicy(raw_policy.lower())
        except ValueError:
            raise ValueError(
                f"Unknown ORGAN_MATCHING_COMPATIBILITY: {raw_policy}. "
                f"Valid values: {', '.join(p.value for p in CompatibilityPolicy)}"
            ) from None

        return cls(
            compatibility=policy,
            max_candidates=int(
                os.getenv("ORGAN_MATCHING_MAX_CANDIDATES", str(DEFAULT_MAX_CANDIDATES))
            ),
        )
