"""
Canonical Medical Vocabulary

Blood types, organ types and HLA marker vectors shared by donors
and recipients.
"""

from enum import Enum
from typing import Annotated

from pydantic import Field


HLA_MARKER_COUNT = 5
MAX_MEDICAL_NOTES_LENGTH = 1000

# Storage widths (the Validator enforces the tighter medical bounds)
U8_MAX = 255
U32_MAX = 2**32 - 1

HlaMarker = Annotated[int, Field(ge=0, le=U8_MAX)]
HlaMarkers = Annotated[
    list[HlaMarker],
    Field(
        min_length=HLA_MARKER_COUNT,
        max_length=HLA_MARKER_COUNT,
        description="Five HLA markers, compared position by position",
    ),
]


class BloodType(str, Enum):
    """
    ABO group with Rh factor.
    """
    A_POSITIVE = "A+"
    A_NEGATIVE = "A-"
    B_POSITIVE = "B+"
    B_NEGATIVE = "B-"
    AB_POSITIVE = "AB+"
    AB_NEGATIVE = "AB-"
    O_POSITIVE = "O+"
    O_NEGATIVE = "O-"

    def is_compatible_donor(self, recipient: "BloodType") -> bool:
        """
        Directional ABO/Rh donor compatibility.

        O- gives to everyone, AB+ receives from everyone.
        Only consulted under CompatibilityPolicy.ABO_DIRECTIONAL.
        """
        return recipient in _DIRECTIONAL_COMPATIBILITY[self]


_DIRECTIONAL_COMPATIBILITY: dict[BloodType, frozenset[BloodType]] = {
    BloodType.O_NEGATIVE: frozenset(BloodType),
    BloodType.O_POSITIVE: frozenset({
        BloodType.O_POSITIVE,
        BloodType.A_POSITIVE,
        BloodType.B_POSITIVE,
        BloodType.AB_POSITIVE,
    }),
    BloodType.A_NEGATIVE: frozenset({BloodType.A_NEGATIVE, BloodType.AB_NEGATIVE}),
    BloodType.A_POSITIVE: frozenset({BloodType.A_POSITIVE, BloodType.AB_POSITIVE}),
    BloodType.B_NEGATIVE: frozenset({BloodType.B_NEGATIVE, BloodType.AB_NEGATIVE}),
    BloodType.B_POSITIVE: frozenset({BloodType.B_POSITIVE, BloodType.AB_POSITIVE}),
    BloodType.AB_NEGATIVE: frozenset({BloodType.AB_NEGATIVE}),
    BloodType.AB_POSITIVE: frozenset({BloodType.AB_POSITIVE}),
}


class OrganType(str, Enum):
    """Organs the program allocates."""
    KIDNEY = "kidney"
    LIVER = "liver"
    HEART = "heart"
    LUNG = "lung"
    PANCREAS = "pancreas"
