"""
Medical data validation.

Stateless checks; every write to the directories passes through here.
"""

from ..schemas import DonorData, RecipientData
from ..schemas.medical import MAX_MEDICAL_NOTES_LENGTH
from .errors import ValidationError, ValidationReason
from .identity import Identity

MAX_MEDICAL_URGENCY = 100
MAX_AGE = 120


def _validate_notes(notes: str) -> None:
    if len(notes) > MAX_MEDICAL_NOTES_LENGTH:
        raise ValidationError(
            f"Medical notes too long: {len(notes)} characters "
            f"(max {MAX_MEDICAL_NOTES_LENGTH})",
            ValidationReason.NOTES_TOO_LONG,
        )


def validate_recipient(data: RecipientData) -> None:
    """
    Validate a recipient submission.

    Raises ValidationError for urgency above 100, age above 120,
    or notes longer than 1000 characters.
    """
    if data.medical_urgency > MAX_MEDICAL_URGENCY:
        raise ValidationError(
            f"Invalid medical urgency value: {data.medical_urgency} "
            f"(max {MAX_MEDICAL_URGENCY})",
            ValidationReason.URGENCY,
        )
    if data.age > MAX_AGE:
        raise ValidationError(
            f"Invalid age value: {data.age} (max {MAX_AGE})",
            ValidationReason.AGE,
        )
    _validate_notes(data.medical_notes)


def validate_donor(data: DonorData) -> None:
    """Validate a donor submission (notes length only)."""
    _validate_notes(data.medical_notes)


def validate_identity(identity: str) -> None:
    """Reject anything that is not a base64 Ed25519 public key."""
    if not Identity.is_valid(identity):
        raise ValidationError(
            f"Invalid identity: {identity!r} is not a base64 Ed25519 public key",
            ValidationReason.IDENTITY,
        )
