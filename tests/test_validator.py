"""
Tests for submission validation and identity handling.
"""

import pytest
from pydantic import ValidationError as SchemaValidationError

from organ_matching.core import (
    Identity,
    ValidationError,
    ValidationReason,
    authority_ref,
    donor_ref,
    match_ref,
    recipient_ref,
)
from organ_matching.core.validator import (
    MAX_AGE,
    MAX_MEDICAL_URGENCY,
    validate_donor,
    validate_identity,
    validate_recipient,
)
from organ_matching.schemas import MAX_MEDICAL_NOTES_LENGTH, RecipientData


class TestRecipientValidation:
    """Domain bounds on recipient submissions."""

    def test_valid_recipient_passes(self, recipient_data):
        validate_recipient(recipient_data())

    def test_urgency_at_bound_passes(self, recipient_data):
        validate_recipient(recipient_data(medical_urgency=MAX_MEDICAL_URGENCY))

    def test_urgency_above_bound_rejected(self, recipient_data):
        with pytest.raises(ValidationError, match="Invalid medical urgency") as exc:
            validate_recipient(recipient_data(medical_urgency=101))
        assert exc.value.reason == ValidationReason.URGENCY
        assert exc.value.kind == "validation"

    def test_age_at_bound_passes(self, recipient_data):
        validate_recipient(recipient_data(age=MAX_AGE))

    def test_age_above_bound_rejected(self, recipient_data):
        with pytest.raises(ValidationError, match="Invalid age") as exc:
            validate_recipient(recipient_data(age=121))
        assert exc.value.reason == ValidationReason.AGE

    def test_notes_at_limit_pass(self, recipient_data):
        validate_recipient(recipient_data(medical_notes="x" * MAX_MEDICAL_NOTES_LENGTH))

    def test_notes_over_limit_rejected(self, recipient_data):
        with pytest.raises(ValidationError, match="Medical notes too long") as exc:
            validate_recipient(recipient_data(medical_notes="x" * (MAX_MEDICAL_NOTES_LENGTH + 1)))
        assert exc.value.reason == ValidationReason.NOTES_TOO_LONG

    def test_notes_limit_counts_characters(self, recipient_data):
        """Multi-byte characters count once each."""
        validate_recipient(recipient_data(medical_notes="é" * MAX_MEDICAL_NOTES_LENGTH))


class TestDonorValidation:

    def test_valid_donor_passes(self, donor_data):
        validate_donor(donor_data())

    def test_notes_over_limit_rejected(self, donor_data):
        with pytest.raises(ValidationError) as exc:
            validate_donor(donor_data(medical_notes="n" * 1001))
        assert exc.value.reason == ValidationReason.NOTES_TOO_LONG


class TestSchemaWidths:
    """Storage widths are enforced by the schemas before validation runs."""

    def test_four_markers_rejected(self, recipient_data):
        with pytest.raises(SchemaValidationError):
            recipient_data(hla_markers=[1, 2, 3, 4])

    def test_marker_above_u8_rejected(self, recipient_data):
        with pytest.raises(SchemaValidationError):
            recipient_data(hla_markers=[1, 2, 3, 4, 256])

    def test_urgency_above_u8_rejected(self, recipient_data):
        with pytest.raises(SchemaValidationError):
            recipient_data(medical_urgency=256)

    def test_negative_distance_rejected(self, recipient_data):
        with pytest.raises(SchemaValidationError):
            recipient_data(geographical_distance=-1)

    def test_unknown_blood_type_rejected(self):
        with pytest.raises(SchemaValidationError):
            RecipientData(
                medical_urgency=10,
                geographical_distance=0,
                hla_markers=[0, 0, 0, 0, 0],
                blood_type="C+",
                organ_type="kidney",
                age=30,
            )


class TestIdentity:
    """Ed25519 identities and derived references."""

    def test_generated_identity_is_valid(self):
        assert Identity.is_valid(Identity.generate())

    def test_keypair_halves_differ(self):
        private, public = Identity.generate_keypair()
        assert private != public
        assert Identity.is_valid(public)

    @pytest.mark.parametrize("value", ["", "not base64!", "QUJD", "A" * 44 + "=="])
    def test_invalid_identities(self, value):
        assert not Identity.is_valid(value)

    def test_validate_identity_raises(self):
        with pytest.raises(ValidationError) as exc:
            validate_identity("nope")
        assert exc.value.reason == ValidationReason.IDENTITY

    def test_references_are_deterministic(self):
        identity = Identity.generate()
        assert recipient_ref(identity) == recipient_ref(identity)
        assert donor_ref(identity) == donor_ref(identity)

    def test_references_differ_by_kind(self):
        identity = Identity.generate()
        refs = {recipient_ref(identity), donor_ref(identity), authority_ref(identity)}
        assert len(refs) == 3

    def test_match_ref_follows_donor(self):
        a, b = Identity.generate(), Identity.generate()
        assert match_ref(donor_ref(a)) != match_ref(donor_ref(b))
        assert match_ref(donor_ref(a)) == match_ref(donor_ref(a))
