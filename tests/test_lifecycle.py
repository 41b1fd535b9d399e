"""
Tests for match proposals and confirmation.

Demonstrates the complete matching lifecycle:
1. Register a recipient and a donor
2. Find the best match (Pending proposal)
3. Confirm it (proposal Confirmed, donor and recipient Matched)
4. Verify nothing partial survives a failed step
"""

from uuid import uuid4

import pytest

from organ_matching.config import MatchingConfig
from organ_matching.core import (
    AuthorizationError,
    AuthorizationReason,
    Identity,
    InMemoryNotificationSink,
    MatchingService,
    MathOverflowError,
    NoMatchError,
    NotFoundError,
    StateError,
    StateReason,
    ValidationError,
    ValidationReason,
    authority_ref,
    donor_ref,
    recipient_ref,
)
from organ_matching.core.counters import U32_MAX
from organ_matching.core.engine import SECONDS_PER_MONTH
from organ_matching.core.lifecycle import (
    DONOR_TRANSITIONS,
    MATCH_TRANSITIONS,
    RECIPIENT_TRANSITIONS,
    can_transition,
)
from organ_matching.core.notifications import NotificationSink
from organ_matching.db import RecordExistsError
from organ_matching.observability import get_metrics
from organ_matching.schemas import (
    AuthorityRecord,
    BloodType,
    DonorStatus,
    EventType,
    MatchStatus,
    RecipientRecord,
    RecipientStatus,
)


class TestTransitionTables:

    def test_pending_can_confirm_or_reject(self):
        assert can_transition(MATCH_TRANSITIONS, MatchStatus.PENDING, MatchStatus.CONFIRMED)
        assert can_transition(MATCH_TRANSITIONS, MatchStatus.PENDING, MatchStatus.REJECTED)

    @pytest.mark.parametrize("terminal", [MatchStatus.CONFIRMED, MatchStatus.REJECTED])
    def test_match_terminal_states(self, terminal):
        for target in MatchStatus:
            assert not can_transition(MATCH_TRANSITIONS, terminal, target)

    def test_donor_moves_forward_only(self):
        assert can_transition(DONOR_TRANSITIONS, DonorStatus.ACTIVE, DonorStatus.MATCHED)
        assert can_transition(DONOR_TRANSITIONS, DonorStatus.ACTIVE, DonorStatus.WITHDRAWN)
        assert not can_transition(DONOR_TRANSITIONS, DonorStatus.MATCHED, DonorStatus.ACTIVE)
        assert not can_transition(DONOR_TRANSITIONS, DonorStatus.WITHDRAWN, DonorStatus.MATCHED)

    def test_recipient_moves_forward_only(self):
        assert can_transition(RECIPIENT_TRANSITIONS, RecipientStatus.ACTIVE, RecipientStatus.MATCHED)
        assert can_transition(RECIPIENT_TRANSITIONS, RecipientStatus.ACTIVE, RecipientStatus.REMOVED)
        assert not can_transition(RECIPIENT_TRANSITIONS, RecipientStatus.MATCHED, RecipientStatus.ACTIVE)
        assert not can_transition(RECIPIENT_TRANSITIONS, RecipientStatus.REMOVED, RecipientStatus.ACTIVE)


class TestMatching:
    """From registration to a confirmed match."""

    @pytest.fixture
    def patient(self, program, authority, recipient_data, clock):
        identity = Identity.generate()
        program.upsert_recipient(identity, recipient_data(), authority=authority)
        clock.advance(SECONDS_PER_MONTH)
        return identity

    @pytest.fixture
    def giver(self, program, authority, donor_data):
        identity = Identity.generate()
        program.add_donor(identity, donor_data(), authority=authority)
        return identity

    def test_find_best_match_stores_pending_proposal(
        self, program, authority, patient, giver, clock, sink
    ):
        result = program.find_best_match(authority, donor_ref(giver), [recipient_ref(patient)])
        proposal = result.proposal

        assert proposal.status == MatchStatus.PENDING
        assert proposal.score == 230
        assert result.breakdown.total == 230
        assert proposal.donor == donor_ref(giver)
        assert proposal.recipient == recipient_ref(patient)
        assert proposal.timestamp == clock.now
        assert proposal.confirmed_by is None
        assert program.get_match(proposal.ref) == proposal

        found = sink.of_type(EventType.MATCH_FOUND)
        assert len(found) == 1
        assert found[0].payload["score"] == 230
        assert found[0].payload["donor"] == str(donor_ref(giver))

    def test_confirm_match_updates_everything(
        self, program, authority, patient, giver, clock, sink
    ):
        result = program.find_best_match(authority, donor_ref(giver), [recipient_ref(patient)])
        clock.advance(60)

        confirmed = program.confirm_match(authority, result.proposal.ref)

        assert confirmed.status == MatchStatus.CONFIRMED
        assert confirmed.confirmed_by == authority
        assert confirmed.confirmed_at == clock.now
        assert confirmed.score == result.proposal.score
        assert program.get_match(confirmed.ref).status == MatchStatus.CONFIRMED
        assert program.get_donor(donor_ref(giver)).status == DonorStatus.MATCHED
        assert program.get_recipient(recipient_ref(patient)).status == RecipientStatus.MATCHED
        assert program.get_authority(authority).confirmed_match_count == 1

        events = sink.of_type(EventType.MATCH_CONFIRMED)
        assert len(events) == 1
        assert events[0].payload["medical_authority"] == authority
        assert events[0].payload["match_id"] == str(confirmed.ref)

    def test_confirm_twice_rejected(self, program, authority, patient, giver):
        result = program.find_best_match(authority, donor_ref(giver), [recipient_ref(patient)])
        program.confirm_match(authority, result.proposal.ref)

        with pytest.raises(StateError) as exc:
            program.confirm_match(authority, result.proposal.ref)
        assert exc.value.reason == StateReason.NOT_PENDING
        assert program.get_authority(authority).confirmed_match_count == 1

    def test_confirm_unknown_proposal(self, program, authority):
        with pytest.raises(NotFoundError):
            program.confirm_match(authority, uuid4())

    def test_matched_donor_cannot_search_again(self, program, authority, patient, giver):
        result = program.find_best_match(authority, donor_ref(giver), [recipient_ref(patient)])
        program.confirm_match(authority, result.proposal.ref)

        with pytest.raises(StateError) as exc:
            program.find_best_match(authority, donor_ref(giver), [recipient_ref(patient)])
        assert exc.value.reason == StateReason.DONOR_NOT_ACTIVE

    def test_matched_recipient_no_longer_eligible(
        self, program, authority, patient, giver, donor_data
    ):
        result = program.find_best_match(authority, donor_ref(giver), [recipient_ref(patient)])
        program.confirm_match(authority, result.proposal.ref)

        second_giver = Identity.generate()
        program.add_donor(second_giver, donor_data(), authority=authority)
        with pytest.raises(NoMatchError):
            program.find_best_match(authority, donor_ref(second_giver), [recipient_ref(patient)])

    def test_one_proposal_per_donor(self, program, authority, patient, giver):
        program.find_best_match(authority, donor_ref(giver), [recipient_ref(patient)])

        with pytest.raises(RecordExistsError):
            program.find_best_match(authority, donor_ref(giver), [recipient_ref(patient)])

    def test_unknown_donor(self, program, authority, patient):
        with pytest.raises(NotFoundError):
            program.find_best_match(authority, uuid4(), [recipient_ref(patient)])

    def test_unresolvable_candidates_skipped(self, program, authority, patient, giver):
        result = program.find_best_match(
            authority, donor_ref(giver), [uuid4(), recipient_ref(patient), uuid4()]
        )
        assert result.proposal.recipient == recipient_ref(patient)

    def test_no_compatible_candidate(
        self, program, authority, giver, recipient_data, sink
    ):
        other = Identity.generate()
        program.upsert_recipient(
            other, recipient_data(blood_type=BloodType.A_POSITIVE), authority=authority
        )
        sink.clear()

        with pytest.raises(NoMatchError):
            program.find_best_match(authority, donor_ref(giver), [recipient_ref(other)])
        assert sink.notifications == []
        assert get_metrics().searches_without_match == 1

    def test_best_of_several(self, program, authority, giver, recipient_data):
        calm, urgent = Identity.generate(), Identity.generate()
        program.upsert_recipient(calm, recipient_data(medical_urgency=20), authority=authority)
        program.upsert_recipient(urgent, recipient_data(medical_urgency=99), authority=authority)

        result = program.find_best_match(
            authority, donor_ref(giver), [recipient_ref(calm), recipient_ref(urgent)]
        )
        assert result.proposal.recipient == recipient_ref(urgent)

    def test_score_not_recomputed_after_update(
        self, program, authority, patient, giver, recipient_data
    ):
        result = program.find_best_match(authority, donor_ref(giver), [recipient_ref(patient)])
        program.upsert_recipient(patient, recipient_data(medical_urgency=0), authority=authority)

        assert program.get_match(result.proposal.ref).score == 230
        assert program.confirm_match(authority, result.proposal.ref).score == 230

    def test_inactive_authority_cannot_confirm(self, program, admin, authority, patient, giver):
        result = program.find_best_match(authority, donor_ref(giver), [recipient_ref(patient)])
        program.set_medical_authority(admin, authority, False)

        with pytest.raises(AuthorizationError) as exc:
            program.confirm_match(authority, result.proposal.ref)
        assert exc.value.reason == AuthorizationReason.INACTIVE_AUTHORITY
        assert program.get_match(result.proposal.ref).status == MatchStatus.PENDING

    def test_paused_program_refuses_confirmation(self, program, admin, authority, patient, giver):
        result = program.find_best_match(authority, donor_ref(giver), [recipient_ref(patient)])
        program.set_paused(admin, True)

        with pytest.raises(StateError) as exc:
            program.confirm_match(authority, result.proposal.ref)
        assert exc.value.reason == StateReason.PROGRAM_PAUSED


class TestConfirmationAtomicity:
    """A failed confirmation changes nothing."""

    @pytest.fixture
    def proposal_ref(self, program, authority, recipient_data, donor_data):
        patient, giver = Identity.generate(), Identity.generate()
        program.upsert_recipient(patient, recipient_data(), authority=authority)
        program.add_donor(giver, donor_data(), authority=authority)
        result = program.find_best_match(authority, donor_ref(giver), [recipient_ref(patient)])
        return result.proposal.ref

    def test_removed_recipient_blocks_confirmation(self, program, authority, proposal_ref, store):
        proposal = program.get_match(proposal_ref)
        with store.begin() as uow:
            recipient = uow.get(RecipientRecord, proposal.recipient)
            uow.put(recipient.model_copy(update={"status": RecipientStatus.REMOVED}))
            uow.commit()

        with pytest.raises(StateError) as exc:
            program.confirm_match(authority, proposal_ref)
        assert exc.value.reason == StateReason.RECIPIENT_NOT_ACTIVE

        assert program.get_match(proposal_ref).status == MatchStatus.PENDING
        assert program.get_donor(proposal.donor).status == DonorStatus.ACTIVE
        assert program.get_authority(authority).confirmed_match_count == 0

    def test_authority_counter_overflow_changes_nothing(
        self, program, authority, proposal_ref, store
    ):
        with store.begin() as uow:
            record = uow.get(AuthorityRecord, authority_ref(authority))
            uow.put(record.model_copy(update={"confirmed_match_count": U32_MAX}))
            uow.commit()

        with pytest.raises(MathOverflowError):
            program.confirm_match(authority, proposal_ref)

        proposal = program.get_match(proposal_ref)
        assert proposal.status == MatchStatus.PENDING
        assert program.get_donor(proposal.donor).status == DonorStatus.ACTIVE
        assert program.get_recipient(proposal.recipient).status == RecipientStatus.ACTIVE
        assert program.get_authority(authority).confirmed_match_count == U32_MAX


class TestCandidateLimit:

    @pytest.fixture
    def config(self):
        return MatchingConfig(max_candidates=2)

    def test_too_many_candidates(self, program, authority, donor_data):
        giver = Identity.generate()
        program.add_donor(giver, donor_data(), authority=authority)

        with pytest.raises(ValidationError) as exc:
            program.find_best_match(authority, donor_ref(giver), [uuid4(), uuid4(), uuid4()])
        assert exc.value.reason == ValidationReason.TOO_MANY_CANDIDATES


class FailingSink(NotificationSink):
    def publish(self, notification):
        raise RuntimeError("sink down")


class TestNotificationIsolation:

    @pytest.fixture
    def sink(self):
        return FailingSink()

    def test_failing_sink_does_not_fail_operation(self, program, authority, recipient_data):
        patient = Identity.generate()

        record = program.upsert_recipient(patient, recipient_data(), authority=authority)

        assert program.get_recipient(record.ref) == record
        assert get_metrics().notifications_failed == 1

    def test_sink_fan_out_per_operation(self, store, clock, admin, authority, recipient_data, donor_data):
        sink = InMemoryNotificationSink()
        service = MatchingService(store, sink=sink, config=MatchingConfig(), clock=clock)
        service.initialize(admin)
        service.set_medical_authority(admin, authority, True)

        patient, giver = Identity.generate(), Identity.generate()
        service.upsert_recipient(patient, recipient_data(), authority=authority)
        service.add_donor(giver, donor_data(), authority=authority)
        result = service.find_best_match(authority, donor_ref(giver), [recipient_ref(patient)])
        service.confirm_match(authority, result.proposal.ref)

        assert [n.event_type for n in sink.notifications] == [
            EventType.RECIPIENT_UPDATED,
            EventType.MATCH_FOUND,
            EventType.MATCH_CONFIRMED,
        ]
        assert get_metrics().notifications_sent == 3
