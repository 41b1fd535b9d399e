"""
Match Lifecycle

State machines for proposals, donors and recipients, and the
confirmation workflow that moves all of them together.

    Proposal:  Pending -> Confirmed | Rejected     (both terminal)
    Donor:     Active  -> Matched   | Withdrawn    (both terminal)
    Recipient: Active  -> Matched   | Removed      (both terminal)

Only Pending -> Confirmed (with Active -> Matched for the donor and the
recipient) is driven by an operation. The remaining edges are legal
table entries kept for workflows that do not exist yet.
"""

from dataclasses import dataclass
from enum import Enum
from uuid import UUID

from ..db.store import UnitOfWork
from ..schemas import (
    AuthorityRecord,
    DonorRecord,
    DonorStatus,
    MatchProposal,
    MatchStatus,
    RecipientRecord,
    RecipientStatus,
)
from .counters import U32_MAX, checked_add
from .engine import MatchCandidate
from .errors import NotFoundError, StateError, StateReason
from .identity import match_ref


# ============================================================
# TRANSITION TABLES
# ============================================================

MATCH_TRANSITIONS: dict[MatchStatus, frozenset[MatchStatus]] = {
    MatchStatus.PENDING: frozenset({MatchStatus.CONFIRMED, MatchStatus.REJECTED}),
    MatchStatus.CONFIRMED: frozenset(),
    MatchStatus.REJECTED: frozenset(),
}

DONOR_TRANSITIONS: dict[DonorStatus, frozenset[DonorStatus]] = {
    DonorStatus.ACTIVE: frozenset({DonorStatus.MATCHED, DonorStatus.WITHDRAWN}),
    DonorStatus.MATCHED: frozenset(),
    DonorStatus.WITHDRAWN: frozenset(),
}

RECIPIENT_TRANSITIONS: dict[RecipientStatus, frozenset[RecipientStatus]] = {
    RecipientStatus.ACTIVE: frozenset({RecipientStatus.MATCHED, RecipientStatus.REMOVED}),
    RecipientStatus.MATCHED: frozenset(),
    RecipientStatus.REMOVED: frozenset(),
}


def can_transition(table: dict, current: Enum, target: Enum) -> bool:
    """Check whether ``current -> target`` is an edge of ``table``."""
    return target in table.get(current, frozenset())


def transition_match(proposal: MatchProposal, target: MatchStatus) -> MatchProposal:
    if not can_transition(MATCH_TRANSITIONS, proposal.status, target):
        raise StateError(
            f"Match {proposal.ref} is {proposal.status.value}, cannot become {target.value}",
            StateReason.NOT_PENDING,
        )
    return proposal.model_copy(update={"status": target})


def transition_donor(donor: DonorRecord, target: DonorStatus) -> DonorRecord:
    if not can_transition(DONOR_TRANSITIONS, donor.status, target):
        raise StateError(
            f"Donor {donor.ref} is {donor.status.value}, cannot become {target.value}",
            StateReason.DONOR_NOT_ACTIVE,
        )
    return donor.model_copy(update={"status": target})


def transition_recipient(recipient: RecipientRecord, target: RecipientStatus) -> RecipientRecord:
    if not can_transition(RECIPIENT_TRANSITIONS, recipient.status, target):
        raise StateError(
            f"Recipient {recipient.ref} is {recipient.status.value}, cannot become {target.value}",
            StateReason.RECIPIENT_NOT_ACTIVE,
        )
    return recipient.model_copy(update={"status": target})


# ============================================================
# WORKFLOW
# ============================================================

@dataclass
class Confirmation:
    """Every record changed by one confirmation, as staged."""
    proposal: MatchProposal
    donor: DonorRecord
    recipient: RecipientRecord
    authority: AuthorityRecord


class MatchLifecycle:
    """
    Creates proposals and confirms them.

    Methods stage their writes on the caller's unit of work and never
    commit; the caller commits once so the writes apply together.
    """

    def propose(
        self,
        uow: UnitOfWork,
        donor: DonorRecord,
        candidate: MatchCandidate,
        now: int,
    ) -> MatchProposal:
        """
        Stage a Pending proposal for the engine's winning candidate.

        The proposal reference is derived from the donor, so a donor
        can hold one proposal; a second insert fails at commit with
        RecordExistsError.
        """
        proposal = MatchProposal(
            ref=match_ref(donor.ref),
            recipient=candidate.recipient.ref,
            donor=donor.ref,
            score=candidate.score,
            timestamp=now,
            status=MatchStatus.PENDING,
        )
        uow.add(proposal)
        return proposal

    def confirm(
        self,
        uow: UnitOfWork,
        authority: AuthorityRecord,
        proposal_ref: UUID,
        now: int,
    ) -> Confirmation:
        """
        Stage the confirmation of a Pending proposal.

        The authority must already have been checked for activity.

        Effects (applied together on commit):
        - proposal -> Confirmed, with confirmed_by and confirmed_at
        - recipient -> Matched
        - donor -> Matched
        - authority confirmed_match_count + 1

        Raises:
            NotFoundError: proposal, donor or recipient record missing
            StateError: proposal not Pending, donor or recipient not Active
            MathOverflowError: authority counter at its u32 limit
        """
        proposal = uow.get(MatchProposal, proposal_ref)
        if proposal is None:
            raise NotFoundError(f"Match not found: {proposal_ref}")

        confirmed = transition_match(proposal, MatchStatus.CONFIRMED)
        confirmed = confirmed.model_copy(
            update={"confirmed_by": authority.authority, "confirmed_at": now}
        )

        recipient = uow.get(RecipientRecord, proposal.recipient)
        if recipient is None:
            raise NotFoundError(f"Recipient not found: {proposal.recipient}")
        donor = uow.get(DonorRecord, proposal.donor)
        if donor is None:
            raise NotFoundError(f"Donor not found: {proposal.donor}")

        matched_recipient = transition_recipient(recipient, RecipientStatus.MATCHED)
        matched_donor = transition_donor(donor, DonorStatus.MATCHED)

        credited = authority.model_copy(
            update={
                "confirmed_match_count": checked_add(
                    authority.confirmed_match_count, 1, U32_MAX, "confirmed match count"
                )
            }
        )

        uow.put(confirmed)
        uow.put(matched_recipient)
        uow.put(matched_donor)
        uow.put(credited)

        return Confirmation(
            proposal=confirmed,
            donor=matched_donor,
            recipient=matched_recipient,
            authority=credited,
        )
