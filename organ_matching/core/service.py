"""
Matching Service

The operation facade. Each public operation:

1. Opens exactly one unit of work on the RecordStore
2. Applies the gates (program initialized, not paused, caller authorized)
3. Delegates to the registry, directories, engine and lifecycle
4. Commits, so every staged write applies together or not at all
5. Only then emits notifications, logs and records metrics

Any exception before commit leaves the store untouched.
Notifications are fire-and-forget and never fail an operation.
"""

import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Callable, Optional, Sequence
from uuid import UUID

from ..config import MatchingConfig
from ..db.store import RecordStore, StoreError
from ..observability import get_logger, get_metrics
from ..schemas import (
    AuthorityRecord,
    DonorData,
    DonorRecord,
    DonorStatus,
    EventType,
    MatchConfirmedPayload,
    MatchFoundPayload,
    MatchProposal,
    ProgramState,
    RecipientData,
    RecipientRecord,
    RecipientUpdatedPayload,
    ScoreBreakdown,
)
from .authority import AuthorityRegistry
from .directory import DonorDirectory, RecipientDirectory
from .engine import MatchEngine
from .errors import (
    NoMatchError,
    NotFoundError,
    OrganMatchingError,
    StateError,
    StateReason,
    ValidationError,
    ValidationReason,
)
from .lifecycle import MatchLifecycle
from .notifications import LoggingNotificationSink, NotificationSink, emit


logger = get_logger(__name__)


def _unix_now() -> int:
    return int(time.time())


@dataclass
class MatchResult:
    """A stored proposal and the score components behind it."""
    proposal: MatchProposal
    breakdown: ScoreBreakdown


class MatchingService:
    """
    Entry point for every organ matching operation.

    Usage:
        service = MatchingService(InMemoryRecordStore())
        service.initialize(admin)
        service.set_medical_authority(admin, authority, True)
        service.upsert_recipient(patient, data, authority=authority)
    """

    def __init__(
        self,
        store: RecordStore,
        sink: Optional[NotificationSink] = None,
        config: Optional[MatchingConfig] = None,
        clock: Optional[Callable[[], int]] = None,
    ):
        """
        Args:
            store: Where records live
            sink: Where notifications go (default: the log)
            config: Matching configuration (default: from environment)
            clock: Returns the current unix time in seconds
        """
        self.store = store
        self.sink = sink or LoggingNotificationSink()
        self.config = config or MatchingConfig.from_env()
        self._clock = clock or _unix_now

        self.registry = AuthorityRegistry()
        self.recipients = RecipientDirectory()
        self.donors = DonorDirectory()
        self.engine = MatchEngine(self.config.compatibility)
        self.lifecycle = MatchLifecycle()

    def _now(self) -> int:
        return int(self._clock())

    @contextmanager
    def _operation(self, name: str):
        """Time an operation and log refusals."""
        start = time.perf_counter()
        success = False
        try:
            yield
            success = True
        except OrganMatchingError as e:
            logger.warning(
                f"{name} refused: {e}",
                operation=name,
                error_kind=e.kind,
                reason=e.reason.value if e.reason is not None else None,
            )
            raise
        except StoreError as e:
            logger.warning(
                f"{name} failed in store: {e}",
                operation=name,
                error_kind=type(e).__name__,
            )
            raise
        finally:
            get_metrics().record_operation(
                (time.perf_counter() - start) * 1000, success
            )

    # ============================================================
    # PROGRAM ADMINISTRATION
    # ============================================================

    def initialize(self, admin: str) -> ProgramState:
        """
        Create program state with ``admin`` as administrator.

        Raises:
            StateError: already initialized
            ValidationError: admin is not a valid identity
        """
        with self._operation("initialize"):
            with self.store.begin() as uow:
                state = self.registry.initialize(uow, admin)
                uow.commit()

        logger.info("Program initialized", admin=admin)
        return state

    def set_medical_authority(self, caller: str, target: str, active: bool) -> AuthorityRecord:
        """
        Register, activate or deactivate a medical authority (admin only).

        Deactivating keeps the authority's confirmed-match counter.
        """
        with self._operation("set_medical_authority"):
            with self.store.begin() as uow:
                record = self.registry.set_authority(uow, caller, target, active)
                uow.commit()

        logger.info(
            "Medical authority updated",
            authority=target,
            is_active=active,
        )
        return record

    def set_paused(self, caller: str, paused: bool) -> ProgramState:
        """Pause or resume registration and matching (admin only)."""
        with self._operation("set_paused"):
            with self.store.begin() as uow:
                state = self.registry.set_paused(uow, caller, paused)
                uow.commit()

        logger.info("Program paused" if paused else "Program resumed", paused=paused)
        return state

    # ============================================================
    # REGISTRATION
    # ============================================================

    def upsert_recipient(
        self,
        caller: str,
        data: RecipientData,
        *,
        authority: str,
    ) -> RecipientRecord:
        """
        Register the caller as a recipient, or update their urgency and distance.

        Raises:
            StateError: program not initialized or paused
            AuthorizationError: authority inactive, or record owned by someone else
            ValidationError: data out of bounds
            MathOverflowError: recipient counter exhausted
        """
        with self._operation("upsert_recipient"):
            now = self._now()
            with self.store.begin() as uow:
                program = self.registry.require_program(uow, allow_paused=False)
                self.registry.require_active(uow, authority, lock=False)
                record, created = self.recipients.upsert(uow, program, caller, data, now)
                uow.commit()

        get_metrics().record_recipient(created)
        logger.info(
            "Recipient registered" if created else "Recipient updated",
            recipient=str(record.ref),
            medical_urgency=record.medical_urgency,
            authority=authority,
        )
        emit(
            self.sink,
            EventType.RECIPIENT_UPDATED,
            RecipientUpdatedPayload(
                recipient=record.ref,
                medical_urgency=record.medical_urgency,
                timestamp=now,
            ),
            emitted_at=now,
        )
        return record

    def add_donor(self, caller: str, data: DonorData, *, authority: str) -> DonorRecord:
        """
        Register the caller as a donor.

        Raises:
            StateError: program not initialized or paused
            AuthorizationError: authority inactive
            ValidationError: notes too long
            RecordExistsError: the caller is already a donor
        """
        with self._operation("add_donor"):
            now = self._now()
            with self.store.begin() as uow:
                self.registry.require_program(uow, allow_paused=False, lock=False)
                self.registry.require_active(uow, authority, lock=False)
                record = self.donors.add(uow, caller, data, now)
                uow.commit()

        get_metrics().record_donor()
        logger.info(
            "Donor registered",
            donor=str(record.ref),
            organ_type=record.organ_type.value,
            authority=authority,
        )
        return record

    # ============================================================
    # MATCHING
    # ============================================================

    def find_best_match(
        self,
        authority: str,
        donor_ref: UUID,
        candidate_refs: Sequence[UUID],
    ) -> MatchResult:
        """
        Score the given recipients against a donor and store a Pending
        proposal for the best one.

        Candidate references that resolve to no recipient are skipped.

        Raises:
            StateError: program not initialized or paused, donor not Active
            AuthorizationError: authority inactive
            ValidationError: more candidates than configured
            NotFoundError: donor does not exist
            NoMatchError: no eligible candidate scored above zero
            RecordExistsError: the donor already has a proposal
        """
        with self._operation("find_best_match"):
            now = self._now()
            with self.store.begin() as uow:
                self.registry.require_program(uow, allow_paused=False, lock=False)
                self.registry.require_active(uow, authority, lock=False)

                if len(candidate_refs) > self.config.max_candidates:
                    raise ValidationError(
                        f"Too many candidates: {len(candidate_refs)} "
                        f"(max {self.config.max_candidates})",
                        ValidationReason.TOO_MANY_CANDIDATES,
                    )

                donor = self.donors.get(uow, donor_ref)
                if donor is None:
                    raise NotFoundError(f"Donor not found: {donor_ref}")
                if donor.status != DonorStatus.ACTIVE:
                    raise StateError(
                        f"Invalid donor status: {donor.status.value}",
                        StateReason.DONOR_NOT_ACTIVE,
                    )

                candidates = []
                for ref in candidate_refs:
                    recipient = self.recipients.get(uow, ref, lock=False)
                    if recipient is not None:
                        candidates.append(recipient)

                try:
                    best = self.engine.select_best(donor, candidates, now)
                except NoMatchError:
                    get_metrics().record_search(len(candidates), matched=False)
                    raise

                proposal = self.lifecycle.propose(uow, donor, best, now)
                uow.commit()

        get_metrics().record_search(len(candidates), matched=True)
        logger.info(
            "Match proposed",
            match_id=str(proposal.ref),
            donor=str(donor_ref),
            recipient=str(proposal.recipient),
            score=proposal.score,
            candidates=len(candidates),
        )
        emit(
            self.sink,
            EventType.MATCH_FOUND,
            MatchFoundPayload(
                match_id=proposal.ref,
                donor=proposal.donor,
                recipient=proposal.recipient,
                score=proposal.score,
                timestamp=now,
            ),
            emitted_at=now,
        )
        return MatchResult(proposal=proposal, breakdown=best.breakdown)

    def confirm_match(self, authority: str, proposal_ref: UUID) -> MatchProposal:
        """
        Confirm a Pending proposal.

        Proposal, donor, recipient and the authority's counter change
        together or not at all.

        Raises:
            StateError: program not initialized or paused, proposal not
                Pending, donor or recipient not Active
            AuthorizationError: authority inactive
            NotFoundError: proposal does not exist
            MathOverflowError: authority counter exhausted
        """
        with self._operation("confirm_match"):
            now = self._now()
            with self.store.begin() as uow:
                self.registry.require_program(uow, allow_paused=False, lock=False)
                record = self.registry.require_active(uow, authority)
                confirmation = self.lifecycle.confirm(uow, record, proposal_ref, now)
                uow.commit()

        proposal = confirmation.proposal
        get_metrics().record_confirmation()
        logger.info(
            "Match confirmed",
            match_id=str(proposal.ref),
            donor=str(proposal.donor),
            recipient=str(proposal.recipient),
            authority=authority,
        )
        emit(
            self.sink,
            EventType.MATCH_CONFIRMED,
            MatchConfirmedPayload(
                match_id=proposal.ref,
                donor=proposal.donor,
                recipient=proposal.recipient,
                medical_authority=authority,
                timestamp=now,
            ),
            emitted_at=now,
        )
        return proposal

    # ============================================================
    # READS
    # ============================================================

    def get_program_state(self) -> Optional[ProgramState]:
        """Program state, or None before initialize."""
        with self.store.begin(read_only=True) as uow:
            return self.registry.load_program_state(uow)

    def get_authority(self, identity: str) -> AuthorityRecord:
        with self.store.begin(read_only=True) as uow:
            record = self.registry.get(uow, identity)
        if record is None:
            raise NotFoundError(f"Medical authority not found: {identity}")
        return record

    def get_recipient(self, ref: UUID) -> RecipientRecord:
        with self.store.begin(read_only=True) as uow:
            record = self.recipients.get(uow, ref)
        if record is None:
            raise NotFoundError(f"Recipient not found: {ref}")
        return record

    def get_donor(self, ref: UUID) -> DonorRecord:
        with self.store.begin(read_only=True) as uow:
            record = self.donors.get(uow, ref)
        if record is None:
            raise NotFoundError(f"Donor not found: {ref}")
        return record

    def get_match(self, ref: UUID) -> MatchProposal:
        with self.store.begin(read_only=True) as uow:
            record = uow.get(MatchProposal, ref)
        if record is None:
            raise NotFoundError(f"Match not found: {ref}")
        return record
