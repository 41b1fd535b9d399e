"""
Recipient and Donor Directories

One record per owner identity, addressed by a reference derived from
that identity. Callers have already passed the active-authority gate.
"""

from typing import Optional, Tuple
from uuid import UUID

from ..db.store import UnitOfWork
from ..schemas import (
    DonorData,
    DonorRecord,
    DonorStatus,
    ProgramState,
    RecipientData,
    RecipientRecord,
    RecipientStatus,
)
from .counters import U32_MAX, checked_add
from .errors import AuthorizationError, AuthorizationReason
from .identity import donor_ref, recipient_ref
from .validator import validate_donor, validate_identity, validate_recipient


class RecipientDirectory:
    """Create-or-update of recipient records."""

    def get(self, uow: UnitOfWork, ref: UUID, lock: bool = True) -> Optional[RecipientRecord]:
        return uow.get(RecipientRecord, ref, lock=lock)

    def upsert(
        self,
        uow: UnitOfWork,
        program: ProgramState,
        caller: str,
        data: RecipientData,
        now: int,
    ) -> Tuple[RecipientRecord, bool]:
        """
        Stage a new recipient, or an update of the caller's existing one.

        A new record starts Active with created_at = last_updated = now
        and bumps the program's recipient counter. An update changes
        urgency, distance and last_updated only; identity, blood type,
        organ type, markers, age, notes and created_at stay as registered.

        Returns:
            (record, created)

        Raises:
            ValidationError: data or caller identity out of bounds
            AuthorizationError: existing record owned by someone else
            MathOverflowError: recipient counter at its u32 limit
        """
        validate_identity(caller)
        ref = recipient_ref(caller)
        existing = uow.get(RecipientRecord, ref)

        if existing is None:
            validate_recipient(data)
            record = RecipientRecord(
                ref=ref,
                owner=caller,
                medical_urgency=data.medical_urgency,
                geographical_distance=data.geographical_distance,
                hla_markers=list(data.hla_markers),
                blood_type=data.blood_type,
                organ_type=data.organ_type,
                age=data.age,
                medical_notes=data.medical_notes,
                created_at=now,
                last_updated=now,
                status=RecipientStatus.ACTIVE,
            )
            uow.add(record)
            uow.put(
                program.model_copy(
                    update={
                        "recipient_count": checked_add(
                            program.recipient_count, 1, U32_MAX, "recipient count"
                        )
                    }
                )
            )
            return record, True

        if existing.owner != caller:
            raise AuthorizationError(
                "Recipient record belongs to another identity",
                AuthorizationReason.OWNER_MISMATCH,
            )

        validate_recipient(data)
        updated = existing.model_copy(
            update={
                "medical_urgency": data.medical_urgency,
                "geographical_distance": data.geographical_distance,
                "last_updated": now,
            }
        )
        uow.put(updated)
        return updated, False


class DonorDirectory:
    """Registration of donor records."""

    def get(self, uow: UnitOfWork, ref: UUID) -> Optional[DonorRecord]:
        return uow.get(DonorRecord, ref)

    def add(self, uow: UnitOfWork, caller: str, data: DonorData, now: int) -> DonorRecord:
        """
        Stage a new Active donor owned by ``caller``.

        A second donor for the same identity is refused by the store
        at commit (RecordExistsError).
        """
        validate_identity(caller)
        validate_donor(data)

        record = DonorRecord(
            ref=donor_ref(caller),
            owner=caller,
            hla_markers=list(data.hla_markers),
            blood_type=data.blood_type,
            organ_type=data.organ_type,
            medical_notes=data.medical_notes,
            created_at=now,
            status=DonorStatus.ACTIVE,
        )
        uow.add(record)
        return record
