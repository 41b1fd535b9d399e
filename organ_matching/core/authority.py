"""
Authority Registry

Program state (admin identity, recipient counter, paused flag) and the
medical authorities appointed by the admin.

Every privileged operation passes one of these gates:
- require_program: the program has been initialized
- require_admin: the caller is the program admin
- require_active: the caller is a registered, active medical authority
"""

from typing import Optional

from ..db.store import UnitOfWork
from ..schemas import AuthorityRecord, ProgramState
from .errors import (
    AuthorizationError,
    AuthorizationReason,
    StateError,
    StateReason,
)
from .identity import PROGRAM_STATE_REF, authority_ref
from .validator import validate_identity


class AuthorityRegistry:
    """
    Reads and stages program-state and authority records.

    Like the other components, it never commits.
    """

    # ============================================================
    # PROGRAM STATE
    # ============================================================

    def initialize(self, uow: UnitOfWork, admin: str) -> ProgramState:
        """
        Stage the one-time creation of program state.

        Raises:
            ValidationError: admin is not a valid identity
            StateError: program already initialized
        """
        validate_identity(admin)

        if uow.get(ProgramState, PROGRAM_STATE_REF) is not None:
            raise StateError("Program already initialized", StateReason.ALREADY_INITIALIZED)

        state = ProgramState(ref=PROGRAM_STATE_REF, admin=admin)
        uow.add(state)
        return state

    def load_program_state(self, uow: UnitOfWork, lock: bool = True) -> Optional[ProgramState]:
        return uow.get(ProgramState, PROGRAM_STATE_REF, lock=lock)

    def require_program(
        self,
        uow: UnitOfWork,
        allow_paused: bool = True,
        lock: bool = True,
    ) -> ProgramState:
        """
        Load program state, failing if it does not exist.

        With ``allow_paused=False`` a paused program is refused too.
        Pass ``lock=False`` when the operation will not write program state.
        """
        state = self.load_program_state(uow, lock=lock)
        if state is None:
            raise StateError("Program not initialized", StateReason.NOT_INITIALIZED)
        if state.paused and not allow_paused:
            raise StateError("Program is paused", StateReason.PROGRAM_PAUSED)
        return state

    def require_admin(self, uow: UnitOfWork, caller: str, lock: bool = True) -> ProgramState:
        state = self.require_program(uow, lock=lock)
        if caller != state.admin:
            raise AuthorizationError("Unauthorized admin", AuthorizationReason.NOT_ADMIN)
        return state

    def set_paused(self, uow: UnitOfWork, caller: str, paused: bool) -> ProgramState:
        """Stage a change of the paused flag (admin only)."""
        state = self.require_admin(uow, caller)
        updated = state.model_copy(update={"paused": paused})
        uow.put(updated)
        return updated

    # ============================================================
    # MEDICAL AUTHORITIES
    # ============================================================

    def get(self, uow: UnitOfWork, authority: str, lock: bool = True) -> Optional[AuthorityRecord]:
        return uow.get(AuthorityRecord, authority_ref(authority), lock=lock)

    def set_authority(
        self,
        uow: UnitOfWork,
        caller: str,
        target: str,
        active: bool,
    ) -> AuthorityRecord:
        """
        Create or update a medical authority (admin only).

        A new record starts with a zero counter. An existing record only
        has its active flag changed; its counter is kept.

        Raises:
            StateError: program not initialized
            AuthorizationError: caller is not the admin
            ValidationError: target is not a valid identity
        """
        self.require_admin(uow, caller, lock=False)
        validate_identity(target)

        existing = self.get(uow, target)
        if existing is None:
            record = AuthorityRecord(
                ref=authority_ref(target),
                authority=target,
                is_active=active,
            )
            uow.add(record)
            return record

        updated = existing.model_copy(update={"is_active": active})
        uow.put(updated)
        return updated

    def require_active(self, uow: UnitOfWork, authority: str, lock: bool = True) -> AuthorityRecord:
        """
        Load the caller's authority record, refusing missing or inactive ones.

        Only operations that credit the authority need ``lock=True``.
        """
        record = self.get(uow, authority, lock=lock)
        if record is None or not record.is_active:
            raise AuthorizationError(
                "Unauthorized medical authority",
                AuthorizationReason.INACTIVE_AUTHORITY,
            )
        return record
