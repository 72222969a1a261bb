"""Medical records with role-based access, an emergency pause and timelocked multisig recovery."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Iterable, Optional

from medledger.ledger import Address, Env

ALLOWED_CATEGORIES = frozenset({"Modern", "Traditional", "Herbal", "Spiritual"})
APPROVAL_THRESHOLD = 2
TIMELOCK_SECS = 86_400
MAX_HISTORY_FETCH = 100


class Role(Enum):
    ADMIN = "Admin"
    DOCTOR = "Doctor"
    PATIENT = "Patient"
    NONE = "None"


class RecordsErrorCode(IntEnum):
    CONTRACT_PAUSED = 1
    NOT_AUTHORIZED = 2
    INVALID_CATEGORY = 3
    EMPTY_TREATMENT = 4
    EMPTY_TAG = 5
    PROPOSAL_ALREADY_EXECUTED = 6
    TIMELOCK_NOT_ELAPSED = 7
    NOT_ENOUGH_APPROVAL = 8

    @property
    def label(self) -> str:
        return "".join(part.capitalize() for part in self.name.split("_"))


class RecordsError(Exception):
    """Raised when a medical records operation is not allowed.

    ``code`` is set for the contract's defined error conditions and None otherwise.
    """

    def __init__(self, message: str, code: Optional[RecordsErrorCode] = None) -> None:
        super().__init__(message)
        self.code = code

    @classmethod
    def of(cls, code: RecordsErrorCode) -> "RecordsError":
        return cls(code.label, code)


@dataclass
class UserProfile:
    role: Role
    active: bool = True


@dataclass(frozen=True)
class MedicalRecord:
    patient_id: Address
    doctor_id: Address
    timestamp: int
    diagnosis: str
    treatment: str
    is_confidential: bool
    tags: tuple[str, ...]
    category: str
    treatment_type: str


@dataclass
class RecoveryProposal:
    proposal_id: int
    token_contract: Address
    to: Address
    amount: int
    created_at: int
    executed: bool = False
    approvals: list[Address] = field(default_factory=list)


class MedicalRecords:
    """Stores medical records per patient and controls who may read and write them."""

    def __init__(self, env: Env) -> None:
        self.env = env
        self._users: dict[Address, UserProfile] = {}
        self._records: dict[int, MedicalRecord] = {}
        self._patient_records: dict[Address, list[int]] = {}
        self._proposals: dict[int, RecoveryProposal] = {}
        self._counter = 0
        self._paused = False

    def _has_role(self, address: Address, role: Role) -> bool:
        profile = self._users.get(address)
        return (
            profile is not None
            and role is not Role.NONE
            and profile.role is role
            and profile.active
        )

    def _next_id(self) -> int:
        self._counter += 1
        return self._counter

    def _require_admin(self, caller: Address) -> None:
        if not self._has_role(caller, Role.ADMIN):
            raise RecordsError.of(RecordsErrorCode.NOT_AUTHORIZED)

    def _require_unpaused(self) -> None:
        if self._paused:
            raise RecordsError.of(RecordsErrorCode.CONTRACT_PAUSED)

    def _can_read(self, caller: Address, record: MedicalRecord) -> bool:
        return (
            self._has_role(caller, Role.ADMIN)
            or caller == record.patient_id
            or caller == record.doctor_id
            or (self._has_role(caller, Role.DOCTOR) and not record.is_confidential)
        )

    def _proposal(self, proposal_id: int) -> RecoveryProposal:
        try:
            return self._proposals[proposal_id]
        except KeyError:
            raise RecordsError("Proposal not found") from None

    def initialize(self, admin: Address) -> bool:
        """Register the first admin; fails if any user already exists."""
        self.env.require_auth(admin)
        if self._users:
            raise RecordsError("Contract already initialized")
        self._users = {admin: UserProfile(Role.ADMIN, True)}
        self._paused = False
        return True

    def pause(self, caller: Address) -> bool:
        self.env.require_auth(caller)
        self._require_admin(caller)
        self._paused = True
        self.env.publish(("Paused",), (caller, self.env.timestamp))
        return True

    def unpause(self, caller: Address) -> bool:
        self.env.require_auth(caller)
        self._require_admin(caller)
        self._paused = False
        self.env.publish(("Unpaused",), (caller, self.env.timestamp))
        return True

    def manage_user(self, caller: Address, user: Address, role: Role) -> bool:
        """Add or replace a user's profile with the given role, active."""
        self.env.require_auth(caller)
        self._require_unpaused()
        self._require_admin(caller)
        self._users[user] = UserProfile(Role(role), True)
        return True

    def add_record(
        self,
        caller: Address,
        patient: Address,
        diagnosis: str,
        treatment: str,
        is_confidential: bool,
        tags: Iterable[str],
        category: str,
        treatment_type: str,
    ) -> int:
        """Store a record written by a doctor and return its id."""
        self.env.require_auth(caller)
        self._require_unpaused()
        if not self._has_role(caller, Role.DOCTOR):
            raise RecordsError.of(RecordsErrorCode.NOT_AUTHORIZED)
        if category not in ALLOWED_CATEGORIES:
            raise RecordsError.of(RecordsErrorCode.INVALID_CATEGORY)
        if not treatment_type:
            raise RecordsError.of(RecordsErrorCode.EMPTY_TREATMENT)
        tag_list = tuple(tags)
        if any(not tag for tag in tag_list):
            raise RecordsError.of(RecordsErrorCode.EMPTY_TAG)

        record_id = self._next_id()
        self._records[record_id] = MedicalRecord(
            patient_id=patient,
            doctor_id=caller,
            timestamp=self.env.timestamp,
            diagnosis=diagnosis,
            treatment=treatment,
            is_confidential=is_confidential,
            tags=tag_list,
            category=category,
            treatment_type=treatment_type,
        )
        self._patient_records.setdefault(patient, []).append(record_id)
        self.env.publish(("RecordAdded",), (patient, record_id, is_confidential))
        return record_id

    def get_record(self, caller: Address, record_id: int) -> Optional[MedicalRecord]:
        """Return the record if the caller may read it, None if it does not exist."""
        self.env.require_auth(caller)
        record = self._records.get(record_id)
        if record is None:
            return None
        if not self._can_read(caller, record):
            raise RecordsError("Unauthorized access to medical record")
        return record

    def get_history(
        self, caller: Address, patient: Address, page: int, page_size: int
    ) -> list[tuple[int, MedicalRecord]]:
        """Return one page of the patient's records that the caller may read."""
        self.env.require_auth(caller)
        if self._paused:
            raise RecordsError("Contract is paused")

        ids = self._patient_records.get(patient, [])
        start = page * page_size
        if start >= len(ids):
            return []
        end = min((page + 1) * page_size, len(ids))
        max_fetch = min(MAX_HISTORY_FETCH, page_size * 2)
        actual_end = min(start + max_fetch, end)

        history = []
        for record_id in ids[start:actual_end]:
            record = self._records.get(record_id)
            if record is not None and self._can_read(caller, record):
                history.append((record_id, record))
        return history

    def deactivate_user(self, caller: Address, user: Address) -> bool:
        """Deactivate a known user; return False if the user is unknown."""
        self.env.require_auth(caller)
        if self._paused:
            raise RecordsError("Contract is paused")
        if not self._has_role(caller, Role.ADMIN):
            raise RecordsError("Only admins can deactivate users")
        profile = self._users.get(user)
        if profile is None:
            return False
        profile.active = False
        return True

    def get_user_role(self, user: Address) -> Role:
        profile = self._users.get(user)
        return Role.NONE if profile is None else profile.role

    def propose_recovery(
        self, caller: Address, token_contract: Address, to: Address, amount: int
    ) -> int:
        """Create a recovery proposal approved by its proposer and return its id."""
        self.env.require_auth(caller)
        if not self._has_role(caller, Role.ADMIN):
            raise RecordsError("Only admins can propose recovery")
        proposal_id = self._next_id()
        self._proposals[proposal_id] = RecoveryProposal(
            proposal_id=proposal_id,
            token_contract=token_contract,
            to=to,
            amount=amount,
            created_at=self.env.timestamp,
            approvals=[caller],
        )
        return proposal_id

    def approve_recovery(self, caller: Address, proposal_id: int) -> bool:
        self.env.require_auth(caller)
        if not self._has_role(caller, Role.ADMIN):
            raise RecordsError("Only admins can approve recovery")
        proposal = self._proposal(proposal_id)
        if proposal.executed:
            raise RecordsError("Proposal already executed")
        if caller not in proposal.approvals:
            proposal.approvals.append(caller)
        return True

    def execute_recovery(self, caller: Address, proposal_id: int) -> bool:
        """Mark a proposal executed once the timelock has passed and enough admins approved."""
        self.env.require_auth(caller)
        self._require_admin(caller)
        proposal = self._proposal(proposal_id)
        if proposal.executed:
            raise RecordsError.of(RecordsErrorCode.PROPOSAL_ALREADY_EXECUTED)
        if self.env.timestamp < proposal.created_at + TIMELOCK_SECS:
            raise RecordsError.of(RecordsErrorCode.TIMELOCK_NOT_ELAPSED)
        if len(proposal.approvals) < APPROVAL_THRESHOLD:
            raise RecordsError.of(RecordsErrorCode.NOT_ENOUGH_APPROVAL)
        proposal.executed = True
        return True