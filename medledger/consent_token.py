"""Patient consent tokens: issuance by authorised issuers, updates, revocation and transfer."""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import IntEnum
from typing import Optional

from medledger.ledger import Address, Env


class ConsentErrorCode(IntEnum):
    NOT_AUTHORIZED = 1
    TOKEN_NOT_FOUND = 2
    CONSENT_REVOKED = 3
    ALREADY_INITIALIZED = 4
    NOT_TOKEN_OWNER = 5

    @property
    def label(self) -> str:
        return "".join(part.capitalize() for part in self.name.split("_"))


class ConsentError(Exception):
    """Raised when a consent token operation is not allowed.

    ``code`` is set for the contract's defined error conditions and None otherwise.
    """

    def __init__(self, message: str, code: Optional[ConsentErrorCode] = None) -> None:
        super().__init__(message)
        self.code = code

    @classmethod
    def of(cls, code: ConsentErrorCode) -> "ConsentError":
        return cls(code.label, code)


@dataclass(frozen=True)
class ConsentMetadata:
    metadata_uri: str
    consent_type: str
    issued_timestamp: int
    expiry_timestamp: int  # 0 means the consent never expires
    issuer: Address
    patient: Address
    version: int


@dataclass(frozen=True)
class ConsentHistoryEntry:
    action: str
    timestamp: int
    actor: Address
    metadata_uri: str


class ConsentToken:
    """Non-fungible consent tokens with an audit trail per token."""

    def __init__(self, env: Env) -> None:
        self.env = env
        self._admin: Optional[Address] = None
        self._issuers: list[Address] = []
        self._counter = 0
        self._owners: dict[int, Address] = {}
        self._metadata: dict[int, ConsentMetadata] = {}
        self._revoked: dict[int, bool] = {}
        self._owner_tokens: dict[Address, list[int]] = {}
        self._history: dict[int, list[ConsentHistoryEntry]] = {}
        self._patient_consents: dict[Address, list[int]] = {}

    def _require_admin(self) -> Address:
        if self._admin is None:
            raise ConsentError("Not initialized")
        self.env.require_auth(self._admin)
        return self._admin

    def _owner(self, token_id: int) -> Address:
        try:
            return self._owners[token_id]
        except KeyError:
            raise ConsentError(
                "Token does not exist", ConsentErrorCode.TOKEN_NOT_FOUND
            ) from None

    def _record(self, token_id: int, action: str, actor: Address, uri: str) -> None:
        entry = ConsentHistoryEntry(action, self.env.timestamp, actor, uri)
        self._history.setdefault(token_id, []).append(entry)

    def initialize(self, admin: Address) -> None:
        if self._admin is not None:
            raise ConsentError.of(ConsentErrorCode.ALREADY_INITIALIZED)
        self.env.require_auth(admin)
        self._admin = admin
        self._counter = 0
        self._issuers = []

    def add_issuer(self, issuer: Address) -> None:
        self._require_admin()
        self._issuers.append(issuer)

    def remove_issuer(self, issuer: Address) -> None:
        self._require_admin()
        self._issuers = [current for current in self._issuers if current != issuer]

    def is_issuer(self, address: Address) -> bool:
        return address in self._issuers

    def mint_consent(
        self,
        issuer: Address,
        patient: Address,
        metadata_uri: str,
        consent_type: str,
        expiry_timestamp: int,
    ) -> int:
        """Issue a consent token to the patient and return its id."""
        self.env.require_auth(issuer)
        if not self.is_issuer(issuer):
            raise ConsentError.of(ConsentErrorCode.NOT_AUTHORIZED)

        token_id = self._counter
        self._counter += 1

        self._metadata[token_id] = ConsentMetadata(
            metadata_uri=metadata_uri,
            consent_type=consent_type,
            issued_timestamp=self.env.timestamp,
            expiry_timestamp=expiry_timestamp,
            issuer=issuer,
            patient=patient,
            version=1,
        )
        self._owners[token_id] = patient
        self._revoked[token_id] = False
        self._owner_tokens.setdefault(patient, []).append(token_id)
        self._patient_consents.setdefault(patient, []).append(token_id)
        self._record(token_id, "issued", issuer, metadata_uri)

        self.env.publish(
            ("consent", "issued"), (token_id, patient, consent_type, metadata_uri)
        )
        return token_id

    def update_consent(self, token_id: int, new_metadata_uri: str) -> None:
        """Point the token at new metadata and bump its version; the owner must authorise."""
        owner = self._owner(token_id)
        if self._revoked.get(token_id, False):
            raise ConsentError.of(ConsentErrorCode.CONSENT_REVOKED)
        self.env.require_auth(owner)

        metadata = self._metadata.get(token_id)
        if metadata is None:
            raise ConsentError("Metadata not found", ConsentErrorCode.TOKEN_NOT_FOUND)
        metadata = replace(
            metadata, metadata_uri=new_metadata_uri, version=metadata.version + 1
        )
        self._metadata[token_id] = metadata
        self._record(token_id, "updated", owner, new_metadata_uri)

        self.env.publish(
            ("consent", "updated"), (token_id, metadata.version, new_metadata_uri)
        )

    def revoke_consent(self, token_id: int) -> None:
        """Revoke the consent; the patient named in the metadata must authorise."""
        if token_id not in self._owners or token_id not in self._metadata:
            raise ConsentError.of(ConsentErrorCode.TOKEN_NOT_FOUND)
        metadata = self._metadata[token_id]
        patient = metadata.patient
        self.env.require_auth(patient)

        if self._revoked.get(token_id, False):
            raise ConsentError.of(ConsentErrorCode.CONSENT_REVOKED)
        self._revoked[token_id] = True
        self._record(token_id, "revoked", patient, metadata.metadata_uri)

        self.env.publish(("consent", "revoked"), (token_id, patient))

    def transfer(self, sender: Address, recipient: Address, token_id: int) -> None:
        self.env.require_auth(sender)
        owner = self._owner(token_id)
        if owner != sender:
            raise ConsentError.of(ConsentErrorCode.NOT_TOKEN_OWNER)
        if self._revoked.get(token_id, False):
            raise ConsentError.of(ConsentErrorCode.CONSENT_REVOKED)

        self._owners[token_id] = recipient
        self._owner_tokens[sender] = [
            tid for tid in self._owner_tokens.get(sender, []) if tid != token_id
        ]
        self._owner_tokens.setdefault(recipient, []).append(token_id)

        self.env.publish(("consent", "transfer"), (token_id, sender, recipient))

    def owner_of(self, token_id: int) -> Address:
        return self._owner(token_id)

    def get_metadata(self, token_id: int) -> ConsentMetadata:
        try:
            return self._metadata[token_id]
        except KeyError:
            raise ConsentError(
                "Token does not exist", ConsentErrorCode.TOKEN_NOT_FOUND
            ) from None

    def is_revoked(self, token_id: int) -> bool:
        return self._revoked.get(token_id, False)

    def get_history(self, token_id: int) -> list[ConsentHistoryEntry]:
        """Return the token's audit trail, oldest first."""
        return list(self._history.get(token_id, []))

    def tokens_of_owner(self, owner: Address) -> list[int]:
        return list(self._owner_tokens.get(owner, []))

    def _unexpired(self, metadata: ConsentMetadata) -> bool:
        return (
            metadata.expiry_timestamp == 0
            or self.env.timestamp < metadata.expiry_timestamp
        )

    def has_consent(self, patient: Address, doctor: Address, consent_type: str) -> bool:
        """True if the doctor holds a live consent of the given type for the patient."""
        for token_id in self.tokens_of_owner(doctor):
            if self.is_revoked(token_id):
                continue
            metadata = self.get_metadata(token_id)
            if (
                metadata.patient == patient
                and metadata.consent_type == consent_type
                and self._unexpired(metadata)
            ):
                return True
        return False

    def is_valid(self, token_id: int) -> bool:
        """True if the consent is neither revoked nor expired."""
        if self.is_revoked(token_id):
            return False
        return self._unexpired(self.get_metadata(token_id))