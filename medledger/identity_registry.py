"""Registry of identity hashes, verifiers and verifier-issued attestations."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Optional

from medledger.ledger import Address, Env

HASH_LENGTH = 32


class IdentityError(Exception):
    """Raised when an identity registry operation is not allowed."""


@dataclass(frozen=True)
class IdentityRecord:
    hash: bytes
    meta: str
    registered_by: Address


@dataclass(frozen=True)
class Attestation:
    claim_hash: bytes
    verifier: Address
    is_active: bool


def _hash32(value: bytes) -> bytes:
    data = bytes(value)
    if len(data) != HASH_LENGTH:
        raise ValueError(f"hash must be exactly {HASH_LENGTH} bytes, got {len(data)}")
    return data


class IdentityRegistry:
    """Stores one identity record per subject and attestations made by verifiers."""

    def __init__(self, env: Env) -> None:
        self.env = env
        self._owner: Optional[Address] = None
        self._verifiers: dict[Address, bool] = {}
        self._identities: dict[Address, IdentityRecord] = {}
        self._attestations: dict[tuple[Address, bytes], Attestation] = {}
        self._subject_claims: dict[Address, list[bytes]] = {}

    def _require_owner(self) -> Address:
        if self._owner is None:
            raise IdentityError("Contract not initialized")
        return self._owner

    def _require_verifier(self, verifier: Address) -> None:
        self.env.require_auth(verifier)
        if not self.is_verifier(verifier):
            raise IdentityError("Caller is not a verifier")

    def initialize(self, owner: Address) -> None:
        """Set the owner, who also becomes the first verifier."""
        self.env.require_auth(owner)
        if self._owner is not None:
            raise IdentityError("Contract already initialized")
        self._owner = owner
        self._verifiers[owner] = True
        self.env.publish(("Initialized",), owner)

    def register_identity_hash(self, hash_value: bytes, subject: Address, meta: str) -> None:
        """Record the subject's identity hash and metadata; the subject must authorise."""
        self.env.require_auth(subject)
        digest = _hash32(hash_value)
        self._identities[subject] = IdentityRecord(digest, meta, subject)
        self.env.publish(("IdentityRegistered",), (subject, digest, meta))

    def attest(self, verifier: Address, subject: Address, claim_hash: bytes) -> None:
        """Record an active attestation of a claim about the subject."""
        self._require_verifier(verifier)
        claim = _hash32(claim_hash)
        self._attestations[(subject, claim)] = Attestation(claim, verifier, True)
        self._subject_claims.setdefault(subject, []).append(claim)
        self.env.publish(("Attested",), (subject, verifier, claim))

    def revoke_attestation(self, verifier: Address, subject: Address, claim_hash: bytes) -> None:
        """Mark an existing attestation as inactive."""
        self._require_verifier(verifier)
        claim = _hash32(claim_hash)
        key = (subject, claim)
        attestation = self._attestations.get(key)
        if attestation is None:
            raise IdentityError("Attestation not found")
        self._attestations[key] = replace(attestation, is_active=False)
        self.env.publish(("Revoked",), (subject, verifier, claim))

    def add_verifier(self, verifier: Address) -> None:
        owner = self._require_owner()
        self.env.require_auth(owner)
        self._verifiers[verifier] = True
        self.env.publish(("VerifierAdded",), verifier)

    def remove_verifier(self, verifier: Address) -> None:
        owner = self._require_owner()
        self.env.require_auth(owner)
        if verifier == owner:
            raise IdentityError("Cannot remove owner as verifier")
        self._verifiers[verifier] = False
        self.env.publish(("VerifierRemoved",), verifier)

    def is_verifier(self, account: Address) -> bool:
        return self._verifiers.get(account, False)

    def get_identity_record(self, subject: Address) -> Optional[IdentityRecord]:
        return self._identities.get(subject)

    def get_identity_hash(self, subject: Address) -> Optional[bytes]:
        record = self._identities.get(subject)
        return None if record is None else record.hash

    def get_identity_meta(self, subject: Address) -> Optional[str]:
        record = self._identities.get(subject)
        return None if record is None else record.meta

    def is_attested(self, subject: Address, claim_hash: bytes) -> bool:
        attestation = self._attestations.get((subject, bytes(claim_hash)))
        return attestation is not None and attestation.is_active

    def get_attestations(self, subject: Address) -> list[bytes]:
        """Return the subject's active claim hashes in the order they were attested."""
        return [
            claim
            for claim in self._subject_claims.get(subject, [])
            if self.is_attested(subject, claim)
        ]

    def get_owner(self) -> Address:
        return self._require_owner()