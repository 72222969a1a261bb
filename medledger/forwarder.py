"""Meta-transaction forwarder: relayers submit signed requests on behalf of users."""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import IntEnum
from typing import Optional, Sequence

from medledger.ledger import Address, Env

SIGNATURE_LENGTH = 64


class ForwarderErrorCode(IntEnum):
    INVALID_SIGNATURE = 1
    INVALID_NONCE = 2
    REQUEST_EXPIRED = 3
    EXECUTION_FAILED = 4
    UNAUTHORIZED = 5
    ALREADY_INITIALIZED = 6

    @property
    def label(self) -> str:
        return "".join(part.capitalize() for part in self.name.split("_"))


class ForwarderError(Exception):
    """Raised when a forwarding operation is not allowed.

    ``code`` is set for the contract's defined error conditions and None otherwise.
    """

    def __init__(self, message: str, code: Optional[ForwarderErrorCode] = None) -> None:
        super().__init__(message)
        self.code = code

    @classmethod
    def of(cls, code: ForwarderErrorCode) -> "ForwarderError":
        return cls(code.label, code)


@dataclass(frozen=True)
class ForwardRequest:
    sender: Address
    to: Address
    value: int
    gas: int
    nonce: int
    deadline: int
    data: bytes


@dataclass(frozen=True)
class RelayerConfig:
    address: Address
    is_active: bool
    fee_percentage: int  # basis points


def encode_forward_request(request: ForwardRequest) -> bytes:
    """Encode the signed part of a request: big-endian nonce, big-endian deadline, data."""
    return (
        request.nonce.to_bytes(8, "big")
        + request.deadline.to_bytes(8, "big")
        + bytes(request.data)
    )


class MetaTxForwarder:
    """Verifies relayers, deadlines and nonces, then forwards the request's call data."""

    def __init__(self, env: Env, address: Optional[Address] = None) -> None:
        self.env = env
        self.address = address if address is not None else env.generate_address()
        self._owner: Optional[Address] = None
        self._fee_collector: Optional[Address] = None
        self._min_relayer_stake = 0
        self._trusted_forwarder: Optional[Address] = None
        self._nonces: dict[Address, int] = {}
        self._relayers: dict[Address, RelayerConfig] = {}

    def initialize(
        self, owner: Address, fee_collector: Address, min_relayer_stake: int
    ) -> None:
        self.env.require_auth(owner)
        if self._owner is not None:
            raise ForwarderError.of(ForwarderErrorCode.ALREADY_INITIALIZED)
        self._owner = owner
        self._fee_collector = fee_collector
        self._min_relayer_stake = min_relayer_stake
        self._trusted_forwarder = self.address
        self.env.publish(("init",), (owner, fee_collector, min_relayer_stake))

    def _require_owner(self, owner: Address) -> None:
        self.env.require_auth(owner)
        if self._owner is None:
            raise ForwarderError("Contract not initialized")
        if owner != self._owner:
            raise ForwarderError.of(ForwarderErrorCode.UNAUTHORIZED)

    def _require_active_relayer(self, relayer: Address) -> None:
        if not self.is_relayer(relayer):
            raise ForwarderError.of(ForwarderErrorCode.UNAUTHORIZED)

    def _forward(self, request: ForwardRequest, signature: bytes) -> bytes:
        if self.env.timestamp > request.deadline:
            raise ForwarderError.of(ForwarderErrorCode.REQUEST_EXPIRED)
        current = self._nonces.get(request.sender, 0)
        if current != request.nonce:
            raise ForwarderError.of(ForwarderErrorCode.INVALID_NONCE)
        self._nonces[request.sender] = current + 1
        if len(bytes(signature)) != SIGNATURE_LENGTH:
            raise ForwarderError.of(ForwarderErrorCode.INVALID_SIGNATURE)
        encode_forward_request(request)
        return bytes(request.data)

    def _announce(self, relayer: Address, request: ForwardRequest) -> None:
        self.env.publish(
            ("fwd",), (relayer, request.sender, request.to, request.nonce)
        )

    def execute(
        self, relayer: Address, request: ForwardRequest, signature: bytes
    ) -> bytes:
        """Forward one request and return the forwarded call data."""
        return self.execute_batch(relayer, [request], [signature])[0]

    def execute_batch(
        self,
        relayer: Address,
        requests: Sequence[ForwardRequest],
        signatures: Sequence[bytes],
    ) -> list[bytes]:
        """Forward requests in order; if one fails, none of them takes effect."""
        self.env.require_auth(relayer)
        self._require_active_relayer(relayer)
        if len(requests) != len(signatures):
            raise ForwarderError.of(ForwarderErrorCode.INVALID_SIGNATURE)

        saved_nonces = dict(self._nonces)
        try:
            results = [
                self._forward(request, signature)
                for request, signature in zip(requests, signatures)
            ]
        except ForwarderError:
            self._nonces = saved_nonces
            raise
        for request in requests:
            self._announce(relayer, request)
        return results

    def register_relayer(
        self, owner: Address, relayer: Address, fee_percentage: int
    ) -> None:
        self._require_owner(owner)
        self._relayers[relayer] = RelayerConfig(relayer, True, fee_percentage)
        self.env.publish(("reg_relay",), (relayer, fee_percentage))

    def deactivate_relayer(self, owner: Address, relayer: Address) -> None:
        self._require_owner(owner)
        config = self._relayers.get(relayer, RelayerConfig(relayer, False, 0))
        self._relayers[relayer] = replace(config, is_active=False)
        self.env.publish(("deact_rel",), relayer)

    def get_nonce(self, user: Address) -> int:
        return self._nonces.get(user, 0)

    def is_relayer(self, relayer: Address) -> bool:
        config = self._relayers.get(relayer)
        return config is not None and config.is_active

    def get_relayer_config(self, relayer: Address) -> Optional[RelayerConfig]:
        return self._relayers.get(relayer)

    def get_trusted_forwarder(self) -> Address:
        return self._trusted_forwarder if self._trusted_forwarder is not None else self.address