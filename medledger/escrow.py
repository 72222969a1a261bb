"""Escrow of order payments with approvals, disputes, platform fees and pull-payment credits."""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from typing import Iterator, Optional

from medledger.ledger import Address, Env

MAX_FEE_BPS = 10_000
RELEASE_THRESHOLD = 2


class EscrowError(Exception):
    """Raised when an escrow operation is not allowed."""


@dataclass
class Escrow:
    order_id: int
    payer: Address
    payee: Address
    amount: int
    token: Address
    released: bool = False
    refunded: bool = False
    disputed: bool = False
    approvals: list[Address] = field(default_factory=list)

    @property
    def settled(self) -> bool:
        return self.released or self.refunded


@dataclass(frozen=True)
class FeeConfig:
    platform_fee_bps: int
    fee_receiver: Address


class EscrowContract:
    """Holds escrows per order id and the credits owed to addresses."""

    def __init__(self, env: Env) -> None:
        self.env = env
        self._escrows: dict[int, Escrow] = {}
        self._credits: dict[Address, int] = {}
        self._fee_config: Optional[FeeConfig] = None
        self._locked = False

    @contextmanager
    def _non_reentrant(self) -> Iterator[None]:
        if self._locked:
            raise EscrowError("ReentrancyGuard: reentrant call")
        self._locked = True
        try:
            yield
        finally:
            self._locked = False

    def _escrow(self, order_id: int) -> Escrow:
        try:
            return self._escrows[order_id]
        except KeyError:
            raise EscrowError("Not found") from None

    def _add_credit(self, addr: Address, delta: int) -> None:
        self._credits[addr] = self._credits.get(addr, 0) + delta

    def set_fee_config(self, fee_receiver: Address, platform_fee_bps: int) -> None:
        if not 0 <= platform_fee_bps <= MAX_FEE_BPS:
            raise EscrowError("Invalid fee bps")
        self._fee_config = FeeConfig(platform_fee_bps, fee_receiver)

    def get_fee_config(self) -> Optional[FeeConfig]:
        return self._fee_config

    def create_escrow(
        self, order_id: int, payer: Address, payee: Address, amount: int, token: Address
    ) -> bool:
        if amount <= 0:
            raise EscrowError("Invalid amount")
        if order_id in self._escrows:
            raise EscrowError("Escrow exists")
        self._escrows[order_id] = Escrow(order_id, payer, payee, amount, token)
        self.env.publish(("EscNew", order_id), (payer, payee, amount, token))
        return True

    def mark_disputed(self, order_id: int) -> None:
        self._escrow(order_id).disputed = True
        self.env.publish(("EscDisput", order_id), ())

    def approve_release(self, order_id: int, approver: Address) -> None:
        escrow = self._escrow(order_id)
        if escrow.settled:
            raise EscrowError("Already settled")
        if approver not in escrow.approvals:
            escrow.approvals.append(approver)

    def release_escrow(self, order_id: int) -> bool:
        with self._non_reentrant():
            fee_conf = self._fee_config
            if fee_conf is None:
                raise EscrowError("Fee not set")
            escrow = self._escrow(order_id)
            if escrow.settled:
                raise EscrowError("Already settled")
            if len(escrow.approvals) < RELEASE_THRESHOLD:
                raise EscrowError("Insufficient approvals")

            escrow.released = True
            fee = escrow.amount * fee_conf.platform_fee_bps // MAX_FEE_BPS
            provider_amount = escrow.amount - fee
            self._add_credit(escrow.payee, provider_amount)
            self._add_credit(fee_conf.fee_receiver, fee)
            self.env.publish(
                ("EscRel", order_id),
                (escrow.payee, provider_amount, fee_conf.fee_receiver, fee, escrow.token),
            )
        return True

    def refund_escrow(self, order_id: int) -> bool:
        with self._non_reentrant():
            escrow = self._escrow(order_id)
            if escrow.settled:
                raise EscrowError("Already settled")
            if not escrow.approvals and not escrow.disputed:
                raise EscrowError("No basis to refund")

            escrow.refunded = True
            self._add_credit(escrow.payer, escrow.amount)
            self.env.publish(
                ("EscRefund", order_id), (escrow.payer, escrow.amount, escrow.token)
            )
        return True

    def get_escrow(self, order_id: int) -> Optional[Escrow]:
        """Return a snapshot of the escrow, or None if there is none for the order."""
        escrow = self._escrows.get(order_id)
        if escrow is None:
            return None
        return replace(escrow, approvals=list(escrow.approvals))

    def get_credit(self, addr: Address) -> int:
        return self._credits.get(addr, 0)

    def withdraw(self, token: Address, to: Address) -> int:
        with self._non_reentrant():
            amount = self._credits.get(to, 0)
            if amount <= 0:
                raise EscrowError("No credit")
            self._credits[to] = 0
            self.env.publish(("Withdrawn",), (to, amount, token))
        return amount