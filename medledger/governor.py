"""Weighted voting on proposals with delay, voting period, quorum, queueing and execution."""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import Optional

from medledger.ledger import Address, Env


class GovernorError(Exception):
    """Raised when a governance operation is not allowed."""


class ProposalState(IntEnum):
    PROPOSED = 0
    ACTIVE = 1
    SUCCEEDED = 2
    QUEUED = 3
    EXECUTED = 4
    FAILED = 5


class _Support(IntEnum):
    AGAINST = 0
    FOR = 1
    ABSTAIN = 2


@dataclass(frozen=True)
class GovernorConfig:
    voting_delay: int
    voting_period: int
    quorum: int
    timelock: Address


@dataclass
class Proposal:
    proposer: Address
    description_ref: bytes
    start: int
    end: int
    for_votes: int = 0
    against_votes: int = 0
    abstain_votes: int = 0
    queued: bool = False
    executed: bool = False


class Governor:
    """Proposal registry and vote tally."""

    def __init__(self, env: Env) -> None:
        self.env = env
        self._config: Optional[GovernorConfig] = None
        self._proposals: dict[int, Proposal] = {}
        self._weights: dict[Address, int] = {}

    def _cfg(self) -> GovernorConfig:
        if self._config is None:
            raise GovernorError("init")
        return self._config

    def _proposal(self, proposal_id: int) -> Proposal:
        try:
            return self._proposals[proposal_id]
        except KeyError:
            raise GovernorError("no prop") from None

    def initialize(
        self, timelock: Address, voting_delay: int, voting_period: int, quorum: int
    ) -> None:
        if self._config is not None:
            raise GovernorError("init")
        self._config = GovernorConfig(voting_delay, voting_period, quorum, timelock)

    def set_weight(self, voter: Address, weight: int) -> None:
        self._weights[voter] = weight

    def propose(self, proposal_id: int, proposer: Address, description_ref: bytes) -> None:
        cfg = self._cfg()
        if proposal_id in self._proposals:
            raise GovernorError("exists")
        start = self.env.timestamp + cfg.voting_delay
        end = start + cfg.voting_period
        self._proposals[proposal_id] = Proposal(proposer, bytes(description_ref), start, end)
        self.env.publish(("Propose", proposal_id), (start, end))

    def cast_vote(self, proposal_id: int, voter: Address, support: int) -> None:
        proposal = self._proposal(proposal_id)
        now = self.env.timestamp
        if now < proposal.start or now >= proposal.end:
            raise GovernorError("not active")
        weight = self._weights.get(voter, 0)
        if weight <= 0:
            raise GovernorError("no weight")
        try:
            choice = _Support(support)
        except ValueError:
            raise GovernorError("bad support") from None
        if choice is _Support.AGAINST:
            proposal.against_votes += weight
        elif choice is _Support.FOR:
            proposal.for_votes += weight
        else:
            proposal.abstain_votes += weight
        self.env.publish(("Vote", proposal_id), (int(choice), weight))

    def state(self, proposal_id: int) -> ProposalState:
        cfg = self._cfg()
        proposal = self._proposal(proposal_id)
        now = self.env.timestamp
        if proposal.executed:
            return ProposalState.EXECUTED
        if proposal.queued:
            return ProposalState.QUEUED
        if now < proposal.start:
            return ProposalState.PROPOSED
        if now < proposal.end:
            return ProposalState.ACTIVE
        if proposal.for_votes >= cfg.quorum and proposal.for_votes > proposal.against_votes:
            return ProposalState.SUCCEEDED
        return ProposalState.FAILED

    def queue(self, proposal_id: int) -> None:
        cfg = self._cfg()
        proposal = self._proposal(proposal_id)
        if self.state(proposal_id) is not ProposalState.SUCCEEDED:
            raise GovernorError("not succeeded")
        proposal.queued = True
        self.env.publish(("Queue", proposal_id), (cfg.timelock,))

    def execute(self, proposal_id: int) -> None:
        proposal = self._proposal(proposal_id)
        if not proposal.queued:
            raise GovernorError("not queued")
        proposal.executed = True
        self.env.publish(("Exec", proposal_id), ())