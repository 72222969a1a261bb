# medledger

State machines for healthcare workflows, run in memory. The package covers payment
escrow, proposal voting, identity attestations, patient consent tokens,
access-controlled medical records and meta-transaction forwarding. Every contract is
built on one `medledger.ledger.Env`, which holds the clock, the published events and
the authorization rules.

## Install

```
pip install medledger
```

To run the test suite:

```
pip install "medledger[test]"
pytest
```

## The environment

`medledger.ledger` defines `Env`, `Address`, `Event` and `AuthError`.

- `Env(timestamp=0)` starts the clock at the given timestamp. `advance(seconds)` moves
  it forward and returns the new value. A negative value raises `ValueError`.
- `generate_address()` returns a fresh `Address`.
- `require_auth(address)` raises `AuthError` unless the address has signed. An address
  has signed if it was passed to `authorize(address)`, or if `mock_all_auths()` was
  called.
- `publish(topics, data)` records an `Event`. The `events` property returns every
  event published so far, oldest first.

## Contracts

- `medledger.escrow.EscrowContract`
  - Holds an `Escrow` for each order id.
  - `set_fee_config` sets the platform fee in basis points (0 to 10 000) and the
    address that receives it.
  - `release_escrow` needs at least two distinct approvals from `approve_release`. It
    credits the payee with the amount less the fee, and credits the fee receiver with
    the fee.
  - `refund_escrow` needs one approval or a dispute set by `mark_disputed`. It credits
    the payer.
  - `get_credit` reports a credit. `withdraw` pays it out and resets it to zero.
- `medledger.governor.Governor`
  - `initialize` sets a voting delay, a voting period, a quorum and a timelock address.
  - `set_weight` sets a voter's weight.
  - `cast_vote` takes `support` as 0 = against, 1 = for, 2 = abstain.
  - `state` returns a `ProposalState`: `PROPOSED`, `ACTIVE`, `SUCCEEDED`, `QUEUED`,
    `EXECUTED` or `FAILED`.
  - `queue` accepts only proposals that succeeded. `execute` accepts only queued
    proposals.
- `medledger.identity_registry.IdentityRegistry`
  - The owner becomes a verifier on `initialize` and cannot be removed as one.
  - Subjects register a 32-byte identity hash and metadata.
  - Verifiers `attest` 32-byte claim hashes about subjects and can
    `revoke_attestation`.
  - `get_attestations` returns the active claims, in the order they were attested.
- `medledger.consent_token.ConsentToken`
  - An admin manages the issuers.
  - Issuers `mint_consent` tokens to patients. Token ids start at 0.
  - The owner of a token can `update_consent`, which bumps the metadata version.
  - The patient can `revoke_consent`. A revoked token cannot be transferred or
    updated.
  - `has_consent(patient, doctor, consent_type)` checks the tokens the doctor holds
    for one that is not revoked and not expired. An expiry of 0 means the token never
    expires.
  - `get_history` returns the token's audit trail of `ConsentHistoryEntry` items.
- `medledger.medical_records.MedicalRecords`
  - Roles are `Role.ADMIN`, `DOCTOR`, `PATIENT` and `NONE`.
  - Doctors `add_record`. The category must be one of Modern, Traditional, Herbal or
    Spiritual. The treatment type must not be empty, and no tag may be empty.
  - Readers of a record are admins, the record's patient, the doctor who wrote it, and
    any doctor when the record is not confidential.
  - `get_history` pages through a patient's records.
  - `pause` and `unpause` block and restore writes.
  - `propose_recovery`, `approve_recovery` and `execute_recovery` form a recovery
    process. Execution needs two admin approvals and a 24-hour timelock.
  - Record ids and proposal ids come from one counter that starts at 1.
- `medledger.forwarder.MetaTxForwarder`
  - The owner registers and deactivates relayers with `register_relayer` and
    `deactivate_relayer`.
  - An active relayer can `execute` a `ForwardRequest`, or use `execute_batch` for
    several. A request is rejected if its deadline has passed, if its nonce does not
    match the sender's current nonce, or if its signature is not 64 bytes long. A
    rejected request raises `ForwarderError`.
  - In a batch, a single failure leaves every nonce unchanged.
  - `encode_forward_request` returns the big-endian nonce, then the big-endian
    deadline, then the data.
- `medledger.forwarder_context.ForwarderContext`
  - Records and checks a contract's trusted forwarder.

A contract that refuses a call raises its own exception: `EscrowError`,
`GovernorError`, `IdentityError`, `ConsentError`, `RecordsError` or `ForwarderError`.
Where a contract defines error codes, they are on the exception's `code` attribute
(`ConsentErrorCode`, `RecordsErrorCode`, `ForwarderErrorCode`). A contract method that
checks authorization raises `AuthError` when the signature is missing.

## Example

```python
from medledger.ledger import Env
from medledger.escrow import EscrowContract

env = Env()
escrow = EscrowContract(env)
payer, payee, token, fees = (env.generate_address() for _ in range(4))

escrow.set_fee_config(fees, 250)          # 2.5 %
escrow.create_escrow(1, payer, payee, 1000, token)
escrow.approve_release(1, payer)
escrow.approve_release(1, env.generate_address())
escrow.release_escrow(1)

assert escrow.get_credit(payee) == 975
assert escrow.withdraw(token, payee) == 975
```

## What it does not do

- State lives only in memory and is lost when the process ends. There is no storage
  and no network.
- No tokens move anywhere:
  - `EscrowContract.withdraw` only zeroes the credit and publishes an event.
  - `execute_recovery` only marks the proposal executed.
  - `Governor.queue` only publishes an event naming the timelock.
- `MetaTxForwarder` does not verify signatures cryptographically; it checks only their
  length. It does not call the target contract; `execute` returns the request's data.
- `ForwarderContext.msg_sender` always returns the contract's own address.
  `extract_sender_from_data` always returns `None`.