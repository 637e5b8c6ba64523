"""
Contract lifecycle (``contract_kernel.domain.lifecycle``).

Responsibility
--------------
Defines the contract status enum, the signer types, the admin/signer
actions, and the ONE function that decides a contract's status.  Status
is never hand-set: it is derived from

    {cancelled?, sent?, required parties, per-party signed_at,
     tokens_expire_at, now}

Cancellation is the only sticky override.  Expiration is derived, not
stored, so no scheduler is needed: every read path recomputes it.

Lifecycle
---------
::

    draft --send--> sent --sign--> partially_signed --sign--> fully_executed
                      |                  |
                      +----sign----------+-----------------> fully_executed
    sent / partially_signed --(time)--> expired --resend--> sent / partially_signed
    any non-terminal --cancel--> cancelled

Terminal states: ``fully_executed`` and ``cancelled``.  ``expired`` is not
terminal: an admin resend issues fresh links and a new expiration horizon.

Architecture position
---------------------
**Kernel domain layer** -- pure.  ZERO I/O.

Invariants enforced
-------------------
* Status is a pure function of the inputs above (``derive_status``).
* A contract with a single required party goes straight from ``sent`` to
  ``fully_executed``; ``partially_signed`` is never produced for it.
* ``fully_executed`` wins over expiration: once all required parties have
  signed, passing ``tokens_expire_at`` changes nothing.
* Every action is checked against ``CONTRACT_WORKFLOW`` in one place
  (``require_action``).
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import datetime
from enum import Enum

from contract_kernel.domain.workflow import Guard, Transition, Workflow
from contract_kernel.exceptions import (
    ContractCancelledError,
    IllegalTransitionError,
    ValidationError,
)


class ContractStatus(str, Enum):
    """Lifecycle status of a contract."""

    DRAFT = "draft"
    SENT = "sent"
    PARTIALLY_SIGNED = "partially_signed"
    FULLY_EXECUTED = "fully_executed"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


class SignerType(str, Enum):
    """A signing party."""

    CLIENT = "client"
    SPEAKER = "speaker"

    @classmethod
    def parse(cls, value: "str | SignerType", field: str = "signer_type") -> "SignerType":
        """Parse a signer type, raising ValidationError on unknown values."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValidationError(
                field, f"must be one of {', '.join(s.value for s in cls)}"
            ) from None


class SignatureMethod(str, Enum):
    """How the signature mark was captured."""

    DIGITAL_PAD = "digital_pad"
    ELECTRONIC = "electronic"
    WET_SIGNATURE = "wet_signature"

    @classmethod
    def parse(cls, value: "str | SignatureMethod | None") -> "SignatureMethod":
        """Parse a capture method; a missing value means a typed electronic signature."""
        if value is None:
            return cls.ELECTRONIC
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValidationError(
                "signature_method", f"must be one of {', '.join(m.value for m in cls)}"
            ) from None


class ContractAction(str, Enum):
    """Actions that move a contract through its lifecycle."""

    SEND = "send"
    SIGN = "sign"
    RESEND = "resend"
    CANCEL = "cancel"
    EXPIRE = "expire"


# Statuses from which signing is accepted.
SIGNABLE_STATUSES = frozenset({ContractStatus.SENT, ContractStatus.PARTIALLY_SIGNED})

_S = ContractStatus
_A = ContractAction

_TOKENS_ELAPSED = Guard(
    name="tokens_elapsed",
    description="now >= tokens_expire_at and some required party has not signed",
)
_REQUIRED_UNSIGNED = Guard(
    name="required_unsigned",
    description="at least one required party still has no ledger entry",
)
_ALL_REQUIRED_SIGNED = Guard(
    name="all_required_signed",
    description="every required party has a ledger entry",
)


CONTRACT_WORKFLOW = Workflow(
    name="contract",
    description="Contract signing lifecycle",
    initial_state=_S.DRAFT.value,
    states=tuple(s.value for s in ContractStatus),
    transitions=(
        Transition(_S.DRAFT.value, _S.SENT.value, _A.SEND.value),
        Transition(_S.SENT.value, _S.PARTIALLY_SIGNED.value, _A.SIGN.value, guard=_REQUIRED_UNSIGNED),
        Transition(_S.SENT.value, _S.FULLY_EXECUTED.value, _A.SIGN.value, guard=_ALL_REQUIRED_SIGNED),
        Transition(
            _S.PARTIALLY_SIGNED.value, _S.FULLY_EXECUTED.value, _A.SIGN.value,
            guard=_ALL_REQUIRED_SIGNED,
        ),
        Transition(_S.SENT.value, _S.SENT.value, _A.RESEND.value),
        Transition(_S.PARTIALLY_SIGNED.value, _S.PARTIALLY_SIGNED.value, _A.RESEND.value),
        Transition(_S.EXPIRED.value, _S.SENT.value, _A.RESEND.value),
        Transition(_S.EXPIRED.value, _S.PARTIALLY_SIGNED.value, _A.RESEND.value),
        Transition(_S.SENT.value, _S.EXPIRED.value, _A.EXPIRE.value, guard=_TOKENS_ELAPSED),
        Transition(_S.PARTIALLY_SIGNED.value, _S.EXPIRED.value, _A.EXPIRE.value, guard=_TOKENS_ELAPSED),
        Transition(_S.DRAFT.value, _S.CANCELLED.value, _A.CANCEL.value),
        Transition(_S.SENT.value, _S.CANCELLED.value, _A.CANCEL.value),
        Transition(_S.PARTIALLY_SIGNED.value, _S.CANCELLED.value, _A.CANCEL.value),
        Transition(_S.EXPIRED.value, _S.CANCELLED.value, _A.CANCEL.value),
    ),
    terminal_states=(_S.FULLY_EXECUTED.value, _S.CANCELLED.value),
)


def is_expired(tokens_expire_at: datetime | None, now: datetime) -> bool:
    """Links are dead from the expiration instant onward."""
    return tokens_expire_at is not None and now >= tokens_expire_at


def derive_status(
    *,
    required_parties: Iterable[SignerType],
    signed_at: Mapping[SignerType, datetime | None],
    tokens_expire_at: datetime | None,
    now: datetime,
    sent_at: datetime | None,
    cancelled_at: datetime | None = None,
) -> ContractStatus:
    """
    Compute the effective status of a contract.

    Evaluation order:
        1. cancelled                        -> cancelled (sticky)
        2. never sent                       -> draft
        3. every required party signed      -> fully_executed
        4. now >= tokens_expire_at          -> expired
        5. some required party signed       -> partially_signed
        6. otherwise                        -> sent
    """
    if cancelled_at is not None:
        return ContractStatus.CANCELLED
    if sent_at is None:
        return ContractStatus.DRAFT

    required = frozenset(required_parties)
    signed = {party for party in required if signed_at.get(party) is not None}

    if required and signed == required:
        return ContractStatus.FULLY_EXECUTED
    if is_expired(tokens_expire_at, now):
        return ContractStatus.EXPIRED
    if signed:
        return ContractStatus.PARTIALLY_SIGNED
    return ContractStatus.SENT


def require_action(
    status: ContractStatus | str,
    action: ContractAction,
    contract_id: int | None = None,
) -> None:
    """
    Single-point legality check for a lifecycle action.

    Raises:
        ContractCancelledError: status is cancelled (absorbing).
        IllegalTransitionError: CONTRACT_WORKFLOW has no such transition.
    """
    status = ContractStatus(status)
    if status is ContractStatus.CANCELLED:
        raise ContractCancelledError(contract_id, action.value)
    if not CONTRACT_WORKFLOW.allows(status.value, action.value):
        raise IllegalTransitionError(contract_id, status.value, action.value)


def required_parties_of(requires_client: bool, requires_speaker: bool) -> tuple[SignerType, ...]:
    """Required signer types in canonical order (client first)."""
    parties = []
    if requires_client:
        parties.append(SignerType.CLIENT)
    if requires_speaker:
        parties.append(SignerType.SPEAKER)
    return tuple(parties)
