"""
DTOs -- Pure domain data transfer objects.

Responsibility:
    Immutable data structures that cross the service boundary: contract
    drafts (input), contract / signature / event snapshots (output), the
    signing context shown to a signer, and the results of sign and send.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.  Services convert
    ORM rows into these; callers never receive ORM entities.

Invariants enforced:
    - No DTO carries a signing token, except ``SendResult.links`` which is
      handed to the admin caller that just issued them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Any

from contract_kernel.domain.lifecycle import ContractStatus, SignatureMethod, SignerType

if TYPE_CHECKING:
    from contract_kernel.models.contract import Contract as ContractModel
    from contract_kernel.models.contract_event import ContractEvent as ContractEventModel
    from contract_kernel.models.signature import Signature as SignatureModel


class DeliveryStatus(str, Enum):
    """Outcome of one notification attempt."""

    SENT = "sent"
    FAILED = "failed"


@dataclass(frozen=True)
class PartyDraft:
    """A party supplied at contract creation."""

    name: str
    email: str


@dataclass(frozen=True)
class ContractDraft:
    """
    Input for creating a contract.

    ``terms`` is the opaque body produced by the content collaborator; the
    engine stores it and never parses it.
    """

    title: str
    terms: str
    client: PartyDraft | None = None
    speaker: PartyDraft | None = None
    contract_number: str | None = None
    event_title: str | None = None
    event_date: date | None = None
    event_location: str | None = None
    fee_amount: Decimal | None = None
    currency: str = "USD"

    @property
    def required_parties(self) -> tuple[SignerType, ...]:
        parties = []
        if self.client is not None:
            parties.append(SignerType.CLIENT)
        if self.speaker is not None:
            parties.append(SignerType.SPEAKER)
        return tuple(parties)


@dataclass(frozen=True)
class PartyInfo:
    signer_type: SignerType
    name: str
    email: str
    signed_at: datetime | None

    @property
    def has_signed(self) -> bool:
        return self.signed_at is not None


@dataclass(frozen=True)
class ContractInfo:
    """
    Immutable snapshot of a contract.

    ``status`` is the EFFECTIVE status at read time.  ``stored_status`` is
    the cached column value, which may lag (e.g. not yet rewritten to
    expired).
    """

    id: int
    contract_number: str
    title: str
    status: ContractStatus
    stored_status: ContractStatus
    required_parties: tuple[SignerType, ...]
    parties: tuple[PartyInfo, ...]
    event_title: str | None
    event_date: date | None
    event_location: str | None
    fee_amount: Decimal | None
    currency: str
    tokens_expire_at: datetime | None
    sent_at: datetime | None
    fully_executed_at: datetime | None
    cancelled_at: datetime | None
    cancellation_reason: str | None
    created_at: datetime | None
    created_by: str

    @classmethod
    def from_model(cls, model: ContractModel, now: datetime) -> ContractInfo:
        """
        Create a ContractInfo from a Contract ORM model.

        Args:
            model: Contract ORM model instance.
            now: Evaluation time for the effective status.
        """
        parties = tuple(
            PartyInfo(
                signer_type=party,
                name=model.party_name(party) or "",
                email=model.party_email(party) or "",
                signed_at=model.signed_at(party),
            )
            for party in model.required_parties
        )
        return cls(
            id=model.id,
            contract_number=model.contract_number,
            title=model.title,
            status=model.effective_status(now),
            stored_status=ContractStatus(model.status),
            required_parties=model.required_parties,
            parties=parties,
            event_title=model.event_title,
            event_date=model.event_date,
            event_location=model.event_location,
            fee_amount=model.fee_amount,
            currency=model.currency,
            tokens_expire_at=model.tokens_expire_at,
            sent_at=model.sent_at,
            fully_executed_at=model.fully_executed_at,
            cancelled_at=model.cancelled_at,
            cancellation_reason=model.cancellation_reason,
            created_at=model.created_at,
            created_by=model.created_by,
        )

    def party(self, signer_type: SignerType) -> PartyInfo | None:
        for p in self.parties:
            if p.signer_type == signer_type:
                return p
        return None

    @property
    def is_fully_executed(self) -> bool:
        return self.status == ContractStatus.FULLY_EXECUTED


@dataclass(frozen=True)
class SignatureInfo:
    """One signature ledger entry."""

    id: int
    contract_id: int
    signer_type: SignerType
    signer_name: str
    signer_email: str
    signer_title: str | None
    ip_address: str | None
    user_agent: str | None
    signed_at: datetime
    signature_method: SignatureMethod = SignatureMethod.ELECTRONIC
    signature_data: str | None = None

    @classmethod
    def from_model(cls, model: SignatureModel) -> SignatureInfo:
        return cls(
            id=model.id,
            contract_id=model.contract_id,
            signer_type=SignerType(model.signer_type),
            signer_name=model.signer_name,
            signer_email=model.signer_email,
            signer_title=model.signer_title,
            ip_address=model.ip_address,
            user_agent=model.user_agent,
            signed_at=model.signed_at,
            signature_method=SignatureMethod(model.signature_method),
            signature_data=model.signature_data,
        )


@dataclass(frozen=True)
class ContractEventInfo:
    id: int
    contract_id: int
    action: str
    actor: str
    occurred_at: datetime
    detail: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_model(cls, model: ContractEventModel) -> ContractEventInfo:
        return cls(
            id=model.id,
            contract_id=model.contract_id,
            action=model.action,
            actor=model.actor,
            occurred_at=model.occurred_at,
            detail=dict(model.detail or {}),
        )


@dataclass(frozen=True)
class SigningContext:
    """
    What a signing UI needs: the terms, the event, and who has signed.

    Never includes either party's token.
    """

    contract_id: int
    contract_number: str
    title: str
    terms: str
    signer_type: SignerType
    signer_name: str
    signer_email: str
    status: ContractStatus
    required_parties: tuple[SignerType, ...]
    signed: dict[SignerType, bool]
    can_sign: bool
    event_title: str | None
    event_date: date | None
    event_location: str | None
    fee_amount: Decimal | None
    currency: str
    tokens_expire_at: datetime | None


@dataclass(frozen=True)
class SignatureRequest:
    """A signer's request to sign, as received at the gateway boundary."""

    contract_id: int
    token: str
    signer_type: str
    signer_name: str
    signer_title: str | None = None
    ip_address: str | None = None
    user_agent: str | None = None
    signature_method: str | None = None
    signature_data: str | None = None


@dataclass(frozen=True)
class SignResult:
    """Outcome of a successful sign call."""

    signature_id: int
    contract_id: int
    signer_type: SignerType
    status: ContractStatus
    is_fully_executed: bool
    signed_at: datetime
    confirmations: tuple["DeliveryResult", ...] = ()


@dataclass(frozen=True)
class DeliveryResult:
    """Per-recipient notification outcome."""

    contract_id: int
    party: SignerType
    kind: str
    status: DeliveryStatus
    recipient: str | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == DeliveryStatus.SENT


@dataclass(frozen=True)
class IssuedLink:
    """A signing link issued to a party; returned only to the admin caller."""

    party: SignerType
    email: str
    token: str
    url: str


@dataclass(frozen=True)
class SendResult:
    """Outcome of send / resend: the contract plus per-recipient delivery."""

    contract: ContractInfo
    links: tuple[IssuedLink, ...]
    deliveries: tuple[DeliveryResult, ...]


@dataclass(frozen=True)
class SyncResult:
    """Outcome of a status cache sync."""

    examined: int
    updated: tuple[tuple[int, ContractStatus, ContractStatus], ...]
