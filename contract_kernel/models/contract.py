"""
Module: contract_kernel.models.contract
Responsibility: ORM persistence for a contract between a client and a speaker,
    its per-party signing tokens, and its lifecycle timestamps.
Architecture position: Kernel > Models.  May import from db/ and domain/ only.

Invariants enforced:
    - contract_number is unique and never changes (uq_contract_number,
      ORM listener, DB trigger).
    - requires_client / requires_speaker are fixed at creation (ORM listener).
    - Tokens are unique across all contracts (uq_contract_client_token,
      uq_contract_speaker_token).
    - terms and the event/party fields are frozen once sent_at is set.
    - A cancelled contract row is frozen.
    - A party's signed_at never changes once set; it mirrors the ledger.

Audit relevance:
    ``status`` is a CACHE of the derived status.  The signature ledger plus
    tokens_expire_at and the clock are authoritative; see
    ``Contract.effective_status``.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, Date, Index, Numeric, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from contract_kernel.db.base import TrackedBase
from contract_kernel.db.types import UTCDateTime
from contract_kernel.domain.lifecycle import (
    ContractStatus,
    SignerType,
    derive_status,
    required_parties_of,
)

if TYPE_CHECKING:
    from contract_kernel.models.contract_event import ContractEvent
    from contract_kernel.models.signature import Signature


class Contract(TrackedBase):
    """
    A contract awaiting (or holding) party signatures.

    Each party has the same column shape: name, email, signing token and
    signed_at.  A party is *required* iff its requires_* flag is set.
    """

    __tablename__ = "contracts"

    __table_args__ = (
        UniqueConstraint("contract_number", name="uq_contract_number"),
        UniqueConstraint("client_signing_token", name="uq_contract_client_token"),
        UniqueConstraint("speaker_signing_token", name="uq_contract_speaker_token"),
        Index("idx_contract_status", "status"),
        Index("idx_contract_tokens_expire_at", "tokens_expire_at"),
    )

    # Fetch server-generated timestamps at flush time, not on later access
    __mapper_args__ = {"eager_defaults": True}

    contract_number: Mapped[str] = mapped_column(String(50), nullable=False)

    title: Mapped[str] = mapped_column(String(255), nullable=False)

    # Opaque body from the content collaborator
    terms: Mapped[str] = mapped_column(Text, nullable=False, default="")

    event_title: Mapped[str | None] = mapped_column(String(255), nullable=True)
    event_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    event_location: Mapped[str | None] = mapped_column(String(255), nullable=True)
    fee_amount: Mapped[Decimal | None] = mapped_column(Numeric(18, 2), nullable=True)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")

    # Cached; see module docstring
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=ContractStatus.DRAFT.value,
    )

    requires_client: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    requires_speaker: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Client party
    client_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    client_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    client_signing_token: Mapped[str | None] = mapped_column(String(128), nullable=True)
    client_signed_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    # Speaker party
    speaker_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    speaker_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    speaker_signing_token: Mapped[str | None] = mapped_column(String(128), nullable=True)
    speaker_signed_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    # Shared by both party tokens
    tokens_expire_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    sent_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    fully_executed_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    cancelled_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    cancelled_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    cancellation_reason: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    signatures: Mapped[list["Signature"]] = relationship(
        back_populates="contract",
        order_by="Signature.id",
        lazy="select",
        passive_deletes="all",
    )

    events: Mapped[list["ContractEvent"]] = relationship(
        back_populates="contract",
        order_by="ContractEvent.id",
        lazy="select",
        passive_deletes="all",
    )

    def __repr__(self) -> str:
        return f"<Contract {self.contract_number} [{self.status}]>"

    # Party accessors keyed by SignerType; avoid branching on strings elsewhere.

    @property
    def required_parties(self) -> tuple[SignerType, ...]:
        return required_parties_of(self.requires_client, self.requires_speaker)

    def is_required(self, party: SignerType) -> bool:
        return party in self.required_parties

    def party_name(self, party: SignerType) -> str | None:
        return getattr(self, f"{SignerType(party).value}_name")

    def party_email(self, party: SignerType) -> str | None:
        return getattr(self, f"{SignerType(party).value}_email")

    def signing_token(self, party: SignerType) -> str | None:
        return getattr(self, f"{SignerType(party).value}_signing_token")

    def set_signing_token(self, party: SignerType, token: str) -> None:
        setattr(self, f"{SignerType(party).value}_signing_token", token)

    def signed_at(self, party: SignerType) -> datetime | None:
        return getattr(self, f"{SignerType(party).value}_signed_at")

    def set_signed_at(self, party: SignerType, when: datetime) -> None:
        setattr(self, f"{SignerType(party).value}_signed_at", when)

    @property
    def signed_map(self) -> dict[SignerType, datetime | None]:
        return {party: self.signed_at(party) for party in SignerType}

    def effective_status(self, now: datetime) -> ContractStatus:
        """Status derived from signed_at, required parties, expiry and now."""
        return derive_status(
            required_parties=self.required_parties,
            signed_at=self.signed_map,
            tokens_expire_at=self.tokens_expire_at,
            now=now,
            sent_at=self.sent_at,
            cancelled_at=self.cancelled_at,
        )
