"""
Module: contract_kernel.models.contract_event
Responsibility: ORM persistence for the contract audit trail.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - Append-only; no UPDATE or DELETE (ORM listener + DB trigger).
    - Written in the same transaction as the lifecycle change it records.

Audit relevance:
    Every lifecycle action produces a ContractEvent:
    CREATED, SENT, RESENT, SIGNED, FULLY_EXECUTED, CANCELLED, STATUS_SYNCED.
    The ``detail`` payload never contains a signing token.
"""

from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING

from sqlalchemy import JSON, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from contract_kernel.db.base import Base, PrimaryKeyType
from contract_kernel.db.types import UTCDateTime

if TYPE_CHECKING:
    from contract_kernel.models.contract import Contract


class ContractEventAction(str, Enum):
    """Auditable contract actions."""

    CREATED = "created"
    SENT = "sent"
    RESENT = "resent"
    SIGNED = "signed"
    FULLY_EXECUTED = "fully_executed"
    CANCELLED = "cancelled"
    STATUS_SYNCED = "status_synced"


class ContractEvent(Base):
    """One entry in a contract's audit trail."""

    __tablename__ = "contract_events"

    __table_args__ = (
        Index("idx_contract_event_contract", "contract_id"),
        Index("idx_contract_event_action", "action"),
    )

    contract_id: Mapped[int] = mapped_column(
        PrimaryKeyType,
        ForeignKey("contracts.id", ondelete="RESTRICT"),
        nullable=False,
    )

    action: Mapped[str] = mapped_column(String(50), nullable=False)

    # Admin actor, or "<signer_type>:<email>" for signer actions
    actor: Mapped[str] = mapped_column(String(255), nullable=False)

    occurred_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    detail: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    contract: Mapped["Contract"] = relationship(back_populates="events")

    def __repr__(self) -> str:
        return f"<ContractEvent {self.action} on contract {self.contract_id}>"
