"""
Module: contract_kernel.models.signature
Responsibility: ORM persistence for the signature ledger.
Architecture position: Kernel > Models.  May import from db/ and domain/ only.

Invariants enforced:
    - At most one signature per (contract_id, signer_type), enforced by the
      ``uq_signature_contract_signer`` constraint.  A race between two sign
      attempts for the same party ends in exactly one row.
    - Append-only: no UPDATE or DELETE (ORM listener + DB trigger).

Failure modes:
    - IntegrityError on a second insert for the same party; the signing
      gateway turns it into AlreadySignedError.
    - ImmutabilityViolationError on any UPDATE/DELETE attempt.

Audit relevance:
    The ledger IS the record of execution.  ip_address, user_agent,
    signed_at and the capture method are recorded for every signature,
    plus the signature mark itself when one was drawn or uploaded.
"""

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from contract_kernel.db.base import Base, PrimaryKeyType
from contract_kernel.db.types import UTCDateTime

if TYPE_CHECKING:
    from contract_kernel.models.contract import Contract


class Signature(Base):
    """One party's signature on one contract."""

    __tablename__ = "signatures"

    __table_args__ = (
        UniqueConstraint("contract_id", "signer_type", name="uq_signature_contract_signer"),
        Index("idx_signature_contract", "contract_id"),
    )

    contract_id: Mapped[int] = mapped_column(
        PrimaryKeyType,
        ForeignKey("contracts.id", ondelete="RESTRICT"),
        nullable=False,
    )

    # "client" | "speaker"
    signer_type: Mapped[str] = mapped_column(String(20), nullable=False)

    signer_name: Mapped[str] = mapped_column(String(255), nullable=False)
    signer_email: Mapped[str] = mapped_column(String(255), nullable=False)
    signer_title: Mapped[str | None] = mapped_column(String(255), nullable=True)

    ip_address: Mapped[str | None] = mapped_column(String(64), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    # "digital_pad" | "electronic" | "wet_signature"
    signature_method: Mapped[str] = mapped_column(
        String(20), nullable=False, default="electronic"
    )
    # Captured mark, e.g. a pad drawing as a data: URL; absent for typed signatures
    signature_data: Mapped[str | None] = mapped_column(Text, nullable=True)

    signed_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    contract: Mapped["Contract"] = relationship(back_populates="signatures")

    def __repr__(self) -> str:
        return f"<Signature {self.signer_type} on contract {self.contract_id}>"
