"""
Declarative base for the contract store.

Contracts are addressed by integer id in every signing link, so every table
gets an autoincrementing integer key: BIGINT on server databases, INTEGER on
SQLite (the only type SQLite will alias to ROWID).  Fee amounts map to
Numeric(18, 2) and timestamps to ``UTCDateTime``; nothing is stored as a
float or a naive datetime.

``TrackedBase`` adds row bookkeeping (created_at, updated_at, created_by)
for the one mutable aggregate, the contract.  The immutability listeners let
``updated_at`` move even after a contract's terms are frozen.
"""

from datetime import datetime
from decimal import Decimal
from typing import ClassVar

from sqlalchemy import BigInteger, Integer, Numeric, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from contract_kernel.db.types import UTCDateTime

PrimaryKeyType = BigInteger().with_variant(Integer(), "sqlite")


class Base(DeclarativeBase):
    type_annotation_map: ClassVar[dict] = {
        int: PrimaryKeyType,
        Decimal: Numeric(18, 2),
        datetime: UTCDateTime(),
    }

    id: Mapped[int] = mapped_column(PrimaryKeyType, primary_key=True, autoincrement=True)


class TrackedBase(Base):
    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(),
        onupdate=func.now(),
    )
    created_by: Mapped[str] = mapped_column(String(255), default="system")
