"""
Module: contract_kernel.db.types
Responsibility: Column types and annotated aliases shared by every model.
    Centralizes timestamp handling so that all datetimes leave the database
    as timezone-aware UTC, whatever the backend.
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    services/, and selectors/.  MUST NOT import from any of those layers.

Invariants enforced:
    - Every persisted datetime is UTC.  Aware values are converted on bind;
      naive values are taken to already be UTC.
    - Loaded datetimes are always aware (SQLite returns naive values).
    - Fee amounts are Decimal, never float.

Failure modes:
    - TypeError if a non-datetime value is bound to a UTCDateTime column.
"""

from datetime import UTC, datetime
from decimal import Decimal
from typing import Annotated

from sqlalchemy import DateTime, Numeric, String, Text
from sqlalchemy.types import TypeDecorator


class UTCDateTime(TypeDecorator):
    """
    Timezone-aware datetime stored as UTC.

    Guarantees:
        - process_bind_param: aware -> UTC; naive is assumed UTC.
        - process_result_value: always returns an aware UTC datetime.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if not isinstance(value, datetime):
            raise TypeError(f"UTCDateTime expects datetime, got {type(value).__name__}")
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        value = value.astimezone(UTC)
        if dialect.name == "sqlite":
            # SQLite stores text; keep a single canonical (naive UTC) form
            # so string comparison in SQL matches time order.
            return value.replace(tzinfo=None)
        return value

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)


# Fee amount: 18 digits, 2 decimal places
Money = Annotated[Decimal, Numeric(18, 2)]

# ISO 4217 currency code (e.g., "USD", "EUR")
Currency = Annotated[str, String(3)]

# Short identifier strings (statuses, signer types, actions)
ShortCode = Annotated[str, String(50)]

# Names, titles, emails
Label = Annotated[str, String(255)]

# Signing token column; wide enough for configurable token lengths
TokenString = Annotated[str, String(128)]

# Unbounded text (contract terms)
LongText = Annotated[str, Text]

# Aware UTC timestamp
UTCTimestamp = Annotated[datetime, UTCDateTime()]
