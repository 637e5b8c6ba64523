"""
Contract number allocation from locked counter rows.

Each named sequence is one row in ``sequence_counters``.  Allocation makes
sure the row exists (an insert that ignores a conflicting row), then locks
it with ``SELECT ... FOR UPDATE`` and increments it.  Two transactions can
therefore never hand out the same value, and nothing is ever derived from
``MAX(contract_number)``.

The service flushes but never commits: a number is only consumed when the
caller's transaction (the contract insert) commits, and a rollback returns
it.

Contract numbers look like ``CTR-20240309-00001``; the counter is keyed by
day, so the suffix restarts at 00001 every day.
"""

from datetime import date

from sqlalchemy import BigInteger, String, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Mapped, Session, mapped_column

from contract_kernel.db.base import Base
from contract_kernel.logging_config import get_logger

logger = get_logger("services.sequence")

_UPSERT_DIALECTS = {"postgresql": postgresql.insert, "sqlite": sqlite.insert}


class SequenceCounter(Base):
    __tablename__ = "sequence_counters"

    name: Mapped[str] = mapped_column(String(50), unique=True)
    current_value: Mapped[int] = mapped_column(BigInteger, default=0)


class SequenceService:
    CONTRACT_NUMBER = "contract_number"

    def __init__(self, session: Session):
        self._session = session

    def _ensure_counter(self, name: str) -> None:
        insert = _UPSERT_DIALECTS[self._session.get_bind().dialect.name]
        self._session.execute(
            insert(SequenceCounter)
            .values(name=name, current_value=0)
            .on_conflict_do_nothing(index_elements=[SequenceCounter.name])
        )

    def next_value(self, name: str) -> int:
        """Increment and return the counter for ``name`` (first value is 1)."""
        self._ensure_counter(name)
        counter = self._session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.name == name)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one()
        counter.current_value += 1
        self._session.flush()
        logger.debug("sequence_allocated", extra={"sequence_name": name, "value": counter.current_value})
        return counter.current_value

    def current_value(self, name: str) -> int | None:
        return self._session.execute(
            select(SequenceCounter.current_value).where(SequenceCounter.name == name)
        ).scalar_one_or_none()

    def next_contract_number(self, prefix: str, on: date) -> str:
        stamp = f"{on:%Y%m%d}"
        value = self.next_value(f"{self.CONTRACT_NUMBER}:{stamp}")
        return f"{prefix}-{stamp}-{value:05d}"
