"""
Module: contract_kernel.selectors.contract_selector
Responsibility: Read-only access to contracts, their signature ledger and
    their audit trail.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Status is always DERIVED at read time from the contract row and the
      selector's clock.  A contract whose tokens have passed their
      expiration is reported as expired even if the stored column still
      says sent / partially_signed.
    - Ledger and history are returned in insertion order.

Failure modes:
    - ContractNotFoundError from ``get`` for an unknown id; list queries
      return empty results instead.
"""

from sqlalchemy import select

from contract_kernel.domain.clock import Clock, SystemClock
from contract_kernel.domain.dtos import ContractEventInfo, ContractInfo, SignatureInfo
from contract_kernel.domain.lifecycle import ContractStatus
from contract_kernel.exceptions import ContractNotFoundError
from contract_kernel.models.contract import Contract
from contract_kernel.models.contract_event import ContractEvent
from contract_kernel.models.signature import Signature
from contract_kernel.selectors.base import BaseSelector


class ContractSelector(BaseSelector[Contract]):
    """Query side for contracts."""

    def __init__(self, session, clock: Clock | None = None):
        super().__init__(session)
        self._clock = clock or SystemClock()

    def get(self, contract_id: int) -> ContractInfo:
        contract = self.session.execute(
            select(Contract)
            .where(Contract.id == contract_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if contract is None:
            raise ContractNotFoundError(contract_id)
        return ContractInfo.from_model(contract, self._clock.now())

    def get_by_number(self, contract_number: str) -> ContractInfo | None:
        contract = self.session.execute(
            select(Contract).where(Contract.contract_number == contract_number)
        ).scalar_one_or_none()
        if contract is None:
            return None
        return ContractInfo.from_model(contract, self._clock.now())

    def signatures(self, contract_id: int) -> list[SignatureInfo]:
        rows = self.session.execute(
            select(Signature)
            .where(Signature.contract_id == contract_id)
            .order_by(Signature.id)
        ).scalars()
        return [SignatureInfo.from_model(row) for row in rows]

    def history(self, contract_id: int) -> list[ContractEventInfo]:
        rows = self.session.execute(
            select(ContractEvent)
            .where(ContractEvent.contract_id == contract_id)
            .order_by(ContractEvent.id)
        ).scalars()
        return [ContractEventInfo.from_model(row) for row in rows]

    def stale_statuses(self) -> list[tuple[int, ContractStatus, ContractStatus]]:
        """(id, stored, effective) for every contract whose cache lags."""
        now = self._clock.now()
        stale = []
        for contract in self.session.execute(select(Contract).order_by(Contract.id)).scalars():
            stored = ContractStatus(contract.status)
            effective = contract.effective_status(now)
            if stored is not effective:
                stale.append((contract.id, stored, effective))
        return stale
