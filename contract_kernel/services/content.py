"""
Content renderer collaborator.

The engine never parses or mutates contract terms.  A ContentRenderer turns
a contract id into the body shown to a signer; the default one returns the
terms stored on the contract at creation.
"""

from abc import ABC, abstractmethod

from sqlalchemy import select
from sqlalchemy.orm import Session

from contract_kernel.exceptions import ContractNotFoundError
from contract_kernel.models.contract import Contract


class ContentRenderer(ABC):
    """Returns the immutable terms body for a contract."""

    @abstractmethod
    def render(self, contract_id: int) -> str:
        ...


class StoredTermsRenderer(ContentRenderer):
    """Serves the terms stored on the contract row."""

    def __init__(self, session: Session):
        self._session = session

    def render(self, contract_id: int) -> str:
        terms = self._session.execute(
            select(Contract.terms).where(Contract.id == contract_id)
        ).scalar_one_or_none()
        if terms is None:
            raise ContractNotFoundError(contract_id)
        return terms
