"""
Module: contract_kernel.selectors.base
Responsibility: Abstract base class for read-only query selectors, the "Q"
    side of the kernel.
Architecture position: Kernel > Selectors.  May import from db/, models/ and
    domain/.  MUST NOT import from services/.

Invariants enforced:
    - Read-only: selectors MUST NOT call session.add(), session.delete(),
      session.flush() or session.commit().
    - Selectors return frozen DTOs, never ORM instances.
    - The caller owns the session and its transaction scope.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from contract_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseSelector(ABC, Generic[ModelType]):
    """Base for selectors; stores the caller's session."""

    def __init__(self, session: Session):
        self.session = session
