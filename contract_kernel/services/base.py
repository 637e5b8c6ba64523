"""
BaseService -- abstract base for kernel services.

Responsibility:
    Provides the common constructor and session-handling contract for
    the flush-only services in the kernel layer.  They receive a SQLAlchemy
    ``Session`` and use ``session.flush()`` -- never ``session.commit()``.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.

Invariants enforced:
    - Transaction boundaries: flush-only services write within the caller's
      transaction.  The top-level operations (ContractLifecycleService,
      SigningGateway) own commit/rollback.
"""

import logging
import time
from abc import ABC
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import Any, Generic, TypeVar
from uuid import uuid4

from sqlalchemy.orm import Session

from contract_kernel.db.base import Base
from contract_kernel.logging_config import LogContext

ModelType = TypeVar("ModelType", bound=Base)
T = TypeVar("T")


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for flush-only kernel services.

    Non-goals:
        - Does NOT manage transaction lifecycle (commit/rollback).
        - Does NOT provide read models -- those belong in
          ``contract_kernel/selectors/``.
    """

    def __init__(self, session: Session):
        self.session = session


@contextmanager
def operation_context(**context: Any) -> Iterator[str]:
    """
    Bind a correlation id (and ``context``) for one top-level operation.

    An id already bound by an enclosing operation is reused, so the
    transaction and the notifications sent after its commit share one id.
    """
    correlation_id = LogContext.get_all().get("correlation_id") or uuid4().hex
    with LogContext.bind(correlation_id=correlation_id, **context):
        yield correlation_id


def run_operation(
    session: Session,
    operation: str,
    fn: Callable[[], T],
    *,
    logger: logging.Logger,
    auto_commit: bool = True,
    **context: Any,
) -> T:
    """
    Run one top-level operation inside a bound LogContext.

    With ``auto_commit`` the session is committed on success and rolled back
    on any exception.  Emits ``<operation>_completed`` or
    ``<operation>_failed`` with the elapsed time.
    """
    with operation_context(**context):
        t0 = time.monotonic()
        try:
            result = fn()
            if auto_commit:
                session.commit()
        except Exception:
            if auto_commit:
                session.rollback()
            logger.warning(
                f"{operation}_failed",
                extra={"duration_ms": round((time.monotonic() - t0) * 1000, 2)},
                exc_info=True,
            )
            raise
        logger.info(
            f"{operation}_completed",
            extra={"duration_ms": round((time.monotonic() - t0) * 1000, 2)},
        )
        return result
