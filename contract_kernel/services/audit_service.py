"""
ContractAuditService -- append-only contract audit trail.

Responsibility:
    Appends one ContractEvent per lifecycle action, in the caller's
    transaction, so the trail commits or rolls back with the change it
    describes.

Architecture position:
    Kernel > Services -- flush-only.

Invariants enforced:
    - Append-only: this service only inserts.
    - ``detail`` never carries a signing token; keys named like a token
      are rejected.
"""

from datetime import datetime
from typing import Any

from contract_kernel.domain.clock import Clock
from contract_kernel.logging_config import get_logger
from contract_kernel.models.contract_event import ContractEvent, ContractEventAction
from contract_kernel.services.base import BaseService

logger = get_logger("services.audit")

_FORBIDDEN_DETAIL_KEYS = frozenset({"token", "signing_token", "client_signing_token", "speaker_signing_token"})


class ContractAuditService(BaseService[ContractEvent]):

    def __init__(self, session, clock: Clock):
        super().__init__(session)
        self._clock = clock

    def record(
        self,
        contract_id: int,
        action: ContractEventAction,
        actor: str,
        detail: dict[str, Any] | None = None,
        occurred_at: datetime | None = None,
    ) -> ContractEvent:
        detail = dict(detail or {})
        leaked = _FORBIDDEN_DETAIL_KEYS.intersection(detail)
        if leaked:
            raise ValueError(f"audit detail must not contain tokens: {sorted(leaked)}")

        event = ContractEvent(
            contract_id=contract_id,
            action=ContractEventAction(action).value,
            actor=actor,
            occurred_at=occurred_at or self._clock.now(),
            detail=detail or None,
        )
        self.session.add(event)
        self.session.flush()
        logger.debug(
            "contract_event_recorded",
            extra={"event_action": event.action, "event_id": event.id},
        )
        return event
