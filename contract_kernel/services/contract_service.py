"""
ContractLifecycleService -- the contract state machine's write side.

Responsibility:
    Creates contracts and drives the admin-triggered transitions: send,
    resend, cancel, plus the maintenance rewrite of the cached status
    column (``sync_statuses``).  Signing lives in SigningGateway.

Architecture position:
    Kernel > Services -- top-level operation.  Owns its transaction when
    ``auto_commit=True``: commit on success, rollback on any exception.

Invariants enforced:
    - Every action is checked against the lifecycle workflow in one place
      (``require_action``) using the EFFECTIVE status at the time of the
      call, so an expired-but-not-yet-rewritten contract is treated as
      expired.
    - Cancelled is absorbing: every later action raises
      ContractCancelledError.
    - send issues a token for every required party that has none and sets
      the shared ``tokens_expire_at``; resend overwrites one party's token
      (invalidating the old link) and resets the shared horizon.
    - Notifications run AFTER commit and never change the outcome.
    - Every action appends a ContractEvent in the same transaction.

Failure modes:
    - ValidationError: malformed draft or resend of a party that is not
      required.
    - ContractNotFoundError, IllegalTransitionError, ContractCancelledError,
      AlreadySignedError (resend to a party that already signed),
      DuplicateContractNumberError.

Audit relevance:
    ``contract_created``, ``contract_sent``, ``contract_resent``,
    ``contract_cancelled`` and ``contract_status_synced`` are logged with
    the contract id and actor; the ContractEvent trail records the same.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from datetime import datetime
from decimal import Decimal
from typing import TypeVar

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from contract_kernel.domain.clock import Clock, SystemClock
from contract_kernel.domain.dtos import (
    ContractDraft,
    ContractInfo,
    IssuedLink,
    SendResult,
    SyncResult,
)
from contract_kernel.domain.lifecycle import (
    ContractAction,
    ContractStatus,
    SignerType,
    require_action,
)
from contract_kernel.domain.tokens import TokenIssuer
from contract_kernel.exceptions import (
    AlreadySignedError,
    ContractNotFoundError,
    DuplicateContractNumberError,
    ValidationError,
)
from contract_kernel.logging_config import get_logger
from contract_kernel.models.contract import Contract
from contract_kernel.models.contract_event import ContractEventAction
from contract_kernel.services.audit_service import ContractAuditService
from contract_kernel.services.base import operation_context, run_operation
from contract_kernel.services.notification_service import (
    Invitation,
    LoggingNotificationDispatcher,
    NotificationDispatcher,
    NotificationService,
    signing_url,
)
from contract_kernel.services.sequence_service import SequenceService

logger = get_logger("services.contract")

T = TypeVar("T")

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_CURRENCY_RE = re.compile(r"^[A-Z]{3}$")


def load_contract_for_update(session: Session, contract_id: int) -> Contract:
    """Load a contract holding its row lock (no-op lock on SQLite)."""
    contract = session.execute(
        select(Contract)
        .where(Contract.id == contract_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()
    if contract is None:
        raise ContractNotFoundError(contract_id)
    return contract


def _require_text(field: str, value: str | None) -> str:
    if value is None or not str(value).strip():
        raise ValidationError(field, "is required")
    return str(value).strip()


def _validate_draft(draft: ContractDraft) -> None:
    _require_text("title", draft.title)
    if draft.terms is None:
        raise ValidationError("terms", "is required")
    if not draft.required_parties:
        raise ValidationError("parties", "at least one of client or speaker is required")
    for party in draft.required_parties:
        info = draft.client if party is SignerType.CLIENT else draft.speaker
        _require_text(f"{party.value}.name", info.name)
        email = _require_text(f"{party.value}.email", info.email)
        if not _EMAIL_RE.match(email):
            raise ValidationError(f"{party.value}.email", "is not a valid email address")
    if draft.fee_amount is not None and Decimal(draft.fee_amount) < 0:
        raise ValidationError("fee_amount", "must not be negative")
    if not _CURRENCY_RE.match(draft.currency or ""):
        raise ValidationError("currency", "must be a 3-letter ISO 4217 code")
    if draft.contract_number is not None:
        _require_text("contract_number", draft.contract_number)


class ContractLifecycleService:
    """
    Admin-side operations of the contract state machine.

    Usage:
        service = ContractLifecycleService(session, issuer, clock, dispatcher)
        info = service.create(draft, actor="admin")
        result = service.send(info.id, actor="admin")
    """

    def __init__(
        self,
        session: Session,
        token_issuer: TokenIssuer,
        clock: Clock | None = None,
        dispatcher: NotificationDispatcher | None = None,
        auto_commit: bool = True,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._issuer = token_issuer
        self._policy = token_issuer.policy
        self._auto_commit = auto_commit
        self._audit = ContractAuditService(session, self._clock)
        self._sequences = SequenceService(session)
        self._notifications = NotificationService(
            dispatcher or LoggingNotificationDispatcher()
        )

    # ------------------------------------------------------------------
    # Transaction boundary
    # ------------------------------------------------------------------

    def _run(
        self,
        operation: str,
        actor: str,
        contract_id: int | None,
        fn: Callable[[], T],
    ) -> T:
        return run_operation(
            self._session,
            operation,
            fn,
            logger=logger,
            auto_commit=self._auto_commit,
            contract_id=contract_id,
            actor_id=actor,
        )

    def _refresh_status(self, contract: Contract, now: datetime) -> ContractStatus:
        status = contract.effective_status(now)
        contract.status = status.value
        return status

    def _invitation(self, contract: Contract, party: SignerType, token: str) -> Invitation:
        return Invitation(
            contract_id=contract.id,
            contract_number=contract.contract_number,
            title=contract.title,
            party=party,
            recipient_name=contract.party_name(party) or "",
            recipient_email=contract.party_email(party) or "",
            token=token,
            signing_url=signing_url(self._policy.signing_base_url, contract.id, token),
            expires_at=contract.tokens_expire_at,
        )

    def _link(self, invitation: Invitation) -> IssuedLink:
        return IssuedLink(
            party=invitation.party,
            email=invitation.recipient_email,
            token=invitation.token,
            url=invitation.signing_url,
        )

    # ------------------------------------------------------------------
    # create
    # ------------------------------------------------------------------

    def create(self, draft: ContractDraft, actor: str = "system") -> ContractInfo:
        """
        Create a contract in ``draft``.  No tokens exist yet.

        Raises:
            ValidationError: malformed draft.
            DuplicateContractNumberError: supplied number already in use.
        """
        _validate_draft(draft)
        return self._run("contract_create", actor, None, lambda: self._create(draft, actor))

    def _number_taken(self, number: str) -> bool:
        return (
            self._session.execute(
                select(Contract.id).where(Contract.contract_number == number)
            ).first()
            is not None
        )

    def _allocate_number(self, now: datetime) -> str:
        """
        Next free automatic number for today.

        A number supplied by hand may already occupy a slot in the automatic
        range; such slots are skipped (the counter still advances past them).
        """
        while True:
            number = self._sequences.next_contract_number(
                self._policy.contract_number_prefix, now.date()
            )
            if not self._number_taken(number):
                return number
            logger.info("contract_number_skipped", extra={"contract_number": number})

    def _create(self, draft: ContractDraft, actor: str) -> ContractInfo:
        now = self._clock.now()

        if draft.contract_number is not None:
            number = draft.contract_number.strip()
            if self._number_taken(number):
                raise DuplicateContractNumberError(number)
        else:
            number = self._allocate_number(now)

        contract = Contract(
            contract_number=number,
            title=draft.title.strip(),
            terms=draft.terms,
            event_title=draft.event_title,
            event_date=draft.event_date,
            event_location=draft.event_location,
            fee_amount=draft.fee_amount,
            currency=draft.currency,
            status=ContractStatus.DRAFT.value,
            requires_client=draft.client is not None,
            requires_speaker=draft.speaker is not None,
            client_name=draft.client.name.strip() if draft.client else None,
            client_email=draft.client.email.strip() if draft.client else None,
            speaker_name=draft.speaker.name.strip() if draft.speaker else None,
            speaker_email=draft.speaker.email.strip() if draft.speaker else None,
            created_by=actor,
        )
        try:
            with self._session.begin_nested():
                self._session.add(contract)
        except IntegrityError:
            # Concurrent create took the same number after our check
            raise DuplicateContractNumberError(number) from None

        self._audit.record(
            contract.id,
            ContractEventAction.CREATED,
            actor,
            {
                "contract_number": number,
                "required_parties": [p.value for p in contract.required_parties],
            },
            occurred_at=now,
        )
        logger.info(
            "contract_created",
            extra={
                "contract_id": contract.id,
                "contract_number": number,
                "required_parties": [p.value for p in contract.required_parties],
            },
        )
        return ContractInfo.from_model(contract, now)

    # ------------------------------------------------------------------
    # send / resend
    # ------------------------------------------------------------------

    def send(self, contract_id: int, actor: str = "system") -> SendResult:
        """
        Transition ``draft -> sent``.

        Issues a token for every required party that lacks one, stamps
        sent_at and the shared tokens_expire_at, commits, then requests an
        invitation per party.  Delivery failures are reported in the
        result; the contract stays sent.
        """
        with operation_context(contract_id=contract_id, actor_id=actor):
            contract, invitations = self._run(
                "contract_send", actor, contract_id, lambda: self._send(contract_id, actor)
            )
            deliveries = self._notifications.send_invites(invitations)
        return SendResult(
            contract=contract,
            links=tuple(self._link(inv) for inv in invitations),
            deliveries=deliveries,
        )

    def _send(self, contract_id: int, actor: str) -> tuple[ContractInfo, list[Invitation]]:
        now = self._clock.now()
        contract = load_contract_for_update(self._session, contract_id)
        require_action(contract.effective_status(now), ContractAction.SEND, contract_id)

        missing = [p for p in contract.required_parties if not contract.signing_token(p)]
        if missing:
            issued = self._issuer.issue_tokens(missing)
            for party, token in issued.tokens.items():
                contract.set_signing_token(party, token)
        contract.tokens_expire_at = self._issuer.expires_at()
        contract.sent_at = now
        status = self._refresh_status(contract, now)
        self._session.flush()

        self._audit.record(
            contract.id,
            ContractEventAction.SENT,
            actor,
            {
                "parties": [p.value for p in contract.required_parties],
                "tokens_issued": [p.value for p in missing],
                "tokens_expire_at": contract.tokens_expire_at.isoformat(),
            },
            occurred_at=now,
        )
        logger.info(
            "contract_sent",
            extra={
                "contract_id": contract.id,
                "status": status.value,
                "tokens_expire_at": contract.tokens_expire_at,
            },
        )
        invitations = [
            self._invitation(contract, party, contract.signing_token(party))
            for party in contract.required_parties
        ]
        return ContractInfo.from_model(contract, now), invitations

    def resend(
        self,
        contract_id: int,
        party: SignerType | str,
        actor: str = "system",
    ) -> SendResult:
        """
        Re-issue one party's signing link.

        The party's previous token stops working immediately; the shared
        expiration moves to now + ttl, which also revives an expired
        contract.
        """
        party = SignerType.parse(party, field="party")
        with operation_context(contract_id=contract_id, actor_id=actor):
            contract, invitation = self._run(
                "contract_resend",
                actor,
                contract_id,
                lambda: self._resend(contract_id, party, actor),
            )
            deliveries = self._notifications.send_invites([invitation])
        return SendResult(
            contract=contract,
            links=(self._link(invitation),),
            deliveries=deliveries,
        )

    def _resend(
        self, contract_id: int, party: SignerType, actor: str
    ) -> tuple[ContractInfo, Invitation]:
        now = self._clock.now()
        contract = load_contract_for_update(self._session, contract_id)
        require_action(contract.effective_status(now), ContractAction.RESEND, contract_id)

        if not contract.is_required(party):
            raise ValidationError("party", f"{party.value} is not a party to this contract")
        if contract.signed_at(party) is not None:
            raise AlreadySignedError(contract_id, party.value)

        token = self._issuer.issue_token(party)
        contract.set_signing_token(party, token)
        contract.tokens_expire_at = self._issuer.expires_at()
        status = self._refresh_status(contract, now)
        self._session.flush()

        self._audit.record(
            contract.id,
            ContractEventAction.RESENT,
            actor,
            {"party": party.value, "tokens_expire_at": contract.tokens_expire_at.isoformat()},
            occurred_at=now,
        )
        logger.info(
            "contract_resent",
            extra={"contract_id": contract.id, "party": party.value, "status": status.value},
        )
        return ContractInfo.from_model(contract, now), self._invitation(contract, party, token)

    # ------------------------------------------------------------------
    # cancel
    # ------------------------------------------------------------------

    def cancel(
        self,
        contract_id: int,
        actor: str = "system",
        reason: str | None = None,
    ) -> ContractInfo:
        """
        Cancel a non-terminal contract.  Cancelled is absorbing.

        Raises:
            ContractCancelledError: already cancelled.
            IllegalTransitionError: already fully executed.
        """
        return self._run(
            "contract_cancel",
            actor,
            contract_id,
            lambda: self._cancel(contract_id, actor, reason),
        )

    def _cancel(self, contract_id: int, actor: str, reason: str | None) -> ContractInfo:
        now = self._clock.now()
        contract = load_contract_for_update(self._session, contract_id)
        previous = contract.effective_status(now)
        require_action(previous, ContractAction.CANCEL, contract_id)

        contract.cancelled_at = now
        contract.cancelled_by = actor
        contract.cancellation_reason = reason
        self._refresh_status(contract, now)
        self._session.flush()

        self._audit.record(
            contract.id,
            ContractEventAction.CANCELLED,
            actor,
            {"previous_status": previous.value, "reason": reason},
            occurred_at=now,
        )
        logger.info(
            "contract_cancelled",
            extra={"contract_id": contract.id, "previous_status": previous.value},
        )
        return ContractInfo.from_model(contract, now)

    # ------------------------------------------------------------------
    # status cache maintenance
    # ------------------------------------------------------------------

    def sync_statuses(self, actor: str = "system") -> SyncResult:
        """
        Rewrite the cached status column wherever it lags the derived status.

        Never required for correctness; every read path derives status.
        """
        return self._run("contract_status_sync", actor, None, lambda: self._sync(actor))

    def _sync(self, actor: str) -> SyncResult:
        now = self._clock.now()
        open_statuses = [
            s.value
            for s in ContractStatus
            if s not in (ContractStatus.CANCELLED, ContractStatus.FULLY_EXECUTED)
        ]
        contracts = self._session.execute(
            select(Contract)
            .where(Contract.status.in_(open_statuses))
            .order_by(Contract.id)
            .with_for_update()
        ).scalars().all()

        updated = []
        for contract in contracts:
            stored = ContractStatus(contract.status)
            effective = contract.effective_status(now)
            if effective is stored:
                continue
            contract.status = effective.value
            self._audit.record(
                contract.id,
                ContractEventAction.STATUS_SYNCED,
                actor,
                {"from": stored.value, "to": effective.value},
                occurred_at=now,
            )
            updated.append((contract.id, stored, effective))

        self._session.flush()
        logger.info(
            "contract_status_synced",
            extra={"examined": len(contracts), "updated": len(updated)},
        )
        return SyncResult(examined=len(contracts), updated=tuple(updated))
