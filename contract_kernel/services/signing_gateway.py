"""
SigningGateway -- the signer-facing side of the contract state machine.

Responsibility:
    Authorizes a signer by bearer token, shows the signing context, and
    performs the atomic "append ledger entry + recompute status" write.

Architecture position:
    Kernel > Services -- top-level operation.  Never checks admin identity;
    the party token is the only credential.

Invariants enforced:
    - Every rejection happens BEFORE any write.  Check order for ``sign``:
      request fields, contract exists, not cancelled, not expired, token
      matches the stored token for the claimed signer type, party has not
      signed, lifecycle allows SIGN.
    - Token comparison is constant-time (``tokens_match``).
    - One transaction: ledger insert, party signed_at, status cache,
      fully_executed_at and the audit events commit together or not at all.
    - Status after signing is derived from the LEDGER read inside the
      transaction, never from a cached flag, so two parties signing
      concurrently always end in a deterministic status.
    - ``fully_executed_at`` is stamped by exactly one sign call; only that
      call reports ``is_fully_executed=True`` and fires the "Fully
      Executed" confirmation.

Failure modes:
    - ValidationError: missing signer name, unknown signer type or capture
      method, no token, or a digital_pad signature without its drawing.
    - ContractNotFoundError: unknown contract id.
    - SigningLinkNotFoundError: (signing context) token matches no party.
    - ContractCancelledError: contract cancelled.
    - SigningLinkExpiredError: now >= tokens_expire_at and not fully executed.
    - InvalidTokenError: token does not match the claimed signer's token.
    - AlreadySignedError: ledger entry already exists (including a lost race
      on ``uq_signature_contract_signer``).
    - IllegalTransitionError: contract not in a signable status.

Audit relevance:
    ``signature_recorded`` and ``contract_fully_executed`` are logged, and
    SIGNED / FULLY_EXECUTED ContractEvents are appended.  Rejections log
    ``signing_rejected`` with the error code; tokens never appear, only
    their fingerprint.
"""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from contract_kernel.domain.clock import Clock, SystemClock
from contract_kernel.domain.dtos import SignatureRequest, SigningContext, SignResult
from contract_kernel.domain.lifecycle import (
    SIGNABLE_STATUSES,
    ContractAction,
    ContractStatus,
    SignatureMethod,
    SignerType,
    derive_status,
    require_action,
)
from contract_kernel.domain.tokens import token_fingerprint, tokens_match
from contract_kernel.exceptions import (
    AlreadySignedError,
    ContractCancelledError,
    ContractKernelError,
    ContractNotFoundError,
    InvalidTokenError,
    SigningLinkExpiredError,
    SigningLinkNotFoundError,
    ValidationError,
)
from contract_kernel.logging_config import get_logger
from contract_kernel.models.contract import Contract
from contract_kernel.models.contract_event import ContractEventAction
from contract_kernel.services.audit_service import ContractAuditService
from contract_kernel.services.base import operation_context, run_operation
from contract_kernel.services.content import ContentRenderer, StoredTermsRenderer
from contract_kernel.services.contract_service import load_contract_for_update
from contract_kernel.services.ledger_service import SignatureLedger
from contract_kernel.services.notification_service import (
    Confirmation,
    LoggingNotificationDispatcher,
    NotificationDispatcher,
    NotificationService,
)

logger = get_logger("services.signing")


class SigningGateway:
    """
    Token-authorized signing.

    Usage:
        gateway = SigningGateway(session, clock, dispatcher)
        context = gateway.signing_context(contract_id, token)
        result = gateway.sign(SignatureRequest(...))
        if result.is_fully_executed:
            ...
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        dispatcher: NotificationDispatcher | None = None,
        renderer: ContentRenderer | None = None,
        auto_commit: bool = True,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._auto_commit = auto_commit
        self._renderer = renderer or StoredTermsRenderer(session)
        self._ledger = SignatureLedger(session)
        self._audit = ContractAuditService(session, self._clock)
        self._notifications = NotificationService(
            dispatcher or LoggingNotificationDispatcher()
        )

    def _reject(self, exc: ContractKernelError, contract_id: int, token: str | None) -> None:
        logger.info(
            "signing_rejected",
            extra={
                "contract_id": contract_id,
                "error_code": exc.code,
                "token_fingerprint": token_fingerprint(token) if token else None,
            },
        )
        raise exc

    # ------------------------------------------------------------------
    # signing context
    # ------------------------------------------------------------------

    def signing_context(self, contract_id: int, token: str) -> SigningContext:
        """
        Data needed to render a signing page for the token's party.

        The token identifies the party: it is compared (constant-time)
        against every party token on the contract.
        """
        return run_operation(
            self._session,
            "signing_context",
            lambda: self._signing_context(contract_id, token),
            logger=logger,
            auto_commit=self._auto_commit,
            contract_id=contract_id,
        )

    def _signing_context(self, contract_id: int, token: str) -> SigningContext:
        now = self._clock.now()
        contract = self._session.execute(
            select(Contract)
            .where(Contract.id == contract_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if contract is None:
            self._reject(ContractNotFoundError(contract_id), contract_id, token)

        party = None
        for candidate in contract.required_parties:
            if tokens_match(token, contract.signing_token(candidate)):
                party = candidate
        if party is None:
            self._reject(SigningLinkNotFoundError(contract_id), contract_id, token)

        status = contract.effective_status(now)
        if status is ContractStatus.CANCELLED:
            self._reject(
                ContractCancelledError(contract_id, ContractAction.SIGN.value),
                contract_id,
                token,
            )
        if status is ContractStatus.EXPIRED:
            self._reject(
                SigningLinkExpiredError(contract_id, contract.tokens_expire_at),
                contract_id,
                token,
            )

        signed = {p: contract.signed_at(p) is not None for p in contract.required_parties}
        return SigningContext(
            contract_id=contract.id,
            contract_number=contract.contract_number,
            title=contract.title,
            terms=self._renderer.render(contract.id),
            signer_type=party,
            signer_name=contract.party_name(party) or "",
            signer_email=contract.party_email(party) or "",
            status=status,
            required_parties=contract.required_parties,
            signed=signed,
            can_sign=status in SIGNABLE_STATUSES and not signed[party],
            event_title=contract.event_title,
            event_date=contract.event_date,
            event_location=contract.event_location,
            fee_amount=contract.fee_amount,
            currency=contract.currency,
            tokens_expire_at=contract.tokens_expire_at,
        )

    # ------------------------------------------------------------------
    # sign
    # ------------------------------------------------------------------

    def sign(self, request: SignatureRequest) -> SignResult:
        """
        Record one party's signature and recompute the contract status.

        Confirmations are requested after commit; their failure is reported
        in ``SignResult.confirmations`` and never undoes the signature.
        """
        signer_type = SignerType.parse(request.signer_type)
        if not request.token:
            raise ValidationError("token", "is required")
        signer_name = (request.signer_name or "").strip()
        if not signer_name:
            raise ValidationError("signer_name", "is required")
        method = SignatureMethod.parse(request.signature_method)
        if method is SignatureMethod.DIGITAL_PAD and not request.signature_data:
            raise ValidationError("signature_data", "is required for digital_pad signatures")

        with operation_context(contract_id=request.contract_id, signer_type=signer_type.value):
            result, confirmations = run_operation(
                self._session,
                "contract_sign",
                lambda: self._sign(request, signer_type, signer_name, method),
                logger=logger,
                auto_commit=self._auto_commit,
            )
            deliveries = self._notifications.send_confirmations(confirmations)
        return SignResult(
            signature_id=result.signature_id,
            contract_id=result.contract_id,
            signer_type=result.signer_type,
            status=result.status,
            is_fully_executed=result.is_fully_executed,
            signed_at=result.signed_at,
            confirmations=deliveries,
        )

    def _sign(
        self,
        request: SignatureRequest,
        signer_type: SignerType,
        signer_name: str,
        method: SignatureMethod,
    ) -> tuple[SignResult, list[Confirmation]]:
        now = self._clock.now()
        contract_id = request.contract_id
        token = request.token

        try:
            contract = load_contract_for_update(self._session, contract_id)
        except ContractNotFoundError as exc:
            self._reject(exc, contract_id, token)

        status = contract.effective_status(now)
        if status is ContractStatus.CANCELLED:
            self._reject(
                ContractCancelledError(contract_id, ContractAction.SIGN.value),
                contract_id,
                token,
            )
        if status is ContractStatus.EXPIRED:
            self._reject(
                SigningLinkExpiredError(contract_id, contract.tokens_expire_at),
                contract_id,
                token,
            )
        if not contract.is_required(signer_type) or not tokens_match(
            token, contract.signing_token(signer_type)
        ):
            self._reject(InvalidTokenError(contract_id, signer_type.value), contract_id, token)
        if contract.signed_at(signer_type) is not None or self._ledger.has_signed(
            contract_id, signer_type
        ):
            self._reject(AlreadySignedError(contract_id, signer_type.value), contract_id, token)
        require_action(status, ContractAction.SIGN, contract_id)

        signature = self._ledger.record(
            contract_id=contract_id,
            signer_type=signer_type,
            signer_name=signer_name,
            signer_email=contract.party_email(signer_type) or "",
            signer_title=request.signer_title,
            ip_address=request.ip_address,
            user_agent=request.user_agent,
            signature_method=method,
            signature_data=request.signature_data,
            signed_at=now,
        )

        # Mirror the ledger onto the contract row; the ledger is authoritative
        ledger_signed = self._ledger.signed_at_by_party(contract_id)
        for party, signed_at in ledger_signed.items():
            if contract.signed_at(party) is None:
                contract.set_signed_at(party, signed_at)

        new_status = derive_status(
            required_parties=contract.required_parties,
            signed_at=ledger_signed,
            tokens_expire_at=contract.tokens_expire_at,
            now=now,
            sent_at=contract.sent_at,
            cancelled_at=contract.cancelled_at,
        )
        became_fully_executed = (
            new_status is ContractStatus.FULLY_EXECUTED and contract.fully_executed_at is None
        )
        if became_fully_executed:
            contract.fully_executed_at = now
        contract.status = new_status.value
        self._session.flush()

        self._audit.record(
            contract_id,
            ContractEventAction.SIGNED,
            signer_type.value,
            {
                "signature_id": signature.id,
                "signer_name": signer_name,
                "ip_address": request.ip_address,
                "signature_method": method.value,
                "status": new_status.value,
            },
            occurred_at=now,
        )
        if became_fully_executed:
            self._audit.record(
                contract_id,
                ContractEventAction.FULLY_EXECUTED,
                signer_type.value,
                {"parties": [p.value for p in contract.required_parties]},
                occurred_at=now,
            )
            logger.info(
                "contract_fully_executed",
                extra={"contract_id": contract_id, "fully_executed_at": now},
            )

        if became_fully_executed:
            recipients = list(contract.required_parties)
        else:
            recipients = [signer_type]
        confirmations = [
            Confirmation(
                contract_id=contract.id,
                contract_number=contract.contract_number,
                title=contract.title,
                party=party,
                recipient_name=contract.party_name(party) or "",
                recipient_email=contract.party_email(party) or "",
                fully_executed=became_fully_executed,
            )
            for party in recipients
        ]

        result = SignResult(
            signature_id=signature.id,
            contract_id=contract_id,
            signer_type=signer_type,
            status=new_status,
            is_fully_executed=became_fully_executed,
            signed_at=signature.signed_at,
        )
        return result, confirmations
