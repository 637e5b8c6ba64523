"""
NotificationService -- best-effort invitation and confirmation fan-out.

Responsibility:
    Hands signing invitations and confirmations to a NotificationDispatcher
    (the external email collaborator) and turns every outcome, including
    exceptions, into a DeliveryResult.

Architecture position:
    Kernel > Services.  Called by ContractLifecycleService and
    SigningGateway only AFTER their transaction has committed.

Invariants enforced:
    - A dispatcher failure NEVER propagates: it is logged as
      ``notification_failed`` with contract id and party and reported as
      FAILED.  Sign and send results do not depend on delivery.
    - Tokens are never logged; the logging dispatcher records the signing
      path and a token fingerprint only.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime

from contract_kernel.domain.dtos import DeliveryResult, DeliveryStatus
from contract_kernel.domain.lifecycle import SignerType
from contract_kernel.domain.tokens import token_fingerprint
from contract_kernel.exceptions import NotificationDeliveryError
from contract_kernel.logging_config import get_logger

logger = get_logger("services.notification")

INVITE = "invite"
CONFIRMATION = "confirmation"


@dataclass(frozen=True)
class Invitation:
    """A signing invitation for one party.  Carries the token: do not log."""

    contract_id: int
    contract_number: str
    title: str
    party: SignerType
    recipient_name: str
    recipient_email: str
    token: str
    signing_url: str
    expires_at: datetime | None

    def __repr__(self) -> str:
        return (
            f"Invitation(contract_id={self.contract_id}, party={self.party.value}, "
            f"recipient_email={self.recipient_email!r})"
        )


@dataclass(frozen=True)
class Confirmation:
    """
    Signature confirmation for one party.

    ``fully_executed`` selects between the "Fully Executed" message sent to
    every party once and the "Signature Received" acknowledgement sent to a
    signer while other parties are still outstanding.
    """

    contract_id: int
    contract_number: str
    title: str
    party: SignerType
    recipient_name: str
    recipient_email: str
    fully_executed: bool

    @property
    def subject(self) -> str:
        label = "Fully Executed" if self.fully_executed else "Signature Received"
        return f"{label}: {self.title} ({self.contract_number})"


class NotificationDispatcher(ABC):
    """
    External email collaborator.

    Implementations return SENT or FAILED, or raise; the NotificationService
    treats an exception exactly like FAILED.
    """

    @abstractmethod
    def send_invite(self, invitation: Invitation) -> DeliveryStatus:
        ...

    @abstractmethod
    def send_confirmation(self, confirmation: Confirmation) -> DeliveryStatus:
        ...


def signing_path(contract_id: int) -> str:
    return f"/contracts/{contract_id}/signing"


def signing_url(base_url: str, contract_id: int, token: str) -> str:
    return f"{base_url.rstrip('/')}{signing_path(contract_id)}?token={token}"


class LoggingNotificationDispatcher(NotificationDispatcher):
    """
    Default dispatcher: records each message as a structured log line.

    Stands in for an SMTP/API mailer.  When ``enabled`` is False every send
    fails with NotificationDeliveryError, which exercises the same
    best-effort path a real outage would.
    """

    def __init__(
        self,
        enabled: bool = True,
        sender_name: str = "Contracts",
        sender_address: str = "contracts@localhost",
    ):
        self._enabled = enabled
        self._sender_name = sender_name
        self._sender_address = sender_address

    def _require_enabled(self, contract_id: int, party: SignerType, kind: str) -> None:
        if not self._enabled:
            raise NotificationDeliveryError(
                contract_id, party.value, kind, "notifications are disabled"
            )

    def send_invite(self, invitation: Invitation) -> DeliveryStatus:
        self._require_enabled(invitation.contract_id, invitation.party, INVITE)
        logger.info(
            "notification_invite_dispatched",
            extra={
                "contract_id": invitation.contract_id,
                "contract_number": invitation.contract_number,
                "party": invitation.party.value,
                "recipient": invitation.recipient_email,
                "sender": self._sender_address,
                "signing_path": signing_path(invitation.contract_id),
                "token_fingerprint": token_fingerprint(invitation.token),
                "expires_at": invitation.expires_at,
            },
        )
        return DeliveryStatus.SENT

    def send_confirmation(self, confirmation: Confirmation) -> DeliveryStatus:
        self._require_enabled(confirmation.contract_id, confirmation.party, CONFIRMATION)
        logger.info(
            "notification_confirmation_dispatched",
            extra={
                "contract_id": confirmation.contract_id,
                "contract_number": confirmation.contract_number,
                "party": confirmation.party.value,
                "recipient": confirmation.recipient_email,
                "sender": self._sender_address,
                "subject": confirmation.subject,
            },
        )
        return DeliveryStatus.SENT


class NotificationService:
    """Fan-out over a dispatcher that never raises."""

    def __init__(self, dispatcher: NotificationDispatcher):
        self._dispatcher = dispatcher

    @staticmethod
    def _outcome(reply) -> tuple[DeliveryStatus, str | None]:
        try:
            status = DeliveryStatus(reply)
        except ValueError:
            return DeliveryStatus.FAILED, f"unrecognised dispatcher result {reply!r}"
        if status is DeliveryStatus.FAILED:
            return status, "dispatcher reported failure"
        return status, None

    def _deliver(self, kind: str, message: Invitation | Confirmation, send) -> DeliveryResult:
        error_type = None
        try:
            status, error = self._outcome(send(message))
        except Exception as exc:
            status, error, error_type = DeliveryStatus.FAILED, str(exc), type(exc).__name__

        if status is DeliveryStatus.FAILED:
            logger.warning(
                "notification_failed",
                extra={
                    "contract_id": message.contract_id,
                    "party": message.party.value,
                    "kind": kind,
                    "error": error,
                    "error_type": error_type,
                },
            )
        return DeliveryResult(
            contract_id=message.contract_id,
            party=message.party,
            kind=kind,
            status=status,
            recipient=message.recipient_email,
            error=error,
        )

    def send_invites(self, invitations: list[Invitation]) -> tuple[DeliveryResult, ...]:
        return tuple(
            self._deliver(INVITE, inv, self._dispatcher.send_invite) for inv in invitations
        )

    def send_confirmations(self, confirmations: list[Confirmation]) -> tuple[DeliveryResult, ...]:
        return tuple(
            self._deliver(CONFIRMATION, conf, self._dispatcher.send_confirmation)
            for conf in confirmations
        )
