"""Shared builders for tests (imported by conftest and test modules)."""

from contract_kernel.domain.dtos import (
    ContractDraft,
    DeliveryStatus,
    PartyDraft,
    SignatureRequest,
)
from contract_kernel.domain.lifecycle import SignerType
from contract_kernel.services.notification_service import NotificationDispatcher

TEST_ACTOR = "admin@test"
SIGNING_BASE_URL = "https://sign.example.com"
ADMIN_KEY = "test-admin-key-0123456789"
ADMIN_HEADERS = {"X-Admin-Key": ADMIN_KEY}


class RecordingDispatcher(NotificationDispatcher):
    """Records every message; can be told to fail or raise."""

    def __init__(self):
        self.invitations = []
        self.confirmations = []
        self.fail = False
        self.raise_error: Exception | None = None

    def _outcome(self) -> DeliveryStatus:
        if self.raise_error is not None:
            raise self.raise_error
        return DeliveryStatus.FAILED if self.fail else DeliveryStatus.SENT

    def send_invite(self, invitation):
        self.invitations.append(invitation)
        return self._outcome()

    def send_confirmation(self, confirmation):
        self.confirmations.append(confirmation)
        return self._outcome()


def make_draft(
    client: bool | PartyDraft | None = True,
    speaker: bool | PartyDraft | None = True,
    **overrides,
) -> ContractDraft:
    if client is True:
        client = PartyDraft("Acme Events", "events@acme.test")
    if speaker is True:
        speaker = PartyDraft("Dana Speaker", "dana@speakers.test")
    values = dict(
        title="Keynote Speaking Agreement",
        terms="The speaker delivers one 45 minute keynote.",
        client=client or None,
        speaker=speaker or None,
        event_title="Acme Summit",
        event_location="Lisbon",
    )
    values.update(overrides)
    return ContractDraft(**values)


def sign_request(
    contract_id: int,
    token: str,
    party: SignerType,
    name: str = "Signer",
    ip_address: str | None = "203.0.113.7",
    user_agent: str | None = "pytest-agent/1.0",
    signer_title: str | None = None,
    signature_method: str | None = None,
    signature_data: str | None = None,
) -> SignatureRequest:
    return SignatureRequest(
        contract_id=contract_id,
        token=token,
        signer_type=party.value,
        signer_name=name,
        signer_title=signer_title,
        ip_address=ip_address,
        user_agent=user_agent,
        signature_method=signature_method,
        signature_data=signature_data,
    )
