"""
NotificationService and the logging dispatcher: best-effort delivery,
failure reporting, and token hygiene in log output.
"""

import pytest

from contract_kernel.domain.dtos import DeliveryStatus
from contract_kernel.domain.lifecycle import SignerType
from contract_kernel.domain.tokens import generate_token, token_fingerprint
from contract_kernel.services.notification_service import (
    Confirmation,
    Invitation,
    LoggingNotificationDispatcher,
    NotificationService,
    signing_url,
)

from tests.helpers import RecordingDispatcher


def _invitation(token: str, party: SignerType = SignerType.CLIENT) -> Invitation:
    return Invitation(
        contract_id=7,
        contract_number="CTR-20240101-00007",
        title="Keynote Speaking Agreement",
        party=party,
        recipient_name="Acme Events",
        recipient_email="events@acme.test",
        token=token,
        signing_url=signing_url("https://sign.example.com/", 7, token),
        expires_at=None,
    )


def _confirmation(fully_executed: bool) -> Confirmation:
    return Confirmation(
        contract_id=7,
        contract_number="CTR-20240101-00007",
        title="Keynote Speaking Agreement",
        party=SignerType.SPEAKER,
        recipient_name="Dana Speaker",
        recipient_email="dana@speakers.test",
        fully_executed=fully_executed,
    )


def test_signing_url_shape():
    assert signing_url("https://sign.example.com/", 7, "abc") == (
        "https://sign.example.com/contracts/7/signing?token=abc"
    )


def test_confirmation_subjects():
    assert _confirmation(True).subject.startswith("Fully Executed:")
    assert _confirmation(False).subject.startswith("Signature Received:")


def test_invitation_repr_hides_token():
    token = generate_token()
    assert token not in repr(_invitation(token))


class TestNotificationService:
    def test_successful_delivery(self):
        dispatcher = RecordingDispatcher()
        results = NotificationService(dispatcher).send_invites([_invitation(generate_token())])
        assert [r.status for r in results] == [DeliveryStatus.SENT]
        assert results[0].recipient == "events@acme.test"
        assert results[0].kind == "invite"

    def test_exception_becomes_failed(self, captured_logs):
        dispatcher = RecordingDispatcher()
        dispatcher.raise_error = ConnectionError("smtp down")

        results = NotificationService(dispatcher).send_confirmations([_confirmation(True)])

        assert results[0].status is DeliveryStatus.FAILED
        assert results[0].error == "smtp down"
        failure = [r for r in captured_logs() if r["message"] == "notification_failed"][0]
        assert failure["contract_id"] == 7
        assert failure["party"] == "speaker"
        assert failure["error_type"] == "ConnectionError"

    def test_reported_failure(self):
        dispatcher = RecordingDispatcher()
        dispatcher.fail = True
        results = NotificationService(dispatcher).send_confirmations([_confirmation(False)])
        assert not results[0].ok

    def test_one_failure_does_not_stop_the_rest(self):
        class FlakyDispatcher(RecordingDispatcher):
            def send_invite(self, invitation):
                if invitation.party is SignerType.CLIENT:
                    raise RuntimeError("bounced")
                return super().send_invite(invitation)

        dispatcher = FlakyDispatcher()
        results = NotificationService(dispatcher).send_invites(
            [_invitation(generate_token()), _invitation(generate_token(), SignerType.SPEAKER)]
        )
        assert [r.status for r in results] == [DeliveryStatus.FAILED, DeliveryStatus.SENT]
        assert len(dispatcher.invitations) == 1


class TestLoggingDispatcher:
    def test_invite_logs_fingerprint_only(self, captured_logs):
        token = generate_token()
        status = LoggingNotificationDispatcher().send_invite(_invitation(token))

        assert status is DeliveryStatus.SENT
        records = captured_logs()
        dispatched = [r for r in records if r["message"] == "notification_invite_dispatched"][0]
        assert dispatched["token_fingerprint"] == token_fingerprint(token)
        assert dispatched["signing_path"] == "/contracts/7/signing"
        assert token not in str(records)

    def test_disabled_dispatcher_fails_every_send(self):
        service = NotificationService(LoggingNotificationDispatcher(enabled=False))
        results = service.send_invites([_invitation(generate_token())])
        results += service.send_confirmations([_confirmation(True)])
        assert all(r.status is DeliveryStatus.FAILED for r in results)
        assert "disabled" in results[0].error


class TestDispatcherReplies:
    @pytest.mark.parametrize("reply", [None, "queued", 0])
    def test_unrecognised_reply_is_failed(self, reply, captured_logs):
        dispatcher = RecordingDispatcher()
        dispatcher.send_invite = lambda invitation: reply

        [result] = NotificationService(dispatcher).send_invites([_invitation(generate_token())])

        assert result.status is DeliveryStatus.FAILED
        assert repr(reply) in result.error
        failure = [r for r in captured_logs() if r["message"] == "notification_failed"][0]
        assert failure["kind"] == "invite"

    def test_plain_string_reply_is_accepted(self):
        dispatcher = RecordingDispatcher()
        dispatcher.send_invite = lambda invitation: "sent"

        [result] = NotificationService(dispatcher).send_invites([_invitation(generate_token())])

        assert result.ok
