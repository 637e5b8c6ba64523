"""
ContractLifecycleService: create, send, resend, cancel, sync_statuses.

Every operation commits its own transaction; failures leave nothing behind.
"""

from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from contract_kernel.domain.dtos import DeliveryStatus, PartyDraft
from contract_kernel.domain.lifecycle import ContractStatus, SignerType
from contract_kernel.domain.tokens import DEFAULT_TOKEN_TTL, MIN_TOKEN_LENGTH
from contract_kernel.exceptions import (
    AlreadySignedError,
    ContractCancelledError,
    ContractNotFoundError,
    DuplicateContractNumberError,
    IllegalTransitionError,
    InvalidTokenError,
    ValidationError,
)
from contract_kernel.models.contract import Contract
from contract_kernel.models.contract_event import ContractEvent, ContractEventAction
from contract_kernel.selectors.contract_selector import ContractSelector
from contract_kernel.services.contract_service import ContractLifecycleService

from tests.helpers import SIGNING_BASE_URL, TEST_ACTOR, make_draft, sign_request


def _events(session, contract_id):
    return [
        e.action
        for e in session.execute(
            select(ContractEvent)
            .where(ContractEvent.contract_id == contract_id)
            .order_by(ContractEvent.id)
        ).scalars()
    ]


class TestCreate:
    def test_creates_draft_without_tokens(self, lifecycle, session):
        info = lifecycle.create(make_draft(), actor=TEST_ACTOR)

        assert info.status is ContractStatus.DRAFT
        assert info.required_parties == (SignerType.CLIENT, SignerType.SPEAKER)
        assert info.created_by == TEST_ACTOR
        row = session.get(Contract, info.id)
        assert row.client_signing_token is None
        assert row.speaker_signing_token is None
        assert row.tokens_expire_at is None
        assert _events(session, info.id) == [ContractEventAction.CREATED.value]

    def test_allocates_daily_contract_numbers(self, lifecycle, deterministic_clock):
        first = lifecycle.create(make_draft(), actor=TEST_ACTOR)
        second = lifecycle.create(make_draft(), actor=TEST_ACTOR)
        deterministic_clock.advance_days(1)
        next_day = lifecycle.create(make_draft(), actor=TEST_ACTOR)

        assert first.contract_number == "CTR-20240101-00001"
        assert second.contract_number == "CTR-20240101-00002"
        assert next_day.contract_number == "CTR-20240102-00001"

    def test_supplied_contract_number(self, lifecycle):
        info = lifecycle.create(make_draft(contract_number="SPK-7"), actor=TEST_ACTOR)
        assert info.contract_number == "SPK-7"

    def test_duplicate_contract_number_rejected(self, lifecycle, session):
        lifecycle.create(make_draft(contract_number="SPK-7"), actor=TEST_ACTOR)
        with pytest.raises(DuplicateContractNumberError):
            lifecycle.create(make_draft(contract_number="SPK-7"), actor=TEST_ACTOR)
        assert session.execute(select(func.count(Contract.id))).scalar() == 1

    def test_automatic_numbers_skip_a_hand_picked_number(self, lifecycle, captured_logs):
        lifecycle.create(make_draft(contract_number="CTR-20240101-00002"), actor=TEST_ACTOR)

        numbers = [lifecycle.create(make_draft(), actor=TEST_ACTOR).contract_number for _ in range(3)]

        assert numbers == ["CTR-20240101-00001", "CTR-20240101-00003", "CTR-20240101-00004"]
        skipped = [r for r in captured_logs() if r["message"] == "contract_number_skipped"]
        assert [r["contract_number"] for r in skipped] == ["CTR-20240101-00002"]

    def test_hand_picked_first_slot_does_not_block_the_day(self, lifecycle):
        lifecycle.create(make_draft(contract_number="CTR-20240101-00001"), actor=TEST_ACTOR)

        info = lifecycle.create(make_draft(), actor=TEST_ACTOR)

        assert info.contract_number == "CTR-20240101-00002"

    def test_duplicate_leaves_caller_transaction_usable(self, session, token_issuer, deterministic_clock, dispatcher):
        service = ContractLifecycleService(
            session, token_issuer, deterministic_clock, dispatcher, auto_commit=False
        )
        kept = service.create(make_draft(contract_number="SPK-1"), actor=TEST_ACTOR)
        with pytest.raises(DuplicateContractNumberError):
            service.create(make_draft(contract_number="SPK-1"), actor=TEST_ACTOR)
        session.commit()

        assert session.get(Contract, kept.id) is not None

    def test_unilateral(self, lifecycle):
        info = lifecycle.create(make_draft(speaker=False), actor=TEST_ACTOR)
        assert info.required_parties == (SignerType.CLIENT,)

    @pytest.mark.parametrize(
        "overrides, field",
        [
            ({"title": "  "}, "title"),
            ({"client": None, "speaker": None}, "parties"),
            ({"client": PartyDraft("", "a@b.test")}, "client.name"),
            ({"speaker": PartyDraft("Dana", "not-an-email")}, "speaker.email"),
            ({"fee_amount": Decimal("-1")}, "fee_amount"),
            ({"currency": "usd"}, "currency"),
        ],
    )
    def test_validation(self, lifecycle, session, overrides, field):
        with pytest.raises(ValidationError) as exc_info:
            lifecycle.create(make_draft(**overrides), actor=TEST_ACTOR)
        assert exc_info.value.field == field
        assert session.execute(select(func.count(Contract.id))).scalar() == 0


class TestSend:
    def test_issues_tokens_and_transitions_to_sent(
        self, lifecycle, create_contract, session, deterministic_clock, dispatcher
    ):
        info = create_contract()
        result = lifecycle.send(info.id, actor=TEST_ACTOR)

        assert result.contract.status is ContractStatus.SENT
        assert result.contract.sent_at == deterministic_clock.now()
        assert result.contract.tokens_expire_at == deterministic_clock.now() + DEFAULT_TOKEN_TTL

        row = session.get(Contract, info.id)
        assert len(row.client_signing_token) >= MIN_TOKEN_LENGTH
        assert len(row.speaker_signing_token) >= MIN_TOKEN_LENGTH
        assert row.client_signing_token != row.speaker_signing_token
        assert row.status == ContractStatus.SENT.value

        links = {link.party: link for link in result.links}
        assert links[SignerType.CLIENT].token == row.client_signing_token
        assert links[SignerType.CLIENT].url == (
            f"{SIGNING_BASE_URL}/contracts/{info.id}/signing?token={row.client_signing_token}"
        )
        assert [inv.party for inv in dispatcher.invitations] == [SignerType.CLIENT, SignerType.SPEAKER]
        assert all(d.status is DeliveryStatus.SENT for d in result.deliveries)
        assert _events(session, info.id)[-1] == ContractEventAction.SENT.value

    def test_unilateral_issues_one_token(self, lifecycle, create_contract, session):
        info = create_contract(speaker=False)
        result = lifecycle.send(info.id, actor=TEST_ACTOR)

        assert [link.party for link in result.links] == [SignerType.CLIENT]
        assert session.get(Contract, info.id).speaker_signing_token is None

    def test_only_legal_from_draft(self, lifecycle, send_contract):
        result, _ = send_contract()
        with pytest.raises(IllegalTransitionError):
            lifecycle.send(result.contract.id, actor=TEST_ACTOR)

    def test_unknown_contract(self, lifecycle):
        with pytest.raises(ContractNotFoundError):
            lifecycle.send(999, actor=TEST_ACTOR)

    def test_notification_failure_does_not_roll_back(
        self, lifecycle, create_contract, session, dispatcher
    ):
        dispatcher.raise_error = RuntimeError("smtp down")
        info = create_contract()

        result = lifecycle.send(info.id, actor=TEST_ACTOR)

        assert result.contract.status is ContractStatus.SENT
        assert all(d.status is DeliveryStatus.FAILED for d in result.deliveries)
        assert all("smtp down" in d.error for d in result.deliveries)
        session.expire_all()
        assert session.get(Contract, info.id).status == ContractStatus.SENT.value

    def test_invite_failures_log_under_the_send_correlation_id(
        self, lifecycle, create_contract, dispatcher, captured_logs
    ):
        dispatcher.fail = True
        info = create_contract()

        lifecycle.send(info.id, actor=TEST_ACTOR)

        records = captured_logs()
        [completed] = [r for r in records if r["message"] == "contract_send_completed"]
        failures = [r for r in records if r["message"] == "notification_failed"]
        assert failures
        assert {r["correlation_id"] for r in failures} == {completed["correlation_id"]}
        assert {r["actor_id"] for r in failures} == {TEST_ACTOR}

    def test_logs_never_contain_tokens(self, lifecycle, create_contract, captured_logs):
        info = create_contract()
        result = lifecycle.send(info.id, actor=TEST_ACTOR)

        raw = "\n".join(str(record) for record in captured_logs())
        for link in result.links:
            assert link.token not in raw
        assert any(r["message"] == "contract_sent" for r in captured_logs())


class TestResend:
    def test_rotates_token_and_resets_expiry(
        self, lifecycle, gateway, send_contract, deterministic_clock, session, dispatcher
    ):
        result, tokens = send_contract()
        contract_id = result.contract.id
        deterministic_clock.advance_days(10)

        resent = lifecycle.resend(contract_id, SignerType.SPEAKER, actor=TEST_ACTOR)

        new_token = resent.links[0].token
        assert new_token != tokens[SignerType.SPEAKER]
        assert resent.contract.tokens_expire_at == deterministic_clock.now() + DEFAULT_TOKEN_TTL
        assert dispatcher.invitations[-1].party is SignerType.SPEAKER
        assert _events(session, contract_id)[-1] == ContractEventAction.RESENT.value

        # The old link is dead; the client's link is untouched.
        with pytest.raises(InvalidTokenError):
            gateway.sign(sign_request(contract_id, tokens[SignerType.SPEAKER], SignerType.SPEAKER))
        gateway.sign(sign_request(contract_id, new_token, SignerType.SPEAKER))
        gateway.sign(sign_request(contract_id, tokens[SignerType.CLIENT], SignerType.CLIENT))

    def test_revives_expired_contract(self, lifecycle, send_contract, deterministic_clock, session):
        result, _ = send_contract()
        deterministic_clock.advance_days(91)
        selector = ContractSelector(session, deterministic_clock)
        assert selector.get(result.contract.id).status is ContractStatus.EXPIRED

        resent = lifecycle.resend(result.contract.id, "client", actor=TEST_ACTOR)

        assert resent.contract.status is ContractStatus.SENT

    def test_party_must_be_required(self, lifecycle, send_contract):
        result, _ = send_contract(speaker=False)
        with pytest.raises(ValidationError):
            lifecycle.resend(result.contract.id, SignerType.SPEAKER, actor=TEST_ACTOR)

    def test_party_must_not_have_signed(self, lifecycle, gateway, send_contract):
        result, tokens = send_contract()
        cid = result.contract.id
        gateway.sign(sign_request(cid, tokens[SignerType.CLIENT], SignerType.CLIENT))
        with pytest.raises(AlreadySignedError):
            lifecycle.resend(cid, SignerType.CLIENT, actor=TEST_ACTOR)

    def test_not_from_draft(self, lifecycle, create_contract):
        info = create_contract()
        with pytest.raises(IllegalTransitionError):
            lifecycle.resend(info.id, SignerType.CLIENT, actor=TEST_ACTOR)

    def test_unknown_party_name(self, lifecycle, send_contract):
        result, _ = send_contract()
        with pytest.raises(ValidationError):
            lifecycle.resend(result.contract.id, "witness", actor=TEST_ACTOR)


class TestCancel:
    def test_cancel_sent_contract(self, lifecycle, send_contract, session, deterministic_clock):
        result, _ = send_contract()
        info = lifecycle.cancel(result.contract.id, actor="ops", reason="event postponed")

        assert info.status is ContractStatus.CANCELLED
        assert info.cancelled_at == deterministic_clock.now()
        assert info.cancellation_reason == "event postponed"
        row = session.get(Contract, info.id)
        assert row.cancelled_by == "ops"
        assert _events(session, info.id)[-1] == ContractEventAction.CANCELLED.value

    def test_cancel_draft(self, lifecycle, create_contract):
        info = create_contract()
        assert lifecycle.cancel(info.id, actor=TEST_ACTOR).status is ContractStatus.CANCELLED

    def test_cancel_expired(self, lifecycle, send_contract, deterministic_clock):
        result, _ = send_contract()
        deterministic_clock.advance_days(120)
        assert lifecycle.cancel(result.contract.id).status is ContractStatus.CANCELLED

    def test_cancelled_is_absorbing(self, lifecycle, send_contract):
        result, _ = send_contract()
        cid = result.contract.id
        lifecycle.cancel(cid, actor=TEST_ACTOR)

        with pytest.raises(ContractCancelledError):
            lifecycle.cancel(cid, actor=TEST_ACTOR)
        with pytest.raises(ContractCancelledError):
            lifecycle.resend(cid, SignerType.CLIENT, actor=TEST_ACTOR)

    def test_cannot_cancel_draft_then_send(self, lifecycle, create_contract):
        info = create_contract()
        lifecycle.cancel(info.id, actor=TEST_ACTOR)
        with pytest.raises(ContractCancelledError):
            lifecycle.send(info.id, actor=TEST_ACTOR)

    def test_cannot_cancel_fully_executed(self, lifecycle, gateway, send_contract):
        result, tokens = send_contract(speaker=False)
        cid = result.contract.id
        gateway.sign(sign_request(cid, tokens[SignerType.CLIENT], SignerType.CLIENT))
        with pytest.raises(IllegalTransitionError):
            lifecycle.cancel(cid, actor=TEST_ACTOR)


class TestSyncStatuses:
    def test_rewrites_expired_contracts(self, lifecycle, send_contract, deterministic_clock, session):
        expiring, _ = send_contract()
        deterministic_clock.advance_days(60)
        fresh, _ = send_contract()
        deterministic_clock.advance_days(31)

        result = lifecycle.sync_statuses(actor="maintenance")

        assert result.examined == 2
        assert result.updated == (
            (expiring.contract.id, ContractStatus.SENT, ContractStatus.EXPIRED),
        )
        assert session.get(Contract, expiring.contract.id).status == ContractStatus.EXPIRED.value
        assert session.get(Contract, fresh.contract.id).status == ContractStatus.SENT.value
        assert _events(session, expiring.contract.id)[-1] == ContractEventAction.STATUS_SYNCED.value

    def test_second_run_is_a_no_op(self, lifecycle, send_contract, deterministic_clock):
        send_contract()
        deterministic_clock.advance_days(100)
        lifecycle.sync_statuses()
        assert lifecycle.sync_statuses().updated == ()

    def test_ignores_terminal_contracts(self, lifecycle, create_contract, deterministic_clock):
        info = create_contract()
        lifecycle.cancel(info.id)
        deterministic_clock.advance_days(365)
        assert lifecycle.sync_statuses().examined == 0

    def test_expiry_boundary(self, lifecycle, send_contract, deterministic_clock):
        result, _ = send_contract()
        deterministic_clock.set_time(result.contract.tokens_expire_at - timedelta(seconds=1))
        assert lifecycle.sync_statuses().updated == ()
        deterministic_clock.advance(1)
        assert len(lifecycle.sync_statuses().updated) == 1
