"""ContractSelector: derived status at read time, ledger and history order."""

import pytest

from contract_kernel.domain.lifecycle import ContractStatus, SignerType
from contract_kernel.exceptions import ContractNotFoundError
from contract_kernel.models.contract_event import ContractEventAction
from contract_kernel.selectors.contract_selector import ContractSelector

from tests.helpers import TEST_ACTOR, sign_request


@pytest.fixture
def selector(session, deterministic_clock):
    return ContractSelector(session, clock=deterministic_clock)


class TestGet:
    def test_unknown_id(self, selector):
        with pytest.raises(ContractNotFoundError):
            selector.get(404)

    def test_get_by_number(self, selector, create_contract):
        info = create_contract()
        found = selector.get_by_number(info.contract_number)
        assert found.id == info.id
        assert selector.get_by_number("CTR-NOPE") is None

    def test_parties_are_reported(self, selector, create_contract):
        info = selector.get(create_contract(speaker=False).id)
        assert info.required_parties == (SignerType.CLIENT,)
        assert info.party(SignerType.CLIENT).email == "events@acme.test"
        assert info.party(SignerType.SPEAKER) is None


class TestLazyExpiration:
    def test_expired_on_read_while_column_says_sent(self, selector, send_contract, deterministic_clock):
        result, _ = send_contract()
        deterministic_clock.advance_days(91)

        info = selector.get(result.contract.id)

        assert info.status is ContractStatus.EXPIRED
        assert info.stored_status is ContractStatus.SENT

    def test_partially_signed_expires(self, selector, send_contract, gateway, deterministic_clock):
        result, tokens = send_contract()
        cid = result.contract.id
        gateway.sign(sign_request(cid, tokens[SignerType.CLIENT], SignerType.CLIENT))
        deterministic_clock.advance_days(90)
        assert selector.get(cid).status is ContractStatus.EXPIRED

    def test_fully_executed_never_expires(self, selector, send_contract, gateway, deterministic_clock):
        result, tokens = send_contract(speaker=False)
        cid = result.contract.id
        gateway.sign(sign_request(cid, tokens[SignerType.CLIENT], SignerType.CLIENT))
        deterministic_clock.advance_days(1000)
        assert selector.get(cid).status is ContractStatus.FULLY_EXECUTED

    def test_stale_statuses_lists_only_lagging_rows(
        self, selector, send_contract, create_contract, deterministic_clock
    ):
        create_contract()
        early, _ = send_contract()
        deterministic_clock.advance_days(30)
        late, _ = send_contract()
        deterministic_clock.advance_days(61)

        stale = selector.stale_statuses()

        assert stale == [(early.contract.id, ContractStatus.SENT, ContractStatus.EXPIRED)]


class TestLedgerAndHistory:
    def test_signatures_in_order(self, selector, send_contract, gateway):
        result, tokens = send_contract()
        cid = result.contract.id
        gateway.sign(sign_request(cid, tokens[SignerType.SPEAKER], SignerType.SPEAKER, name="Dana"))
        gateway.sign(sign_request(cid, tokens[SignerType.CLIENT], SignerType.CLIENT, name="Ana"))

        sigs = selector.signatures(cid)

        assert [s.signer_type for s in sigs] == [SignerType.SPEAKER, SignerType.CLIENT]
        assert [s.signer_name for s in sigs] == ["Dana", "Ana"]

    def test_history_records_lifecycle(self, selector, send_contract, lifecycle):
        result, _ = send_contract()
        cid = result.contract.id
        lifecycle.cancel(cid, actor=TEST_ACTOR, reason="venue closed")

        history = selector.history(cid)

        assert [e.action for e in history] == [
            ContractEventAction.CREATED.value,
            ContractEventAction.SENT.value,
            ContractEventAction.CANCELLED.value,
        ]
        assert history[-1].actor == TEST_ACTOR
        assert history[-1].detail["reason"] == "venue closed"

    def test_empty_for_unknown_contract(self, selector):
        assert selector.signatures(77) == []
        assert selector.history(77) == []
