"""
Concurrent signing.

Each thread gets its own session from the shared factory, and a Barrier
releases all of them at once.  On SQLite the writers are serialized by
BEGIN IMMEDIATE; on PostgreSQL by the contract row lock.  Either way the
outcome must be deterministic:

- the same party racing itself ends with exactly one ledger row;
- both parties racing each other end fully executed, with exactly one
  call reporting the transition.
"""

from concurrent.futures import ThreadPoolExecutor
from threading import Barrier

import pytest
from sqlalchemy import func, select

from contract_kernel.domain.lifecycle import ContractStatus, SignerType
from contract_kernel.exceptions import AlreadySignedError
from contract_kernel.models.contract import Contract
from contract_kernel.models.signature import Signature
from contract_kernel.services.signing_gateway import SigningGateway

from tests.helpers import sign_request

pytestmark = pytest.mark.slow_locks


def _race(session_factory, clock, dispatcher, requests):
    """Run one sign call per request, all released together."""
    barrier = Barrier(len(requests), timeout=30)

    def attempt(request):
        with session_factory() as thread_session:
            gateway = SigningGateway(thread_session, clock, dispatcher)
            barrier.wait()
            try:
                return gateway.sign(request)
            except AlreadySignedError as exc:
                return exc

    with ThreadPoolExecutor(max_workers=len(requests)) as pool:
        return list(pool.map(attempt, requests))


def _ledger_rows(session_factory, contract_id):
    with session_factory() as s:
        return s.execute(
            select(func.count(Signature.id)).where(Signature.contract_id == contract_id)
        ).scalar()


class TestSamePartyRace:
    @pytest.mark.parametrize("threads", [2, 8])
    def test_exactly_one_signature(
        self, send_contract, session, session_factory, deterministic_clock, dispatcher, threads
    ):
        result, tokens = send_contract()
        cid = result.contract.id
        session.close()

        outcomes = _race(
            session_factory,
            deterministic_clock,
            dispatcher,
            [sign_request(cid, tokens[SignerType.CLIENT], SignerType.CLIENT) for _ in range(threads)],
        )

        successes = [o for o in outcomes if not isinstance(o, Exception)]
        rejections = [o for o in outcomes if isinstance(o, AlreadySignedError)]
        assert len(successes) == 1
        assert len(rejections) == threads - 1
        assert successes[0].status is ContractStatus.PARTIALLY_SIGNED
        assert _ledger_rows(session_factory, cid) == 1


class TestBothPartiesRace:
    def test_ends_fully_executed(
        self, send_contract, session, session_factory, deterministic_clock, dispatcher
    ):
        result, tokens = send_contract()
        cid = result.contract.id
        session.close()

        outcomes = _race(
            session_factory,
            deterministic_clock,
            dispatcher,
            [
                sign_request(cid, tokens[SignerType.CLIENT], SignerType.CLIENT),
                sign_request(cid, tokens[SignerType.SPEAKER], SignerType.SPEAKER),
            ],
        )

        assert not any(isinstance(o, Exception) for o in outcomes)
        assert sorted(o.status.value for o in outcomes) == ["fully_executed", "partially_signed"]
        assert sum(o.is_fully_executed for o in outcomes) == 1
        assert _ledger_rows(session_factory, cid) == 2

        with session_factory() as s:
            contract = s.get(Contract, cid)
            assert contract.status == ContractStatus.FULLY_EXECUTED.value
            assert contract.fully_executed_at is not None
            assert contract.client_signed_at is not None
            assert contract.speaker_signed_at is not None

        assert sum(1 for c in dispatcher.confirmations if c.fully_executed) == 2
