"""
Pytest fixtures for the contract engine test suite.

Provides:
- A file-backed SQLite database per test (tables + immutability triggers)
- DeterministicClock, token issuer and a recording notification dispatcher
- Lifecycle service / signing gateway wired to the test session
- Contract factories and log capture
- An HTTP test client over the FastAPI app

SQLite serializes transactions (BEGIN IMMEDIATE), so a session left inside
an open transaction blocks every other session.  Tests that use more than
one session end the shared session's transaction first.
"""

import json
import logging
from io import StringIO

import pytest
from fastapi.testclient import TestClient

from contract_api.app import create_app
from contract_config.schema import AdminConfig, AdminKey, EngineConfig, SigningConfig
from contract_kernel.db.engine import (
    create_tables,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
)
from contract_kernel.domain.clock import DeterministicClock
from contract_kernel.domain.tokens import SigningPolicy, TokenIssuer
from contract_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from contract_kernel.services.contract_service import ContractLifecycleService
from contract_kernel.services.signing_gateway import SigningGateway

from tests.helpers import (
    ADMIN_KEY,
    SIGNING_BASE_URL,
    TEST_ACTOR,
    RecordingDispatcher,
    make_draft,
)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture contract_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, lifecycle):
            lifecycle.send(...)
            assert any(r["message"] == "contract_sent" for r in captured_logs())
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("contract_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Database
# =============================================================================


@pytest.fixture
def database_url(tmp_path) -> str:
    return f"sqlite:///{tmp_path / 'contracts.db'}"


@pytest.fixture
def db_engine(database_url):
    """Fresh engine, schema and triggers for each test."""
    engine = init_engine_from_url(database_url)
    create_tables()
    yield engine
    reset_engine()


@pytest.fixture
def session_factory(db_engine):
    return get_session_factory()


@pytest.fixture
def session(session_factory):
    s = session_factory()
    yield s
    s.rollback()
    s.close()


# =============================================================================
# Kernel collaborators
# =============================================================================


@pytest.fixture
def deterministic_clock() -> DeterministicClock:
    return DeterministicClock()


@pytest.fixture
def signing_policy() -> SigningPolicy:
    return SigningPolicy(signing_base_url=SIGNING_BASE_URL)


@pytest.fixture
def token_issuer(signing_policy, deterministic_clock) -> TokenIssuer:
    return TokenIssuer(signing_policy, deterministic_clock)


@pytest.fixture
def dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher()


@pytest.fixture
def lifecycle(session, token_issuer, deterministic_clock, dispatcher) -> ContractLifecycleService:
    return ContractLifecycleService(session, token_issuer, deterministic_clock, dispatcher)


@pytest.fixture
def gateway(session, deterministic_clock, dispatcher) -> SigningGateway:
    return SigningGateway(session, deterministic_clock, dispatcher)


# =============================================================================
# Contract factories
# =============================================================================


@pytest.fixture
def create_contract(lifecycle):
    """Create a draft contract.  ``create_contract(speaker=False)`` for unilateral."""

    def _create(client: bool = True, speaker: bool = True, **overrides):
        return lifecycle.create(make_draft(client, speaker, **overrides), actor=TEST_ACTOR)

    return _create


@pytest.fixture
def send_contract(lifecycle, create_contract):
    """
    Create and send a contract.

    Returns (SendResult, tokens) where tokens maps SignerType -> token.
    """

    def _send(client: bool = True, speaker: bool = True, **overrides):
        info = create_contract(client, speaker, **overrides)
        result = lifecycle.send(info.id, actor=TEST_ACTOR)
        tokens = {link.party: link.token for link in result.links}
        return result, tokens

    return _send


# =============================================================================
# HTTP API
# =============================================================================


@pytest.fixture
def engine_config() -> EngineConfig:
    return EngineConfig(
        config_id="test",
        version=1,
        signing=SigningConfig(signing_base_url=SIGNING_BASE_URL),
        admin=AdminConfig(api_keys=(AdminKey(actor=TEST_ACTOR, key=ADMIN_KEY),)),
    )


@pytest.fixture
def api_client(engine_config, session_factory, dispatcher, deterministic_clock):
    """TestClient over an app that shares the test database, clock and dispatcher."""
    app = create_app(
        engine_config,
        session_factory=session_factory,
        dispatcher=dispatcher,
        clock=deterministic_clock,
    )
    with TestClient(app) as client:
        yield client
