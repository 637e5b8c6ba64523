"""
FastAPI dependencies: per-request session, kernel collaborators, admin identity.

Collaborators are taken from ``app.state`` (set by ``create_app``), so
handlers never read configuration or the environment themselves.
"""

import hmac
from collections.abc import Generator

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from contract_kernel.domain.clock import Clock
from contract_kernel.exceptions import AdminAuthenticationError
from contract_kernel.selectors.contract_selector import ContractSelector
from contract_kernel.services.contract_service import ContractLifecycleService
from contract_kernel.services.signing_gateway import SigningGateway


def get_session(request: Request) -> Generator[Session, None, None]:
    session = request.app.state.session_factory()
    try:
        yield session
    finally:
        session.close()


def get_clock(request: Request) -> Clock:
    return request.app.state.clock


def get_signing_gateway(
    request: Request,
    session: Session = Depends(get_session),
) -> SigningGateway:
    state = request.app.state
    return SigningGateway(session, clock=state.clock, dispatcher=state.dispatcher)


def get_lifecycle_service(
    request: Request,
    session: Session = Depends(get_session),
) -> ContractLifecycleService:
    state = request.app.state
    return ContractLifecycleService(
        session,
        state.token_issuer,
        clock=state.clock,
        dispatcher=state.dispatcher,
    )


def get_selector(
    request: Request,
    session: Session = Depends(get_session),
) -> ContractSelector:
    return ContractSelector(session, clock=request.app.state.clock)


def require_admin(request: Request) -> str:
    """
    Authenticate the admin caller and return its actor name.

    Every configured key is compared (constant-time) so the response time
    does not reveal which key prefix matched.
    """
    admin = request.app.state.config.admin
    presented = request.headers.get(admin.header_name)
    if not presented:
        raise AdminAuthenticationError()

    actor = None
    for entry in admin.api_keys:
        if hmac.compare_digest(presented.encode("utf-8"), entry.key.encode("utf-8")):
            actor = entry.actor
    if actor is None:
        raise AdminAuthenticationError("Admin key not recognised")

    return actor


def client_ip(request: Request) -> str | None:
    """Originating client address, honouring reverse-proxy headers."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip() or None
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    return request.client.host if request.client else None
