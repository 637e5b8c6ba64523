"""
FastAPI application factory.

``create_app`` receives the already-loaded EngineConfig and wires the
kernel collaborators onto ``app.state`` once; request handlers reach them
through ``contract_api.dependencies``.
"""

import time
from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from sqlalchemy.orm import Session, sessionmaker

from contract_api.errors import kernel_error_handler, request_validation_handler
from contract_api.routes.admin import router as admin_router
from contract_api.routes.signing import router as signing_router
from contract_api.schemas import HealthResponse
from contract_config.bridges import build_notification_dispatcher, build_token_issuer
from contract_config.schema import EngineConfig
from contract_kernel import __version__
from contract_kernel.db.engine import get_session_factory
from contract_kernel.domain.clock import Clock, SystemClock
from contract_kernel.exceptions import ContractKernelError
from contract_kernel.logging_config import LogContext, get_logger
from contract_kernel.services.notification_service import NotificationDispatcher

logger = get_logger("api")


def create_app(
    config: EngineConfig,
    session_factory: sessionmaker[Session] | None = None,
    dispatcher: NotificationDispatcher | None = None,
    clock: Clock | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    The engine must already be initialized (``contract_config.bridges.
    init_engine``) unless a ``session_factory`` is supplied.
    """
    app = FastAPI(
        title="Contract Signing API",
        description="Contract lifecycle and multi-party e-signature",
        version=__version__,
    )

    clock = clock or SystemClock()
    app.state.config = config
    app.state.clock = clock
    app.state.session_factory = session_factory or get_session_factory()
    app.state.dispatcher = dispatcher or build_notification_dispatcher(config)
    app.state.token_issuer = build_token_issuer(config, clock)

    app.add_exception_handler(ContractKernelError, kernel_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)

    @app.middleware("http")
    async def request_logging(request: Request, call_next):
        trace_id = request.headers.get("x-request-id") or uuid4().hex
        with LogContext.bind(trace_id=trace_id):
            t0 = time.monotonic()
            response = await call_next(request)
            logger.info(
                "http_request_completed",
                extra={
                    "method": request.method,
                    "path": request.url.path,
                    "status_code": response.status_code,
                    "duration_ms": round((time.monotonic() - t0) * 1000, 2),
                },
            )
        response.headers["X-Request-ID"] = trace_id
        return response

    @app.get("/health", response_model=HealthResponse, tags=["health"])
    def health() -> HealthResponse:
        return HealthResponse()

    app.include_router(signing_router)
    app.include_router(admin_router)

    return app
