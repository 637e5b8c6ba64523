"""
Kernel error -> HTTP response mapping.

The kernel knows nothing about HTTP.  Every ContractKernelError is
rendered as ``{"error": <code>, "message": <text>}``; signers get distinct
messages for an expired link, an already-signed party and an invalid link.
"""

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from contract_kernel.exceptions import (
    AdminAuthenticationError,
    AlreadySignedError,
    ConflictError,
    ContractCancelledError,
    ContractKernelError,
    ExpiredError,
    ImmutabilityViolationError,
    InvalidTokenError,
    NotFoundError,
    SigningLinkExpiredError,
    SigningLinkNotFoundError,
    ValidationError,
)
from contract_kernel.logging_config import get_logger

logger = get_logger("api.errors")

# Most specific first; the first isinstance match wins.
STATUS_BY_ERROR: tuple[tuple[type[ContractKernelError], int], ...] = (
    (ValidationError, 400),
    (InvalidTokenError, 403),
    (AdminAuthenticationError, 401),
    (NotFoundError, 404),
    (AlreadySignedError, 400),
    (ConflictError, 409),
    (ImmutabilityViolationError, 409),
    (ExpiredError, 400),
)

SIGNER_MESSAGES: tuple[tuple[type[ContractKernelError], str], ...] = (
    (SigningLinkExpiredError, "This signing link has expired. Please ask for a new link."),
    (AlreadySignedError, "You have already signed this contract."),
    (InvalidTokenError, "This signing link is not valid."),
    (SigningLinkNotFoundError, "This signing link is not valid."),
    (ContractCancelledError, "This contract has been cancelled and can no longer be signed."),
)


def status_for(exc: ContractKernelError) -> int:
    for error_type, status in STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status
    return 500


def message_for(exc: ContractKernelError) -> str:
    for error_type, message in SIGNER_MESSAGES:
        if isinstance(exc, error_type):
            return message
    return str(exc)


async def kernel_error_handler(request: Request, exc: ContractKernelError) -> JSONResponse:
    status = status_for(exc)
    logger.info(
        "api_error",
        extra={
            "path": request.url.path,
            "method": request.method,
            "status_code": status,
            "error_code": exc.code,
        },
    )
    return JSONResponse(
        status_code=status,
        content={"error": exc.code, "message": message_for(exc)},
    )


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    first = exc.errors()[0] if exc.errors() else {}
    field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = f"Invalid value for '{field}': {first.get('msg', 'invalid request')}"
    logger.info(
        "api_error",
        extra={
            "path": request.url.path,
            "method": request.method,
            "status_code": 400,
            "error_code": ValidationError.code,
        },
    )
    return JSONResponse(
        status_code=400,
        content={"error": ValidationError.code, "message": message},
    )
