"""
Typed Exception Hierarchy for the Contract Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

A signer must be told apart "your link expired" from "you already signed"
from "this link is not valid". Parsing message strings to make that call is
fragile, so every failure the kernel can produce has:
  1. A TYPED exception class (catch by type, not message)
  2. A CODE class attribute (machine-readable, API-safe)
  3. Structured DATA attributes (contract id, signer type, ...)

Example - RIGHT way:
    try:
        gateway.sign(...)
    except SigningLinkExpiredError as e:
        api_response(code=e.code, expired_at=e.expires_at)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    ContractKernelError (base)
    |
    +-- ValidationError
    |
    +-- AuthorizationError
    |   +-- InvalidTokenError
    |   +-- AdminAuthenticationError
    |
    +-- NotFoundError
    |   +-- ContractNotFoundError
    |   +-- SigningLinkNotFoundError
    |
    +-- ConflictError
    |   +-- AlreadySignedError
    |   +-- IllegalTransitionError
    |   +-- ContractCancelledError
    |   +-- DuplicateContractNumberError
    |
    +-- ExpiredError
    |   +-- SigningLinkExpiredError
    |
    +-- DependencyError
    |   +-- NotificationDeliveryError
    |
    +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                       | When Raised
----------------|----------------------------|------------------------------------------
Validation      | VALIDATION_ERROR           | Missing / malformed request field
----------------|----------------------------|------------------------------------------
Authorization   | INVALID_TOKEN              | Token does not match the signer's token
                | ADMIN_UNAUTHORIZED         | Admin key missing or unknown
----------------|----------------------------|------------------------------------------
Not found       | CONTRACT_NOT_FOUND         | Contract id doesn't exist
                | SIGNING_LINK_NOT_FOUND     | Token matches no party on the contract
----------------|----------------------------|------------------------------------------
Conflict        | ALREADY_SIGNED             | Party already has a ledger entry
                | ILLEGAL_TRANSITION         | State machine rejects the action
                | CONTRACT_CANCELLED         | Contract was cancelled (absorbing)
                | DUPLICATE_CONTRACT_NUMBER  | contract_number already taken
----------------|----------------------------|------------------------------------------
Expired         | SIGNING_LINK_EXPIRED       | now >= tokens_expire_at
----------------|----------------------------|------------------------------------------
Dependency      | NOTIFICATION_FAILED        | Dispatcher could not deliver (logged only)
----------------|----------------------------|------------------------------------------
Immutability    | IMMUTABILITY_VIOLATION     | Update/delete of append-only or frozen data

===============================================================================
HANDLING PATTERNS
===============================================================================

1. Everything except DependencyError is raised BEFORE any write; a caught
   kernel error never leaves partial state behind.

2. DependencyError is caught by the notification fan-out, logged with the
   contract id and party, and turned into a FAILED delivery result. It is
   never propagated to the caller of sign/send.

3. HTTP mapping lives in ``contract_api.errors`` -- the kernel does not know
   about status codes.

===============================================================================
"""

from datetime import datetime


class ContractKernelError(Exception):
    """
    Base exception for all contract kernel errors.

    All subclasses carry a ``code`` class attribute for machine-readable
    error identification.
    """

    code: str = "CONTRACT_KERNEL_ERROR"


# Validation


class ValidationError(ContractKernelError):
    """A request field is missing or malformed."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid value for '{field}': {reason}")


# Authorization


class AuthorizationError(ContractKernelError):
    """Base exception for credential failures."""

    code: str = "AUTHORIZATION_ERROR"


class InvalidTokenError(AuthorizationError):
    """
    Presented signing token does not match the stored token for the signer.

    The presented token is deliberately NOT kept as an attribute -- exception
    attributes end up in structured logs.
    """

    code: str = "INVALID_TOKEN"

    def __init__(self, contract_id: int, signer_type: str):
        self.contract_id = contract_id
        self.signer_type = signer_type
        super().__init__(
            f"Signing token is not valid for {signer_type} on contract {contract_id}"
        )


class AdminAuthenticationError(AuthorizationError):
    """Admin credential missing or not recognised."""

    code: str = "ADMIN_UNAUTHORIZED"

    def __init__(self, reason: str = "Admin credentials required"):
        self.reason = reason
        super().__init__(reason)


# Not found


class NotFoundError(ContractKernelError):
    """Base exception for lookups that found nothing."""

    code: str = "NOT_FOUND"


class ContractNotFoundError(NotFoundError):
    """Contract with the given id does not exist."""

    code: str = "CONTRACT_NOT_FOUND"

    def __init__(self, contract_id: int):
        self.contract_id = contract_id
        super().__init__(f"Contract not found: {contract_id}")


class SigningLinkNotFoundError(NotFoundError):
    """The token does not belong to any party of the contract."""

    code: str = "SIGNING_LINK_NOT_FOUND"

    def __init__(self, contract_id: int):
        self.contract_id = contract_id
        super().__init__(f"No signing link matches contract {contract_id}")


# Conflict


class ConflictError(ContractKernelError):
    """Base exception for requests that clash with current contract state."""

    code: str = "CONFLICT"


class AlreadySignedError(ConflictError):
    """The party already has a signature in the ledger (idempotent rejection)."""

    code: str = "ALREADY_SIGNED"

    def __init__(self, contract_id: int, signer_type: str):
        self.contract_id = contract_id
        self.signer_type = signer_type
        super().__init__(
            f"Contract {contract_id} has already been signed by the {signer_type}"
        )


class IllegalTransitionError(ConflictError):
    """The lifecycle state machine does not allow this action from this status."""

    code: str = "ILLEGAL_TRANSITION"

    def __init__(self, contract_id: int | None, status: str, action: str):
        self.contract_id = contract_id
        self.status = status
        self.action = action
        super().__init__(
            f"Cannot {action} contract {contract_id} while it is {status}"
        )


class ContractCancelledError(ConflictError):
    """The contract was cancelled; no further signing or sending is possible."""

    code: str = "CONTRACT_CANCELLED"

    def __init__(self, contract_id: int, action: str):
        self.contract_id = contract_id
        self.action = action
        super().__init__(f"Contract {contract_id} has been cancelled")


class DuplicateContractNumberError(ConflictError):
    """contract_number is already assigned to another contract."""

    code: str = "DUPLICATE_CONTRACT_NUMBER"

    def __init__(self, contract_number: str):
        self.contract_number = contract_number
        super().__init__(f"Contract number already in use: {contract_number}")


# Expired


class ExpiredError(ContractKernelError):
    """Base exception for time-expired credentials."""

    code: str = "EXPIRED"


class SigningLinkExpiredError(ExpiredError):
    """Signing links for the contract are past their shared expiration."""

    code: str = "SIGNING_LINK_EXPIRED"

    def __init__(self, contract_id: int, expires_at: datetime | None):
        self.contract_id = contract_id
        self.expires_at = expires_at
        super().__init__(
            f"Signing links for contract {contract_id} expired at {expires_at}"
        )


# Dependency


class DependencyError(ContractKernelError):
    """Base exception for failures of external collaborators."""

    code: str = "DEPENDENCY_ERROR"


class NotificationDeliveryError(DependencyError):
    """The notification dispatcher could not deliver a message."""

    code: str = "NOTIFICATION_FAILED"

    def __init__(self, contract_id: int, party: str, kind: str, reason: str):
        self.contract_id = contract_id
        self.party = party
        self.kind = kind
        self.reason = reason
        super().__init__(
            f"Could not deliver {kind} for contract {contract_id} to {party}: {reason}"
        )


# Immutability


class ImmutabilityViolationError(ContractKernelError):
    """Attempt to modify or delete append-only or frozen data."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(f"Cannot modify {entity_type} {entity_id}: {reason}")
