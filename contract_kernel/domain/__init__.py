"""Pure domain layer: clock, lifecycle state machine, token issuer, DTOs."""

from contract_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from contract_kernel.domain.lifecycle import (
    CONTRACT_WORKFLOW,
    ContractAction,
    ContractStatus,
    SignatureMethod,
    SignerType,
    derive_status,
    require_action,
)
from contract_kernel.domain.tokens import IssuedTokens, SigningPolicy, TokenIssuer

__all__ = [
    "Clock",
    "SystemClock",
    "DeterministicClock",
    "CONTRACT_WORKFLOW",
    "ContractAction",
    "ContractStatus",
    "SignatureMethod",
    "SignerType",
    "derive_status",
    "require_action",
    "IssuedTokens",
    "SigningPolicy",
    "TokenIssuer",
]
