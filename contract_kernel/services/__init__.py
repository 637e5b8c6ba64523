"""Services for the contract kernel (write side)."""

from contract_kernel.services.audit_service import ContractAuditService
from contract_kernel.services.content import ContentRenderer, StoredTermsRenderer
from contract_kernel.services.contract_service import ContractLifecycleService
from contract_kernel.services.ledger_service import SignatureLedger
from contract_kernel.services.notification_service import (
    Confirmation,
    Invitation,
    LoggingNotificationDispatcher,
    NotificationDispatcher,
    NotificationService,
)
from contract_kernel.services.sequence_service import SequenceService
from contract_kernel.services.signing_gateway import SigningGateway

__all__ = [
    "Confirmation",
    "ContentRenderer",
    "ContractAuditService",
    "ContractLifecycleService",
    "Invitation",
    "LoggingNotificationDispatcher",
    "NotificationDispatcher",
    "NotificationService",
    "SequenceService",
    "SignatureLedger",
    "SigningGateway",
    "StoredTermsRenderer",
]
