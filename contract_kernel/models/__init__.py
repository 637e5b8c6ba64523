"""SQLAlchemy ORM models for the contract kernel."""

from contract_kernel.models.contract import Contract
from contract_kernel.models.contract_event import ContractEvent, ContractEventAction
from contract_kernel.models.signature import Signature

__all__ = [
    "Contract",
    "ContractEvent",
    "ContractEventAction",
    "Signature",
    "import_all_models",
]


def import_all_models() -> None:
    """Import every mapped class so Base.metadata knows all tables."""
    import contract_kernel.models.contract  # noqa: F401
    import contract_kernel.models.contract_event  # noqa: F401
    import contract_kernel.models.signature  # noqa: F401
    import contract_kernel.services.sequence_service  # noqa: F401
