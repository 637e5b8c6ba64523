"""
ORM listeners that keep signed evidence and sent terms unchanged.

A signature is evidence: once a party has signed, nothing may rewrite who
signed, when, or what they agreed to.  Two mechanisms enforce this.  The
listeners here run inside ``Session.flush()`` (``before_update`` /
``before_delete``) and raise ``ImmutabilityViolationError`` before any SQL
is emitted.  The triggers in ``db/triggers.py`` cover raw SQL and bulk
statements that never pass through the ORM.

Frozen data
-----------

    Signature, ContractEvent      every column, from insert; never deleted
    Contract.contract_number      always
    Contract.requires_*           always
    terms, title, event, parties  once sent_at is set
    <party>_signed_at             once set
    every column                  once cancelled_at is set
    the row itself                cannot be deleted once sent

``updated_at`` may always change.  Signing tokens and ``tokens_expire_at``
stay writable after send because resend replaces a party's link.

The "sent" and "cancelled" checks read the value the row had before the
current flush (attribute history), because the send itself is the update
that sets ``sent_at``.
"""

from sqlalchemy import event, inspect
from sqlalchemy.orm.attributes import get_history

from contract_kernel.exceptions import ImmutabilityViolationError
from contract_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

_AUDIT_FIELDS = frozenset({"updated_at"})

_ALWAYS_FROZEN_CONTRACT_FIELDS = ("contract_number", "requires_client", "requires_speaker")

_FROZEN_AFTER_SEND_FIELDS = (
    "title",
    "terms",
    "event_title",
    "event_date",
    "event_location",
    "fee_amount",
    "currency",
    "client_name",
    "client_email",
    "speaker_name",
    "speaker_email",
)

_SIGNED_AT_FIELDS = ("client_signed_at", "speaker_signed_at")


def _previous_value(target, key: str):
    """Value the attribute held before the pending flush."""
    history = get_history(target, key)
    if history.deleted:
        return history.deleted[0]
    if history.added:
        # Newly set during this unit of work; there was no prior value
        return None
    return getattr(target, key)


def _changed(target, key: str) -> bool:
    return get_history(target, key).has_changes()


def _block(entity_type: str, target, operation: str, reason: str, field: str | None = None):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(target.id),
            "operation": operation,
            "field": field,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(target.id),
        reason=reason,
    )


def _first_changed_field(target) -> str | None:
    for attr in inspect(target).attrs:
        if attr.key in _AUDIT_FIELDS:
            continue
        if attr.history.has_changes():
            return attr.key
    return None


# =============================================================================
# Signature (append-only ledger)
# =============================================================================


def _check_signature_immutability(mapper, connection, target):
    field = _first_changed_field(target)
    if field is not None:
        _block(
            "Signature", target, "UPDATE",
            f"Signature ledger entries are append-only (field '{field}')",
            field=field,
        )


def _check_signature_delete(mapper, connection, target):
    _block("Signature", target, "DELETE", "Signature ledger entries cannot be deleted")


# =============================================================================
# ContractEvent (append-only audit trail)
# =============================================================================


def _check_contract_event_immutability(mapper, connection, target):
    field = _first_changed_field(target)
    if field is not None:
        _block(
            "ContractEvent", target, "UPDATE",
            f"Contract events are append-only (field '{field}')",
            field=field,
        )


def _check_contract_event_delete(mapper, connection, target):
    _block("ContractEvent", target, "DELETE", "Contract events cannot be deleted")


# =============================================================================
# Contract
# =============================================================================


def _check_contract_immutability(mapper, connection, target):
    """
    Enforce the frozen-field rules on Contract.

    Order matters only for the reported reason; any one rule blocks the flush.
    """
    # 1. A cancelled contract is frozen entirely
    if _previous_value(target, "cancelled_at") is not None:
        field = _first_changed_field(target)
        if field is not None:
            _block(
                "Contract", target, "UPDATE",
                f"Cannot modify field '{field}' on a cancelled contract",
                field=field,
            )

    # 2. Identity and required parties never change
    for field in _ALWAYS_FROZEN_CONTRACT_FIELDS:
        if _changed(target, field):
            _block(
                "Contract", target, "UPDATE",
                f"Field '{field}' is fixed at creation",
                field=field,
            )

    # 3. Terms and parties freeze once sent
    if _previous_value(target, "sent_at") is not None:
        if _changed(target, "sent_at"):
            _block("Contract", target, "UPDATE", "sent_at cannot be changed once set", field="sent_at")
        for field in _FROZEN_AFTER_SEND_FIELDS:
            if _changed(target, field):
                _block(
                    "Contract", target, "UPDATE",
                    f"Cannot modify field '{field}' after the contract was sent",
                    field=field,
                )

    # 4. A party's signature time is written once
    for field in _SIGNED_AT_FIELDS:
        if _changed(target, field) and _previous_value(target, field) is not None:
            _block(
                "Contract", target, "UPDATE",
                f"Field '{field}' cannot change once the party has signed",
                field=field,
            )


def _check_contract_delete(mapper, connection, target):
    if _previous_value(target, "sent_at") is not None:
        _block("Contract", target, "DELETE", "A sent contract cannot be deleted")


# =============================================================================
# Registration
# =============================================================================


def _listeners():
    from contract_kernel.models.contract import Contract
    from contract_kernel.models.contract_event import ContractEvent
    from contract_kernel.models.signature import Signature

    return (
        (Signature, "before_update", _check_signature_immutability),
        (Signature, "before_delete", _check_signature_delete),
        (ContractEvent, "before_update", _check_contract_event_immutability),
        (ContractEvent, "before_delete", _check_contract_event_delete),
        (Contract, "before_update", _check_contract_immutability),
        (Contract, "before_delete", _check_contract_delete),
    )


def register_immutability_listeners():
    """
    Register all immutability enforcement event listeners (idempotent).

    Called by init_engine_from_url(), before any database operation.
    """
    for target, event_name, listener_fn in _listeners():
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)


def _safe_remove_listener(target, event_name, listener_fn):
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests that need to reach the database triggers
    underneath.
    """
    for target, event_name, listener_fn in _listeners():
        _safe_remove_listener(target, event_name, listener_fn)
