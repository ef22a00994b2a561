"""
ORM-level immutability enforcement.

SQLAlchemy fires mapper events before UPDATE/DELETE statements reach the
database.  The listeners registered here inspect attribute history and
abort the flush with ImmutabilityViolationError when a protected record
would change:

Entity              | When immutable                 | Fields
--------------------|--------------------------------|---------------------------
ApplicationAction   | ALWAYS (from creation)         | every field; no deletes
Application         | once a certificate is issued   | certificate_number,
                    |                                | certificate_issued_date
PaymentTransaction  | once status is success/failed  | request snapshot fields

Revoking a certificate does not clear it: cancellation writes the
separate ``certificate_revoked_at`` / ``certificate_revocation_reason``
fields.

Usage:

    from homestay_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # once at startup

Tests that must bypass the rules call ``unregister_immutability_listeners()``.
"""

from sqlalchemy import event
from sqlalchemy.orm.attributes import get_history

from homestay_kernel.exceptions import ImmutabilityViolationError
from homestay_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

_PAYMENT_SNAPSHOT_FIELDS = (
    "app_ref_no",
    "dept_ref_no",
    "ddo",
    "head1",
    "amount1",
    "head2",
    "amount2",
    "total_amount",
    "actual_amount",
    "encrypted_request",
    "request_checksum",
    "portal_base_url",
)


def _blocked(entity_type: str, entity_id, operation: str, reason: str) -> ImmutabilityViolationError:
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(entity_id),
            "operation": operation,
            "reason": reason,
        },
    )
    return ImmutabilityViolationError(
        entity_type=entity_type, entity_id=str(entity_id), reason=reason,
    )


def _check_action_update(mapper, connection, target):
    raise _blocked("ApplicationAction", target.id, "UPDATE", "Audit rows are append-only")


def _check_action_delete(mapper, connection, target):
    raise _blocked("ApplicationAction", target.id, "DELETE", "Audit rows cannot be deleted")


def _check_certificate_immutability(mapper, connection, target):
    """Block rewriting a certificate once one was issued and flushed."""
    for field in ("certificate_number", "certificate_issued_date"):
        history = get_history(target, field)
        if history.deleted and history.deleted[0] is not None and history.added:
            raise _blocked(
                "Application", target.id, "UPDATE",
                f"{field} is already issued and cannot change",
            )


def _check_payment_snapshot(mapper, connection, target):
    for field in _PAYMENT_SNAPSHOT_FIELDS:
        history = get_history(target, field)
        if history.deleted and history.added:
            raise _blocked(
                "PaymentTransaction", target.id, "UPDATE",
                f"{field} is part of the request snapshot and cannot change",
            )


def register_immutability_listeners():
    """Register all immutability listeners. Call after models are imported."""
    from homestay_kernel.models.application import Application
    from homestay_kernel.models.application_action import ApplicationAction
    from homestay_kernel.models.payment_transaction import PaymentTransaction

    if event.contains(ApplicationAction, "before_update", _check_action_update):
        return

    event.listen(ApplicationAction, "before_update", _check_action_update)
    event.listen(ApplicationAction, "before_delete", _check_action_delete)
    event.listen(Application, "before_update", _check_certificate_immutability)
    event.listen(PaymentTransaction, "before_update", _check_payment_snapshot)


def _safe_remove_listener(target, event_name, listener_fn):
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """Remove the listeners. Tests only."""
    from homestay_kernel.models.application import Application
    from homestay_kernel.models.application_action import ApplicationAction
    from homestay_kernel.models.payment_transaction import PaymentTransaction

    _safe_remove_listener(ApplicationAction, "before_update", _check_action_update)
    _safe_remove_listener(ApplicationAction, "before_delete", _check_action_delete)
    _safe_remove_listener(Application, "before_update", _check_certificate_immutability)
    _safe_remove_listener(PaymentTransaction, "before_update", _check_payment_snapshot)
