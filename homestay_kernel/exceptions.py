"""
Homestay kernel exceptions.

Every exception carries a machine-readable ``code`` class attribute and
stores its context as attributes, so that log records and API responses can
serialize the failure without parsing the message string.

Categories
----------
GuardRejection
    A transition precondition was not met. Always user-correctable; the
    message is surfaced verbatim and ``condition`` names the failed check.
NotFoundError
    An application, transaction or inspection order does not exist.
PayloadIntegrityFailure
    An inbound gateway payload is malformed or its checksum does not match.
    Fails closed: no state is written.
ExternalDependencyFailure
    The notifier or treasury gateway could not be reached. Logged and
    recovered locally; never aborts the transition that triggered it.
ConcurrencyConflict
    The application changed underneath the caller. Re-fetch and retry.
ImmutabilityViolationError
    An append-only record or an issued certificate number was rewritten.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any


class HomestayError(Exception):
    """Base exception for all homestay errors."""

    code: str = "HOMESTAY_ERROR"


# =============================================================================
# Guard rejections
# =============================================================================


class GuardRejection(HomestayError):
    """A transition precondition was not met."""

    code: str = "GUARD_REJECTION"

    def __init__(self, transition: str, condition: str, message: str):
        self.transition = transition
        self.condition = condition
        self.message = message
        super().__init__(message)


# =============================================================================
# Not found
# =============================================================================


class NotFoundError(HomestayError):
    """Base exception for missing entities."""

    code: str = "NOT_FOUND"


class ApplicationNotFoundError(NotFoundError):
    """Application with given ID was not found."""

    code: str = "APPLICATION_NOT_FOUND"

    def __init__(self, application_id: str):
        self.application_id = str(application_id)
        super().__init__(f"Application not found: {application_id}")


class TransactionNotFoundError(NotFoundError):
    """Payment transaction was not found."""

    code: str = "TRANSACTION_NOT_FOUND"

    def __init__(self, reference: str):
        self.reference = str(reference)
        super().__init__(f"Transaction not found: {reference}")


class InspectionOrderNotFoundError(NotFoundError):
    """No open inspection order exists for the application."""

    code: str = "INSPECTION_ORDER_NOT_FOUND"

    def __init__(self, application_id: str):
        self.application_id = str(application_id)
        super().__init__(f"No inspection order found for application {application_id}")


# =============================================================================
# Payload integrity
# =============================================================================


class PayloadIntegrityFailure(HomestayError):
    """Base exception for untrusted gateway payloads that fail validation."""

    code: str = "PAYLOAD_INTEGRITY_FAILURE"


class MalformedPayloadError(PayloadIntegrityFailure):
    """Payload could not be decrypted or carries no checksum marker."""

    code: str = "MALFORMED_PAYLOAD"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Malformed gateway payload: {reason}")


class ChecksumMismatchError(PayloadIntegrityFailure):
    """Recomputed checksum does not match the received checksum."""

    code: str = "CHECKSUM_MISMATCH"

    def __init__(self, app_ref_no: str | None, received_checksum: str):
        self.app_ref_no = app_ref_no
        self.received_checksum = received_checksum
        super().__init__(
            f"Checksum mismatch for gateway payload (app_ref_no={app_ref_no})"
        )


# =============================================================================
# External dependencies
# =============================================================================


class ExternalDependencyFailure(HomestayError):
    """Base exception for unreachable collaborators."""

    code: str = "EXTERNAL_DEPENDENCY_FAILURE"


class NotificationDeliveryError(ExternalDependencyFailure):
    """Notifier rejected or could not deliver an event."""

    code: str = "NOTIFICATION_DELIVERY_FAILED"

    def __init__(self, event_id: str, reason: str):
        self.event_id = event_id
        self.reason = reason
        super().__init__(f"Notification {event_id} not delivered: {reason}")


class GatewayUnavailableError(ExternalDependencyFailure):
    """Treasury gateway did not answer a server-to-server call."""

    code: str = "GATEWAY_UNAVAILABLE"

    def __init__(self, url: str, reason: str):
        self.url = url
        self.reason = reason
        super().__init__(f"Gateway call to {url} failed: {reason}")


# =============================================================================
# Concurrency and immutability
# =============================================================================


class ConcurrencyConflict(HomestayError):
    """Application state changed since the caller last read it."""

    code: str = "CONCURRENCY_CONFLICT"

    def __init__(self, application_id: str, expected: str | None, actual: str | None):
        self.application_id = str(application_id)
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Application {application_id} changed concurrently: "
            f"expected status {expected}, found {actual}"
        )


class ImmutabilityViolationError(HomestayError):
    """Attempted modification of an immutable record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = str(entity_id)
        self.reason = reason
        super().__init__(f"Cannot modify {entity_type} {entity_id}: {reason}")


class AuditChainBrokenError(HomestayError):
    """Recomputed audit hash does not match the stored chain."""

    code: str = "AUDIT_CHAIN_BROKEN"

    def __init__(self, application_id: str, action_id: str):
        self.application_id = str(application_id)
        self.action_id = str(action_id)
        super().__init__(
            f"Audit chain broken for application {application_id} at action {action_id}"
        )


# =============================================================================
# Service requests
# =============================================================================


class ServiceRequestError(HomestayError):
    """Base exception for rejected service requests."""

    code: str = "SERVICE_REQUEST_ERROR"


class ActiveServiceRequestExistsError(ServiceRequestError):
    """Parent already has a non-terminal child application."""

    code: str = "ACTIVE_SERVICE_REQUEST_EXISTS"

    def __init__(self, parent_id: str, existing_id: str, existing_kind: str, existing_status: str):
        self.parent_id = str(parent_id)
        self.existing_id = str(existing_id)
        self.existing_kind = existing_kind
        self.existing_status = existing_status
        super().__init__(
            f"An active {existing_kind} request ({existing_id}, status {existing_status}) "
            f"already exists for this application"
        )


class RenewalWindowError(ServiceRequestError):
    """Renewal requested outside the window before certificate expiry."""

    code: str = "RENEWAL_WINDOW_CLOSED"

    def __init__(self, window_start: datetime | date, window_end: datetime | date):
        self.window_start = window_start
        self.window_end = window_end
        super().__init__(
            f"Renewal is only permitted between {window_start.isoformat()} "
            f"and {window_end.isoformat()}"
        )


class RoomLimitError(ServiceRequestError):
    """Room adjustment would violate the room-count rules."""

    code: str = "ROOM_LIMIT"

    def __init__(self, message: str, resulting_total: int | None = None):
        self.resulting_total = resulting_total
        super().__init__(message)


class ParentNotEligibleError(ServiceRequestError):
    """Parent application cannot spawn service requests."""

    code: str = "PARENT_NOT_ELIGIBLE"

    def __init__(self, parent_id: str, reason: str):
        self.parent_id = str(parent_id)
        self.reason = reason
        super().__init__(reason)


# =============================================================================
# Payments
# =============================================================================


class PaymentError(HomestayError):
    """Base exception for payment settlement errors."""

    code: str = "PAYMENT_ERROR"


class NotReadyForPaymentError(PaymentError):
    """Application status does not permit a payment attempt."""

    code: str = "NOT_READY_FOR_PAYMENT"

    def __init__(self, application_id: str, current_status: str):
        self.application_id = str(application_id)
        self.current_status = current_status
        super().__init__("Application is not ready for payment")


class FeeNotCalculatedError(PaymentError):
    """Application carries no calculated fee."""

    code: str = "FEE_NOT_CALCULATED"

    def __init__(self, application_id: str):
        self.application_id = str(application_id)
        super().__init__("Total fee not calculated for this application")


class PaymentAttemptOpenError(PaymentError):
    """An earlier attempt is still open; it must be reset or answered first."""

    code: str = "PAYMENT_ATTEMPT_OPEN"

    def __init__(self, application_id: str, app_ref_no: str):
        self.application_id = str(application_id)
        self.app_ref_no = app_ref_no
        super().__init__(
            f"Payment attempt {app_ref_no} is still open; reset it before starting a new one"
        )


class TransactionAlreadyCompleteError(PaymentError):
    """Latest transaction is terminal and cannot be reset."""

    code: str = "TRANSACTION_ALREADY_COMPLETE"

    def __init__(self, app_ref_no: str, transaction_status: str):
        self.app_ref_no = app_ref_no
        self.transaction_status = transaction_status
        super().__init__("Latest transaction is already complete")


# =============================================================================
# Configuration
# =============================================================================


class GatewayConfigurationError(HomestayError):
    """Gateway configuration is incomplete or the key file is unusable."""

    code: str = "GATEWAY_CONFIGURATION_ERROR"

    def __init__(self, missing: tuple[str, ...] | list[str], detail: str | None = None):
        self.missing = tuple(missing)
        self.detail = detail
        message = "Gateway configuration incomplete"
        if self.missing:
            message += f": missing {', '.join(self.missing)}"
        if detail:
            message += f" ({detail})"
        super().__init__(message)


def error_payload(exc: HomestayError) -> dict[str, Any]:
    """Serialize an exception's structured fields for an API response."""
    body: dict[str, Any] = {"code": exc.code, "message": str(exc)}
    for key, value in vars(exc).items():
        if key.startswith("_") or key in ("args", "message"):
            continue
        if isinstance(value, (datetime, date)):
            value = value.isoformat()
        body[key] = value
    return body
