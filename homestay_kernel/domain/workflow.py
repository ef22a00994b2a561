"""
Application lifecycle vocabulary (``homestay_kernel.domain.workflow``).

Responsibility
--------------
Closed enumerations shared by the guard, the engine and the persistence
layer: application statuses, actor roles, application kinds, document
verification states and payment transaction states.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.

Invariants enforced
-------------------
* An application holds exactly one ``ApplicationStatus`` at any time.
* ``TERMINAL_STATUSES`` have no outgoing transitions except the explicit
  service-request and cancellation flows, which act on a child record.
"""

from __future__ import annotations

from enum import Enum


class ApplicationStatus(str, Enum):
    """Application lifecycle states."""

    DRAFT = "draft"
    SUBMITTED = "submitted"
    UNDER_SCRUTINY = "under_scrutiny"
    FORWARDED_TO_DTDO = "forwarded_to_dtdo"
    DTDO_REVIEW = "dtdo_review"
    INSPECTION_SCHEDULED = "inspection_scheduled"
    INSPECTION_UNDER_REVIEW = "inspection_under_review"
    SENT_BACK_FOR_CORRECTIONS = "sent_back_for_corrections"
    REVERTED_TO_APPLICANT = "reverted_to_applicant"
    REVERTED_BY_DTDO = "reverted_by_dtdo"
    OBJECTION_RAISED = "objection_raised"
    LEGACY_RC_REVIEW = "legacy_rc_review"
    VERIFIED_FOR_PAYMENT = "verified_for_payment"
    PAYMENT_PENDING = "payment_pending"
    APPROVED = "approved"
    REJECTED = "rejected"


TERMINAL_STATUSES: frozenset[ApplicationStatus] = frozenset({
    ApplicationStatus.APPROVED,
    ApplicationStatus.REJECTED,
})

# Statuses in which the owner may edit and resubmit.
CORRECTION_STATUSES: frozenset[ApplicationStatus] = frozenset({
    ApplicationStatus.SENT_BACK_FOR_CORRECTIONS,
    ApplicationStatus.REVERTED_TO_APPLICANT,
    ApplicationStatus.REVERTED_BY_DTDO,
    ApplicationStatus.OBJECTION_RAISED,
})

EDITABLE_STATUSES: frozenset[ApplicationStatus] = (
    frozenset({ApplicationStatus.DRAFT}) | CORRECTION_STATUSES
)

PAYABLE_STATUSES: frozenset[ApplicationStatus] = frozenset({
    ApplicationStatus.VERIFIED_FOR_PAYMENT,
    ApplicationStatus.PAYMENT_PENDING,
})


class ActorRole(str, Enum):
    """Roles resolved by the identity collaborator."""

    PROPERTY_OWNER = "property_owner"
    DEALING_ASSISTANT = "dealing_assistant"
    DISTRICT_TOURISM_OFFICER = "district_tourism_officer"
    DISTRICT_OFFICER = "district_officer"
    STATE_OFFICER = "state_officer"
    ADMIN = "admin"
    SYSTEM = "system"


# Roles whose authority is limited to their own district.
DISTRICT_SCOPED_ROLES: frozenset[ActorRole] = frozenset({
    ActorRole.DEALING_ASSISTANT,
    ActorRole.DISTRICT_TOURISM_OFFICER,
    ActorRole.DISTRICT_OFFICER,
})

OFFICER_ROLES: frozenset[ActorRole] = frozenset({
    ActorRole.DEALING_ASSISTANT,
    ActorRole.DISTRICT_TOURISM_OFFICER,
    ActorRole.DISTRICT_OFFICER,
    ActorRole.STATE_OFFICER,
    ActorRole.ADMIN,
})


class ApplicationKind(str, Enum):
    """What the application asks for."""

    NEW_REGISTRATION = "new_registration"
    RENEWAL = "renewal"
    ADD_ROOMS = "add_rooms"
    DELETE_ROOMS = "delete_rooms"
    CANCEL_CERTIFICATE = "cancel_certificate"


SERVICE_REQUEST_KINDS: frozenset[ApplicationKind] = frozenset({
    ApplicationKind.RENEWAL,
    ApplicationKind.ADD_ROOMS,
    ApplicationKind.DELETE_ROOMS,
    ApplicationKind.CANCEL_CERTIFICATE,
})

NON_PAYMENT_KINDS: frozenset[ApplicationKind] = frozenset({
    ApplicationKind.DELETE_ROOMS,
    ApplicationKind.CANCEL_CERTIFICATE,
})


def requires_payment(kind: ApplicationKind | str) -> bool:
    return ApplicationKind(kind) not in NON_PAYMENT_KINDS


class DocumentStatus(str, Enum):
    """Verification decision recorded by the document-store collaborator."""

    PENDING = "pending"
    VERIFIED = "verified"
    NEEDS_CORRECTION = "needs_correction"
    REJECTED = "rejected"


class TransactionStatus(str, Enum):
    """Payment attempt lifecycle."""

    INITIATED = "initiated"
    SUCCESS = "success"
    FAILED = "failed"
    VERIFIED = "verified"


TERMINAL_TRANSACTION_STATUSES: frozenset[TransactionStatus] = frozenset({
    TransactionStatus.SUCCESS,
    TransactionStatus.FAILED,
    TransactionStatus.VERIFIED,
})


class InspectionOrderStatus(str, Enum):
    PENDING = "pending"
    SCHEDULED = "scheduled"
    COMPLETED = "completed"
