"""
Domain value objects exchanged between the engine, the guard and callers.

``ApplicationSnapshot`` is the immutable view of an application the guard
reasons about.  Fields that only make sense for one kind of application are
carried in a tagged union (``details``) rather than on the common core:

* ``NewRegistrationDetails`` -- fresh registrations.
* ``ServiceRequestDetails`` -- renewal / add / delete rooms / cancellation,
  linked to an approved parent.
* ``LegacyOnboardingDetails`` -- holders of a pre-portal registration
  certificate being migrated onto the portal.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Literal, Mapping, Union
from uuid import UUID

from homestay_kernel.domain.inspection import InspectionFindings, InspectionReportSnapshot
from homestay_kernel.domain.workflow import (
    ActorRole,
    ApplicationKind,
    ApplicationStatus,
    DocumentStatus,
)


@dataclass(frozen=True)
class Actor:
    """Identity claim supplied by the session resolver and trusted as-is."""

    actor_id: UUID | None
    role: ActorRole
    district: str | None = None

    @classmethod
    def system(cls) -> "Actor":
        """The treasury gateway acting without a human behind it."""
        return cls(actor_id=None, role=ActorRole.SYSTEM)


# =============================================================================
# Application detail variants
# =============================================================================


@dataclass(frozen=True)
class NewRegistrationDetails:
    tag: Literal["new_registration"] = "new_registration"
    category: str | None = None
    location_type: str | None = None
    validity_years: int = 1
    owner_gender: str | None = None


@dataclass(frozen=True)
class ServiceRequestDetails:
    kind: ApplicationKind
    parent_application_id: UUID
    parent_application_number: str | None = None
    parent_certificate_number: str | None = None
    inherited_certificate_valid_upto: datetime | None = None
    service_notes: str | None = None
    service_context: Mapping[str, Any] = field(default_factory=dict)
    tag: Literal["service_request"] = "service_request"


@dataclass(frozen=True)
class LegacyOnboardingDetails:
    legacy_certificate_number: str | None = None
    legacy_certificate_issued_date: date | None = None
    tag: Literal["legacy_onboarding"] = "legacy_onboarding"


ApplicationDetails = Union[NewRegistrationDetails, ServiceRequestDetails, LegacyOnboardingDetails]


@dataclass(frozen=True)
class ApplicationSnapshot:
    """Immutable view of an application at the moment a transition is attempted."""

    id: UUID
    application_number: str | None
    owner_id: UUID
    owner_name: str | None
    property_name: str | None
    status: ApplicationStatus
    kind: ApplicationKind
    district: str | None
    tehsil: str | None
    single_bed_rooms: int
    double_bed_rooms: int
    family_suites: int
    total_rooms: int
    total_fee: Decimal | None
    certificate_number: str | None
    certificate_expiry_date: datetime | None
    correction_submission_count: int
    da_id: UUID | None
    details: ApplicationDetails


# =============================================================================
# Transition inputs and outputs
# =============================================================================


@dataclass(frozen=True)
class TransitionRequest:
    """Transition-specific payload supplied by the caller."""

    remarks: str | None = None
    expected_status: ApplicationStatus | None = None
    inspection_date: date | None = None
    assigned_da_id: UUID | None = None
    assigned_da_district: str | None = None
    inspection_address: str | None = None
    special_instructions: str | None = None
    findings: InspectionFindings | None = None


@dataclass(frozen=True)
class OpenInspectionOrder:
    order_id: UUID
    assigned_to: UUID | None
    inspection_date: date | None
    has_report: bool


@dataclass(frozen=True)
class GuardContext:
    """Facts gathered from collaborators and storage before the guard runs."""

    today: date
    document_statuses: tuple[DocumentStatus, ...] = ()
    open_order: OpenInspectionOrder | None = None
    inspection_report: InspectionReportSnapshot | None = None


@dataclass(frozen=True)
class TransitionDecision:
    """Result of the guard. ``accepted`` XOR (``condition`` and ``reason``)."""

    transition: str
    accepted: bool
    from_status: ApplicationStatus
    to_status: ApplicationStatus | None = None
    condition: str | None = None
    reason: str | None = None

    @classmethod
    def accept(cls, transition: str, from_status: ApplicationStatus, to_status: ApplicationStatus) -> "TransitionDecision":
        return cls(transition, True, from_status, to_status=to_status)

    @classmethod
    def reject(cls, transition: str, from_status: ApplicationStatus, condition: str, reason: str) -> "TransitionDecision":
        return cls(transition, False, from_status, condition=condition, reason=reason)


@dataclass(frozen=True)
class AuditEntry:
    """One row appended to the audit log."""

    application_id: UUID
    actor_id: UUID | None
    action: str
    previous_status: str | None
    new_status: str | None
    feedback: str | None
    created_at: datetime
