"""
Module: homestay_kernel.models.application
Responsibility: ORM persistence for homestay applications.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/ value objects only.

Invariants enforced:
    - total_rooms == single_bed_rooms + double_bed_rooms + family_suites,
      recomputed by a mapper listener on every INSERT and UPDATE.  Caller
      input is never trusted for the total.
    - status is written only by the Workflow Engine.
    - certificate_number is assigned once (see db/immutability.py).
    - row_version is an optimistic version counter; a stale UPDATE raises
      StaleDataError, which the engine reports as ConcurrencyConflict.

Storage is one flat row.  ``to_snapshot()`` projects it into the tagged
union of detail variants the domain layer works with.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import JSON, Boolean, ForeignKey, Index, Integer, String, Text, event
from sqlalchemy.orm import Mapped, mapped_column

from homestay_kernel.db.base import TimestampedBase, UUIDString
from homestay_kernel.domain.dtos import (
    ApplicationDetails,
    ApplicationSnapshot,
    LegacyOnboardingDetails,
    NewRegistrationDetails,
    ServiceRequestDetails,
)
from homestay_kernel.domain.workflow import (
    SERVICE_REQUEST_KINDS,
    ApplicationKind,
    ApplicationStatus,
)


class Application(TimestampedBase):
    """A homestay registration application or a derived service request."""

    __tablename__ = "homestay_applications"

    __table_args__ = (
        Index("idx_application_owner", "owner_id"),
        Index("idx_application_status", "status"),
        Index("idx_application_parent", "parent_application_id"),
    )

    application_number: Mapped[str | None] = mapped_column(String(40), unique=True, nullable=True)
    status: Mapped[str] = mapped_column(
        String(40), nullable=False, default=ApplicationStatus.DRAFT.value
    )
    application_kind: Mapped[str] = mapped_column(
        String(30), nullable=False, default=ApplicationKind.NEW_REGISTRATION.value
    )

    # Owner and property
    owner_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    owner_name: Mapped[str | None] = mapped_column(String(200))
    owner_gender: Mapped[str | None] = mapped_column(String(20))
    owner_mobile: Mapped[str | None] = mapped_column(String(20))
    owner_email: Mapped[str | None] = mapped_column(String(200))
    property_name: Mapped[str | None] = mapped_column(String(200))
    address: Mapped[str | None] = mapped_column(Text)
    district: Mapped[str | None] = mapped_column(String(100))
    tehsil: Mapped[str | None] = mapped_column(String(100))
    pincode: Mapped[str | None] = mapped_column(String(10))
    category: Mapped[str | None] = mapped_column(String(20))
    location_type: Mapped[str | None] = mapped_column(String(10))
    validity_years: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    # Rooms
    single_bed_rooms: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    double_bed_rooms: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    family_suites: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_rooms: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    attached_washrooms: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    total_fee: Mapped[Decimal | None] = mapped_column(nullable=True)

    # Service request linkage
    parent_application_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("homestay_applications.id"), nullable=True
    )
    parent_application_number: Mapped[str | None] = mapped_column(String(40))
    parent_certificate_number: Mapped[str | None] = mapped_column(String(40))
    inherited_certificate_valid_upto: Mapped[datetime | None] = mapped_column(nullable=True)
    service_requested_at: Mapped[datetime | None] = mapped_column(nullable=True)
    service_notes: Mapped[str | None] = mapped_column(Text)
    service_context: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)

    # Legacy onboarding
    is_legacy: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    legacy_certificate_number: Mapped[str | None] = mapped_column(String(60))
    legacy_certificate_issued_date: Mapped[date | None] = mapped_column(nullable=True)

    # Certificate
    certificate_number: Mapped[str | None] = mapped_column(String(40), unique=True, nullable=True)
    certificate_issued_date: Mapped[datetime | None] = mapped_column(nullable=True)
    certificate_expiry_date: Mapped[datetime | None] = mapped_column(nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(nullable=True)
    certificate_revoked_at: Mapped[datetime | None] = mapped_column(nullable=True)
    certificate_revocation_reason: Mapped[str | None] = mapped_column(Text)

    # Review trail (written only by the Workflow Engine)
    submitted_at: Mapped[datetime | None] = mapped_column(nullable=True)
    correction_submission_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    clarification_requested: Mapped[str | None] = mapped_column(Text)
    rejection_reason: Mapped[str | None] = mapped_column(Text)
    da_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    da_review_date: Mapped[datetime | None] = mapped_column(nullable=True)
    da_forwarded_date: Mapped[datetime | None] = mapped_column(nullable=True)
    da_remarks: Mapped[str | None] = mapped_column(Text)
    dtdo_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    dtdo_review_date: Mapped[datetime | None] = mapped_column(nullable=True)
    dtdo_remarks: Mapped[str | None] = mapped_column(Text)
    district_officer_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    district_review_date: Mapped[datetime | None] = mapped_column(nullable=True)
    district_notes: Mapped[str | None] = mapped_column(Text)
    state_officer_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    state_review_date: Mapped[datetime | None] = mapped_column(nullable=True)
    state_notes: Mapped[str | None] = mapped_column(Text)

    row_version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": row_version}

    def recompute_totals(self) -> None:
        self.total_rooms = (
            (self.single_bed_rooms or 0)
            + (self.double_bed_rooms or 0)
            + (self.family_suites or 0)
        )

    @property
    def kind(self) -> ApplicationKind:
        return ApplicationKind(self.application_kind)

    @property
    def current_status(self) -> ApplicationStatus:
        return ApplicationStatus(self.status)

    def _details(self) -> ApplicationDetails:
        kind = self.kind
        if kind in SERVICE_REQUEST_KINDS and self.parent_application_id is not None:
            return ServiceRequestDetails(
                kind=kind,
                parent_application_id=self.parent_application_id,
                parent_application_number=self.parent_application_number,
                parent_certificate_number=self.parent_certificate_number,
                inherited_certificate_valid_upto=self.inherited_certificate_valid_upto,
                service_notes=self.service_notes,
                service_context=dict(self.service_context or {}),
            )
        if self.is_legacy:
            return LegacyOnboardingDetails(
                legacy_certificate_number=self.legacy_certificate_number,
                legacy_certificate_issued_date=self.legacy_certificate_issued_date,
            )
        return NewRegistrationDetails(
            category=self.category,
            location_type=self.location_type,
            validity_years=self.validity_years or 1,
            owner_gender=self.owner_gender,
        )

    def to_snapshot(self) -> ApplicationSnapshot:
        return ApplicationSnapshot(
            id=self.id,
            application_number=self.application_number,
            owner_id=self.owner_id,
            owner_name=self.owner_name,
            property_name=self.property_name,
            status=self.current_status,
            kind=self.kind,
            district=self.district,
            tehsil=self.tehsil,
            single_bed_rooms=self.single_bed_rooms or 0,
            double_bed_rooms=self.double_bed_rooms or 0,
            family_suites=self.family_suites or 0,
            total_rooms=self.total_rooms or 0,
            total_fee=self.total_fee,
            certificate_number=self.certificate_number,
            certificate_expiry_date=self.certificate_expiry_date,
            correction_submission_count=self.correction_submission_count or 0,
            da_id=self.da_id,
            details=self._details(),
        )

    def __repr__(self) -> str:
        return f"<Application {self.application_number or self.id} [{self.status}]>"


@event.listens_for(Application, "before_insert")
@event.listens_for(Application, "before_update")
def _recompute_total_rooms(mapper, connection, target: Application) -> None:
    target.recompute_totals()
