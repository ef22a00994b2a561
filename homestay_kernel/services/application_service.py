"""
ApplicationService -- drafts, documents and legacy onboarding.

Responsibility:
    Everything the owner and the document store do to an application
    *outside* the transition table: creating a draft with its
    application number, editing descriptive fields and room counters
    while the application is editable, recording uploaded documents and
    their verification decisions, and opening a legacy onboarding
    request.

Architecture position:
    Kernel > Services.  Status changes are NOT made here; every status
    change goes through WorkflowEngine.  The one exception is legacy
    onboarding, which is created directly in ``legacy_rc_review``.

Invariants enforced:
    - total_rooms is never written from caller input; the Application
      mapper listener recomputes it on every flush.
    - Drafts are editable only by their owner and only in
      EDITABLE_STATUSES.
    - Application numbers come from a locked per-year sequence.

Failure modes:
    - ApplicationNotFoundError for unknown ids.
    - GuardRejection(condition="ownership" | "status") for edits the
      caller is not allowed to make.
    - ValueError for unknown fields or negative room counters.
"""

from __future__ import annotations

from datetime import date
from typing import Any, Mapping
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from homestay_kernel.domain.clock import Clock, SystemClock, local_date
from homestay_kernel.domain.dtos import Actor
from homestay_kernel.domain.numbering import format_application_number
from homestay_kernel.domain.workflow import (
    EDITABLE_STATUSES,
    ActorRole,
    ApplicationKind,
    ApplicationStatus,
    DocumentStatus,
)
from homestay_kernel.exceptions import ApplicationNotFoundError, GuardRejection, NotFoundError
from homestay_kernel.logging_config import get_logger
from homestay_kernel.models.application import Application
from homestay_kernel.models.document import ApplicationDocument
from homestay_kernel.services.audit_log import AuditLog
from homestay_kernel.services.sequence_service import SequenceService

logger = get_logger("services.application")

EDITABLE_FIELDS: frozenset[str] = frozenset({
    "owner_name",
    "owner_gender",
    "owner_mobile",
    "owner_email",
    "property_name",
    "address",
    "district",
    "tehsil",
    "pincode",
    "category",
    "location_type",
    "validity_years",
    "single_bed_rooms",
    "double_bed_rooms",
    "family_suites",
    "attached_washrooms",
})

ROOM_FIELDS = ("single_bed_rooms", "double_bed_rooms", "family_suites", "attached_washrooms")
ALLOWED_VALIDITY_YEARS = (1, 3)


def _check_fields(changes: Mapping[str, Any]) -> None:
    unknown = sorted(set(changes) - EDITABLE_FIELDS)
    if unknown:
        raise ValueError(f"Fields cannot be edited: {', '.join(unknown)}")
    for name in ROOM_FIELDS:
        if name in changes and (changes[name] is None or int(changes[name]) < 0):
            raise ValueError(f"{name} must be a non-negative integer")
    if "validity_years" in changes and changes["validity_years"] not in ALLOWED_VALIDITY_YEARS:
        raise ValueError("validity_years must be 1 or 3")


class ApplicationService:
    """Owner-side operations on applications."""

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()

    # =========================================================================
    # Reads
    # =========================================================================

    def get(self, application_id: UUID) -> Application:
        application = self._session.get(Application, application_id)
        if application is None:
            raise ApplicationNotFoundError(str(application_id))
        return application

    def list_for_owner(self, owner_id: UUID) -> list[Application]:
        return list(
            self._session.execute(
                select(Application)
                .where(Application.owner_id == owner_id)
                .order_by(Application.created_at.desc())
            ).scalars().all()
        )

    # =========================================================================
    # Drafts
    # =========================================================================

    def allocate_application_number(self, district: str | None) -> str:
        """Next ``HP-HS-{year}-{code}-{serial}`` number for the current IST year."""
        year = local_date(self._clock.now()).year
        serial = SequenceService(self._session).next_value(SequenceService.application(year))
        return format_application_number(serial, district, year)

    def create_draft(self, owner: Actor, **fields: Any) -> Application:
        """Open a new registration in ``draft`` with its application number."""
        _check_fields(fields)
        application = Application(
            owner_id=owner.actor_id,
            status=ApplicationStatus.DRAFT.value,
            application_kind=ApplicationKind.NEW_REGISTRATION.value,
            **fields,
        )
        application.application_number = self.allocate_application_number(fields.get("district"))
        application.recompute_totals()
        self._session.add(application)
        self._session.flush()

        logger.info(
            "draft_created",
            extra={
                "application_id": str(application.id),
                "application_number": application.application_number,
                "total_rooms": application.total_rooms,
            },
        )
        return application

    def update_draft(self, application_id: UUID, actor: Actor, changes: Mapping[str, Any]) -> Application:
        """Edit descriptive fields and room counters of an editable application."""
        application = self.get(application_id)
        if actor.role != ActorRole.PROPERTY_OWNER or actor.actor_id != application.owner_id:
            raise GuardRejection(
                "update_draft", "ownership", "You can only edit your own applications"
            )
        if application.current_status not in EDITABLE_STATUSES:
            raise GuardRejection(
                "update_draft",
                "status",
                f"Application is {application.status} and can no longer be edited",
            )
        _check_fields(changes)

        for name, value in changes.items():
            setattr(application, name, value)
        application.recompute_totals()
        self._session.flush()

        logger.info(
            "draft_updated",
            extra={
                "application_id": str(application.id),
                "fields": sorted(changes),
                "total_rooms": application.total_rooms,
            },
        )
        return application

    # =========================================================================
    # Legacy onboarding
    # =========================================================================

    def create_legacy_onboarding(
        self,
        owner: Actor,
        legacy_certificate_number: str,
        legacy_certificate_issued_date: date | None = None,
        **fields: Any,
    ) -> Application:
        """
        Register a holder of a pre-portal certificate.

        The application starts directly in ``legacy_rc_review`` and the
        audit trail records the submission.
        """
        _check_fields(fields)
        application = Application(
            owner_id=owner.actor_id,
            status=ApplicationStatus.LEGACY_RC_REVIEW.value,
            application_kind=ApplicationKind.NEW_REGISTRATION.value,
            is_legacy=True,
            legacy_certificate_number=legacy_certificate_number,
            legacy_certificate_issued_date=legacy_certificate_issued_date,
            submitted_at=self._clock.now(),
            **fields,
        )
        application.application_number = self.allocate_application_number(fields.get("district"))
        application.recompute_totals()
        self._session.add(application)
        self._session.flush()

        AuditLog(self._session, self._clock).append(
            application.id,
            owner.actor_id,
            "legacy_rc_submitted",
            None,
            ApplicationStatus.LEGACY_RC_REVIEW.value,
            feedback=f"Existing certificate {legacy_certificate_number} submitted for verification",
        )
        logger.info(
            "legacy_onboarding_created",
            extra={
                "application_id": str(application.id),
                "legacy_certificate_number": legacy_certificate_number,
            },
        )
        return application

    # =========================================================================
    # Documents
    # =========================================================================

    def record_document(
        self,
        application_id: UUID,
        document_type: str,
        file_name: str,
    ) -> ApplicationDocument:
        self.get(application_id)
        document = ApplicationDocument(
            application_id=application_id,
            document_type=document_type,
            file_name=file_name,
            verification_status=DocumentStatus.PENDING.value,
        )
        self._session.add(document)
        self._session.flush()
        logger.info(
            "document_recorded",
            extra={"application_id": str(application_id), "document_type": document_type},
        )
        return document

    def set_document_status(
        self,
        document_id: UUID,
        status: DocumentStatus | str,
        verified_by: UUID | None = None,
        notes: str | None = None,
    ) -> ApplicationDocument:
        document = self._session.get(ApplicationDocument, document_id)
        if document is None:
            raise NotFoundError(f"Document not found: {document_id}")
        document.verification_status = DocumentStatus(status).value
        document.verified_by = verified_by
        document.verified_at = self._clock.now()
        document.verification_notes = notes
        self._session.flush()
        logger.info(
            "document_status_set",
            extra={
                "application_id": str(document.application_id),
                "document_id": str(document_id),
                "verification_status": document.verification_status,
            },
        )
        return document

    def document_statuses(self, application_id: UUID) -> tuple[DocumentStatus, ...]:
        rows = self._session.execute(
            select(ApplicationDocument.verification_status)
            .where(ApplicationDocument.application_id == application_id)
        ).scalars().all()
        return tuple(DocumentStatus(s) for s in rows)
