"""
homestay_services.service_requests -- Service Request Deriver.

Responsibility:
    Spawns a child application (renewal, add rooms, delete rooms,
    certificate cancellation) from an approved parent, and summarizes for
    each approved application which services are currently open to it.

Architecture position:
    Services -- composes the room-adjustment engine with kernel
    persistence.  The child starts in ``draft`` and from there follows the
    ordinary transition table.

Invariants enforced:
    - Only approved, unrevoked parents spawn requests, and only for their
      owner.
    - At most one non-terminal child per parent.  The parent row is
      locked while the check and the insert happen.
    - Renewal only inside ``[expiry - window_days, expiry]``.
    - The child clones the parent's descriptive fields; every review,
      inspection and certificate field starts empty.

Failure modes:
    - ApplicationNotFoundError: parent missing or not owned by the caller.
    - GuardRejection(condition="role"): caller is not a property owner.
    - ParentNotEligibleError, ActiveServiceRequestExistsError,
      RenewalWindowError, RoomLimitError.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from homestay_config import WorkflowConfig
from homestay_engines.room_adjustment import (
    ADD_ROOMS,
    DELETE_ROOMS,
    MIN_ROOMS_AFTER_DELETE,
    RenewalWindow,
    RoomBreakdown,
    compute_room_adjustment,
    renewal_window,
)
from homestay_kernel.domain.clock import Clock, SystemClock
from homestay_kernel.domain.dtos import Actor
from homestay_kernel.domain.workflow import (
    SERVICE_REQUEST_KINDS,
    TERMINAL_STATUSES,
    ActorRole,
    ApplicationKind,
    ApplicationStatus,
    requires_payment,
)
from homestay_kernel.exceptions import (
    ActiveServiceRequestExistsError,
    ApplicationNotFoundError,
    GuardRejection,
    ParentNotEligibleError,
    RenewalWindowError,
)
from homestay_kernel.logging_config import LogContext, get_logger
from homestay_kernel.models.application import Application
from homestay_kernel.services.application_service import ApplicationService

logger = get_logger("services.service_requests")

# Descriptive fields carried from the parent into the child.
CLONED_FIELDS: tuple[str, ...] = (
    "owner_id",
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
)

_CLOSED_STATUSES = tuple(s.value for s in TERMINAL_STATUSES)


@dataclass(frozen=True)
class ServiceSummary:
    """What an approved application may request right now."""

    application_id: UUID
    application_number: str | None
    property_name: str | None
    rooms: RoomBreakdown
    max_rooms_allowed: int
    certificate_expiry_date: datetime | None
    window: RenewalWindow | None
    can_renew: bool
    can_add_rooms: bool
    can_delete_rooms: bool
    active_request: Application | None


def breakdown_of(application: Application) -> RoomBreakdown:
    return RoomBreakdown(
        single=application.single_bed_rooms or 0,
        double=application.double_bed_rooms or 0,
        family=application.family_suites or 0,
    )


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


class ServiceRequestService:
    """Derives child applications from approved parents."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        config: WorkflowConfig | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._config = config or WorkflowConfig()

    # =========================================================================
    # Queries
    # =========================================================================

    def active_request(self, parent_id: UUID) -> Application | None:
        """The newest non-terminal child of ``parent_id``, if any."""
        return self._session.execute(
            select(Application)
            .where(
                Application.parent_application_id == parent_id,
                Application.status.not_in(_CLOSED_STATUSES),
            )
            .order_by(Application.created_at.desc())
            .limit(1)
        ).scalar_one_or_none()

    def summarize(self, application: Application) -> ServiceSummary:
        rooms = breakdown_of(application)
        window = renewal_window(
            application.certificate_expiry_date,
            self._clock.now(),
            window_days=self._config.renewal_window_days,
        )
        return ServiceSummary(
            application_id=application.id,
            application_number=application.application_number,
            property_name=application.property_name,
            rooms=rooms,
            max_rooms_allowed=self._config.max_rooms,
            certificate_expiry_date=application.certificate_expiry_date,
            window=window,
            can_renew=window.in_window if window is not None else False,
            can_add_rooms=rooms.total < self._config.max_rooms,
            can_delete_rooms=rooms.total > MIN_ROOMS_AFTER_DELETE,
            active_request=self.active_request(application.id),
        )

    def eligible_applications(self, actor: Actor) -> list[ServiceSummary]:
        """Approved applications the actor may request services for."""
        if actor.role not in (ActorRole.PROPERTY_OWNER, ActorRole.ADMIN):
            raise GuardRejection(
                "service_center", "role",
                "Service Center is currently available for property owners.",
            )
        stmt = select(Application).where(Application.status == ApplicationStatus.APPROVED.value)
        if actor.role == ActorRole.PROPERTY_OWNER:
            stmt = stmt.where(Application.owner_id == actor.actor_id)
        rows = self._session.execute(stmt.order_by(Application.created_at)).scalars().all()
        return [self.summarize(row) for row in rows]

    # =========================================================================
    # Derivation
    # =========================================================================

    def _lock_parent(self, parent_id: UUID) -> Application | None:
        return self._session.execute(
            select(Application)
            .where(Application.id == parent_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def create(
        self,
        actor: Actor,
        parent_id: UUID,
        service_type: ApplicationKind | str,
        note: str | None = None,
        room_delta: RoomBreakdown | None = None,
    ) -> Application:
        """
        Spawn a draft child application of kind ``service_type``.

        Raises:
            ActiveServiceRequestExistsError: another child is still open.
            RenewalWindowError: renewal requested outside the window.
            RoomLimitError: the room change breaks the room rules.
        """
        kind = ApplicationKind(service_type)
        if kind not in SERVICE_REQUEST_KINDS:
            raise ValueError(f"{kind.value} is not a service request")
        if actor.role != ActorRole.PROPERTY_OWNER:
            raise GuardRejection(
                "create_service_request", "role",
                "Only property owners can initiate service requests.",
            )

        with LogContext.bind(application_id=str(parent_id), actor_id=str(actor.actor_id)):
            parent = self._lock_parent(parent_id)
            if parent is None or parent.owner_id != actor.actor_id:
                raise ApplicationNotFoundError(str(parent_id))
            if parent.status != ApplicationStatus.APPROVED.value:
                raise ParentNotEligibleError(
                    str(parent_id), "Only approved applications can be renewed or amended."
                )
            if parent.certificate_revoked_at is not None:
                raise ParentNotEligibleError(
                    str(parent_id), "The certificate for this application has been cancelled."
                )

            active = self.active_request(parent.id)
            if active is not None:
                logger.info(
                    "service_request_conflict",
                    extra={
                        "existing_id": str(active.id),
                        "existing_kind": active.application_kind,
                        "existing_status": active.status,
                    },
                )
                raise ActiveServiceRequestExistsError(
                    str(parent.id), str(active.id), active.application_kind, active.status
                )

            now = self._clock.now()
            expiry = parent.certificate_expiry_date
            window = renewal_window(expiry, now, window_days=self._config.renewal_window_days)
            if kind == ApplicationKind.RENEWAL:
                if window is None:
                    raise ParentNotEligibleError(
                        str(parent_id), "This application does not have an active certificate yet."
                    )
                if not window.in_window:
                    raise RenewalWindowError(window.window_start, window.window_end)

            target = breakdown_of(parent)
            room_delta_value = None
            deletions: tuple[dict[str, Any], ...] = ()
            if kind in (ApplicationKind.ADD_ROOMS, ApplicationKind.DELETE_ROOMS):
                mode = ADD_ROOMS if kind == ApplicationKind.ADD_ROOMS else DELETE_ROOMS
                adjustment = compute_room_adjustment(
                    target, mode, room_delta, max_rooms=self._config.max_rooms
                )
                target = adjustment.target
                room_delta_value = adjustment.requested_room_delta
                deletions = adjustment.requested_deletions

            service_notes = (note or "").strip() or None
            context: dict[str, Any] = {
                "requestedRooms": target.as_dict(),
                "requiresPayment": requires_payment(kind),
            }
            if room_delta_value is not None:
                context["requestedRoomDelta"] = room_delta_value
            if deletions:
                context["requestedDeletions"] = [dict(d) for d in deletions]
            if window is not None:
                context["renewalWindow"] = {
                    "start": _iso(window.window_start),
                    "end": _iso(window.window_end),
                }
            if expiry is not None:
                context["inheritsCertificateExpiry"] = _iso(expiry)
            if service_notes:
                context["note"] = service_notes

            child = Application(
                **{name: getattr(parent, name) for name in CLONED_FIELDS},
                status=ApplicationStatus.DRAFT.value,
                application_kind=kind.value,
                parent_application_id=parent.id,
                parent_application_number=parent.application_number,
                parent_certificate_number=parent.certificate_number,
                inherited_certificate_valid_upto=expiry,
                service_requested_at=now,
                service_notes=service_notes,
                service_context=context,
                single_bed_rooms=target.single,
                double_bed_rooms=target.double,
                family_suites=target.family,
                attached_washrooms=max(target.total, parent.attached_washrooms or 0),
            )
            child.application_number = ApplicationService(
                self._session, self._clock
            ).allocate_application_number(parent.district)
            child.recompute_totals()
            self._session.add(child)
            self._session.flush()

            logger.info(
                "service_request_created",
                extra={
                    "service_request_id": str(child.id),
                    "application_kind": kind.value,
                    "requested_total_rooms": target.total,
                    "requires_payment": context["requiresPayment"],
                },
            )
            return child
