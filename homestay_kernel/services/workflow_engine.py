"""
WorkflowEngine -- applies accepted transitions atomically.

Responsibility:
    Thin coordinator around the pure Transition Guard.  For one attempt it
    locks the application row, gathers the facts the guard needs
    (document statuses, the open inspection order, the latest report),
    asks the guard, and on acceptance writes, in the caller's transaction:

        1. the new status and the role-specific review fields;
        2. one ApplicationAction row (plus follow-up rows for certificate
           issuance);
        3. one notification_outbox row for the transition's event.

    Effects per transition are looked up in ``_EFFECTS``; the engine never
    branches on role or status itself.

Architecture position:
    Kernel > Services.  Does not import homestay_engines; fee assessment
    is injected by the services layer.  Never commits.

Invariants enforced:
    - Status, audit row and outbox row are flushed together or not at all.
    - Transitions for one application are serialized by the row lock and
      by ``row_version``; ``expected_status`` adds an explicit optimistic
      check for callers that read the application earlier.
    - Notification delivery is NOT attempted here.

Failure modes:
    - ApplicationNotFoundError: unknown application id.
    - GuardRejection: precondition unmet; nothing written.
    - ConcurrencyConflict: expected_status mismatch or stale row_version.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import date, datetime, time as dt_time
from decimal import Decimal
from typing import Callable
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from homestay_kernel.domain.clock import IST, Clock, SystemClock, local_date
from homestay_kernel.domain.dtos import (
    Actor,
    GuardContext,
    OpenInspectionOrder,
    TransitionDecision,
    TransitionRequest,
)
from homestay_kernel.domain.guard import evaluate_transition
from homestay_kernel.domain.inspection import InspectionReportSnapshot, early_override_note
from homestay_kernel.domain.notifications import NotificationEvent
from homestay_kernel.domain.numbering import format_certificate_number
from homestay_kernel.domain.transitions import TransitionSpec, WorkflowRules, get_transition, transitions_from
from homestay_kernel.domain.workflow import (
    ActorRole,
    ApplicationKind,
    DocumentStatus,
    InspectionOrderStatus,
)
from homestay_kernel.exceptions import ApplicationNotFoundError, ConcurrencyConflict, GuardRejection
from homestay_kernel.logging_config import LogContext, get_logger
from homestay_kernel.models.application import Application
from homestay_kernel.models.application_action import ApplicationAction
from homestay_kernel.models.document import ApplicationDocument
from homestay_kernel.models.inspection import InspectionOrder, InspectionReport
from homestay_kernel.models.notification_outbox import NotificationOutbox
from homestay_kernel.services.audit_log import AuditLog
from homestay_kernel.services.sequence_service import SequenceService

logger = get_logger("services.workflow_engine")

FeeAssessor = Callable[[Application], "Decimal | None"]

CERTIFICATE_SERIAL_BASE = 10000


def add_years(moment: datetime, years: int) -> datetime:
    """Same calendar day ``years`` later; 29 February falls back to the 28th."""
    try:
        return moment.replace(year=moment.year + years)
    except ValueError:
        return moment.replace(year=moment.year + years, day=28)


def format_display_date(value: date | datetime | None) -> str:
    if value is None:
        return ""
    if isinstance(value, datetime):
        value = local_date(value)
    return value.strftime("%d %b %Y")


@dataclass(frozen=True)
class TransitionOutcome:
    """What an accepted transition wrote."""

    application: Application
    decision: TransitionDecision
    actions: tuple[ApplicationAction, ...]
    event: NotificationEvent

    @property
    def audit_entry(self) -> ApplicationAction:
        return self.actions[0]


@dataclass
class _Effect:
    feedback: str | None = None
    extras: dict[str, str] = field(default_factory=dict)
    follow_ups: list[tuple[str, str]] = field(default_factory=list)


class WorkflowEngine:
    """Attempts named transitions against stored applications."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        rules: WorkflowRules | None = None,
        fee_assessor: FeeAssessor | None = None,
        certificate_validity_years: int = 1,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._rules = rules or WorkflowRules()
        self._fee_assessor = fee_assessor
        self._validity_years = certificate_validity_years
        self._audit = AuditLog(session, self._clock)

    # =========================================================================
    # Public API
    # =========================================================================

    def attempt(
        self,
        application_id: UUID,
        actor: Actor,
        transition: str,
        request: TransitionRequest | None = None,
    ) -> TransitionOutcome:
        """
        Apply ``transition`` to the application or raise.

        Raises:
            GuardRejection: the guard named an unmet precondition.
            ConcurrencyConflict: the application moved underneath the caller.
        """
        spec = get_transition(transition)
        request = request or TransitionRequest()
        t0 = time.monotonic()

        with LogContext.bind(application_id=str(application_id), actor_id=_key(actor.actor_id)):
            application = self._lock(application_id)
            previous = application.status

            if request.expected_status is not None and previous != request.expected_status.value:
                logger.warning(
                    "transition_conflict",
                    extra={
                        "transition": transition,
                        "expected_status": request.expected_status.value,
                        "actual_status": previous,
                    },
                )
                raise ConcurrencyConflict(
                    str(application_id), request.expected_status.value, previous
                )

            context = self._gather_context(application)
            decision = evaluate_transition(
                transition, application.to_snapshot(), actor, request, context, self._rules
            )
            if not decision.accepted:
                logger.info(
                    "transition_rejected",
                    extra={
                        "transition": transition,
                        "from_status": previous,
                        "role": actor.role.value,
                        "condition": decision.condition,
                    },
                )
                raise GuardRejection(transition, decision.condition, decision.reason)

            try:
                effect = getattr(self, _EFFECTS[transition])(application, actor, request, context)
                application.status = decision.to_status.value
                self._session.flush()
            except StaleDataError as exc:
                logger.warning(
                    "transition_conflict",
                    extra={"transition": transition, "expected_status": previous},
                )
                raise ConcurrencyConflict(str(application_id), previous, None) from exc

            actions = [
                self._audit.append(
                    application.id,
                    actor.actor_id,
                    spec.audit_action,
                    previous,
                    application.status,
                    feedback=effect.feedback,
                )
            ]
            for action_name, feedback in effect.follow_ups:
                actions.append(
                    self._audit.append(
                        application.id,
                        actor.actor_id,
                        action_name,
                        application.status,
                        application.status,
                        feedback=feedback,
                    )
                )

            event = self._enqueue(spec, application, request, effect)

            logger.info(
                "transition_applied",
                extra={
                    "transition": transition,
                    "from_status": previous,
                    "to_status": application.status,
                    "role": actor.role.value,
                    "event_id": event.event_id.value,
                    "duration_ms": round((time.monotonic() - t0) * 1000, 3),
                },
            )
            return TransitionOutcome(application, decision, tuple(actions), event)

    def evaluate(
        self,
        application_id: UUID,
        actor: Actor,
        transition: str,
        request: TransitionRequest | None = None,
    ) -> TransitionDecision:
        """Ask the guard without writing anything."""
        application = self._get(application_id)
        return evaluate_transition(
            transition,
            application.to_snapshot(),
            actor,
            request or TransitionRequest(),
            self._gather_context(application),
            self._rules,
        )

    def available_transitions(self, application_id: UUID, actor: Actor) -> tuple[str, ...]:
        """Transition names whose status and role gates the actor passes."""
        application = self._get(application_id)
        return tuple(
            spec.name for spec in transitions_from(application.current_status, actor.role)
        )

    # =========================================================================
    # Loading and guard facts
    # =========================================================================

    def _get(self, application_id: UUID) -> Application:
        application = self._session.get(Application, application_id)
        if application is None:
            raise ApplicationNotFoundError(str(application_id))
        return application

    def _lock(self, application_id: UUID) -> Application:
        application = self._session.execute(
            select(Application)
            .where(Application.id == application_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if application is None:
            raise ApplicationNotFoundError(str(application_id))
        return application

    def _latest_order(self, application_id: UUID) -> InspectionOrder | None:
        return self._session.execute(
            select(InspectionOrder)
            .where(InspectionOrder.application_id == application_id)
            .order_by(InspectionOrder.round_no.desc())
            .limit(1)
        ).scalar_one_or_none()

    def _latest_report(self, application_id: UUID) -> InspectionReport | None:
        return self._session.execute(
            select(InspectionReport)
            .join(InspectionOrder, InspectionReport.inspection_order_id == InspectionOrder.id)
            .where(InspectionReport.application_id == application_id)
            .order_by(InspectionOrder.round_no.desc())
            .limit(1)
        ).scalar_one_or_none()

    def _gather_context(self, application: Application) -> GuardContext:
        statuses = self._session.execute(
            select(ApplicationDocument.verification_status)
            .where(ApplicationDocument.application_id == application.id)
        ).scalars().all()

        open_order = None
        order = self._latest_order(application.id)
        if order is not None and order.status != InspectionOrderStatus.COMPLETED.value:
            report_count = self._session.execute(
                select(func.count(InspectionReport.id))
                .where(InspectionReport.inspection_order_id == order.id)
            ).scalar_one()
            open_order = OpenInspectionOrder(
                order_id=order.id,
                assigned_to=order.assigned_to,
                inspection_date=order.inspection_date,
                has_report=report_count > 0,
            )

        snapshot = None
        report = self._latest_report(application.id)
        if report is not None:
            snapshot = InspectionReportSnapshot(
                mandatory_checklist=dict(report.mandatory_checklist or {}),
                room_count_verified=report.room_count_verified,
                category_meets_standards=report.category_meets_standards,
                overall_satisfactory=report.overall_satisfactory,
            )

        return GuardContext(
            today=local_date(self._clock.now()),
            document_statuses=tuple(DocumentStatus(s) for s in statuses),
            open_order=open_order,
            inspection_report=snapshot,
        )

    # =========================================================================
    # Shared effects
    # =========================================================================

    def _stamp(self, application: Application, reviewer: str, actor: Actor, remarks: str | None) -> None:
        now = self._clock.now()
        if reviewer == "da":
            application.da_id = actor.actor_id
            application.da_review_date = now
            if remarks:
                application.da_remarks = remarks
        elif reviewer == "dtdo":
            application.dtdo_id = actor.actor_id
            application.dtdo_review_date = now
            if remarks:
                application.dtdo_remarks = remarks
        elif reviewer == "district":
            application.district_officer_id = actor.actor_id
            application.district_review_date = now
            application.district_notes = remarks
        elif reviewer == "state":
            application.state_officer_id = actor.actor_id
            application.state_review_date = now
            application.state_notes = remarks

    def _assess_fee(self, application: Application) -> None:
        if self._fee_assessor is None:
            return
        fee = self._fee_assessor(application)
        if fee is not None:
            application.total_fee = fee

    def _issue_certificate(self, application: Application) -> tuple[str, str]:
        now = self._clock.now()
        year = local_date(now).year
        serial = CERTIFICATE_SERIAL_BASE + SequenceService(self._session).next_value(
            SequenceService.certificate(year)
        )
        application.certificate_number = format_certificate_number(year, serial)
        application.certificate_issued_date = now
        application.certificate_expiry_date = add_years(now, self._validity_years)
        application.approved_at = now
        logger.info(
            "certificate_issued",
            extra={
                "certificate_number": application.certificate_number,
                "certificate_expiry_date": application.certificate_expiry_date.isoformat(),
            },
        )
        return (
            "certificate_issued",
            f"Certificate {application.certificate_number} issued on "
            f"{format_display_date(now)} (valid till "
            f"{format_display_date(application.certificate_expiry_date)}).",
        )

    def _enqueue(
        self,
        spec: TransitionSpec,
        application: Application,
        request: TransitionRequest,
        effect: _Effect,
    ) -> NotificationEvent:
        extras = {
            "APPLICATION_ID": application.application_number or str(application.id),
            "OWNER_NAME": application.owner_name or "",
        }
        remarks = _remarks(request)
        if remarks:
            extras["REMARKS"] = remarks
        extras.update(effect.extras)

        event = NotificationEvent(
            event_id=spec.event_id,
            application_id=application.id,
            recipient_id=application.owner_id,
            extras=extras,
        )
        self._session.add(
            NotificationOutbox(
                event_id=event.event_id.value,
                application_id=event.application_id,
                recipient_id=event.recipient_id,
                extras=dict(extras),
            )
        )
        self._session.flush()
        return event

    # =========================================================================
    # Per-transition effects
    # =========================================================================

    def _on_submit(self, application, actor, request, context) -> _Effect:
        application.submitted_at = self._clock.now()
        self._assess_fee(application)
        return _Effect(feedback=_remarks(request) or None)

    def _on_resubmit(self, application, actor, request, context) -> _Effect:
        application.submitted_at = self._clock.now()
        application.correction_submission_count = (application.correction_submission_count or 0) + 1
        self._assess_fee(application)
        return _Effect(
            feedback=_remarks(request)
            or f"Corrections resubmitted (attempt {application.correction_submission_count})"
        )

    def _on_start_scrutiny(self, application, actor, request, context) -> _Effect:
        self._stamp(application, "da", actor, _remarks(request))
        return _Effect(feedback=_remarks(request) or None)

    def _on_forward_to_dtdo(self, application, actor, request, context) -> _Effect:
        self._stamp(application, "da", actor, _remarks(request))
        application.da_forwarded_date = self._clock.now()
        return _Effect(feedback=_remarks(request))

    def _on_da_send_back(self, application, actor, request, context) -> _Effect:
        self._stamp(application, "da", actor, _remarks(request))
        application.clarification_requested = _remarks(request)
        return _Effect(feedback=_remarks(request))

    def _on_officer_send_back(self, application, actor, request, context) -> _Effect:
        reviewer = "state" if actor.role == ActorRole.STATE_OFFICER else "district"
        self._stamp(application, reviewer, actor, _remarks(request))
        application.clarification_requested = _remarks(request)
        return _Effect(feedback=_remarks(request))

    def _on_dtdo_accept(self, application, actor, request, context) -> _Effect:
        self._stamp(application, "dtdo", actor, _remarks(request))
        return _Effect(feedback=_remarks(request))

    def _on_dtdo_reject(self, application, actor, request, context) -> _Effect:
        self._stamp(application, "dtdo", actor, _remarks(request))
        application.rejection_reason = _remarks(request)
        return _Effect(feedback=_remarks(request))

    def _on_dtdo_revert(self, application, actor, request, context) -> _Effect:
        self._stamp(application, "dtdo", actor, _remarks(request))
        application.clarification_requested = _remarks(request)
        return _Effect(feedback=_remarks(request))

    def _on_schedule_inspection(self, application, actor, request, context) -> _Effect:
        latest = self._latest_order(application.id)
        if latest is not None and latest.status != InspectionOrderStatus.COMPLETED.value:
            order = latest
        else:
            order = InspectionOrder(
                application_id=application.id,
                round_no=(latest.round_no + 1) if latest is not None else 1,
            )
            self._session.add(order)

        order.scheduled_by = actor.actor_id
        order.assigned_to = request.assigned_da_id or application.da_id
        order.inspection_date = request.inspection_date
        order.inspection_address = request.inspection_address or application.address
        order.special_instructions = request.special_instructions
        order.status = InspectionOrderStatus.SCHEDULED.value
        self._stamp(application, "dtdo", actor, _remarks(request))

        when = format_display_date(request.inspection_date)
        return _Effect(
            feedback=_remarks(request) or f"Inspection scheduled for {when}",
            extras={"INSPECTION_DATE": when},
        )

    def _on_submit_inspection_report(self, application, actor, request, context) -> _Effect:
        findings = request.findings
        order = self._session.get(InspectionOrder, context.open_order.order_id)

        mandatory_remarks = findings.mandatory_remarks
        note = early_override_note(findings, order.inspection_date)
        if note:
            mandatory_remarks = f"{mandatory_remarks}\n\n{note}" if mandatory_remarks else note

        self._session.add(
            InspectionReport(
                inspection_order_id=order.id,
                application_id=application.id,
                submitted_by=actor.actor_id,
                submitted_date=self._clock.now(),
                actual_inspection_date=findings.actual_inspection_date,
                room_count_verified=findings.room_count_verified,
                actual_room_count=findings.actual_room_count,
                category_meets_standards=findings.category_meets_standards,
                recommended_category=findings.recommended_category,
                overall_satisfactory=findings.overall_satisfactory,
                recommendation=findings.recommendation,
                mandatory_checklist=dict(findings.mandatory_checklist),
                mandatory_remarks=mandatory_remarks,
                desirable_checklist=dict(findings.desirable_checklist),
                desirable_remarks=findings.desirable_remarks,
                fire_safety_compliant=findings.fire_safety_compliant,
                fire_safety_issues=findings.fire_safety_issues,
                structural_safety=findings.structural_safety,
                structural_issues=findings.structural_issues,
                detailed_findings=findings.detailed_findings,
                early_inspection_override=findings.early_inspection_override,
                early_inspection_reason=findings.early_inspection_reason,
            )
        )
        order.status = InspectionOrderStatus.COMPLETED.value
        if note:
            logger.info(
                "early_inspection_recorded",
                extra={
                    "scheduled_date": order.inspection_date.isoformat(),
                    "actual_inspection_date": findings.actual_inspection_date.isoformat(),
                },
            )
        return _Effect(
            feedback=f"Inspection report submitted. Recommendation: {findings.recommendation}",
        )

    def _on_approve_inspection_report(self, application, actor, request, context) -> _Effect:
        self._stamp(application, "dtdo", actor, _remarks(request))
        return _Effect(feedback=_remarks(request) or "Inspection report approved")

    def _on_reject_inspection_report(self, application, actor, request, context) -> _Effect:
        self._stamp(application, "dtdo", actor, _remarks(request))
        application.rejection_reason = _remarks(request)
        return _Effect(feedback=_remarks(request))

    def _on_raise_objections(self, application, actor, request, context) -> _Effect:
        self._stamp(application, "dtdo", actor, _remarks(request))
        application.clarification_requested = _remarks(request)

        # The next scheduling round reuses this pending order.
        latest = self._latest_order(application.id)
        self._session.add(
            InspectionOrder(
                application_id=application.id,
                round_no=(latest.round_no + 1) if latest is not None else 1,
                scheduled_by=actor.actor_id,
                assigned_to=latest.assigned_to if latest is not None else application.da_id,
                inspection_address=latest.inspection_address if latest is not None else application.address,
                status=InspectionOrderStatus.PENDING.value,
            )
        )
        return _Effect(feedback=_remarks(request))

    def _on_complete_service_request(self, application, actor, request, context) -> _Effect:
        self._stamp(application, "dtdo", actor, _remarks(request))
        application.approved_at = self._clock.now()
        if application.kind == ApplicationKind.CANCEL_CERTIFICATE and application.parent_application_id:
            self._revoke_parent(application, actor, _remarks(request))
        return _Effect(feedback=_remarks(request))

    def _revoke_parent(self, application: Application, actor: Actor, reason: str) -> None:
        parent = self._lock(application.parent_application_id)
        parent.certificate_revoked_at = self._clock.now()
        parent.certificate_revocation_reason = reason
        self._session.flush()
        self._audit.append(
            parent.id,
            actor.actor_id,
            "certificate_revoked",
            parent.status,
            parent.status,
            feedback=(
                f"Certificate {parent.certificate_number} cancelled through request "
                f"{application.application_number or application.id}: {reason}"
            ),
        )
        logger.info(
            "parent_certificate_revoked",
            extra={
                "parent_application_id": str(parent.id),
                "certificate_number": parent.certificate_number,
            },
        )

    def _on_legacy_verify(self, application, actor, request, context) -> _Effect:
        reviewer = "da" if actor.role == ActorRole.DEALING_ASSISTANT else "dtdo"
        self._stamp(application, reviewer, actor, _remarks(request))
        now = self._clock.now()
        issued = now
        if application.legacy_certificate_issued_date is not None:
            issued = datetime.combine(
                application.legacy_certificate_issued_date, dt_time.min, tzinfo=IST
            )
        if application.legacy_certificate_number and not application.certificate_number:
            application.certificate_number = application.legacy_certificate_number
            application.certificate_issued_date = issued
            application.certificate_expiry_date = add_years(
                issued, application.validity_years or self._validity_years
            )
        application.approved_at = now
        return _Effect(
            feedback=_remarks(request)
            or f"Legacy certificate {application.legacy_certificate_number} verified",
            extras={"CERTIFICATE_NUMBER": application.certificate_number or ""},
        )

    def _on_initiate_payment(self, application, actor, request, context) -> _Effect:
        return _Effect(feedback=_remarks(request) or None)

    def _on_confirm_payment(self, application, actor, request, context) -> _Effect:
        follow_up = self._issue_certificate(application)
        return _Effect(
            feedback=_remarks(request) or "Payment confirmed",
            extras={"CERTIFICATE_NUMBER": application.certificate_number},
            follow_ups=[follow_up],
        )


def _remarks(request: TransitionRequest) -> str:
    return (request.remarks or "").strip()


def _key(value: UUID | None) -> str | None:
    return str(value) if value is not None else None


_EFFECTS: dict[str, str] = {
    "submit": "_on_submit",
    "resubmit": "_on_resubmit",
    "start_scrutiny": "_on_start_scrutiny",
    "forward_to_dtdo": "_on_forward_to_dtdo",
    "da_send_back": "_on_da_send_back",
    "officer_send_back": "_on_officer_send_back",
    "dtdo_accept": "_on_dtdo_accept",
    "dtdo_reject": "_on_dtdo_reject",
    "dtdo_revert": "_on_dtdo_revert",
    "schedule_inspection": "_on_schedule_inspection",
    "submit_inspection_report": "_on_submit_inspection_report",
    "approve_inspection_report": "_on_approve_inspection_report",
    "reject_inspection_report": "_on_reject_inspection_report",
    "raise_objections": "_on_raise_objections",
    "complete_service_request": "_on_complete_service_request",
    "legacy_verify": "_on_legacy_verify",
    "initiate_payment": "_on_initiate_payment",
    "confirm_payment": "_on_confirm_payment",
}
