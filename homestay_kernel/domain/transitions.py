"""
Transition table (``homestay_kernel.domain.transitions``).

Responsibility
--------------
Declares every permitted status change as data: source statuses, target
status, permitted roles, the precondition checks to run, the audit label
and the notification event.  New transitions are added here; the guard and
the engine look them up by name and never branch on role or status.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects and pure check functions.
ZERO I/O.  Checks receive everything they need as arguments.

Invariants enforced
-------------------
* Every transition names exactly one target status and one event id.
* Checks return ``None`` when satisfied or a ``(condition, message)`` pair
  naming the unmet precondition.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

from homestay_kernel.domain.district import districts_match
from homestay_kernel.domain.dtos import (
    Actor,
    ApplicationSnapshot,
    GuardContext,
    TransitionRequest,
)
from homestay_kernel.domain.inspection import (
    RECOMMENDATIONS,
    approval_blockers,
    check_inspection_dates,
    unknown_checklist_keys,
)
from homestay_kernel.domain.notifications import NotificationEventId
from homestay_kernel.domain.workflow import (
    CORRECTION_STATUSES,
    NON_PAYMENT_KINDS,
    ActorRole,
    ApplicationKind,
    ApplicationStatus,
    DocumentStatus,
)

S = ApplicationStatus
R = ActorRole


@dataclass(frozen=True)
class WorkflowRules:
    """Tunable limits consulted by the checks."""

    min_feedback_length: int = 10
    max_rooms: int = 6


Unmet = tuple[str, str]
Check = Callable[
    [ApplicationSnapshot, Actor, TransitionRequest, GuardContext, WorkflowRules],
    "Unmet | None",
]


@dataclass(frozen=True)
class TransitionSpec:
    name: str
    from_statuses: frozenset[ApplicationStatus]
    to_status: ApplicationStatus
    roles: frozenset[ActorRole]
    audit_action: str
    event_id: NotificationEventId
    checks: tuple[Check, ...] = ()
    owner_only: bool = False
    kinds: frozenset[ApplicationKind] | None = None


# =============================================================================
# Checks
# =============================================================================


def _remarks(request: TransitionRequest) -> str:
    return (request.remarks or "").strip()


def remarks_required(app, actor, request, context, rules) -> Unmet | None:
    if not _remarks(request):
        return ("remarks", "Remarks are required for this action")
    return None


def feedback_minimum(app, actor, request, context, rules) -> Unmet | None:
    if len(_remarks(request)) < rules.min_feedback_length:
        return (
            "remarks",
            f"Feedback is required (minimum {rules.min_feedback_length} characters)",
        )
    return None


def rooms_present(app, actor, request, context, rules) -> Unmet | None:
    if app.total_rooms < 1:
        return ("rooms", "At least one room must be declared before submission")
    if app.total_rooms > rules.max_rooms:
        return (
            "rooms",
            f"HP Homestay Rules permit a maximum of {rules.max_rooms} rooms. "
            f"This application declares {app.total_rooms} rooms.",
        )
    return None


def property_described(app, actor, request, context, rules) -> Unmet | None:
    missing = [
        label
        for label, value in (
            ("property name", app.property_name),
            ("owner name", app.owner_name),
            ("district", app.district),
        )
        if not (value or "").strip()
    ]
    if missing:
        return ("details", f"Missing required details: {', '.join(missing)}")
    return None


def documents_decided(app, actor, request, context, rules) -> Unmet | None:
    if not context.document_statuses:
        return ("documents", "No documents have been uploaded for this application")
    pending = sum(1 for s in context.document_statuses if s == DocumentStatus.PENDING)
    if pending:
        return (
            "documents",
            f"{pending} document(s) are still pending verification",
        )
    return None


def inspection_schedulable(app, actor, request, context, rules) -> Unmet | None:
    if request.inspection_date is None:
        return ("inspection_date", "An inspection date is required")
    if request.inspection_date < context.today:
        return ("inspection_date", "Inspection date cannot be in the past")
    if request.assigned_da_id is None and app.da_id is None:
        return ("assignment", "No dealing assistant assigned for the inspection")
    if request.assigned_da_district is not None and not districts_match(
        request.assigned_da_district, app.district
    ):
        return ("assignment", "Assigned dealing assistant serves a different district")
    return None


def report_submittable(app, actor, request, context, rules) -> Unmet | None:
    order = context.open_order
    if order is None or order.inspection_date is None:
        return ("inspection_order", "No scheduled inspection order for this application")
    if order.assigned_to is not None and order.assigned_to != actor.actor_id:
        return ("assignment", "You can only submit reports for inspections assigned to you")
    if order.has_report:
        return ("inspection_report", "Inspection report already submitted for this order")
    findings = request.findings
    if findings is None:
        return ("inspection_report", "Inspection findings are required")
    unknown = unknown_checklist_keys(findings)
    if unknown:
        return ("checklist", f"Unknown checklist items: {', '.join(unknown)}")
    if findings.recommendation not in RECOMMENDATIONS:
        return ("inspection_report", f"Invalid recommendation: {findings.recommendation}")
    date_error = check_inspection_dates(findings, order.inspection_date, context.today)
    if date_error:
        return ("inspection_date", date_error)
    return None


def report_approvable(app, actor, request, context, rules) -> Unmet | None:
    report = context.inspection_report
    if report is None:
        return ("inspection_report", "No inspection report has been submitted")
    blockers = approval_blockers(report)
    if blockers:
        return ("checklist", "Cannot approve inspection report: " + "; ".join(blockers))
    return None


def report_approvable_if_inspected(app, actor, request, context, rules) -> Unmet | None:
    if app.status == S.INSPECTION_UNDER_REVIEW:
        return report_approvable(app, actor, request, context, rules)
    return None


def fee_calculated(app, actor, request, context, rules) -> Unmet | None:
    if app.total_fee is None or app.total_fee <= 0:
        return ("fee", "Total fee not calculated for this application")
    return None


def certificate_unissued(app, actor, request, context, rules) -> Unmet | None:
    if app.certificate_number:
        return ("certificate", f"Certificate {app.certificate_number} already issued")
    return None


# =============================================================================
# Table
# =============================================================================

_DTDO_ROLES = frozenset({R.DISTRICT_TOURISM_OFFICER, R.DISTRICT_OFFICER})
_DA_ROLES = frozenset({R.DEALING_ASSISTANT})
_PAYMENT_KINDS = frozenset(ApplicationKind) - NON_PAYMENT_KINDS

_SPECS: tuple[TransitionSpec, ...] = (
    TransitionSpec(
        name="submit",
        from_statuses=frozenset({S.DRAFT}),
        to_status=S.SUBMITTED,
        roles=frozenset({R.PROPERTY_OWNER}),
        audit_action="owner_submitted",
        event_id=NotificationEventId.APPLICATION_SUBMITTED,
        checks=(property_described, rooms_present),
        owner_only=True,
    ),
    TransitionSpec(
        name="resubmit",
        from_statuses=CORRECTION_STATUSES,
        to_status=S.SUBMITTED,
        roles=frozenset({R.PROPERTY_OWNER}),
        audit_action="correction_resubmitted",
        event_id=NotificationEventId.APPLICATION_SUBMITTED,
        checks=(property_described, rooms_present),
        owner_only=True,
    ),
    TransitionSpec(
        name="start_scrutiny",
        from_statuses=frozenset({S.SUBMITTED}),
        to_status=S.UNDER_SCRUTINY,
        roles=_DA_ROLES,
        audit_action="scrutiny_started",
        event_id=NotificationEventId.SCRUTINY_STARTED,
    ),
    TransitionSpec(
        name="forward_to_dtdo",
        from_statuses=frozenset({S.UNDER_SCRUTINY, S.LEGACY_RC_REVIEW}),
        to_status=S.FORWARDED_TO_DTDO,
        roles=_DA_ROLES,
        audit_action="forwarded_to_dtdo",
        event_id=NotificationEventId.FORWARDED_TO_DTDO,
        checks=(remarks_required, documents_decided),
    ),
    TransitionSpec(
        name="da_send_back",
        from_statuses=frozenset({S.UNDER_SCRUTINY, S.LEGACY_RC_REVIEW}),
        to_status=S.REVERTED_TO_APPLICANT,
        roles=_DA_ROLES,
        audit_action="reverted_by_da",
        event_id=NotificationEventId.DA_SEND_BACK,
        checks=(feedback_minimum,),
    ),
    TransitionSpec(
        name="officer_send_back",
        from_statuses=frozenset({
            S.SUBMITTED,
            S.UNDER_SCRUTINY,
            S.FORWARDED_TO_DTDO,
            S.DTDO_REVIEW,
        }),
        to_status=S.SENT_BACK_FOR_CORRECTIONS,
        roles=frozenset({R.DISTRICT_OFFICER, R.STATE_OFFICER}),
        audit_action="sent_back_for_corrections",
        event_id=NotificationEventId.OFFICER_SEND_BACK,
        checks=(feedback_minimum,),
    ),
    TransitionSpec(
        name="dtdo_accept",
        from_statuses=frozenset({S.FORWARDED_TO_DTDO}),
        to_status=S.DTDO_REVIEW,
        roles=_DTDO_ROLES,
        audit_action="dtdo_accept",
        event_id=NotificationEventId.DTDO_ACCEPTED,
        checks=(remarks_required,),
    ),
    TransitionSpec(
        name="dtdo_reject",
        from_statuses=frozenset({S.FORWARDED_TO_DTDO, S.DTDO_REVIEW}),
        to_status=S.REJECTED,
        roles=_DTDO_ROLES,
        audit_action="dtdo_reject",
        event_id=NotificationEventId.APPLICATION_REJECTED,
        checks=(feedback_minimum,),
    ),
    TransitionSpec(
        name="dtdo_revert",
        from_statuses=frozenset({S.FORWARDED_TO_DTDO, S.DTDO_REVIEW}),
        to_status=S.REVERTED_BY_DTDO,
        roles=_DTDO_ROLES,
        audit_action="dtdo_revert",
        event_id=NotificationEventId.DTDO_REVERT,
        checks=(feedback_minimum,),
    ),
    TransitionSpec(
        name="schedule_inspection",
        from_statuses=frozenset({S.DTDO_REVIEW}),
        to_status=S.INSPECTION_SCHEDULED,
        roles=_DTDO_ROLES,
        audit_action="inspection_scheduled",
        event_id=NotificationEventId.INSPECTION_SCHEDULED,
        checks=(inspection_schedulable,),
    ),
    TransitionSpec(
        name="submit_inspection_report",
        from_statuses=frozenset({S.INSPECTION_SCHEDULED}),
        to_status=S.INSPECTION_UNDER_REVIEW,
        roles=_DA_ROLES,
        audit_action="inspection_completed",
        event_id=NotificationEventId.INSPECTION_COMPLETED,
        checks=(report_submittable,),
    ),
    TransitionSpec(
        name="approve_inspection_report",
        from_statuses=frozenset({S.INSPECTION_UNDER_REVIEW}),
        to_status=S.VERIFIED_FOR_PAYMENT,
        roles=_DTDO_ROLES,
        audit_action="verified_for_payment",
        event_id=NotificationEventId.VERIFIED_FOR_PAYMENT,
        checks=(report_approvable,),
        kinds=_PAYMENT_KINDS,
    ),
    TransitionSpec(
        name="reject_inspection_report",
        from_statuses=frozenset({S.INSPECTION_UNDER_REVIEW}),
        to_status=S.REJECTED,
        roles=_DTDO_ROLES,
        audit_action="inspection_report_rejected",
        event_id=NotificationEventId.APPLICATION_REJECTED,
        checks=(feedback_minimum,),
    ),
    TransitionSpec(
        name="raise_objections",
        from_statuses=frozenset({S.INSPECTION_UNDER_REVIEW}),
        to_status=S.OBJECTION_RAISED,
        roles=_DTDO_ROLES,
        audit_action="objection_raised",
        event_id=NotificationEventId.DTDO_OBJECTION,
        checks=(feedback_minimum,),
    ),
    TransitionSpec(
        name="complete_service_request",
        from_statuses=frozenset({S.DTDO_REVIEW, S.INSPECTION_UNDER_REVIEW}),
        to_status=S.APPROVED,
        roles=_DTDO_ROLES,
        audit_action="service_request_completed",
        event_id=NotificationEventId.APPLICATION_APPROVED,
        checks=(remarks_required, report_approvable_if_inspected),
        kinds=NON_PAYMENT_KINDS,
    ),
    TransitionSpec(
        name="legacy_verify",
        from_statuses=frozenset({S.LEGACY_RC_REVIEW}),
        to_status=S.APPROVED,
        roles=_DA_ROLES | _DTDO_ROLES,
        audit_action="legacy_rc_verified",
        event_id=NotificationEventId.APPLICATION_APPROVED,
    ),
    TransitionSpec(
        name="initiate_payment",
        from_statuses=frozenset({S.VERIFIED_FOR_PAYMENT}),
        to_status=S.PAYMENT_PENDING,
        roles=frozenset({R.PROPERTY_OWNER, R.ADMIN}),
        audit_action="payment_initiated",
        event_id=NotificationEventId.PAYMENT_PENDING,
        checks=(fee_calculated,),
        owner_only=True,
        kinds=_PAYMENT_KINDS,
    ),
    TransitionSpec(
        name="confirm_payment",
        from_statuses=frozenset({S.VERIFIED_FOR_PAYMENT, S.PAYMENT_PENDING}),
        to_status=S.APPROVED,
        roles=frozenset({R.SYSTEM}),
        audit_action="payment_confirmed",
        event_id=NotificationEventId.APPLICATION_APPROVED,
        checks=(certificate_unissued,),
        kinds=_PAYMENT_KINDS,
    ),
)

TRANSITIONS: dict[str, TransitionSpec] = {spec.name: spec for spec in _SPECS}


def get_transition(name: str) -> TransitionSpec:
    try:
        return TRANSITIONS[name]
    except KeyError:
        raise KeyError(f"Unknown transition: {name}") from None


def transitions_from(status: ApplicationStatus, role: ActorRole) -> tuple[TransitionSpec, ...]:
    """Transitions a role may attempt from ``status`` (for UI affordances)."""
    return tuple(
        spec for spec in _SPECS
        if status in spec.from_statuses and role in spec.roles
    )
