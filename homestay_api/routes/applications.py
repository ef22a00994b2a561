"""
Application endpoints: drafts, documents, workflow transitions, timeline.

Transitions are addressed by name (``POST /applications/{id}/transitions/
forward_to_dtdo``); the body carries the transition-specific payload and
the guard decides.  A rejection comes back as 400/403 naming the unmet
condition.
"""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request

from homestay_api.dependencies import (
    drain_outbox,
    get_actor,
    get_application_service,
    get_audit_log,
    get_workflow_engine,
)
from homestay_api.schemas import (
    ApplicationOut,
    AuditEntryOut,
    DocumentBody,
    DocumentDecisionBody,
    DocumentOut,
    DraftFields,
    LegacyOnboardingBody,
    TransitionBody,
    TransitionResult,
)
from homestay_kernel.domain.district import districts_match
from homestay_kernel.domain.dtos import Actor, TransitionRequest
from homestay_kernel.domain.transitions import TRANSITIONS
from homestay_kernel.domain.workflow import DISTRICT_SCOPED_ROLES, OFFICER_ROLES, ActorRole
from homestay_kernel.exceptions import AuditChainBrokenError, GuardRejection
from homestay_kernel.models.application import Application
from homestay_kernel.services.application_service import ApplicationService
from homestay_kernel.services.audit_log import AuditLog
from homestay_kernel.services.workflow_engine import WorkflowEngine

router = APIRouter(prefix="/applications", tags=["applications"])


def _check_visible(application: Application, actor: Actor) -> None:
    if actor.role == ActorRole.PROPERTY_OWNER:
        if application.owner_id != actor.actor_id:
            raise GuardRejection("view_application", "ownership", "Access denied for this application")
        return
    if actor.role not in OFFICER_ROLES:
        raise GuardRejection("view_application", "role", "Access denied for this application")
    if actor.role in DISTRICT_SCOPED_ROLES and not districts_match(actor.district, application.district):
        raise GuardRejection(
            "view_application", "district", "Application belongs to a different district"
        )


def _require_owner(actor: Actor, operation: str) -> None:
    if actor.role != ActorRole.PROPERTY_OWNER:
        raise GuardRejection(operation, "role", "Only property owners can do this")


# =============================================================================
# Drafts
# =============================================================================


@router.post("", response_model=ApplicationOut, status_code=201)
def create_draft(
    body: DraftFields,
    actor: Actor = Depends(get_actor),
    applications: ApplicationService = Depends(get_application_service),
):
    _require_owner(actor, "create_draft")
    return applications.create_draft(actor, **body.changes())


@router.post("/legacy", response_model=ApplicationOut, status_code=201)
def create_legacy_onboarding(
    body: LegacyOnboardingBody,
    actor: Actor = Depends(get_actor),
    applications: ApplicationService = Depends(get_application_service),
):
    _require_owner(actor, "legacy_onboarding")
    return applications.create_legacy_onboarding(
        actor,
        body.legacy_certificate_number,
        body.legacy_certificate_issued_date,
        **body.changes(),
    )


@router.get("", response_model=list[ApplicationOut])
def my_applications(
    actor: Actor = Depends(get_actor),
    applications: ApplicationService = Depends(get_application_service),
):
    _require_owner(actor, "list_applications")
    return applications.list_for_owner(actor.actor_id)


@router.get("/{application_id}", response_model=ApplicationOut)
def get_application(
    application_id: UUID,
    actor: Actor = Depends(get_actor),
    applications: ApplicationService = Depends(get_application_service),
):
    application = applications.get(application_id)
    _check_visible(application, actor)
    return application


@router.patch("/{application_id}", response_model=ApplicationOut)
def update_draft(
    application_id: UUID,
    body: DraftFields,
    actor: Actor = Depends(get_actor),
    applications: ApplicationService = Depends(get_application_service),
):
    return applications.update_draft(application_id, actor, body.changes())


# =============================================================================
# Documents
# =============================================================================


@router.post("/{application_id}/documents", response_model=DocumentOut, status_code=201)
def record_document(
    application_id: UUID,
    body: DocumentBody,
    actor: Actor = Depends(get_actor),
    applications: ApplicationService = Depends(get_application_service),
):
    _check_visible(applications.get(application_id), actor)
    return applications.record_document(application_id, body.document_type, body.file_name)


@router.put("/{application_id}/documents/{document_id}", response_model=DocumentOut)
def decide_document(
    application_id: UUID,
    document_id: UUID,
    body: DocumentDecisionBody,
    actor: Actor = Depends(get_actor),
    applications: ApplicationService = Depends(get_application_service),
):
    application = applications.get(application_id)
    if actor.role not in OFFICER_ROLES:
        raise GuardRejection("verify_document", "role", "Only department staff can verify documents")
    _check_visible(application, actor)
    document = applications.set_document_status(
        document_id, body.status, verified_by=actor.actor_id, notes=body.notes
    )
    if document.application_id != application.id:
        raise HTTPException(status_code=404, detail="Document not found for this application")
    return document


# =============================================================================
# Workflow
# =============================================================================


@router.get("/{application_id}/transitions")
def available_transitions(
    application_id: UUID,
    actor: Actor = Depends(get_actor),
    engine: WorkflowEngine = Depends(get_workflow_engine),
):
    return {"transitions": list(engine.available_transitions(application_id, actor))}


@router.post("/{application_id}/transitions/{transition}", response_model=TransitionResult)
def apply_transition(
    application_id: UUID,
    transition: str,
    request: Request,
    background: BackgroundTasks,
    body: TransitionBody | None = None,
    actor: Actor = Depends(get_actor),
    engine: WorkflowEngine = Depends(get_workflow_engine),
):
    if transition not in TRANSITIONS:
        raise HTTPException(status_code=404, detail=f"Unknown transition: {transition}")
    body = body or TransitionBody()
    outcome = engine.attempt(
        application_id,
        actor,
        transition,
        TransitionRequest(
            remarks=body.remarks,
            expected_status=body.expected_status,
            inspection_date=body.inspection_date,
            assigned_da_id=body.assigned_da_id,
            assigned_da_district=body.assigned_da_district,
            inspection_address=body.inspection_address,
            special_instructions=body.special_instructions,
            findings=body.findings.to_findings() if body.findings else None,
        ),
    )
    background.add_task(drain_outbox, request.app)
    return TransitionResult(
        application=ApplicationOut.model_validate(outcome.application),
        actions=[AuditEntryOut.model_validate(a) for a in outcome.actions],
        event_id=outcome.event.event_id.value,
    )


# =============================================================================
# Timeline
# =============================================================================


@router.get("/{application_id}/timeline", response_model=list[AuditEntryOut])
def timeline(
    application_id: UUID,
    actor: Actor = Depends(get_actor),
    applications: ApplicationService = Depends(get_application_service),
    audit: AuditLog = Depends(get_audit_log),
):
    _check_visible(applications.get(application_id), actor)
    return audit.timeline(application_id)


@router.get("/{application_id}/timeline/verify")
def verify_timeline(
    application_id: UUID,
    actor: Actor = Depends(get_actor),
    applications: ApplicationService = Depends(get_application_service),
    audit: AuditLog = Depends(get_audit_log),
):
    _check_visible(applications.get(application_id), actor)
    try:
        audit.verify_chain(application_id)
    except AuditChainBrokenError as exc:
        return {"valid": False, "brokenAt": exc.action_id}
    return {"valid": True, "brokenAt": None}
