"""
Workflow Engine scenarios against a real (in-memory) database.

Covers:
- The full happy path from draft to an issued certificate
- Rejected transitions write nothing
- Objections, resubmission and the second inspection round
- Optimistic status checks
- Legacy certificate onboarding
- Fee assessment on submission
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import select

from homestay_kernel.domain.clock import local_date
from homestay_kernel.domain.dtos import Actor, TransitionRequest
from homestay_kernel.domain.workflow import ActorRole, ApplicationStatus, InspectionOrderStatus
from homestay_kernel.exceptions import ApplicationNotFoundError, ConcurrencyConflict, GuardRejection
from homestay_kernel.models.inspection import InspectionOrder, InspectionReport
from homestay_kernel.models.notification_outbox import NotificationOutbox

S = ApplicationStatus


def _outbox(session, application_id, event_id=None):
    stmt = select(NotificationOutbox).where(NotificationOutbox.application_id == application_id)
    if event_id is not None:
        stmt = stmt.where(NotificationOutbox.event_id == event_id)
    return session.execute(stmt).scalars().all()


def _orders(session, application_id):
    return session.execute(
        select(InspectionOrder)
        .where(InspectionOrder.application_id == application_id)
        .order_by(InspectionOrder.round_no)
    ).scalars().all()


# =============================================================================
# Happy path
# =============================================================================


class TestHappyPath:
    """Draft to approved with a certificate."""

    def test_certificate_issued_on_payment(self, draft_factory, advance):
        application = advance(draft_factory(), S.APPROVED)

        assert application.status == S.APPROVED.value
        assert application.certificate_number == "HP-HST-2025-10001"
        assert application.certificate_issued_date == datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)
        assert application.certificate_expiry_date == datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)
        assert application.total_fee == Decimal("3000")

    def test_certificate_serials_increase(self, draft_factory, advance):
        first = advance(draft_factory(), S.APPROVED)
        second = advance(draft_factory(property_name="Cedar Nest"), S.APPROVED)

        assert first.certificate_number == "HP-HST-2025-10001"
        assert second.certificate_number == "HP-HST-2025-10002"

    def test_timeline_records_every_step(self, draft_factory, advance, audit_log):
        application = advance(draft_factory(), S.APPROVED)

        actions = [row.action for row in audit_log.timeline(application.id)]

        assert actions == [
            "owner_submitted",
            "scrutiny_started",
            "forwarded_to_dtdo",
            "dtdo_accept",
            "inspection_scheduled",
            "inspection_completed",
            "verified_for_payment",
            "payment_confirmed",
            "certificate_issued",
        ]
        assert audit_log.verify_chain(application.id)

    def test_certificate_row_follows_payment_row(self, draft_factory, advance, audit_log):
        application = advance(draft_factory(), S.APPROVED)

        payment, certificate = audit_log.timeline(application.id)[-2:]

        assert payment.previous_status == S.VERIFIED_FOR_PAYMENT.value
        assert payment.new_status == S.APPROVED.value
        assert payment.actor_id is None
        assert certificate.previous_status == certificate.new_status == S.APPROVED.value
        assert "HP-HST-2025-10001" in certificate.feedback

    def test_one_outbox_row_per_transition(self, session, draft_factory, advance):
        application = advance(draft_factory(), S.APPROVED)

        rows = _outbox(session, application.id)

        assert len(rows) == 8
        approved = _outbox(session, application.id, "application_approved")
        assert len(approved) == 1
        assert approved[0].extras["CERTIFICATE_NUMBER"] == "HP-HST-2025-10001"
        assert approved[0].extras["APPLICATION_ID"] == application.application_number
        assert approved[0].recipient_id == application.owner_id

    def test_dealing_assistant_is_stamped(self, draft_factory, advance, da):
        application = advance(draft_factory(), S.UNDER_SCRUTINY)

        assert application.da_id == da.actor_id
        assert application.da_review_date is not None

    def test_inspection_assigned_and_dated(self, session, draft_factory, advance, da):
        application = advance(draft_factory(), S.INSPECTION_SCHEDULED)

        (order,) = _orders(session, application.id)
        assert order.assigned_to == da.actor_id
        assert order.inspection_date == date(2025, 1, 1)
        assert order.status == InspectionOrderStatus.SCHEDULED.value
        (scheduled,) = _outbox(session, application.id, "inspection_scheduled")
        assert scheduled.extras["INSPECTION_DATE"] == "01 Jan 2025"

    def test_report_completes_order(self, session, draft_factory, advance):
        application = advance(draft_factory(), S.INSPECTION_UNDER_REVIEW)

        (order,) = _orders(session, application.id)
        assert order.status == InspectionOrderStatus.COMPLETED.value
        report = session.execute(
            select(InspectionReport).where(InspectionReport.application_id == application.id)
        ).scalar_one()
        assert report.recommendation == "approve"
        assert report.inspection_order_id == order.id


# =============================================================================
# Rejections
# =============================================================================


class TestRejectedTransitions:
    def test_rejection_writes_nothing(self, session, draft_factory, advance, workflow, da, audit_log):
        application = advance(draft_factory(), S.UNDER_SCRUTINY)
        before = len(audit_log.timeline(application.id))

        with pytest.raises(GuardRejection) as exc_info:
            workflow.attempt(
                application.id, da, "forward_to_dtdo", TransitionRequest(remarks="All fine")
            )

        assert exc_info.value.condition == "documents"
        assert application.status == S.UNDER_SCRUTINY.value
        assert len(audit_log.timeline(application.id)) == before
        assert not _outbox(session, application.id, "forwarded_to_dtdo")

    def test_other_owner_cannot_submit(self, draft_factory, workflow, other_owner):
        application = draft_factory()

        with pytest.raises(GuardRejection) as exc_info:
            workflow.attempt(application.id, other_owner, "submit")

        assert exc_info.value.condition == "ownership"

    def test_officer_from_other_district(self, draft_factory, advance, workflow):
        application = advance(draft_factory(), S.SUBMITTED)
        kullu_da = Actor(actor_id=uuid4(), role=ActorRole.DEALING_ASSISTANT, district="Kullu")

        with pytest.raises(GuardRejection) as exc_info:
            workflow.attempt(application.id, kullu_da, "start_scrutiny")

        assert exc_info.value.condition == "district"

    def test_payment_cannot_be_confirmed_twice(self, draft_factory, advance, workflow):
        application = advance(draft_factory(), S.APPROVED)

        with pytest.raises(GuardRejection) as exc_info:
            workflow.attempt(application.id, Actor.system(), "confirm_payment")

        assert exc_info.value.condition == "status"

    def test_report_by_unassigned_assistant(self, draft_factory, advance, workflow, findings_factory):
        application = advance(draft_factory(), S.INSPECTION_SCHEDULED)
        colleague = Actor(
            actor_id=uuid4(), role=ActorRole.DEALING_ASSISTANT, district="Shimla"
        )

        with pytest.raises(GuardRejection) as exc_info:
            workflow.attempt(
                application.id,
                colleague,
                "submit_inspection_report",
                TransitionRequest(findings=findings_factory()),
            )

        assert exc_info.value.condition == "assignment"

    def test_failed_mandatory_item_blocks_approval(
        self, draft_factory, advance, workflow, dtdo, da, full_checklist, findings_factory
    ):
        application = advance(draft_factory(), S.INSPECTION_SCHEDULED)
        checklist = dict(full_checklist, cctvCameras=False)
        workflow.attempt(
            application.id,
            da,
            "submit_inspection_report",
            TransitionRequest(findings=findings_factory(mandatory_checklist=checklist)),
        )

        with pytest.raises(GuardRejection) as exc_info:
            workflow.attempt(
                application.id, dtdo, "approve_inspection_report", TransitionRequest(remarks="ok")
            )

        assert exc_info.value.condition == "checklist"
        assert "cctvCameras" in str(exc_info.value)

    def test_unknown_application(self, workflow, owner):
        with pytest.raises(ApplicationNotFoundError):
            workflow.attempt(uuid4(), owner, "submit")


class TestExpectedStatus:
    def test_stale_expected_status_conflicts(self, draft_factory, advance, workflow, da):
        application = advance(draft_factory(), S.SUBMITTED)

        with pytest.raises(ConcurrencyConflict) as exc_info:
            workflow.attempt(
                application.id,
                da,
                "start_scrutiny",
                TransitionRequest(expected_status=S.DRAFT),
            )

        assert exc_info.value.expected == "draft"
        assert exc_info.value.actual == "submitted"

    def test_matching_expected_status_applies(self, draft_factory, advance, workflow, da):
        application = advance(draft_factory(), S.SUBMITTED)

        outcome = workflow.attempt(
            application.id, da, "start_scrutiny", TransitionRequest(expected_status=S.SUBMITTED)
        )

        assert outcome.application.status == S.UNDER_SCRUTINY.value


# =============================================================================
# Corrections
# =============================================================================


class TestObjections:
    OBJECTION = "Fire NOC due"

    def _raise(self, workflow, application, dtdo, remarks=OBJECTION):
        return workflow.attempt(
            application.id, dtdo, "raise_objections", TransitionRequest(remarks=remarks)
        )

    def test_objection_recorded_once(self, session, draft_factory, advance, workflow, dtdo, audit_log):
        application = advance(draft_factory(), S.INSPECTION_UNDER_REVIEW)

        outcome = self._raise(workflow, application, dtdo)

        assert outcome.application.status == S.OBJECTION_RAISED.value
        assert outcome.application.clarification_requested == self.OBJECTION
        rows = [r for r in audit_log.timeline(application.id) if r.action == "objection_raised"]
        assert len(rows) == 1
        assert rows[0].feedback == self.OBJECTION
        (notification,) = _outbox(session, application.id, "dtdo_objection")
        assert notification.extras["REMARKS"] == self.OBJECTION

    def test_short_objection_rejected(self, draft_factory, advance, workflow, dtdo):
        application = advance(draft_factory(), S.INSPECTION_UNDER_REVIEW)

        with pytest.raises(GuardRejection) as exc_info:
            self._raise(workflow, application, dtdo, remarks="Fix it")

        assert exc_info.value.condition == "remarks"
        assert application.status == S.INSPECTION_UNDER_REVIEW.value

    def test_objection_opens_next_inspection_round(self, session, draft_factory, advance, workflow, dtdo):
        application = advance(draft_factory(), S.INSPECTION_UNDER_REVIEW)

        self._raise(workflow, application, dtdo)

        first, second = _orders(session, application.id)
        assert first.status == InspectionOrderStatus.COMPLETED.value
        assert second.round_no == 2
        assert second.status == InspectionOrderStatus.PENDING.value
        assert second.assigned_to == first.assigned_to

    def test_resubmission_reuses_pending_order(
        self, session, draft_factory, advance, workflow, owner, dtdo
    ):
        application = advance(draft_factory(), S.INSPECTION_UNDER_REVIEW)
        self._raise(workflow, application, dtdo)

        outcome = workflow.attempt(application.id, owner, "resubmit")
        assert outcome.application.correction_submission_count == 1
        assert "attempt 1" in outcome.audit_entry.feedback

        application = advance(outcome.application, S.INSPECTION_SCHEDULED)

        orders = _orders(session, application.id)
        assert len(orders) == 2
        assert orders[1].status == InspectionOrderStatus.SCHEDULED.value

    def test_second_round_reaches_approval(self, draft_factory, advance, workflow, owner, dtdo):
        application = advance(draft_factory(), S.INSPECTION_UNDER_REVIEW)
        self._raise(workflow, application, dtdo)
        workflow.attempt(application.id, owner, "resubmit")

        application = advance(application, S.APPROVED)

        assert application.certificate_number == "HP-HST-2025-10001"


class TestSendBacks:
    def test_da_send_back_and_edit(self, draft_factory, advance, workflow, da, applications, owner):
        application = advance(draft_factory(), S.UNDER_SCRUTINY)

        workflow.attempt(
            application.id,
            da,
            "da_send_back",
            TransitionRequest(remarks="Upload a clearer ownership document"),
        )
        updated = applications.update_draft(application.id, owner, {"single_bed_rooms": 3})

        assert updated.status == S.REVERTED_TO_APPLICANT.value
        assert updated.total_rooms == 4

    def test_state_officer_send_back_stamps_state_review(
        self, draft_factory, advance, workflow, state_officer
    ):
        application = advance(draft_factory(), S.FORWARDED_TO_DTDO)

        outcome = workflow.attempt(
            application.id,
            state_officer,
            "officer_send_back",
            TransitionRequest(remarks="Pincode does not match the tehsil"),
        )

        assert outcome.application.status == S.SENT_BACK_FOR_CORRECTIONS.value
        assert outcome.application.state_officer_id == state_officer.actor_id
        assert outcome.application.state_notes == "Pincode does not match the tehsil"

    def test_dtdo_reject_is_terminal(self, draft_factory, advance, workflow, dtdo):
        application = advance(draft_factory(), S.DTDO_REVIEW)

        outcome = workflow.attempt(
            application.id, dtdo, "dtdo_reject", TransitionRequest(remarks="Not a residential property")
        )

        assert outcome.application.status == S.REJECTED.value
        assert outcome.application.rejection_reason == "Not a residential property"
        assert workflow.available_transitions(application.id, dtdo) == ()


# =============================================================================
# Fees
# =============================================================================


class TestFeeAssessment:
    def test_discounts_applied_on_submit(self, draft_factory, advance):
        application = advance(
            draft_factory(district="Chamba", tehsil="Pangi", owner_gender="female"),
            S.SUBMITTED,
        )

        # 3000 less 5% female owner, then 50% Pangi
        assert application.total_fee == Decimal("1425")

    def test_missing_category_leaves_fee_unset(self, draft_factory, advance, captured_logs):
        application = advance(draft_factory(category=None), S.SUBMITTED)

        assert application.total_fee is None
        assert any(r["message"] == "fee_not_assessed" for r in captured_logs())

    def test_payment_blocked_without_fee(self, draft_factory, advance, workflow, owner):
        application = advance(draft_factory(category=None), S.VERIFIED_FOR_PAYMENT)

        with pytest.raises(GuardRejection) as exc_info:
            workflow.attempt(application.id, owner, "initiate_payment")

        assert exc_info.value.condition == "fee"


# =============================================================================
# Legacy onboarding
# =============================================================================


LEGACY_FIELDS = {
    "owner_name": "Ramesh Thakur",
    "property_name": "Old Orchard Homestay",
    "address": "Village Naggar",
    "district": "Shimla",
    "tehsil": "Theog",
    "category": "gold",
    "location_type": "gp",
    "single_bed_rooms": 1,
    "double_bed_rooms": 2,
}


class TestLegacyOnboarding:
    def test_starts_in_legacy_review(self, applications, owner, audit_log):
        application = applications.create_legacy_onboarding(
            owner, "HP-OLD-2019-0042", date(2020, 5, 1), **LEGACY_FIELDS
        )

        assert application.status == S.LEGACY_RC_REVIEW.value
        assert application.is_legacy
        assert application.application_number.startswith("HP-HS-2025-SML-")
        (row,) = audit_log.timeline(application.id)
        assert row.action == "legacy_rc_submitted"
        assert row.previous_status is None

    def test_verification_adopts_legacy_certificate(self, applications, owner, workflow, da, audit_log):
        application = applications.create_legacy_onboarding(
            owner, "HP-OLD-2019-0042", date(2020, 5, 1), **LEGACY_FIELDS
        )

        outcome = workflow.attempt(application.id, da, "legacy_verify")

        assert outcome.application.status == S.APPROVED.value
        assert outcome.application.certificate_number == "HP-OLD-2019-0042"
        assert local_date(outcome.application.certificate_expiry_date) == date(2021, 5, 1)
        assert outcome.event.extras["CERTIFICATE_NUMBER"] == "HP-OLD-2019-0042"
        assert [r.action for r in audit_log.timeline(application.id)] == [
            "legacy_rc_submitted",
            "legacy_rc_verified",
        ]
        assert audit_log.verify_chain(application.id)

    def test_owner_cannot_verify_own_certificate(self, applications, owner, workflow):
        application = applications.create_legacy_onboarding(owner, "HP-OLD-1", **LEGACY_FIELDS)

        with pytest.raises(GuardRejection) as exc_info:
            workflow.attempt(application.id, owner, "legacy_verify")

        assert exc_info.value.condition == "role"


# =============================================================================
# Read-only queries
# =============================================================================


class TestQueries:
    def test_evaluate_writes_nothing(self, draft_factory, workflow, owner, audit_log):
        application = draft_factory()

        decision = workflow.evaluate(application.id, owner, "submit")

        assert decision.accepted
        assert decision.to_status == S.SUBMITTED
        assert application.status == S.DRAFT.value
        assert audit_log.timeline(application.id) == []

    def test_available_transitions(self, draft_factory, advance, workflow, owner, da):
        application = draft_factory()
        assert workflow.available_transitions(application.id, owner) == ("submit",)

        application = advance(application, S.SUBMITTED)
        assert workflow.available_transitions(application.id, da) == ("start_scrutiny",)
        assert workflow.available_transitions(application.id, owner) == ()
