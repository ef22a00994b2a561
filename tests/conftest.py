"""
Pytest fixtures for the homestay test suite.

Provides:
- A fresh in-memory SQLite database per test (shared single connection)
- Structured-log capture
- A DeterministicClock fixed at 2025-01-01 12:00 UTC (17:30 IST)
- Actors for every role, all posted to Shimla
- Factories for drafts, inspection findings and gateway callbacks
- ``advance``: drives an application along the happy path to a status

Nothing here talks to a real treasury gateway; the AES key is a fixed
16-byte test key written to a temporary key file.
"""

import dataclasses
import json
import logging
from io import StringIO
from uuid import uuid4

import pytest
from sqlalchemy import create_engine, event, select
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from homestay_config import HomestayConfig, WorkflowConfig, load_config
from homestay_engines.gateway_codec import GatewayCipher, checksum
from homestay_kernel.db.base import Base
from homestay_kernel.db.immutability import register_immutability_listeners
from homestay_kernel.domain.clock import DeterministicClock, local_date
from homestay_kernel.domain.dtos import Actor, TransitionRequest
from homestay_kernel.domain.inspection import MANDATORY_CHECKLIST_KEYS, InspectionFindings
from homestay_kernel.domain.workflow import ActorRole, ApplicationStatus, DocumentStatus
from homestay_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from homestay_kernel.models import import_all_models
from homestay_kernel.models.document import ApplicationDocument
from homestay_kernel.services.application_service import ApplicationService
from homestay_kernel.services.audit_log import AuditLog
from homestay_kernel.services.settings_store import SettingsStore
from homestay_services.engine_wiring import build_workflow_engine
from homestay_services.payment_settlement import PaymentSettlement

TEST_GATEWAY_KEY = b"0123456789abcdef"
TEST_DISTRICT = "Shimla"


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture homestay logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, settlement):
            settlement.initiate(...)
            logs = captured_logs()
            assert any(r["message"] == "payment_initiated" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("homestay")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


# =============================================================================
# Database
# =============================================================================


def _enable_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


@pytest.fixture
def db_engine():
    """Fresh in-memory schema for one test."""
    engine = create_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    event.listen(engine, "connect", _enable_foreign_keys)
    import_all_models()
    Base.metadata.create_all(engine)
    register_immutability_listeners()
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return sessionmaker(bind=db_engine, expire_on_commit=False)


@pytest.fixture
def session(session_factory):
    session = session_factory()
    yield session
    session.rollback()
    session.close()


# =============================================================================
# Time, configuration, gateway key
# =============================================================================


@pytest.fixture
def clock():
    return DeterministicClock()


@pytest.fixture
def workflow_config():
    return WorkflowConfig()


@pytest.fixture
def gateway_key_file(tmp_path):
    path = tmp_path / "himkosh.key"
    path.write_bytes(TEST_GATEWAY_KEY)
    return path


@pytest.fixture
def config(gateway_key_file) -> HomestayConfig:
    """Packaged defaults with the test key file; no environment leaks in."""
    base = load_config(environ={})
    return dataclasses.replace(
        base,
        gateway=dataclasses.replace(base.gateway, key_file_path=str(gateway_key_file)),
    )


@pytest.fixture
def cipher():
    return GatewayCipher(TEST_GATEWAY_KEY)


# =============================================================================
# Actors
# =============================================================================


def _actor(role: ActorRole, district: str | None = TEST_DISTRICT) -> Actor:
    return Actor(actor_id=uuid4(), role=role, district=district)


@pytest.fixture
def owner():
    return _actor(ActorRole.PROPERTY_OWNER, district=None)


@pytest.fixture
def other_owner():
    return _actor(ActorRole.PROPERTY_OWNER, district=None)


@pytest.fixture
def da():
    return _actor(ActorRole.DEALING_ASSISTANT)


@pytest.fixture
def dtdo():
    return _actor(ActorRole.DISTRICT_TOURISM_OFFICER)


@pytest.fixture
def state_officer():
    return _actor(ActorRole.STATE_OFFICER, district=None)


@pytest.fixture
def admin():
    return _actor(ActorRole.ADMIN, district=None)


# =============================================================================
# Services
# =============================================================================


@pytest.fixture
def applications(session, clock):
    return ApplicationService(session, clock)


@pytest.fixture
def audit_log(session, clock):
    return AuditLog(session, clock)


@pytest.fixture
def workflow(session, clock, workflow_config):
    return build_workflow_engine(session, workflow_config, clock)


@pytest.fixture
def settings_store(clock):
    return SettingsStore(clock)


@pytest.fixture
def settlement(session, config, settings_store, cipher, clock, workflow):
    return PaymentSettlement(
        session,
        config,
        settings=settings_store,
        cipher=cipher,
        clock=clock,
        workflow_engine=workflow,
    )


# =============================================================================
# Factories
# =============================================================================

DRAFT_DEFAULTS = {
    "owner_name": "Asha Verma",
    "owner_mobile": "9816000000",
    "property_name": "Deodar Cottage",
    "address": "Ward 4, Mashobra Road",
    "district": TEST_DISTRICT,
    "tehsil": "Shimla Urban",
    "pincode": "171007",
    "category": "silver",
    "location_type": "gp",
    "single_bed_rooms": 2,
    "double_bed_rooms": 1,
    "attached_washrooms": 3,
}


@pytest.fixture
def draft_factory(applications, owner):
    """Create a submittable draft (silver / gram panchayat, fee 3000)."""

    def _create(actor: Actor | None = None, **overrides):
        fields = {**DRAFT_DEFAULTS, **overrides}
        return applications.create_draft(actor or owner, **fields)

    return _create


@pytest.fixture
def full_checklist():
    return {key: True for key in MANDATORY_CHECKLIST_KEYS}


@pytest.fixture
def findings_factory(clock, full_checklist):
    """Satisfactory findings dated today (IST) unless overridden."""

    def _create(**overrides):
        values = {
            "actual_inspection_date": local_date(clock.now()),
            "room_count_verified": True,
            "category_meets_standards": True,
            "overall_satisfactory": True,
            "mandatory_checklist": dict(full_checklist),
            "actual_room_count": 3,
            "recommended_category": "silver",
            "fire_safety_compliant": True,
            "structural_safety": True,
            "recommendation": "approve",
            "detailed_findings": "Property matches the declared details.",
        }
        values.update(overrides)
        return InspectionFindings(**values)

    return _create


_NEXT_STEP = {
    ApplicationStatus.DRAFT.value: "submit",
    ApplicationStatus.SUBMITTED.value: "start_scrutiny",
    ApplicationStatus.UNDER_SCRUTINY.value: "forward_to_dtdo",
    ApplicationStatus.FORWARDED_TO_DTDO.value: "dtdo_accept",
    ApplicationStatus.DTDO_REVIEW.value: "schedule_inspection",
    ApplicationStatus.INSPECTION_SCHEDULED.value: "submit_inspection_report",
    ApplicationStatus.INSPECTION_UNDER_REVIEW.value: "approve_inspection_report",
    ApplicationStatus.VERIFIED_FOR_PAYMENT.value: "confirm_payment",
    ApplicationStatus.PAYMENT_PENDING.value: "confirm_payment",
}


@pytest.fixture
def advance(session, workflow, applications, owner, da, dtdo, clock, findings_factory):
    """
    Drive an application along the happy path until it reaches ``until``.

    Verified applications are confirmed directly unless ``until`` is
    ``payment_pending``, in which case the owner initiates payment.

    Documents are recorded and verified just before forwarding to the DTDO.
    The inspection is scheduled for today and reported the same day.
    """

    def _verify_documents(application):
        documents = session.execute(
            select(ApplicationDocument).where(ApplicationDocument.application_id == application.id)
        ).scalars().all()
        if not documents:
            documents = [applications.record_document(application.id, "property_photo", "front.jpg")]
        for document in documents:
            if document.verification_status == DocumentStatus.PENDING.value:
                applications.set_document_status(document.id, DocumentStatus.VERIFIED, da.actor_id)

    def _step(application, name):
        today = local_date(clock.now())
        if name == "submit":
            return owner, TransitionRequest()
        if name == "start_scrutiny":
            return da, TransitionRequest(remarks="Scrutiny started")
        if name == "forward_to_dtdo":
            _verify_documents(application)
            return da, TransitionRequest(remarks="Documents verified and complete")
        if name == "dtdo_accept":
            return dtdo, TransitionRequest(remarks="Accepted for site inspection")
        if name == "schedule_inspection":
            return dtdo, TransitionRequest(inspection_date=today, assigned_da_id=da.actor_id)
        if name == "submit_inspection_report":
            return da, TransitionRequest(findings=findings_factory())
        if name == "approve_inspection_report":
            return dtdo, TransitionRequest(remarks="All mandatory items satisfied")
        if name == "initiate_payment":
            return owner, TransitionRequest(remarks="HimKosh payment initiated (TEST)")
        return Actor.system(), TransitionRequest(remarks="HimKosh payment confirmed (CIN: TEST)")

    def _advance(application, until: ApplicationStatus):
        while application.status != until.value:
            assert application.status in _NEXT_STEP, f"{until.value} is not reachable from {application.status}"
            name = _NEXT_STEP[application.status]
            if application.status == ApplicationStatus.VERIFIED_FOR_PAYMENT.value and until == ApplicationStatus.PAYMENT_PENDING:
                name = "initiate_payment"
            actor, request = _step(application, name)
            application = workflow.attempt(application.id, actor, name, request).application
        return application

    return _advance


@pytest.fixture
def callback_factory(cipher):
    """
    Encrypted gateway callback for ``app_ref_no``.

    ``tamper`` flips the amount after signing; ``omit_checksum`` drops the
    checksum marker entirely.
    """

    def _create(
        app_ref_no: str,
        status_cd: str = "1",
        ech_txn_id: str = "HIMGRN0001",
        amount: int = 3000,
        dept_ref_no: str = "",
        tamper: bool = False,
        omit_checksum: bool = False,
    ) -> str:
        status = {"1": "Success", "0": "Failed", "2": "Pending"}.get(status_cd, "Unknown")
        data = (
            f"EchTxnId={ech_txn_id}|BankCIN=CIN{ech_txn_id}|Bank=SBI|Status={status}"
            f"|StatusCD={status_cd}|AppRefNo={app_ref_no}|Amount={amount}"
            f"|Payment_Date=01-01-2025|DeptRefNo={dept_ref_no}|BankName=State Bank of India"
        )
        signed = f"{data}|checkSum={checksum(data)}"
        if tamper:
            signed = signed.replace(f"Amount={amount}", f"Amount={amount + 1}")
        if omit_checksum:
            signed = data
        return cipher.encrypt(signed)

    return _create
