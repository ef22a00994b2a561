"""
HTTP API tests.

Covers:
- Identity headers: missing, malformed and system claims are refused
- Draft creation and the camelCase wire format
- Guard rejections mapped to 400 / 403, unknown transitions to 404
- The full journey over HTTP: draft to certificate through the gateway callback
- Staff-only payment endpoints and the gateway status report
- Service Center listing and request creation
"""

import dataclasses
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from homestay_api.app import create_app
from homestay_kernel.db.engine import reset_engine
from homestay_kernel.domain.inspection import MANDATORY_CHECKLIST_KEYS
from homestay_services.gateway_client import GatewayClient

PORTAL = "https://homestay.hp.example"

DRAFT_BODY = {
    "ownerName": "Asha Verma",
    "ownerMobile": "9816000000",
    "propertyName": "Deodar Cottage",
    "address": "Ward 4, Mashobra Road",
    "district": "Shimla",
    "tehsil": "Shimla Urban",
    "pincode": "171007",
    "category": "silver",
    "locationType": "gp",
    "singleBedRooms": 2,
    "doubleBedRooms": 1,
    "attachedWashrooms": 3,
}


class FakeResponse:
    status_code = 200

    def __init__(self, text):
        self.text = text

    def raise_for_status(self):
        return None


class FakeHttp:
    def post(self, url, data=None, timeout=None):
        return FakeResponse("TXN_STAT=1|EchTxnId=HIMGRN0001")


def _headers(actor):
    headers = {"X-Actor-Id": str(actor.actor_id), "X-Actor-Role": actor.role.value}
    if actor.district:
        headers["X-Actor-District"] = actor.district
    return headers


@pytest.fixture
def client(config, session_factory, clock, cipher):
    app = create_app(
        config=config,
        session_factory=session_factory,
        clock=clock,
        cipher=cipher,
        gateway_client=GatewayClient(config.gateway.verification_url, http=FakeHttp()),
    )
    return TestClient(app)


@pytest.fixture
def journey(client, owner, da, dtdo):
    """Drive one application over HTTP; returns a callable advancing by transition name."""
    created = client.post("/applications", json=DRAFT_BODY, headers=_headers(owner))
    assert created.status_code == 201
    application_id = created.json()["id"]

    def _transition(actor, name, body=None):
        response = client.post(
            f"/applications/{application_id}/transitions/{name}",
            json=body or {},
            headers=_headers(actor),
        )
        assert response.status_code == 200, response.json()
        return response.json()

    def _to_verified_for_payment():
        _transition(owner, "submit")
        _transition(da, "start_scrutiny", {"remarks": "Scrutiny started"})
        document = client.post(
            f"/applications/{application_id}/documents",
            json={"documentType": "property_photo", "fileName": "front.jpg"},
            headers=_headers(owner),
        ).json()
        decided = client.put(
            f"/applications/{application_id}/documents/{document['id']}",
            json={"status": "verified"},
            headers=_headers(da),
        )
        assert decided.json()["verificationStatus"] == "verified"
        _transition(da, "forward_to_dtdo", {"remarks": "Documents verified and complete"})
        _transition(dtdo, "dtdo_accept", {"remarks": "Accepted for site inspection"})
        _transition(
            dtdo,
            "schedule_inspection",
            {"inspectionDate": "2025-01-01", "assignedDaId": str(da.actor_id)},
        )
        _transition(
            da,
            "submit_inspection_report",
            {
                "findings": {
                    "actualInspectionDate": "2025-01-01",
                    "roomCountVerified": True,
                    "categoryMeetsStandards": True,
                    "overallSatisfactory": True,
                    "mandatoryChecklist": {key: True for key in MANDATORY_CHECKLIST_KEYS},
                    "actualRoomCount": 3,
                    "recommendedCategory": "silver",
                    "fireSafetyCompliant": True,
                    "structuralSafety": True,
                    "detailedFindings": "Property matches the declared details.",
                }
            },
        )
        return _transition(dtdo, "approve_inspection_report", {"remarks": "All mandatory items satisfied"})

    _transition.application_id = application_id
    _transition.to_verified_for_payment = _to_verified_for_payment
    return _transition


# =============================================================================
# Identity
# =============================================================================


class TestProductionWiring:
    @pytest.fixture
    def standalone(self, config, clock, cipher):
        sqlite_config = dataclasses.replace(
            config, database=dataclasses.replace(config.database, url="sqlite://")
        )
        yield TestClient(create_app(config=sqlite_config, clock=clock, cipher=cipher))
        reset_engine()

    def test_sqlite_schema_is_created_at_startup(self, standalone, owner):
        created = standalone.post("/applications", json=DRAFT_BODY, headers=_headers(owner))

        assert created.status_code == 201
        listed = standalone.get("/applications", headers=_headers(owner))
        assert [a["id"] for a in listed.json()] == [created.json()["id"]]


class TestIdentity:
    def test_healthz_is_public(self, client):
        response = client.get("/healthz")

        assert response.json() == {"status": "ok", "gatewayConfigured": True}
        assert response.headers["X-Correlation-Id"]

    def test_missing_identity(self, client):
        assert client.get("/applications").status_code == 401

    def test_unknown_role(self, client):
        response = client.get(
            "/applications", headers={"X-Actor-Id": str(uuid4()), "X-Actor-Role": "superuser"}
        )

        assert response.status_code == 401

    def test_system_cannot_be_claimed(self, client):
        response = client.get(
            "/applications", headers={"X-Actor-Id": str(uuid4()), "X-Actor-Role": "system"}
        )

        assert response.status_code == 401

    def test_correlation_id_echoed(self, client):
        response = client.get("/healthz", headers={"X-Correlation-Id": "req-42"})

        assert response.headers["X-Correlation-Id"] == "req-42"


# =============================================================================
# Applications
# =============================================================================


class TestApplications:
    def test_create_draft(self, client, owner):
        response = client.post("/applications", json=DRAFT_BODY, headers=_headers(owner))

        assert response.status_code == 201
        body = response.json()
        assert body["status"] == "draft"
        assert body["applicationKind"] == "new_registration"
        assert body["totalRooms"] == 3
        assert body["applicationNumber"] == "HP-HS-2025-SML-000001"
        assert body["ownerId"] == str(owner.actor_id)

    def test_officers_cannot_create_drafts(self, client, da):
        response = client.post("/applications", json=DRAFT_BODY, headers=_headers(da))

        assert response.status_code == 403
        assert response.json()["condition"] == "role"

    def test_owner_lists_own_applications(self, client, owner, other_owner):
        client.post("/applications", json=DRAFT_BODY, headers=_headers(owner))

        assert len(client.get("/applications", headers=_headers(owner)).json()) == 1
        assert client.get("/applications", headers=_headers(other_owner)).json() == []

    def test_other_owner_cannot_view(self, client, journey, other_owner):
        response = client.get(f"/applications/{journey.application_id}", headers=_headers(other_owner))

        assert response.status_code == 403

    def test_unknown_application(self, client, owner):
        assert client.get(f"/applications/{uuid4()}", headers=_headers(owner)).status_code == 404

    def test_unknown_transition(self, client, journey, owner):
        response = client.post(
            f"/applications/{journey.application_id}/transitions/teleport",
            json={},
            headers=_headers(owner),
        )

        assert response.status_code == 404

    def test_guard_rejection_names_condition(self, client, journey, da):
        response = client.post(
            f"/applications/{journey.application_id}/transitions/start_scrutiny",
            json={},
            headers=_headers(da),
        )

        assert response.status_code == 400
        body = response.json()
        assert body["code"] == "GUARD_REJECTION"
        assert body["condition"] == "status"
        assert body["transition"] == "start_scrutiny"

    def test_transition_result(self, journey, owner):
        result = journey(owner, "submit")

        assert result["application"]["status"] == "submitted"
        assert result["eventId"] == "application_submitted"
        assert [a["action"] for a in result["actions"]] == ["owner_submitted"]

    def test_available_transitions(self, client, journey, owner):
        response = client.get(
            f"/applications/{journey.application_id}/transitions", headers=_headers(owner)
        )

        assert "submit" in response.json()["transitions"]

    def test_timeline_and_chain(self, client, journey, owner, da):
        journey(owner, "submit")
        journey(da, "start_scrutiny", {"remarks": "Scrutiny started"})

        timeline = client.get(
            f"/applications/{journey.application_id}/timeline", headers=_headers(owner)
        ).json()
        verified = client.get(
            f"/applications/{journey.application_id}/timeline/verify", headers=_headers(da)
        ).json()

        assert [row["action"] for row in timeline] == ["owner_submitted", "scrutiny_started"]
        assert verified == {"valid": True, "brokenAt": None}


# =============================================================================
# Payment
# =============================================================================


class TestPaymentJourney:
    def test_draft_to_certificate(self, client, journey, owner, cipher, callback_factory):
        approved = journey.to_verified_for_payment()
        assert approved["application"]["status"] == "verified_for_payment"

        initiated = client.post(
            "/payment/initiate",
            json={"applicationId": journey.application_id, "portalBaseUrl": PORTAL},
            headers=_headers(owner),
        )
        assert initiated.status_code == 200
        payment = initiated.json()
        assert payment["totalAmount"] == 3000
        assert payment["paymentUrl"].startswith("https://himkosh.hp.nic.in/")
        assert "DeptRefNo=HP-HS-2025-SML-000001" in cipher.decrypt(payment["encdata"])

        callback = client.post(
            "/payment/callback", data={"encdata": callback_factory(payment["appRefNo"])}
        )
        assert callback.status_code == 200
        assert "text/html" in callback.headers["content-type"]
        assert "Payment Confirmed" in callback.text

        application = client.get(
            f"/applications/{journey.application_id}", headers=_headers(owner)
        ).json()
        assert application["status"] == "approved"
        assert application["certificateNumber"] == "HP-HST-2025-10001"

    def test_tampered_callback_gets_generic_error(self, client, journey, owner, callback_factory):
        journey.to_verified_for_payment()
        payment = client.post(
            "/payment/initiate",
            json={"applicationId": journey.application_id, "portalBaseUrl": PORTAL},
            headers=_headers(owner),
        ).json()

        response = client.post(
            "/payment/callback",
            data={"encdata": callback_factory(payment["appRefNo"], tamper=True)},
        )

        assert response.status_code == 400
        assert response.json() == {"code": "PAYLOAD_INTEGRITY_FAILURE", "message": "Invalid payment response"}

    def test_callback_without_payload(self, client):
        assert client.post("/payment/callback", data={}).status_code == 400

    def test_holding_page(self, client):
        response = client.get("/payment/callback")

        assert response.status_code == 200
        assert "Processing Payment" in response.text

    def test_not_ready_for_payment(self, client, journey, owner):
        response = client.post(
            "/payment/initiate",
            json={"applicationId": journey.application_id},
            headers=_headers(owner),
        )

        assert response.status_code == 400
        assert response.json()["code"] == "NOT_READY_FOR_PAYMENT"

    def test_staff_endpoints(self, client, journey, owner, dtdo):
        journey.to_verified_for_payment()
        payment = client.post(
            "/payment/initiate",
            json={"applicationId": journey.application_id, "portalBaseUrl": PORTAL},
            headers=_headers(owner),
        ).json()

        assert client.get("/payment/transactions", headers=_headers(owner)).status_code == 403

        listed = client.get("/payment/transactions", headers=_headers(dtdo)).json()
        assert [t["appRefNo"] for t in listed] == [payment["appRefNo"]]
        assert listed[0]["transactionStatus"] == "initiated"

        verified = client.post(f"/payment/verify/{payment['appRefNo']}", headers=_headers(dtdo)).json()
        assert verified["verified"] is True
        assert verified["raw"]["EchTxnId"] == "HIMGRN0001"

        status = client.get("/payment/config/status", headers=_headers(dtdo)).json()
        assert status["configured"] is True
        assert status["merchantCode"] == "HIMKOSH228"

    def test_owner_resets_stuck_attempt(self, client, journey, owner):
        journey.to_verified_for_payment()
        client.post(
            "/payment/initiate",
            json={"applicationId": journey.application_id, "portalBaseUrl": PORTAL},
            headers=_headers(owner),
        )

        reset = client.post(
            f"/payment/applications/{journey.application_id}/reset", headers=_headers(owner)
        )
        again = client.post(
            f"/payment/applications/{journey.application_id}/reset", headers=_headers(owner)
        )

        assert reset.status_code == 200
        assert reset.json()["transactionStatus"] == "failed"
        assert again.status_code == 400
        assert again.json()["code"] == "TRANSACTION_ALREADY_COMPLETE"

    def test_second_initiation_while_open_conflicts(self, client, journey, owner):
        journey.to_verified_for_payment()
        body = {"applicationId": journey.application_id, "portalBaseUrl": PORTAL}
        first = client.post("/payment/initiate", json=body, headers=_headers(owner)).json()

        second = client.post("/payment/initiate", json=body, headers=_headers(owner))

        assert second.status_code == 409
        assert second.json()["code"] == "PAYMENT_ATTEMPT_OPEN"
        assert second.json()["app_ref_no"] == first["appRefNo"]


# =============================================================================
# Service Center
# =============================================================================


class TestServiceCenter:
    def test_empty_for_new_owner(self, client, owner):
        response = client.get("/service-center", headers=_headers(owner))

        assert response.json() == {"applications": []}

    def test_officers_refused(self, client, da):
        assert client.get("/service-center", headers=_headers(da)).status_code == 403

    def test_request_for_unknown_parent(self, client, owner):
        response = client.post(
            "/service-center",
            json={"baseApplicationId": str(uuid4()), "serviceType": "cancel_certificate"},
            headers=_headers(owner),
        )

        assert response.status_code == 404

    def test_unknown_service_type(self, client, owner):
        response = client.post(
            "/service-center",
            json={"baseApplicationId": str(uuid4()), "serviceType": "teleport"},
            headers=_headers(owner),
        )

        assert response.status_code == 400
