"""
Settlement Reconciler tests.

Covers:
- Initiation: request string, amounts, test mode, DDO routing, return URL
- One open attempt per application; reset or a failed answer reopens payment
- Callback authentication: missing checksum, tampering, unknown reference
- Idempotent certificate issuance on repeated success callbacks
- Failure and pending callbacks
- Double verification through a fake HTTP session
- Resetting a stuck attempt
"""

import dataclasses

import pytest
import requests
from sqlalchemy import select

from homestay_engines.gateway_codec import checksum, split_signed_payload
from homestay_kernel.domain.workflow import ApplicationStatus, TransactionStatus
from homestay_kernel.exceptions import (
    ChecksumMismatchError,
    FeeNotCalculatedError,
    GatewayConfigurationError,
    GatewayUnavailableError,
    GuardRejection,
    MalformedPayloadError,
    NotReadyForPaymentError,
    PaymentAttemptOpenError,
    TransactionAlreadyCompleteError,
    TransactionNotFoundError,
)
from homestay_kernel.models.ddo_code import DdoCode
from homestay_kernel.models.payment_transaction import PaymentTransaction
from homestay_kernel.services.settings_store import GATEWAY_SETTING_KEY, PAYMENT_TEST_MODE_KEY
from homestay_services.gateway_client import GatewayClient
from homestay_services.payment_settlement import PaymentSettlement, sanitize_base_url

S = ApplicationStatus
PORTAL = "https://homestay.hp.example"


@pytest.fixture
def payable(draft_factory, advance):
    """An application verified for payment (fee 3000, Shimla)."""
    return advance(draft_factory(), S.VERIFIED_FOR_PAYMENT)


@pytest.fixture
def initiated(settlement, payable, owner):
    """(application, initiation) after a successful initiation."""
    return payable, settlement.initiate(payable.id, owner, PORTAL)


def _plaintext(cipher, initiation):
    return cipher.decrypt(initiation.encdata)


def _actions(audit_log, application_id, name):
    return [r for r in audit_log.timeline(application_id) if r.action == name]


class FakeResponse:
    def __init__(self, text, status_code=200):
        self.text = text
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")


class FakeHttp:
    """Stands in for requests.Session; records every POST."""

    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.calls = []

    def post(self, url, data=None, timeout=None):
        self.calls.append({"url": url, "data": data, "timeout": timeout})
        if self.error is not None:
            raise self.error
        return self.response


# =============================================================================
# Initiation
# =============================================================================


class TestInitiation:
    def test_moves_application_to_payment_pending(self, initiated, session):
        application, initiation = initiated

        assert application.status == S.PAYMENT_PENDING.value
        transaction = session.execute(
            select(PaymentTransaction).where(PaymentTransaction.app_ref_no == initiation.app_ref_no)
        ).scalar_one()
        assert transaction.transaction_status == TransactionStatus.INITIATED.value
        assert transaction.attempt_no == 1
        assert transaction.portal_base_url == PORTAL

    def test_request_string_contents(self, initiated, cipher):
        application, initiation = initiated

        signed = _plaintext(cipher, initiation)
        data, received = split_signed_payload(signed)

        assert data.startswith(
            f"DeptID=228|DeptRefNo={application.application_number}|TotalAmount=3000"
            f"|TenderBy=Asha Verma|AppRefNo={initiation.app_ref_no}"
            "|Head1=0230-00-104-01|Amount1=3000|Ddo=SML10-001"
            "|PeriodFrom=01-01-2025|PeriodTo=01-01-2025"
        )
        assert data.endswith(f"|Service_code=TSM|return_url={PORTAL}/payment/callback")
        core = data.split("|Service_code=")[0]
        assert received == checksum(core) == initiation.checksum

    def test_response_payload(self, initiated):
        _, initiation = initiated

        body = initiation.as_response()

        assert body["encdata"] == body["encryptedPayload"]
        assert body["merchantCode"] == "HIMKOSH228"
        assert body["totalAmount"] == body["actualAmount"] == 3000
        assert body["isTestMode"] is False
        assert body["message"] == "Payment initiated successfully."

    def test_open_attempt_blocks_a_second(self, initiated, settlement, owner, clock):
        application, first = initiated
        clock.advance(5)

        with pytest.raises(PaymentAttemptOpenError) as exc_info:
            settlement.initiate(application.id, owner, PORTAL)

        assert exc_info.value.app_ref_no == first.app_ref_no
        assert "reset" in str(exc_info.value)
        statuses = [t.transaction_status for t in settlement.transactions_for(application.id)]
        assert statuses == [TransactionStatus.INITIATED.value]

    def test_retry_after_reset_records_second_attempt(self, initiated, settlement, owner, clock):
        application, first = initiated
        settlement.reset_latest(application.id, owner)
        clock.advance(5)

        second = settlement.initiate(application.id, owner, PORTAL)

        attempts = settlement.transactions_for(application.id)
        assert [t.attempt_no for t in attempts] == [2, 1]
        assert [t.transaction_status for t in attempts] == ["initiated", "failed"]
        assert second.app_ref_no != first.app_ref_no
        assert application.status == S.PAYMENT_PENDING.value

    def test_admin_may_initiate(self, settlement, payable, admin):
        initiation = settlement.initiate(payable.id, admin, PORTAL)

        assert initiation.total_amount == 3000

    def test_other_owner_rejected(self, settlement, payable, other_owner):
        with pytest.raises(GuardRejection) as exc_info:
            settlement.initiate(payable.id, other_owner, PORTAL)

        assert exc_info.value.condition == "ownership"

    def test_not_ready_for_payment(self, settlement, draft_factory, advance, owner):
        application = advance(draft_factory(), S.DTDO_REVIEW)

        with pytest.raises(NotReadyForPaymentError):
            settlement.initiate(application.id, owner, PORTAL)

    def test_fee_required(self, settlement, draft_factory, advance, owner):
        application = advance(draft_factory(category=None), S.VERIFIED_FOR_PAYMENT)

        with pytest.raises(FeeNotCalculatedError):
            settlement.initiate(application.id, owner, PORTAL)

    def test_gateway_must_be_configured(self, session, config, settings_store, cipher, clock, workflow, payable, owner):
        unconfigured = dataclasses.replace(
            config, gateway=dataclasses.replace(config.gateway, key_file_path=None)
        )
        settlement = PaymentSettlement(
            session, unconfigured, settings_store, cipher, clock=clock, workflow_engine=workflow
        )

        with pytest.raises(GatewayConfigurationError) as exc_info:
            settlement.initiate(payable.id, owner, PORTAL)

        assert exc_info.value.missing == ("key_file_path",)
        assert payable.status == S.VERIFIED_FOR_PAYMENT.value


class TestTestMode:
    def test_stored_flag_sends_one_rupee(self, session, settings_store, settlement, payable, owner, captured_logs):
        settings_store.put(session, PAYMENT_TEST_MODE_KEY, {"enabled": True})

        initiation = settlement.initiate(payable.id, owner, PORTAL)

        assert initiation.total_amount == 1
        assert initiation.actual_amount == 3000
        assert initiation.message == "Test mode active: Gateway receives Rs 1"
        transaction = settlement.get_transaction(initiation.app_ref_no)
        assert (transaction.total_amount, transaction.amount1, transaction.actual_amount) == (1, 1, 3000)
        assert transaction.is_test_mode
        assert any(r["message"] == "payment_test_mode_active" for r in captured_logs())

    def test_configuration_overrides_stored_flag(
        self, session, config, settings_store, cipher, clock, workflow, payable, owner
    ):
        settings_store.put(session, PAYMENT_TEST_MODE_KEY, {"enabled": True})
        forced_off = dataclasses.replace(
            config, payment=dataclasses.replace(config.payment, force_test_mode=False)
        )
        settlement = PaymentSettlement(
            session, forced_off, settings_store, cipher, clock=clock, workflow_engine=workflow
        )

        assert settlement.initiate(payable.id, owner, PORTAL).total_amount == 3000


class TestRouting:
    def test_fallback_ddo_is_logged(self, payable, captured_logs, settlement, owner):
        settlement.initiate(payable.id, owner, PORTAL)

        fallbacks = [r for r in captured_logs() if r["message"] == "ddo_fallback_used"]
        assert fallbacks
        assert fallbacks[-1]["fallback_ddo"] == "SML10-001"
        assert fallbacks[-1]["routed_district"] == "Shimla"

    def test_directory_code_used(self, session, settlement, payable, owner):
        session.add(DdoCode(district="Shimla (Urban)", ddo_code="SML00-532", is_active=True))
        session.flush()

        initiation = settlement.initiate(payable.id, owner, PORTAL)

        assert settlement.get_transaction(initiation.app_ref_no).ddo == "SML00-532"

    def test_secondary_head_from_stored_override(self, session, settings_store, settlement, payable, owner, cipher):
        settings_store.put(
            session, GATEWAY_SETTING_KEY, {"head2": "0230-00-104-02", "head2Amount": "50"}
        )

        initiation = settlement.initiate(payable.id, owner, PORTAL)

        assert "|Amount1=3000|Head2=0230-00-104-02|Amount2=50|Ddo=" in _plaintext(cipher, initiation)
        assert settlement.gateway_status()["source"] == "database_override"

    def test_return_url_from_configuration(self, session, config, settings_store, cipher, clock, workflow, payable, owner):
        with_return = dataclasses.replace(
            config,
            gateway=dataclasses.replace(config.gateway, return_url="https://cb.example/himkosh/return"),
        )
        settlement = PaymentSettlement(
            session, with_return, settings_store, cipher, clock=clock, workflow_engine=workflow
        )

        initiation = settlement.initiate(payable.id, owner, None)

        assert "|return_url=https://cb.example/himkosh/return|checkSum=" in _plaintext(cipher, initiation)
        assert settlement.get_transaction(initiation.app_ref_no).portal_base_url == "https://cb.example"



# =============================================================================
# Callbacks
# =============================================================================


class TestSuccessCallback:
    def test_confirms_payment_and_issues_certificate(self, initiated, settlement, callback_factory, session):
        application, initiation = initiated

        outcome = settlement.handle_callback(callback_factory(initiation.app_ref_no))

        assert outcome.certificate_issued
        assert application.status == S.APPROVED.value
        assert application.certificate_number == "HP-HST-2025-10001"
        transaction = outcome.transaction
        assert transaction.transaction_status == TransactionStatus.SUCCESS.value
        assert transaction.ech_txn_id == "HIMGRN0001"
        assert transaction.bank_cin == "CINHIMGRN0001"
        assert transaction.status_cd == "1"
        assert transaction.challan_print_url.endswith("reportName=PaidChallan&TransId=HIMGRN0001")

    def test_redirects_to_dashboard(self, initiated, settlement, callback_factory):
        application, initiation = initiated

        outcome = settlement.handle_callback(callback_factory(initiation.app_ref_no))

        assert outcome.redirect_url == (
            f"{PORTAL}/dashboard?payment=success&application={application.id}"
            f"&appNo={application.application_number}"
        )
        assert outcome.meta.title == "Payment Confirmed"
        assert "Payment Confirmed" in outcome.html
        assert 'http-equiv="refresh"' in outcome.html

    def test_repeated_callback_is_idempotent(
        self, initiated, settlement, callback_factory, audit_log, captured_logs
    ):
        application, initiation = initiated
        encdata = callback_factory(initiation.app_ref_no)

        settlement.handle_callback(encdata)
        again = settlement.handle_callback(encdata)

        assert not again.certificate_issued
        assert application.certificate_number == "HP-HST-2025-10001"
        assert len(_actions(audit_log, application.id, "payment_confirmed")) == 1
        assert len(_actions(audit_log, application.id, "certificate_issued")) == 1
        assert any(r["message"] == "callback_already_applied" for r in captured_logs())

    def test_missing_portal_base_means_no_redirect(
        self, session, config, settings_store, cipher, clock, workflow, payable, owner,
        callback_factory, captured_logs,
    ):
        settlement = PaymentSettlement(
            session, config, settings_store, cipher, clock=clock, workflow_engine=workflow
        )
        initiation = settlement.initiate(payable.id, owner, None)

        outcome = settlement.handle_callback(callback_factory(initiation.app_ref_no))

        assert outcome.redirect_url is None
        assert outcome.certificate_issued
        assert 'http-equiv="refresh"' not in outcome.html
        assert any(r["message"] == "portal_base_url_missing" for r in captured_logs())


class TestUnsuccessfulCallback:
    def test_failed_payment_keeps_application_pending(self, initiated, settlement, callback_factory):
        application, initiation = initiated

        outcome = settlement.handle_callback(
            callback_factory(initiation.app_ref_no, status_cd="0", ech_txn_id="HIMGRN0002")
        )

        assert not outcome.certificate_issued
        assert application.status == S.PAYMENT_PENDING.value
        assert outcome.transaction.transaction_status == TransactionStatus.FAILED.value
        assert outcome.transaction.challan_print_url is None
        assert outcome.redirect_url == (
            f"{PORTAL}/applications/{application.id}?payment=failed&himgrn=HIMGRN0002"
        )
        assert outcome.meta.title == "Payment Failed"

    def test_failed_answer_allows_a_fresh_attempt(self, initiated, settlement, callback_factory, owner, clock):
        application, initiation = initiated
        settlement.handle_callback(callback_factory(initiation.app_ref_no, status_cd="0"))
        clock.advance(60)

        retry = settlement.initiate(application.id, owner, PORTAL)

        assert retry.app_ref_no != initiation.app_ref_no
        assert len(settlement.transactions_for(application.id)) == 2

    def test_pending_status_page(self, initiated, settlement, callback_factory):
        application, initiation = initiated

        outcome = settlement.handle_callback(callback_factory(initiation.app_ref_no, status_cd="2"))

        assert outcome.meta.title == "Payment Pending"
        assert "payment=pending" in outcome.redirect_url
        assert application.status == S.PAYMENT_PENDING.value


class TestCallbackAuthentication:
    def test_empty_payload(self, settlement):
        with pytest.raises(MalformedPayloadError, match="encdata missing"):
            settlement.handle_callback("")

    def test_missing_checksum_writes_nothing(self, initiated, settlement, callback_factory, captured_logs):
        application, initiation = initiated

        with pytest.raises(MalformedPayloadError):
            settlement.handle_callback(callback_factory(initiation.app_ref_no, omit_checksum=True))

        transaction = settlement.get_transaction(initiation.app_ref_no)
        assert transaction.transaction_status == TransactionStatus.INITIATED.value
        assert transaction.ech_txn_id is None
        assert application.status == S.PAYMENT_PENDING.value
        assert any(r["message"] == "callback_checksum_missing" for r in captured_logs())

    def test_tampered_payload_writes_nothing(self, initiated, settlement, callback_factory, captured_logs):
        application, initiation = initiated

        with pytest.raises(ChecksumMismatchError) as exc_info:
            settlement.handle_callback(callback_factory(initiation.app_ref_no, tamper=True))

        assert exc_info.value.app_ref_no == initiation.app_ref_no
        transaction = settlement.get_transaction(initiation.app_ref_no)
        assert transaction.transaction_status == TransactionStatus.INITIATED.value
        assert application.certificate_number is None
        assert any(r["message"] == "callback_checksum_mismatch" for r in captured_logs())

    def test_undecryptable_payload(self, settlement, captured_logs):
        with pytest.raises(MalformedPayloadError):
            settlement.handle_callback("not-base64-at-all")

        assert any(r["message"] == "callback_undecryptable" for r in captured_logs())

    def test_unknown_reference(self, settlement, callback_factory):
        with pytest.raises(TransactionNotFoundError):
            settlement.handle_callback(callback_factory("HPT0000000000000zzzz"))


# =============================================================================
# Double verification
# =============================================================================


class TestDoubleVerification:
    def _settlement(self, session, config, settings_store, cipher, clock, workflow, http):
        client = GatewayClient(config.gateway.verification_url, timeout=5, http=http)
        return PaymentSettlement(
            session, config, settings_store, cipher,
            gateway_client=client, clock=clock, workflow_engine=workflow,
        )

    def test_records_gateway_answer(self, session, config, settings_store, cipher, clock, workflow, payable, owner):
        http = FakeHttp(FakeResponse("TXN_STAT=1|EchTxnId=HIMGRN0001|Amount=3000"))
        settlement = self._settlement(session, config, settings_store, cipher, clock, workflow, http)
        initiation = settlement.initiate(payable.id, owner, PORTAL)

        result = settlement.verify(initiation.app_ref_no)

        assert result.verified
        assert result.data["EchTxnId"] == "HIMGRN0001"
        transaction = settlement.get_transaction(initiation.app_ref_no)
        assert transaction.is_double_verified
        assert transaction.double_verification_data == {
            "TXN_STAT": "1", "EchTxnId": "HIMGRN0001", "Amount": "3000",
        }
        assert transaction.verified_at == clock.now()
        # reconciliation only
        assert transaction.transaction_status == TransactionStatus.INITIATED.value
        assert payable.status == S.PAYMENT_PENDING.value

    def test_request_is_signed_and_encrypted(
        self, session, config, settings_store, cipher, clock, workflow, payable, owner
    ):
        http = FakeHttp(FakeResponse("TXN_STAT=0"))
        settlement = self._settlement(session, config, settings_store, cipher, clock, workflow, http)
        initiation = settlement.initiate(payable.id, owner, PORTAL)

        result = settlement.verify(initiation.app_ref_no)

        assert not result.verified
        (call,) = http.calls
        assert call["url"] == config.gateway.verification_url
        assert call["timeout"] == 5
        data, received = split_signed_payload(cipher.decrypt(call["data"]["encdata"]))
        assert data == f"AppRefNo={initiation.app_ref_no}|Service_code=TSM|merchant_code=HIMKOSH228"
        assert received == checksum(data)

    def test_unreachable_gateway(self, session, config, settings_store, cipher, clock, workflow, payable, owner):
        http = FakeHttp(error=requests.ConnectionError("connection refused"))
        settlement = self._settlement(session, config, settings_store, cipher, clock, workflow, http)
        initiation = settlement.initiate(payable.id, owner, PORTAL)

        with pytest.raises(GatewayUnavailableError):
            settlement.verify(initiation.app_ref_no)

        assert not settlement.get_transaction(initiation.app_ref_no).is_double_verified

    def test_gateway_error_status(self, session, config, settings_store, cipher, clock, workflow, payable, owner):
        http = FakeHttp(FakeResponse("", status_code=503))
        settlement = self._settlement(session, config, settings_store, cipher, clock, workflow, http)
        initiation = settlement.initiate(payable.id, owner, PORTAL)

        with pytest.raises(GatewayUnavailableError):
            settlement.verify(initiation.app_ref_no)

    def test_unknown_reference(self, settlement):
        with pytest.raises(TransactionNotFoundError):
            settlement.verify("HPT-unknown")


# =============================================================================
# Reset
# =============================================================================


class TestReset:
    def test_marks_latest_attempt_failed(self, initiated, settlement, owner):
        application, initiation = initiated

        transaction = settlement.reset_latest(application.id, owner)

        assert transaction.app_ref_no == initiation.app_ref_no
        assert transaction.transaction_status == TransactionStatus.FAILED.value
        assert transaction.status == "Cancelled by applicant"
        assert transaction.status_cd == "0"
        assert application.status == S.PAYMENT_PENDING.value

    def test_second_reset_rejected(self, initiated, settlement, owner):
        application, _ = initiated
        settlement.reset_latest(application.id, owner)

        with pytest.raises(TransactionAlreadyCompleteError):
            settlement.reset_latest(application.id, owner)

    def test_officer_may_reset(self, initiated, settlement, dtdo):
        application, _ = initiated

        assert settlement.reset_latest(application.id, dtdo).transaction_status == "failed"

    def test_other_owner_rejected(self, initiated, settlement, other_owner):
        application, _ = initiated

        with pytest.raises(GuardRejection) as exc_info:
            settlement.reset_latest(application.id, other_owner)

        assert exc_info.value.condition == "ownership"

    def test_nothing_to_reset(self, settlement, payable, owner):
        with pytest.raises(TransactionNotFoundError):
            settlement.reset_latest(payable.id, owner)


# =============================================================================
# Queries and helpers
# =============================================================================


class TestQueries:
    def test_list_transactions_clamps_limit(self, initiated, settlement):
        assert len(settlement.list_transactions(limit=0)) == 1
        assert len(settlement.list_transactions(limit=10_000)) == 1

    def test_gateway_status(self, settlement):
        status = settlement.gateway_status()

        assert status["configured"] is True
        assert status["missing"] == []
        assert status["merchantCode"] == "HIMKOSH228"
        assert status["source"] == "file"


class TestSanitizeBaseUrl:
    @pytest.mark.parametrize(
        "value, expected",
        [
            ("https://portal.example/some/path?x=1", "https://portal.example"),
            ("http://localhost:5000/", "http://localhost:5000"),
            ("portal.example", "https://portal.example"),
            ("  ", None),
            (None, None),
            ("ftp://portal.example", None),
        ],
    )
    def test_sanitize(self, value, expected):
        assert sanitize_base_url(value) == expected
