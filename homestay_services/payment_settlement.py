"""
homestay_services.payment_settlement -- Settlement Reconciler for HimKosh.

Responsibility:
    Owns every write to ``payment_transactions``:

    * ``initiate``        -- builds, signs and encrypts the request, stores
                             the attempt as ``initiated`` before the payer
                             is redirected.
    * ``handle_callback`` -- authenticates the gateway's answer, records it
                             and, on status code ``1``, confirms payment
                             through the Workflow Engine (certificate
                             issuance happens there).
    * ``verify``          -- server-to-server double verification; stored
                             for reconciliation only.
    * ``reset_latest``    -- marks a stuck attempt failed so the payer can
                             start over.

Architecture position:
    Services -- composes the gateway codec engine, the gateway HTTP client,
    the settings store, the DDO directory and the kernel Workflow Engine.

Invariants enforced:
    - total_amount / amount1 always equal what was transmitted, never the
      real fee when test mode is on; actual_amount keeps the real fee.
    - Callbacks fail closed: a missing checksum marker, an undecryptable
      payload or a checksum mismatch writes nothing.
    - A repeated success callback never issues a second certificate.
    - The portal base URL is captured once at initiation; the callback
      never derives it from its own request.
    - Double verification never changes application status.
    - At most one attempt per application is open (``initiated``) at a time.

Failure modes:
    - NotReadyForPaymentError, FeeNotCalculatedError, PaymentAttemptOpenError,
      GatewayConfigurationError from ``initiate``.
    - MalformedPayloadError, ChecksumMismatchError, TransactionNotFoundError
      from ``handle_callback``.
    - GatewayUnavailableError from ``verify``.
    - TransactionAlreadyCompleteError from ``reset_latest``.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any
from urllib.parse import urlsplit
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from homestay_config import GatewayConfig, HomestayConfig, read_gateway_key
from homestay_engines.gateway_codec import (
    GatewayCipher,
    GatewayRequest,
    build_verification_string,
    decode_callback,
    encode_request,
    to_whole_rupees,
)
from homestay_kernel.domain.clock import Clock, SystemClock, local_date
from homestay_kernel.domain.district import derive_district_routing_label
from homestay_kernel.domain.dtos import Actor, TransitionRequest
from homestay_kernel.domain.numbering import (
    ensure_district_code_on_application_number,
    generate_app_ref_no,
)
from homestay_kernel.domain.workflow import (
    OFFICER_ROLES,
    PAYABLE_STATUSES,
    TERMINAL_TRANSACTION_STATUSES,
    ActorRole,
    ApplicationStatus,
    TransactionStatus,
)
from homestay_kernel.exceptions import (
    ApplicationNotFoundError,
    ChecksumMismatchError,
    FeeNotCalculatedError,
    GatewayConfigurationError,
    GuardRejection,
    MalformedPayloadError,
    NotReadyForPaymentError,
    PaymentAttemptOpenError,
    TransactionAlreadyCompleteError,
    TransactionNotFoundError,
)
from homestay_kernel.logging_config import LogContext, get_logger
from homestay_kernel.models.application import Application
from homestay_kernel.models.payment_transaction import PaymentTransaction
from homestay_kernel.services.ddo_directory import DdoDirectory
from homestay_kernel.services.settings_store import SettingsStore
from homestay_kernel.services.workflow_engine import WorkflowEngine
from homestay_services.engine_wiring import build_workflow_engine
from homestay_services.gateway_client import GatewayClient
from homestay_services.status_page import (
    SUCCESS,
    CallbackPage,
    StatusMeta,
    redirect_path,
    render_status_page,
    status_meta,
)

logger = get_logger("services.payment_settlement")

CALLBACK_PATH = "/payment/callback"
RESET_STATUS_TEXT = "Cancelled by applicant"
MAX_PAGE_SIZE = 200
DEFAULT_PAGE_SIZE = 50


def sanitize_base_url(value: str | None) -> str | None:
    """``scheme://host[:port]`` of ``value``; a bare host is taken as https."""
    if not value or not value.strip():
        return None
    candidate = value.strip()
    if "://" not in candidate:
        candidate = f"https://{candidate}"
    parts = urlsplit(candidate)
    if parts.scheme not in ("http", "https") or not parts.netloc:
        return None
    return f"{parts.scheme}://{parts.netloc}"


# =============================================================================
# Results
# =============================================================================


@dataclass(frozen=True)
class PaymentInitiation:
    payment_url: str
    merchant_code: str
    encdata: str
    checksum: str
    app_ref_no: str
    total_amount: int
    actual_amount: int
    is_test_mode: bool

    @property
    def message(self) -> str:
        if self.is_test_mode:
            return f"Test mode active: Gateway receives Rs {self.total_amount}"
        return "Payment initiated successfully."

    def as_response(self) -> dict[str, Any]:
        return {
            "paymentUrl": self.payment_url,
            "merchantCode": self.merchant_code,
            "encdata": self.encdata,
            "encryptedPayload": self.encdata,
            "checksum": self.checksum,
            "appRefNo": self.app_ref_no,
            "totalAmount": self.total_amount,
            "actualAmount": self.actual_amount,
            "isTestMode": self.is_test_mode,
            "message": self.message,
        }


@dataclass(frozen=True)
class CallbackOutcome:
    transaction: PaymentTransaction
    meta: StatusMeta
    redirect_url: str | None
    certificate_issued: bool
    html: str


@dataclass(frozen=True)
class VerificationResult:
    app_ref_no: str
    verified: bool
    data: dict[str, str]


# =============================================================================
# Reconciler
# =============================================================================


class PaymentSettlement:
    """HimKosh payment attempts for one unit of work."""

    def __init__(
        self,
        session: Session,
        config: HomestayConfig,
        settings: SettingsStore | None = None,
        cipher: GatewayCipher | None = None,
        gateway_client: GatewayClient | None = None,
        clock: Clock | None = None,
        workflow_engine: WorkflowEngine | None = None,
    ):
        self._session = session
        self._config = config
        self._clock = clock or SystemClock()
        self._settings = settings or SettingsStore(self._clock)
        self._cipher = cipher
        self._gateway_client = gateway_client
        self._engine = workflow_engine or build_workflow_engine(
            session, config.workflow, self._clock
        )

    # -------------------------------------------------------------------------
    # Collaborators
    # -------------------------------------------------------------------------

    def resolve_gateway(self) -> GatewayConfig:
        """File configuration with the stored ``himkosh_gateway`` overrides applied."""
        return self._config.gateway.with_overrides(
            self._settings.gateway_overrides(self._session)
        )

    def _get_cipher(self, gateway: GatewayConfig) -> GatewayCipher:
        if self._cipher is None:
            self._cipher = GatewayCipher(read_gateway_key(gateway.key_file_path))
        return self._cipher

    def _get_client(self, gateway: GatewayConfig) -> GatewayClient:
        if self._gateway_client is None:
            self._gateway_client = GatewayClient(
                gateway.verification_url,
                timeout=self._config.payment.verification_timeout_seconds,
            )
        return self._gateway_client

    def gateway_status(self) -> dict[str, Any]:
        gateway = self.resolve_gateway()
        return {
            "configured": gateway.is_configured,
            "missing": list(gateway.missing_fields()),
            "merchantCode": gateway.merchant_code,
            "deptId": gateway.dept_id,
            "serviceCode": gateway.service_code,
            "returnUrl": gateway.return_url,
            "source": gateway.source,
        }

    # -------------------------------------------------------------------------
    # Initiation
    # -------------------------------------------------------------------------

    def _lock_application(self, application_id: UUID) -> Application:
        application = self._session.execute(
            select(Application)
            .where(Application.id == application_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if application is None:
            raise ApplicationNotFoundError(str(application_id))
        return application

    def _resolve_ddo(self, application: Application, fallback: str) -> str:
        label = derive_district_routing_label(application.district, application.tehsil) or application.district
        code = DdoDirectory(self._session).resolve_code(label)
        if code is None:
            logger.warning(
                "ddo_fallback_used",
                extra={
                    "routed_district": label,
                    "original_district": application.district,
                    "fallback_ddo": fallback,
                },
            )
            return fallback
        logger.info("ddo_resolved", extra={"routed_district": label, "ddo_code": code})
        return code

    def _latest_attempt(self, application_id: UUID) -> PaymentTransaction | None:
        return self._session.execute(
            select(PaymentTransaction)
            .where(PaymentTransaction.application_id == application_id)
            .order_by(PaymentTransaction.attempt_no.desc())
            .limit(1)
            .with_for_update()
        ).scalar_one_or_none()

    def _next_attempt_no(self, application_id: UUID) -> int:
        latest = self._session.execute(
            select(func.max(PaymentTransaction.attempt_no))
            .where(PaymentTransaction.application_id == application_id)
        ).scalar_one()
        return (latest or 0) + 1

    def initiate(
        self,
        application_id: UUID,
        actor: Actor,
        portal_base_url: str | None = None,
    ) -> PaymentInitiation:
        """
        Start a payment attempt.

        ``portal_base_url`` is the origin the payer came from, as reported
        by the API layer; it is stored on the attempt and used for the
        gateway's return URL.
        """
        with LogContext.bind(application_id=str(application_id), actor_id=_key(actor.actor_id)):
            application = self._lock_application(application_id)

            if actor.role != ActorRole.ADMIN and not (
                actor.role == ActorRole.PROPERTY_OWNER and actor.actor_id == application.owner_id
            ):
                raise GuardRejection(
                    "initiate_payment", "ownership", "You can only pay for your own applications"
                )
            if application.current_status not in PAYABLE_STATUSES:
                logger.info("payment_not_ready", extra={"current_status": application.status})
                raise NotReadyForPaymentError(str(application_id), application.status)
            if application.total_fee is None or Decimal(application.total_fee) <= 0:
                raise FeeNotCalculatedError(str(application_id))

            open_attempt = self._latest_attempt(application.id)
            if open_attempt is not None and not _is_terminal(open_attempt):
                logger.info(
                    "payment_attempt_still_open",
                    extra={"app_ref_no": open_attempt.app_ref_no, "attempt_no": open_attempt.attempt_no},
                )
                raise PaymentAttemptOpenError(str(application_id), open_attempt.app_ref_no)

            gateway = self.resolve_gateway()
            missing = gateway.missing_fields()
            if missing:
                logger.error("gateway_not_configured", extra={"missing": list(missing)})
                raise GatewayConfigurationError(missing)
            cipher = self._get_cipher(gateway)

            now = self._clock.now()
            today = local_date(now)
            ddo = self._resolve_ddo(application, gateway.ddo)

            actual_amount = to_whole_rupees(application.total_fee)
            is_test_mode = self._settings.payment_test_mode(
                self._session, forced=self._config.payment.force_test_mode
            )
            gateway_amount = self._config.payment.test_mode_amount if is_test_mode else actual_amount
            if is_test_mode:
                logger.info(
                    "payment_test_mode_active",
                    extra={"actual_amount": actual_amount, "gateway_amount": gateway_amount},
                )

            requested_base = sanitize_base_url(portal_base_url)
            stored_base = (
                requested_base
                or sanitize_base_url(self._config.portal.base_url)
                or sanitize_base_url(gateway.return_url)
            )
            if requested_base:
                callback_url = f"{requested_base}{CALLBACK_PATH}"
            elif gateway.return_url:
                callback_url = gateway.return_url
            elif stored_base:
                callback_url = f"{stored_base}{CALLBACK_PATH}"
            else:
                callback_url = None
                logger.warning("callback_url_unresolved")

            period = today.strftime("%d-%m-%Y")
            dept_ref_no = ensure_district_code_on_application_number(
                application.application_number or str(application.id),
                application.district,
                today.year,
            )
            head2 = amount2 = None
            if gateway.secondary_head and gateway.secondary_head_amount > 0:
                head2 = gateway.secondary_head
                amount2 = to_whole_rupees(gateway.secondary_head_amount)

            app_ref_no = generate_app_ref_no(int(now.timestamp() * 1000))
            encoded = encode_request(
                GatewayRequest(
                    dept_id=gateway.dept_id,
                    dept_ref_no=dept_ref_no,
                    total_amount=gateway_amount,
                    tender_by=application.owner_name or "",
                    app_ref_no=app_ref_no,
                    head1=gateway.registration_fee_head,
                    amount1=gateway_amount,
                    ddo=ddo,
                    period_from=period,
                    period_to=period,
                    head2=head2,
                    amount2=amount2,
                    service_code=gateway.service_code,
                    return_url=callback_url,
                )
            )
            encdata = cipher.encrypt(encoded.signed_string)

            if application.current_status == ApplicationStatus.VERIFIED_FOR_PAYMENT:
                self._engine.attempt(
                    application.id,
                    actor,
                    "initiate_payment",
                    TransitionRequest(remarks=f"HimKosh payment initiated ({app_ref_no})"),
                )

            transaction = PaymentTransaction(
                application_id=application.id,
                attempt_no=self._next_attempt_no(application.id),
                app_ref_no=app_ref_no,
                dept_ref_no=dept_ref_no,
                merchant_code=gateway.merchant_code,
                dept_id=gateway.dept_id,
                service_code=gateway.service_code,
                ddo=ddo,
                head1=gateway.registration_fee_head,
                amount1=gateway_amount,
                head2=head2,
                amount2=amount2,
                total_amount=gateway_amount,
                actual_amount=actual_amount,
                is_test_mode=is_test_mode,
                tender_by=application.owner_name or "",
                period_from=period,
                period_to=period,
                encrypted_request=encdata,
                request_checksum=encoded.checksum,
                portal_base_url=stored_base,
                transaction_status=TransactionStatus.INITIATED.value,
            )
            self._session.add(transaction)
            self._session.flush()

            logger.info(
                "payment_initiated",
                extra={
                    "app_ref_no": app_ref_no,
                    "attempt_no": transaction.attempt_no,
                    "dept_ref_no": dept_ref_no,
                    "ddo": ddo,
                    "total_amount": gateway_amount,
                    "actual_amount": actual_amount,
                    "is_test_mode": is_test_mode,
                    "gateway_source": gateway.source,
                },
            )
            return PaymentInitiation(
                payment_url=gateway.payment_url,
                merchant_code=gateway.merchant_code,
                encdata=encdata,
                checksum=encoded.checksum,
                app_ref_no=app_ref_no,
                total_amount=gateway_amount,
                actual_amount=actual_amount,
                is_test_mode=is_test_mode,
            )

    # -------------------------------------------------------------------------
    # Callback
    # -------------------------------------------------------------------------

    def handle_callback(self, encdata: str | None) -> CallbackOutcome:
        """
        Authenticate and apply one gateway callback.

        Raises:
            MalformedPayloadError: no payload, undecryptable payload or no
                checksum marker.
            ChecksumMismatchError: the payload was tampered or misrouted.
            TransactionNotFoundError: the AppRefNo is unknown.
        """
        if not encdata:
            logger.warning("callback_payload_missing")
            raise MalformedPayloadError("encdata missing")

        gateway = self.resolve_gateway()
        try:
            response, valid, received = decode_callback(self._get_cipher(gateway), encdata)
        except MalformedPayloadError as exc:
            event = (
                "callback_checksum_missing"
                if exc.reason == "checksum marker missing"
                else "callback_undecryptable"
            )
            logger.error(event, extra={"reason": exc.reason})
            raise

        if not valid:
            logger.error(
                "callback_checksum_mismatch",
                extra={
                    "app_ref_no": response.app_ref_no,
                    "status_cd": response.status_cd,
                    "ech_txn_id": response.ech_txn_id,
                    "received_checksum": received,
                },
            )
            raise ChecksumMismatchError(response.app_ref_no or None, received)

        with LogContext.bind(app_ref_no=response.app_ref_no):
            transaction = self._session.execute(
                select(PaymentTransaction)
                .where(PaymentTransaction.app_ref_no == response.app_ref_no)
                .with_for_update()
            ).scalar_one_or_none()
            if transaction is None:
                logger.error("callback_transaction_not_found")
                raise TransactionNotFoundError(response.app_ref_no)

            now = self._clock.now()
            transaction.ech_txn_id = response.ech_txn_id or None
            transaction.bank_cin = response.bank_cin or None
            transaction.bank_name = response.bank_name or None
            transaction.payment_date = response.payment_date or None
            transaction.status = response.status or None
            transaction.status_cd = response.status_cd or None
            transaction.response_checksum = response.checksum or received
            transaction.responded_at = now
            transaction.transaction_status = (
                TransactionStatus.SUCCESS.value if response.is_success else TransactionStatus.FAILED.value
            )
            if response.is_success:
                transaction.challan_print_url = (
                    f"{gateway.challan_print_url}?reportName=PaidChallan"
                    f"&TransId={response.ech_txn_id}"
                )
            self._session.flush()

            certificate_issued = False
            if response.is_success:
                certificate_issued = self._confirm_payment(transaction, response.ech_txn_id)

            meta = status_meta(response.status_cd, response.status)
            redirect_url = self._redirect_url(transaction, meta, response.ech_txn_id)
            html = render_status_page(
                CallbackPage(
                    meta=meta,
                    application_number=transaction.dept_ref_no,
                    amount=transaction.total_amount,
                    reference=response.ech_txn_id or None,
                    redirect_url=redirect_url,
                    redirect_delay_seconds=self._config.payment.redirect_delay_seconds,
                )
            )

            logger.info(
                "callback_processed",
                extra={
                    "application_id": str(transaction.application_id),
                    "status_cd": response.status_cd,
                    "transaction_status": transaction.transaction_status,
                    "certificate_issued": certificate_issued,
                },
            )
            return CallbackOutcome(
                transaction=transaction,
                meta=meta,
                redirect_url=redirect_url,
                certificate_issued=certificate_issued,
                html=html,
            )

    def _confirm_payment(self, transaction: PaymentTransaction, ech_txn_id: str) -> bool:
        application = self._lock_application(transaction.application_id)
        if application.certificate_number or application.current_status == ApplicationStatus.APPROVED:
            logger.info(
                "callback_already_applied",
                extra={
                    "application_id": str(application.id),
                    "certificate_number": application.certificate_number,
                },
            )
            return False
        if application.current_status not in PAYABLE_STATUSES:
            logger.warning(
                "callback_application_not_payable",
                extra={"application_id": str(application.id), "current_status": application.status},
            )
            return False
        try:
            self._engine.attempt(
                application.id,
                Actor.system(),
                "confirm_payment",
                TransitionRequest(
                    remarks=f"HimKosh payment confirmed (CIN: {ech_txn_id or 'N/A'})"
                ),
            )
        except GuardRejection as exc:
            logger.error(
                "callback_transition_rejected",
                extra={
                    "application_id": str(application.id),
                    "condition": exc.condition,
                    "reason": exc.message,
                },
            )
            return False
        return True

    def _redirect_url(
        self,
        transaction: PaymentTransaction,
        meta: StatusMeta,
        ech_txn_id: str | None,
    ) -> str | None:
        base = sanitize_base_url(transaction.portal_base_url)
        if base is None:
            logger.error(
                "portal_base_url_missing",
                extra={"application_id": str(transaction.application_id)},
            )
            return None
        return base + redirect_path(
            str(transaction.application_id),
            meta.redirect_state,
            transaction.dept_ref_no if meta.redirect_state == SUCCESS else None,
            ech_txn_id,
        )

    # -------------------------------------------------------------------------
    # Double verification
    # -------------------------------------------------------------------------

    def verify(self, app_ref_no: str) -> VerificationResult:
        """Re-query the gateway for ``app_ref_no`` and store its answer."""
        with LogContext.bind(app_ref_no=app_ref_no):
            transaction = self.get_transaction(app_ref_no)
            gateway = self.resolve_gateway()
            plaintext = build_verification_string(
                app_ref_no, gateway.service_code, gateway.merchant_code
            )
            data = self._get_client(gateway).verify(self._get_cipher(gateway).encrypt(plaintext))

            now = self._clock.now()
            transaction.is_double_verified = True
            transaction.double_verification_date = now
            transaction.double_verification_data = dict(data)
            transaction.verified_at = now
            self._session.flush()

            verified = data.get("TXN_STAT") == "1"
            logger.info(
                "double_verification_recorded",
                extra={"verified": verified, "transaction_status": transaction.transaction_status},
            )
            return VerificationResult(app_ref_no=app_ref_no, verified=verified, data=dict(data))

    # -------------------------------------------------------------------------
    # Reset
    # -------------------------------------------------------------------------

    def reset_latest(self, application_id: UUID, actor: Actor) -> PaymentTransaction:
        """Mark the latest non-terminal attempt failed."""
        with LogContext.bind(application_id=str(application_id), actor_id=_key(actor.actor_id)):
            application = self._session.get(Application, application_id)
            if application is None:
                raise ApplicationNotFoundError(str(application_id))
            is_owner = (
                actor.role == ActorRole.PROPERTY_OWNER and actor.actor_id == application.owner_id
            )
            if not is_owner and actor.role not in OFFICER_ROLES:
                raise GuardRejection(
                    "reset_payment", "ownership", "Access denied for this application"
                )

            transaction = self._latest_attempt(application_id)
            if transaction is None:
                raise TransactionNotFoundError(str(application_id))
            if _is_terminal(transaction):
                raise TransactionAlreadyCompleteError(
                    transaction.app_ref_no, transaction.transaction_status
                )

            transaction.transaction_status = TransactionStatus.FAILED.value
            transaction.status = RESET_STATUS_TEXT
            transaction.status_cd = "0"
            transaction.responded_at = self._clock.now()
            self._session.flush()

            logger.info(
                "transaction_reset",
                extra={"app_ref_no": transaction.app_ref_no, "attempt_no": transaction.attempt_no},
            )
            return transaction

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def list_transactions(self, limit: int = DEFAULT_PAGE_SIZE, offset: int = 0) -> list[PaymentTransaction]:
        limit = max(1, min(limit, MAX_PAGE_SIZE))
        return list(
            self._session.execute(
                select(PaymentTransaction)
                .order_by(PaymentTransaction.created_at.desc(), PaymentTransaction.app_ref_no)
                .limit(limit)
                .offset(max(0, offset))
            ).scalars().all()
        )

    def get_transaction(self, app_ref_no: str) -> PaymentTransaction:
        transaction = self._session.execute(
            select(PaymentTransaction).where(PaymentTransaction.app_ref_no == app_ref_no)
        ).scalar_one_or_none()
        if transaction is None:
            raise TransactionNotFoundError(app_ref_no)
        return transaction

    def transactions_for(self, application_id: UUID) -> list[PaymentTransaction]:
        """An application's attempts, newest first."""
        return list(
            self._session.execute(
                select(PaymentTransaction)
                .where(PaymentTransaction.application_id == application_id)
                .order_by(PaymentTransaction.attempt_no.desc())
            ).scalars().all()
        )


def _key(value: UUID | None) -> str | None:
    return str(value) if value is not None else None


def _is_terminal(transaction: PaymentTransaction) -> bool:
    return TransactionStatus(transaction.transaction_status) in TERMINAL_TRANSACTION_STATUSES
