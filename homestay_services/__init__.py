"""
homestay_services -- Orchestration above the kernel.

Composes the pure engines with kernel persistence: the fee assessor and
workflow engine wiring, the Service Request Deriver, the HimKosh
Settlement Reconciler with its HTTP client and status pages, and the
notification outbox dispatcher.

Architecture position:
    Services -- may import homestay_kernel, homestay_engines and
    homestay_config.  MUST NOT import homestay_api.
"""

from homestay_services.engine_wiring import (
    assess_application_fee,
    build_workflow_engine,
    rules_from_config,
)
from homestay_services.gateway_client import GatewayClient
from homestay_services.notification_dispatcher import (
    DispatchSummary,
    LoggingNotifier,
    NotificationDispatcher,
    Notifier,
)
from homestay_services.payment_settlement import (
    CallbackOutcome,
    PaymentInitiation,
    PaymentSettlement,
    VerificationResult,
    sanitize_base_url,
)
from homestay_services.service_requests import ServiceRequestService, ServiceSummary
from homestay_services.status_page import (
    CallbackPage,
    StatusMeta,
    render_processing_page,
    render_status_page,
    status_meta,
)

__all__ = [
    "assess_application_fee",
    "build_workflow_engine",
    "rules_from_config",
    "GatewayClient",
    "DispatchSummary",
    "LoggingNotifier",
    "NotificationDispatcher",
    "Notifier",
    "CallbackOutcome",
    "PaymentInitiation",
    "PaymentSettlement",
    "VerificationResult",
    "sanitize_base_url",
    "ServiceRequestService",
    "ServiceSummary",
    "CallbackPage",
    "StatusMeta",
    "render_processing_page",
    "render_status_page",
    "status_meta",
]
