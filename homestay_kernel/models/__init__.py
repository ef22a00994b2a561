"""Persistence models for the homestay kernel."""

from homestay_kernel.models.application import Application
from homestay_kernel.models.application_action import ApplicationAction
from homestay_kernel.models.ddo_code import DdoCode
from homestay_kernel.models.document import ApplicationDocument
from homestay_kernel.models.inspection import InspectionOrder, InspectionReport
from homestay_kernel.models.notification_outbox import NotificationOutbox, OutboxStatus
from homestay_kernel.models.payment_transaction import PaymentTransaction
from homestay_kernel.models.system_setting import SystemSetting

__all__ = [
    "Application",
    "ApplicationAction",
    "ApplicationDocument",
    "DdoCode",
    "InspectionOrder",
    "InspectionReport",
    "NotificationOutbox",
    "OutboxStatus",
    "PaymentTransaction",
    "SystemSetting",
    "import_all_models",
]


def import_all_models() -> None:
    """Import every mapped class so ``Base.metadata`` knows all tables."""
    import homestay_kernel.services.sequence_service  # noqa: F401  (SequenceCounter)
