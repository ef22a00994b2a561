"""Services for the homestay kernel (write side)."""

from homestay_kernel.services.application_service import ApplicationService
from homestay_kernel.services.audit_log import AuditLog
from homestay_kernel.services.ddo_directory import DdoDirectory
from homestay_kernel.services.sequence_service import SequenceService
from homestay_kernel.services.settings_store import (
    GATEWAY_SETTING_KEY,
    PAYMENT_TEST_MODE_KEY,
    SettingsStore,
)
from homestay_kernel.services.workflow_engine import TransitionOutcome, WorkflowEngine

__all__ = [
    "ApplicationService",
    "AuditLog",
    "DdoDirectory",
    "GATEWAY_SETTING_KEY",
    "PAYMENT_TEST_MODE_KEY",
    "SequenceService",
    "SettingsStore",
    "TransitionOutcome",
    "WorkflowEngine",
]
