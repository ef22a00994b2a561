"""
Notification events and templates (``homestay_kernel.domain.notifications``).

Responsibility
--------------
Every accepted transition emits exactly one ``NotificationEvent`` keyed by a
stable event id.  The event is a value: the Workflow Engine writes it to the
outbox in the same database transaction as the status change, and the
dispatcher delivers it later.  Delivery failures never reach the transition.

Templates use ``{{PLACEHOLDER}}`` markers; unknown placeholders render as
empty strings.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Mapping
from uuid import UUID


class NotificationEventId(str, Enum):
    APPLICATION_SUBMITTED = "application_submitted"
    SCRUTINY_STARTED = "scrutiny_started"
    FORWARDED_TO_DTDO = "forwarded_to_dtdo"
    DTDO_ACCEPTED = "dtdo_accepted"
    INSPECTION_SCHEDULED = "inspection_scheduled"
    INSPECTION_COMPLETED = "inspection_completed"
    VERIFIED_FOR_PAYMENT = "verified_for_payment"
    PAYMENT_PENDING = "payment_pending"
    APPLICATION_APPROVED = "application_approved"
    APPLICATION_REJECTED = "application_rejected"
    DA_SEND_BACK = "da_send_back"
    OFFICER_SEND_BACK = "officer_send_back"
    DTDO_REVERT = "dtdo_revert"
    DTDO_OBJECTION = "dtdo_objection"


@dataclass(frozen=True)
class NotificationTemplate:
    event_id: NotificationEventId
    sms: str
    email_subject: str
    email_body: str
    sms_enabled: bool = False
    email_enabled: bool = False


@dataclass(frozen=True)
class NotificationEvent:
    """An event waiting in the outbox."""

    event_id: NotificationEventId
    application_id: UUID
    recipient_id: UUID | None
    extras: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class RenderedNotification:
    event_id: NotificationEventId
    sms: str
    email_subject: str
    email_body: str
    sms_enabled: bool
    email_enabled: bool


_SIGNATURE = "\n\n- Tourism Department"

TEMPLATES: dict[NotificationEventId, NotificationTemplate] = {
    NotificationEventId.APPLICATION_SUBMITTED: NotificationTemplate(
        NotificationEventId.APPLICATION_SUBMITTED,
        sms=(
            "Your Himachal Tourism application {{APPLICATION_ID}} was submitted "
            "successfully. We will update you on the next steps."
        ),
        email_subject="Application {{APPLICATION_ID}} submitted",
        email_body=(
            "Hello {{OWNER_NAME}},\n\nWe received your homestay application "
            "{{APPLICATION_ID}}. We will notify you as it moves through scrutiny "
            "and inspection." + _SIGNATURE
        ),
    ),
    NotificationEventId.SCRUTINY_STARTED: NotificationTemplate(
        NotificationEventId.SCRUTINY_STARTED,
        sms="Application {{APPLICATION_ID}} is now under document scrutiny.",
        email_subject="Application {{APPLICATION_ID}} under scrutiny",
        email_body=(
            "Hello {{OWNER_NAME}},\n\nA Dealing Assistant has started scrutiny of "
            "application {{APPLICATION_ID}}." + _SIGNATURE
        ),
    ),
    NotificationEventId.FORWARDED_TO_DTDO: NotificationTemplate(
        NotificationEventId.FORWARDED_TO_DTDO,
        sms=(
            "Application {{APPLICATION_ID}} has moved to DTDO review for site "
            "inspection. Keep your documents handy."
        ),
        email_subject="Application {{APPLICATION_ID}} forwarded for DTDO review",
        email_body=(
            "Hello {{OWNER_NAME}},\n\nYour application {{APPLICATION_ID}} cleared "
            "scrutiny and has been forwarded to the DTDO for field inspection. "
            "Please stay available for coordination." + _SIGNATURE
        ),
    ),
    NotificationEventId.DTDO_ACCEPTED: NotificationTemplate(
        NotificationEventId.DTDO_ACCEPTED,
        sms="DTDO accepted application {{APPLICATION_ID}} for review.",
        email_subject="Application {{APPLICATION_ID}} under DTDO review",
        email_body=(
            "Hello {{OWNER_NAME}},\n\nThe DTDO accepted application "
            "{{APPLICATION_ID}} for review.\n\nRemarks:\n{{REMARKS}}" + _SIGNATURE
        ),
    ),
    NotificationEventId.INSPECTION_SCHEDULED: NotificationTemplate(
        NotificationEventId.INSPECTION_SCHEDULED,
        sms=(
            "DTDO scheduled a site inspection for application {{APPLICATION_ID}} "
            "on {{INSPECTION_DATE}}. Please ensure availability."
        ),
        email_subject="Site inspection scheduled - Application {{APPLICATION_ID}}",
        email_body=(
            "Hello {{OWNER_NAME}},\n\nA site inspection for application "
            "{{APPLICATION_ID}} is scheduled on {{INSPECTION_DATE}}. Kindly keep the "
            "property accessible and documents ready for verification." + _SIGNATURE
        ),
    ),
    NotificationEventId.INSPECTION_COMPLETED: NotificationTemplate(
        NotificationEventId.INSPECTION_COMPLETED,
        sms="Site inspection for application {{APPLICATION_ID}} is complete and under review.",
        email_subject="Inspection completed - Application {{APPLICATION_ID}}",
        email_body=(
            "Hello {{OWNER_NAME}},\n\nThe site inspection for application "
            "{{APPLICATION_ID}} is complete. The DTDO will review the report."
            + _SIGNATURE
        ),
    ),
    NotificationEventId.VERIFIED_FOR_PAYMENT: NotificationTemplate(
        NotificationEventId.VERIFIED_FOR_PAYMENT,
        sms=(
            "Application {{APPLICATION_ID}} is verified for payment. Log in to "
            "complete the fee and download your certificate after approval."
        ),
        email_subject="Application {{APPLICATION_ID}} verified for payment",
        email_body=(
            "Hello {{OWNER_NAME}},\n\nYour application {{APPLICATION_ID}} has been "
            "verified for payment. Please sign in to complete the fee so we can "
            "issue the certificate." + _SIGNATURE
        ),
    ),
    NotificationEventId.PAYMENT_PENDING: NotificationTemplate(
        NotificationEventId.PAYMENT_PENDING,
        sms="Payment started for application {{APPLICATION_ID}}.",
        email_subject="Payment started - Application {{APPLICATION_ID}}",
        email_body=(
            "Hello {{OWNER_NAME}},\n\nA treasury payment was started for "
            "application {{APPLICATION_ID}}." + _SIGNATURE
        ),
    ),
    NotificationEventId.APPLICATION_APPROVED: NotificationTemplate(
        NotificationEventId.APPLICATION_APPROVED,
        sms=(
            "Application {{APPLICATION_ID}} is approved. Certificate "
            "{{CERTIFICATE_NUMBER}} is ready for download."
        ),
        email_subject="Application {{APPLICATION_ID}} approved",
        email_body=(
            "Hello {{OWNER_NAME}},\n\nApplication {{APPLICATION_ID}} is approved. "
            "Certificate {{CERTIFICATE_NUMBER}} is available in the portal."
            + _SIGNATURE
        ),
        sms_enabled=True,
        email_enabled=True,
    ),
    NotificationEventId.APPLICATION_REJECTED: NotificationTemplate(
        NotificationEventId.APPLICATION_REJECTED,
        sms="Application {{APPLICATION_ID}} was rejected. Reason: {{REMARKS}}.",
        email_subject="Application {{APPLICATION_ID}} rejected",
        email_body=(
            "Hello {{OWNER_NAME}},\n\nApplication {{APPLICATION_ID}} was rejected."
            "\n\nReason:\n{{REMARKS}}" + _SIGNATURE
        ),
        sms_enabled=True,
        email_enabled=True,
    ),
    NotificationEventId.DA_SEND_BACK: NotificationTemplate(
        NotificationEventId.DA_SEND_BACK,
        sms=(
            "Application {{APPLICATION_ID}} needs corrections. DA remarks: "
            "{{REMARKS}}. Please update and resubmit."
        ),
        email_subject="Corrections requested - Application {{APPLICATION_ID}}",
        email_body=(
            "Hello {{OWNER_NAME}},\n\nOur Dealing Assistant reviewed application "
            "{{APPLICATION_ID}} and requested corrections.\n\nRemarks:\n{{REMARKS}}"
            "\n\nPlease sign in, update the form, and resubmit at the earliest."
            + _SIGNATURE
        ),
        sms_enabled=True,
        email_enabled=True,
    ),
    NotificationEventId.OFFICER_SEND_BACK: NotificationTemplate(
        NotificationEventId.OFFICER_SEND_BACK,
        sms=(
            "Application {{APPLICATION_ID}} was sent back for corrections. "
            "Remarks: {{REMARKS}}."
        ),
        email_subject="Corrections requested - Application {{APPLICATION_ID}}",
        email_body=(
            "Hello {{OWNER_NAME}},\n\nApplication {{APPLICATION_ID}} was sent back "
            "for corrections.\n\nRemarks:\n{{REMARKS}}" + _SIGNATURE
        ),
        sms_enabled=True,
        email_enabled=True,
    ),
    NotificationEventId.DTDO_REVERT: NotificationTemplate(
        NotificationEventId.DTDO_REVERT,
        sms=(
            "DTDO returned application {{APPLICATION_ID}} for updates. Remarks: "
            "{{REMARKS}}. Please review and resubmit."
        ),
        email_subject="DTDO corrections - Application {{APPLICATION_ID}}",
        email_body=(
            "Hello {{OWNER_NAME}},\n\nDuring district review we found items that "
            "need attention for application {{APPLICATION_ID}}.\n\nRemarks:\n"
            "{{REMARKS}}\n\nPlease update the application and resubmit so we can "
            "continue processing." + _SIGNATURE
        ),
        sms_enabled=True,
        email_enabled=True,
    ),
    NotificationEventId.DTDO_OBJECTION: NotificationTemplate(
        NotificationEventId.DTDO_OBJECTION,
        sms=(
            "Inspection objections raised for application {{APPLICATION_ID}}. "
            "Remarks: {{REMARKS}}. Update the application to continue."
        ),
        email_subject="Inspection objections - Application {{APPLICATION_ID}}",
        email_body=(
            "Hello {{OWNER_NAME}},\n\nAfter reviewing the inspection report for "
            "application {{APPLICATION_ID}}, the DTDO raised the following "
            "objections:\n\n{{REMARKS}}\n\nPlease sign in, address the feedback, "
            "and resubmit. Ignoring objections may lead to rejection." + _SIGNATURE
        ),
        sms_enabled=True,
        email_enabled=True,
    ),
}

_PLACEHOLDER = re.compile(r"\{\{\s*([A-Z_]+)\s*\}\}")


def fill_template(template: str, values: Mapping[str, str | None]) -> str:
    """Replace ``{{KEY}}`` markers; missing keys render empty."""
    return _PLACEHOLDER.sub(lambda m: str(values.get(m.group(1)) or ""), template)


def render(event_id: NotificationEventId | str, values: Mapping[str, str | None]) -> RenderedNotification:
    template = TEMPLATES[NotificationEventId(event_id)]
    return RenderedNotification(
        event_id=template.event_id,
        sms=fill_template(template.sms, values),
        email_subject=fill_template(template.email_subject, values),
        email_body=fill_template(template.email_body, values),
        sms_enabled=template.sms_enabled,
        email_enabled=template.email_enabled,
    )
