"""
homestay_services.notification_dispatcher -- Outbox delivery.

Responsibility:
    Drains pending ``notification_outbox`` rows written by the Workflow
    Engine, renders each against its template and hands it to a
    ``Notifier``.  Runs after the transition's commit, in its own unit of
    work.

Architecture position:
    Services -- the only caller of a Notifier.  The kernel writes events;
    it never delivers them.

Invariants enforced:
    - A delivery failure is recorded on the outbox row (attempts,
      last_error) and logged; it never raises into the caller and never
      touches the application.
    - Rows that exhausted ``max_attempts`` are left ``failed`` and skipped.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from sqlalchemy import select
from sqlalchemy.orm import Session

from homestay_kernel.domain.clock import Clock, SystemClock
from homestay_kernel.domain.notifications import (
    NotificationEvent,
    NotificationEventId,
    RenderedNotification,
    render,
)
from homestay_kernel.exceptions import NotificationDeliveryError
from homestay_kernel.logging_config import get_logger
from homestay_kernel.models.notification_outbox import NotificationOutbox, OutboxStatus

logger = get_logger("services.notifications")

DEFAULT_MAX_ATTEMPTS = 3


@runtime_checkable
class Notifier(Protocol):
    """Delivers one rendered notification (SMS gateway, mailer, ...)."""

    def deliver(self, event: NotificationEvent, rendered: RenderedNotification) -> None:
        """Raise any exception to signal a failed delivery."""
        ...


class LoggingNotifier:
    """Notifier that only records what would have been sent."""

    def deliver(self, event: NotificationEvent, rendered: RenderedNotification) -> None:
        logger.info(
            "notification_logged",
            extra={
                "event_id": event.event_id.value,
                "application_id": str(event.application_id),
                "sms_enabled": rendered.sms_enabled,
                "email_enabled": rendered.email_enabled,
                "email_subject": rendered.email_subject,
            },
        )


@dataclass(frozen=True)
class DispatchSummary:
    sent: int = 0
    failed: int = 0


class NotificationDispatcher:
    def __init__(
        self,
        session: Session,
        notifier: Notifier,
        clock: Clock | None = None,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ):
        self._session = session
        self._notifier = notifier
        self._clock = clock or SystemClock()
        self._max_attempts = max_attempts

    def pending(self, limit: int = 100) -> list[NotificationOutbox]:
        return list(
            self._session.execute(
                select(NotificationOutbox)
                .where(
                    NotificationOutbox.status.in_(
                        (OutboxStatus.PENDING.value, OutboxStatus.FAILED.value)
                    ),
                    NotificationOutbox.attempts < self._max_attempts,
                )
                .order_by(NotificationOutbox.created_at)
                .limit(limit)
            ).scalars().all()
        )

    def dispatch_pending(self, limit: int = 100) -> DispatchSummary:
        sent = failed = 0
        for row in self.pending(limit):
            if self._deliver(row):
                sent += 1
            else:
                failed += 1
        self._session.flush()
        if sent or failed:
            logger.info("outbox_drained", extra={"sent": sent, "failed": failed})
        return DispatchSummary(sent=sent, failed=failed)

    def _deliver(self, row: NotificationOutbox) -> bool:
        event = NotificationEvent(
            event_id=NotificationEventId(row.event_id),
            application_id=row.application_id,
            recipient_id=row.recipient_id,
            extras=dict(row.extras or {}),
        )
        row.attempts = (row.attempts or 0) + 1
        try:
            rendered = render(event.event_id, event.extras)
            self._notifier.deliver(event, rendered)
        except Exception as exc:
            error = NotificationDeliveryError(str(row.id), str(exc))
            row.status = OutboxStatus.FAILED.value
            row.last_error = error.reason
            logger.warning(
                "notification_delivery_failed",
                extra={
                    "outbox_id": str(row.id),
                    "event_id": row.event_id,
                    "attempts": row.attempts,
                    "error_code": error.code,
                    "reason": error.reason,
                },
            )
            return False

        row.status = OutboxStatus.SENT.value
        row.last_error = None
        row.delivered_at = self._clock.now()
        logger.debug(
            "notification_delivered",
            extra={"outbox_id": str(row.id), "event_id": row.event_id},
        )
        return True
