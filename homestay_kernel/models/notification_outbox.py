"""
Module: homestay_kernel.models.notification_outbox
Responsibility: Durable queue of notification events emitted by transitions.
Architecture position: Kernel > Models.

Invariants enforced:
    - A row is written in the same database transaction as the status
      change that produced it, so a rolled-back transition leaves no row.
    - Delivery happens after commit; a failed delivery only updates the
      outbox row and never touches the application.
"""

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from sqlalchemy import JSON, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from homestay_kernel.db.base import TimestampedBase, UUIDString


class OutboxStatus(str, Enum):
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"


class NotificationOutbox(TimestampedBase):
    __tablename__ = "notification_outbox"

    __table_args__ = (Index("idx_outbox_status", "status"),)

    event_id: Mapped[str] = mapped_column(String(60), nullable=False)
    application_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("homestay_applications.id"), nullable=False
    )
    recipient_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    extras: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=OutboxStatus.PENDING.value
    )
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_error: Mapped[str | None] = mapped_column(Text)
    delivered_at: Mapped[datetime | None] = mapped_column(nullable=True)
