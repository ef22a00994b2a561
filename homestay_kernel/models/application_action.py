"""
Module: homestay_kernel.models.application_action
Responsibility: ORM persistence for the per-application audit trail.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Rows are append-only; UPDATE and DELETE are blocked by the listeners
      in db/immutability.py.
    - seq is contiguous per application, starting at 1.
    - hash = H(application_id | action | payload_hash | prev_hash), where
      prev_hash is the hash of the previous row of the same application.
      Validated by AuditLog.verify_chain().

Failure modes:
    - ImmutabilityViolationError on any UPDATE/DELETE attempt.
    - AuditChainBrokenError when chain validation detects a mismatch.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from homestay_kernel.db.base import Base, UUIDString


class ApplicationAction(Base):
    """One recorded action on an application. Never updated, never deleted."""

    __tablename__ = "application_actions"

    __table_args__ = (
        UniqueConstraint("application_id", "seq", name="uq_action_application_seq"),
        Index("idx_action_application", "application_id"),
        Index("idx_action_action", "action"),
    )

    application_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("homestay_applications.id"), nullable=False
    )
    seq: Mapped[int] = mapped_column(Integer, nullable=False)

    # None when the treasury callback acts
    actor_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    action: Mapped[str] = mapped_column(String(60), nullable=False)
    previous_status: Mapped[str | None] = mapped_column(String(40))
    new_status: Mapped[str | None] = mapped_column(String(40))
    feedback: Mapped[str | None] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(nullable=False)

    prev_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    hash: Mapped[str] = mapped_column(String(64), nullable=False)

    def __repr__(self) -> str:
        return f"<ApplicationAction {self.application_id}#{self.seq} {self.action}>"
