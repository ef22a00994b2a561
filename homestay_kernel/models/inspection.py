"""
Module: homestay_kernel.models.inspection
Responsibility: ORM persistence for inspection orders and reports.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - At most one report per order (unique inspection_order_id).
    - ``round_no`` increases by one for each order on an application; the
      latest round is the open one.
    - An order becomes ``completed`` in the same transaction that stores
      its report.
"""

from datetime import date, datetime
from typing import Any
from uuid import UUID

from sqlalchemy import JSON, Boolean, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from homestay_kernel.db.base import TimestampedBase, UUIDString
from homestay_kernel.domain.workflow import InspectionOrderStatus


class InspectionOrder(TimestampedBase):
    __tablename__ = "inspection_orders"

    __table_args__ = (Index("idx_inspection_order_application", "application_id"),)

    application_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("homestay_applications.id"), nullable=False
    )
    round_no: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    scheduled_by: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    assigned_to: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    inspection_date: Mapped[date | None] = mapped_column(nullable=True)
    inspection_address: Mapped[str | None] = mapped_column(Text)
    special_instructions: Mapped[str | None] = mapped_column(Text)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=InspectionOrderStatus.PENDING.value
    )


class InspectionReport(TimestampedBase):
    __tablename__ = "inspection_reports"

    __table_args__ = (Index("idx_inspection_report_application", "application_id"),)

    inspection_order_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("inspection_orders.id"), unique=True, nullable=False
    )
    application_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("homestay_applications.id"), nullable=False
    )
    submitted_by: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    submitted_date: Mapped[datetime] = mapped_column(nullable=False)
    actual_inspection_date: Mapped[date] = mapped_column(nullable=False)

    room_count_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    actual_room_count: Mapped[int | None] = mapped_column(Integer)
    category_meets_standards: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    recommended_category: Mapped[str | None] = mapped_column(String(20))
    overall_satisfactory: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    recommendation: Mapped[str] = mapped_column(String(30), nullable=False)

    mandatory_checklist: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    mandatory_remarks: Mapped[str | None] = mapped_column(Text)
    desirable_checklist: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    desirable_remarks: Mapped[str | None] = mapped_column(Text)

    fire_safety_compliant: Mapped[bool | None] = mapped_column(Boolean)
    fire_safety_issues: Mapped[str | None] = mapped_column(Text)
    structural_safety: Mapped[bool | None] = mapped_column(Boolean)
    structural_issues: Mapped[str | None] = mapped_column(Text)
    detailed_findings: Mapped[str | None] = mapped_column(Text)

    early_inspection_override: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    early_inspection_reason: Mapped[str | None] = mapped_column(Text)
