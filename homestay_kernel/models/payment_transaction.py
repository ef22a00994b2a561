"""
Module: homestay_kernel.models.payment_transaction
Responsibility: ORM persistence for HimKosh treasury transactions.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - app_ref_no is unique and is the correlation key for callbacks.
    - attempt_no counts the attempts of one application from 1; the
      highest is the latest attempt.
    - transaction_status moves initiated -> success | failed, and a
      successful row may later carry double-verification fields.
    - The request snapshot (heads, amounts, DDO, encrypted payload, portal
      base URL) is written once at initiation and not rewritten.
"""

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import JSON, Boolean, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from homestay_kernel.db.base import TimestampedBase, UUIDString
from homestay_kernel.domain.workflow import TransactionStatus


class PaymentTransaction(TimestampedBase):
    """A single treasury payment attempt for an application."""

    __tablename__ = "payment_transactions"

    __table_args__ = (
        Index("idx_payment_application", "application_id"),
        Index("idx_payment_status", "transaction_status"),
    )

    application_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("homestay_applications.id"), nullable=False
    )

    attempt_no: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    # Request snapshot
    app_ref_no: Mapped[str] = mapped_column(String(20), unique=True, nullable=False)
    dept_ref_no: Mapped[str] = mapped_column(String(60), nullable=False)
    merchant_code: Mapped[str] = mapped_column(String(30), nullable=False)
    dept_id: Mapped[str] = mapped_column(String(20), nullable=False)
    service_code: Mapped[str] = mapped_column(String(20), nullable=False)
    ddo: Mapped[str] = mapped_column(String(30), nullable=False)
    head1: Mapped[str] = mapped_column(String(40), nullable=False)
    amount1: Mapped[int] = mapped_column(Integer, nullable=False)
    head2: Mapped[str | None] = mapped_column(String(40))
    amount2: Mapped[int | None] = mapped_column(Integer)
    total_amount: Mapped[int] = mapped_column(Integer, nullable=False)
    actual_amount: Mapped[int] = mapped_column(Integer, nullable=False)
    is_test_mode: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    tender_by: Mapped[str] = mapped_column(String(200), nullable=False)
    period_from: Mapped[str] = mapped_column(String(10), nullable=False)
    period_to: Mapped[str] = mapped_column(String(10), nullable=False)
    encrypted_request: Mapped[str] = mapped_column(Text, nullable=False)
    request_checksum: Mapped[str] = mapped_column(String(32), nullable=False)
    portal_base_url: Mapped[str | None] = mapped_column(String(300))

    transaction_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=TransactionStatus.INITIATED.value
    )

    # Callback fields
    ech_txn_id: Mapped[str | None] = mapped_column(String(60))
    bank_cin: Mapped[str | None] = mapped_column(String(60))
    bank_name: Mapped[str | None] = mapped_column(String(120))
    payment_date: Mapped[str | None] = mapped_column(String(40))
    status: Mapped[str | None] = mapped_column(String(200))
    status_cd: Mapped[str | None] = mapped_column(String(5))
    response_checksum: Mapped[str | None] = mapped_column(String(32))
    responded_at: Mapped[datetime | None] = mapped_column(nullable=True)
    challan_print_url: Mapped[str | None] = mapped_column(String(400))

    # Double verification
    is_double_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    double_verification_date: Mapped[datetime | None] = mapped_column(nullable=True)
    double_verification_data: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    verified_at: Mapped[datetime | None] = mapped_column(nullable=True)

    def __repr__(self) -> str:
        return f"<PaymentTransaction {self.app_ref_no} [{self.transaction_status}]>"
