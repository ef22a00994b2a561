"""
Module: homestay_kernel.models.document
Responsibility: Uploaded application documents and their verification state.
Architecture position: Kernel > Models.

Storage of the files themselves happens elsewhere; this row only carries
the metadata the workflow needs to decide whether scrutiny is complete.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from homestay_kernel.db.base import TimestampedBase, UUIDString
from homestay_kernel.domain.workflow import DocumentStatus


class ApplicationDocument(TimestampedBase):
    __tablename__ = "application_documents"

    __table_args__ = (Index("idx_document_application", "application_id"),)

    application_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("homestay_applications.id"), nullable=False
    )
    document_type: Mapped[str] = mapped_column(String(60), nullable=False)
    file_name: Mapped[str] = mapped_column(String(300), nullable=False)
    verification_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=DocumentStatus.PENDING.value
    )
    verified_by: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    verified_at: Mapped[datetime | None] = mapped_column(nullable=True)
    verification_notes: Mapped[str | None] = mapped_column(Text)
