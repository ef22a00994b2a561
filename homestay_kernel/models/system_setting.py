"""
Module: homestay_kernel.models.system_setting
Responsibility: Administrator-editable settings stored as JSON documents.
Architecture position: Kernel > Models.

Known keys:
    ``himkosh_gateway``    -- overrides for the treasury gateway configuration.
    ``payment_test_mode``  -- ``{"enabled": bool}``.
"""

from typing import Any
from uuid import UUID

from sqlalchemy import JSON, String
from sqlalchemy.orm import Mapped, mapped_column

from homestay_kernel.db.base import TimestampedBase, UUIDString


class SystemSetting(TimestampedBase):
    __tablename__ = "system_settings"

    setting_key: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    setting_value: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    updated_by: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
