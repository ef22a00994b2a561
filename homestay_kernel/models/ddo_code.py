"""
Module: homestay_kernel.models.ddo_code
Responsibility: Directory of treasury Drawing and Disbursing Officer codes,
    keyed by district routing label.
Architecture position: Kernel > Models.
"""

from sqlalchemy import Boolean, String
from sqlalchemy.orm import Mapped, mapped_column

from homestay_kernel.db.base import TimestampedBase


class DdoCode(TimestampedBase):
    __tablename__ = "ddo_codes"

    district: Mapped[str] = mapped_column(String(120), unique=True, nullable=False)
    ddo_code: Mapped[str] = mapped_column(String(30), nullable=False)
    ddo_description: Mapped[str | None] = mapped_column(String(200))
    treasury_code: Mapped[str | None] = mapped_column(String(30))
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<DdoCode {self.district}: {self.ddo_code}>"
