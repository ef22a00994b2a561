"""
DdoDirectory -- district label to treasury DDO code.

Resolution order:
    1. exact match on the label, case and surrounding whitespace ignored;
    2. otherwise the active row sharing the most significant district
       tokens with the label (ties broken by district name).

Inactive rows are never returned.  ``None`` means no mapping; the caller
decides on a fallback and must log it.
"""

from __future__ import annotations

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from homestay_kernel.domain.district import normalize_district_tokens
from homestay_kernel.logging_config import get_logger
from homestay_kernel.models.ddo_code import DdoCode

logger = get_logger("services.ddo_directory")


class DdoDirectory:
    def __init__(self, session: Session):
        self._session = session

    def resolve(self, district_label: str | None) -> DdoCode | None:
        label = (district_label or "").strip()
        if not label:
            return None

        exact = self._session.execute(
            select(DdoCode)
            .where(func.lower(DdoCode.district) == label.lower(), DdoCode.is_active.is_(True))
            .limit(1)
        ).scalar_one_or_none()
        if exact is not None:
            return exact

        wanted = set(normalize_district_tokens(label))
        if not wanted:
            return None
        rows = self._session.execute(
            select(DdoCode).where(DdoCode.is_active.is_(True)).order_by(DdoCode.district)
        ).scalars().all()

        best: DdoCode | None = None
        best_overlap = 0
        for row in rows:
            overlap = len(wanted & set(normalize_district_tokens(row.district)))
            if overlap > best_overlap:
                best, best_overlap = row, overlap
        if best is not None:
            logger.debug(
                "ddo_token_match",
                extra={"district_label": label, "matched_district": best.district},
            )
        return best

    def resolve_code(self, district_label: str | None) -> str | None:
        row = self.resolve(district_label)
        return row.ddo_code if row is not None else None
