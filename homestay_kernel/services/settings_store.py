"""
SettingsStore -- administrator-editable settings behind a TTL cache.

Responsibility:
    Reads and writes ``system_settings`` documents.  Reads go through an
    injected ``TTLCache`` so that hot paths (payment initiation) do not
    query the table on every request.  Writes invalidate the cached key.

Architecture position:
    Kernel > Services.  The store outlives individual sessions; every
    call receives the session of the current unit of work.
"""

from __future__ import annotations

from datetime import timedelta
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from homestay_kernel.domain.cache import TTLCache
from homestay_kernel.domain.clock import Clock, SystemClock
from homestay_kernel.logging_config import get_logger
from homestay_kernel.models.system_setting import SystemSetting

logger = get_logger("services.settings")

GATEWAY_SETTING_KEY = "himkosh_gateway"
PAYMENT_TEST_MODE_KEY = "payment_test_mode"


class SettingsStore:
    def __init__(
        self,
        clock: Clock | None = None,
        ttl: timedelta = timedelta(seconds=60),
        cache: TTLCache[dict[str, Any] | None] | None = None,
    ):
        self._clock = clock or SystemClock()
        self._cache: TTLCache[dict[str, Any] | None] = cache or TTLCache(self._clock, ttl)

    def get(self, session: Session, key: str) -> dict[str, Any] | None:
        def load() -> dict[str, Any] | None:
            row = session.execute(
                select(SystemSetting).where(SystemSetting.setting_key == key)
            ).scalar_one_or_none()
            return dict(row.setting_value) if row is not None else None

        return self._cache.get_or_load(key, load)

    def put(
        self,
        session: Session,
        key: str,
        value: dict[str, Any],
        updated_by: UUID | None = None,
    ) -> SystemSetting:
        row = session.execute(
            select(SystemSetting).where(SystemSetting.setting_key == key)
        ).scalar_one_or_none()
        if row is None:
            row = SystemSetting(setting_key=key, setting_value=dict(value), updated_by=updated_by)
            session.add(row)
        else:
            row.setting_value = dict(value)
            row.updated_by = updated_by
        session.flush()
        self._cache.invalidate(key)
        logger.info("system_setting_updated", extra={"setting_key": key})
        return row

    def invalidate(self, key: str | None = None) -> None:
        self._cache.invalidate(key)

    def payment_test_mode(self, session: Session, forced: bool | None = None) -> bool:
        """Configuration wins when it forces a value; otherwise the stored flag."""
        if forced is not None:
            return forced
        value = self.get(session, PAYMENT_TEST_MODE_KEY) or {}
        return bool(value.get("enabled", False))

    def gateway_overrides(self, session: Session) -> dict[str, Any] | None:
        return self.get(session, GATEWAY_SETTING_KEY)
