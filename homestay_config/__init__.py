"""
homestay_config -- single public entrypoint for runtime configuration.

Responsibility:
    ``get_active_config()`` is the only way components obtain
    configuration.  No other module reads configuration files or
    ``HOMESTAY_*`` environment variables directly.

Architecture position:
    Configuration -- sits above ``homestay_kernel`` and below
    ``homestay_services`` / ``homestay_api``.  The kernel never imports
    from this package.

Failure modes:
    - ``FileNotFoundError`` -- HOMESTAY_CONFIG_FILE names a missing file.
    - ``ValueError`` -- unknown sections or keys.
"""

from __future__ import annotations

from pathlib import Path

from homestay_config.loader import load_config, read_gateway_key
from homestay_config.schema import (
    DatabaseConfig,
    GatewayConfig,
    HomestayConfig,
    PaymentConfig,
    PortalConfig,
    WorkflowConfig,
)
from homestay_kernel.logging_config import get_logger

_logger = get_logger("config")

_active: HomestayConfig | None = None


def get_active_config(config_file: Path | str | None = None, *, reload: bool = False) -> HomestayConfig:
    """Load (once) and return the active configuration."""
    global _active
    if _active is None or reload or config_file is not None:
        _active = load_config(config_file)
        _logger.info(
            "config_loaded",
            extra={
                "gateway_configured": _active.gateway.is_configured,
                "gateway_missing": list(_active.gateway.missing_fields()),
                "force_test_mode": _active.payment.force_test_mode,
                "portal_base_url": _active.portal.base_url,
            },
        )
    return _active


def reset_active_config() -> None:
    """Forget the cached configuration. Tests only."""
    global _active
    _active = None


__all__ = [
    "DatabaseConfig",
    "GatewayConfig",
    "HomestayConfig",
    "PaymentConfig",
    "PortalConfig",
    "WorkflowConfig",
    "get_active_config",
    "load_config",
    "read_gateway_key",
    "reset_active_config",
]
