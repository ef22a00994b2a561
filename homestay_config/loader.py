"""
Configuration Loader (``homestay_config.loader``).

Responsibility
--------------
Reads ``defaults.yaml``, an optional override file named by
``HOMESTAY_CONFIG_FILE`` and ``HOMESTAY_<SECTION>_<FIELD>`` environment
variables, and parses the merged document into ``schema`` dataclasses.
Runtime callers go through ``homestay_config.get_active_config()``.

Invariants enforced
-------------------
* Precedence: environment > override file > defaults.
* Unknown keys in a section raise ``ValueError``; nothing is silently
  dropped.
* Every parsed object is a frozen dataclass from ``schema.py``.

Failure modes
-------------
* Missing override file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unreadable gateway key  -> ``GatewayConfigurationError``.
"""

from __future__ import annotations

import dataclasses
import os
from pathlib import Path
from typing import Any, Mapping

import yaml

from homestay_config.schema import (
    DatabaseConfig,
    GatewayConfig,
    HomestayConfig,
    PaymentConfig,
    PortalConfig,
    WorkflowConfig,
)
from homestay_kernel.exceptions import GatewayConfigurationError

DEFAULTS_PATH = Path(__file__).parent / "defaults.yaml"
CONFIG_FILE_ENV = "HOMESTAY_CONFIG_FILE"
ENV_PREFIX = "HOMESTAY_"

_SECTIONS: dict[str, type] = {
    "gateway": GatewayConfig,
    "payment": PaymentConfig,
    "workflow": WorkflowConfig,
    "database": DatabaseConfig,
    "portal": PortalConfig,
}


def load_yaml_file(path: Path) -> dict[str, Any]:
    with open(path, encoding="utf-8") as fh:
        return yaml.safe_load(fh) or {}


def _deep_merge(base: dict[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, Mapping) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def env_overrides(environ: Mapping[str, str]) -> dict[str, dict[str, Any]]:
    """
    Collect ``HOMESTAY_<SECTION>_<FIELD>`` variables.

    String fields keep the raw value (URLs such as ``sqlite:///:memory:``
    are not valid YAML scalars); other fields parse as YAML scalars.
    """
    overrides: dict[str, dict[str, Any]] = {}
    for section, cls in _SECTIONS.items():
        for f in dataclasses.fields(cls):
            name = f"{ENV_PREFIX}{section.upper()}_{f.name.upper()}"
            if name not in environ:
                continue
            raw = environ[name]
            if _base_type(str(f.type)) == "str":
                value: Any = raw if raw.strip() not in ("", "null", "~") else None
            else:
                value = yaml.safe_load(raw)
            overrides.setdefault(section, {})[f.name] = value
    return overrides


def _base_type(annotation: str) -> str:
    return annotation.split("|")[0].strip()


def _coerce(annotation: str, value: Any) -> Any:
    if value is None:
        return None
    base = _base_type(annotation)
    if base == "str":
        return str(value)
    if base == "int":
        return int(value)
    if base == "float":
        return float(value)
    if base == "bool":
        if isinstance(value, str):
            return value.strip().lower() in ("1", "true", "yes", "on")
        return bool(value)
    return value


def _build_section(cls: type, data: Mapping[str, Any] | None, section: str):
    data = dict(data or {})
    known = {f.name: f for f in dataclasses.fields(cls)}
    unknown = sorted(set(data) - set(known))
    if unknown:
        raise ValueError(f"Unknown keys in '{section}' config: {', '.join(unknown)}")
    kwargs = {name: _coerce(str(known[name].type), value) for name, value in data.items()}
    return cls(**kwargs)


def parse_config(document: Mapping[str, Any]) -> HomestayConfig:
    unknown = sorted(set(document) - set(_SECTIONS))
    if unknown:
        raise ValueError(f"Unknown config sections: {', '.join(unknown)}")
    return HomestayConfig(**{
        section: _build_section(cls, document.get(section), section)
        for section, cls in _SECTIONS.items()
    })


def load_config(
    config_file: Path | str | None = None,
    environ: Mapping[str, str] | None = None,
) -> HomestayConfig:
    environ = os.environ if environ is None else environ
    document = load_yaml_file(DEFAULTS_PATH)
    override_path = config_file or environ.get(CONFIG_FILE_ENV)
    if override_path:
        document = _deep_merge(document, load_yaml_file(Path(override_path)))
    document = _deep_merge(document, env_overrides(environ))
    return parse_config(document)


def read_gateway_key(path: str | None) -> bytes:
    """Raw bytes of the treasury key file."""
    if not path:
        raise GatewayConfigurationError(("key_file_path",))
    try:
        data = Path(path).read_bytes()
    except OSError as exc:
        raise GatewayConfigurationError(("key_file_path",), detail=f"cannot read key file: {exc.strerror}") from exc
    if not data:
        raise GatewayConfigurationError(("key_file_path",), detail="key file is empty")
    return data
