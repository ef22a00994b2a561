"""
Human-readable identifiers (``homestay_kernel.domain.numbering``).

Application numbers follow ``HP-HS-{year}-{DISTRICT}-{serial:06d}``.  The
treasury gateway receives the application number as its department
reference, so numbers issued before district codes existed are rewritten
into the canonical shape before they leave the system.

Pure functions, ZERO I/O; the serial and the clock are supplied by callers.
"""

from __future__ import annotations

import re
import secrets
import string

_DISTRICT_CODES: dict[str, str] = {
    "shimla": "SML",
    "shimla division": "SML",
    "shimla hq": "SML",
    "kullu": "KUL",
    "kullu dhalpur": "KUL",
    "kullu (bhuntar/manali)": "KUL",
    "kangra": "KNG",
    "dharamsala": "KNG",
    "hamirpur": "HMP",
    "una": "UNA",
    "mandi": "MDI",
    "chamba": "CHM",
    "bharmour": "BRM",
    "lahaul": "LHL",
    "lahaul & spiti": "LHS",
    "lahaul and spiti": "LHS",
    "kinnaur": "KNR",
    "sirmaur": "SMR",
    "solan": "SOL",
    "bilaspur": "BIL",
    "pangi": "PNG",
    "kaza": "KZA",
}

_FALLBACK_CODE = "HPG"
_CANONICAL_NUMBER = re.compile(r"HP-HS-\d{4}-[A-Z]{3}-\d{6}")
_APP_REF_ALPHABET = string.ascii_letters + string.digits + "_-"


def district_code(district: str | None) -> str:
    """Three-letter district code, falling back to the first three letters."""
    normalized = (district or "").strip().lower()
    if not normalized:
        return _FALLBACK_CODE
    if normalized in _DISTRICT_CODES:
        return _DISTRICT_CODES[normalized]
    letters = re.sub(r"[^a-z]", "", normalized)
    return letters[:3].upper() or _FALLBACK_CODE


def format_application_number(serial: int, district: str | None, year: int) -> str:
    return f"HP-HS-{year}-{district_code(district)}-{serial:06d}"


def ensure_district_code_on_application_number(
    application_number: str,
    district: str | None,
    current_year: int,
) -> str:
    """
    Return ``application_number`` in canonical form.

    Canonical numbers pass through untouched.  Otherwise the year is kept
    when the third dash-separated part is a four-digit year, the last part
    is kept as the serial, and the district code is recomputed.
    """
    if _CANONICAL_NUMBER.search(application_number):
        return application_number
    parts = application_number.split("-")
    if len(parts) >= 3 and re.fullmatch(r"\d{4}", parts[2]):
        year = parts[2]
    else:
        year = str(current_year)
    serial = parts[-1] or "000000"
    return f"HP-HS-{year}-{district_code(district)}-{serial.rjust(6, '0')}"


def generate_app_ref_no(epoch_millis: int) -> str:
    """Per-attempt gateway reference: ``HPT`` + millis + 6 random chars, max 20."""
    suffix = "".join(secrets.choice(_APP_REF_ALPHABET) for _ in range(6))
    return f"HPT{epoch_millis}{suffix}"[:20]


def format_certificate_number(year: int, serial: int) -> str:
    """Certificate numbers: ``HP-HST-{year}-{serial:05d}``."""
    return f"HP-HST-{year}-{serial:05d}"
