"""
homestay_engines.fees -- Registration fee calculation.

Responsibility:
    Computes the registration fee for a homestay from its category, its
    location type, the requested validity, the owner's gender and whether
    the property lies in the Pangi sub-division.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - Flat fee from the category x location matrix (GST included); no
      per-room component.
    - Discounts compound in a fixed order: 3-year validity 10%, then female
      owner 5%, then Pangi 50%.
    - Decimal arithmetic throughout; the payable fee is whole rupees.

Failure modes:
    - ValueError for an unknown category, location type or validity.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from homestay_engines.tracer import traced_engine

FEE_MATRIX: dict[str, dict[str, Decimal]] = {
    "diamond": {"mc": Decimal("18000"), "tcp": Decimal("12000"), "gp": Decimal("10000")},
    "gold": {"mc": Decimal("12000"), "tcp": Decimal("8000"), "gp": Decimal("6000")},
    "silver": {"mc": Decimal("8000"), "tcp": Decimal("5000"), "gp": Decimal("3000")},
}

VALIDITY_DISCOUNT = Decimal("0.10")
FEMALE_OWNER_DISCOUNT = Decimal("0.05")
PANGI_DISCOUNT = Decimal("0.50")

ALLOWED_VALIDITY_YEARS = (1, 3)

_PAISE = Decimal("0.01")
_RUPEE = Decimal("1")


@dataclass(frozen=True)
class FeeBreakdown:
    base_fee: Decimal
    total_before_discounts: Decimal
    validity_discount: Decimal
    female_owner_discount: Decimal
    pangi_discount: Decimal
    total_discount: Decimal
    final_fee: Decimal


@traced_engine("fees", "2025.1", fingerprint_fields=("category", "location_type", "validity_years"))
def calculate_fee(
    *,
    category: str,
    location_type: str,
    validity_years: int = 1,
    owner_gender: str | None = None,
    is_pangi: bool = False,
) -> FeeBreakdown:
    """Fee breakdown under the 2025 homestay rules."""
    try:
        base = FEE_MATRIX[(category or "").lower()][(location_type or "").lower()]
    except KeyError:
        raise ValueError(
            f"No fee defined for category={category!r} location_type={location_type!r}"
        ) from None
    if validity_years not in ALLOWED_VALIDITY_YEARS:
        raise ValueError(f"Validity must be 1 or 3 years, got {validity_years}")

    total = base * validity_years

    validity_discount = total * VALIDITY_DISCOUNT if validity_years == 3 else Decimal("0")
    remaining = total - validity_discount

    female_discount = Decimal("0")
    if (owner_gender or "").lower() == "female":
        female_discount = remaining * FEMALE_OWNER_DISCOUNT
        remaining -= female_discount

    pangi_discount = remaining * PANGI_DISCOUNT if is_pangi else Decimal("0")
    remaining -= pangi_discount

    return FeeBreakdown(
        base_fee=base,
        total_before_discounts=total,
        validity_discount=validity_discount.quantize(_PAISE),
        female_owner_discount=female_discount.quantize(_PAISE),
        pangi_discount=pangi_discount.quantize(_PAISE),
        total_discount=(validity_discount + female_discount + pangi_discount).quantize(_PAISE),
        final_fee=remaining.quantize(_RUPEE, rounding=ROUND_HALF_UP),
    )
