"""
District label matching and routing (``homestay_kernel.domain.district``).

District labels arrive from several upstream sources (officer profiles, LGD
master data, DDO tables) and are spelled inconsistently: "Shimla Division",
"Shimla (HQ)", "Lahaul & Spiti", "Lahaul-Spiti".  This module reduces a label
to a set of significant tokens and decides whether two labels refer to the
same district.

Pure functions, ZERO I/O.
"""

from __future__ import annotations

import re

_ADMINISTRATIVE_WORDS = re.compile(
    r"\b(division|sub-division|subdivision|hq|office|district|development|"
    r"tourism|ddo|dto|dt|section|unit|range|circle|zone|serving|for|the|at|and)\b"
)
_NON_LETTERS = re.compile(r"[^a-z\s]")
_WHITESPACE = re.compile(r"\s+")


def normalize_district_tokens(value: str | None) -> tuple[str, ...]:
    """
    Reduce a district label to its significant tokens.

    Lowercases, spells out ``&``, strips administrative words and
    non-letters, and keeps unique tokens longer than two characters in
    first-seen order.

        >>> normalize_district_tokens("Shimla Division Office")
        ('shimla',)
        >>> normalize_district_tokens("Lahaul & Spiti")
        ('lahaul', 'spiti')
    """
    if not value:
        return ()
    cleaned = value.lower().replace("&", " and ")
    cleaned = _ADMINISTRATIVE_WORDS.sub(" ", cleaned)
    cleaned = _NON_LETTERS.sub(" ", cleaned)
    cleaned = _WHITESPACE.sub(" ", cleaned).strip()
    if not cleaned:
        return ()
    tokens = [token for token in cleaned.split(" ") if len(token) > 2]
    return tuple(dict.fromkeys(tokens))


def districts_match(actor_district: str | None, target_district: str | None) -> bool:
    """
    Decide whether an officer's district covers an application's district.

    Accepts full-string equality (case and surrounding whitespace ignored)
    or token-subset containment in either direction, so "Lahaul" covers
    "Lahaul & Spiti" and "Shimla Division" covers "Shimla".  When either
    side is blank, only an equally blank other side matches.
    """
    left = (actor_district or "").strip().lower()
    right = (target_district or "").strip().lower()
    if not left or not right:
        return left == right
    if left == right:
        return True
    actor_tokens = set(normalize_district_tokens(actor_district))
    target_tokens = set(normalize_district_tokens(target_district))
    if not actor_tokens or not target_tokens:
        return False
    return actor_tokens <= target_tokens or target_tokens <= actor_tokens


# =============================================================================
# Routing labels
# =============================================================================

_CHAMBA_PANGI_TEHSILS = frozenset({"pangi"})
_CHAMBA_BHARMOUR_TEHSILS = frozenset({"bharmour", "holi"})
_LAHAUL_SPITI_KAZA_TEHSILS = frozenset({"kaza", "spiti"})
_LAHAUL_SPITI_LABELS = frozenset({
    "lahaul and spiti",
    "lahaul & spiti",
    "lahaul-spiti",
    "lahaul spiti",
})


def derive_district_routing_label(district: str | None, tehsil: str | None) -> str | None:
    """
    Canonical label used for DDO lookups.

    Chamba and Lahaul & Spiti are split into separate treasury offices by
    tehsil; every other district routes under its own label.
    """
    normalized = (district or "").strip().lower()
    if not normalized:
        return district
    normalized_tehsil = (tehsil or "").strip().lower()
    if normalized == "chamba":
        if normalized_tehsil in _CHAMBA_PANGI_TEHSILS:
            return "Pangi"
        if normalized_tehsil in _CHAMBA_BHARMOUR_TEHSILS:
            return "Bharmour"
        return "Chamba"
    if normalized in _LAHAUL_SPITI_LABELS:
        if normalized_tehsil in _LAHAUL_SPITI_KAZA_TEHSILS:
            return "Lahaul-Spiti (Kaza)"
        return "Lahaul"
    return district


def is_pangi(district: str | None, tehsil: str | None) -> bool:
    return derive_district_routing_label(district, tehsil) == "Pangi"
