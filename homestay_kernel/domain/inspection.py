"""
Site inspection checklists and report rules (``homestay_kernel.domain.inspection``).

Responsibility
--------------
Defines the Annexure-III checklist vocabulary, the value object describing a
submitted inspection report, and the pure checks run on it: date rules at
submission time and the approval readiness check used by the guard when the
DTDO accepts an inspection report.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Mapping

MANDATORY_CHECKLIST_KEYS: tuple[str, ...] = (
    "applicationForm",
    "documents",
    "onlinePayment",
    "wellMaintained",
    "cleanRooms",
    "comfortableBedding",
    "roomSize",
    "cleanKitchen",
    "cutleryCrockery",
    "waterFacility",
    "wasteDisposal",
    "energySavingLights",
    "visitorBook",
    "doctorDetails",
    "luggageAssistance",
    "fireEquipment",
    "guestRegister",
    "cctvCameras",
)

DESIRABLE_CHECKLIST_KEYS: tuple[str, ...] = (
    "parking",
    "attachedBathroom",
    "toiletAmenities",
    "hotColdWater",
    "waterConservation",
    "diningArea",
    "wardrobe",
    "storage",
    "furniture",
    "laundry",
    "refrigerator",
    "lounge",
    "heatingCooling",
    "luggageHelp",
    "safeStorage",
    "securityGuard",
    "himachaliCrafts",
    "rainwaterHarvesting",
)

EARLY_INSPECTION_WINDOW_DAYS = 7
EARLY_INSPECTION_MIN_REASON_LENGTH = 15

RECOMMENDATIONS = frozenset({"approve", "raise_objections", "reject"})


@dataclass(frozen=True)
class InspectionFindings:
    """What the dealing assistant observed on site."""

    actual_inspection_date: date
    room_count_verified: bool
    category_meets_standards: bool
    overall_satisfactory: bool
    mandatory_checklist: Mapping[str, bool] = field(default_factory=dict)
    desirable_checklist: Mapping[str, bool] = field(default_factory=dict)
    actual_room_count: int | None = None
    recommended_category: str | None = None
    fire_safety_compliant: bool = False
    fire_safety_issues: str | None = None
    structural_safety: bool = False
    structural_issues: str | None = None
    recommendation: str = "approve"
    detailed_findings: str = ""
    mandatory_remarks: str | None = None
    desirable_remarks: str | None = None
    early_inspection_override: bool = False
    early_inspection_reason: str | None = None


def unknown_checklist_keys(findings: InspectionFindings) -> tuple[str, ...]:
    unknown = [k for k in findings.mandatory_checklist if k not in MANDATORY_CHECKLIST_KEYS]
    unknown += [k for k in findings.desirable_checklist if k not in DESIRABLE_CHECKLIST_KEYS]
    return tuple(unknown)


def failed_mandatory_items(checklist: Mapping[str, bool] | None) -> tuple[str, ...]:
    """Mandatory keys that are missing or not ticked, in checklist order."""
    checklist = checklist or {}
    return tuple(key for key in MANDATORY_CHECKLIST_KEYS if checklist.get(key) is not True)


def check_inspection_dates(
    findings: InspectionFindings,
    scheduled_date: date,
    today: date,
) -> str | None:
    """
    Validate the actual inspection date against the schedule.

    Returns a human-readable rejection message, or None when the date is
    acceptable.  Inspections before the scheduled date need the early
    override, at most ``EARLY_INSPECTION_WINDOW_DAYS`` early, with a
    justification of at least ``EARLY_INSPECTION_MIN_REASON_LENGTH``
    characters.  Future dates are never accepted.
    """
    actual = findings.actual_inspection_date
    if actual < scheduled_date:
        if not findings.early_inspection_override:
            return (
                f"Actual inspection date cannot be before the scheduled date "
                f"({scheduled_date.isoformat()}). Enable the early inspection "
                f"override and record a justification."
            )
        if actual < scheduled_date - timedelta(days=EARLY_INSPECTION_WINDOW_DAYS):
            return (
                f"Early inspections can only be logged up to "
                f"{EARLY_INSPECTION_WINDOW_DAYS} days before the scheduled date."
            )
        reason = (findings.early_inspection_reason or "").strip()
        if len(reason) < EARLY_INSPECTION_MIN_REASON_LENGTH:
            return (
                "Please provide a justification of at least "
                f"{EARLY_INSPECTION_MIN_REASON_LENGTH} characters for the early inspection."
            )
    if actual > today:
        return "Actual inspection date cannot be in the future"
    return None


def early_override_note(findings: InspectionFindings, scheduled_date: date) -> str | None:
    """Remark appended to the mandatory remarks for an early inspection."""
    actual = findings.actual_inspection_date
    if actual >= scheduled_date or not findings.early_inspection_override:
        return None
    days_early = (scheduled_date - actual).days
    plural = "" if days_early == 1 else "s"
    return (
        f"Early inspection override: Conducted {days_early} day{plural} before the "
        f"scheduled date ({scheduled_date.isoformat()}). "
        f"Reason: {(findings.early_inspection_reason or '').strip()}"
    )


@dataclass(frozen=True)
class InspectionReportSnapshot:
    """The stored report as seen by the approval guard."""

    mandatory_checklist: Mapping[str, bool]
    room_count_verified: bool
    category_meets_standards: bool
    overall_satisfactory: bool


def approval_blockers(report: InspectionReportSnapshot) -> tuple[str, ...]:
    """
    Reasons an inspection report cannot be approved.

    Every mandatory checklist item, the room-count and category
    confirmations and the overall-satisfactory flag must all be true.
    """
    blockers: list[str] = []
    failed = failed_mandatory_items(report.mandatory_checklist)
    if failed:
        blockers.append(f"mandatory checklist items not satisfied: {', '.join(failed)}")
    if not report.room_count_verified:
        blockers.append("room count not verified")
    if not report.category_meets_standards:
        blockers.append("category does not meet standards")
    if not report.overall_satisfactory:
        blockers.append("inspection not marked overall satisfactory")
    return tuple(blockers)
