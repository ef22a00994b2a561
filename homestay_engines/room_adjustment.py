"""
homestay_engines.room_adjustment -- Room deltas and the renewal window.

Responsibility:
    Computes the room breakdown a service request would produce and the
    window within which a certificate may be renewed.

Architecture position:
    Engines -- pure calculation layer, zero I/O, no clock access.  "Now" is
    always a parameter.

Invariants enforced:
    - Adding rooms never pushes the total above ``max_rooms``.
    - Deleting rooms never removes more of a type than exists and never
      leaves fewer than ``MIN_ROOMS_AFTER_DELETE`` rooms.
    - The renewal window is ``[expiry - window_days, expiry]``, both ends
      inclusive.

Failure modes:
    - RoomLimitError for every rejected adjustment; the message is fit for
      display and carries the resulting total where one was computed.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta

from homestay_kernel.exceptions import RoomLimitError

MAX_ROOMS_ALLOWED = 6
MIN_ROOMS_AFTER_DELETE = 1
RENEWAL_WINDOW_DAYS = 90

ADD_ROOMS = "add_rooms"
DELETE_ROOMS = "delete_rooms"


def _count(value: int | None) -> int:
    if value is None:
        return 0
    return max(0, int(value))


@dataclass(frozen=True)
class RoomBreakdown:
    single: int = 0
    double: int = 0
    family: int = 0

    @property
    def total(self) -> int:
        return self.single + self.double + self.family

    def as_dict(self) -> dict[str, int]:
        return {
            "single": self.single,
            "double": self.double,
            "family": self.family,
            "total": self.total,
        }


@dataclass(frozen=True)
class RoomAdjustment:
    target: RoomBreakdown
    requested_room_delta: int
    requested_deletions: tuple[dict[str, int | str], ...] = field(default_factory=tuple)


def compute_room_adjustment(
    current: RoomBreakdown,
    mode: str,
    delta: RoomBreakdown | None,
    *,
    max_rooms: int = MAX_ROOMS_ALLOWED,
) -> RoomAdjustment:
    """Apply an unsigned per-type ``delta`` in the direction given by ``mode``."""
    if mode not in (ADD_ROOMS, DELETE_ROOMS):
        raise ValueError(f"Unsupported room adjustment mode: {mode}")
    if delta is None:
        raise RoomLimitError("Room adjustments are required for this service.")

    d_single, d_double, d_family = _count(delta.single), _count(delta.double), _count(delta.family)
    total_delta = d_single + d_double + d_family
    if total_delta == 0:
        raise RoomLimitError("Specify at least one room to add or delete.")

    if mode == ADD_ROOMS:
        target = RoomBreakdown(
            current.single + d_single,
            current.double + d_double,
            current.family + d_family,
        )
        if target.total > max_rooms:
            raise RoomLimitError(
                f"HP Homestay Rules permit a maximum of {max_rooms} rooms. "
                f"This request would result in {target.total} rooms.",
                resulting_total=target.total,
            )
        return RoomAdjustment(target=target, requested_room_delta=total_delta)

    if d_single > current.single or d_double > current.double or d_family > current.family:
        raise RoomLimitError("Cannot delete more rooms than currently exist in that category.")

    target = RoomBreakdown(
        current.single - d_single,
        current.double - d_double,
        current.family - d_family,
    )
    if target.total < MIN_ROOMS_AFTER_DELETE:
        raise RoomLimitError(
            f"At least {MIN_ROOMS_AFTER_DELETE} room must remain after deletion.",
            resulting_total=target.total,
        )

    deletions = tuple(
        {"roomType": room_type, "count": count}
        for room_type, count in (("single", d_single), ("double", d_double), ("family", d_family))
        if count
    )
    return RoomAdjustment(
        target=target,
        requested_room_delta=-total_delta,
        requested_deletions=deletions,
    )


@dataclass(frozen=True)
class RenewalWindow:
    window_start: datetime
    window_end: datetime
    in_window: bool


def renewal_window(
    expiry: datetime | None,
    now: datetime,
    *,
    window_days: int = RENEWAL_WINDOW_DAYS,
) -> RenewalWindow | None:
    """The renewal window for a certificate expiring at ``expiry``, or None."""
    if expiry is None:
        return None
    start = expiry - timedelta(days=window_days)
    return RenewalWindow(window_start=start, window_end=expiry, in_window=start <= now <= expiry)
