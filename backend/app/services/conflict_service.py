"""Room and faculty double-booking detection.

Everything in this module is pure: callers load the committed slots, this
module only compares them. Intervals are half-open ``[start, end)`` in minutes
since midnight, so a class ending at 10:00 and another starting at 10:00 do not
collide.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Literal

ConflictResource = Literal["room", "faculty"]


def intervals_overlap(start_a: int, end_a: int, start_b: int, end_b: int) -> bool:
    return start_a < end_b and start_b < end_a


@dataclass(frozen=True)
class ScheduledSlot:
    id: str | None
    day: str
    start: int
    end: int
    room_id: str | None = None
    faculty_id: str | None = None


@dataclass(frozen=True)
class ScheduleConflict:
    resource: ConflictResource
    entry_id: str
    resource_id: str
    day: str


def _first_blocking(
    candidate: ScheduledSlot,
    others: list[ScheduledSlot],
    *,
    key: str,
) -> ScheduledSlot | None:
    value = getattr(candidate, key)
    blocking = [
        other
        for other in others
        if getattr(other, key) == value and intervals_overlap(candidate.start, candidate.end, other.start, other.end)
    ]
    if not blocking:
        return None
    return min(blocking, key=lambda slot: (slot.start, slot.end, slot.id or ""))


def find_conflict(
    candidate: ScheduledSlot,
    existing: Iterable[ScheduledSlot],
    exclude_id: str | None = None,
) -> ScheduleConflict | None:
    """Return the first booking ``candidate`` collides with, or ``None``.

    The room is checked before the faculty member. ``exclude_id`` drops the
    entry being updated so it never conflicts with its own previous version.
    """
    same_day = [
        slot
        for slot in existing
        if slot.day == candidate.day and (exclude_id is None or slot.id != exclude_id)
    ]
    if not same_day:
        return None

    if candidate.room_id:
        blocking = _first_blocking(candidate, same_day, key="room_id")
        if blocking is not None:
            return ScheduleConflict("room", blocking.id or "", candidate.room_id, candidate.day)

    if candidate.faculty_id:
        blocking = _first_blocking(candidate, same_day, key="faculty_id")
        if blocking is not None:
            return ScheduleConflict("faculty", blocking.id or "", candidate.faculty_id, candidate.day)

    return None


@dataclass(frozen=True)
class SlotConflictPair:
    resource: ConflictResource
    resource_id: str
    day: str
    first_id: str
    second_id: str


def find_all_conflicts(slots: Iterable[ScheduledSlot]) -> list[SlotConflictPair]:
    """Pairwise audit of a whole slot set, bucketed by day."""
    slots_by_day: dict[str, list[ScheduledSlot]] = defaultdict(list)
    for slot in slots:
        slots_by_day[slot.day].append(slot)

    pairs: list[SlotConflictPair] = []
    for day, day_slots in slots_by_day.items():
        day_slots.sort(key=lambda slot: (slot.start, slot.end, slot.id or ""))
        for i, first in enumerate(day_slots):
            for second in day_slots[i + 1 :]:
                # Sorted by start, so nothing later can overlap either.
                if second.start >= first.end:
                    break
                if first.room_id and first.room_id == second.room_id:
                    pairs.append(SlotConflictPair("room", first.room_id, day, first.id or "", second.id or ""))
                if first.faculty_id and first.faculty_id == second.faculty_id:
                    pairs.append(SlotConflictPair("faculty", first.faculty_id, day, first.id or "", second.id or ""))
    return pairs
