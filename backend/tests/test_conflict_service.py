from app.services.conflict_service import (
    ScheduledSlot,
    find_all_conflicts,
    find_conflict,
    intervals_overlap,
)


def slot(slot_id, day="Monday", start="09:00", end="10:00", room_id=None, faculty_id=None):
    def minutes(value):
        hours, mins = value.split(":")
        return int(hours) * 60 + int(mins)

    return ScheduledSlot(
        id=slot_id,
        day=day,
        start=minutes(start),
        end=minutes(end),
        room_id=room_id,
        faculty_id=faculty_id,
    )


def test_intervals_overlap_is_half_open():
    assert intervals_overlap(540, 600, 570, 630)
    assert intervals_overlap(540, 600, 540, 600)
    assert intervals_overlap(540, 660, 570, 600)
    assert not intervals_overlap(540, 600, 600, 660)
    assert not intervals_overlap(600, 660, 540, 600)


def test_touching_bookings_in_same_room_do_not_conflict():
    existing = [slot("a", start="09:00", end="10:00", room_id="r1")]
    candidate = slot(None, start="10:00", end="11:00", room_id="r1")

    assert find_conflict(candidate, existing) is None


def test_overlapping_booking_reports_room_and_blocking_entry():
    existing = [slot("a", start="09:00", end="10:00", room_id="r1", faculty_id="f1")]
    candidate = slot(None, start="09:30", end="10:30", room_id="r1", faculty_id="f2")

    conflict = find_conflict(candidate, existing)

    assert conflict is not None
    assert conflict.resource == "room"
    assert conflict.entry_id == "a"
    assert conflict.resource_id == "r1"
    assert conflict.day == "Monday"


def test_room_is_reported_before_faculty():
    existing = [slot("a", room_id="r1", faculty_id="f1")]
    candidate = slot(None, room_id="r1", faculty_id="f1")

    assert find_conflict(candidate, existing).resource == "room"


def test_faculty_conflict_across_different_rooms():
    existing = [slot("a", room_id="r1", faculty_id="f1")]
    candidate = slot(None, start="09:45", end="10:45", room_id="r2", faculty_id="f1")

    conflict = find_conflict(candidate, existing)

    assert conflict.resource == "faculty"
    assert conflict.entry_id == "a"
    assert conflict.resource_id == "f1"


def test_different_days_never_conflict():
    existing = [slot("a", day="Monday", room_id="r1", faculty_id="f1")]
    candidate = slot(None, day="Tuesday", room_id="r1", faculty_id="f1")

    assert find_conflict(candidate, existing) is None


def test_unassigned_room_and_faculty_are_not_compared():
    existing = [slot("a"), slot("b", room_id="r1")]
    candidate = slot(None)

    assert find_conflict(candidate, existing) is None


def test_excluded_entry_is_ignored():
    existing = [slot("a", room_id="r1", faculty_id="f1")]
    shifted = slot("a", start="09:30", end="10:30", room_id="r1", faculty_id="f1")

    assert find_conflict(shifted, existing, exclude_id="a") is None
    assert find_conflict(shifted, existing).entry_id == "a"


def test_earliest_blocking_entry_is_reported():
    existing = [
        slot("late", start="10:00", end="11:00", room_id="r1"),
        slot("early", start="08:30", end="09:30", room_id="r1"),
    ]
    candidate = slot(None, start="09:00", end="10:30", room_id="r1")

    assert find_conflict(candidate, existing).entry_id == "early"


def test_find_all_conflicts_reports_each_resource():
    slots = [
        slot("a", start="09:00", end="10:00", room_id="r1", faculty_id="f1"),
        slot("b", start="09:30", end="10:30", room_id="r1", faculty_id="f2"),
        slot("c", start="09:45", end="10:15", room_id="r2", faculty_id="f1"),
        slot("d", start="10:30", end="11:30", room_id="r1", faculty_id="f2"),
        slot("e", day="Tuesday", start="09:00", end="10:00", room_id="r1", faculty_id="f1"),
    ]

    pairs = {(pair.resource, pair.first_id, pair.second_id) for pair in find_all_conflicts(slots)}

    assert pairs == {("room", "a", "b"), ("faculty", "a", "c")}


def test_find_all_conflicts_on_clean_set_is_empty():
    slots = [
        slot("a", start="09:00", end="10:00", room_id="r1", faculty_id="f1"),
        slot("b", start="10:00", end="11:00", room_id="r1", faculty_id="f1"),
    ]

    assert find_all_conflicts(slots) == []
