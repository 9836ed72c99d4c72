from types import SimpleNamespace

import pytest
from sqlalchemy import func, select

from app.core.exceptions import ConflictError, MissingFieldError, NotFoundError, ValidationError
from app.models.activity_log import ActivityLog
from app.models.course import Course
from app.models.faculty import Faculty
from app.models.room import Room
from app.models.schedule import ClassSchedule
from app.models.subject import Subject
from app.schemas.schedule import ScheduleIn
from app.services.conflict_service import find_all_conflicts
from app.services.schedule_repository import ScheduleFilters, ScheduleRepository
from app.services.visibility import CourseScope


def seed_catalog(db):
    grace = Faculty(name="Grace Hopper", email="grace@campus.edu")
    frank = Faculty(name="Frank Allen", email="frank@campus.edu")
    db.add_all([grace, frank])
    db.flush()

    algorithms = Course(code="CS201", name="Algorithms", faculty_id=None)
    networks = Course(code="CS301", name="Networks", faculty_id=frank.id)
    db.add_all([algorithms, networks])
    db.flush()

    graphs = Subject(course_id=algorithms.id, code="GRA", name="Graph Theory", faculty_id=grace.id)
    sorting = Subject(course_id=algorithms.id, code="SRT", name="Sorting", faculty_id=None)
    routing = Subject(course_id=networks.id, code="RTG", name="Routing", faculty_id=frank.id)
    sockets = Subject(course_id=networks.id, code="SCK", name="Sockets", faculty_id=None)
    db.add_all([graphs, sorting, routing, sockets])

    hall = Room(name="Hall A", capacity=60)
    lab = Room(name="Lab 2", capacity=30)
    db.add_all([hall, lab])
    db.commit()

    return SimpleNamespace(
        grace=grace,
        frank=frank,
        algorithms=algorithms,
        networks=networks,
        graphs=graphs,
        sorting=sorting,
        routing=routing,
        sockets=sockets,
        hall=hall,
        lab=lab,
    )


def book(repository, course, subject, day="Monday", start="09:00", end="10:00", room=None, faculty_id=None):
    return repository.create(
        ScheduleIn(
            courseId=course.id,
            subjectId=subject.id,
            dayOfWeek=day,
            startTime=start,
            endTime=end,
            roomId=room.id if room is not None else None,
            facultyId=faculty_id,
        )
    )


def schedule_count(db):
    return db.scalar(select(func.count()).select_from(ClassSchedule))


@pytest.fixture()
def catalog(db_session):
    return seed_catalog(db_session)


@pytest.fixture()
def repository(db_session):
    return ScheduleRepository(db_session)


def test_create_persists_entry_and_shapes_view(repository, catalog):
    mutation = book(repository, catalog.algorithms, catalog.graphs, room=catalog.hall)

    assert mutation.faculty_change is None
    view = repository.get_view(mutation.entry.id)
    assert view.courseCode == "CS201"
    assert view.subjectName == "Graph Theory"
    assert view.roomName == "Hall A"
    assert view.facultyId == catalog.grace.id
    assert view.facultyName == "Grace Hopper"
    assert view.dayOfWeek == "Monday"
    assert (view.startTime, view.endTime) == ("09:00", "10:00")


def test_entry_without_room_or_instructor_uses_unassigned_labels(repository, catalog):
    mutation = book(repository, catalog.algorithms, catalog.sorting, room=None)

    view = repository.get_view(mutation.entry.id)
    assert view.roomId is None
    assert view.roomName == "Unassigned"
    assert view.facultyId is None
    assert view.facultyName == "Unassigned"


def test_touching_entries_in_same_room_are_accepted(db_session, repository, catalog):
    book(repository, catalog.algorithms, catalog.graphs, start="09:00", end="10:00", room=catalog.hall)
    book(repository, catalog.networks, catalog.routing, start="10:00", end="11:00", room=catalog.hall)

    assert schedule_count(db_session) == 2


def test_overlapping_room_booking_is_rejected_without_writing(db_session, repository, catalog):
    first = book(repository, catalog.algorithms, catalog.graphs, room=catalog.hall)

    with pytest.raises(ConflictError) as exc_info:
        book(repository, catalog.networks, catalog.routing, start="09:30", end="10:30", room=catalog.hall)

    assert exc_info.value.code == "conflict:room"
    assert exc_info.value.conflicting_id == first.entry.id
    assert schedule_count(db_session) == 1


def test_instructor_cannot_teach_two_rooms_at_once(repository, catalog):
    first = book(repository, catalog.networks, catalog.routing, room=catalog.hall)

    with pytest.raises(ConflictError) as exc_info:
        book(repository, catalog.networks, catalog.sockets, start="09:45", end="10:15", room=catalog.lab)

    # Sockets has no instructor, so it resolves to the course coordinator (Frank).
    assert exc_info.value.code == "conflict:faculty"
    assert exc_info.value.conflicting_id == first.entry.id


def test_entries_without_room_or_instructor_never_conflict(db_session, repository, catalog):
    book(repository, catalog.algorithms, catalog.sorting, room=None)
    book(repository, catalog.algorithms, catalog.sorting, room=None)

    assert schedule_count(db_session) == 2


def test_update_excludes_own_previous_version(repository, catalog):
    mutation = book(repository, catalog.algorithms, catalog.graphs, room=catalog.hall)

    updated = repository.update(
        mutation.entry.id,
        ScheduleIn(
            courseId=catalog.algorithms.id,
            subjectId=catalog.graphs.id,
            dayOfWeek="Monday",
            startTime="09:30",
            endTime="10:30",
            roomId=catalog.hall.id,
        ),
    )

    assert updated.entry.start_time == "09:30"
    assert updated.entry.end_time == "10:30"


def test_update_into_another_entry_is_rejected(db_session, repository, catalog):
    first = book(repository, catalog.algorithms, catalog.graphs, room=catalog.hall)
    second = book(repository, catalog.networks, catalog.routing, start="11:00", end="12:00", room=catalog.hall)

    with pytest.raises(ConflictError) as exc_info:
        repository.update(
            second.entry.id,
            ScheduleIn(
                courseId=catalog.networks.id,
                subjectId=catalog.routing.id,
                dayOfWeek="Monday",
                startTime="09:15",
                endTime="10:15",
                roomId=catalog.hall.id,
            ),
        )

    assert exc_info.value.conflicting_id == first.entry.id
    db_session.expire_all()
    assert repository.get(second.entry.id).start_time == "11:00"


def test_update_of_missing_entry_is_not_found(repository, catalog):
    with pytest.raises(NotFoundError) as exc_info:
        repository.update(
            "missing-id",
            ScheduleIn(
                courseId=catalog.algorithms.id,
                subjectId=catalog.graphs.id,
                dayOfWeek="Monday",
                startTime="09:00",
                endTime="10:00",
            ),
        )

    assert exc_info.value.code == "not-found:schedule"


def test_patch_merges_over_the_committed_row(session_factory):
    stale = session_factory(expire_on_commit=False)
    other = session_factory()
    try:
        catalog = seed_catalog(stale)
        entry = book(ScheduleRepository(stale), catalog.algorithms, catalog.graphs, room=catalog.hall).entry
        stale.commit()

        moved = other.get(ClassSchedule, entry.id)
        moved.room_id = catalog.lab.id
        other.commit()
        other.close()

        assert entry.room_id == catalog.hall.id
        patched = ScheduleRepository(stale).patch(entry.id, {"startTime": "09:30", "endTime": "10:30"})

        assert patched.entry.room_id == catalog.lab.id
        assert patched.entry.start_time == "09:30"
        assert patched.entry.end_time == "10:30"
    finally:
        other.close()
        stale.close()


def test_patch_rejects_invalid_merge_without_writing(db_session, repository, catalog):
    mutation = book(repository, catalog.algorithms, catalog.graphs, room=catalog.hall)

    with pytest.raises(ValidationError) as exc_info:
        repository.patch(mutation.entry.id, {"startTime": "25:00"})

    assert exc_info.value.code == "invalid-field"
    assert exc_info.value.details["fields"] == ["startTime"]
    db_session.expire_all()
    assert repository.get(mutation.entry.id).start_time == "09:00"


def test_patch_of_missing_entry_is_not_found(repository, catalog):
    with pytest.raises(NotFoundError):
        repository.patch("missing-id", {"startTime": "09:30"})


def test_subject_from_another_course_is_rejected(db_session, repository, catalog):
    with pytest.raises(NotFoundError) as exc_info:
        book(repository, catalog.algorithms, catalog.routing, room=catalog.hall)

    assert exc_info.value.code == "not-found:subject"
    assert "does not belong" in exc_info.value.message
    assert schedule_count(db_session) == 0


@pytest.mark.parametrize(
    ("field", "entity"),
    [
        ("courseId", "course"),
        ("subjectId", "subject"),
        ("roomId", "room"),
        ("facultyId", "faculty"),
    ],
)
def test_unknown_references_are_not_found(db_session, repository, catalog, field, entity):
    payload = {
        "courseId": catalog.algorithms.id,
        "subjectId": catalog.graphs.id,
        "dayOfWeek": "Monday",
        "startTime": "09:00",
        "endTime": "10:00",
        field: "does-not-exist",
    }

    with pytest.raises(NotFoundError) as exc_info:
        repository.create(ScheduleIn(**payload))

    assert exc_info.value.code == f"not-found:{entity}"
    assert schedule_count(db_session) == 0


def test_missing_fields_are_listed(repository, catalog):
    with pytest.raises(MissingFieldError) as exc_info:
        repository.create(ScheduleIn(courseId=catalog.algorithms.id, dayOfWeek="Monday"))

    assert exc_info.value.code == "missing-field"
    assert exc_info.value.fields == ["subjectId", "startTime", "endTime"]


def test_explicit_faculty_reassigns_subject(db_session, repository, catalog):
    mutation = book(repository, catalog.algorithms, catalog.graphs, room=catalog.hall, faculty_id=catalog.frank.id)

    change = mutation.faculty_change
    assert change is not None
    assert change.subject_id == catalog.graphs.id
    assert change.previous_faculty_id == catalog.grace.id
    assert change.new_faculty_id == catalog.frank.id

    db_session.expire_all()
    assert db_session.get(Subject, catalog.graphs.id).faculty_id == catalog.frank.id
    audit = db_session.execute(
        select(ActivityLog).where(ActivityLog.action == "subject.faculty_reassigned")
    ).scalar_one()
    assert audit.entity_id == catalog.graphs.id
    assert audit.details["previous_faculty_id"] == catalog.grace.id


def test_explicit_faculty_equal_to_current_records_no_change(db_session, repository, catalog):
    mutation = book(repository, catalog.algorithms, catalog.graphs, faculty_id=catalog.grace.id)

    assert mutation.faculty_change is None
    reassignments = db_session.scalar(
        select(func.count()).select_from(ActivityLog).where(ActivityLog.action == "subject.faculty_reassigned")
    )
    assert reassignments == 0


def test_reassignment_that_double_books_existing_entries_is_rejected(db_session, repository, catalog):
    book(repository, catalog.algorithms, catalog.graphs, day="Monday", room=catalog.hall)
    frank_booking = book(repository, catalog.networks, catalog.routing, day="Monday", room=catalog.lab)

    # The new entry itself is free, but moving Graph Theory to Frank would
    # clash his existing Monday class with the Monday Graph Theory class.
    with pytest.raises(ConflictError) as exc_info:
        book(
            repository,
            catalog.algorithms,
            catalog.graphs,
            day="Tuesday",
            room=catalog.hall,
            faculty_id=catalog.frank.id,
        )

    assert exc_info.value.code == "conflict:faculty"
    assert exc_info.value.conflicting_id == frank_booking.entry.id
    db_session.expire_all()
    assert db_session.get(Subject, catalog.graphs.id).faculty_id == catalog.grace.id
    assert schedule_count(db_session) == 2


def test_delete_removes_entry(db_session, repository, catalog):
    mutation = book(repository, catalog.algorithms, catalog.graphs, room=catalog.hall)

    repository.delete(mutation.entry.id)

    assert schedule_count(db_session) == 0
    with pytest.raises(NotFoundError):
        repository.delete(mutation.entry.id)


def test_reassign_subject_faculty_checks_existing_entries(db_session, repository, catalog):
    book(repository, catalog.algorithms, catalog.graphs, room=catalog.hall)
    book(repository, catalog.networks, catalog.routing, room=catalog.lab)

    with pytest.raises(ConflictError):
        repository.reassign_subject_faculty(catalog.graphs.id, catalog.frank.id)

    db_session.expire_all()
    assert db_session.get(Subject, catalog.graphs.id).faculty_id == catalog.grace.id


def test_reassign_subject_faculty_can_clear_instructor(db_session, repository, catalog):
    change = repository.reassign_subject_faculty(catalog.graphs.id, None)

    assert change.previous_faculty_id == catalog.grace.id
    assert change.new_faculty_id is None
    assert repository.reassign_subject_faculty(catalog.graphs.id, None) is None


def test_reassign_subject_faculty_locks_course_before_subject(repository, catalog, monkeypatch):
    taken = []
    original_lock = repository._lock

    def recording_lock(model, ident):
        taken.append(model.__name__)
        return original_lock(model, ident)

    monkeypatch.setattr(repository, "_lock", recording_lock)
    change = repository.reassign_subject_faculty(catalog.sorting.id, catalog.grace.id)

    assert change.new_faculty_id == catalog.grace.id
    assert taken[:2] == ["Course", "Subject"]


def test_coordinator_change_is_checked_against_fallback_entries(repository, catalog):
    book(repository, catalog.algorithms, catalog.sorting, room=catalog.hall)
    book(repository, catalog.networks, catalog.routing, room=catalog.lab)

    with pytest.raises(ConflictError) as exc_info:
        repository.check_coordinator_change(catalog.algorithms.id, catalog.frank.id)

    assert exc_info.value.code == "conflict:faculty"
    repository.check_coordinator_change(catalog.algorithms.id, catalog.grace.id)


def test_committed_entries_never_conflict(repository, catalog):
    book(repository, catalog.algorithms, catalog.graphs, start="09:00", end="10:00", room=catalog.hall)
    book(repository, catalog.networks, catalog.routing, start="10:00", end="11:00", room=catalog.hall)
    book(repository, catalog.algorithms, catalog.sorting, start="09:00", end="10:00", room=catalog.lab)
    for start, end in (("09:30", "10:30"), ("08:00", "09:30")):
        with pytest.raises(ConflictError):
            book(repository, catalog.networks, catalog.sockets, start=start, end=end, room=catalog.hall)

    assert find_all_conflicts(repository.list_slots()) == []


def test_list_orders_by_day_then_start(repository, catalog):
    book(repository, catalog.algorithms, catalog.graphs, day="Tuesday", start="08:00", end="09:00")
    book(repository, catalog.algorithms, catalog.graphs, day="Monday", start="11:00", end="12:00")
    book(repository, catalog.algorithms, catalog.graphs, day="Monday", start="09:00", end="10:00")

    entries = repository.list()

    assert [(entry.dayOfWeek, entry.startTime) for entry in entries] == [
        ("Monday", "09:00"),
        ("Monday", "11:00"),
        ("Tuesday", "08:00"),
    ]


def test_list_filters_and_scope(repository, catalog):
    book(repository, catalog.algorithms, catalog.graphs, day="Monday", room=catalog.hall)
    book(repository, catalog.algorithms, catalog.sorting, day="Wednesday", room=catalog.lab)
    book(repository, catalog.networks, catalog.sockets, day="Monday", start="14:00", end="15:00")

    assert len(repository.list(ScheduleFilters(day_of_week="Monday"))) == 2
    assert len(repository.list(ScheduleFilters(room_id=catalog.lab.id))) == 1
    assert [entry.subjectCode for entry in repository.list(ScheduleFilters(faculty_id=catalog.frank.id))] == ["SCK"]
    assert len(repository.list(ScheduleFilters(course_id=catalog.algorithms.id))) == 2
    assert len(repository.list(scope=CourseScope.only([catalog.networks.id]))) == 1
    assert repository.list(scope=CourseScope.only([])) == []
