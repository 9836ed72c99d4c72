"""Transactional create/update/delete/read for class schedule entries.

Every mutation is a single check-then-act unit on the session it was given:
the referenced course, subject, room and faculty rows are read with
``FOR UPDATE`` (always in that order), the committed bookings are compared with
the candidate, and only then is anything written and committed. Two writers
contending for the same room or instructor therefore queue on the same row
lock, and the second one's conflict check sees the first one's commit.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, replace
import logging

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import case, func, or_, select
from sqlalchemy.orm import Session, aliased

from app.core.config import get_settings
from app.core.exceptions import ConflictError, MissingFieldError, NotFoundError, ValidationError
from app.models.course import Course
from app.models.faculty import Faculty
from app.models.room import Room
from app.models.schedule import ClassSchedule
from app.models.subject import Subject
from app.models.user import User
from app.schemas.schedule import DAY_ORDER, ScheduleIn, ScheduleOut, parse_time_to_minutes
from app.services.audit import log_activity
from app.services.conflict_service import ScheduledSlot, find_conflict
from app.services.visibility import CourseScope

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScheduleFilters:
    course_id: str | None = None
    day_of_week: str | None = None
    room_id: str | None = None
    # Matches the resolved instructor (subject first, then course coordinator).
    faculty_id: str | None = None
    # Matches entries the faculty member teaches or whose course they coordinate.
    involving_faculty_id: str | None = None


@dataclass(frozen=True)
class FacultyChange:
    subject_id: str
    previous_faculty_id: str | None
    new_faculty_id: str | None


@dataclass
class ScheduleMutation:
    entry: ClassSchedule
    faculty_change: FacultyChange | None = None


@dataclass(frozen=True)
class _BookedRow:
    id: str
    course_id: str
    subject_id: str
    room_id: str | None
    day: str
    start: int
    end: int
    subject_faculty_id: str | None
    course_faculty_id: str | None

    def resolved_faculty(
        self,
        subject_overrides: dict[str, str | None] | None = None,
        course_overrides: dict[str, str | None] | None = None,
    ) -> str | None:
        subject_overrides = subject_overrides or {}
        course_overrides = course_overrides or {}
        subject_faculty = subject_overrides.get(self.subject_id, self.subject_faculty_id)
        if subject_faculty:
            return subject_faculty
        return course_overrides.get(self.course_id, self.course_faculty_id)


class ScheduleRepository:
    def __init__(self, db: Session) -> None:
        self.db = db

    @contextmanager
    def _atomic(self) -> Iterator[None]:
        try:
            yield
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

    # -- reads ---------------------------------------------------------------

    def get(self, schedule_id: str) -> ClassSchedule:
        entry = self.db.get(ClassSchedule, schedule_id)
        if entry is None:
            raise NotFoundError("schedule", schedule_id, "Schedule not found")
        return entry

    def get_view(self, schedule_id: str) -> ScheduleOut:
        row = self.db.execute(self._view_query().where(ClassSchedule.id == schedule_id)).first()
        if row is None:
            raise NotFoundError("schedule", schedule_id, "Schedule not found")
        return self._shape(row)

    def list(self, filters: ScheduleFilters | None = None, scope: CourseScope | None = None) -> list[ScheduleOut]:
        filters = filters or ScheduleFilters()
        scope = scope or CourseScope.all()
        if scope.is_empty:
            return []

        statement = self._view_query()
        if not scope.unrestricted:
            statement = statement.where(ClassSchedule.course_id.in_(sorted(scope.course_ids)))
        if filters.course_id:
            statement = statement.where(ClassSchedule.course_id == filters.course_id)
        if filters.day_of_week:
            statement = statement.where(ClassSchedule.day_of_week == filters.day_of_week)
        if filters.room_id:
            statement = statement.where(ClassSchedule.room_id == filters.room_id)
        resolved_faculty = func.coalesce(Subject.faculty_id, Course.faculty_id)
        if filters.faculty_id:
            statement = statement.where(resolved_faculty == filters.faculty_id)
        if filters.involving_faculty_id:
            statement = statement.where(
                or_(
                    resolved_faculty == filters.involving_faculty_id,
                    Course.faculty_id == filters.involving_faculty_id,
                )
            )

        day_rank = case(DAY_ORDER, value=ClassSchedule.day_of_week, else_=len(DAY_ORDER))
        statement = statement.order_by(day_rank, ClassSchedule.start_time, ClassSchedule.end_time, ClassSchedule.id)
        return [self._shape(row) for row in self.db.execute(statement).all()]

    def list_slots(self) -> list[ScheduledSlot]:
        """Every committed entry as a detector slot with its resolved instructor."""
        return [self._to_slot(row) for row in self._load_booked()]

    # -- mutations -------------------------------------------------------------

    def create(self, candidate: ScheduleIn, *, actor: User | None = None) -> ScheduleMutation:
        with self._atomic():
            course, subject, room = self._validate_references(candidate)
            slot, subject_overrides = self._prepare_candidate(None, candidate, course, subject)
            self._assert_bookable(slot, exclude_id=None, subject_overrides=subject_overrides)

            entry = ClassSchedule(
                course_id=course.id,
                subject_id=subject.id,
                room_id=room.id if room is not None else None,
                day_of_week=candidate.dayOfWeek,
                start_time=candidate.startTime,
                end_time=candidate.endTime,
            )
            self.db.add(entry)
            self.db.flush()
            change = self._apply_faculty_change(subject, candidate.facultyId, actor)
            log_activity(
                self.db,
                user=actor,
                action="schedule.create",
                entity_type="class_schedule",
                entity_id=entry.id,
                details=self._audit_details(entry, change),
            )
        self.db.refresh(entry)
        logger.info(
            "SCHEDULE CREATED | id=%s | course_id=%s | subject_id=%s | room_id=%s | day=%s | %s-%s",
            entry.id,
            entry.course_id,
            entry.subject_id,
            entry.room_id,
            entry.day_of_week,
            entry.start_time,
            entry.end_time,
        )
        return ScheduleMutation(entry=entry, faculty_change=change)

    def update(self, schedule_id: str, candidate: ScheduleIn, *, actor: User | None = None) -> ScheduleMutation:
        with self._atomic():
            entry = self._lock_entry(schedule_id)
            change = self._replace(entry, candidate, actor)
        return self._updated(entry, change)

    def patch(self, schedule_id: str, changes: dict, *, actor: User | None = None) -> ScheduleMutation:
        """Merge ``changes`` (camelCase fields) over the locked row, then update."""
        with self._atomic():
            entry = self._lock_entry(schedule_id)
            merged = {
                "courseId": entry.course_id,
                "subjectId": entry.subject_id,
                "dayOfWeek": entry.day_of_week,
                "startTime": entry.start_time,
                "endTime": entry.end_time,
                "roomId": entry.room_id,
            }
            merged.update(changes)
            try:
                candidate = ScheduleIn.model_validate(merged)
            except PydanticValidationError as exc:
                fields = sorted({str(error["loc"][0]) for error in exc.errors() if error.get("loc")})
                raise ValidationError("Invalid schedule update", fields=fields) from exc
            change = self._replace(entry, candidate, actor)
        return self._updated(entry, change)

    def _lock_entry(self, schedule_id: str) -> ClassSchedule:
        entry = self._lock(ClassSchedule, schedule_id)
        if entry is None:
            raise NotFoundError("schedule", schedule_id, "Schedule not found")
        return entry

    def _replace(self, entry: ClassSchedule, candidate: ScheduleIn, actor: User | None) -> FacultyChange | None:
        course, subject, room = self._validate_references(candidate)
        slot, subject_overrides = self._prepare_candidate(entry.id, candidate, course, subject)
        self._assert_bookable(slot, exclude_id=entry.id, subject_overrides=subject_overrides)

        entry.course_id = course.id
        entry.subject_id = subject.id
        entry.room_id = room.id if room is not None else None
        entry.day_of_week = candidate.dayOfWeek
        entry.start_time = candidate.startTime
        entry.end_time = candidate.endTime
        self.db.flush()
        change = self._apply_faculty_change(subject, candidate.facultyId, actor)
        log_activity(
            self.db,
            user=actor,
            action="schedule.update",
            entity_type="class_schedule",
            entity_id=entry.id,
            details=self._audit_details(entry, change),
        )
        return change

    def _updated(self, entry: ClassSchedule, change: FacultyChange | None) -> ScheduleMutation:
        self.db.refresh(entry)
        logger.info(
            "SCHEDULE UPDATED | id=%s | day=%s | %s-%s | room_id=%s",
            entry.id,
            entry.day_of_week,
            entry.start_time,
            entry.end_time,
            entry.room_id,
        )
        return ScheduleMutation(entry=entry, faculty_change=change)

    def delete(self, schedule_id: str, *, actor: User | None = None) -> None:
        with self._atomic():
            entry = self.get(schedule_id)
            details = self._audit_details(entry, None)
            self.db.delete(entry)
            log_activity(
                self.db,
                user=actor,
                action="schedule.delete",
                entity_type="class_schedule",
                entity_id=schedule_id,
                details=details,
            )
        logger.info("SCHEDULE DELETED | id=%s", schedule_id)

    def reassign_subject_faculty(
        self,
        subject_id: str,
        faculty_id: str | None,
        *,
        actor: User | None = None,
    ) -> FacultyChange | None:
        """Point a subject at another instructor (``None`` clears it).

        Every existing entry of the subject is re-checked against the bookings
        of whoever it resolves to afterwards.
        """
        with self._atomic():
            course, subject = self._lock_subject_with_course(subject_id)
            if faculty_id is not None and self._lock(Faculty, faculty_id) is None:
                raise NotFoundError("faculty", faculty_id, "Faculty not found")
            if subject.faculty_id == faculty_id:
                return None
            fallback = course.faculty_id if course is not None else None
            if faculty_id is None and fallback is not None:
                self._lock(Faculty, fallback)
            self._assert_bookable(None, exclude_id=None, subject_overrides={subject.id: faculty_id})
            change = FacultyChange(subject.id, subject.faculty_id, faculty_id)
            subject.faculty_id = faculty_id
            self._log_faculty_change(change, actor)
        return change

    def check_coordinator_change(self, course_id: str, faculty_id: str | None) -> None:
        """Raise if making ``faculty_id`` the coordinator would double-book them.

        Only entries whose subject has no instructor resolve to the
        coordinator. The caller owns the surrounding transaction.
        """
        course = self._lock(Course, course_id)
        if course is None:
            raise NotFoundError("course", course_id, "Course not found")
        if faculty_id is not None and self._lock(Faculty, faculty_id) is None:
            raise NotFoundError("faculty", faculty_id, "Faculty not found")
        if course.faculty_id == faculty_id:
            return
        self._assert_bookable(None, exclude_id=None, course_overrides={course.id: faculty_id})

    # -- helpers ---------------------------------------------------------------

    def _lock(self, model, ident: str | None):
        if ident is None:
            return None
        return self.db.get(model, ident, with_for_update=True, populate_existing=True)

    def _lock_subject_with_course(self, subject_id: str) -> tuple[Course | None, Subject]:
        # Course before subject, the same order create and update take them in.
        while True:
            current = self.db.execute(select(Subject.course_id).where(Subject.id == subject_id)).scalar_one_or_none()
            if current is None:
                raise NotFoundError("subject", subject_id, "Subject not found")
            course = self._lock(Course, current)
            subject = self._lock(Subject, subject_id)
            if subject is None:
                raise NotFoundError("subject", subject_id, "Subject not found")
            if subject.course_id == current:
                return course, subject

    def _validate_references(self, candidate: ScheduleIn) -> tuple[Course, Subject, Room | None]:
        missing = candidate.missing_fields()
        if missing:
            raise MissingFieldError(missing)

        course = self._lock(Course, candidate.courseId)
        if course is None:
            raise NotFoundError("course", candidate.courseId, "Course not found")
        subject = self._lock(Subject, candidate.subjectId)
        if subject is None:
            raise NotFoundError("subject", candidate.subjectId, "Subject not found")
        if subject.course_id != course.id:
            raise NotFoundError(
                "subject",
                candidate.subjectId,
                f"Subject {subject.code} does not belong to course {course.code}",
            )
        room = None
        if candidate.roomId:
            room = self._lock(Room, candidate.roomId)
            if room is None:
                raise NotFoundError("room", candidate.roomId, "Room not found")
        return course, subject, room

    def _prepare_candidate(
        self,
        entry_id: str | None,
        candidate: ScheduleIn,
        course: Course,
        subject: Subject,
    ) -> tuple[ScheduledSlot, dict[str, str | None]]:
        subject_overrides: dict[str, str | None] = {}
        if candidate.facultyId:
            if self._lock(Faculty, candidate.facultyId) is None:
                raise NotFoundError("faculty", candidate.facultyId, "Faculty not found")
            if candidate.facultyId != subject.faculty_id:
                subject_overrides[subject.id] = candidate.facultyId
            resolved = candidate.facultyId
        else:
            resolved = subject.faculty_id or course.faculty_id
            self._lock(Faculty, resolved)

        slot = ScheduledSlot(
            id=entry_id,
            day=candidate.dayOfWeek,
            start=parse_time_to_minutes(candidate.startTime),
            end=parse_time_to_minutes(candidate.endTime),
            room_id=candidate.roomId,
            faculty_id=resolved,
        )
        return slot, subject_overrides

    def _load_booked(self, *conditions) -> list[_BookedRow]:
        statement = (
            select(
                ClassSchedule.id,
                ClassSchedule.course_id,
                ClassSchedule.subject_id,
                ClassSchedule.room_id,
                ClassSchedule.day_of_week,
                ClassSchedule.start_time,
                ClassSchedule.end_time,
                Subject.faculty_id,
                Course.faculty_id,
            )
            .join(Subject, Subject.id == ClassSchedule.subject_id)
            .join(Course, Course.id == ClassSchedule.course_id)
        )
        if conditions:
            statement = statement.where(*conditions)
        return [
            _BookedRow(
                id=row[0],
                course_id=row[1],
                subject_id=row[2],
                room_id=row[3],
                day=row[4],
                start=parse_time_to_minutes(row[5]),
                end=parse_time_to_minutes(row[6]),
                subject_faculty_id=row[7],
                course_faculty_id=row[8],
            )
            for row in self.db.execute(statement).all()
        ]

    @staticmethod
    def _to_slot(
        row: _BookedRow,
        subject_overrides: dict[str, str | None] | None = None,
        course_overrides: dict[str, str | None] | None = None,
    ) -> ScheduledSlot:
        return ScheduledSlot(
            id=row.id,
            day=row.day,
            start=row.start,
            end=row.end,
            room_id=row.room_id,
            faculty_id=row.resolved_faculty(subject_overrides, course_overrides),
        )

    def _assert_bookable(
        self,
        candidate: ScheduledSlot | None,
        *,
        exclude_id: str | None,
        subject_overrides: dict[str, str | None] | None = None,
        course_overrides: dict[str, str | None] | None = None,
    ) -> None:
        subject_overrides = subject_overrides or {}
        course_overrides = course_overrides or {}

        affected: list[_BookedRow] = []
        if subject_overrides or course_overrides:
            affected = [
                row
                for row in self._load_booked(
                    or_(
                        ClassSchedule.subject_id.in_(list(subject_overrides)),
                        ClassSchedule.course_id.in_(list(course_overrides)),
                    )
                )
                if row.id != exclude_id
                and row.resolved_faculty(subject_overrides, course_overrides) != row.resolved_faculty()
            ]

        days = {row.day for row in affected}
        if candidate is not None:
            days.add(candidate.day)
        if not days:
            return

        pool = [
            self._to_slot(row, subject_overrides, course_overrides)
            for row in self._load_booked(ClassSchedule.day_of_week.in_(sorted(days)))
            if row.id != exclude_id
        ]

        if candidate is not None:
            conflict = find_conflict(candidate, pool)
            if conflict is not None:
                logger.info(
                    "SCHEDULE CONFLICT | resource=%s | resource_id=%s | day=%s | blocking_id=%s",
                    conflict.resource,
                    conflict.resource_id,
                    conflict.day,
                    conflict.entry_id,
                )
                raise ConflictError(
                    conflict.resource,
                    conflict.entry_id,
                    day=conflict.day,
                    resource_id=conflict.resource_id,
                )
            pool.append(candidate)

        candidate_marker = (candidate.id or "") if candidate is not None else None
        for row in affected:
            reassigned = replace(self._to_slot(row, subject_overrides, course_overrides), room_id=None)
            if reassigned.faculty_id is None:
                continue
            conflict = find_conflict(reassigned, pool, exclude_id=row.id)
            if conflict is None:
                continue
            blocking_id = row.id if conflict.entry_id == candidate_marker else conflict.entry_id
            logger.info(
                "SCHEDULE CONFLICT | resource=faculty | faculty_id=%s | day=%s | reassigned_id=%s | blocking_id=%s",
                reassigned.faculty_id,
                reassigned.day,
                row.id,
                blocking_id,
            )
            raise ConflictError("faculty", blocking_id, day=reassigned.day, resource_id=reassigned.faculty_id)

    def _apply_faculty_change(
        self,
        subject: Subject,
        faculty_id: str | None,
        actor: User | None,
    ) -> FacultyChange | None:
        if not faculty_id or faculty_id == subject.faculty_id:
            return None
        change = FacultyChange(subject.id, subject.faculty_id, faculty_id)
        subject.faculty_id = faculty_id
        self._log_faculty_change(change, actor)
        return change

    def _log_faculty_change(self, change: FacultyChange, actor: User | None) -> None:
        log_activity(
            self.db,
            user=actor,
            action="subject.faculty_reassigned",
            entity_type="subject",
            entity_id=change.subject_id,
            details={
                "previous_faculty_id": change.previous_faculty_id,
                "new_faculty_id": change.new_faculty_id,
            },
        )
        logger.info(
            "SUBJECT FACULTY REASSIGNED | subject_id=%s | previous=%s | new=%s",
            change.subject_id,
            change.previous_faculty_id,
            change.new_faculty_id,
        )

    @staticmethod
    def _audit_details(entry: ClassSchedule, change: FacultyChange | None) -> dict:
        details = {
            "course_id": entry.course_id,
            "subject_id": entry.subject_id,
            "room_id": entry.room_id,
            "day_of_week": entry.day_of_week,
            "start_time": entry.start_time,
            "end_time": entry.end_time,
        }
        if change is not None:
            details["faculty_change"] = {
                "previous_faculty_id": change.previous_faculty_id,
                "new_faculty_id": change.new_faculty_id,
            }
        return details

    @staticmethod
    def _view_query():
        subject_faculty = aliased(Faculty)
        course_faculty = aliased(Faculty)
        return (
            select(
                ClassSchedule,
                Course.code,
                Course.name,
                Subject.code,
                Subject.name,
                Room.name,
                Subject.faculty_id,
                subject_faculty.name,
                Course.faculty_id,
                course_faculty.name,
            )
            .join(Course, Course.id == ClassSchedule.course_id)
            .join(Subject, Subject.id == ClassSchedule.subject_id)
            .outerjoin(Room, Room.id == ClassSchedule.room_id)
            .outerjoin(subject_faculty, subject_faculty.id == Subject.faculty_id)
            .outerjoin(course_faculty, course_faculty.id == Course.faculty_id)
        )

    @staticmethod
    def _shape(row) -> ScheduleOut:
        settings = get_settings()
        (
            entry,
            course_code,
            course_name,
            subject_code,
            subject_name,
            room_name,
            subject_faculty_id,
            subject_faculty_name,
            course_faculty_id,
            course_faculty_name,
        ) = row
        if subject_faculty_id:
            faculty_id, faculty_name = subject_faculty_id, subject_faculty_name
        else:
            faculty_id, faculty_name = course_faculty_id, course_faculty_name
        return ScheduleOut(
            id=entry.id,
            courseId=entry.course_id,
            courseCode=course_code,
            courseName=course_name,
            subjectId=entry.subject_id,
            subjectCode=subject_code,
            subjectName=subject_name,
            roomId=entry.room_id,
            roomName=room_name or settings.unassigned_room_label,
            facultyId=faculty_id,
            facultyName=faculty_name or settings.unassigned_faculty_label,
            dayOfWeek=entry.day_of_week,
            startTime=entry.start_time,
            endTime=entry.end_time,
        )
