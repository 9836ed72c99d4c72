from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.exceptions import NotFoundError
from app.models.enrollment import CourseEnrollment, EnrollmentStatus
from app.models.faculty import Faculty
from app.models.student import Student
from app.schemas.schedule import ScheduleOut
from app.services.schedule_repository import ScheduleFilters, ScheduleRepository
from app.services.visibility import CallerIdentity, CourseScope, load_course_scope

logger = logging.getLogger(__name__)


class ScheduleQueryService:
    """Answers "which schedule entries does this caller see"."""

    def __init__(self, db: Session) -> None:
        self.db = db
        self.repository = ScheduleRepository(db)

    def list_for_caller(self, caller: CallerIdentity, filters: ScheduleFilters | None = None) -> list[ScheduleOut]:
        filters = filters or ScheduleFilters()
        scope = load_course_scope(self.db, caller)
        if scope.is_empty:
            logger.debug("Empty course scope | user_id=%s | role=%s", caller.user_id, caller.role.value)
            return []
        # A courseId filter narrows the permitted set; it never widens it.
        scope = scope.intersect(filters.course_id)
        if scope.is_empty:
            return []
        return self.repository.list(filters, scope)

    def list_for_faculty(self, faculty_id: str, filters: ScheduleFilters | None = None) -> list[ScheduleOut]:
        if self.db.get(Faculty, faculty_id) is None:
            raise NotFoundError("faculty", faculty_id, "Faculty not found")
        filters = filters or ScheduleFilters()
        return self.repository.list(
            ScheduleFilters(
                course_id=filters.course_id,
                day_of_week=filters.day_of_week,
                room_id=filters.room_id,
                involving_faculty_id=faculty_id,
            )
        )

    def list_for_faculty_user(self, caller: CallerIdentity) -> list[ScheduleOut]:
        faculty_id = self.db.execute(select(Faculty.id).where(Faculty.user_id == caller.user_id)).scalar_one_or_none()
        if faculty_id is None:
            raise NotFoundError("faculty", None, "Faculty record not found")
        return self.list_for_faculty(faculty_id)

    def list_for_student(self, student_id: str) -> list[ScheduleOut]:
        course_ids = (
            self.db.execute(
                select(CourseEnrollment.course_id).where(
                    CourseEnrollment.student_id == student_id,
                    CourseEnrollment.status == EnrollmentStatus.active,
                )
            )
            .scalars()
            .all()
        )
        return self.repository.list(scope=CourseScope.only(course_ids))

    def list_for_student_user(self, caller: CallerIdentity) -> list[ScheduleOut]:
        student_id = self.db.execute(select(Student.id).where(Student.user_id == caller.user_id)).scalar_one_or_none()
        if student_id is None:
            raise NotFoundError("student", None, "Student record not found")
        return self.list_for_student(student_id)
