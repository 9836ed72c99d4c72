from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models.course import Course
from app.models.enrollment import CourseEnrollment, EnrollmentStatus
from app.models.faculty import Faculty
from app.models.student import Student
from app.models.subject import Subject
from app.models.user import User, UserRole


@dataclass(frozen=True)
class CallerIdentity:
    user_id: str
    role: UserRole

    @classmethod
    def from_user(cls, user: User) -> "CallerIdentity":
        return cls(user_id=user.id, role=user.role)


@dataclass(frozen=True)
class CourseScope:
    """Course ids a caller may query; ``unrestricted`` means every course."""

    unrestricted: bool = False
    course_ids: frozenset[str] = field(default_factory=frozenset)

    @classmethod
    def all(cls) -> "CourseScope":
        return cls(unrestricted=True)

    @classmethod
    def only(cls, course_ids: Iterable[str]) -> "CourseScope":
        return cls(unrestricted=False, course_ids=frozenset(course_ids))

    @property
    def is_empty(self) -> bool:
        return not self.unrestricted and not self.course_ids

    def allows(self, course_id: str) -> bool:
        return self.unrestricted or course_id in self.course_ids

    def intersect(self, course_id: str | None) -> "CourseScope":
        if course_id is None:
            return self
        if self.allows(course_id):
            return CourseScope.only([course_id])
        return CourseScope.only([])


def compute_course_scope(
    role: UserRole,
    *,
    coordinated_course_ids: Iterable[str] = (),
    taught_course_ids: Iterable[str] = (),
    enrolled_course_ids: Iterable[str] = (),
) -> CourseScope:
    if role == UserRole.admin:
        return CourseScope.all()
    if role == UserRole.faculty:
        return CourseScope.only(set(coordinated_course_ids) | set(taught_course_ids))
    if role == UserRole.student:
        return CourseScope.only(enrolled_course_ids)
    return CourseScope.only([])


def load_course_scope(db: Session, caller: CallerIdentity) -> CourseScope:
    if caller.role == UserRole.admin:
        return compute_course_scope(caller.role)

    if caller.role == UserRole.faculty:
        faculty_id = db.execute(select(Faculty.id).where(Faculty.user_id == caller.user_id)).scalar_one_or_none()
        if faculty_id is None:
            return CourseScope.only([])
        coordinated = db.execute(select(Course.id).where(Course.faculty_id == faculty_id)).scalars().all()
        taught = db.execute(select(Subject.course_id).where(Subject.faculty_id == faculty_id)).scalars().all()
        return compute_course_scope(caller.role, coordinated_course_ids=coordinated, taught_course_ids=taught)

    if caller.role == UserRole.student:
        student_id = db.execute(select(Student.id).where(Student.user_id == caller.user_id)).scalar_one_or_none()
        if student_id is None:
            return CourseScope.only([])
        enrolled = (
            db.execute(
                select(CourseEnrollment.course_id).where(
                    CourseEnrollment.student_id == student_id,
                    CourseEnrollment.status == EnrollmentStatus.active,
                )
            )
            .scalars()
            .all()
        )
        return compute_course_scope(caller.role, enrolled_course_ids=enrolled)

    return CourseScope.only([])
