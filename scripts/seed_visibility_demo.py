"""Seed demo accounts, a small catalog and a weekly timetable for visibility checks.

Run:
  PYTHONPATH=backend python scripts/seed_visibility_demo.py
"""

from __future__ import annotations

import os
from typing import Iterable

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.exceptions import ConflictError
from app.core.security import get_password_hash
from app.db.bootstrap import ensure_runtime_schema_compatibility
from app.db.session import SessionLocal
from app.models.course import Course
from app.models.enrollment import CourseEnrollment, EnrollmentStatus
from app.models.faculty import Faculty
from app.models.room import Room, RoomType
from app.models.student import Student
from app.models.subject import Subject
from app.models.user import User, UserRole
from app.schemas.schedule import ScheduleIn
from app.services.schedule_repository import ScheduleRepository

DEFAULT_PASSWORD = os.getenv("DEMO_PASSWORD", "DemoPass123!")
DEPARTMENT = "CSE"


def _env_email(key: str, default: str) -> str:
    value = os.getenv(key, "").strip()
    return value or default


DEMO_ACCOUNTS = {
    "admin": {
        "name": "Demo Admin",
        "email": _env_email("DEMO_ADMIN_EMAIL", "admin.demo@campus.example"),
        "role": UserRole.admin,
    },
    "faculty_1": {
        "name": "Demo Faculty One",
        "email": _env_email("DEMO_FACULTY1_EMAIL", "faculty1.demo@campus.example"),
        "role": UserRole.faculty,
    },
    "faculty_2": {
        "name": "Demo Faculty Two",
        "email": _env_email("DEMO_FACULTY2_EMAIL", "faculty2.demo@campus.example"),
        "role": UserRole.faculty,
    },
    "student_a": {
        "name": "Demo Student A",
        "email": _env_email("DEMO_STUDENTA_EMAIL", "studenta.demo@campus.example"),
        "role": UserRole.student,
    },
    "student_b": {
        "name": "Demo Student B",
        "email": _env_email("DEMO_STUDENTB_EMAIL", "studentb.demo@campus.example"),
        "role": UserRole.student,
    },
}


def _upsert_user(session: Session, *, name: str, email: str, role: UserRole) -> User:
    user = session.execute(select(User).where(User.email == email)).scalar_one_or_none()
    if user is None:
        user = User(
            name=name,
            email=email,
            hashed_password=get_password_hash(DEFAULT_PASSWORD),
            role=role,
            department=DEPARTMENT,
            is_active=True,
        )
        session.add(user)
    else:
        user.name = name
        user.role = role
        user.is_active = True
    session.flush()
    return user


def _upsert_faculty(session: Session, user: User) -> Faculty:
    faculty = session.execute(select(Faculty).where(Faculty.email == user.email)).scalar_one_or_none()
    if faculty is None:
        faculty = Faculty(
            user_id=user.id,
            name=user.name,
            designation="Assistant Professor",
            email=user.email,
            department=DEPARTMENT,
        )
        session.add(faculty)
    faculty.user_id = user.id
    session.flush()
    return faculty


def _upsert_student(session: Session, user: User) -> Student:
    student = session.execute(select(Student).where(Student.email == user.email)).scalar_one_or_none()
    if student is None:
        student = Student(user_id=user.id, name=user.name, email=user.email)
        session.add(student)
    student.user_id = user.id
    session.flush()
    return student


def _upsert_course(session: Session, *, code: str, name: str, coordinator: Faculty | None) -> Course:
    course = session.execute(select(Course).where(Course.code == code)).scalar_one_or_none()
    if course is None:
        course = Course(code=code, name=name, branch=DEPARTMENT)
        session.add(course)
    course.faculty_id = coordinator.id if coordinator is not None else None
    session.flush()
    return course


def _upsert_subject(session: Session, course: Course, *, code: str, name: str, instructor: Faculty | None) -> Subject:
    subject = session.execute(
        select(Subject).where(Subject.course_id == course.id, Subject.code == code)
    ).scalar_one_or_none()
    if subject is None:
        subject = Subject(course_id=course.id, code=code, name=name)
        session.add(subject)
    subject.faculty_id = instructor.id if instructor is not None else None
    session.flush()
    return subject


def _upsert_room(session: Session, *, name: str, capacity: int, room_type: RoomType) -> Room:
    room = session.execute(select(Room).where(Room.name == name)).scalar_one_or_none()
    if room is None:
        room = Room(name=name, building="Main", capacity=capacity, type=room_type)
        session.add(room)
        session.flush()
    return room


def _enroll(session: Session, student: Student, course: Course, status: EnrollmentStatus) -> None:
    enrollment = session.execute(
        select(CourseEnrollment).where(
            CourseEnrollment.student_id == student.id,
            CourseEnrollment.course_id == course.id,
        )
    ).scalar_one_or_none()
    if enrollment is None:
        session.add(CourseEnrollment(student_id=student.id, course_id=course.id, status=status))
    else:
        enrollment.status = status


def _book(session: Session, entries: Iterable[ScheduleIn]) -> int:
    repository = ScheduleRepository(session)
    created = 0
    for entry in entries:
        try:
            repository.create(entry)
        except ConflictError:
            # Already booked by an earlier run.
            continue
        created += 1
    return created


def main() -> None:
    ensure_runtime_schema_compatibility()
    with SessionLocal() as session:
        users = {key: _upsert_user(session, **item) for key, item in DEMO_ACCOUNTS.items()}
        faculty_one = _upsert_faculty(session, users["faculty_1"])
        faculty_two = _upsert_faculty(session, users["faculty_2"])
        student_a = _upsert_student(session, users["student_a"])
        student_b = _upsert_student(session, users["student_b"])

        course_a = _upsert_course(session, code="CSE-DEMO-A", name="Demo Course A", coordinator=faculty_one)
        course_b = _upsert_course(session, code="CSE-DEMO-B", name="Demo Course B", coordinator=None)
        lecture_a = _upsert_subject(session, course_a, code="LEC", name="Lectures", instructor=None)
        lab_a = _upsert_subject(session, course_a, code="LAB", name="Lab Sessions", instructor=faculty_two)
        lecture_b = _upsert_subject(session, course_b, code="LEC", name="Lectures", instructor=faculty_two)

        room_a = _upsert_room(session, name="A101", capacity=70, room_type=RoomType.lecture)
        room_b = _upsert_room(session, name="L201", capacity=35, room_type=RoomType.lab)

        _enroll(session, student_a, course_a, EnrollmentStatus.active)
        _enroll(session, student_b, course_b, EnrollmentStatus.active)
        _enroll(session, student_b, course_a, EnrollmentStatus.dropped)
        session.commit()

        created = _book(
            session,
            [
                ScheduleIn(
                    courseId=course_a.id,
                    subjectId=lecture_a.id,
                    dayOfWeek="Monday",
                    startTime="08:50",
                    endTime="09:40",
                    roomId=room_a.id,
                ),
                ScheduleIn(
                    courseId=course_a.id,
                    subjectId=lab_a.id,
                    dayOfWeek="Wednesday",
                    startTime="13:00",
                    endTime="15:00",
                    roomId=room_b.id,
                ),
                ScheduleIn(
                    courseId=course_b.id,
                    subjectId=lecture_b.id,
                    dayOfWeek="Tuesday",
                    startTime="09:40",
                    endTime="10:30",
                    roomId=room_a.id,
                ),
            ],
        )

        print(f"\nSchedule entries created: {created}")
        print("\nDemo accounts ready:")
        for label, user in users.items():
            print(f"  - {label}: {user.email} | role={user.role.value}")

    print(f"\nPassword for all demo accounts: {DEFAULT_PASSWORD}")
    print("\nExpected visibility after login:")
    print("  - faculty_1 sees Course A (coordinator)")
    print("  - faculty_2 sees Course A (teaches the lab) and Course B")
    print("  - student_a sees Course A only")
    print("  - student_b sees Course B only (Course A enrollment is dropped)")


if __name__ == "__main__":
    main()
