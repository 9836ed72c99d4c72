from fastapi import APIRouter, Depends, status
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.api.deps import get_current_user, get_db, require_roles
from app.core.exceptions import DuplicateError, NotFoundError
from app.models.course import Course
from app.models.enrollment import CourseEnrollment
from app.models.faculty import Faculty
from app.models.schedule import ClassSchedule
from app.models.student import Student
from app.models.subject import Subject
from app.models.user import User, UserRole
from app.schemas.course import CourseCreate, CourseOut, CourseUpdate
from app.schemas.enrollment import EnrollmentCreate, EnrollmentOut
from app.schemas.subject import SubjectCreate, SubjectOut
from app.services.audit import log_activity
from app.services.schedule_repository import ScheduleRepository

router = APIRouter()


def _get_course(db: Session, course_id: str) -> Course:
    course = db.get(Course, course_id)
    if course is None:
        raise NotFoundError("course", course_id, "Course not found")
    return course


@router.get("", response_model=list[CourseOut])
def list_courses(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)) -> list[CourseOut]:
    return list(db.execute(select(Course).order_by(Course.code)).scalars())


@router.post("", response_model=CourseOut, status_code=status.HTTP_201_CREATED)
def create_course(
    payload: CourseCreate,
    current_user: User = Depends(require_roles(UserRole.admin)),
    db: Session = Depends(get_db),
) -> CourseOut:
    existing = db.execute(select(Course).where(Course.code == payload.code)).scalar_one_or_none()
    if existing:
        raise DuplicateError("course", "Course code already exists")
    if payload.faculty_id and db.get(Faculty, payload.faculty_id) is None:
        raise NotFoundError("faculty", payload.faculty_id, "Faculty not found")
    course = Course(**payload.model_dump())
    db.add(course)
    db.flush()
    log_activity(db, user=current_user, action="course.create", entity_type="course", entity_id=course.id)
    db.commit()
    db.refresh(course)
    return course


@router.get("/{course_id}", response_model=CourseOut)
def get_course(
    course_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> CourseOut:
    return _get_course(db, course_id)


@router.put("/{course_id}", response_model=CourseOut)
def update_course(
    course_id: str,
    payload: CourseUpdate,
    current_user: User = Depends(require_roles(UserRole.admin)),
    db: Session = Depends(get_db),
) -> CourseOut:
    course = _get_course(db, course_id)
    data = payload.model_dump(exclude_unset=True)
    if "code" in data:
        data["code"] = data["code"].strip().upper()
        existing = db.execute(
            select(Course).where(Course.code == data["code"], Course.id != course_id)
        ).scalar_one_or_none()
        if existing:
            raise DuplicateError("course", "Course code already exists")

    try:
        if "faculty_id" in data:
            # Entries of subjects without an instructor resolve to the coordinator.
            ScheduleRepository(db).check_coordinator_change(course_id, data["faculty_id"])
        for key, value in data.items():
            setattr(course, key, value)
        if data:
            log_activity(
                db,
                user=current_user,
                action="course.update",
                entity_type="course",
                entity_id=course_id,
                details={"changed_fields": sorted(data.keys())},
            )
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(course)
    return course


@router.delete("/{course_id}")
def delete_course(
    course_id: str,
    current_user: User = Depends(require_roles(UserRole.admin)),
    db: Session = Depends(get_db),
) -> dict:
    course = _get_course(db, course_id)
    db.execute(delete(ClassSchedule).where(ClassSchedule.course_id == course_id))
    db.execute(delete(CourseEnrollment).where(CourseEnrollment.course_id == course_id))
    db.execute(delete(Subject).where(Subject.course_id == course_id))
    log_activity(
        db,
        user=current_user,
        action="course.delete",
        entity_type="course",
        entity_id=course_id,
        details={"code": course.code},
    )
    db.delete(course)
    db.commit()
    return {"success": True}


@router.get("/{course_id}/subjects", response_model=list[SubjectOut])
def list_course_subjects(
    course_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[SubjectOut]:
    _get_course(db, course_id)
    return list(db.execute(select(Subject).where(Subject.course_id == course_id).order_by(Subject.code)).scalars())


@router.post("/{course_id}/subjects", response_model=SubjectOut, status_code=status.HTTP_201_CREATED)
def create_course_subject(
    course_id: str,
    payload: SubjectCreate,
    current_user: User = Depends(require_roles(UserRole.admin)),
    db: Session = Depends(get_db),
) -> SubjectOut:
    _get_course(db, course_id)
    if payload.faculty_id and db.get(Faculty, payload.faculty_id) is None:
        raise NotFoundError("faculty", payload.faculty_id, "Faculty not found")
    subject = Subject(course_id=course_id, **payload.model_dump())
    db.add(subject)
    try:
        db.flush()
    except IntegrityError as exc:
        db.rollback()
        raise DuplicateError("subject", "Subject code already exists in course") from exc
    log_activity(db, user=current_user, action="subject.create", entity_type="subject", entity_id=subject.id)
    db.commit()
    db.refresh(subject)
    return subject


@router.get("/{course_id}/enrollments", response_model=list[EnrollmentOut])
def list_course_enrollments(
    course_id: str,
    current_user: User = Depends(require_roles(UserRole.admin)),
    db: Session = Depends(get_db),
) -> list[EnrollmentOut]:
    _get_course(db, course_id)
    return list(db.execute(select(CourseEnrollment).where(CourseEnrollment.course_id == course_id)).scalars())


@router.post("/{course_id}/enrollments", response_model=EnrollmentOut, status_code=status.HTTP_201_CREATED)
def enroll_student(
    course_id: str,
    payload: EnrollmentCreate,
    current_user: User = Depends(require_roles(UserRole.admin)),
    db: Session = Depends(get_db),
) -> EnrollmentOut:
    _get_course(db, course_id)
    if db.get(Student, payload.student_id) is None:
        raise NotFoundError("student", payload.student_id, "Student not found")
    existing = db.execute(
        select(CourseEnrollment).where(
            CourseEnrollment.course_id == course_id,
            CourseEnrollment.student_id == payload.student_id,
        )
    ).scalar_one_or_none()
    if existing:
        raise DuplicateError("enrollment", "Student already enrolled in course")
    enrollment = CourseEnrollment(course_id=course_id, student_id=payload.student_id, status=payload.status)
    db.add(enrollment)
    db.flush()
    log_activity(
        db,
        user=current_user,
        action="enrollment.create",
        entity_type="course_enrollment",
        entity_id=enrollment.id,
        details={"course_id": course_id, "student_id": payload.student_id, "status": payload.status.value},
    )
    db.commit()
    db.refresh(enrollment)
    return enrollment
