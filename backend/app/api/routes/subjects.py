from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.api.deps import get_current_user, get_db, require_roles
from app.core.exceptions import DuplicateError, NotFoundError
from app.models.subject import Subject
from app.models.user import User, UserRole
from app.schemas.schedule import ScheduleOut
from app.schemas.subject import SubjectFacultyAssign, SubjectOut, SubjectUpdate
from app.services.audit import log_activity
from app.services.schedule_repository import ScheduleFilters, ScheduleRepository

router = APIRouter()


def _get_subject(db: Session, subject_id: str) -> Subject:
    subject = db.get(Subject, subject_id)
    if subject is None:
        raise NotFoundError("subject", subject_id, "Subject not found")
    return subject


@router.get("/{subject_id}", response_model=SubjectOut)
def get_subject(
    subject_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> SubjectOut:
    return _get_subject(db, subject_id)


@router.get("/{subject_id}/schedules", response_model=list[ScheduleOut])
def list_subject_schedules(
    subject_id: str,
    current_user: User = Depends(require_roles(UserRole.admin)),
    db: Session = Depends(get_db),
) -> list[ScheduleOut]:
    subject = _get_subject(db, subject_id)
    rows = ScheduleRepository(db).list(ScheduleFilters(course_id=subject.course_id))
    return [row for row in rows if row.subjectId == subject.id]


@router.put("/{subject_id}", response_model=SubjectOut)
def update_subject(
    subject_id: str,
    payload: SubjectUpdate,
    current_user: User = Depends(require_roles(UserRole.admin)),
    db: Session = Depends(get_db),
) -> SubjectOut:
    subject = _get_subject(db, subject_id)
    data = payload.model_dump(exclude_unset=True)
    if "code" in data:
        data["code"] = data["code"].strip().upper()
        existing = db.execute(
            select(Subject).where(
                Subject.course_id == subject.course_id,
                Subject.code == data["code"],
                Subject.id != subject_id,
            )
        ).scalar_one_or_none()
        if existing:
            raise DuplicateError("subject", "Subject code already exists in course")
    for key, value in data.items():
        setattr(subject, key, value)
    if data:
        log_activity(
            db,
            user=current_user,
            action="subject.update",
            entity_type="subject",
            entity_id=subject_id,
            details={"changed_fields": sorted(data.keys())},
        )
    db.commit()
    db.refresh(subject)
    return subject


@router.put("/{subject_id}/faculty", response_model=SubjectOut)
def assign_subject_faculty(
    subject_id: str,
    payload: SubjectFacultyAssign,
    current_user: User = Depends(require_roles(UserRole.admin)),
    db: Session = Depends(get_db),
) -> SubjectOut:
    faculty_id = None if payload.faculty_id.strip().lower() == "none" else payload.faculty_id.strip()
    ScheduleRepository(db).reassign_subject_faculty(subject_id, faculty_id, actor=current_user)
    subject = _get_subject(db, subject_id)
    db.refresh(subject)
    return subject
