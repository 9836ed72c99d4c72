from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.api.deps import get_caller, get_db, require_roles
from app.api.routes.schedules import parse_filters
from app.models.faculty import Faculty
from app.models.user import User, UserRole
from app.schemas.faculty import FacultyOut
from app.schemas.schedule import ScheduleOut
from app.services.schedule_query import ScheduleQueryService
from app.services.schedule_repository import ScheduleFilters
from app.services.visibility import CallerIdentity

router = APIRouter()


@router.get("", response_model=list[FacultyOut])
def list_faculty(
    current_user: User = Depends(require_roles(UserRole.admin)),
    db: Session = Depends(get_db),
) -> list[FacultyOut]:
    return list(db.execute(select(Faculty).order_by(Faculty.name)).scalars())


@router.get("/me/schedule", response_model=list[ScheduleOut])
def my_teaching_schedule(
    current_user: User = Depends(require_roles(UserRole.faculty)),
    caller: CallerIdentity = Depends(get_caller),
    db: Session = Depends(get_db),
) -> list[ScheduleOut]:
    return ScheduleQueryService(db).list_for_faculty_user(caller)


@router.get("/{faculty_id}/schedule", response_model=list[ScheduleOut])
def faculty_schedule(
    faculty_id: str,
    filters: ScheduleFilters = Depends(parse_filters),
    current_user: User = Depends(require_roles(UserRole.admin)),
    db: Session = Depends(get_db),
) -> list[ScheduleOut]:
    return ScheduleQueryService(db).list_for_faculty(faculty_id, filters)
