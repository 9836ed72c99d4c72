from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.api.deps import get_caller, get_db, require_roles
from app.models.student import Student
from app.models.user import User, UserRole
from app.schemas.schedule import ScheduleOut
from app.schemas.student import StudentOut
from app.services.schedule_query import ScheduleQueryService
from app.services.visibility import CallerIdentity

router = APIRouter()


@router.get("", response_model=list[StudentOut])
def list_students(
    current_user: User = Depends(require_roles(UserRole.admin)),
    db: Session = Depends(get_db),
) -> list[StudentOut]:
    return list(db.execute(select(Student).order_by(Student.name)).scalars())


@router.get("/me/schedule", response_model=list[ScheduleOut])
def my_class_schedule(
    current_user: User = Depends(require_roles(UserRole.student)),
    caller: CallerIdentity = Depends(get_caller),
    db: Session = Depends(get_db),
) -> list[ScheduleOut]:
    return ScheduleQueryService(db).list_for_student_user(caller)
