from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.api.deps import get_caller, get_current_user, get_db, require_roles
from app.core.exceptions import AuthorizationError, ValidationError
from app.models.user import User, UserRole
from app.schemas.schedule import (
    DAY_VALUES,
    FacultyChangeOut,
    ScheduleConflictOut,
    ScheduleIn,
    ScheduleMutationOut,
    ScheduleOut,
    ScheduleUpdate,
    normalize_day,
)
from app.services.conflict_service import find_all_conflicts
from app.services.schedule_query import ScheduleQueryService
from app.services.schedule_repository import ScheduleFilters, ScheduleMutation, ScheduleRepository
from app.services.visibility import CallerIdentity, load_course_scope

router = APIRouter()


def parse_filters(
    course_id: str | None = Query(default=None, alias="courseId", max_length=36),
    day_of_week: str | None = Query(default=None, alias="dayOfWeek"),
    room_id: str | None = Query(default=None, alias="roomId", max_length=36),
    resolved_faculty_id: str | None = Query(default=None, alias="facultyId", max_length=36),
) -> ScheduleFilters:
    day = normalize_day(day_of_week) if day_of_week else None
    if day and day not in DAY_VALUES:
        raise ValidationError(f"Invalid dayOfWeek '{day_of_week}'", fields=["dayOfWeek"])
    return ScheduleFilters(
        course_id=course_id or None,
        day_of_week=day or None,
        room_id=room_id or None,
        faculty_id=resolved_faculty_id or None,
    )


def _mutation_out(repository: ScheduleRepository, mutation: ScheduleMutation) -> ScheduleMutationOut:
    change = mutation.faculty_change
    return ScheduleMutationOut(
        schedule=repository.get_view(mutation.entry.id),
        facultyChange=(
            FacultyChangeOut(
                subjectId=change.subject_id,
                previousFacultyId=change.previous_faculty_id,
                newFacultyId=change.new_faculty_id,
            )
            if change is not None
            else None
        ),
    )


@router.get("", response_model=list[ScheduleOut])
def list_schedules(
    filters: ScheduleFilters = Depends(parse_filters),
    caller: CallerIdentity = Depends(get_caller),
    db: Session = Depends(get_db),
) -> list[ScheduleOut]:
    return ScheduleQueryService(db).list_for_caller(caller, filters)


@router.get("/conflicts", response_model=list[ScheduleConflictOut])
def audit_schedule_conflicts(
    current_user: User = Depends(require_roles(UserRole.admin)),
    db: Session = Depends(get_db),
) -> list[ScheduleConflictOut]:
    pairs = find_all_conflicts(ScheduleRepository(db).list_slots())
    return [
        ScheduleConflictOut(
            resource=pair.resource,
            resourceId=pair.resource_id,
            dayOfWeek=pair.day,
            scheduleIds=[pair.first_id, pair.second_id],
        )
        for pair in pairs
    ]


@router.get("/{schedule_id}", response_model=ScheduleOut)
def get_schedule(
    schedule_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> ScheduleOut:
    view = ScheduleRepository(db).get_view(schedule_id)
    if current_user.role != UserRole.admin:
        scope = load_course_scope(db, CallerIdentity.from_user(current_user))
        if not scope.allows(view.courseId):
            raise AuthorizationError("Schedule is outside your visible courses")
    return view


@router.post("", response_model=ScheduleMutationOut, status_code=status.HTTP_201_CREATED)
def create_schedule(
    payload: ScheduleIn,
    current_user: User = Depends(require_roles(UserRole.admin)),
    db: Session = Depends(get_db),
) -> ScheduleMutationOut:
    repository = ScheduleRepository(db)
    mutation = repository.create(payload, actor=current_user)
    return _mutation_out(repository, mutation)


@router.put("/{schedule_id}", response_model=ScheduleMutationOut)
def replace_schedule(
    schedule_id: str,
    payload: ScheduleIn,
    current_user: User = Depends(require_roles(UserRole.admin)),
    db: Session = Depends(get_db),
) -> ScheduleMutationOut:
    repository = ScheduleRepository(db)
    mutation = repository.update(schedule_id, payload, actor=current_user)
    return _mutation_out(repository, mutation)


@router.patch("/{schedule_id}", response_model=ScheduleMutationOut)
def patch_schedule(
    schedule_id: str,
    payload: ScheduleUpdate,
    current_user: User = Depends(require_roles(UserRole.admin)),
    db: Session = Depends(get_db),
) -> ScheduleMutationOut:
    repository = ScheduleRepository(db)
    mutation = repository.patch(schedule_id, payload.model_dump(exclude_unset=True), actor=current_user)
    return _mutation_out(repository, mutation)


@router.delete("/{schedule_id}")
def delete_schedule(
    schedule_id: str,
    current_user: User = Depends(require_roles(UserRole.admin)),
    db: Session = Depends(get_db),
) -> dict:
    ScheduleRepository(db).delete(schedule_id, actor=current_user)
    return {"success": True}
