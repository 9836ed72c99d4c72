from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.api.deps import get_db, require_roles
from app.core.exceptions import NotFoundError
from app.models.enrollment import CourseEnrollment
from app.models.user import User, UserRole
from app.schemas.enrollment import EnrollmentOut, EnrollmentStatusUpdate
from app.services.audit import log_activity

router = APIRouter()


@router.put("/{enrollment_id}/status", response_model=EnrollmentOut)
def update_enrollment_status(
    enrollment_id: str,
    payload: EnrollmentStatusUpdate,
    current_user: User = Depends(require_roles(UserRole.admin)),
    db: Session = Depends(get_db),
) -> EnrollmentOut:
    enrollment = db.get(CourseEnrollment, enrollment_id)
    if enrollment is None:
        raise NotFoundError("enrollment", enrollment_id, "Enrollment not found")
    previous = enrollment.status
    enrollment.status = payload.status
    log_activity(
        db,
        user=current_user,
        action="enrollment.status",
        entity_type="course_enrollment",
        entity_id=enrollment_id,
        details={"previous": previous.value, "status": payload.status.value},
    )
    db.commit()
    db.refresh(enrollment)
    return enrollment
