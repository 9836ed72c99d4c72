from pydantic import BaseModel, Field

from app.models.enrollment import EnrollmentStatus


class EnrollmentCreate(BaseModel):
    student_id: str = Field(min_length=1, max_length=36)
    status: EnrollmentStatus = EnrollmentStatus.active


class EnrollmentStatusUpdate(BaseModel):
    status: EnrollmentStatus


class EnrollmentOut(BaseModel):
    id: str
    student_id: str
    course_id: str
    status: EnrollmentStatus

    model_config = {"from_attributes": True}
