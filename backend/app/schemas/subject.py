from pydantic import BaseModel, Field, field_validator


class SubjectCreate(BaseModel):
    code: str = Field(min_length=1, max_length=50)
    name: str = Field(min_length=1, max_length=200)
    credits: int = Field(default=3, ge=0, le=40)
    faculty_id: str | None = Field(default=None, max_length=36)

    @field_validator("code")
    @classmethod
    def normalize_code(cls, value: str) -> str:
        return value.strip().upper()


class SubjectUpdate(BaseModel):
    code: str | None = Field(default=None, min_length=1, max_length=50)
    name: str | None = Field(default=None, min_length=1, max_length=200)
    credits: int | None = Field(default=None, ge=0, le=40)


class SubjectFacultyAssign(BaseModel):
    # "none" clears the assignment.
    faculty_id: str = Field(min_length=1, max_length=36)


class SubjectOut(BaseModel):
    id: str
    course_id: str
    code: str
    name: str
    credits: int
    faculty_id: str | None = None

    model_config = {"from_attributes": True}
