from pydantic import BaseModel


class FacultyOut(BaseModel):
    id: str
    user_id: str | None = None
    name: str
    designation: str
    email: str
    department: str

    model_config = {"from_attributes": True}
