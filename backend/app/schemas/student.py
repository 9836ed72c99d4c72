from pydantic import BaseModel


class StudentOut(BaseModel):
    id: str
    user_id: str | None = None
    name: str
    email: str
    roll_number: str | None = None

    model_config = {"from_attributes": True}
