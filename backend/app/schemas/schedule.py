from __future__ import annotations

import re

from pydantic import BaseModel, Field, field_validator, model_validator

ORDERED_DAYS = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]
DAY_VALUES = set(ORDERED_DAYS)
DAY_ORDER = {day: index for index, day in enumerate(ORDERED_DAYS)}
DAY_SHORT_MAP = {
    "Mon": "Monday",
    "Tue": "Tuesday",
    "Wed": "Wednesday",
    "Thu": "Thursday",
    "Fri": "Friday",
    "Sat": "Saturday",
    "Sun": "Sunday",
}

TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")
NO_ROOM_SENTINELS = {"", "none", "null"}
REQUIRED_SCHEDULE_FIELDS = ("courseId", "subjectId", "dayOfWeek", "startTime", "endTime")


def normalize_day(value: str) -> str:
    cleaned = value.strip()
    if not cleaned:
        return cleaned
    cleaned = cleaned[0].upper() + cleaned[1:].lower()
    return DAY_SHORT_MAP.get(cleaned, cleaned)


def parse_time_to_minutes(value: str) -> int:
    if not TIME_PATTERN.match(value):
        raise ValueError("Time must be in HH:MM 24-hour format")
    hours, minutes = value.split(":")
    return int(hours) * 60 + int(minutes)


class ScheduleIn(BaseModel):
    """Create/replace payload.

    Required fields are checked by the repository so a missing one surfaces as
    ``missing-field`` rather than a generic schema error.
    """

    courseId: str | None = Field(default=None, max_length=36)
    subjectId: str | None = Field(default=None, max_length=36)
    facultyId: str | None = Field(default=None, max_length=36)
    dayOfWeek: str | None = None
    startTime: str | None = None
    endTime: str | None = None
    roomId: str | None = Field(default=None, max_length=36)

    @field_validator("courseId", "subjectId", "facultyId", mode="before")
    @classmethod
    def blank_to_none(cls, value: str | None) -> str | None:
        if isinstance(value, str):
            return value.strip() or None
        return value

    @field_validator("roomId", mode="before")
    @classmethod
    def normalize_room(cls, value: str | None) -> str | None:
        if isinstance(value, str) and value.strip().lower() in NO_ROOM_SENTINELS:
            return None
        if isinstance(value, str):
            return value.strip()
        return value

    @field_validator("dayOfWeek")
    @classmethod
    def validate_day(cls, value: str | None) -> str | None:
        if value is None:
            return None
        day = normalize_day(value)
        if not day:
            return None
        if day not in DAY_VALUES:
            raise ValueError("Invalid day value")
        return day

    @field_validator("startTime", "endTime")
    @classmethod
    def validate_time_format(cls, value: str | None) -> str | None:
        if value is None:
            return None
        stripped = value.strip()
        if not stripped:
            return None
        if not TIME_PATTERN.match(stripped):
            raise ValueError("Time must be in HH:MM 24-hour format")
        return stripped

    @model_validator(mode="after")
    def validate_order(self) -> "ScheduleIn":
        if self.startTime and self.endTime:
            if parse_time_to_minutes(self.endTime) <= parse_time_to_minutes(self.startTime):
                raise ValueError("endTime must be after startTime")
        return self

    def missing_fields(self) -> list[str]:
        return [name for name in REQUIRED_SCHEDULE_FIELDS if getattr(self, name) is None]


class ScheduleUpdate(BaseModel):
    courseId: str | None = None
    subjectId: str | None = None
    facultyId: str | None = None
    dayOfWeek: str | None = None
    startTime: str | None = None
    endTime: str | None = None
    roomId: str | None = None


class ScheduleOut(BaseModel):
    id: str
    courseId: str
    courseCode: str | None = None
    courseName: str | None = None
    subjectId: str
    subjectCode: str | None = None
    subjectName: str | None = None
    roomId: str | None = None
    roomName: str
    facultyId: str | None = None
    facultyName: str
    dayOfWeek: str
    startTime: str
    endTime: str


class FacultyChangeOut(BaseModel):
    subjectId: str
    previousFacultyId: str | None = None
    newFacultyId: str


class ScheduleMutationOut(BaseModel):
    schedule: ScheduleOut
    facultyChange: FacultyChangeOut | None = None


class ScheduleConflictOut(BaseModel):
    resource: str
    resourceId: str
    dayOfWeek: str
    scheduleIds: list[str]
