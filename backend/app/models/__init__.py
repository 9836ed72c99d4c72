from app.models.activity_log import ActivityLog  # noqa: F401
from app.models.course import Course  # noqa: F401
from app.models.enrollment import CourseEnrollment, EnrollmentStatus  # noqa: F401
from app.models.faculty import Faculty  # noqa: F401
from app.models.room import Room, RoomType  # noqa: F401
from app.models.schedule import ClassSchedule  # noqa: F401
from app.models.student import Student  # noqa: F401
from app.models.subject import Subject  # noqa: F401
from app.models.user import User, UserRole  # noqa: F401
