from datetime import timedelta
import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.api.deps import get_current_user, get_db
from app.core.config import get_settings
from app.core.exceptions import AuthorizationError, DuplicateError
from app.core.security import create_access_token, get_password_hash, verify_password
from app.models.faculty import Faculty
from app.models.student import Student
from app.models.user import User, UserRole
from app.schemas.user import Token, UserCreate, UserLogin, UserOut

settings = get_settings()
router = APIRouter()
logger = logging.getLogger(__name__)


def ensure_faculty_profile(db: Session, user: User) -> Faculty:
    faculty = db.execute(select(Faculty).where(Faculty.email == user.email)).scalar_one_or_none()
    if faculty is None:
        faculty = Faculty(
            user_id=user.id,
            name=user.name,
            designation="Assistant Professor",
            email=user.email,
            department=user.department or "General",
        )
        db.add(faculty)
        return faculty
    if faculty.user_id is None:
        faculty.user_id = user.id
    if not (faculty.name or "").strip():
        faculty.name = user.name
    return faculty


def ensure_student_profile(db: Session, user: User, roll_number: str | None = None) -> Student:
    student = db.execute(select(Student).where(Student.email == user.email)).scalar_one_or_none()
    if student is None:
        student = Student(user_id=user.id, name=user.name, email=user.email, roll_number=roll_number)
        db.add(student)
        return student
    if student.user_id is None:
        student.user_id = user.id
    return student


@router.post("/register", response_model=UserOut, status_code=status.HTTP_201_CREATED)
def register(payload: UserCreate, db: Session = Depends(get_db)) -> UserOut:
    existing = db.execute(select(User).where(User.email == payload.email)).scalar_one_or_none()
    if existing:
        raise DuplicateError("user", "Email already registered")

    user = User(
        name=payload.name,
        email=payload.email,
        hashed_password=get_password_hash(payload.password),
        role=payload.role,
        department=payload.department,
    )
    db.add(user)
    db.flush()

    if payload.role == UserRole.faculty:
        ensure_faculty_profile(db, user)
    elif payload.role == UserRole.student:
        ensure_student_profile(db, user, payload.roll_number)

    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise DuplicateError("user", "Email already registered") from exc

    db.refresh(user)
    logger.info("USER REGISTERED | user_id=%s | role=%s", user.id, user.role.value)
    return user


@router.post("/login", response_model=Token)
def login(payload: UserLogin, db: Session = Depends(get_db)) -> Token:
    user = db.execute(select(User).where(User.email == payload.email)).scalar_one_or_none()
    if user is None or not verify_password(payload.password, user.hashed_password):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid email or password")
    if not user.is_active:
        raise AuthorizationError("User account is inactive")
    if payload.role and payload.role != user.role:
        raise AuthorizationError("Role does not match user account")

    access_token = create_access_token(
        user.id,
        role=user.role.value,
        expires_delta=timedelta(minutes=settings.access_token_expire_minutes),
    )
    return Token(access_token=access_token, token_type="bearer", user=user)


@router.get("/me", response_model=UserOut)
def me(current_user: User = Depends(get_current_user)) -> UserOut:
    return current_user
