from fastapi import APIRouter, Depends, status
from sqlalchemy import select, update
from sqlalchemy.orm import Session

from app.api.deps import get_current_user, get_db, require_roles
from app.core.exceptions import DuplicateError, NotFoundError
from app.models.room import Room
from app.models.schedule import ClassSchedule
from app.models.user import User, UserRole
from app.schemas.room import RoomCreate, RoomOut, RoomUpdate
from app.services.audit import log_activity

router = APIRouter()


def _get_room(db: Session, room_id: str) -> Room:
    room = db.get(Room, room_id)
    if room is None:
        raise NotFoundError("room", room_id, "Room not found")
    return room


@router.get("", response_model=list[RoomOut])
def list_rooms(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)) -> list[RoomOut]:
    return list(db.execute(select(Room).order_by(Room.name)).scalars())


@router.post("", response_model=RoomOut, status_code=status.HTTP_201_CREATED)
def create_room(
    payload: RoomCreate,
    current_user: User = Depends(require_roles(UserRole.admin)),
    db: Session = Depends(get_db),
) -> RoomOut:
    existing = db.execute(select(Room).where(Room.name == payload.name)).scalar_one_or_none()
    if existing:
        raise DuplicateError("room", "Room name already exists")
    room = Room(**payload.model_dump())
    db.add(room)
    db.flush()
    log_activity(db, user=current_user, action="room.create", entity_type="room", entity_id=room.id)
    db.commit()
    db.refresh(room)
    return room


@router.put("/{room_id}", response_model=RoomOut)
def update_room(
    room_id: str,
    payload: RoomUpdate,
    current_user: User = Depends(require_roles(UserRole.admin)),
    db: Session = Depends(get_db),
) -> RoomOut:
    room = _get_room(db, room_id)
    data = payload.model_dump(exclude_unset=True)
    if "name" in data:
        existing = db.execute(select(Room).where(Room.name == data["name"], Room.id != room_id)).scalar_one_or_none()
        if existing:
            raise DuplicateError("room", "Room name already exists")

    for key, value in data.items():
        setattr(room, key, value)
    if data:
        log_activity(
            db,
            user=current_user,
            action="room.update",
            entity_type="room",
            entity_id=room_id,
            details={"changed_fields": sorted(data.keys())},
        )
    db.commit()
    db.refresh(room)
    return room


@router.delete("/{room_id}")
def delete_room(
    room_id: str,
    current_user: User = Depends(require_roles(UserRole.admin)),
    db: Session = Depends(get_db),
) -> dict:
    room = _get_room(db, room_id)
    # Bookings keep their slot and fall back to "no room".
    released = db.execute(
        update(ClassSchedule).where(ClassSchedule.room_id == room_id).values(room_id=None)
    ).rowcount
    log_activity(
        db,
        user=current_user,
        action="room.delete",
        entity_type="room",
        entity_id=room_id,
        details={"name": room.name, "released_schedules": released},
    )
    db.delete(room)
    db.commit()
    return {"success": True}
