from typing import Any, Dict, List

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from flashbattle import db
from flashbattle.broadcast import close_room_channel, emit_to_room
from flashbattle.errors import Conflict, Forbidden, NotFound
from flashbattle.models import Bank, ExamSession, Room
from flashbattle.services import accounts


def get_room(room_id: str):
    return db.session.get(Room, room_id)


def require_room(room_id: str) -> Room:
    room = get_room(room_id)
    if room is None:
        raise NotFound('room_not_found', roomId=room_id)
    return room


def create_room(room_id: str, host_id: str) -> Room:
    """Create a room exactly once; an existing id is rejected, never overwritten."""
    if get_room(room_id) is not None:
        raise Conflict('room_exists', roomId=room_id)
    room = Room(id=room_id, host_id=host_id)
    db.session.add(room)
    try:
        db.session.commit()
    except IntegrityError:
        # Lost a concurrent create for the same id
        db.session.rollback()
        raise Conflict('room_exists', roomId=room_id)
    current_app.logger.info(f"[create_room] room={room_id} host={host_id}")
    return room


def can_delete(room: Room, requester_id: str, dev_password: str = None) -> bool:
    if requester_id and room.host_id == requester_id:
        return True
    return bool(dev_password) and accounts.is_root_credential(requester_id, dev_password)


def delete_room(room_id: str, requester_id: str, dev_password: str = None) -> int:
    """Delete a room for its host or a root account and notify its members.

    Returns the number of rows removed (room, active exam and banks).
    """
    room = get_room(room_id)
    if room is None:
        raise NotFound('not_found', roomId=room_id)
    if not can_delete(room, requester_id, dev_password):
        current_app.logger.warning(f"[delete_room] room={room_id} requester={requester_id} denied")
        raise Forbidden('no_permission', roomId=room_id)
    deleted = purge_room(room_id)
    emit_to_room(room_id, 'room_event', {'type': 'room_deleted', 'roomId': room_id})
    close_room_channel(room_id)
    return deleted


def purge_room(room_id: str) -> int:
    deleted = Bank.query.filter_by(room_id=room_id).delete()
    deleted += ExamSession.query.filter_by(room_id=room_id).delete()
    deleted += Room.query.filter_by(id=room_id).delete()
    db.session.commit()
    current_app.logger.info(f"[purge_room] room={room_id} deleted={deleted}")
    return deleted


def list_rooms() -> List[Dict[str, Any]]:
    counts = dict(
        db.session.query(Bank.room_id, func.count(Bank.bank_id)).group_by(Bank.room_id).all()
    )
    exams = {exam.room_id: exam for exam in ExamSession.query.all()}
    result = []
    for room in Room.query.order_by(Room.created_at, Room.id).all():
        entry = room.to_dict()
        entry['bankCount'] = counts.get(room.id, 0)
        entry['activeExam'] = exams[room.id].to_dict() if room.id in exams else None
        result.append(entry)
    return result
