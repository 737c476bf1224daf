from dataclasses import dataclass
from functools import wraps
from typing import Dict, Optional

from flask import current_app, request
from flask_socketio import emit, join_room, leave_room
from sqlalchemy.exc import SQLAlchemyError

from flashbattle import db, socketio
from flashbattle.broadcast import NAMESPACE, room_channel
from flashbattle.errors import BadRequest, Forbidden, NotFound, ParseError, ServiceError
from flashbattle.schemas import (
    BankRef,
    DeleteRoomEvent,
    ImportBankEvent,
    LoginEvent,
    RoomRef,
    StartRoomExamEvent,
    parse_payload,
)
from flashbattle.services import accounts, banks, leaderboard, normalizer, rooms, scoring, sessions


@dataclass
class ConnectionContext:
    """Identity and room of one socket connection; lives until it disconnects."""
    sid: str
    user_id: Optional[str] = None
    name: Optional[str] = None
    current_room: Optional[str] = None

    @property
    def identity(self) -> str:
        # Connections that never logged in act under their socket id
        return self.user_id or self.sid


_sid_to_ctx: Dict[str, ConnectionContext] = {}


def _get_sid() -> str:
    # type: ignore: request.sid exists in Socket.IO context
    return request.sid  # type: ignore


def _context() -> ConnectionContext:
    sid = _get_sid()
    ctx = _sid_to_ctx.get(sid)
    if ctx is None:
        ctx = _sid_to_ctx[sid] = ConnectionContext(sid=sid)
    return ctx


def socket_operation(ack_event: str, error_event: str = None):
    """Run an event handler with its connection context and always answer the caller.

    The handler returns the success payload for ``ack_event``. A
    ``ServiceError`` becomes ``{ok: False, error: code}`` and anything else
    becomes a logged ``server_error``; both are sent on ``error_event`` when
    given, otherwise on ``ack_event``.
    """
    def decorator(handler):
        @wraps(handler)
        def wrapper(data=None):
            ctx = _context()
            failure_event = error_event or ack_event
            try:
                payload = handler(ctx, data if isinstance(data, dict) else {})
            except ServiceError as err:
                db.session.rollback()
                current_app.logger.info(f"[{handler.__name__}] sid={ctx.sid} user={ctx.identity} error={err.code}")
                emit(failure_event, err.to_dict())
                return
            except Exception:
                db.session.rollback()
                current_app.logger.exception(f"[{handler.__name__}] sid={ctx.sid} user={ctx.identity} failed")
                emit(failure_event, {'ok': False, 'error': 'server_error'})
                return
            emit(ack_event, payload)
        return wrapper
    return decorator


def _enter_room(ctx: ConnectionContext, room_id: str) -> None:
    if ctx.current_room and ctx.current_room != room_id:
        leave_room(room_channel(ctx.current_room))
    join_room(room_channel(room_id))
    ctx.current_room = room_id


def _require_current_room(ctx: ConnectionContext) -> str:
    if not ctx.current_room:
        raise BadRequest('not_in_room')
    rooms.require_room(ctx.current_room)
    return ctx.current_room


def handle_connect(auth=None):
    ctx = _context()
    current_app.logger.info(f"[connect] sid={ctx.sid}")
    size = int(current_app.config.get('LEADERBOARD_BROADCAST_SIZE', 10))
    try:
        snapshot = leaderboard.flattened_top('last', size)
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception(f"[connect] sid={ctx.sid} leaderboard snapshot failed")
        return
    emit('leaderboard_update', snapshot)


def handle_disconnect(reason=None):
    ctx = _sid_to_ctx.pop(_get_sid(), None)
    if ctx:
        current_app.logger.info(f"[disconnect] sid={ctx.sid} user={ctx.identity} room={ctx.current_room}")


@socket_operation('login_ack')
def handle_login(ctx, data):
    event = parse_payload(LoginEvent, data)
    user = accounts.user_from_token(event.token) if event.token else None
    if user is not None:
        ctx.user_id, ctx.name = user.id, user.name
    else:
        name = (event.name or '').strip()
        claimed = (event.user_id or '').strip() or name
        # Registered ids are only reachable with that account's token
        if accounts.is_registered(claimed):
            raise Forbidden('token_required', userId=claimed)
        ctx.user_id = claimed or ctx.sid
        ctx.name = name or ctx.user_id
    return {
        'ok': True,
        'playerId': ctx.user_id,
        'name': ctx.name,
        'stats': scoring.get_stats(ctx.user_id),
        'wrongQuestions': scoring.get_wrong_questions(ctx.user_id),
    }


@socket_operation('create_room_ack')
def handle_create_room(ctx, data):
    event = parse_payload(RoomRef, data)
    rooms.create_room(event.room_id, ctx.identity)
    _enter_room(ctx, event.room_id)
    return {'ok': True, 'roomId': event.room_id}


@socket_operation('joined', error_event='join_error')
def handle_join_room(ctx, data):
    event = parse_payload(RoomRef, data)
    rooms.require_room(event.room_id)
    _enter_room(ctx, event.room_id)
    return {'ok': True, 'roomId': event.room_id}


@socket_operation('bank_list')
def handle_list_banks(ctx, data):
    room_id = _require_current_room(ctx)
    return {'ok': True, 'roomId': room_id, 'banks': banks.list_banks(room_id)}


@socket_operation('bank_questions')
def handle_load_bank_questions(ctx, data):
    room_id = _require_current_room(ctx)
    event = parse_payload(BankRef, data)
    return {'ok': True, 'bankId': event.bank_id, 'questions': banks.load_questions(room_id, event.bank_id)}


@socket_operation('delete_bank_ack')
def handle_delete_bank(ctx, data):
    room_id = _require_current_room(ctx)
    event = parse_payload(BankRef, data)
    if not banks.delete_bank(room_id, event.bank_id):
        raise NotFound('not_found', bankId=event.bank_id)
    return {'ok': True, 'bankId': event.bank_id}


@socket_operation('import_bank_ack')
def handle_import_bank_text(ctx, data):
    room_id = _require_current_room(ctx)
    event = parse_payload(ImportBankEvent, data)
    if not event.content.strip():
        raise BadRequest('empty_file')
    questions = normalizer.normalize_bank_text(event.content, event.filename)
    if not questions:
        raise ParseError('parse_error')
    banks.save_bank(room_id, event.bank_id, event.bank_name, questions)
    return {'ok': True, 'roomId': room_id, 'bankId': event.bank_id, 'count': len(questions)}


@socket_operation('room_exam_ack')
def handle_start_room_exam(ctx, data):
    event = parse_payload(StartRoomExamEvent, data)
    exam = sessions.start_session(
        event.room_id, event.bank_id, ctx.identity, event.question_count, event.time_limit_minutes
    )
    return {'ok': True, 'roomId': event.room_id, 'bankId': event.bank_id, 'questionCount': exam['questionCount']}


@socket_operation('delete_room_ack')
def handle_delete_room(ctx, data):
    event = parse_payload(DeleteRoomEvent, data)
    deleted = rooms.delete_room(event.room_id, ctx.identity, event.dev_password)
    for member in _sid_to_ctx.values():
        if member.current_room == event.room_id:
            member.current_room = None
    return {'ok': True, 'roomId': event.room_id, 'deleted': deleted}


def register_socketio_handlers() -> None:
    """Register Socket.IO event handlers on the '/ws' namespace."""
    socketio.on_event('connect', handle_connect, namespace=NAMESPACE)
    socketio.on_event('disconnect', handle_disconnect, namespace=NAMESPACE)
    socketio.on_event('login', handle_login, namespace=NAMESPACE)
    socketio.on_event('create_room', handle_create_room, namespace=NAMESPACE)
    socketio.on_event('join_room', handle_join_room, namespace=NAMESPACE)
    socketio.on_event('list_banks', handle_list_banks, namespace=NAMESPACE)
    socketio.on_event('load_bank_questions', handle_load_bank_questions, namespace=NAMESPACE)
    socketio.on_event('delete_bank', handle_delete_bank, namespace=NAMESPACE)
    socketio.on_event('import_bank_text', handle_import_bank_text, namespace=NAMESPACE)
    socketio.on_event('start_room_exam', handle_start_room_exam, namespace=NAMESPACE)
    socketio.on_event('delete_room', handle_delete_room, namespace=NAMESPACE)
