import random
from typing import Any, Dict, List

from flask import current_app

from flashbattle import db
from flashbattle.broadcast import emit_to_room
from flashbattle.errors import Forbidden, NotFound
from flashbattle.models import ExamSession, now_ms
from flashbattle.services import banks, rooms


def shuffled_indices(n: int, rng=random) -> List[int]:
    """Uniform permutation of range(n) (Fisher-Yates, last index down to 1)."""
    indices = list(range(n))
    for i in range(n - 1, 0, -1):
        j = rng.randint(0, i)
        indices[i], indices[j] = indices[j], indices[i]
    return indices


def pick_questions(questions: List[Dict[str, Any]], count: int = None, rng=random) -> List[Dict[str, Any]]:
    """Random subset of at most count questions; count <= 0 or None means all."""
    total = len(questions)
    limit = total if not count or count <= 0 else min(count, total)
    return [questions[i] for i in shuffled_indices(total, rng)[:limit]]


def start_session(room_id: str, bank_id: str, requester_id: str,
                  question_count: int = None, time_limit_minutes: float = None,
                  rng=random) -> Dict[str, Any]:
    """Launch an exam in a room and broadcast the picked questions to its members.

    Only the host may launch; a room without a recorded host accepts anyone.
    The new descriptor replaces the room's previous active exam.
    """
    room = rooms.require_room(room_id)
    if room.host_id and room.host_id != requester_id:
        raise Forbidden('not_host')

    all_questions = banks.load_questions(room_id, bank_id)
    if not all_questions:
        raise NotFound('empty_bank', bankId=bank_id)

    picked = pick_questions(all_questions, question_count, rng)

    exam = db.session.get(ExamSession, room_id) or ExamSession(room_id=room_id)
    exam.bank_id = bank_id
    exam.question_count = len(picked)
    exam.time_limit_minutes = time_limit_minutes
    exam.created_at = now_ms()
    db.session.add(exam)
    db.session.commit()
    current_app.logger.info(
        f"[start_session] room={room_id} bank={bank_id} picked={len(picked)}/{len(all_questions)} limit={time_limit_minutes}"
    )

    descriptor = exam.to_dict()
    emit_to_room(room_id, 'room_event', {
        'type': 'session_start',
        'roomId': room_id,
        'bankId': bank_id,
        'questionCount': descriptor['questionCount'],
        'timeLimitMinutes': descriptor['timeLimitMinutes'],
        'questions': picked,
    })
    descriptor['questions'] = picked
    return descriptor
