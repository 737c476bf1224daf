import json
import math
from typing import Any, Dict, List

from flask import current_app
from sqlalchemy.exc import IntegrityError

from flashbattle import db
from flashbattle.broadcast import emit_to_all
from flashbattle.models import HistoryEntry, UserStats, WrongQuestion, now_ms
from flashbattle.services import leaderboard


# Width of the wrong-book topic and tag columns
LABEL_MAX = 128


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _wrong_question_row(user_id: str, item: Any):
    if not isinstance(item, dict):
        return None
    options = item.get('options') if isinstance(item.get('options'), list) else []
    answers = item.get('answers') if isinstance(item.get('answers'), list) else []
    return WrongQuestion(
        user_id=user_id,
        topic=str(item.get('topic') or '')[:LABEL_MAX],
        tag=str(item.get('tag') or '')[:LABEL_MAX],
        text=str(item.get('text') or ''),
        options=json.dumps(options),
        answers=json.dumps(answers),
        explanation=str(item.get('explanation') or ''),
    )


def _locked_stats(player_id: str):
    return UserStats.query.filter_by(user_id=player_id).with_for_update().first()


def submit_result(player_id: str, name: str = None, mode: str = None, room_id: str = None,
                  bank_id: str = None, score: float = 0, total: float = 0, correct_count: float = 0,
                  wrong_questions: List[Any] = None) -> UserStats:
    """Fold one exam result into the player's stats, history, wrong-book and rankings.

    attempt_count, best_score and total_score_sum only ever grow; avg_score is
    total_score_sum / attempt_count rounded half-up. History keeps the newest
    HISTORY_LIMIT entries. All writes share one transaction; afterwards the top
    of the `last` ranking is pushed to every connected client.

    A player's first result has no stats row to lock, so two concurrent first
    results race on the insert. The loser rolls back and is applied once more
    against the row the winner created.
    """
    for attempt in range(2):
        try:
            stats, wrong_count = _stage_result(
                player_id, name, mode, room_id, bank_id, score, total, correct_count, wrong_questions
            )
            db.session.commit()
            break
        except IntegrityError:
            db.session.rollback()
            if attempt:
                raise
            current_app.logger.info(f"[submit_result] player={player_id} lost first-insert race, retrying")
    current_app.logger.info(
        f"[submit_result] player={player_id} score={score} attempts={stats.attempt_count} "
        f"best={stats.best_score} avg={stats.avg_score} wrong={wrong_count}"
    )

    size = int(current_app.config.get('LEADERBOARD_BROADCAST_SIZE', 10))
    emit_to_all('leaderboard_update', leaderboard.flattened_top('last', size))
    return stats


def _stage_result(player_id, name, mode, room_id, bank_id, score, total, correct_count, wrong_questions):
    stats = _locked_stats(player_id)
    if stats is None:
        stats = UserStats(user_id=player_id, attempt_count=0, best_score=0, total_score_sum=0)

    stats.attempt_count = (stats.attempt_count or 0) + 1
    stats.best_score = max(stats.best_score or 0, score)
    stats.total_score_sum = (stats.total_score_sum or 0) + score
    stats.avg_score = round_half_up(stats.total_score_sum / stats.attempt_count)
    stats.last_score = score
    stats.total_questions = total
    stats.last_correct = correct_count
    stats.mode = mode
    stats.last_room_id = room_id
    stats.bank_id = bank_id
    stats.updated_at = now_ms()
    if name:
        stats.name = name[:64]
    db.session.add(stats)

    wrong_rows = [row for row in (_wrong_question_row(player_id, q) for q in wrong_questions or []) if row]
    db.session.add_all(wrong_rows)

    db.session.add(HistoryEntry(
        user_id=player_id,
        score=score,
        total=total,
        correct_count=correct_count,
        wrong_count=len(wrong_rows),
        mode=mode,
        room_id=room_id,
        bank_id=bank_id,
    ))
    db.session.flush()
    _trim_history(player_id, int(current_app.config.get('HISTORY_LIMIT', 50)))

    leaderboard.set_score('last', player_id, score)
    leaderboard.set_score('best', player_id, stats.best_score)
    leaderboard.set_score('avg', player_id, stats.avg_score)
    return stats, len(wrong_rows)


def _trim_history(user_id: str, limit: int) -> None:
    keep = [
        row.id for row in db.session.query(HistoryEntry.id)
        .filter(HistoryEntry.user_id == user_id).order_by(HistoryEntry.id.desc()).limit(limit)
    ]
    HistoryEntry.query.filter(
        HistoryEntry.user_id == user_id, HistoryEntry.id.notin_(keep)
    ).delete(synchronize_session=False)


def get_stats(user_id: str) -> Dict[str, Any]:
    stats = db.session.get(UserStats, user_id)
    return stats.to_dict() if stats else {}


def get_history(user_id: str) -> List[Dict[str, Any]]:
    limit = int(current_app.config.get('HISTORY_LIMIT', 50))
    rows = HistoryEntry.query.filter_by(user_id=user_id).order_by(HistoryEntry.id.desc()).limit(limit).all()
    return [row.to_dict() for row in rows]


def get_wrong_questions(user_id: str, topic: str = None, tag: str = None) -> List[Dict[str, Any]]:
    q = WrongQuestion.query.filter_by(user_id=user_id)
    if topic:
        q = q.filter_by(topic=topic)
    if tag:
        q = q.filter_by(tag=tag)
    return [row.to_dict() for row in q.order_by(WrongQuestion.id).all()]
