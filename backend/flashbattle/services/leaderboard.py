from typing import Any, Dict, List

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from flashbattle import db
from flashbattle.models import LeaderboardEntry, User, UserStats, as_number

MODES = ('last', 'best', 'avg')


def resolve_mode(mode: str) -> str:
    return mode if mode in MODES else 'last'


def set_score(mode: str, user_id: str, score: float) -> None:
    """Stage a score for a user; one entry per (mode, user). Caller commits."""
    entry = db.session.get(LeaderboardEntry, (mode, user_id))
    if entry is None:
        entry = LeaderboardEntry(mode=mode, user_id=user_id)
    entry.score = score
    db.session.add(entry)


def _ranked(mode: str):
    # Ties fall back to reverse user id order, the way a sorted set reads descending
    return LeaderboardEntry.query.filter_by(mode=mode).order_by(
        LeaderboardEntry.score.desc(), LeaderboardEntry.user_id.desc()
    )


def top(mode: str, n: int) -> List[LeaderboardEntry]:
    return _ranked(resolve_mode(mode)).limit(n).all()


def flattened_top(mode: str, n: int) -> List[Any]:
    """Top entries as [userId, score, userId, score, ...]."""
    flat = []
    for entry in top(mode, n):
        flat.extend([entry.user_id, as_number(entry.score)])
    return flat


def resolve_names(user_ids: List[str]) -> Dict[str, str]:
    """Display names by user id; accounts win over the last submitted name.

    Best effort: a lookup failure leaves the names unresolved.
    """
    if not user_ids:
        return {}
    try:
        names = {
            stats.user_id: stats.name
            for stats in UserStats.query.filter(UserStats.user_id.in_(user_ids)).all()
            if stats.name
        }
        for user in User.query.filter(User.id.in_(user_ids)).all():
            names[user.id] = user.name
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception(f"[leaderboard] name lookup failed for {len(user_ids)} entries")
        return {}
    return names


def query(mode: str, page: int = 1, page_size: int = 10) -> Dict[str, Any]:
    mode = resolve_mode(mode)
    page = max(1, int(page or 1))
    max_size = int(current_app.config.get('LEADERBOARD_PAGE_SIZE_MAX', 50))
    page_size = min(max(1, int(page_size or 1)), max_size)

    total = LeaderboardEntry.query.filter_by(mode=mode).count()
    rows = _ranked(mode).offset((page - 1) * page_size).limit(page_size).all()
    names = resolve_names([row.user_id for row in rows])
    entries = [
        {'userId': row.user_id, 'name': names.get(row.user_id), 'score': as_number(row.score)}
        for row in rows
    ]
    return {
        'type': mode,
        'page': page,
        'pageSize': page_size,
        'total': total,
        'hasNext': page * page_size < total,
        'entries': entries,
    }
