from flashbattle import db
from flask_login import UserMixin
import json
import time


def now_ms() -> int:
    return int(time.time() * 1000)


def as_number(value):
    """Render stored floats without a trailing .0 when they are whole."""
    if value is None:
        return 0
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


def load_json(raw, default):
    if not raw:
        return default
    try:
        return json.loads(raw)
    except (TypeError, ValueError):
        return default


class User(UserMixin, db.Model):
    __tablename__ = 'user'
    id = db.Column(db.String(20), primary_key=True)
    name = db.Column(db.String(64), nullable=False)
    password_hash = db.Column(db.String(128), nullable=False)
    role = db.Column(db.String(16), nullable=False, default='player')
    created_at = db.Column(db.BigInteger, nullable=False, default=now_ms)

    @property
    def is_root(self):
        return self.role == 'root'

    def to_dict(self):
        return {
            'userId': self.id,
            'name': self.name,
            'role': self.role,
            'createdAt': self.created_at,
        }


class UserStats(db.Model):
    __tablename__ = 'user_stats'
    user_id = db.Column(db.String(128), primary_key=True)
    name = db.Column(db.String(64), nullable=True)
    last_score = db.Column(db.Float, nullable=False, default=0)
    total_questions = db.Column(db.Float, nullable=False, default=0)
    last_correct = db.Column(db.Float, nullable=False, default=0)
    attempt_count = db.Column(db.Integer, nullable=False, default=0)
    best_score = db.Column(db.Float, nullable=False, default=0)
    total_score_sum = db.Column(db.Float, nullable=False, default=0)
    avg_score = db.Column(db.Float, nullable=False, default=0)
    mode = db.Column(db.String(32), nullable=True)
    last_room_id = db.Column(db.String(64), nullable=True)
    bank_id = db.Column(db.String(128), nullable=True)
    updated_at = db.Column(db.BigInteger, nullable=True)

    def to_dict(self):
        return {
            'lastScore': as_number(self.last_score),
            'totalQuestions': as_number(self.total_questions),
            'lastCorrect': as_number(self.last_correct),
            'attemptCount': self.attempt_count or 0,
            'bestScore': as_number(self.best_score),
            'totalScoreSum': as_number(self.total_score_sum),
            'avgScore': as_number(self.avg_score),
            'mode': self.mode,
            'lastRoomId': self.last_room_id,
            'bankId': self.bank_id,
            'updatedAt': self.updated_at,
        }


class HistoryEntry(db.Model):
    __tablename__ = 'history_entry'
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(128), nullable=False, index=True)
    score = db.Column(db.Float, nullable=False, default=0)
    total = db.Column(db.Float, nullable=False, default=0)
    correct_count = db.Column(db.Float, nullable=False, default=0)
    wrong_count = db.Column(db.Integer, nullable=False, default=0)
    mode = db.Column(db.String(32), nullable=True)
    room_id = db.Column(db.String(64), nullable=True)
    bank_id = db.Column(db.String(128), nullable=True)
    created_at = db.Column(db.BigInteger, nullable=False, default=now_ms)

    def to_dict(self):
        return {
            'score': as_number(self.score),
            'total': as_number(self.total),
            'correctCount': as_number(self.correct_count),
            'wrongCount': self.wrong_count,
            'mode': self.mode,
            'roomId': self.room_id,
            'bankId': self.bank_id,
            'createdAt': self.created_at,
        }


class WrongQuestion(db.Model):
    __tablename__ = 'wrong_question'
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(128), nullable=False, index=True)
    topic = db.Column(db.String(128), nullable=False, default='')
    tag = db.Column(db.String(128), nullable=False, default='')
    text = db.Column(db.Text, nullable=False, default='')
    options = db.Column(db.Text, nullable=True)  # JSON-encoded list of strings
    answers = db.Column(db.Text, nullable=True)  # JSON-encoded list of option indices
    explanation = db.Column(db.Text, nullable=False, default='')
    created_at = db.Column(db.BigInteger, nullable=False, default=now_ms)

    def to_dict(self):
        return {
            'topic': self.topic,
            'tag': self.tag,
            'text': self.text,
            'options': load_json(self.options, []),
            'answers': load_json(self.answers, []),
            'explanation': self.explanation,
        }


class LeaderboardEntry(db.Model):
    __tablename__ = 'leaderboard_entry'
    mode = db.Column(db.String(8), primary_key=True)
    user_id = db.Column(db.String(128), primary_key=True)
    score = db.Column(db.Float, nullable=False, default=0)

    __table_args__ = (db.Index('ix_leaderboard_mode_score', 'mode', 'score'),)


class Room(db.Model):
    __tablename__ = 'room'
    id = db.Column(db.String(64), primary_key=True)
    host_id = db.Column(db.String(128), nullable=True)
    created_at = db.Column(db.BigInteger, nullable=False, default=now_ms)

    def to_dict(self):
        return {
            'roomId': self.id,
            'hostId': self.host_id,
            'createdAt': self.created_at,
        }


class Bank(db.Model):
    __tablename__ = 'bank'
    room_id = db.Column(db.String(64), primary_key=True)
    bank_id = db.Column(db.String(128), primary_key=True)
    # JSON-encoded {id, name, questions}; may be a bare question list in older rows
    payload = db.Column(db.Text, nullable=False)


class ExamSession(db.Model):
    __tablename__ = 'exam_session'
    room_id = db.Column(db.String(64), primary_key=True)
    bank_id = db.Column(db.String(128), nullable=False)
    question_count = db.Column(db.Integer, nullable=False)
    time_limit_minutes = db.Column(db.Float, nullable=True)
    created_at = db.Column(db.BigInteger, nullable=False, default=now_ms)

    def to_dict(self):
        return {
            'roomId': self.room_id,
            'bankId': self.bank_id,
            'questionCount': self.question_count,
            'timeLimitMinutes': as_number(self.time_limit_minutes) if self.time_limit_minutes is not None else None,
            'createdAt': self.created_at,
        }
