import re
from datetime import datetime, timedelta, timezone

import jwt
from flask import current_app
from sqlalchemy.exc import IntegrityError

from flashbattle import bcrypt, db
from flashbattle.errors import BadRequest, Conflict, Forbidden, NotFound
from flashbattle.models import User

USER_ID_PATTERN = re.compile(r'^[a-zA-Z0-9_-]{3,20}$')
TOKEN_ALGORITHM = 'HS256'
# bcrypt only accepts this many bytes of input
PASSWORD_MAX_BYTES = 72


def password_fits(password: str) -> bool:
    return len(password.encode('utf-8')) <= PASSWORD_MAX_BYTES


def hash_password(password: str) -> str:
    return bcrypt.generate_password_hash(password).decode('utf-8')


def check_password(user: User, password: str) -> bool:
    if not password or not password_fits(password):
        return False
    return bcrypt.check_password_hash(user.password_hash, password)


def register(user_id: str, password: str, name: str = None) -> User:
    if not USER_ID_PATTERN.match(user_id or ''):
        raise BadRequest('bad_userId_format')
    if db.session.get(User, user_id) is not None:
        raise Conflict('user_exists')
    if not password or not password_fits(password):
        raise BadRequest(fields=['password'])
    user = User(id=user_id, name=(name or '').strip() or user_id, password_hash=hash_password(password))
    db.session.add(user)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise Conflict('user_exists')
    current_app.logger.info(f"[register] user={user_id}")
    return user


def authenticate(user_id: str, password: str) -> User:
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFound('user_not_found')
    if not check_password(user, password):
        raise Forbidden('wrong_password')
    return user


def issue_token(user: User) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        'sub': user.id,
        'iat': now,
        'exp': now + timedelta(days=current_app.config.get('TOKEN_TTL_DAYS', 7)),
    }
    return jwt.encode(payload, current_app.config['SECRET_KEY'], algorithm=TOKEN_ALGORITHM)


def user_from_token(token: str):
    """Resolve a bearer token to its user, or None if invalid or expired."""
    try:
        claims = jwt.decode(token, current_app.config['SECRET_KEY'], algorithms=[TOKEN_ALGORITHM])
    except jwt.PyJWTError as exc:
        current_app.logger.info(f"[token] rejected: {exc}")
        return None
    subject = claims.get('sub')
    if not subject:
        return None
    return db.session.get(User, subject)


def is_registered(user_id: str) -> bool:
    return bool(user_id) and db.session.get(User, user_id) is not None


def is_root_credential(user_id: str, password: str) -> bool:
    """True when user_id names a root account and password is its password."""
    user = db.session.get(User, user_id) if user_id else None
    return bool(user and user.is_root and check_password(user, password))


def set_role(user_id: str, role: str) -> User:
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFound('user_not_found')
    user.role = role
    db.session.add(user)
    db.session.commit()
    current_app.logger.info(f"[set_role] user={user_id} role={role}")
    return user
