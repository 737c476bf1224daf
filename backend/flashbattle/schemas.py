"""Request payloads for socket events and HTTP bodies.

Every inbound payload is validated once, here, and handlers receive a
typed object. Field aliases match the camelCase wire names.
"""
import math
from typing import Annotated, Any, List, Optional

from pydantic import (
    AfterValidator,
    BaseModel,
    ConfigDict,
    Field,
    StringConstraints,
    ValidationError,
    field_validator,
)

from flashbattle.errors import BadRequest
from flashbattle.services.accounts import PASSWORD_MAX_BYTES

Identifier = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=128)]
LEADERBOARD_MODES = ('last', 'best', 'avg')


def _fits_bcrypt(value: str) -> str:
    if len(value.encode('utf-8')) > PASSWORD_MAX_BYTES:
        raise ValueError(f'password must be at most {PASSWORD_MAX_BYTES} bytes')
    return value


Password = Annotated[str, StringConstraints(min_length=1), AfterValidator(_fits_bcrypt)]


def coerce_number(value: Any):
    """Loose numeric coercion: numbers pass, numeric strings parse, anything else is 0."""
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (int, float)):
        return value if math.isfinite(value) else 0
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return 0
        try:
            number = float(text)
        except ValueError:
            return 0
        if not math.isfinite(number):
            return 0
        return int(number) if number.is_integer() else number
    return 0


class Payload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra='ignore')


def parse_payload(model, data):
    try:
        return model.model_validate(data if isinstance(data, dict) else {})
    except ValidationError as err:
        fields = sorted({'.'.join(str(p) for p in e['loc']) for e in err.errors()})
        raise BadRequest(fields=fields)


# ---- Socket events ----

class LoginEvent(Payload):
    name: Optional[str] = None
    user_id: Optional[str] = Field(default=None, alias='userId')
    token: Optional[str] = None


class RoomRef(Payload):
    room_id: Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=64)] = Field(alias='roomId')


class BankRef(Payload):
    bank_id: Identifier = Field(alias='bankId')


class ImportBankEvent(BankRef):
    bank_name: Optional[str] = Field(default=None, alias='bankName')
    filename: Optional[str] = None
    content: str = ''


class StartRoomExamEvent(RoomRef):
    bank_id: Identifier = Field(alias='bankId')
    question_count: Optional[int] = Field(default=None, alias='questionCount')
    time_limit_minutes: Optional[float] = Field(default=None, alias='timeLimitMinutes')

    @field_validator('question_count', mode='before')
    @classmethod
    def _count(cls, value):
        if value is None:
            return None
        return int(coerce_number(value))

    @field_validator('time_limit_minutes', mode='before')
    @classmethod
    def _minutes(cls, value):
        if value is None:
            return None
        return coerce_number(value)


class DeleteRoomEvent(RoomRef):
    dev_password: Optional[str] = Field(default=None, alias='devPassword')


# ---- HTTP bodies ----

class RegisterRequest(Payload):
    user_id: str = Field(alias='userId')
    password: Password
    name: Optional[str] = Field(default=None, max_length=64)


class CredentialsRequest(Payload):
    user_id: str = Field(alias='userId')
    password: Password


class ExamResultRequest(Payload):
    player_id: Identifier = Field(alias='playerId')
    name: Optional[str] = None
    mode: Optional[str] = Field(default=None, max_length=32)
    room_id: Optional[str] = Field(default=None, alias='roomId', max_length=64)
    bank_id: Optional[str] = Field(default=None, alias='bankId', max_length=128)
    score: float = 0
    total: float = 0
    correct_count: float = Field(default=0, alias='correctCount')
    wrong_questions: Optional[List[Any]] = Field(default=None, alias='wrongQuestions')

    @field_validator('score', 'total', 'correct_count', mode='before')
    @classmethod
    def _numeric(cls, value):
        return coerce_number(value)

    @field_validator('wrong_questions', mode='before')
    @classmethod
    def _list_only(cls, value):
        return value if isinstance(value, list) else None


class LeaderboardQuery(Payload):
    mode: str = Field(default='last', alias='type')
    page: int = 1
    page_size: int = Field(default=10, alias='pageSize')

    @field_validator('mode', mode='before')
    @classmethod
    def _mode(cls, value):
        return value if value in LEADERBOARD_MODES else 'last'

    @field_validator('page', mode='before')
    @classmethod
    def _page(cls, value):
        return max(1, int(coerce_number(value if value is not None else 1)))

    @field_validator('page_size', mode='before')
    @classmethod
    def _page_size(cls, value):
        size = int(coerce_number(value if value is not None else 10))
        return size if size > 0 else 10
