"""Error taxonomy shared by the socket and HTTP surfaces.

Services raise a ``ServiceError`` subclass; the transport layer turns it
into an ``{ok: False, error: <code>}`` acknowledgment (socket) or JSON
response with the status of the error kind (HTTP).
"""
from typing import Any, Dict


class ServiceError(Exception):
    kind = 'server_error'
    status = 500

    def __init__(self, code: str = None, **extra: Any):
        self.code = code or self.kind
        self.extra = extra
        super().__init__(self.code)

    def to_dict(self) -> Dict[str, Any]:
        payload = {'ok': False, 'error': self.code}
        payload.update(self.extra)
        return payload


class BadRequest(ServiceError):
    kind = 'bad_request'
    status = 400


class NotFound(ServiceError):
    kind = 'not_found'
    status = 404


class Conflict(ServiceError):
    kind = 'conflict'
    status = 409


class Forbidden(ServiceError):
    kind = 'forbidden'
    status = 403


class ParseError(ServiceError):
    kind = 'parse_error'
    status = 400
