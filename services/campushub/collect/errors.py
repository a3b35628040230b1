"""Error taxonomy shared by the collection services and views.

Services raise these; `views._shared.collect_endpoint` renders them as
`{"error": code, "message": text, "details": ...}` with the kind's status.
"""

from typing import Any


class CollectError(Exception):
    status = 500
    code = "internal_error"

    def __init__(self, message: str = "", details: Any = None):
        super().__init__(message)
        self.message = message or self.code
        self.details = details

    def as_payload(self) -> dict:
        payload = {"error": self.code, "message": self.message}
        if self.details is not None:
            payload["details"] = self.details
        return payload


class BadRequest(CollectError):
    status = 400
    code = "bad_request"


class Forbidden(CollectError):
    status = 403
    code = "forbidden"


class NotFound(CollectError):
    status = 404
    code = "not_found"


class Conflict(CollectError):
    status = 409
    code = "conflict"


class Internal(CollectError):
    status = 500
    code = "internal_error"


__all__ = [
    "BadRequest",
    "CollectError",
    "Conflict",
    "Forbidden",
    "Internal",
    "NotFound",
]
