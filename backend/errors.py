# errors.py — Domain error taxonomy for Taskboard
# Every failure the core raises maps to one stable HTTP status:
#   InvalidInput → 400, Forbidden → 403, NotFound → 404,
#   Conflict → 409, Internal → 500
from typing import Any, Dict, List, Optional


class TaskboardError(Exception):
    """Base typed error raised by the domain core.

    `message` is human readable, `code` is stable for clients and
    `errors` carries per-field detail for invalid input.
    """

    status_code = 500
    code = "internal.error"

    def __init__(
        self,
        message: str = "Internal server error",
        *,
        errors: Optional[List[Dict[str, Any]]] = None,
        code: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.errors = list(errors or [])
        if code:
            self.code = code

    def to_response(self, request_id: Optional[str] = None) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "success": False,
            "message": self.message,
            "code": self.code,
        }
        if self.errors:
            payload["errors"] = self.errors
        if request_id:
            payload["request_id"] = request_id
        return payload


class InvalidInputError(TaskboardError):
    status_code = 400
    code = "request.invalid_input"

    def __init__(self, message: str = "Validation errors", **kwargs):
        super().__init__(message, **kwargs)


class ForbiddenError(TaskboardError):
    status_code = 403
    code = "auth.forbidden"

    def __init__(self, message: str = "Access denied", **kwargs):
        super().__init__(message, **kwargs)


class NotFoundError(TaskboardError):
    status_code = 404
    code = "resource.not_found"

    def __init__(self, message: str = "Not found", **kwargs):
        super().__init__(message, **kwargs)


class ConflictError(TaskboardError):
    status_code = 409
    code = "request.conflict"

    def __init__(self, message: str = "Conflict", **kwargs):
        super().__init__(message, **kwargs)


class InternalError(TaskboardError):
    status_code = 500
    code = "internal.error"


def field_error(field: str, message: str) -> Dict[str, str]:
    return {"field": field, "message": message}
