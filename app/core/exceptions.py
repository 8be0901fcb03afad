# app/core/exceptions.py
"""
Business errors raised by the services layer.

Routers never translate these by hand: ``main.py`` registers one handler for
``ProcurementError`` that turns ``status_code``/``detail`` into the JSON error
body, and a separate handler for storage failures.
"""


class ProcurementError(Exception):
    status_code = 400
    kind = "error"

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class NotFoundError(ProcurementError):
    status_code = 404
    kind = "not_found"


class ForbiddenError(ProcurementError):
    status_code = 403
    kind = "forbidden"


class InvalidStateError(ProcurementError):
    """A transition precondition does not hold (wrong status, chat closed, ...)."""
    status_code = 400
    kind = "invalid_state"


class ValidationError(ProcurementError):
    status_code = 422
    kind = "validation_error"


class AuthenticationError(ProcurementError):
    status_code = 401
    kind = "unauthenticated"
