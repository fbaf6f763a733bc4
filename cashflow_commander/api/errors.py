"""Errors raised by the service layer.

Each error carries the HTTP status the web layer answers with, so routes never
translate them by hand.
"""


class CashflowError(Exception):
    """Base class for expected, user-facing failures."""

    status_code = 400
    default_message = "Request failed"

    def __init__(self, message: str = None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message


class NotAuthenticatedError(CashflowError):
    """No caller identity could be resolved."""

    status_code = 401
    default_message = "Not authenticated"


class NotFoundError(CashflowError):
    """The record does not exist or belongs to someone else."""

    status_code = 404
    default_message = "Not found"


class InvalidFieldError(CashflowError):
    """A field violates its constraints."""

    status_code = 400
    default_message = "Invalid input"


class ForbiddenError(CashflowError):
    """The caller lacks the capability for this operation."""

    status_code = 403
    default_message = "Not allowed"


class ConflictError(CashflowError):
    """The write would duplicate an existing record."""

    status_code = 409
    default_message = "Already exists"
