from __future__ import annotations


class AccessControlError(Exception):
    """Base class; `status_code` is what the HTTP boundary answers with."""

    status_code = 400

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFoundError(AccessControlError, LookupError):
    status_code = 404


class ForbiddenError(AccessControlError):
    status_code = 403

    def __init__(self, message: str, blocked_by: str | None = None) -> None:
        super().__init__(message)
        self.blocked_by = blocked_by


class ValidationError(AccessControlError, ValueError):
    status_code = 400
