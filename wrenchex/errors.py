"""Typed errors raised by the service layer and rendered by the app."""
from __future__ import annotations


class AppError(Exception):
    status_code = 500
    code = "internal_error"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.code)
        self.message = message or self.code

    def to_dict(self) -> dict[str, object]:
        return {"success": False, "error": {"code": self.code, "message": self.message}}


class ValidationError(AppError):
    """Malformed or out-of-range input; carries every violation found."""

    status_code = 400
    code = "invalid_payload"

    def __init__(self, errors: list[str] | str) -> None:
        if isinstance(errors, str):
            errors = [errors]
        self.errors = list(errors)
        super().__init__("; ".join(self.errors))

    def to_dict(self) -> dict[str, object]:
        body = super().to_dict()
        body["error"]["details"] = self.errors
        return body


class NotFoundError(AppError):
    status_code = 404
    code = "not_found"


class AuthenticationError(AppError):
    status_code = 401
    code = "unauthorized"


class AuthorizationError(AppError):
    status_code = 403
    code = "forbidden"


class ConflictError(AppError):
    """A business rule was violated (overlap, duplicate name, resource in use)."""

    status_code = 400
    code = "conflict"


class InvalidStatusTransition(ConflictError):
    code = "invalid_transition"

    def __init__(self, current: str, requested: str) -> None:
        self.current = current
        self.requested = requested
        super().__init__(f"Cannot change status from {current} to {requested}")
