from __future__ import annotations

from typing import Any, Dict, Optional


class AccountsError(Exception):
    """Base error carrying a stable code and the HTTP status it maps to.

    ``message`` is what the caller sees. ``extra`` holds additional payload
    fields (e.g. ``current_credits``) merged into the error response body.
    """

    status_code: int = 500
    default_code: str = "INTERNAL_ERROR"
    default_message: str = "Internal server error"

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        code: Optional[str] = None,
        status_code: Optional[int] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message or self.default_message
        self.code = code or self.default_code
        if status_code is not None:
            self.status_code = status_code
        self.extra = dict(extra or {})
        super().__init__(f"{self.code}: {self.message}")

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"code": self.code, "message": self.message}
        out.update(self.extra)
        return out


class ValidationError(AccountsError):
    status_code = 400
    default_code = "VALIDATION_ERROR"
    default_message = "Invalid request"


class ConflictError(AccountsError):
    status_code = 409
    default_code = "EMAIL_ALREADY_EXISTS"
    default_message = "Email already registered"


class AuthError(AccountsError):
    status_code = 401
    default_code = "INVALID_CREDENTIALS"
    default_message = "Invalid credentials"


class NotFoundError(AccountsError):
    status_code = 404
    default_code = "NOT_FOUND"
    default_message = "Not found"


class InsufficientCreditsError(AccountsError):
    status_code = 400
    default_code = "INSUFFICIENT_CREDITS"

    def __init__(self, current_credits: int, requested: int) -> None:
        self.current_credits = current_credits
        self.requested = requested
        super().__init__(
            f"Insufficient credits: have {current_credits}, need {requested}",
            extra={"current_credits": current_credits},
        )


class InfrastructureError(AccountsError):
    """A store was unreachable, timed out or failed mid-operation."""

    status_code = 503
    default_code = "STORE_UNAVAILABLE"
    default_message = "Service temporarily unavailable"


class ConsistencyError(AccountsError):
    """Cross-store state needs manual reconciliation.

    Surfaced to callers as a plain 500; the log record carries the details.
    """

    status_code = 500
    default_code = "INTERNAL_ERROR"


class DuplicateAccountError(ValueError):
    """Raised by credential stores when the email is already taken."""


class LedgerAccountMissing(LookupError):
    """Raised by the ledger store when no mirror row exists for an account."""
