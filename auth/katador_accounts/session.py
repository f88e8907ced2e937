from __future__ import annotations

import logging
from typing import Any, Dict

from sqlalchemy.exc import SQLAlchemyError

from .config import Settings
from .errors import AuthError, InfrastructureError, ValidationError
from .ledger import LedgerStore
from .repo import CredentialStore
from .security import create_session_token, dummy_password_hash, verify_password

logger = logging.getLogger(__name__)

INACTIVE_STATUSES = ("suspendido", "baneado")


def account_summary(acc: Dict[str, Any]) -> Dict[str, Any]:
    """Redacted view returned next to a token."""
    return {
        "id": acc.get("id"),
        "alias": acc.get("alias"),
        "email": acc.get("email"),
        "role": acc.get("role"),
    }


class SessionIssuer:
    """Validates credentials and signs session tokens."""

    def __init__(self, credentials: CredentialStore, ledger: LedgerStore, settings: Settings) -> None:
        self.credentials = credentials
        self.ledger = ledger
        self.settings = settings

    def issue(self, account: Dict[str, Any]) -> str:
        return create_session_token(
            account,
            self.settings.secret_key,
            self.settings.algorithm,
            self.settings.access_expire_minutes,
        )

    def _ledger_status(self, account_id: str):
        # A missing mirror or an unreachable ledger never blocks login.
        try:
            mirror = self.ledger.find_mirror(account_id)
        except SQLAlchemyError as e:
            logger.warning("Ledger unavailable during login for %s; skipping status check: %s", account_id, e)
            return None
        return mirror.get("status") if mirror else None

    def login(self, email: Any, password: Any) -> Dict[str, Any]:
        if not isinstance(email, str) or not email.strip() or not isinstance(password, str) or not password:
            raise ValidationError("Enter email and password", code="MISSING_FIELDS")
        try:
            creds = self.credentials.get_account_credentials(email)
        except Exception as e:
            logger.exception("Credential lookup failed during login")
            raise InfrastructureError() from e
        # Same error for unknown email and wrong password.
        stored_hash = creds.get("password_hash", "") if creds else dummy_password_hash()
        if not verify_password(password, stored_hash) or not creds:
            raise AuthError("Invalid credentials (wrong email or password)", code="INVALID_CREDENTIALS")
        status = self._ledger_status(creds["id"])
        if status in INACTIVE_STATUSES:
            raise AuthError(f"Account is {status}", code="ACCOUNT_NOT_ACTIVE", status_code=403)
        token = self.issue(creds)
        logger.info("Login for account %s", creds["id"])
        return {"token": token, "account": account_summary(creds)}
