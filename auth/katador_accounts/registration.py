from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from .config import Settings
from .errors import ConflictError, ConsistencyError, DuplicateAccountError, InfrastructureError
from .ledger import LedgerStore
from .policy import validate_registration
from .repo import CredentialStore
from .security import hash_password
from .session import SessionIssuer, account_summary

logger = logging.getLogger(__name__)


class RegistrationOrchestrator:
    """Creates the identity, then provisions its ledger rows.

    Identity creation always precedes provisioning. When provisioning fails
    the identity is deleted again; if that delete fails too the account is
    left for manual reconciliation and a ConsistencyError is raised.
    """

    def __init__(
        self,
        credentials: CredentialStore,
        ledger: LedgerStore,
        settings: Settings,
        issuer: Optional[SessionIssuer] = None,
    ) -> None:
        self.credentials = credentials
        self.ledger = ledger
        self.settings = settings
        self.issuer = issuer or SessionIssuer(credentials, ledger, settings)

    def register(
        self,
        email: Any,
        password: Any,
        alias: Any,
        role: Any,
        phone: Any = None,
    ) -> Dict[str, Any]:
        fields = validate_registration(
            email=email, password=password, alias=alias, role=role, phone=phone, settings=self.settings
        )

        try:
            existing = self.credentials.find_account_by_email(fields["email"])
        except Exception as e:
            logger.exception("Credential lookup failed during registration")
            raise InfrastructureError() from e
        if existing:
            raise ConflictError("Email already registered", code="EMAIL_ALREADY_EXISTS")

        try:
            account = self.credentials.create_account(
                fields["email"],
                hash_password(fields["password"]),
                alias=fields["alias"],
                role=fields["role"],
                phone=fields["phone"],
            )
        except DuplicateAccountError as e:
            raise ConflictError("Account already exists", code="DUPLICATE_USER") from e
        except Exception as e:
            logger.exception("Creating identity for %s failed", fields["email"])
            raise InfrastructureError("Registration failed", code="REGISTRATION_ERROR", status_code=500) from e

        try:
            self.ledger.provision(
                account,
                plan_name=self.settings.default_plan,
                trial_days=self.settings.trial_days,
                initial_credits=self.settings.initial_credits_for(account["role"]),
            )
        except Exception as e:
            self._compensate(account, e)
            raise InfrastructureError("Registration failed", code="REGISTRATION_ERROR", status_code=500) from e

        logger.info("Registered account %s (role=%s)", account["id"], account["role"])
        return {
            "account_id": account["id"],
            "token": self.issuer.issue(account),
            "account": account_summary(account),
        }

    def _compensate(self, account: Dict[str, Any], original: Exception) -> None:
        account_id = account["id"]
        logger.warning("Ledger provisioning failed for %s, removing identity: %s", account_id, original)
        try:
            deleted = self.credentials.delete_account(account_id)
        except Exception as comp:
            # Never retried automatically.
            logger.critical(
                "CONSISTENCY orphan identity without ledger mirror: account_id=%s at=%s original_error=%r compensation_error=%r",
                account_id,
                datetime.now(timezone.utc).isoformat(),
                original,
                comp,
            )
            raise ConsistencyError() from comp
        if not deleted:
            logger.warning("Identity %s was already gone during compensation", account_id)
