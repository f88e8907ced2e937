from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError

from .config import Settings
from .errors import InfrastructureError, NotFoundError
from .ledger import LedgerStore
from .repo import CredentialStore

logger = logging.getLogger(__name__)


class ProfileReconciler:
    """Joins the identity record with the caller's plan and credit state.

    Identity is authoritative: a missing or unreachable ledger degrades
    ``plan_info``/``credits_info`` to defaults with a ``reason`` instead of
    failing the request.
    """

    def __init__(self, credentials: CredentialStore, ledger: LedgerStore, settings: Settings) -> None:
        self.credentials = credentials
        self.ledger = ledger
        self.settings = settings

    def _default_plan(self, reason: str) -> Dict[str, Any]:
        return {
            "plan_name": self.settings.default_plan,
            "start_date": None,
            "expiration_date": None,
            "is_default": True,
            "reason": reason,
        }

    def _default_credits(self, reason: str) -> Dict[str, Any]:
        return {"credits_current": 0, "is_default": True, "reason": reason}

    def get_profile(self, account_id: str) -> Dict[str, Any]:
        try:
            acc = self.credentials.get_account_by_id(account_id)
        except Exception as e:
            logger.exception("Credential lookup failed for %s", account_id)
            raise InfrastructureError() from e
        if not acc:
            raise NotFoundError("Account not found", code="ACCOUNT_NOT_FOUND")

        # The credential round trip is finished before a ledger connection is taken.
        try:
            snap = self.ledger.snapshot(acc["id"])
        except SQLAlchemyError as e:
            logger.warning("Ledger unavailable for profile %s: %s", acc["id"], e)
            snap = None

        status: Optional[str] = None
        if snap is None:
            plan_info = self._default_plan("ledger_unavailable")
            credits_info = self._default_credits("ledger_unavailable")
        elif snap["mirror"] is None:
            logger.warning("No ledger mirror for account %s", acc["id"])
            plan_info = self._default_plan("ledger_account_missing")
            credits_info = self._default_credits("ledger_account_missing")
        elif snap["mirror"]["status"] != "activo":
            status = snap["mirror"]["status"]
            plan_info = self._default_plan(f"account_{status}")
            credits_info = self._default_credits(f"account_{status}")
        else:
            status = "activo"
            plan = snap["plan"]
            if plan is None:
                plan_info = self._default_plan("no_active_plan")
            else:
                plan_info = dict(plan, is_default=False, reason=None)
            if snap["credits"] is None:
                credits_info = self._default_credits("credit_balance_missing")
            else:
                credits_info = {"credits_current": snap["credits"], "is_default": False, "reason": None}

        return {
            "id": acc["id"],
            "email": acc.get("email"),
            "alias": acc.get("alias"),
            "role": acc.get("role"),
            "phone": acc.get("phone"),
            "created_at": acc.get("created_at"),
            "status": status,
            "plan_info": plan_info,
            "credits_info": credits_info,
        }
