from __future__ import annotations

import secrets
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from .errors import DuplicateAccountError


def new_account_id() -> str:
    """Opaque 24-hex identifier, the shape document stores hand out."""
    return secrets.token_hex(12)


def normalize_email(email: str) -> str:
    return email.strip().lower()


class CredentialStore(ABC):
    """Authoritative store for identity and password verification.

    IDs are opaque strings. Implementations normalize email casing and never
    expose ``password_hash`` outside ``get_account_credentials``.
    """

    @abstractmethod
    def find_account_by_email(self, email: str) -> Optional[Dict[str, Any]]: ...

    @abstractmethod
    def get_account_credentials(self, email: str) -> Optional[Dict[str, Any]]: ...

    @abstractmethod
    def create_account(
        self,
        email: str,
        password_hash: str,
        *,
        alias: str,
        role: str,
        phone: Optional[str] = None,
    ) -> Dict[str, Any]: ...

    @abstractmethod
    def get_account_by_id(self, account_id: str) -> Optional[Dict[str, Any]]: ...

    @abstractmethod
    def delete_account(self, account_id: str) -> bool: ...


class InMemoryCredentialStore(CredentialStore):
    """Simple in-memory store for testing.

    Not persistent.
    """

    def __init__(self) -> None:
        self.accounts: Dict[str, Dict[str, Any]] = {}
        self.accounts_by_email: Dict[str, str] = {}

    def _public_acc(self, acc: Dict[str, Any]) -> Dict[str, Any]:
        return {k: v for k, v in acc.items() if k != "password_hash"}

    def find_account_by_email(self, email: str) -> Optional[Dict[str, Any]]:
        acc_id = self.accounts_by_email.get(normalize_email(email))
        acc = self.accounts.get(acc_id) if acc_id else None
        return (self._public_acc(acc) if acc else None)

    def get_account_credentials(self, email: str) -> Optional[Dict[str, Any]]:
        acc_id = self.accounts_by_email.get(normalize_email(email))
        acc = self.accounts.get(acc_id) if acc_id else None
        if not acc:
            return None
        return dict(acc)

    def create_account(
        self,
        email: str,
        password_hash: str,
        *,
        alias: str,
        role: str,
        phone: Optional[str] = None,
    ) -> Dict[str, Any]:
        key = normalize_email(email)
        if key in self.accounts_by_email:
            raise DuplicateAccountError("email already registered")
        acc = {
            "id": new_account_id(),
            "email": key,
            "password_hash": password_hash,
            "alias": alias,
            "role": role,
            "phone": phone,
            "created_at": datetime.now(timezone.utc),
        }
        self.accounts[acc["id"]] = acc
        self.accounts_by_email[key] = acc["id"]
        return self._public_acc(acc)

    def get_account_by_id(self, account_id: str) -> Optional[Dict[str, Any]]:
        acc = self.accounts.get(str(account_id))
        return (self._public_acc(acc) if acc else None)

    def delete_account(self, account_id: str) -> bool:
        acc = self.accounts.pop(str(account_id), None)
        if not acc:
            return False
        self.accounts_by_email.pop(acc["email"], None)
        return True
