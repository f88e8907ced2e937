from __future__ import annotations

from typing import Any, Dict, Optional

from sqlalchemy import func
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from .errors import DuplicateAccountError
from .models import Account, create_identity_tables, create_store_engine
from .repo import CredentialStore, new_account_id, normalize_email


class SQLCredentialStore(CredentialStore):
    """SQLAlchemy-backed credential store on its own engine."""

    def __init__(self, engine: Engine, *, create_schema: bool = True):
        self.engine = engine
        if create_schema:
            create_identity_tables(self.engine)
        self.SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=self.engine)

    def _get_session(self) -> Session:
        return self.SessionLocal()

    def _by_email(self, session: Session, email: str) -> Optional[Account]:
        return session.query(Account).filter(func.lower(Account.email) == normalize_email(email)).first()

    def find_account_by_email(self, email: str) -> Optional[Dict[str, Any]]:
        with self._get_session() as session:
            account = self._by_email(session, email)
            return account.to_dict() if account else None

    def get_account_credentials(self, email: str) -> Optional[Dict[str, Any]]:
        """Identity plus password hash, for the login path only."""
        with self._get_session() as session:
            account = self._by_email(session, email)
            if not account:
                return None
            out = account.to_dict()
            out["password_hash"] = account.password_hash
            return out

    def create_account(
        self,
        email: str,
        password_hash: str,
        *,
        alias: str,
        role: str,
        phone: Optional[str] = None,
    ) -> Dict[str, Any]:
        with self._get_session() as session:
            if self._by_email(session, email):
                raise DuplicateAccountError("email already registered")
            account = Account(
                id=new_account_id(),
                email=normalize_email(email),
                password_hash=password_hash,
                alias=alias,
                role=role,
                phone=phone,
            )
            session.add(account)
            try:
                session.commit()
            except IntegrityError as e:
                # Lost a race against a concurrent registration with the same email.
                session.rollback()
                raise DuplicateAccountError("email already registered") from e
            session.refresh(account)
            return account.to_dict()

    def get_account_by_id(self, account_id: str) -> Optional[Dict[str, Any]]:
        with self._get_session() as session:
            account = session.get(Account, str(account_id))
            return account.to_dict() if account else None

    def delete_account(self, account_id: str) -> bool:
        with self._get_session() as session:
            account = session.get(Account, str(account_id))
            if not account:
                return False
            session.delete(account)
            session.commit()
            return True


def create_sql_credential_store(database_url: str, *, pool_size: int = 10, timeout: int = 60, echo: bool = False) -> SQLCredentialStore:
    engine = create_store_engine(database_url, pool_size=pool_size, timeout=timeout, echo=echo)
    return SQLCredentialStore(engine)
