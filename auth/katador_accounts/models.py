from __future__ import annotations

from typing import Any, Dict

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    create_engine,
)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func

# Each store owns its own metadata so the two engines never share tables.
IdentityBase = declarative_base()
LedgerBase = declarative_base()


class Account(IdentityBase):
    """Canonical identity record (credential store)."""

    __tablename__ = "accounts"

    id = Column(String(32), primary_key=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    alias = Column(String(120), nullable=False)
    role = Column(String(32), nullable=False)
    phone = Column(String(40), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "email": self.email,
            "alias": self.alias,
            "role": self.role,
            "phone": self.phone,
            "created_at": self.created_at,
        }


class LedgerAccount(LedgerBase):
    """Ledger-side mirror of an Account, linked by value through external_id."""

    __tablename__ = "ledger_accounts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    external_id = Column(String(32), unique=True, nullable=False, index=True)
    display_name = Column(String(120), nullable=False)
    role = Column(String(32), nullable=False)
    email = Column(String(255), nullable=False)
    status = Column(String(16), nullable=False, default="activo")
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "external_id": self.external_id,
            "display_name": self.display_name,
            "role": self.role,
            "email": self.email,
            "status": self.status,
        }


class Plan(LedgerBase):
    __tablename__ = "plans"

    id = Column(Integer, primary_key=True, autoincrement=True)
    account_ref = Column(Integer, ForeignKey("ledger_accounts.id"), nullable=False, index=True)
    plan_name = Column(String(64), nullable=False)
    start_date = Column(DateTime(timezone=True), nullable=False)
    expiration_date = Column(DateTime(timezone=True), nullable=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "plan_name": self.plan_name,
            "start_date": self.start_date,
            "expiration_date": self.expiration_date,
        }


class CreditBalance(LedgerBase):
    __tablename__ = "credit_balances"
    __table_args__ = (CheckConstraint("credits_current >= 0", name="ck_credits_non_negative"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    account_ref = Column(Integer, ForeignKey("ledger_accounts.id"), nullable=False, unique=True)
    credits_current = Column(Integer, nullable=False, default=0)


class CreditTransaction(LedgerBase):
    """Append-only record of balance changes."""

    __tablename__ = "credit_transactions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    account_ref = Column(Integer, ForeignKey("ledger_accounts.id"), nullable=False, index=True)
    delta = Column(Integer, nullable=False)
    balance_after = Column(Integer, nullable=False)
    description = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


def create_store_engine(database_url: str, *, pool_size: int = 10, timeout: int = 60, echo: bool = False) -> Engine:
    """Create a pooled engine for either store.

    Connect and pool-acquire waits are bounded by ``timeout`` seconds.
    """
    if database_url.startswith("sqlite"):
        return create_engine(
            database_url,
            echo=echo,
            connect_args={"check_same_thread": False, "timeout": timeout},
        )
    connect_args: Dict[str, Any] = {}
    if database_url.startswith("mysql"):
        connect_args = {"connect_timeout": timeout, "read_timeout": timeout, "write_timeout": timeout}
    return create_engine(
        database_url,
        echo=echo,
        pool_size=pool_size,
        max_overflow=0,
        pool_timeout=timeout,
        pool_pre_ping=True,
        pool_recycle=1800,
        connect_args=connect_args,
    )


def create_identity_tables(engine: Engine) -> None:
    IdentityBase.metadata.create_all(bind=engine)


def create_ledger_tables(engine: Engine) -> None:
    LedgerBase.metadata.create_all(bind=engine)
