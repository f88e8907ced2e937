from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from sqlalchemy import update
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from .errors import InsufficientCreditsError, LedgerAccountMissing
from .models import (
    CreditBalance,
    CreditTransaction,
    LedgerAccount,
    Plan,
    create_ledger_tables,
    create_store_engine,
)

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LedgerStore:
    """Relational store for the account mirror, plans and credit balances.

    Every public method checks out one pooled connection and returns it on all
    exit paths. Multi-row writes run in a single transaction.
    """

    def __init__(self, engine: Engine, *, create_schema: bool = True):
        self.engine = engine
        if create_schema:
            create_ledger_tables(self.engine)
        self.SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=self.engine)

    def _get_session(self) -> Session:
        return self.SessionLocal()

    def _mirror(self, session: Session, external_id: str) -> Optional[LedgerAccount]:
        return session.query(LedgerAccount).filter(LedgerAccount.external_id == str(external_id)).first()

    # ---- provisioning ----
    def _insert_mirror(self, session: Session, account: Dict[str, Any]) -> LedgerAccount:
        mirror = LedgerAccount(
            external_id=str(account["id"]),
            display_name=account.get("alias") or account["email"].split("@")[0],
            role=account["role"],
            email=account["email"],
            status="activo",
        )
        session.add(mirror)
        session.flush()
        return mirror

    def _insert_plan(self, session: Session, mirror: LedgerAccount, plan_name: str, start: datetime, days: int) -> Plan:
        plan = Plan(
            account_ref=mirror.id,
            plan_name=plan_name,
            start_date=start,
            expiration_date=start + timedelta(days=days),
        )
        session.add(plan)
        return plan

    def _insert_credit(self, session: Session, mirror: LedgerAccount, credits: int) -> CreditBalance:
        balance = CreditBalance(account_ref=mirror.id, credits_current=credits)
        session.add(balance)
        return balance

    def provision(
        self,
        account: Dict[str, Any],
        *,
        plan_name: str,
        trial_days: int,
        initial_credits: int,
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """Create mirror, default plan and credit rows for ``account`` atomically.

        Either all three rows are committed or none are; the original error is
        re-raised after rollback.
        """
        start = now or utcnow()
        session = self._get_session()
        try:
            mirror = self._insert_mirror(session, account)
            self._insert_plan(session, mirror, plan_name, start, trial_days)
            self._insert_credit(session, mirror, initial_credits)
            session.commit()
            logger.debug("Provisioned ledger rows for account %s (ref %s)", account["id"], mirror.id)
            return mirror.to_dict()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    # ---- reads ----
    def find_mirror(self, external_id: str) -> Optional[Dict[str, Any]]:
        with self._get_session() as session:
            mirror = self._mirror(session, external_id)
            return mirror.to_dict() if mirror else None

    def snapshot(self, external_id: str, *, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Mirror, current plan and balance for one account, read in one session.

        ``plan`` is the non-expired row with the latest expiration_date.
        ``plan`` and ``credits`` are None when the rows are missing; all three
        are None when there is no mirror.
        """
        at = now or utcnow()
        with self._get_session() as session:
            mirror = self._mirror(session, external_id)
            if mirror is None:
                return {"mirror": None, "plan": None, "credits": None}
            plan = (
                session.query(Plan)
                .filter(Plan.account_ref == mirror.id, Plan.expiration_date > at)
                .order_by(Plan.expiration_date.desc())
                .first()
            )
            balance = session.query(CreditBalance).filter(CreditBalance.account_ref == mirror.id).first()
            return {
                "mirror": mirror.to_dict(),
                "plan": plan.to_dict() if plan else None,
                "credits": balance.credits_current if balance else None,
            }

    # ---- writes ----
    def debit(self, external_id: str, amount: int, description: Optional[str] = None) -> int:
        """Subtract ``amount`` from the account's balance and return what is left.

        The balance row is read with SELECT ... FOR UPDATE and the decrement is
        guarded by ``credits_current >= amount``, so concurrent debits against
        one account serialize and never overdraw.

        Raises LedgerAccountMissing or InsufficientCreditsError (no mutation).
        """
        session = self._get_session()
        try:
            mirror = self._mirror(session, external_id)
            if mirror is None:
                raise LedgerAccountMissing(external_id)
            balance = (
                session.query(CreditBalance)
                .filter(CreditBalance.account_ref == mirror.id)
                .with_for_update()
                .first()
            )
            if balance is None:
                raise LedgerAccountMissing(external_id)
            mirror_id, balance_id = mirror.id, balance.id
            current = balance.credits_current
            if current < amount:
                raise InsufficientCreditsError(current, amount)
            result = session.execute(
                update(CreditBalance)
                .where(CreditBalance.id == balance_id, CreditBalance.credits_current >= amount)
                .values(credits_current=CreditBalance.credits_current - amount)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                # Balance moved between the read and the write.
                session.rollback()
                latest = session.query(CreditBalance.credits_current).filter(CreditBalance.id == balance_id).scalar()
                raise InsufficientCreditsError(int(latest or 0), amount)
            remaining = session.query(CreditBalance.credits_current).filter(CreditBalance.id == balance_id).scalar()
            session.add(
                CreditTransaction(
                    account_ref=mirror_id,
                    delta=-amount,
                    balance_after=remaining,
                    description=description,
                )
            )
            session.commit()
            return int(remaining)
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def set_status(self, external_id: str, status: str) -> Dict[str, Any]:
        with self._get_session() as session:
            mirror = self._mirror(session, external_id)
            if mirror is None:
                raise LedgerAccountMissing(external_id)
            mirror.status = status
            session.commit()
            return mirror.to_dict()


def create_ledger_store(database_url: str, *, pool_size: int = 10, timeout: int = 60, echo: bool = False) -> LedgerStore:
    engine = create_store_engine(database_url, pool_size=pool_size, timeout=timeout, echo=echo)
    return LedgerStore(engine)
