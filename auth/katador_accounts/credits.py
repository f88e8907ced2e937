from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError

from .errors import InfrastructureError, LedgerAccountMissing, NotFoundError, ValidationError
from .ledger import LedgerStore

logger = logging.getLogger(__name__)


class CreditLedgerService:
    """Debits credit balances with a sufficiency check under a row lock."""

    def __init__(self, ledger: LedgerStore) -> None:
        self.ledger = ledger

    def consume(self, account_id: str, amount: Any, description: Optional[str] = None) -> Dict[str, Any]:
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise ValidationError("Amount must be a positive integer", code="INVALID_AMOUNT")
        if description is not None:
            description = str(description)[:255]
        try:
            remaining = self.ledger.debit(account_id, amount, description)
        except LedgerAccountMissing as e:
            raise NotFoundError("Account not found in the credit system", code="NOT_FOUND") from e
        except SQLAlchemyError as e:
            logger.exception("Credit debit failed for %s", account_id)
            raise InfrastructureError() from e
        logger.info("Debited %s credits from %s, %s left", amount, account_id, remaining)
        return {"remaining": remaining}
