from __future__ import annotations

import threading

import pytest

from conftest import count_rows
from katador_accounts import InsufficientCreditsError, NotFoundError, ValidationError, hash_password
from katador_accounts.models import CreditTransaction


def _account_with_credits(memory_credentials, ledger, credits, email="a@b.com"):
    acc = memory_credentials.create_account(email, hash_password("secret1"), alias="X", role="katador")
    ledger.provision(acc, plan_name="Gratis", trial_days=30, initial_credits=credits)
    return acc["id"]


def test_consume_debits_and_records_transaction(memory_credentials, ledger, credit_service):
    account_id = _account_with_credits(memory_credentials, ledger, 10)
    assert credit_service.consume(account_id, 3, "video call") == {"remaining": 7}
    assert ledger.snapshot(account_id)["credits"] == 7
    with ledger.SessionLocal() as s:
        tx = s.query(CreditTransaction).one()
        assert tx.delta == -3
        assert tx.balance_after == 7
        assert tx.description == "video call"


def test_insufficient_credits_leave_balance_unchanged(memory_credentials, ledger, credit_service):
    account_id = _account_with_credits(memory_credentials, ledger, 3)
    with pytest.raises(InsufficientCreditsError) as exc:
        credit_service.consume(account_id, 5)
    assert exc.value.status_code == 400
    assert exc.value.to_dict()["code"] == "INSUFFICIENT_CREDITS"
    assert exc.value.to_dict()["current_credits"] == 3
    assert ledger.snapshot(account_id)["credits"] == 3
    assert count_rows(ledger, CreditTransaction) == 0


def test_balance_can_be_drained_to_zero_but_not_below(memory_credentials, ledger, credit_service):
    account_id = _account_with_credits(memory_credentials, ledger, 4)
    assert credit_service.consume(account_id, 4)["remaining"] == 0
    with pytest.raises(InsufficientCreditsError) as exc:
        credit_service.consume(account_id, 1)
    assert exc.value.current_credits == 0


@pytest.mark.parametrize("amount", [0, -1, True, 2.5, "5", None])
def test_amount_must_be_a_positive_integer(memory_credentials, ledger, credit_service, amount):
    account_id = _account_with_credits(memory_credentials, ledger, 10)
    with pytest.raises(ValidationError) as exc:
        credit_service.consume(account_id, amount)
    assert exc.value.code == "INVALID_AMOUNT"
    assert ledger.snapshot(account_id)["credits"] == 10


def test_unknown_account(credit_service):
    with pytest.raises(NotFoundError) as exc:
        credit_service.consume("ffffffffffffffffffffffff", 1)
    assert exc.value.status_code == 404


def _race(credit_service, account_id, amount, callers):
    barrier = threading.Barrier(callers)
    results = []
    lock = threading.Lock()

    def worker():
        barrier.wait()
        try:
            out = ("ok", credit_service.consume(account_id, amount)["remaining"])
        except InsufficientCreditsError as e:
            out = ("insufficient", e.current_credits)
        with lock:
            results.append(out)

    threads = [threading.Thread(target=worker) for _ in range(callers)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=30)
    return results


def test_two_concurrent_debits_never_overdraw(memory_credentials, ledger, credit_service):
    account_id = _account_with_credits(memory_credentials, ledger, 3)
    results = _race(credit_service, account_id, 2, 2)
    assert sorted(kind for kind, _ in results) == ["insufficient", "ok"]
    assert ("ok", 1) in results
    failed = [v for kind, v in results if kind == "insufficient"][0]
    assert failed in (1, 3)
    assert ledger.snapshot(account_id)["credits"] == 1


def test_many_concurrent_debits_sum_exactly(memory_credentials, ledger, credit_service):
    account_id = _account_with_credits(memory_credentials, ledger, 5)
    results = _race(credit_service, account_id, 1, 8)
    ok = [v for kind, v in results if kind == "ok"]
    assert len(results) == 8
    assert len(ok) == 5
    assert sorted(ok) == [0, 1, 2, 3, 4]
    assert ledger.snapshot(account_id)["credits"] == 0
    assert count_rows(ledger, CreditTransaction) == 5
