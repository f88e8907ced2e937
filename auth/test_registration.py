from __future__ import annotations

import logging

import pytest

from conftest import count_rows
from katador_accounts import (
    ConflictError,
    ConsistencyError,
    DuplicateAccountError,
    InfrastructureError,
    InMemoryCredentialStore,
    InsufficientCreditsError,
    LedgerStore,
    NotFoundError,
    RegistrationOrchestrator,
    ValidationError,
    decode_session_token,
)
from katador_accounts.models import Account, CreditBalance, LedgerAccount, Plan


class FailingCreditLedger(LedgerStore):
    """Fails after the mirror row is flushed, before the credit row exists."""

    def _insert_credit(self, session, mirror, credits):
        raise RuntimeError("credit insert failed")


class UndeletableCredentials(InMemoryCredentialStore):
    def delete_account(self, account_id):
        raise RuntimeError("identity store went away")


class RacingCredentials(InMemoryCredentialStore):
    """Email looks free on lookup but another writer wins the insert."""

    def create_account(self, email, password_hash, **kwargs):
        raise DuplicateAccountError("email already registered")


def test_register_provisions_identity_and_ledger(registrar, credentials, ledger, settings):
    out = registrar.register("A@B.com ", "secret1", "X", "modelo", " 555 ")
    account_id = out["account_id"]

    acc = credentials.get_account_by_id(account_id)
    assert acc["email"] == "a@b.com"
    assert acc["phone"] == "555"
    assert "password_hash" not in acc
    assert set(acc) == {"id", "email", "alias", "role", "phone", "created_at"}
    assert out["account"] == {"id": account_id, "alias": "X", "email": "a@b.com", "role": "modelo"}

    snap = ledger.snapshot(account_id)
    assert snap["mirror"]["status"] == "activo"
    assert snap["mirror"]["display_name"] == "X"
    assert snap["plan"]["plan_name"] == "Gratis"
    assert snap["credits"] == 10

    claims = decode_session_token(out["token"], settings.secret_key)
    assert claims["sub"] == account_id


def test_non_revenue_roles_start_with_zero_credits(registrar, ledger):
    out = registrar.register("agency@b.com", "secret1", "Agency", "agencia", "555")
    assert ledger.snapshot(out["account_id"])["credits"] == 0
    assert registrar.credentials.get_account_by_id(out["account_id"])["phone"] is None


def test_duplicate_email_has_no_side_effects(registrar, credentials, ledger):
    registrar.register("a@b.com", "secret1", "X", "katador")
    before = (count_rows(credentials, Account), count_rows(ledger, LedgerAccount), count_rows(ledger, Plan))
    with pytest.raises(ConflictError) as exc:
        registrar.register("A@B.COM", "another1", "Y", "modelo", "1")
    assert exc.value.code == "EMAIL_ALREADY_EXISTS"
    assert exc.value.status_code == 409
    after = (count_rows(credentials, Account), count_rows(ledger, LedgerAccount), count_rows(ledger, Plan))
    assert before == after == (1, 1, 1)


@pytest.mark.parametrize(
    "kwargs, code",
    [
        (dict(email="", password="secret1", alias="X", role="katador"), "MISSING_FIELDS"),
        (dict(email="a@b.com", password=None, alias="X", role="katador"), "MISSING_FIELDS"),
        (dict(email="a@b.com", password="secret1", alias="  ", role="katador"), "MISSING_FIELDS"),
        (dict(email="a@b.com", password="secret1", alias="X", role="bogus"), "INVALID_ROLE"),
        (dict(email="a@b.com", password="12345", alias="X", role="katador"), "WEAK_PASSWORD"),
        (dict(email="not-an-email", password="secret1", alias="X", role="katador"), "INVALID_EMAIL"),
        (dict(email="a@b.com", password="secret1", alias="X", role="modelo"), "MISSING_PHONE"),
    ],
)
def test_validation_happens_before_any_write(registrar, credentials, ledger, kwargs, code):
    with pytest.raises(ValidationError) as exc:
        registrar.register(**kwargs)
    assert exc.value.code == code
    assert exc.value.status_code == 400
    assert count_rows(credentials, Account) == 0
    assert count_rows(ledger, LedgerAccount) == 0


def test_failed_provisioning_rolls_back_and_removes_identity(credentials, ledger, settings):
    registrar = RegistrationOrchestrator(credentials, FailingCreditLedger(ledger.engine), settings)

    with pytest.raises(InfrastructureError) as exc:
        registrar.register("a@b.com", "secret1", "X", "modelo", "555")
    assert exc.value.code == "REGISTRATION_ERROR"
    assert exc.value.status_code == 500

    assert count_rows(ledger, LedgerAccount) == 0
    assert count_rows(ledger, Plan) == 0
    assert count_rows(ledger, CreditBalance) == 0
    assert credentials.find_account_by_email("a@b.com") is None


def test_failed_compensation_is_logged_for_reconciliation(ledger, settings, caplog):
    credentials = UndeletableCredentials()
    failing = FailingCreditLedger(ledger.engine)
    registrar = RegistrationOrchestrator(credentials, failing, settings)

    with caplog.at_level(logging.CRITICAL, logger="katador_accounts.registration"):
        with pytest.raises(ConsistencyError) as exc:
            registrar.register("a@b.com", "secret1", "X", "katador")
    assert exc.value.status_code == 500
    assert exc.value.message == "Internal server error"

    orphan = credentials.find_account_by_email("a@b.com")
    assert orphan is not None
    records = [r for r in caplog.records if r.levelno == logging.CRITICAL]
    assert len(records) == 1
    text = records[0].getMessage()
    assert "CONSISTENCY" in text
    assert orphan["id"] in text
    assert "credit insert failed" in text
    assert "identity store went away" in text
    assert count_rows(ledger, LedgerAccount) == 0


def test_lost_insert_race_reports_duplicate_user(ledger, settings):
    registrar = RegistrationOrchestrator(RacingCredentials(), ledger, settings)
    with pytest.raises(ConflictError) as exc:
        registrar.register("a@b.com", "secret1", "X", "katador")
    assert exc.value.code == "DUPLICATE_USER"
    assert count_rows(ledger, LedgerAccount) == 0


def test_connections_return_to_the_pool(registrar, credentials, ledger, settings, credit_service):
    def checked_out():
        return credentials.engine.pool.checkedout(), ledger.engine.pool.checkedout()

    account_id = registrar.register("a@b.com", "secret1", "X", "modelo", "555")["account_id"]
    assert credit_service.consume(account_id, 4) == {"remaining": 6}
    assert checked_out() == (0, 0)

    with pytest.raises(InsufficientCreditsError):
        credit_service.consume(account_id, 50)
    assert checked_out() == (0, 0)

    with pytest.raises(NotFoundError):
        credit_service.consume("ffffffffffffffffffffffff", 1)
    assert checked_out() == (0, 0)

    failing = RegistrationOrchestrator(credentials, FailingCreditLedger(ledger.engine), settings)
    with pytest.raises(InfrastructureError):
        failing.register("c@d.com", "secret1", "Y", "modelo", "555")
    assert checked_out() == (0, 0)
