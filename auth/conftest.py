from __future__ import annotations

import pytest
from fastapi.testclient import TestClient
from passlib.context import CryptContext
from sqlalchemy.exc import OperationalError

from katador_accounts import (
    CreditLedgerService,
    InMemoryCredentialStore,
    ProfileReconciler,
    RegistrationOrchestrator,
    SessionIssuer,
    Settings,
    create_app,
    create_ledger_store,
    create_sql_credential_store,
    set_password_context,
)
from katador_accounts import security


@pytest.fixture(autouse=True)
def fast_hashing():
    original = security.pwd_context
    set_password_context(CryptContext(schemes=["pbkdf2_sha256"], pbkdf2_sha256__default_rounds=1000))
    yield
    set_password_context(original)


@pytest.fixture
def settings():
    return Settings(secret_key="test-secret", rate_limit_max=0)


@pytest.fixture
def credentials(tmp_path):
    return create_sql_credential_store(f"sqlite:///{tmp_path / 'identity.db'}")


@pytest.fixture
def ledger(tmp_path):
    return create_ledger_store(f"sqlite:///{tmp_path / 'ledger.db'}")


@pytest.fixture
def issuer(credentials, ledger, settings):
    return SessionIssuer(credentials, ledger, settings)


@pytest.fixture
def registrar(credentials, ledger, settings, issuer):
    return RegistrationOrchestrator(credentials, ledger, settings, issuer)


@pytest.fixture
def reconciler(credentials, ledger, settings):
    return ProfileReconciler(credentials, ledger, settings)


@pytest.fixture
def credit_service(ledger):
    return CreditLedgerService(ledger)


@pytest.fixture
def memory_credentials():
    return InMemoryCredentialStore()


@pytest.fixture
def client(settings, credentials, ledger):
    app = create_app(settings, credentials=credentials, ledger=ledger)
    with TestClient(app) as c:
        yield c


def count_rows(store, model, **filters) -> int:
    with store.SessionLocal() as s:
        return s.query(model).filter_by(**filters).count()


def ledger_down(*args, **kwargs):
    raise OperationalError("SELECT 1", {}, Exception("ledger unreachable"))
