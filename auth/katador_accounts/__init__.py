from .config import Settings, ROLES, ACCOUNT_STATUSES
from .errors import (
    AccountsError, ValidationError, ConflictError, AuthError, NotFoundError,
    InsufficientCreditsError, InfrastructureError, ConsistencyError,
    DuplicateAccountError, LedgerAccountMissing,
)
from .security import hash_password, verify_password, create_session_token, decode_session_token, set_password_context, pwd_context
from .repo import CredentialStore, InMemoryCredentialStore
from .sql_repo import SQLCredentialStore, create_sql_credential_store
from .ledger import LedgerStore, create_ledger_store
from .models import create_store_engine
from .registration import RegistrationOrchestrator
from .session import SessionIssuer
from .profile import ProfileReconciler
from .credits import CreditLedgerService
from .app import create_app

__all__ = [
    "Settings", "ROLES", "ACCOUNT_STATUSES",
    "AccountsError", "ValidationError", "ConflictError", "AuthError", "NotFoundError",
    "InsufficientCreditsError", "InfrastructureError", "ConsistencyError",
    "DuplicateAccountError", "LedgerAccountMissing",
    "hash_password", "verify_password", "create_session_token", "decode_session_token", "set_password_context", "pwd_context",
    "CredentialStore", "InMemoryCredentialStore", "SQLCredentialStore", "create_sql_credential_store",
    "LedgerStore", "create_ledger_store", "create_store_engine",
    "RegistrationOrchestrator", "SessionIssuer", "ProfileReconciler", "CreditLedgerService",
    "create_app",
]
