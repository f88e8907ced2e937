from __future__ import annotations

import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import Settings
from .credits import CreditLedgerService
from .errors import AccountsError, ConsistencyError, InfrastructureError
from .ledger import LedgerStore, create_ledger_store
from .middleware import RateLimitMiddleware
from .profile import ProfileReconciler
from .registration import RegistrationOrchestrator
from .repo import CredentialStore
from .router import create_admin_router, create_auth_router, create_credits_router, create_protected_router
from .session import SessionIssuer
from .sql_repo import create_sql_credential_store

logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    *,
    credentials: Optional[CredentialStore] = None,
    ledger: Optional[LedgerStore] = None,
) -> FastAPI:
    """Wire both stores, the services and the HTTP surface into one app.

    Stores default to the URLs in ``settings``; tests pass their own.
    """
    settings = settings or Settings.from_env()
    credentials = credentials or create_sql_credential_store(
        settings.credentials_url, pool_size=settings.pool_size, timeout=settings.db_timeout
    )
    ledger = ledger or create_ledger_store(
        settings.ledger_url, pool_size=settings.pool_size, timeout=settings.db_timeout
    )

    issuer = SessionIssuer(credentials, ledger, settings)
    registrar = RegistrationOrchestrator(credentials, ledger, settings, issuer)
    reconciler = ProfileReconciler(credentials, ledger, settings)
    credit_service = CreditLedgerService(ledger)

    app = FastAPI(title="Katador Accounts API", version="1.0.0")
    app.state.settings = settings
    app.state.credentials = credentials
    app.state.ledger = ledger

    if settings.cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.cors_origins,
            allow_credentials=True,
            allow_methods=["GET", "POST", "OPTIONS"],
            allow_headers=["Content-Type", "Authorization", "X-Requested-With"],
        )
    app.add_middleware(
        RateLimitMiddleware,
        window_seconds=settings.rate_limit_window,
        max_requests=settings.rate_limit_max,
    )

    @app.exception_handler(AccountsError)
    async def accounts_error_handler(request: Request, exc: AccountsError):
        if isinstance(exc, (InfrastructureError, ConsistencyError)):
            logger.error("%s %s failed: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=400,
            content={"code": "VALIDATION_ERROR", "message": "Invalid request body"},
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content={"code": "INTERNAL_ERROR", "message": "Internal server error"})

    @app.get("/health")
    def health():
        return {"status": "ok", "service": "katador-accounts"}

    app.include_router(create_auth_router(registrar, issuer, reconciler), prefix="/api")
    app.include_router(create_credits_router(credit_service), prefix="/api")
    app.include_router(create_admin_router(ledger), prefix="/api")
    app.include_router(create_protected_router(), prefix="/api")
    return app
