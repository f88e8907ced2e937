from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Depends, status

from .auth_utils import current_claims, require_role
from .config import ACCOUNT_STATUSES
from .credits import CreditLedgerService
from .errors import LedgerAccountMissing, NotFoundError, ValidationError
from .ledger import LedgerStore
from .profile import ProfileReconciler
from .registration import RegistrationOrchestrator
from .schemas import (
    ConsumeIn,
    ConsumeOut,
    LedgerAccountOut,
    LoginIn,
    ProfileOut,
    RegisterIn,
    StatusIn,
    TokenOut,
)
from .session import SessionIssuer


def create_auth_router(
    registrar: RegistrationOrchestrator,
    issuer: SessionIssuer,
    reconciler: ProfileReconciler,
) -> APIRouter:
    r = APIRouter(prefix="/auth", tags=["auth"])

    @r.post("/register", response_model=TokenOut, status_code=status.HTTP_201_CREATED)
    def register(payload: RegisterIn):
        out = registrar.register(
            payload.email, payload.password, payload.alias, payload.role, payload.phone
        )
        return {"message": "Account registered", "token": out["token"], "account": out["account"]}

    @r.post("/login", response_model=TokenOut)
    def login(payload: LoginIn):
        out = issuer.login(payload.email, payload.password)
        return {"message": "Login successful", **out}

    @r.get("/me", response_model=ProfileOut)
    def me(claims: Dict[str, Any] = Depends(current_claims)):
        return reconciler.get_profile(claims["sub"])

    return r


def create_credits_router(service: CreditLedgerService) -> APIRouter:
    r = APIRouter(prefix="/credits", tags=["credits"])

    @r.post("/consume", response_model=ConsumeOut)
    def consume(payload: ConsumeIn, claims: Dict[str, Any] = Depends(current_claims)):
        return service.consume(claims["sub"], payload.amount, payload.description)

    return r


def create_admin_router(ledger: LedgerStore) -> APIRouter:
    r = APIRouter(prefix="/admin", tags=["admin"])

    @r.post("/accounts/{account_id}/status", response_model=LedgerAccountOut)
    def set_account_status(account_id: str, payload: StatusIn, claims: Dict[str, Any] = Depends(require_role("admin"))):
        if payload.status not in ACCOUNT_STATUSES:
            raise ValidationError(f"Status must be one of: {', '.join(ACCOUNT_STATUSES)}", code="INVALID_STATUS")
        try:
            return ledger.set_status(account_id, payload.status)
        except LedgerAccountMissing as e:
            raise NotFoundError("Account not found in the ledger", code="NOT_FOUND") from e

    return r


def create_protected_router() -> APIRouter:
    r = APIRouter(tags=["protected"])

    @r.get("/protected")
    def protected(claims: Dict[str, Any] = Depends(current_claims)):
        return {"message": "Protected route accessed", "account": claims}

    return r
