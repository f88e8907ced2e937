from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel


class RegisterIn(BaseModel):
    # Presence is checked by the registration policy so the error codes stay stable.
    email: Optional[str] = None
    password: Optional[str] = None
    alias: Optional[str] = None
    role: Optional[str] = None
    phone: Optional[str] = None


class LoginIn(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None


class AccountOut(BaseModel):
    id: str
    alias: Optional[str] = None
    email: str
    role: Optional[str] = None


class TokenOut(BaseModel):
    message: str
    token: str
    account: AccountOut


class PlanInfo(BaseModel):
    plan_name: str
    start_date: Optional[datetime] = None
    expiration_date: Optional[datetime] = None
    is_default: bool = False
    reason: Optional[str] = None


class CreditsInfo(BaseModel):
    credits_current: int
    is_default: bool = False
    reason: Optional[str] = None


class ProfileOut(BaseModel):
    id: str
    email: str
    alias: Optional[str] = None
    role: Optional[str] = None
    phone: Optional[str] = None
    created_at: Optional[datetime] = None
    status: Optional[str] = None
    plan_info: PlanInfo
    credits_info: CreditsInfo


class ConsumeIn(BaseModel):
    amount: Any = None
    description: Optional[str] = None


class ConsumeOut(BaseModel):
    remaining: int


class StatusIn(BaseModel):
    status: Optional[str] = None


class LedgerAccountOut(BaseModel):
    id: int
    external_id: str
    display_name: str
    role: str
    email: str
    status: str
