from __future__ import annotations

import re
from typing import Any, Dict, Optional

from .config import ROLES
from .errors import ValidationError

_EMAIL_RE = re.compile(r".+@.+\..+")


def validate_password(password: str, settings: Any) -> Optional[str]:
    """Validate password length against settings.

    Returns:
      None if OK, else a human-readable rejection message string.

    The settings object is expected to expose ``pwd_min_len`` and
    ``pwd_max_len``; missing attributes fall back to permissive defaults.
    """
    pw = password or ""
    min_len: Optional[int] = getattr(settings, "pwd_min_len", 6)
    max_len: Optional[int] = getattr(settings, "pwd_max_len", 256)

    if isinstance(min_len, int) and min_len > 0 and len(pw) < min_len:
        return f"Password must be at least {min_len} characters"
    if isinstance(max_len, int) and max_len > 0 and len(pw) > max_len:
        return f"Password must be at most {max_len} characters"
    return None


def _clean(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def validate_registration(
    *,
    email: Any,
    password: Any,
    alias: Any,
    role: Any,
    phone: Any,
    settings: Any,
) -> Dict[str, Any]:
    """Check a registration request and return its normalized fields.

    Raises ValidationError; nothing is written before this passes.
    """
    email_s, alias_s, role_s = _clean(email), _clean(alias), _clean(role)
    if not email_s or not isinstance(password, str) or not password or not alias_s or not role_s:
        raise ValidationError("email, password, alias and role are required", code="MISSING_FIELDS")
    if role_s not in ROLES:
        raise ValidationError(f"Role must be one of: {', '.join(ROLES)}", code="INVALID_ROLE")
    msg = validate_password(password, settings)
    if msg:
        raise ValidationError(msg, code="WEAK_PASSWORD")
    if not _EMAIL_RE.fullmatch(email_s):
        raise ValidationError("Enter a valid email address", code="INVALID_EMAIL")
    phone_s: Optional[str] = None
    if role_s == "modelo":
        phone_s = _clean(phone)
        if not phone_s:
            raise ValidationError("Phone is required for role modelo", code="MISSING_PHONE")
    return {
        "email": email_s.lower(),
        "password": password,
        "alias": alias_s,
        "role": role_s,
        "phone": phone_s,
    }
