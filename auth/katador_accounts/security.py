from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, Sequence, Tuple

from jose import jwt, JWTError, ExpiredSignatureError
from passlib.context import CryptContext

from .errors import AuthError


def _argon2_available() -> bool:
    try:
        from passlib.handlers.argon2 import argon2  # type: ignore

        try:
            return bool(getattr(argon2, "has_backend", lambda: False)())
        except Exception:
            return False
    except Exception:
        return False


def _build_pwd_context() -> CryptContext:
    if _argon2_available():
        return CryptContext(schemes=["argon2", "pbkdf2_sha256"], default="argon2", deprecated="auto")
    return CryptContext(schemes=["pbkdf2_sha256"], default="pbkdf2_sha256", deprecated="auto")


pwd_context = _build_pwd_context()


def set_password_context(context: CryptContext) -> None:
    """Allow applications (and tests) to replace the CryptContext at runtime."""
    global pwd_context
    pwd_context = context


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, password_hash: str) -> bool:
    try:
        return pwd_context.verify(plain_password, password_hash)
    except Exception:
        return False


_dummy_hash: Optional[Tuple[CryptContext, str]] = None


def dummy_password_hash() -> str:
    """Hash of a throwaway secret under the current context.

    Verified against on unknown emails so a miss costs the same as a real check.
    """
    global _dummy_hash
    if _dummy_hash is None or _dummy_hash[0] is not pwd_context:
        _dummy_hash = (pwd_context, pwd_context.hash("katador-unknown-account"))
    return _dummy_hash[1]


def create_session_token(
    account: Dict[str, Any],
    secret_key: str,
    algorithm: str = "HS256",
    expires_minutes: int = 60 * 24,
) -> str:
    """Sign a session token for an account view (id, role, email, alias)."""
    now = datetime.now(timezone.utc)
    exp = now + timedelta(minutes=expires_minutes)
    payload = {
        "sub": str(account["id"]),
        "role": account.get("role"),
        "email": account.get("email"),
        "alias": account.get("alias"),
        "iat": int(now.timestamp()),
        "exp": int(exp.timestamp()),
    }
    return jwt.encode(payload, secret_key, algorithm=algorithm)


def decode_session_token(token: Optional[str], secret_key: str, algorithms: Sequence[str] = ("HS256",)) -> Dict[str, Any]:
    """Verify a session token and return its claims.

    Raises AuthError with code NO_TOKEN, TOKEN_EXPIRED or INVALID_TOKEN.
    """
    if not token:
        raise AuthError("Token not provided", code="NO_TOKEN")
    try:
        claims = jwt.decode(token, secret_key, algorithms=list(algorithms))
    except ExpiredSignatureError:
        raise AuthError("Token expired", code="TOKEN_EXPIRED")
    except JWTError:
        raise AuthError("Invalid token", code="INVALID_TOKEN")
    if not claims.get("sub"):
        raise AuthError("Invalid token", code="INVALID_TOKEN")
    return claims
