from __future__ import annotations

from typing import Any, Callable, Dict, Optional

from fastapi import Depends, Header, Request

from .errors import AuthError
from .security import decode_session_token


def parse_bearer_token(authorization: Optional[str]) -> Optional[str]:
    """Extract raw token from an Authorization header value.

    Accepts values like "Bearer <token>" (case-insensitive). Returns None when
    header is missing or malformed.
    """
    if not authorization:
        return None
    val = authorization.strip()
    if not val.lower().startswith("bearer "):
        return None
    token = val.split(" ", 1)[1].strip()
    return token or None


def current_claims(
    request: Request,
    authorization: Optional[str] = Header(default=None, alias="Authorization"),
) -> Dict[str, Any]:
    """FastAPI dependency returning the verified claims of the caller's token."""
    settings = request.app.state.settings
    token = parse_bearer_token(authorization)
    return decode_session_token(token, settings.secret_key, [settings.algorithm])


def require_role(role: str) -> Callable[..., Dict[str, Any]]:
    def _checker(claims: Dict[str, Any] = Depends(current_claims)) -> Dict[str, Any]:
        if claims.get("role") != role:
            raise AuthError("Access not authorized", code="FORBIDDEN", status_code=403)
        return claims

    return _checker
