"""Bearer-token sessions and FastAPI auth dependencies."""

from __future__ import annotations

import time
from typing import Annotated

import jwt
from fastapi import Depends, HTTPException, Request
from pydantic import BaseModel, ValidationError

from entitlement_gate.models import ADMIN_ROLES, UserRole, normalize_role

TOKEN_TYPE = "entitlement-gate-session"


class SessionClaims(BaseModel):
    """Claims carried by a session token."""

    sub: str
    role: UserRole = UserRole.USER
    type: str = TOKEN_TYPE
    iat: int
    exp: int


class TokenService:
    """Issues and verifies HS256 session tokens."""

    def __init__(self, signing_key: str, ttl_seconds: int = 8 * 3600) -> None:
        self._signing_key = signing_key
        self._ttl = ttl_seconds

    def issue(self, user_id: str, role: UserRole | str = UserRole.USER) -> str:
        now = int(time.time())
        claims = {
            "sub": user_id,
            "role": normalize_role(role).value,
            "type": TOKEN_TYPE,
            "iat": now,
            "exp": now + self._ttl,
        }
        return jwt.encode(claims, self._signing_key, algorithm="HS256")

    def validate(self, token: str) -> SessionClaims | None:
        """Return the claims of a valid token, or None."""
        try:
            payload = jwt.decode(token, self._signing_key, algorithms=["HS256"])
            claims = SessionClaims(**payload)
        except (jwt.InvalidTokenError, ValidationError, TypeError):
            return None
        if claims.type != TOKEN_TYPE:
            return None
        return claims


# Module-level service reference, set by app factory.
_token_service: TokenService | None = None


def init_auth(service: TokenService) -> None:
    """Called by the app factory to inject the token service."""
    global _token_service  # noqa: PLW0603
    _token_service = service


def _get_token_service() -> TokenService:
    assert _token_service is not None, "TokenService not initialized"
    return _token_service


def optional_auth(request: Request) -> SessionClaims | None:
    """Return session claims if a valid Bearer token is present."""
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        return None
    return _get_token_service().validate(auth_header[7:])


def require_auth(
    claims: Annotated[SessionClaims | None, Depends(optional_auth)],
) -> SessionClaims:
    """Require a valid session. Returns 401 if missing/invalid."""
    if claims is None:
        raise HTTPException(status_code=401, detail="Authentication required")
    return claims


def require_admin(
    claims: Annotated[SessionClaims, Depends(require_auth)],
) -> SessionClaims:
    """Require the admin or superadmin role."""
    if claims.role not in ADMIN_ROLES:
        raise HTTPException(status_code=403, detail="Admin access required")
    return claims
