# src/services/roles.py
from __future__ import annotations
from typing import Callable, Optional, Set
from fastapi import Request, HTTPException, status

from src.backend import tables
from src.backend.tables import BackendError
from src.services.auth_service import decode_token, identity_for, TOKEN_COOKIE_NAME

ADMIN = "admin"
USERS_TABLE = "users"


def current_user(request: Request) -> Optional[dict]:
    """
    Token claims refreshed from the users row, so a page revoked or an account
    deactivated in Settings applies on the next request. None when signed out
    or when the account is gone or inactive.
    """
    tok = request.cookies.get(TOKEN_COOKIE_NAME)
    claims = decode_token(tok) if tok else None
    if not claims or not str(claims.get("sub") or "").isdigit():
        return None
    try:
        row = tables.find_one(USERS_TABLE, "id", int(claims["sub"]))
    except BackendError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=f"User lookup failed: {e.message}")
    if not row or str(row.get("status") or "Active").lower() != "active":
        return None
    return {**claims, **identity_for(row)}


def require_user(request: Request) -> dict:
    user = current_user(request)
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    return user


def require_role(*allowed: str) -> Callable[[Request], dict]:
    """
    Dependency factory for role-based access control.

    Use like:
        Depends(require_role("Admin"))
    """
    allowed_set: Set[str] = {r.lower() for r in allowed}

    def _dep(request: Request) -> dict:
        user = require_user(request)
        role = str(user.get("role") or "").lower()
        if allowed_set and role not in allowed_set:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient role",
            )
        return user

    return _dep


def can_access(user: Optional[dict], page: str) -> bool:
    if not user:
        return False
    if str(user.get("role") or "").lower() == ADMIN:
        return True
    pages = {str(p).strip().lower() for p in user.get("page_access") or []}
    return page.strip().lower() in pages


def require_page(page: str) -> Callable[[Request], dict]:
    """Admins pass; other users need ``page`` in their page_access list."""

    def _dep(request: Request) -> dict:
        user = require_user(request)
        if not can_access(user, page):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"No access to {page}",
            )
        return user

    return _dep
