# src/api/auth_api.py
from __future__ import annotations

import logging
from typing import Any, Dict, Literal, Union, cast
from fastapi import APIRouter, HTTPException, Form, Request, Depends
from fastapi.responses import JSONResponse, RedirectResponse

from src.backend import tables
from src.backend.tables import BackendError
from src.services import config
from src.services.auth_service import (
    create_access_token,
    decode_token,
    identity_for,
    verify_and_upgrade_password,
    TOKEN_COOKIE_NAME,
)
from src.services.security import (
    CSRF_COOKIE,
    check_login_rate_limit,
    register_login_failure,
    reset_login_attempts,
    issue_csrf_token,
    require_csrf,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["Auth"])

USERS_TABLE = "users"


def _normalize_samesite(val: str) -> Literal["lax", "strict", "none"]:
    v = val.lower().strip()
    if v == "strict":
        return cast(Literal["strict"], "strict")
    if v == "none":
        return cast(Literal["none"], "none")
    return cast(Literal["lax"], "lax")


def _set_cookie(resp: Union[JSONResponse, RedirectResponse], token: str) -> None:
    resp.set_cookie(
        key=TOKEN_COOKIE_NAME,
        value=token,
        httponly=True,
        samesite=_normalize_samesite(config.AUTH_COOKIE_SAMESITE),
        secure=config.AUTH_COOKIE_SECURE,
        max_age=config.ACCESS_TOKEN_TTL_MIN * 60,
        path="/",
        domain=config.COOKIE_DOMAIN or None,
    )


# --------------------------------------------------------------------
# CSRF Token
# --------------------------------------------------------------------
@router.get("/csrf")
def get_csrf() -> JSONResponse:
    """
    Issue a CSRF token and set a readable cookie "csrf_token".
    Client JS should echo this value in the "X-CSRF-Token" header for state-changing calls.
    """
    token = issue_csrf_token()
    resp = JSONResponse({"status": "OK", "csrf_token": token})
    # Not HttpOnly so JS can read and set X-CSRF-Token
    resp.set_cookie(
        CSRF_COOKIE,
        token,
        httponly=False,
        samesite=_normalize_samesite(config.AUTH_COOKIE_SAMESITE),
        secure=config.AUTH_COOKIE_SECURE,
        path="/",
    )
    return resp


# --------------------------------------------------------------------
# Login (User ID + Password)
# --------------------------------------------------------------------
@router.post("/login")
def login(
    request: Request,
    user_id: str = Form(...),
    password: str = Form(...),
    _: Any = Depends(require_csrf),
) -> JSONResponse:
    login_name = (user_id or "").strip()
    if not login_name or not password:
        raise HTTPException(status_code=422, detail="user_id and password are required")

    user_key = f"user:{login_name.lower()}"
    check_login_rate_limit(request, user_key)

    try:
        u = tables.find_one_ci(USERS_TABLE, "user_id", login_name)
    except BackendError as e:
        logger.exception("login lookup failed")
        raise HTTPException(status_code=503, detail=f"User lookup failed: {e.message}")

    if not u:
        register_login_failure(user_key)
        raise HTTPException(status_code=401, detail="Invalid credentials")

    if str(u.get("status") or "Active").lower() != "active":
        register_login_failure(user_key)
        raise HTTPException(status_code=403, detail="User inactive")

    ok, maybe_new_hash = verify_and_upgrade_password(password, u.get("password_hash") or "")
    if not ok:
        register_login_failure(user_key)
        raise HTTPException(status_code=401, detail="Invalid credentials")

    if maybe_new_hash:
        try:
            tables.update_rows(USERS_TABLE, {"password_hash": maybe_new_hash}, "id", u["id"])
        except BackendError as e:
            logger.warning("password rehash not saved for %s: %s", login_name, e.message)

    identity: Dict[str, Any] = identity_for(u)
    resp = JSONResponse({"status": "OK", **{k: v for k, v in identity.items() if k != "sub"}})
    _set_cookie(resp, create_access_token(identity))
    reset_login_attempts(user_key)
    logger.info("login ok: %s (%s)", identity["user_id"], identity["role"])
    return resp


# --------------------------------------------------------------------
# Logout & Identity
# --------------------------------------------------------------------
@router.post("/logout")
def logout_post() -> RedirectResponse:
    resp = RedirectResponse(url="/ui/", status_code=303)
    resp.delete_cookie(TOKEN_COOKIE_NAME, path="/")
    return resp


@router.get("/logout")
def logout_get() -> RedirectResponse:
    resp = RedirectResponse(url="/ui/", status_code=302)
    resp.delete_cookie(TOKEN_COOKIE_NAME, path="/")
    return resp


@router.get("/me")
def me(request: Request) -> JSONResponse:
    token = request.cookies.get(TOKEN_COOKIE_NAME)
    if not token:
        return JSONResponse(status_code=401, content={"status": "ANON"})
    payload = decode_token(token)
    if not payload:
        return JSONResponse(status_code=401, content={"status": "INVALID"})
    return JSONResponse(status_code=200, content={"status": "OK", "identity": payload})
