# src/services/security.py
from __future__ import annotations
import os
import secrets
import time
from typing import Dict, List
from fastapi import HTTPException, Request

from src.services import config

# =============================== CSRF =========================================
CSRF_COOKIE = "csrf_token"
CSRF_HEADER = "X-CSRF-Token"

def issue_csrf_token() -> str:
    return secrets.token_urlsafe(24)

SAFE_METHODS = {'GET', 'HEAD', 'OPTIONS'}
def require_csrf(request: Request) -> None:
    """
    CSRF protection with three modes:
      - Local dev bypass when CSRF_DISABLED=1
      - Test mode (TEST_MODE=1): require non-empty header only
      - Otherwise strict double-submit (header must match cookie)
    """
    if request.method.upper() in SAFE_METHODS:
        return

    if os.getenv("CSRF_DISABLED", "0") == "1":
        return

    hdr = request.headers.get(CSRF_HEADER)
    if os.getenv("TEST_MODE", "0") == "1":
        if not hdr:
            raise HTTPException(status_code=403, detail="CSRF token missing")
        return

    cookie = request.cookies.get(CSRF_COOKIE)
    if not hdr or not cookie or not secrets.compare_digest(hdr, cookie):
        raise HTTPException(status_code=403, detail="CSRF token invalid")

# ========================== LOGIN RATE LIMIT ==================================
# Sliding windows
_login_ip: Dict[str, List[float]] = {}
_login_user: Dict[str, List[float]] = {}

def _prune(store: Dict[str, List[float]], key: str, now: float, window: int) -> None:
    store[key] = [t for t in store.get(key, []) if t >= now - window]

def check_login_rate_limit(request: Request, user_key: str) -> None:
    """
    Called before a login attempt; throttles by IP and by user key.
    """
    if config.RATE_LIMIT_DISABLED:
        return
    now = time.time()
    window = config.RL_LOGIN_WINDOW_SEC
    ip = request.client.host if request.client else "unknown"

    _prune(_login_ip, ip, now, window)
    if len(_login_ip.get(ip, [])) >= config.RL_LOGIN_IP_MAX:
        raise HTTPException(status_code=429, detail="Too many login attempts from this IP")
    _login_ip.setdefault(ip, []).append(now)

    _prune(_login_user, user_key, now, window)
    if len(_login_user.get(user_key, [])) >= config.RL_LOGIN_USER_MAX:
        raise HTTPException(status_code=429, detail="Too many login attempts for this user")

def register_login_failure(user_key: str) -> None:
    if config.RATE_LIMIT_DISABLED:
        return
    now = time.time()
    _prune(_login_user, user_key, now, config.RL_LOGIN_WINDOW_SEC)
    _login_user.setdefault(user_key, []).append(now)

def reset_login_attempts(user_key: str) -> None:
    _login_user.pop(user_key, None)

def reset_all_limits() -> None:
    _login_ip.clear()
    _login_user.clear()
