# src/services/auth_service.py
from __future__ import annotations
from typing import Any, Dict, Optional, Tuple
from datetime import datetime, timedelta, timezone
import jwt  # PyJWT
from passlib.hash import argon2
from src.services import config

TOKEN_COOKIE_NAME = "access_token"

ALG = "HS256"

def _utcnow() -> datetime:
    return datetime.now(timezone.utc)

# ───────────────────────────────────────────────────────────────────────────────
# Password hashing (Argon2)
# ───────────────────────────────────────────────────────────────────────────────
def hash_password(plaintext: str) -> str:
    return argon2.hash(plaintext)

def verify_password(plaintext: str, hashed: str) -> bool:
    try:
        return argon2.verify(plaintext, hashed)
    except (ValueError, TypeError):
        return False

def verify_and_upgrade_password(plaintext: str, hashed: str) -> Tuple[bool, Optional[str]]:
    """
    Verify and optionally upgrade hash params. Returns (ok, new_hash_or_None).
    """
    try:
        if not argon2.verify(plaintext, hashed):
            return False, None
        if argon2.needs_update(hashed):
            return True, argon2.hash(plaintext)
        return True, None
    except (ValueError, TypeError):
        return False, None

# ───────────────────────────────────────────────────────────────────────────────
# JWT access token
# ───────────────────────────────────────────────────────────────────────────────
def _encode(payload: Dict[str, Any], expires_in: timedelta) -> str:
    now = _utcnow()
    to_encode = {
        "iss": config.TOKEN_ISSUER,
        **payload,
        "iat": int(now.timestamp()),
        "exp": int((now + expires_in).timestamp()),
    }
    return jwt.encode(to_encode, config.JWT_SECRET, algorithm=ALG)

def create_access_token(identity: Dict[str, Any], ttl_minutes: Optional[int] = None) -> str:
    minutes = int(ttl_minutes if ttl_minutes is not None else config.ACCESS_TOKEN_TTL_MIN)
    return _encode({"typ": "access", **identity}, timedelta(minutes=minutes))

def decode_token(token: Optional[str]) -> Optional[Dict[str, Any]]:
    """Decode an access token; None when missing, expired, forged or of another type."""
    if not token:
        return None
    try:
        claims = jwt.decode(
            token,
            config.JWT_SECRET,
            algorithms=[ALG],
            issuer=config.TOKEN_ISSUER,
            options={"require": ["exp", "iat"]},
        )
    except jwt.PyJWTError:
        return None
    if claims.get("typ") != "access":
        return None
    return claims

def identity_for(user: Dict[str, Any]) -> Dict[str, Any]:
    """Token claims for a users row."""
    return {
        "sub": str(user.get("id")),
        "user_id": user.get("user_id"),
        "user_name": user.get("user_name"),
        "role": user.get("role") or "User",
        "page_access": parse_page_access(user.get("page_access")),
    }

def parse_page_access(raw: Any) -> list:
    if not raw:
        return []
    if isinstance(raw, (list, tuple)):
        return [str(p).strip() for p in raw if str(p).strip()]
    return [p.strip() for p in str(raw).split(",") if p.strip()]
