from __future__ import annotations
import os

def env_bool(name: str, default: bool) -> bool:
    v = os.getenv(name)
    if v is None: return default
    try:
        return bool(int(v))
    except Exception:
        return str(v).strip().lower() in ("true", "yes", "y", "on")

def env_int(name: str, default: int) -> int:
    v = os.getenv(name)
    if v is None: return default
    try:
        return int(v)
    except Exception:
        return default

def env_str(name: str, default: str) -> str:
    v = os.getenv(name)
    return v if v is not None else default

# Environment
APP_ENV = env_str("APP_ENV", env_str("ENV", "development")).lower().strip()  # development | production

# JWT & Cookies
JWT_SECRET = env_str("JWT_SECRET", "dev-secret-please-change")
ACCESS_TOKEN_TTL_MIN = env_int("ACCESS_TOKEN_TTL_MIN", 12 * 60)  # one working day
TOKEN_ISSUER = env_str("TOKEN_ISSUER", "pumptrack.local")

AUTH_COOKIE_SECURE = env_bool("AUTH_COOKIE_SECURE", False)
AUTH_COOKIE_SAMESITE = env_str("AUTH_COOKIE_SAMESITE", "lax").lower()  # lax|strict|none
COOKIE_DOMAIN = os.getenv("COOKIE_DOMAIN")  # optional in local

# Login rate limits (window & caps)
RL_LOGIN_IP_MAX = env_int("RL_LOGIN_IP_MAX", 50)      # per window
RL_LOGIN_USER_MAX = env_int("RL_LOGIN_USER_MAX", 10)  # per window
RL_LOGIN_WINDOW_SEC = env_int("RL_LOGIN_WINDOW_SEC", 15 * 60)
RATE_LIMIT_DISABLED = env_bool("RATE_LIMIT_DISABLED", False)

# Object storage (local bucket directory served under /storage)
STORAGE_DIR = env_str("STORAGE_DIR", "data/storage")
STORAGE_BUCKET = env_str("STORAGE_BUCKET", "Image_bucket")
PUBLIC_BASE_URL = env_str("PUBLIC_BASE_URL", "").rstrip("/")
UPLOAD_MAX_BYTES = env_int("UPLOAD_MAX_BYTES", 10 * 1024 * 1024)

# Logging
LOG_LEVEL = env_str("LOG_LEVEL", "INFO").upper()
LOG_DIR = env_str("LOG_DIR", "logs")
