# src/main.py
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Callable

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from src.services import config

# ── Cookie guardrails BEFORE the routers read their settings ──
APP_ENV = config.APP_ENV
if APP_ENV in {"prod", "production"}:
    # Enforce: SameSite=None + Secure=True for prod
    os.environ["AUTH_COOKIE_SAMESITE"] = "none"
    os.environ["AUTH_COOKIE_SECURE"] = "1"
    config.AUTH_COOKIE_SAMESITE = "none"
    config.AUTH_COOKIE_SECURE = True
else:
    # Dev defaults: SameSite=Lax + Secure=False
    os.environ.setdefault("AUTH_COOKIE_SAMESITE", "lax")
    os.environ.setdefault("AUTH_COOKIE_SECURE", "0")

logging.basicConfig(
    level=getattr(logging, config.LOG_LEVEL, logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

# ── Import routers ──
from src.api import (
    admin_users,
    auth_api,
    dashboard_api,
    stages_api,
    ui_pages,
    health as health_api,
)
from src.utils.request_id import RequestIDMiddleware
from src.utils.security_headers import SecurityHeadersMiddleware

# ── App ──
app = FastAPI(title="Pump Installation Tracker", version="1.0.0")

app.add_middleware(SecurityHeadersMiddleware, hsts=APP_ENV in {"prod", "production"})
app.add_middleware(RequestIDMiddleware)

# Optional CORS for local dev UI testing
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost", "http://127.0.0.1", "http://localhost:5173", "http://127.0.0.1:5173"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ── APIVersionRewrite middleware: /api/v1/* -> /api/* ──
@app.middleware("http")
async def api_version_rewrite(request: Request, call_next: Callable):
    path: str = request.scope.get("path", "")
    if path.startswith("/api/v1/"):
        request.scope["path"] = "/api/" + path[len("/api/v1/"):]
    resp: Response = await call_next(request)
    return resp

# ── Startup: create directories and validate cookie guardrails ──
@app.on_event("startup")
async def on_startup() -> None:
    for p in (Path(config.STORAGE_DIR) / config.STORAGE_BUCKET, Path(config.LOG_DIR)):
        p.mkdir(parents=True, exist_ok=True)

    # Final cookie guardrails check
    if APP_ENV in {"prod", "production"}:
        if config.AUTH_COOKIE_SAMESITE != "none" or not config.AUTH_COOKIE_SECURE:
            raise RuntimeError("Cookie settings invalid for production (require SameSite=None and Secure=True).")

# ── Routers carry their full /api/... or /ui prefix ──
app.include_router(auth_api.router)
app.include_router(admin_users.router)
app.include_router(stages_api.router)
app.include_router(dashboard_api.router)
app.include_router(ui_pages.router)     # /ui/*
app.include_router(health_api.router)   # /healthz, /readyz

# Uploaded files: /storage/<bucket>/<prefix>/<file>
app.mount("/storage", StaticFiles(directory=config.STORAGE_DIR, check_dir=False), name="storage")

# Root – simple pointer to /ui/
@app.get("/")
def root() -> dict:
    return {"status": "OK", "ui": "/ui/"}
