# src/api/health.py
from __future__ import annotations
from fastapi import APIRouter, HTTPException
from typing import Dict, Any
import logging

from src.backend import db, storage

logger = logging.getLogger(__name__)

router = APIRouter(prefix="", tags=["Health"])

@router.get("/healthz")
def healthz() -> Dict[str, Any]:
    # App is up
    return {"status": "ok", "service": "pumptrack"}

@router.get("/readyz")
def readyz() -> Dict[str, Any]:
    # DB ping
    try:
        db.ping()
    except Exception as e:
        logger.warning("readiness: DB ping failed: %s", e)
        raise HTTPException(status_code=503, detail=f"DB ping failed: {e}")

    # Storage bucket exists and is writable
    root = storage.bucket_root()
    try:
        root.mkdir(parents=True, exist_ok=True)
        marker = root / ".writable.tmp"
        marker.write_text("ok", encoding="utf-8")
        marker.unlink(missing_ok=True)
    except OSError as e:
        raise HTTPException(status_code=503, detail=f"Storage check failed: {root} ({e})")

    return {"status": "ok", "db": "ok", "storage": str(root)}
