# src/api/dashboard_api.py
from __future__ import annotations

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException

from src.backend.tables import BackendError
from src.services.roles import require_page
from src.utils.csv_io import dicts_to_csv_stream
from src.workflow import dashboard

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/dashboard", tags=["Dashboard"])


def _load():
    try:
        return dashboard.load_dashboard()
    except BackendError as e:
        logger.exception("dashboard aggregation failed")
        raise HTTPException(status_code=503, detail=f"Dashboard aggregation failed: {e.message}")


@router.get("", summary="Per IP / district programme summary")
def get_dashboard(_user: Dict[str, Any] = Depends(require_page("Dashboard"))) -> Dict[str, Any]:
    rows = _load()
    return {"count": len(rows), "items": rows, "totals": dashboard.totals(rows)}


@router.get("/export", summary="Programme summary as CSV")
def export_dashboard(_user: Dict[str, Any] = Depends(require_page("Dashboard"))):
    return dicts_to_csv_stream(_load(), field_order=dashboard.COLUMNS, filename="dashboard.csv")
