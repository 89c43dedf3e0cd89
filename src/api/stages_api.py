# src/api/stages_api.py
from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from starlette.concurrency import run_in_threadpool
from starlette.datastructures import UploadFile

from src.backend.storage import UploadRejected
from src.backend.tables import BackendError
from src.services.roles import can_access, require_user
from src.services.security import require_csrf
from src.utils.csv_io import dicts_to_csv_stream
from src.workflow import records, service
from src.workflow.records import PENDING, TABS, PORTAL_FIELDS
from src.workflow.stages import STAGES, Stage, get_stage

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Stages"])

RESERVED_FORM_KEYS = {"tab", "keys"}


def _stage_for(key: str, user: Dict[str, Any]) -> Stage:
    try:
        stage = get_stage(key)
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Unknown stage: {key}")
    if not can_access(user, stage.page_title):
        raise HTTPException(status_code=403, detail=f"No access to {stage.page_title}")
    return stage


def _tab(tab: str) -> str:
    t = (tab or PENDING).strip().lower()
    if t not in TABS:
        raise HTTPException(status_code=422, detail=f"tab must be one of: {', '.join(TABS)}")
    return t


def _filters(stage: Stage, params: Mapping[str, Any]) -> Dict[str, str]:
    return {f: params[f] for f in stage.filter_fields if params.get(f)}


def _view(stage: Stage, tab: str, q: Optional[str], filters: Dict[str, str]) -> Dict[str, Any]:
    try:
        return service.stage_view(stage, tab, q, filters)
    except BackendError as e:
        logger.exception("fetch failed for %s", stage.key)
        raise HTTPException(status_code=503, detail=f"Failed to load {stage.title}: {e.message}")


# --------------------------------------------------------------------
# Catalogue / master data
# --------------------------------------------------------------------
@router.get("/stages", summary="Workflow stages visible to the current user")
def list_stages(user: Dict[str, Any] = Depends(require_user)) -> Dict[str, Any]:
    items = [s.describe() for s in STAGES if can_access(user, s.page_title)]
    return {"count": len(items), "items": items}


@router.get("/master-dropdown", summary="IP / installer options")
def master_dropdown(_user: Dict[str, Any] = Depends(require_user)) -> Dict[str, Any]:
    try:
        options = service.master_options()
    except BackendError as e:
        logger.exception("master_dropdown fetch failed")
        raise HTTPException(status_code=503, detail=e.message)
    return {"count": len(options), "items": options}


# --------------------------------------------------------------------
# Stage screens
# --------------------------------------------------------------------
@router.get("/stages/{key}", summary="Pending or history rows of one stage")
def stage_rows(
    key: str,
    request: Request,
    tab: str = Query(PENDING),
    q: Optional[str] = Query(None, description="Case-insensitive search across all columns"),
    user: Dict[str, Any] = Depends(require_user),
) -> Dict[str, Any]:
    stage = _stage_for(key, user)
    return _view(stage, _tab(tab), q, _filters(stage, request.query_params))


@router.get("/stages/{key}/export", summary="CSV export of the filtered tab")
def export_stage(
    key: str,
    request: Request,
    tab: str = Query(PENDING),
    q: Optional[str] = Query(None),
    user: Dict[str, Any] = Depends(require_user),
):
    stage = _stage_for(key, user)
    t = _tab(tab)
    view = _view(stage, t, q, _filters(stage, request.query_params))
    columns: List[str] = [
        *PORTAL_FIELDS,
        *(f.name for f in stage.fields),
        *stage.extra_columns,
        "planned",
        "actual",
    ]
    return dicts_to_csv_stream(view["items"], field_order=columns, filename=f"{stage.key}_{t}.csv")


@router.post("/stages/{key}/submit", summary="Apply the edit dialog to the selected rows")
async def submit_stage(
    key: str,
    request: Request,
    user: Dict[str, Any] = Depends(require_user),
    _csrf: None = Depends(require_csrf),
) -> Dict[str, Any]:
    """
    Multipart form: ``tab``, one ``keys`` entry per selected row, the stage
    fields, and optional files under the stage's file field names.
    """
    stage = _stage_for(key, user)
    form = await request.form()
    tab = _tab(str(form.get("tab") or PENDING))
    keys = [str(k) for k in form.getlist("keys")]

    values: Dict[str, Any] = {}
    files: Dict[str, service.FilePayload] = {}
    for name, value in form.multi_items():
        if name in RESERVED_FORM_KEYS:
            continue
        if isinstance(value, UploadFile):
            if value.filename:
                files[name] = service.FilePayload(
                    file_name=value.filename,
                    content=await value.read(),
                    content_type=value.content_type,
                )
            continue
        values[name] = value

    try:
        result = await run_in_threadpool(
            service.submit_stage, stage, tab, keys, values, files, str(user.get("user_id") or "")
        )
    except service.SubmissionError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except UploadRejected as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)
    except BackendError as e:
        logger.exception("submit failed for %s", stage.key)
        raise HTTPException(status_code=503, detail=f"Failed to load {stage.title}: {e.message}")

    body = result.as_dict()
    if result.status == "FAILED":
        if result.all_missing:
            raise HTTPException(status_code=404, detail=f"Selected rows not found in {tab}")
        if result.all_duplicates and stage.duplicate_message:
            raise HTTPException(status_code=409, detail=stage.duplicate_message)
        raise HTTPException(status_code=502, detail=body["failures"][0]["error"])
    return body
