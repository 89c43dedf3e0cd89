# src/api/admin_users.py
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Annotated
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from src.backend import tables
from src.backend.tables import BackendError
from src.services.auth_service import hash_password
from src.services.roles import require_role
from src.services.security import require_csrf
from src.workflow.stages import PAGES

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/admin/users",
    tags=["Admin Users"],
)

# ----- Annotated aliases -----
AdminOnly = Annotated[Dict[str, Any], Depends(require_role("Admin"))]
CSRF = Annotated[None, Depends(require_csrf)]

USERS_TABLE = "users"
ROLES = ("Admin", "User")
STATUSES = ("Active", "Inactive")
PUBLIC_COLUMNS = ["id", "user_name", "user_id", "role", "page_access", "status"]


class UserCreate(BaseModel):
    user_name: str
    user_id: str
    password: str
    role: str = "User"
    page_access: List[str] = []
    status: str = "Active"


class UserUpdate(BaseModel):
    user_name: Optional[str] = None
    user_id: Optional[str] = None
    password: Optional[str] = None
    role: Optional[str] = None
    page_access: Optional[List[str]] = None
    status: Optional[str] = None


def _choice(value: str, allowed: tuple, label: str) -> str:
    for option in allowed:
        if option.lower() == str(value).strip().lower():
            return option
    raise HTTPException(status_code=400, detail=f"{label} must be one of: {', '.join(allowed)}")


def _pages(pages: List[str]) -> str:
    known = {p.lower(): p for p in PAGES}
    unknown = [p for p in pages if p.strip().lower() not in known]
    if unknown:
        raise HTTPException(status_code=400, detail=f"Unknown pages: {', '.join(unknown)}")
    return ",".join(dict.fromkeys(known[p.strip().lower()] for p in pages))


def _public(row: Dict[str, Any]) -> Dict[str, Any]:
    out = {k: row.get(k) for k in PUBLIC_COLUMNS}
    out["page_access"] = [p for p in str(row.get("page_access") or "").split(",") if p]
    return out


def _backend_error(e: BackendError) -> HTTPException:
    if e.is_duplicate:
        return HTTPException(status_code=409, detail="User ID already exists")
    logger.error("users write failed: %s", e.message)
    return HTTPException(status_code=502, detail=e.message)


@router.get("/pages", summary="Pages that can be granted")
def list_pages(_current_user: AdminOnly) -> Dict[str, Any]:
    return {"pages": list(PAGES), "roles": list(ROLES), "statuses": list(STATUSES)}


@router.get("", summary="List users")
def list_users(_current_user: AdminOnly) -> Dict[str, Any]:
    try:
        rows = tables.select_rows(USERS_TABLE, columns=PUBLIC_COLUMNS, order_by="id")
    except BackendError as e:
        raise HTTPException(status_code=503, detail=e.message)
    items = [_public(r) for r in rows]
    return {"count": len(items), "items": items}


@router.post("", summary="Create user")
def create_user(payload: UserCreate, _csrf_ok: CSRF, _current_user: AdminOnly) -> Dict[str, Any]:
    if not payload.password or not str(payload.password).strip():
        raise HTTPException(status_code=400, detail="Password is required when creating a user")
    login_name = payload.user_id.strip()
    if not login_name or not payload.user_name.strip():
        raise HTTPException(status_code=400, detail="user_name and user_id are required")

    values = {
        "user_name": payload.user_name.strip(),
        "user_id": login_name,
        "password_hash": hash_password(payload.password),
        "role": _choice(payload.role, ROLES, "role"),
        "page_access": _pages(payload.page_access),
        "status": _choice(payload.status, STATUSES, "status"),
    }
    try:
        if tables.find_one_ci(USERS_TABLE, "user_id", login_name):
            raise HTTPException(status_code=409, detail="User ID already exists")
        new_id = tables.insert_row(USERS_TABLE, values)
    except BackendError as e:
        raise _backend_error(e)
    logger.info("user created: %s by %s", login_name, _current_user.get("user_id"))
    return {"status": "SUCCESS", "id": new_id}


@router.put("/{row_id}", summary="Update user")
def update_user(row_id: int, payload: UserUpdate, _csrf_ok: CSRF, _current_user: AdminOnly) -> Dict[str, Any]:
    values: Dict[str, Any] = {}
    if payload.user_name is not None:
        values["user_name"] = payload.user_name.strip()
    if payload.user_id is not None:
        values["user_id"] = payload.user_id.strip()
    if payload.role is not None:
        values["role"] = _choice(payload.role, ROLES, "role")
    if payload.page_access is not None:
        values["page_access"] = _pages(payload.page_access)
    if payload.status is not None:
        values["status"] = _choice(payload.status, STATUSES, "status")
    # Blank password in the edit dialog keeps the current one.
    if payload.password:
        values["password_hash"] = hash_password(payload.password)
    if not values:
        return {"status": "NOOP", "id": row_id}
    try:
        changed = tables.update_rows(USERS_TABLE, values, "id", row_id)
    except BackendError as e:
        raise _backend_error(e)
    return {"status": "SUCCESS", "id": row_id, "updated": changed}


@router.delete("/{row_id}", summary="Delete user")
def delete_user(row_id: int, _csrf_ok: CSRF, _current_user: AdminOnly) -> Dict[str, Any]:
    if str(row_id) == str(_current_user.get("sub")):
        raise HTTPException(status_code=400, detail="You cannot delete your own account")
    try:
        removed = tables.delete_rows(USERS_TABLE, "id", row_id)
    except BackendError as e:
        raise _backend_error(e)
    if not removed:
        raise HTTPException(status_code=404, detail="User not found")
    return {"status": "SUCCESS", "id": row_id}
