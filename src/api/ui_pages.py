# src/api/ui_pages.py
from __future__ import annotations
from html import escape
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode
import logging

from fastapi import APIRouter, Request
from fastapi.responses import HTMLResponse, RedirectResponse

from src.backend.tables import BackendError
from src.services.roles import can_access, current_user
from src.workflow import dashboard, service
from src.workflow.records import HISTORY, PENDING, TABS
from src.workflow.stages import FILE, BOOL, DATE, STATUS, STAGES, Stage, get_stage

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/ui", tags=["UI"])

# Display columns of the stage table (portal fields first).
TABLE_COLUMNS = [
    ("reg_id", "Reg ID"),
    ("beneficiary_name", "Beneficiary"),
    ("fathers_name", "Father's Name"),
    ("village", "Village"),
    ("block", "Block"),
    ("district", "District"),
    ("pump_capacity", "Pump Capacity"),
    ("ip_name", "IP Name"),
]


def _page(title: str, body: str, user: Optional[Dict[str, Any]] = None) -> HTMLResponse:
    nav = ""
    if user:
        links = ['<a class="nav-link" href="/ui/">Home</a>']
        if can_access(user, "Dashboard"):
            links.append('<a class="nav-link" href="/ui/dashboard">Dashboard</a>')
        for s in STAGES:
            if can_access(user, s.page_title):
                links.append(f'<a class="nav-link" href="/ui/stages/{s.key}">{escape(s.title)}</a>')
        links.append('<a class="nav-link text-danger" href="/api/auth/logout">Logout</a>')
        nav = f'<nav class="nav flex-wrap border-bottom mb-3">{"".join(links)}</nav>'

    # NOTE: All CSS/JS braces are doubled {{ }} to avoid f-string parsing.
    html = f"""
<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="UTF-8" />
  <meta name="viewport" content="width=device-width,initial-scale=1.0" />
  <title>{escape(title)} · Pump Tracker</title>
  <link rel="stylesheet" href="https://cdn.jsdelivr.net/npm/bootstrap@5.3.0/dist/css/bootstrap.min.css" />
  <style>
    body {{ font-family: system-ui, -apple-system, Segoe UI, Roboto, Arial; }}
    td, th {{ white-space: nowrap; font-size: .85rem; }}
  </style>
</head>
<body class="bg-light">
  <div class="container-fluid py-3">
    {nav}
    <h3 class="mb-3">{escape(title)}</h3>
    {body}
  </div>
<script>
  async function getCsrf() {{
    const r = await fetch('/api/auth/csrf', {{ credentials: 'same-origin' }});
    const j = await r.json();
    return j.csrf_token;
  }}
</script>
</body>
</html>
    """
    return HTMLResponse(content=html)


@router.get("/", response_class=HTMLResponse)
def landing(request: Request):
    user = current_user(request)
    if not user:
        return RedirectResponse(url="/ui/login", status_code=302)
    cards: List[str] = []
    for s in STAGES:
        if can_access(user, s.page_title):
            cards.append(
                f'<li class="list-group-item"><a href="/ui/stages/{s.key}">'
                f'{s.step}. {escape(s.title)}</a></li>'
            )
    body = f"""
    <div class="alert alert-success">
      Logged in as <strong>{escape(str(user.get("user_name") or user.get("user_id") or ""))}</strong>
      ({escape(str(user.get("role") or ""))})
    </div>
    <ul class="list-group">{''.join(cards) or '<li class="list-group-item">No pages assigned</li>'}</ul>
    """
    return _page("Workflow", body, user)


@router.get("/login", response_class=HTMLResponse)
def login(request: Request):
    body = """
    <form id="loginForm" class="card card-body" style="max-width:420px">
      <label class="form-label">User ID</label>
      <input name="user_id" class="form-control mb-2" required />
      <label class="form-label">Password</label>
      <input name="password" type="password" class="form-control mb-3" required />
      <button class="btn btn-primary w-100">Login</button>
      <div id="msg" class="text-danger mt-2"></div>
    </form>
<script>
  document.getElementById('loginForm').addEventListener('submit', async (ev) => {
    ev.preventDefault();
    const csrf = await getCsrf();
    const body = new URLSearchParams(new FormData(ev.target));
    const r = await fetch('/api/auth/login', {
      method: 'POST', credentials: 'same-origin',
      headers: {'X-CSRF-Token': csrf, 'Content-Type': 'application/x-www-form-urlencoded'}, body
    });
    const j = await r.json().catch(() => ({}));
    if (!r.ok) { document.getElementById('msg').textContent = j.detail || 'Login failed'; return; }
    window.location.href = '/ui/';
  });
</script>
    """
    return _page("Login", body)


def _field_input(f) -> str:
    name = escape(f.name)
    if f.kind == FILE:
        return f'<input type="file" name="{name}" class="form-control form-control-sm" />'
    if f.kind == BOOL:
        return (
            f'<select name="{name}" class="form-select form-select-sm">'
            '<option value="0">No</option><option value="1">Yes</option></select>'
        )
    if f.kind == STATUS:
        default = escape(f.default or "")
        return f'<input name="{name}" value="{default}" class="form-control form-control-sm" />'
    kind = "date" if f.kind == DATE else "text"
    return f'<input type="{kind}" name="{name}" class="form-control form-control-sm" />'


def _stage_body(stage: Stage, view: Dict[str, Any], request: Request) -> str:
    params = dict(request.query_params)
    tab = view["tab"]

    tabs = []
    for t in TABS:
        q = urlencode({**params, "tab": t})
        active = " active" if t == tab else ""
        tabs.append(
            f'<li class="nav-item"><a class="nav-link{active}" href="?{escape(q)}">'
            f'{t.title()} ({view["counts"][t]})</a></li>'
        )

    selects = []
    for name, options in view["filter_options"].items():
        current = params.get(name, "")
        opts = ['<option value="">All</option>'] + [
            f'<option value="{escape(o)}"{" selected" if o == current else ""}>{escape(o)}</option>'
            for o in options
        ]
        selects.append(
            f'<div class="col-auto"><label class="form-label small">{escape(name)}</label>'
            f'<select name="{escape(name)}" class="form-select form-select-sm">{"".join(opts)}</select></div>'
        )

    field_cols = [(f.name, f.label) for f in stage.fields if f.kind != FILE]
    header = "".join(f"<th>{escape(label)}</th>" for _, label in TABLE_COLUMNS + field_cols)
    rows = []
    for item in view["items"]:
        cells = "".join(f"<td>{escape(str(item.get(k, '')))}</td>" for k, _ in TABLE_COLUMNS + field_cols)
        rows.append(
            f'<tr><td><input type="checkbox" name="keys" value="{escape(str(item.get("key")))}" form="editForm" /></td>'
            f"{cells}</tr>"
        )

    fields = "".join(
        f'<div class="col-md-3"><label class="form-label small">{escape(f.label)}</label>{_field_input(f)}</div>'
        for f in stage.fields
    )
    export_q = escape(urlencode(params))
    return f"""
    <ul class="nav nav-tabs mb-2">{''.join(tabs)}</ul>
    <form method="get" class="row g-2 align-items-end mb-3">
      <input type="hidden" name="tab" value="{escape(tab)}" />
      <div class="col-auto"><label class="form-label small">Search</label>
        <input name="q" value="{escape(params.get('q', ''))}" class="form-control form-control-sm" /></div>
      {''.join(selects)}
      <div class="col-auto"><button class="btn btn-sm btn-primary">Apply</button>
        <a class="btn btn-sm btn-outline-secondary" href="/api/stages/{stage.key}/export?{export_q}">CSV</a></div>
    </form>
    <div class="table-responsive bg-white border mb-3">
      <table class="table table-sm table-striped mb-0">
        <thead><tr><th></th>{header}</tr></thead>
        <tbody>{''.join(rows) or '<tr><td colspan="99" class="text-muted">No rows</td></tr>'}</tbody>
      </table>
    </div>
    <form id="editForm" class="card card-body">
      <input type="hidden" name="tab" value="{escape(tab)}" />
      <div class="row g-2">{fields}</div>
      <button class="btn btn-success mt-3">Submit selected</button>
      <div id="msg" class="mt-2"></div>
    </form>
<script>
  document.getElementById('editForm').addEventListener('submit', async (ev) => {{
    ev.preventDefault();
    const csrf = await getCsrf();
    const r = await fetch('/api/stages/{stage.key}/submit', {{
      method: 'POST', credentials: 'same-origin',
      headers: {{'X-CSRF-Token': csrf}}, body: new FormData(ev.target)
    }});
    const j = await r.json().catch(() => ({{}}));
    const msg = document.getElementById('msg');
    if (!r.ok) {{ msg.className = 'mt-2 text-danger'; msg.textContent = j.detail || 'Submit failed'; return; }}
    msg.className = 'mt-2 text-success';
    msg.textContent = j.status + ': ' + j.processed + ' updated, ' + j.failed + ' failed';
    setTimeout(() => window.location.reload(), 800);
  }});
</script>
    """


@router.get("/stages/{key}", response_class=HTMLResponse)
def stage_page(key: str, request: Request):
    user = current_user(request)
    if not user:
        return RedirectResponse(url="/ui/login", status_code=302)
    try:
        stage = get_stage(key)
    except KeyError:
        return _page("Not found", f"<p>Unknown stage {escape(key)}</p>", user)
    if not can_access(user, stage.page_title):
        return _page(stage.title, '<div class="alert alert-warning">No access to this page</div>', user)

    tab = request.query_params.get("tab", PENDING)
    tab = tab if tab in (PENDING, HISTORY) else PENDING
    filters = {f: request.query_params[f] for f in stage.filter_fields if request.query_params.get(f)}
    try:
        view = service.stage_view(stage, tab, request.query_params.get("q"), filters)
    except BackendError as e:
        logger.exception("ui fetch failed for %s", stage.key)
        return _page(stage.title, f'<div class="alert alert-danger">Failed to load: {escape(e.message)}</div>', user)
    return _page(stage.title, _stage_body(stage, view, request), user)


@router.get("/dashboard", response_class=HTMLResponse)
def dashboard_page(request: Request):
    user = current_user(request)
    if not user:
        return RedirectResponse(url="/ui/login", status_code=302)
    if not can_access(user, "Dashboard"):
        return _page("Dashboard", '<div class="alert alert-warning">No access to this page</div>', user)
    try:
        rows = dashboard.load_dashboard()
    except BackendError as e:
        logger.exception("ui dashboard failed")
        return _page("Dashboard", f'<div class="alert alert-danger">Failed to load: {escape(e.message)}</div>', user)
    header = "".join(f"<th>{escape(c)}</th>" for c in dashboard.COLUMNS)
    body_rows = "".join(
        "<tr>" + "".join(f"<td>{escape(str(r.get(c, '')))}</td>" for c in dashboard.COLUMNS) + "</tr>"
        for r in rows
    )
    body = f"""
    <a class="btn btn-sm btn-outline-secondary mb-2" href="/api/dashboard/export">CSV</a>
    <div class="table-responsive bg-white border">
      <table class="table table-sm table-striped mb-0"><thead><tr>{header}</tr></thead>
      <tbody>{body_rows}</tbody></table>
    </div>
    """
    return _page("Dashboard", body, user)
