# tests/test_stages_api.py
from __future__ import annotations
import csv
import io

import pytest

from conftest import login_as, portal_row
from src.backend import tables
from src.backend.tables import select_rows as gateway_select_rows
from src.services.security import CSRF_HEADER

pytestmark = pytest.mark.unit


@pytest.fixture
def seeded(fake_tables):
    fake_tables.seed("portal", [
        portal_row("R1"),
        portal_row("R2", district="Hardoi", block="Bilgram"),
        portal_row("R3"),
    ])
    fake_tables.seed("dispatch_material", [
        {"id": 1, "reg_id": "R1", "planned_3": "2024-04-01 09:00:00", "actual_3": None},
        {"id": 2, "reg_id": "R2", "planned_3": "2024-04-01 09:00:00", "actual_3": None},
        {"id": 3, "reg_id": "R3", "planned_3": "2024-04-01 09:00:00", "actual_3": "2024-04-02 11:00:00"},
    ])
    fake_tables.seed("work_order", [
        {"id": 1, "reg_id": "R1", "planned_1": "2024-04-01", "actual_1": None},
        {"id": 2, "reg_id": "R2", "planned_1": "2024-04-01", "actual_1": "2024-04-03", "work_order_no": "WO-7"},
    ])
    return fake_tables


def _submit(client, key, data, files=None, csrf=None):
    headers = {CSRF_HEADER: csrf if csrf is not None else client.csrf}
    return client.post(f"/api/stages/{key}/submit", data=data, files=files, headers=headers)


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------
def test_stage_endpoints_require_login(client, seeded):
    assert client.get("/api/stages").status_code == 401
    assert client.get("/api/stages/dispatch").status_code == 401


def test_list_stages_follows_page_access(client, seeded):
    login_as(client, "User", pages=["Dispatch & Receiving", "Survey"])
    keys = [s["key"] for s in client.get("/api/stages").json()["items"]]
    assert keys == ["sanction", "dispatch"]


def test_admin_sees_every_stage(admin_client):
    body = admin_client.get("/api/stages").json()
    assert body["count"] == 10
    assert body["items"][0]["key"] == "work-order"
    assert body["items"][0]["page"] == "Work order"


def test_pending_and_history_tabs(admin_client, seeded):
    pending = admin_client.get("/api/stages/dispatch").json()
    assert pending["counts"] == {"pending": 2, "history": 1}
    assert [i["reg_id"] for i in pending["items"]] == ["R1", "R2"]
    assert pending["items"][0]["beneficiary_name"] == "Beneficiary R1"

    history = admin_client.get("/api/stages/dispatch", params={"tab": "history"}).json()
    assert [i["reg_id"] for i in history["items"]] == ["R3"]
    assert history["items"][0]["actual"] == "2024-04-02 11:00:00"


def test_search_and_filters_from_query(admin_client, seeded):
    body = admin_client.get("/api/stages/dispatch", params={"district": "Hardoi"}).json()
    assert [i["reg_id"] for i in body["items"]] == ["R2"]
    assert body["filter_options"]["district"] == ["Hardoi", "Sitapur"]

    body = admin_client.get("/api/stages/dispatch", params={"q": "BILGRAM"}).json()
    assert [i["reg_id"] for i in body["items"]] == ["R2"]

    body = admin_client.get("/api/stages/dispatch", params={"q": "bilgram", "district": "Sitapur"}).json()
    assert body["items"] == []


def test_unknown_stage_and_bad_tab(admin_client, seeded):
    assert admin_client.get("/api/stages/nope").status_code == 404
    assert admin_client.get("/api/stages/dispatch", params={"tab": "archive"}).status_code == 422


def test_page_access_is_enforced(client, seeded):
    login_as(client, "User", pages=["Installation"])
    assert client.get("/api/stages/dispatch").status_code == 403
    assert client.get("/api/stages/installation").status_code == 200


def test_backend_failure_on_fetch_is_503(admin_client, seeded):
    seeded.fail_on["dispatch_material"] = "Can't connect to MySQL server"
    r = admin_client.get("/api/stages/dispatch")
    assert r.status_code == 503
    assert "Can't connect" in r.json()["detail"]


def test_unconfigured_database_on_fetch_is_503(admin_client, monkeypatch):
    monkeypatch.setattr(tables, "select_rows", gateway_select_rows)
    for name in ("MYSQL_URL", "MYSQLUSER", "MYSQLPASSWORD", "DB_USER", "DB_PASSWORD"):
        monkeypatch.delenv(name, raising=False)
    r = admin_client.get("/api/stages/dispatch")
    assert r.status_code == 503
    assert "credentials not set" in r.json()["detail"]


def test_export_csv(admin_client, seeded):
    r = admin_client.get("/api/stages/dispatch/export", params={"tab": "history"})
    assert r.status_code == 200
    assert r.headers["content-type"].startswith("text/csv")
    assert "dispatch_history.csv" in r.headers["content-disposition"]
    rows = list(csv.DictReader(io.StringIO(r.text)))
    assert [row["reg_id"] for row in rows] == ["R3"]
    assert rows[0]["actual"] == "2024-04-02 11:00:00"
    assert "invoice_no" in rows[0]


def test_master_dropdown(admin_client, fake_tables):
    fake_tables.seed("master_dropdown", [{"installer_name": "Shakti"}, {"installer_name": "Rotomag"}])
    assert admin_client.get("/api/master-dropdown").json() == {"count": 2, "items": ["Rotomag", "Shakti"]}


# ---------------------------------------------------------------------------
# Submit
# ---------------------------------------------------------------------------
def test_submit_requires_csrf(admin_client, seeded):
    r = _submit(admin_client, "dispatch", {"keys": ["1"]}, csrf="")
    assert r.status_code == 403
    assert seeded.writes() == []


def test_bulk_submit(admin_client, seeded):
    r = _submit(admin_client, "dispatch", {"tab": "pending", "keys": ["1", "2"], "invoice_no": "INV-1"})
    assert r.status_code == 200
    body = r.json()
    assert body["status"] == "SUCCESS"
    assert body["processed"] == 2
    assert seeded.by("dispatch_material", "id", 1)["invoice_no"] == "INV-1"
    assert seeded.by("dispatch_material", "id", 2)["invoice_no"] == "INV-1"

    after = admin_client.get("/api/stages/dispatch").json()
    assert after["counts"] == {"pending": 0, "history": 3}


def test_submit_with_file(admin_client, seeded):
    png = b"\x89PNG\r\n\x1a\n" + b"\x00" * 16
    files = {"material_chalan_link": ("challan.png", png, "image/png")}
    r = _submit(admin_client, "dispatch", {"keys": ["1"]}, files=files)
    assert r.status_code == 200
    url = r.json()["uploaded"]["material_chalan_link"]
    assert seeded.by("dispatch_material", "id", 1)["material_chalan_link"] == url


def test_submit_rejects_unsupported_file(admin_client, seeded):
    files = {"material_chalan_link": ("notes.txt", b"hello", "text/plain")}
    r = _submit(admin_client, "dispatch", {"keys": ["1"]}, files=files)
    assert r.status_code == 400
    assert seeded.writes() == []


def test_submit_without_selection_is_400(admin_client, seeded):
    r = _submit(admin_client, "dispatch", {"invoice_no": "X"})
    assert r.status_code == 400
    assert "Select at least one row" in r.json()["detail"]


def test_submit_unknown_keys_is_404(admin_client, seeded):
    r = _submit(admin_client, "dispatch", {"keys": ["3"], "tab": "pending"})
    assert r.status_code == 404


def test_duplicate_work_order_number_is_409(admin_client, seeded):
    seeded.unique["work_order"] = ["work_order_no"]
    r = _submit(admin_client, "work-order", {"keys": ["R1"], "work_order_no": "WO-7"})
    assert r.status_code == 409
    assert "Work Order Number already exists" in r.json()["detail"]


def test_partial_submit_reports_failures(admin_client, seeded):
    r = _submit(admin_client, "dispatch", {"keys": ["1", "77"]})
    assert r.status_code == 200
    body = r.json()
    assert body["status"] == "PARTIAL"
    assert body["failures"] == [{"key": "77", "error": "Not found in pending", "duplicate": False, "missing": True}]


def test_submit_all_rows_failing_is_502(admin_client, seeded, monkeypatch):
    from src.backend import tables
    from src.backend.tables import BackendError

    def broken(*args, **kwargs):
        raise BackendError("Lock wait timeout exceeded", code=1205)

    monkeypatch.setattr(tables, "update_rows", broken)
    r = _submit(admin_client, "dispatch", {"keys": ["1", "2"]})
    assert r.status_code == 502
    assert r.json()["detail"] == "Lock wait timeout exceeded"


def test_user_without_page_cannot_submit(client, seeded):
    csrf = login_as(client, "User", pages=["Installation"])
    r = client.post("/api/stages/dispatch/submit", data={"keys": ["1"]}, headers={CSRF_HEADER: csrf})
    assert r.status_code == 403
    assert seeded.writes() == []
