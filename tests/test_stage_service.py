# tests/test_stage_service.py
# Fetch/submit behaviour of the stage service against the in-memory tables.
from __future__ import annotations
import json
from datetime import datetime
from pathlib import Path

import pytest

from conftest import portal_row
from src.backend import storage
from src.services import config
from src.workflow import service
from src.workflow.service import FilePayload, SubmissionError
from src.workflow.stages import get_stage

pytestmark = pytest.mark.unit

NOW = datetime(2024, 5, 1, 12, 30, 0)
PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32


@pytest.fixture
def dispatch_data(fake_tables):
    fake_tables.seed("portal", [portal_row("R1"), portal_row("R2"), portal_row("R3", district="Hardoi")])
    fake_tables.seed("dispatch_material", [
        {"id": 1, "reg_id": "R1", "planned_3": "2024-04-01 09:00:00", "actual_3": None},
        {"id": 2, "reg_id": "R2", "planned_3": "2024-04-01 09:00:00", "actual_3": None},
        {"id": 3, "reg_id": "R3", "planned_3": "2024-04-01 09:00:00", "actual_3": "2024-04-03 10:00:00"},
        {"id": 4, "reg_id": "R4", "planned_3": None, "actual_3": None},
    ])
    return fake_tables


def test_fetch_stage_queries_portal_for_stage_reg_ids_only(dispatch_data):
    buckets = service.fetch_stage(get_stage("dispatch"))
    assert [i["id"] for i in buckets.pending] == [1, 2]
    assert [i["id"] for i in buckets.history] == [3]
    assert buckets.history[0]["district"] == "Hardoi"


def test_stage_view_counts_and_filter_options(dispatch_data):
    view = service.stage_view(get_stage("dispatch"), "pending", search="r2", filters={"district": "Sitapur"})
    assert view["counts"] == {"pending": 2, "history": 1}
    assert [i["reg_id"] for i in view["items"]] == ["R2"]
    assert view["filter_options"]["reg_id"] == ["R1", "R2"]


def test_stage_view_ignores_unknown_filter_names(dispatch_data):
    view = service.stage_view(get_stage("dispatch"), "pending", filters={"beneficiary_name": "nobody"})
    assert view["total"] == 2


def test_bulk_submit_applies_identical_values(dispatch_data):
    form = {"invoice_no": "INV-9", "plan_date": "2024-04-20", "way_bill_no": ""}
    result = service.submit_stage(get_stage("dispatch"), "pending", ["1", "2"], form, now=NOW)

    assert result.status == "SUCCESS"
    assert result.processed == ["1", "2"]
    writes = dispatch_data.writes("dispatch_material")
    assert len(writes) == 2
    first, second = writes[0][2], writes[1][2]
    assert first == second
    assert first["invoice_no"] == "INV-9"
    assert first["plan_date"] == "2024-04-20"
    assert first["way_bill_no"] is None
    assert first["dispatched_plan"] == "Done"
    assert first["actual_3"] == "2024-05-01 12:30:00"
    assert "material_chalan_link" not in first
    assert [w[4] for w in writes] == [1, 2]


def test_once_policy_keeps_existing_actual(dispatch_data):
    result = service.submit_stage(get_stage("dispatch"), "history", ["3"], {"invoice_no": "X"}, now=NOW)
    assert result.status == "SUCCESS"
    assert "actual_3" not in dispatch_data.writes()[0][2]
    assert dispatch_data.by("dispatch_material", "id", 3)["actual_3"] == "2024-04-03 10:00:00"


def test_rows_outside_the_tab_are_reported(dispatch_data):
    result = service.submit_stage(get_stage("dispatch"), "pending", ["1", "3", "99"], {}, now=NOW)
    assert result.status == "PARTIAL"
    assert result.processed == ["1"]
    assert {f.key for f in result.failures} == {"3", "99"}
    assert all(f.missing for f in result.failures)


def test_nothing_selected_is_rejected(dispatch_data):
    with pytest.raises(SubmissionError):
        service.submit_stage(get_stage("dispatch"), "pending", [], {"invoice_no": "X"})
    assert dispatch_data.writes() == []


def test_invalid_date_is_rejected_before_any_write(dispatch_data):
    with pytest.raises(SubmissionError, match="Plan Date"):
        service.submit_stage(get_stage("dispatch"), "pending", ["1", "2"], {"plan_date": "31/31/2024"})
    assert dispatch_data.writes() == []


def test_file_is_uploaded_once_and_shared(dispatch_data, monkeypatch):
    calls = []
    real_upload = storage.upload

    def counting_upload(*args, **kwargs):
        calls.append(args)
        return real_upload(*args, **kwargs)

    monkeypatch.setattr(storage, "upload", counting_upload)
    files = {"material_chalan_link": FilePayload("challan.png", PNG, "image/png")}
    result = service.submit_stage(get_stage("dispatch"), "pending", ["1", "2"], {}, files, now=NOW)

    assert len(calls) == 1
    url = result.uploaded["material_chalan_link"]
    assert url.startswith("http://files.test/storage/Image_bucket/challan/")
    assert url.endswith("_challan.png")
    assert {w[2]["material_chalan_link"] for w in dispatch_data.writes()} == {url}
    stored = Path(config.STORAGE_DIR) / config.STORAGE_BUCKET / url.split("/Image_bucket/", 1)[1]
    assert stored.read_bytes() == PNG


def test_partial_backend_failure_keeps_successful_rows(dispatch_data, monkeypatch):
    real_update = dispatch_data.update_rows

    def flaky(table, values, key_column, key_value):
        if key_value == 2:
            raise service.BackendError("Lock wait timeout exceeded", code=1205)
        return real_update(table, values, key_column, key_value)

    monkeypatch.setattr(service.tables, "update_rows", flaky)
    result = service.submit_stage(get_stage("dispatch"), "pending", ["1", "2"], {"invoice_no": "A"}, now=NOW)

    assert result.status == "PARTIAL"
    assert result.processed == ["1"]
    assert result.failures[0].error == "Lock wait timeout exceeded"
    assert dispatch_data.by("dispatch_material", "id", 1)["invoice_no"] == "A"


def test_submission_is_written_to_audit_log(dispatch_data):
    service.submit_stage(get_stage("dispatch"), "pending", ["1"], {}, operator="op1", now=NOW)
    lines = (Path(config.LOG_DIR) / "submissions.jsonl").read_text(encoding="utf-8").splitlines()
    entry = json.loads(lines[-1])
    assert entry["stage"] == "dispatch"
    assert entry["operator"] == "op1"
    assert entry["processed"] == 1
    assert (Path(config.LOG_DIR) / "submissions.csv").exists()


# ---------------------------------------------------------------------------
# Stage-specific rules
# ---------------------------------------------------------------------------
def test_work_order_duplicate_number(fake_tables):
    # databases created before the work-order number index still carry a unique key
    fake_tables.unique["work_order"] = ["work_order_no"]
    fake_tables.seed("portal", [portal_row("R1"), portal_row("R2")])
    fake_tables.seed("work_order", [
        {"id": 1, "reg_id": "R1", "planned_1": "2024-04-01", "actual_1": None},
        {"id": 2, "reg_id": "R2", "planned_1": "2024-04-01", "actual_1": None, "work_order_no": "WO-1"},
    ])
    result = service.submit_stage(get_stage("work-order"), "pending", ["R1"], {"work_order_no": "WO-1"}, now=NOW)
    assert result.status == "FAILED"
    assert result.all_duplicates
    assert fake_tables.writes("work_order")[0][3:] == ("reg_id", "R1")


def test_work_order_blank_number_is_written_as_null(fake_tables):
    fake_tables.seed("work_order", [
        {"id": 1, "reg_id": "R1", "planned_1": "2024-04-01", "actual_1": None},
        {"id": 2, "reg_id": "R2", "planned_1": "2024-04-01", "actual_1": None},
    ])
    fake_tables.unique["work_order"] = ["work_order_no"]
    form = {"work_order_no": "  ", "work_order_date": "2024-04-10"}
    result = service.submit_stage(get_stage("work-order"), "pending", ["R1", "R2"], form, now=NOW)
    assert result.status == "SUCCESS"
    assert [w[2]["work_order_no"] for w in fake_tables.writes("work_order")] == [None, None]


def test_work_order_number_shared_by_bulk_selection(fake_tables):
    fake_tables.seed("work_order", [
        {"id": 1, "reg_id": "R1", "planned_1": "2024-04-01", "actual_1": None},
        {"id": 2, "reg_id": "R2", "planned_1": "2024-04-01", "actual_1": None},
    ])
    result = service.submit_stage(get_stage("work-order"), "pending", ["R1", "R2"], {"work_order_no": "WO-7"}, now=NOW)
    assert result.status == "SUCCESS"
    assert {r["work_order_no"] for r in fake_tables.rows("work_order")} == {"WO-7"}


def test_sanction_uses_survey_date_and_computes_delay(fake_tables):
    fake_tables.seed("portal", [portal_row("R1")])
    fake_tables.seed("survey", [{"id": 1, "reg_id": "R1", "planned_2": "2024-04-01 09:00:00", "actual_2": None}])
    form = {"survey_dt": "2024-04-04", "is_approved": "true", "surveyor_name": "Vikas"}
    service.submit_stage(get_stage("sanction"), "pending", ["R1"], form, now=NOW)

    values = fake_tables.writes("survey")[0][2]
    assert values["actual_2"] == "2024-04-04"
    assert values["survey_dt"] == "2024-04-04"
    assert values["delay_2"] == 3
    assert values["is_approved"] == 1
    assert values["survey_status"] == "Completed"


def test_sanction_without_date_uses_now(fake_tables):
    fake_tables.seed("survey", [{"id": 1, "reg_id": "R1", "planned_2": "2024-04-01 09:00:00", "actual_2": None}])
    service.submit_stage(get_stage("sanction"), "pending", ["R1"], {}, now=NOW)
    values = fake_tables.writes("survey")[0][2]
    assert values["actual_2"] == "2024-05-01 12:30:00"
    assert values["delay_2"] == 30


def test_sanction_history_edit_keeps_survey_date(fake_tables):
    fake_tables.seed("survey", [{
        "id": 1, "reg_id": "R1", "planned_2": "2024-04-01 09:00:00", "actual_2": "2024-04-04",
        "survey_dt": "2024-04-04", "delay_2": 3,
    }])
    result = service.submit_stage(get_stage("sanction"), "history", ["R1"], {"surveyor_name": "X"}, now=NOW)
    assert result.status == "SUCCESS"
    values = fake_tables.writes("survey")[0][2]
    assert values["surveyor_name"] == "X"
    assert "survey_dt" not in values
    assert "actual_2" not in values
    assert "delay_2" not in values
    row = fake_tables.by("survey", "id", 1)
    assert (row["actual_2"], row["delay_2"]) == ("2024-04-04", 3)


def test_sanction_history_edit_with_blank_date_restamps(fake_tables):
    fake_tables.seed("survey", [{
        "id": 1, "reg_id": "R1", "planned_2": "2024-04-01 09:00:00", "actual_2": "2024-04-04", "survey_dt": "2024-04-04",
    }])
    service.submit_stage(get_stage("sanction"), "history", ["R1"], {"survey_dt": ""}, now=NOW)
    values = fake_tables.writes("survey")[0][2]
    assert values["survey_dt"] == values["actual_2"] == "2024-05-01 12:30:00"
    assert values["delay_2"] == 30


def test_ip_payment_total_and_updated_columns(fake_tables):
    fake_tables.seed("ip_payment", [{"id": 8, "reg_id": "R1", "planned_11": "2024-04-01", "actual_11": None}])
    form = {"ip_payment_per_installation": "2500", "gst_18_percent": "18"}
    service.submit_stage(get_stage("ip-payment"), "pending", ["8"], form, now=NOW)
    values = fake_tables.writes("ip_payment")[0][2]
    assert values["total_amount_payment_to_ip"] == "2950.00"
    assert values["installation_payment_to_ip"] == "Done"


def test_ip_payment_edit_without_amounts_keeps_total(fake_tables):
    fake_tables.seed("ip_payment", [{
        "id": 8, "reg_id": "R1", "planned_11": "2024-04-01", "actual_11": "2024-04-20",
        "ip_payment_per_installation": "2500", "gst_18_percent": "18", "total_amount_payment_to_ip": "2950.00",
    }])
    result = service.submit_stage(get_stage("ip-payment"), "history", ["8"], {"bill_send_date": "2024-05-01"}, now=NOW)
    assert result.status == "SUCCESS"
    assert "total_amount_payment_to_ip" not in fake_tables.writes("ip_payment")[0][2]
    assert fake_tables.by("ip_payment", "id", 8)["total_amount_payment_to_ip"] == "2950.00"


def test_ip_payment_total_uses_stored_amount_for_missing_input(fake_tables):
    fake_tables.seed("ip_payment", [{
        "id": 8, "reg_id": "R1", "planned_11": "2024-04-01", "actual_11": "2024-04-20",
        "ip_payment_per_installation": "2500", "gst_18_percent": "18", "total_amount_payment_to_ip": "2950.00",
    }])
    service.submit_stage(get_stage("ip-payment"), "history", ["8"], {"gst_18_percent": "12"}, now=NOW)
    assert fake_tables.writes("ip_payment")[0][2]["total_amount_payment_to_ip"] == "2800.00"


def test_portal_update_touches_updated_at(fake_tables):
    fake_tables.seed("portal_update", [{"id": 1, "reg_id": "R1", "planned_5": "2024-04-01", "actual_5": None}])
    service.submit_stage(get_stage("portal-update"), "pending", ["R1"], {"latitude": "26.5", "longitude": ""}, now=NOW)
    values = fake_tables.writes("portal_update")[0][2]
    assert values["latitude"] == 26.5
    assert values["longitude"] is None
    assert values["updated_at"] == "2024-05-01 12:30:00"


def test_beneficiary_share_updates_existing_row(fake_tables):
    fake_tables.seed("portal", [portal_row("R1")])
    fake_tables.seed("beneficiary_share", [{"id": 3, "reg_id": "R1", "planned_9": "2024-04-01", "actual_9": None}])
    form = {"farmer_share_amt": "1500.50", "payment_mode": "UPI"}
    result = service.submit_stage(get_stage("beneficiary-share"), "pending", ["R1"], form, now=NOW)

    assert result.status == "SUCCESS"
    (op, table, values, key_column, key_value) = fake_tables.writes("beneficiary_share")[0]
    assert (op, key_column, key_value) == ("update", "id", 3)
    assert values["farmer_share_amt"] == "1500.50"
    assert values["payment_status"] == "Pending"
    assert values["actual_9"] == "2024-05-01 12:30:00"


def test_beneficiary_share_inserts_when_row_vanished(fake_tables, monkeypatch):
    fake_tables.seed("portal", [portal_row("R1")])
    fake_tables.seed("beneficiary_share", [{"id": 3, "reg_id": "R1", "planned_9": "2024-04-01", "actual_9": None}])
    # Row deleted between listing and saving.
    monkeypatch.setattr(service.tables, "find_one", lambda table, column, value: None)
    service.submit_stage(get_stage("beneficiary-share"), "pending", ["R1"], {"bank_name": "SBI"}, now=NOW)

    op, table, values = fake_tables.writes("beneficiary_share")[0]
    assert op == "insert"
    assert values["reg_id"] == "R1"
    assert values["serial_no"] == "S-R1"
    assert values["bank_name"] == "SBI"


def test_master_options(fake_tables):
    fake_tables.seed("master_dropdown", [
        {"installer_name": "Shakti"},
        {"name": "Rotomag"},
        {"installer_name": "", "label": "Kirloskar"},
        {"installer_name": "Shakti"},
    ])
    assert service.master_options() == ["Kirloskar", "Rotomag", "Shakti"]
