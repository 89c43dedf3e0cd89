# src/workflow/dashboard.py
"""
Programme summary: every portal beneficiary grouped by (IP, district) with
per-stage completion counts and share totals.

Stage tables are keyed by reg_id; when a reg_id repeats in a stage table
the last row wins.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Mapping, Tuple

import pandas as pd

from src.backend import tables
from src.workflow import records

logger = logging.getLogger(__name__)

UNKNOWN = "Unknown"

# output column -> (table, source column, rule); rule is "filled", "done" or "sum"
METRICS: Dict[str, Tuple[str, str, str]] = {
    "surveyDone": ("survey", "actual_2", "filled"),
    "dispatchPlanDone": ("dispatch_material", "dispatched_plan", "done"),
    "dispatchPlanDateCount": ("dispatch_material", "plan_date", "filled"),
    "materialDispatchDone": ("dispatch_material", "material_received", "done"),
    "materialDispatchDateCount": ("dispatch_material", "material_received_date", "filled"),
    "installationDone": ("installation", "actual_4", "filled"),
    "photoUploadedMaster": ("portal_update", "photo_link", "filled"),
    "upadSupplyDateCount": ("portal_update", "supply_aapurti_date", "filled"),
    "upPortalPhotoUploaded": ("portal_update", "photo_rms_data_pending", "filled"),
    "scadaLotDone": ("portal_update", "scadalot_creation", "done"),
    "rmsMappingDone": ("portal_update", "rms_data_mail_to_rotommag", "done"),
    "sevenDaysVerification": ("portal_update", "days_7_verification", "done"),
    "invoiceDone": ("invoicing", "raisoni_invoice_no", "filled"),
    "laxmiInvoiceDone": ("invoicing", "laxmi_invoice_no", "filled"),
    "jcrCompleted": ("beneficiary_share", "actual_9", "filled"),
    "farmerShare": ("beneficiary_share", "farmer_share_amt", "sum"),
    "stateShare": ("beneficiary_share", "state_share_amt", "sum"),
    "totalJcrSubmitted": ("ip_payment", "bill_send_date", "filled"),
    "insuranceUploaded": ("insurance", "scada_insurance_upload", "done"),
}

# derived column -> (minuend, subtrahend)
DERIVED: Dict[str, Tuple[str, str]] = {
    "surveyPending": ("target", "surveyDone"),
    "balanceDispatchPlan": ("target", "dispatchPlanDone"),
    "installationPending": ("target", "installationDone"),
    "photoRmsPending": ("installationDone", "photoUploadedMaster"),
    "upPortalPhotoPending": ("installationDone", "upPortalPhotoUploaded"),
    "invoicePending": ("installationDone", "invoiceDone"),
    "jcrPending": ("installationDone", "jcrCompleted"),
}

COLUMNS: List[str] = ["sNo", "ipName", "district", "target", *METRICS, *DERIVED]


def _group_label(value: Any) -> str:
    text = str(value).strip() if records.is_filled(value) else ""
    return UNKNOWN if not text or text == records.PLACEHOLDER else text


def _portal_frame(portal_rows: Iterable[Mapping[str, Any]]) -> pd.DataFrame:
    out = []
    for row in portal_rows or []:
        reg_id = records.reg_key(row)
        if not reg_id:
            continue
        out.append({
            "reg_id": reg_id,
            "ipName": _group_label(records.portal_value(row, "ip_name")),
            "district": _group_label(records.portal_value(row, "district")),
        })
    return pd.DataFrame(out, columns=["reg_id", "ipName", "district"])


def _metric_series(rows: List[Mapping[str, Any]], column: str, rule: str) -> pd.Series:
    """reg_id-indexed series holding the per-beneficiary value of one metric."""
    if rule == "sum":
        values = [float(records.to_decimal(r.get(column))) for r in rows]
    elif rule == "done":
        values = [int(r.get(column) == "Done") for r in rows]
    else:
        values = [int(records.is_filled(r.get(column))) for r in rows]
    frame = pd.DataFrame(
        {"reg_id": [records.reg_key(r) for r in rows], "value": values},
        columns=["reg_id", "value"],
    )
    frame = frame[frame["reg_id"] != ""].drop_duplicates("reg_id", keep="last").set_index("reg_id")
    if rule == "sum":
        return frame["value"].astype(float)
    return frame["value"].astype(int)


def summarize(
    portal_rows: Iterable[Mapping[str, Any]],
    stage_rows: Mapping[str, List[Mapping[str, Any]]],
) -> List[Dict[str, Any]]:
    """Aggregate already-fetched rows; ``stage_rows`` maps table name to its rows."""
    base = _portal_frame(portal_rows)
    if base.empty:
        return []

    for name, (table, column, rule) in METRICS.items():
        series = _metric_series(list(stage_rows.get(table) or []), column, rule)
        filled = base["reg_id"].map(series).fillna(0)
        base[name] = filled.astype(float) if rule == "sum" else filled.astype(int)

    grouped = base.groupby(["ipName", "district"], sort=False)
    summary = grouped[list(METRICS)].sum()
    summary.insert(0, "target", grouped.size())
    summary = summary.reset_index().sort_values(["ipName", "district"], kind="stable")

    for name, (left, right) in DERIVED.items():
        summary[name] = summary[left] - summary[right]
    for name in ("farmerShare", "stateShare"):
        summary[name] = summary[name].round(2)
    summary.insert(0, "sNo", range(1, len(summary) + 1))

    out: List[Dict[str, Any]] = []
    for rec in summary[COLUMNS].to_dict(orient="records"):
        row: Dict[str, Any] = {}
        for k, v in rec.items():
            if k in ("ipName", "district"):
                row[k] = v
            elif k in ("farmerShare", "stateShare"):
                row[k] = float(v)
            else:
                row[k] = int(v)
        out.append(row)
    return out


def load_dashboard() -> List[Dict[str, Any]]:
    needed = sorted({table for table, _, _ in METRICS.values()})
    stage_rows = {table: tables.select_rows(table) for table in needed}
    portal_rows = tables.select_rows("portal")
    rows = summarize(portal_rows, stage_rows)
    logger.debug("dashboard: %d portal rows -> %d groups", len(portal_rows), len(rows))
    return rows


def totals(rows: Iterable[Mapping[str, Any]]) -> Dict[str, Any]:
    """Column totals for the footer row."""
    rows = list(rows)
    out: Dict[str, Any] = {}
    for name in ["target", *METRICS, *DERIVED]:
        out[name] = sum(r.get(name) or 0 for r in rows)
    out["farmerShare"] = round(float(out["farmerShare"]), 2)
    out["stateShare"] = round(float(out["stateShare"]), 2)
    return out
