# src/workflow/records.py
"""
Join / bucket / search / filter helpers shared by every stage screen.

A stage row is *pending* while ``planned_N`` is filled and ``actual_N`` is
empty, and moves to *history* once ``actual_N`` is filled. Rows without
``planned_N`` are not scheduled yet and appear in neither tab.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Mapping, Optional

if TYPE_CHECKING:
    from src.workflow.stages import Stage

PLACEHOLDER = "-"
PENDING = "pending"
HISTORY = "history"
TABS = (PENDING, HISTORY)

# Canonical portal field -> legacy spreadsheet headers seen in imported rows.
PORTAL_ALIASES: Dict[str, tuple] = {
    "reg_id": ("Reg ID",),
    "serial_no": ("Serial No",),
    "beneficiary_name": ("Beneficiary Name",),
    "fathers_name": ("Father's Name", "father_husband_name", "father_name"),
    "mobile_number": ("Mobile Number",),
    "village": ("Village",),
    "block": ("Block",),
    "district": ("District",),
    "category": ("Category",),
    "pincode": ("Pincode",),
    "pump_source": ("Pump Source",),
    "pump_capacity": ("Pump Capacity", "pump_type"),
    "pump_head": ("Pump Head",),
    "ip_name": ("IP Name", "company", "installer_name"),
    "installer": ("installer_name", "Installer Name"),
    "amount": ("Amount",),
}
PORTAL_FIELDS = tuple(PORTAL_ALIASES)


@dataclass
class StageBuckets:
    pending: List[Dict[str, Any]] = field(default_factory=list)
    history: List[Dict[str, Any]] = field(default_factory=list)

    def tab(self, name: str) -> List[Dict[str, Any]]:
        if name not in TABS:
            raise ValueError(f"Unknown tab {name!r}")
        return self.pending if name == PENDING else self.history


# -----------------------------------------------------------------------------
# Presence / classification
# -----------------------------------------------------------------------------
def is_filled(value: Any) -> bool:
    return value is not None and str(value).strip() != ""


def classify(row: Mapping[str, Any], stage: "Stage") -> Optional[str]:
    if not is_filled(row.get(stage.planned_column)):
        return None
    return HISTORY if is_filled(row.get(stage.actual_column)) else PENDING


# -----------------------------------------------------------------------------
# Join
# -----------------------------------------------------------------------------
def reg_key(row: Mapping[str, Any]) -> str:
    value = row.get("reg_id")
    if not is_filled(value):
        value = row.get("Reg ID")
    return str(value).strip() if is_filled(value) else ""


def index_by_reg_id(rows: Iterable[Mapping[str, Any]]) -> Dict[str, Mapping[str, Any]]:
    """Map reg_id -> row; the first row wins when the key repeats."""
    out: Dict[str, Mapping[str, Any]] = {}
    for row in rows or []:
        key = reg_key(row)
        if key and key not in out:
            out[key] = row
    return out


def portal_value(portal_row: Optional[Mapping[str, Any]], name: str) -> Any:
    if not portal_row:
        return PLACEHOLDER
    for candidate in (name, *PORTAL_ALIASES.get(name, ())):
        value = portal_row.get(candidate)
        if is_filled(value):
            return value
    return PLACEHOLDER


def _display(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.strftime("%Y-%m-%d %H:%M:%S")
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    return value


def build_item(
    stage: "Stage",
    stage_row: Optional[Mapping[str, Any]],
    portal_row: Optional[Mapping[str, Any]],
) -> Dict[str, Any]:
    """Flatten one stage row and its portal row into a display item."""
    srow = stage_row or {}
    item: Dict[str, Any] = {name: portal_value(portal_row, name) for name in PORTAL_FIELDS}

    reg_id = reg_key(srow) or reg_key(portal_row or {})
    item["reg_id"] = reg_id or PLACEHOLDER
    serial = srow.get("serial_no")
    if is_filled(serial):
        item["serial_no"] = serial

    for f in stage.fields:
        value = srow.get(f.name)
        item[f.name] = _display(value) if value is not None else ""
    for col in stage.extra_columns:
        value = srow.get(col)
        item[col] = _display(value) if value is not None else ""

    item["id"] = srow.get("id")
    item["portal_id"] = (portal_row or {}).get("id")
    item["planned"] = _display(srow.get(stage.planned_column)) or ""
    item["actual"] = _display(srow.get(stage.actual_column)) or ""
    item["key"] = item["reg_id"] if stage.match_column == "reg_id" else item["id"]
    return item


def split_items(
    stage: "Stage",
    stage_rows: Iterable[Mapping[str, Any]],
    portal_rows: Iterable[Mapping[str, Any]],
) -> StageBuckets:
    buckets = StageBuckets()
    portal_map = index_by_reg_id(portal_rows)

    if stage.portal_driven:
        stage_map = index_by_reg_id(stage_rows)
        pairs = [(stage_map.get(reg_key(p)), p) for p in portal_map.values()]
    else:
        pairs = [(row, portal_map.get(reg_key(row))) for row in stage_rows or []]

    for srow, prow in pairs:
        if srow is None:
            continue
        tab = classify(srow, stage)
        if tab is None:
            continue
        buckets.tab(tab).append(build_item(stage, srow, prow))
    return buckets


# -----------------------------------------------------------------------------
# Search / filter
# -----------------------------------------------------------------------------
def matches_search(item: Mapping[str, Any], term: Optional[str]) -> bool:
    needle = (term or "").strip().lower()
    if not needle:
        return True
    return any(needle in str(v).lower() for v in item.values() if v is not None)


def matches_filters(item: Mapping[str, Any], filters: Optional[Mapping[str, Any]]) -> bool:
    for name, wanted in (filters or {}).items():
        if not is_filled(wanted):
            continue
        if str(item.get(name, "")) != str(wanted):
            return False
    return True


def apply_view(
    items: Iterable[Mapping[str, Any]],
    search: Optional[str] = None,
    filters: Optional[Mapping[str, Any]] = None,
) -> List[Dict[str, Any]]:
    return [
        dict(item)
        for item in items
        if matches_search(item, search) and matches_filters(item, filters)
    ]


def unique_values(items: Iterable[Mapping[str, Any]], name: str) -> List[str]:
    values = {str(i.get(name)) for i in items if is_filled(i.get(name)) and i.get(name) != PLACEHOLDER}
    return sorted(values)


# -----------------------------------------------------------------------------
# Values written on submit
# -----------------------------------------------------------------------------
def now_timestamp(now: Optional[datetime] = None) -> str:
    return (now or datetime.now()).strftime("%Y-%m-%d %H:%M:%S")


def parse_datetime(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime.combine(value, datetime.min.time())
    if not is_filled(value):
        return None
    text = str(value).strip()
    for fmt in ("%Y-%m-%d %H:%M:%S", "%Y-%m-%dT%H:%M:%S", "%Y-%m-%d", "%d-%m-%Y", "%d/%m/%Y"):
        try:
            return datetime.strptime(text[:19] if "%H" in fmt else text[:10], fmt)
        except ValueError:
            continue
    return None


def parse_date(value: Any) -> Optional[date]:
    parsed = parse_datetime(value)
    return parsed.date() if parsed else None


def delay_days(actual: Any, planned: Any) -> Optional[int]:
    """Days between planned and actual, rounded to the nearest day; early completion counts as 0."""
    a, p = parse_datetime(actual), parse_datetime(planned)
    if a is None or p is None:
        return None
    return max(math.floor((a - p).total_seconds() / 86400 + 0.5), 0)


def to_decimal(value: Any) -> Decimal:
    try:
        return Decimal(str(value).strip()) if is_filled(value) else Decimal("0")
    except InvalidOperation:
        return Decimal("0")


def ip_payment_total(per_installation: Any, gst_percent: Any) -> str:
    base = to_decimal(per_installation)
    total = base + base * to_decimal(gst_percent) / Decimal("100")
    return str(total.quantize(Decimal("0.01")))
