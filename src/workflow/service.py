# src/workflow/service.py
"""
Fetch and submit for stage screens.

Reads go through two queries (stage rows, then the matching portal rows).
Writes are applied row by row; each row commits on its own, so a bulk
submission can end up partially applied and reports which rows failed.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from src.backend import storage, tables
from src.backend.tables import BackendError
from src.workflow import records, submission_log
from src.workflow.records import PLACEHOLDER, StageBuckets, is_filled
from src.workflow.stages import (
    AMOUNT,
    BOOL,
    DATE,
    FILE,
    NUMBER,
    ONCE,
    STATUS,
    Stage,
)

logger = logging.getLogger(__name__)

PORTAL_TABLE = "portal"
MASTER_TABLE = "master_dropdown"
MASTER_COLUMNS = ("installer_name", "name", "value", "label")

_TRUE = {"1", "true", "yes", "y", "on"}


class SubmissionError(ValueError):
    """The submission is rejected before anything is written."""


@dataclass(frozen=True)
class FilePayload:
    file_name: str
    content: bytes
    content_type: Optional[str] = None


@dataclass
class RowFailure:
    key: str
    error: str
    duplicate: bool = False
    missing: bool = False

    def as_dict(self) -> Dict[str, Any]:
        return {"key": self.key, "error": self.error, "duplicate": self.duplicate, "missing": self.missing}


@dataclass
class SubmissionResult:
    stage: str
    processed: List[str] = field(default_factory=list)
    failures: List[RowFailure] = field(default_factory=list)
    uploaded: Dict[str, str] = field(default_factory=dict)

    @property
    def status(self) -> str:
        if not self.failures:
            return "SUCCESS"
        return "PARTIAL" if self.processed else "FAILED"

    @property
    def all_duplicates(self) -> bool:
        return bool(self.failures) and not self.processed and all(f.duplicate for f in self.failures)

    @property
    def all_missing(self) -> bool:
        return bool(self.failures) and not self.processed and all(f.missing for f in self.failures)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "stage": self.stage,
            "processed": len(self.processed),
            "processed_keys": list(self.processed),
            "failed": len(self.failures),
            "failures": [f.as_dict() for f in self.failures],
            "uploaded": dict(self.uploaded),
        }


# -----------------------------------------------------------------------------
# Reads
# -----------------------------------------------------------------------------
def fetch_stage(stage: Stage) -> StageBuckets:
    stage_rows = tables.select_rows(stage.table, not_null=[stage.planned_column])
    if stage.portal_driven:
        portal_rows = tables.select_rows(PORTAL_TABLE)
    else:
        reg_ids = [k for k in (records.reg_key(r) for r in stage_rows) if k]
        portal_rows = tables.select_rows(PORTAL_TABLE, where_in={"reg_id": reg_ids}) if reg_ids else []
    buckets = records.split_items(stage, stage_rows, portal_rows)
    logger.debug(
        "fetched %s: %d stage rows, %d portal rows, pending=%d history=%d",
        stage.key, len(stage_rows), len(portal_rows), len(buckets.pending), len(buckets.history),
    )
    return buckets


def stage_view(
    stage: Stage,
    tab: str = records.PENDING,
    search: Optional[str] = None,
    filters: Optional[Mapping[str, Any]] = None,
    buckets: Optional[StageBuckets] = None,
) -> Dict[str, Any]:
    buckets = buckets or fetch_stage(stage)
    tab_items = buckets.tab(tab)
    wanted = {k: v for k, v in (filters or {}).items() if k in stage.filter_fields}
    items = records.apply_view(tab_items, search, wanted)
    return {
        "stage": stage.key,
        "title": stage.title,
        "tab": tab,
        "counts": {records.PENDING: len(buckets.pending), records.HISTORY: len(buckets.history)},
        "total": len(items),
        "items": items,
        "filter_options": {f: records.unique_values(tab_items, f) for f in stage.filter_fields},
    }


def master_options(columns: Sequence[str] = MASTER_COLUMNS) -> List[str]:
    """Distinct dropdown labels from master_dropdown, first non-empty column per row."""
    values = set()
    for row in tables.select_rows(MASTER_TABLE):
        for col in columns:
            if is_filled(row.get(col)):
                values.add(str(row[col]).strip())
                break
    return sorted(values)


# -----------------------------------------------------------------------------
# Form values
# -----------------------------------------------------------------------------
def _coerce(stage: Stage, name: str, raw: Any) -> Any:
    f = stage.get_field(name)
    text = "" if raw is None else str(raw).strip()
    if f.kind == STATUS:
        return text or f.default
    if f.kind == BOOL:
        return 1 if text.lower() in _TRUE else 0
    if not text:
        return None
    if f.kind == DATE:
        parsed = records.parse_date(text)
        if parsed is None:
            raise SubmissionError(f"Invalid date for {f.label}: {text}")
        return parsed.isoformat()
    if f.kind == AMOUNT:
        try:
            return str(Decimal(text))
        except InvalidOperation:
            raise SubmissionError(f"Invalid amount for {f.label}: {text}") from None
    if f.kind == NUMBER:
        try:
            return float(text)
        except ValueError:
            raise SubmissionError(f"Invalid number for {f.label}: {text}") from None
    return text


def normalize_form(stage: Stage, form: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Typed column values from a submitted form.

    Fields missing from the form are not written, except status fields which
    fall back to their default. File fields accept an existing URL as text.
    """
    values: Dict[str, Any] = {}
    for f in stage.fields:
        if f.kind == FILE:
            if is_filled(form.get(f.name)):
                values[f.name] = str(form[f.name]).strip()
            continue
        if f.name not in form and f.kind != STATUS:
            continue
        values[f.name] = _coerce(stage, f.name, form.get(f.name))
    return values


def build_row_update(
    stage: Stage,
    item: Mapping[str, Any],
    form: Mapping[str, Any],
    uploaded: Optional[Mapping[str, str]] = None,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    values = normalize_form(stage, form)
    values.update(uploaded or {})

    stamp = records.now_timestamp(now)
    actual: Optional[str] = stamp
    if stage.actual_from:
        chosen = values.get(stage.actual_from)
        if is_filled(chosen):
            actual = chosen
        elif stage.actual_from not in values and is_filled(item.get("actual")):
            # an edit that leaves the date out keeps the recorded one
            actual = None
        if actual is not None:
            values[stage.actual_from] = actual
    if actual is not None and (stage.actual_policy != ONCE or not is_filled(item.get("actual"))):
        values[stage.actual_column] = actual

    if stage.computed:
        values.update(stage.computed(stage, item, values))
    if stage.touch_updated_at:
        values["updated_at"] = stamp
    return values


# -----------------------------------------------------------------------------
# Submit
# -----------------------------------------------------------------------------
def _upload_files(stage: Stage, files: Mapping[str, FilePayload]) -> Dict[str, str]:
    file_fields = {f.name: f for f in stage.file_fields}
    uploaded: Dict[str, str] = {}
    for name, payload in (files or {}).items():
        if payload is None:
            continue
        if name not in file_fields:
            raise SubmissionError(f"{stage.title} has no file field {name!r}")
        stored = storage.upload(
            payload.file_name,
            payload.content,
            file_fields[name].storage_prefix or stage.key,
            payload.content_type,
        )
        uploaded[name] = stored.public_url
    return uploaded


def _write_row(stage: Stage, item: Mapping[str, Any], values: Dict[str, Any]) -> None:
    if stage.upsert:
        reg_id = item.get("reg_id")
        existing = tables.find_one(stage.table, "reg_id", reg_id)
        if existing:
            tables.update_rows(stage.table, values, "id", existing["id"])
            return
        row = {**values, "reg_id": reg_id}
        if is_filled(item.get("serial_no")) and item.get("serial_no") != PLACEHOLDER:
            row["serial_no"] = item["serial_no"]
        tables.insert_row(stage.table, row)
        return
    tables.update_rows(stage.table, values, stage.match_column, item.get(stage.match_column))


def _usable_key(stage: Stage, item: Mapping[str, Any]) -> bool:
    value = item.get("reg_id" if stage.upsert else stage.match_column)
    return is_filled(value) and value != PLACEHOLDER


def submit_stage(
    stage: Stage,
    tab: str,
    keys: Iterable[Any],
    form: Mapping[str, Any],
    files: Optional[Mapping[str, FilePayload]] = None,
    operator: Optional[str] = None,
    now: Optional[datetime] = None,
) -> SubmissionResult:
    """
    Apply one set of field values to every selected item of ``tab``.

    Raises SubmissionError when nothing is selected or a value is invalid,
    and storage.UploadRejected for a bad file; nothing is written then.
    """
    wanted = [str(k).strip() for k in keys or [] if is_filled(k)]
    if not wanted:
        raise SubmissionError("Select at least one row")
    normalize_form(stage, form)

    by_key = {str(i.get("key")): i for i in fetch_stage(stage).tab(tab)}
    result = SubmissionResult(stage=stage.key)
    result.uploaded = _upload_files(stage, files or {})

    for key in dict.fromkeys(wanted):
        item = by_key.get(key)
        if item is None:
            result.failures.append(RowFailure(key, f"Not found in {tab}", missing=True))
            continue
        if not _usable_key(stage, item):
            result.failures.append(RowFailure(key, f"Row has no {stage.match_column}"))
            continue
        values = build_row_update(stage, item, form, result.uploaded, now)
        try:
            _write_row(stage, item, values)
        except BackendError as e:
            logger.warning("%s: write failed for %s: %s", stage.key, key, e.message)
            result.failures.append(RowFailure(key, e.message, duplicate=e.is_duplicate))
            continue
        result.processed.append(key)

    logger.info(
        "%s submit by %s: %d processed, %d failed",
        stage.key, operator or "-", len(result.processed), len(result.failures),
    )
    submission_log.default_logger().log({
        "stage": stage.key,
        "table": stage.table,
        "operator": operator or "",
        "tab": tab,
        "selected": len(wanted),
        "processed": len(result.processed),
        "failed": len(result.failures),
        "files": ";".join(sorted(result.uploaded)),
        "status": result.status,
        "error": result.failures[0].error if result.failures else "",
    })
    return result
