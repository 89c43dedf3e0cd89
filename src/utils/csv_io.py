# src/utils/csv_io.py
from __future__ import annotations

from typing import Any, Dict, Iterable, Optional, Sequence, TextIO
from fastapi.responses import StreamingResponse
import csv
import io


def write_dicts_csv(
    rows: Iterable[Dict[str, Any]],
    out: TextIO,
    field_order: Optional[Sequence[str]] = None,
) -> int:
    """
    Write dict rows as CSV to ``out`` and return the number of data rows.
    - If field_order is None, infer headers from the first row's keys.
    - Extra keys present in rows but not in field_order are ignored.
    - With field_order given, the header is written even when there are no rows.
    """
    rows_list = list(rows)
    if not rows_list and not field_order:
        return 0
    headers = list(field_order) if field_order else list(rows_list[0].keys())
    writer = csv.DictWriter(out, fieldnames=headers, extrasaction="ignore")
    writer.writeheader()
    for r in rows_list:
        writer.writerow(r)
    return len(rows_list)


def dicts_to_csv_stream(
    rows: Iterable[Dict[str, Any]],
    field_order: Optional[Sequence[str]] = None,
    filename: Optional[str] = None,
) -> StreamingResponse:
    """Stream a CSV built from dict rows (see write_dicts_csv)."""
    buf = io.StringIO()
    write_dicts_csv(rows, buf, field_order)
    buf.seek(0)
    headers = {"Content-Type": "text/csv; charset=utf-8"}
    if filename:
        headers["Content-Disposition"] = f'attachment; filename="{filename}"'
    return StreamingResponse(buf, headers=headers)
