# src/workflow/submission_log.py
from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional, Union

from src.services import config

__all__ = ['SubmissionLogger', 'default_logger']

CSV_KEYS = ['ts', 'stage', 'table', 'operator', 'tab', 'selected', 'processed',
            'failed', 'files', 'status', 'error']


class SubmissionLogger:
    """Append-only audit trail of stage submissions (CSV + JSONL)."""

    def __init__(self, log_dir: Union[str, Path]):
        self.log_dir = Path(log_dir)
        self.log_dir.mkdir(parents=True, exist_ok=True)
        self.csv_path = self.log_dir / 'submissions.csv'
        self.jsonl_path = self.log_dir / 'submissions.jsonl'

    def _now(self) -> str:
        return datetime.now().strftime('%Y-%m-%d %H:%M:%S')

    def log_csv(self, payload: Dict[str, Any]) -> None:
        line = {k: payload.get(k, '') for k in CSV_KEYS}
        line['ts'] = self._now()
        write_header = not self.csv_path.exists()
        with self.csv_path.open('a', encoding='utf-8') as f:
            if write_header:
                f.write(','.join(CSV_KEYS) + '\n')
            f.write(','.join(str(line[k]).replace('\n', ' ').replace(',', ';') for k in CSV_KEYS) + '\n')

    def log_json(self, payload: Dict[str, Any]) -> None:
        payload_out = dict(payload)
        payload_out['ts'] = self._now()
        with self.jsonl_path.open('a', encoding='utf-8') as f:
            f.write(json.dumps(payload_out, ensure_ascii=False, default=str) + '\n')

    def log(self, payload: Dict[str, Any]) -> None:
        self.log_csv(payload)
        self.log_json(payload)


def default_logger(log_dir: Optional[Union[str, Path]] = None) -> SubmissionLogger:
    return SubmissionLogger(log_dir or config.LOG_DIR)
