# src/backend/storage.py
from __future__ import annotations

import io
import logging
import re
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from pypdf import PdfReader
from pypdf.errors import PdfReadError

from src.services import config

logger = logging.getLogger(__name__)

ALLOWED_CONTENT_TYPES = {
    "application/pdf",
    "application/octet-stream",
    "image/jpeg",
    "image/png",
    "image/webp",
    "image/heic",
}
ALLOWED_SUFFIXES = {".pdf", ".jpg", ".jpeg", ".png", ".webp", ".heic"}

_UNSAFE = re.compile(r"[^A-Za-z0-9._-]+")


class UploadRejected(Exception):
    def __init__(self, status_code: int, detail: str) -> None:
        super().__init__(detail)
        self.status_code = status_code
        self.detail = detail


@dataclass(frozen=True)
class StoredObject:
    path: str          # bucket-relative, e.g. "challan/1718000000000_invoice.pdf"
    public_url: str
    size: int


def bucket_root() -> Path:
    return Path(config.STORAGE_DIR) / config.STORAGE_BUCKET


def safe_name(file_name: Optional[str]) -> str:
    name = Path(file_name or "").name.strip()
    name = _UNSAFE.sub("_", name).strip("._")
    return name or "upload.bin"


def public_url(path: str) -> str:
    return f"{config.PUBLIC_BASE_URL}/storage/{config.STORAGE_BUCKET}/{path.lstrip('/')}"


def _pdf_pages(content: bytes) -> int:
    try:
        return len(PdfReader(io.BytesIO(content)).pages)
    except (PdfReadError, ValueError, OSError, KeyError, AttributeError) as e:
        logger.info("unreadable PDF upload: %s", e)
        return 0


def validate_upload(file_name: Optional[str], content: bytes, content_type: Optional[str]) -> None:
    """Reject empty, oversized, unsupported or unreadable (PDF) uploads."""
    size = len(content or b"")
    if size == 0:
        raise UploadRejected(400, f"Empty file: {file_name or 'upload'}")
    if size > config.UPLOAD_MAX_BYTES:
        raise UploadRejected(
            413, f"File too large (max {config.UPLOAD_MAX_BYTES // (1024 * 1024)}MB)"
        )

    suffix = Path(file_name or "").suffix.lower()
    ctype = (content_type or "").split(";")[0].strip().lower()
    if suffix not in ALLOWED_SUFFIXES or (ctype and ctype not in ALLOWED_CONTENT_TYPES):
        raise UploadRejected(400, "Only PDF or image uploads are allowed")

    if suffix == ".pdf" and _pdf_pages(content) < 1:
        raise UploadRejected(400, "Uploaded PDF could not be read")


def upload(
    file_name: Optional[str],
    content: bytes,
    prefix: str,
    content_type: Optional[str] = None,
) -> StoredObject:
    """Validate and store one file under ``<bucket>/<prefix>/<epoch_ms>_<name>``."""
    validate_upload(file_name, content, content_type)

    rel = f"{prefix.strip('/')}/{int(time.time() * 1000)}_{safe_name(file_name)}"
    target = bucket_root() / rel
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_bytes(content)
    logger.info("stored %s (%d bytes)", rel, len(content))
    return StoredObject(path=rel, public_url=public_url(rel), size=len(content))
