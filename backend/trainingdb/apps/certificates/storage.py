"""
Local filesystem storage for certificate PDFs.

Files live under CERTIFICATE_STORAGE_DIR as
`<client_id>/<employee_id>/<millis>_<original name>.pdf`; the database keeps
the path relative to the storage root.
"""

from __future__ import annotations

import logging
import os
import re
import time
from pathlib import Path

from trainingdb.errors import ValidationError

logger = logging.getLogger(__name__)

MAX_CERTIFICATE_BYTES = 10 * 1024 * 1024
_PDF_MAGIC = b"%PDF-"
_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def storage_root() -> Path:
    # Read per call so deployments (and tests) can repoint it without a restart.
    root = Path(os.getenv("CERTIFICATE_STORAGE_DIR", "storage/certificates")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


def _safe_name(filename: str) -> str:
    name = Path(filename or "certificate.pdf").name
    name = _UNSAFE_CHARS.sub("_", name).strip("._") or "certificate.pdf"
    if not name.lower().endswith(".pdf"):
        name = f"{name}.pdf"
    return name


def validate_pdf(filename: str, content: bytes) -> None:
    if not (filename or "").lower().endswith(".pdf"):
        raise ValidationError("Only PDF files are accepted", details={"file": filename})
    if not content:
        raise ValidationError("Uploaded file is empty", details={"file": filename})
    if len(content) > MAX_CERTIFICATE_BYTES:
        raise ValidationError("File exceeds the 10 MB limit", details={"file": filename})
    if not content.startswith(_PDF_MAGIC):
        raise ValidationError("File is not a valid PDF", details={"file": filename})


def resolve_path(relative_path: str) -> Path:
    root = storage_root()
    resolved = (root / relative_path).resolve()
    if root != resolved and root not in resolved.parents:
        raise ValidationError("Invalid certificate path")
    return resolved


def store_file(*, client_id: str, employee_id: str, filename: str, content: bytes) -> str:
    """Validate and write a PDF; returns the path relative to the storage root."""
    validate_pdf(filename, content)
    relative = Path(client_id) / employee_id / f"{int(time.time() * 1000)}_{_safe_name(filename)}"
    target = resolve_path(str(relative))
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_bytes(content)
    return relative.as_posix()


def delete_file(relative_path: str) -> None:
    """Remove a stored file. Raises OSError on failure; a missing file is not an error."""
    target = resolve_path(relative_path)
    try:
        target.unlink()
    except FileNotFoundError:
        return


def delete_file_quietly(relative_path: str | None, *, attempts: int = 2) -> bool:
    """
    Cleanup step for compensations and deletes: retries, logs, never raises.
    Returns True when the file is gone.
    """
    if not relative_path:
        return True
    for attempt in range(1, attempts + 1):
        try:
            delete_file(relative_path)
            return True
        except (OSError, ValidationError) as exc:
            logger.warning(
                "Certificate file cleanup failed",
                extra={"path": relative_path, "attempt": attempt, "error": str(exc)},
            )
    return False
