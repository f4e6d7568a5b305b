import os
import time
import uuid
from typing import Optional

from flask import current_app


NO_IMAGE = "no-image"


def evidence_root() -> str:
    folder = current_app.config.get("EVIDENCE_UPLOAD_FOLDER", "static/uploads/facial-audit")
    if os.path.isabs(folder):
        return folder
    return os.path.join(current_app.root_path, folder)


def save_evidence(file_storage, employee_id: Optional[int] = None, prefix: str = "audit") -> str:
    """
    Persist an uploaded capture and return its storage key
    ('audit/<employee>/<millis>_<hex>.jpg'), relative to the evidence root.
    """
    ext = os.path.splitext(file_storage.filename or "")[1] or ".jpg"
    owner = str(employee_id) if employee_id is not None else "unknown"
    key = f"{prefix}/{owner}/{int(time.time() * 1000)}_{uuid.uuid4().hex[:8]}{ext}"

    path = os.path.join(evidence_root(), key)
    os.makedirs(os.path.dirname(path), exist_ok=True)
    file_storage.save(path)
    return key


def evidence_path(key: str) -> Optional[str]:
    """Absolute path for a stored key; None for placeholders."""
    if not key or key == NO_IMAGE or "://" in key:
        return None
    return os.path.join(evidence_root(), key)
