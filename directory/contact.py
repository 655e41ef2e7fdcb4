from __future__ import annotations

import logging
import re
from typing import Any, Dict, Iterable, List, Mapping

from directory.data import CONTACT_TABLE
from directory.store import SupabaseStore


logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
STATUSES = ["new", "in_progress", "resolved"]
DEFAULT_SUBJECT = "General Inquiry"


class ContactValidationError(ValueError):
    pass


def _text(form: Mapping[str, Any], key: str) -> str:
    return str(form.get(key) or "").strip()


def validate_contact(form: Mapping[str, Any]) -> Dict[str, Any]:
    """Validate a public contact form and return the row to insert."""
    email = _text(form, "email")
    if not EMAIL_RE.match(email):
        raise ContactValidationError("Please enter a valid email address")
    name = _text(form, "name")
    message = _text(form, "message")
    if not name or not message:
        raise ContactValidationError("Please fill in all required fields")
    center_name = _text(form, "center_name") or _text(form, "centerName")
    return {
        "name": name,
        "email": email,
        "subject": _text(form, "subject") or DEFAULT_SUBJECT,
        "message": message,
        "center_name": center_name or None,
        "status": "new",
    }


def submit_contact(store: SupabaseStore, form: Mapping[str, Any]) -> Dict[str, Any]:
    row = validate_contact(form)
    inserted = store.insert(CONTACT_TABLE, row)
    logger.info("contact submission received (%s)", row["subject"])
    return inserted[0] if inserted else row


def list_submissions(store: SupabaseStore, status: str = "all") -> List[Dict[str, Any]]:
    filters: Dict[str, Any] = {"order": "created_at", "ascending": False}
    if status != "all":
        if status not in STATUSES:
            raise ContactValidationError(f"Unknown status: {status}")
        filters["eq"] = {"status": status}
    return store.select(CONTACT_TABLE, **filters)


def update_submission_status(store: SupabaseStore, submission_id: str, status: str) -> Dict[str, Any]:
    if status not in STATUSES:
        raise ContactValidationError(f"Unknown status: {status}")
    updated = store.update(CONTACT_TABLE, {"status": status}, eq={"id": submission_id})
    return updated[0] if updated else {"id": submission_id, "status": status}


def submission_counts(rows: Iterable[Mapping[str, Any]]) -> Dict[str, int]:
    counts = {s: 0 for s in STATUSES}
    total = 0
    for row in rows:
        total += 1
        status = row.get("status")
        if status in counts:
            counts[status] += 1
    counts["total"] = total
    return counts
