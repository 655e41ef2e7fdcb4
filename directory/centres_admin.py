"""Admin centre management: filtered listing, bulk flags, edit and delete."""

from __future__ import annotations

import logging
import math
from dataclasses import asdict
from typing import Any, Dict, Iterable, Mapping

import pandas as pd

from directory.contact import EMAIL_RE
from directory.data import CENTRES_TABLE, frame_records, has_coordinates, lookup_name
from directory.filters import ADMIN_PAGE_SIZE, AdminCentreFilters
from directory.listing import CentreValidationError, clean_text, validate_centre_fields
from directory.places import normalize_website
from directory.store import SupabaseStore


logger = logging.getLogger(__name__)

BULK_ACTIONS: Dict[str, Dict[str, bool]] = {
    "verify": {"verified": True},
    "unverify": {"verified": False},
    "activate": {"active": True},
    "deactivate": {"active": False},
}
OPTIONAL_FIELDS = ["phone", "services", "state_id", "city_id"]
EDITABLE_FIELDS = [
    "name",
    "address",
    "latitude",
    "longitude",
    "country_id",
    "center_type_id",
    "accessibility",
    "active",
    "verified",
    "email",
    "website",
    *OPTIONAL_FIELDS,
]


def apply_admin_filters(centres: pd.DataFrame, filters: AdminCentreFilters) -> pd.DataFrame:
    df = centres
    if df.empty:
        return df
    if filters.search:
        term = filters.search.lower()
        hit = df["name"].fillna("").str.lower().str.contains(term, regex=False)
        hit |= df["address"].fillna("").str.lower().str.contains(term, regex=False)
        hit |= df["services"].fillna("").str.lower().str.contains(term, regex=False)
        df = df[hit]
    if filters.country:
        df = df[df["country_id"].eq(filters.country).fillna(False).astype(bool)]
    if filters.center_type:
        df = df[df["center_type_id"].eq(filters.center_type).fillna(False).astype(bool)]
    if filters.verified == "verified":
        df = df[df["verified"]]
    elif filters.verified == "unverified":
        df = df[~df["verified"]]
    if filters.active == "active":
        df = df[df["active"]]
    elif filters.active == "inactive":
        df = df[~df["active"]]
    if filters.needs_geocode:
        df = df[~has_coordinates(df)]
    return df


def compute_admin_centres(filters: AdminCentreFilters, ctx: Dict[str, Any]) -> Dict[str, Any]:
    centres: pd.DataFrame = ctx.get("centres", pd.DataFrame())
    filtered = apply_admin_filters(centres, filters)

    total = len(filtered)
    pages = max(1, math.ceil(total / ADMIN_PAGE_SIZE))
    page = min(filters.page, pages)
    start = (page - 1) * ADMIN_PAGE_SIZE
    rows = frame_records(filtered.iloc[start : start + ADMIN_PAGE_SIZE])
    for row in rows:
        row.pop("name_key", None)
        row["center_type"] = lookup_name(ctx.get("center_types"), row.get("center_type_id"))
        row["country"] = lookup_name(ctx.get("countries"), row.get("country_id"))

    return {
        "filters": asdict(filters),
        "total": total,
        "available": int(len(centres)),
        "page": page,
        "pages": pages,
        "centres": rows,
    }


def set_centre_flags(store: SupabaseStore, centre_ids: Iterable[str], action: str) -> int:
    """Apply a bulk verify/unverify/activate/deactivate to the given centres."""
    values = BULK_ACTIONS.get(action)
    if values is None:
        raise CentreValidationError(f"Unknown bulk action: {action}")
    ids = [str(i) for i in centre_ids]
    if not ids:
        return 0
    if len(ids) == 1:
        store.update(CENTRES_TABLE, values, eq={"id": ids[0]})
    else:
        store.update(CENTRES_TABLE, values, in_={"id": ids})
    logger.info("bulk %s applied to %d centres", action, len(ids))
    return len(ids)


def build_centre_update(form: Mapping[str, Any], current: Mapping[str, Any]) -> Dict[str, Any]:
    """Validated values for an edit; fields missing from ``form`` keep their current value."""
    merged = {**current, **{k: v for k, v in form.items() if k in EDITABLE_FIELDS}}
    values = validate_centre_fields(merged, coordinates_required=False)

    if "email" in form:
        email = clean_text(form.get("email"))
        if email and not EMAIL_RE.match(email):
            raise CentreValidationError("Please enter a valid email address")
        values["email"] = email
    if "website" in form:
        website = None
        if clean_text(form.get("website")):
            website = normalize_website(form.get("website"))
            if website is None:
                raise CentreValidationError("Please enter a valid website URL (e.g., example.com or https://example.com)")
        values["website"] = website
    for key in OPTIONAL_FIELDS:
        if key in form:
            values[key] = clean_text(form.get(key))
    for flag in ["accessibility", "active", "verified"]:
        value = merged.get(flag)
        values[flag] = bool(current.get(flag, False) if value is None else value)
    return values


def update_centre(store: SupabaseStore, centre_id: str, form: Mapping[str, Any]) -> Dict[str, Any]:
    current = store.get(CENTRES_TABLE, centre_id)
    if current is None:
        raise LookupError(f"Centre {centre_id} not found")
    values = build_centre_update(form, current)
    updated = store.update(CENTRES_TABLE, values, eq={"id": centre_id})
    logger.info("centre %s updated", centre_id)
    return updated[0] if updated else {**current, **values}


def delete_centre(store: SupabaseStore, centre_id: str) -> Dict[str, Any]:
    current = store.get(CENTRES_TABLE, centre_id)
    if current is None:
        raise LookupError(f"Centre {centre_id} not found")
    store.delete(CENTRES_TABLE, eq={"id": centre_id})
    logger.info("centre %s deleted (%s)", centre_id, current.get("name"))
    return current
