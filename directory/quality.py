from __future__ import annotations

import logging
import math
from dataclasses import asdict
from typing import Any, Dict, Iterable, List, Optional

import pandas as pd

from directory.data import CENTRES_TABLE, centres_frame, frame_records, has_coordinates, lookup_name
from directory.filters import QUALITY_PAGE_SIZE, QualityFilters
from directory.store import SupabaseStore


logger = logging.getLogger(__name__)

GENERIC_ADDRESSES = ["address not provided", "not provided", "unknown"]
SHORT_ADDRESS_LEN = 20
DELETE_BATCH_SIZE = 50

ISSUE_LABELS = {
    "all": "All Centers",
    "wrong_type": "Wrong Type",
    "no_coords": "No Coordinates",
    "bad_address": "Bad Address",
    "unverified": "Unverified",
    "needs_review": "Needs Review",
}


def bad_address_mask(df: pd.DataFrame) -> pd.Series:
    address = df["address"].fillna("").astype(str)
    lowered = address.str.lower()
    generic = pd.Series(False, index=df.index)
    for token in GENERIC_ADDRESSES:
        generic |= lowered.str.contains(token, regex=False)
    return generic | address.str.len().le(SHORT_ADDRESS_LEN)


def apply_quality_filters(centres: pd.DataFrame, filters: QualityFilters) -> pd.DataFrame:
    df = centres
    if df.empty:
        return df
    if filters.search:
        term = filters.search.lower()
        hit = df["name"].fillna("").str.lower().str.contains(term, regex=False)
        hit |= df["address"].fillna("").str.lower().str.contains(term, regex=False)
        df = df[hit]
    if filters.country:
        df = df[df["country_id"].eq(filters.country).fillna(False).astype(bool)]
    if filters.center_type:
        df = df[df["center_type_id"].eq(filters.center_type).fillna(False).astype(bool)]
    if filters.verified == "verified":
        df = df[df["verified"]]
    elif filters.verified == "unverified":
        df = df[~df["verified"]]
    if filters.has_coordinates == "yes":
        df = df[has_coordinates(df)]
    elif filters.has_coordinates == "no":
        df = df[~has_coordinates(df)]

    # wrong_type and needs_review are manual triage buckets with no automatic rule
    if filters.issue_type == "no_coords":
        df = df[~has_coordinates(df)]
    elif filters.issue_type == "unverified":
        df = df[~df["verified"]]
    elif filters.issue_type == "bad_address":
        df = df[bad_address_mask(df)]
    return df


def compute_data_quality(filters: QualityFilters, ctx: Dict[str, Any]) -> Dict[str, Any]:
    centres: pd.DataFrame = ctx.get("centres", pd.DataFrame())
    filtered = apply_quality_filters(centres, filters)

    total = len(filtered)
    pages = max(1, math.ceil(total / QUALITY_PAGE_SIZE))
    page = min(filters.page, pages)
    start = (page - 1) * QUALITY_PAGE_SIZE
    rows = frame_records(filtered.iloc[start : start + QUALITY_PAGE_SIZE])
    for row in rows:
        row.pop("name_key", None)
        row["center_type"] = lookup_name(ctx.get("center_types"), row.get("center_type_id"))
        row["country"] = lookup_name(ctx.get("countries"), row.get("country_id"))

    summary = {}
    if not centres.empty:
        summary = {
            "total": int(len(centres)),
            "no_coords": int((~has_coordinates(centres)).sum()),
            "unverified": int((~centres["verified"]).sum()),
            "bad_address": int(bad_address_mask(centres).sum()),
        }

    return {
        "filters": asdict(filters),
        "issue_types": ISSUE_LABELS,
        "summary": summary,
        "total": total,
        "page": page,
        "pages": pages,
        "centres": rows,
    }


def update_center_type(store: SupabaseStore, centre_ids: Iterable[str], center_type_id: str) -> int:
    ids = [str(i) for i in centre_ids]
    if not ids or not center_type_id:
        return 0
    if len(ids) == 1:
        store.update(CENTRES_TABLE, {"center_type_id": center_type_id}, eq={"id": ids[0]})
    else:
        store.update(CENTRES_TABLE, {"center_type_id": center_type_id}, in_={"id": ids})
    logger.info("center type %s applied to %d centres", center_type_id, len(ids))
    return len(ids)


def delete_centres(store: SupabaseStore, centre_ids: Iterable[str], *, batch_size: int = DELETE_BATCH_SIZE) -> int:
    ids = [str(i) for i in centre_ids]
    deleted = 0
    for start in range(0, len(ids), batch_size):
        batch = ids[start : start + batch_size]
        store.delete(CENTRES_TABLE, in_={"id": batch})
        deleted += len(batch)
    if deleted:
        logger.info("deleted %d centres", deleted)
    return deleted


def find_duplicates(rows: Iterable[Dict[str, Any]]) -> Dict[str, Any]:
    """Group centres by normalized name; rows are expected oldest first."""
    df = centres_frame(rows)
    if df.empty:
        return {"groups": [], "stats": {"total": 0, "duplicates": 0, "to_delete": 0}}

    df = df[df["name_key"].notna()]
    counts = df.groupby("name_key", sort=False)["id"].transform("size")
    dupes = df[counts > 1]
    groups: List[Dict[str, Any]] = []
    for key, group in dupes.groupby("name_key", sort=False):
        records = frame_records(group, ["id", "name", "address", "created_at", "latitude", "longitude", "active"])
        groups.append({"key": key, "name": records[0]["name"], "count": len(records), "records": records})
    groups.sort(key=lambda g: g["count"], reverse=True)

    return {
        "groups": groups,
        "stats": {
            "total": int(len(df)),
            "duplicates": len(groups),
            "to_delete": sum(g["count"] - 1 for g in groups),
        },
    }


def duplicate_ids_to_delete(groups: List[Dict[str, Any]], keys: Optional[Iterable[str]] = None) -> List[str]:
    """Everything but the oldest record of each selected group."""
    wanted = None if keys is None else {k.strip().lower() for k in keys}
    ids: List[str] = []
    for group in groups:
        if wanted is not None and group["key"] not in wanted:
            continue
        ids.extend(str(r["id"]) for r in group["records"][1:])
    return ids


def cleanup_duplicates(store: SupabaseStore, keys: Optional[Iterable[str]] = None) -> Dict[str, Any]:
    rows = store.select_all(CENTRES_TABLE, order="created_at", ascending=True)
    found = find_duplicates(rows)
    ids = duplicate_ids_to_delete(found["groups"], keys)
    deleted = delete_centres(store, ids)
    return {"deleted": deleted, "ids": ids}
