from __future__ import annotations

import logging
import math
from dataclasses import asdict
from typing import Any, Dict, Mapping, Optional

import pandas as pd

from directory.data import CENTRES_TABLE, frame_records, has_coordinates, lookup_name
from directory.filters import CentreFilters, UserLocation
from directory.geo import haversine_km, haversine_series
from directory.store import SupabaseStore


logger = logging.getLogger(__name__)

FEATURED_COUNT = 6
PUBLIC_COLUMNS = [
    "id",
    "name",
    "address",
    "latitude",
    "longitude",
    "phone",
    "email",
    "website",
    "services",
    "country_id",
    "state_id",
    "center_type_id",
    "verified",
    "distance",
]


class CentreValidationError(ValueError):
    pass


def _matches(series: pd.Series, value: str) -> pd.Series:
    return series.eq(value).fillna(False).astype(bool)


def apply_centre_filters(centres: pd.DataFrame, filters: CentreFilters) -> pd.DataFrame:
    df = centres
    if df.empty:
        return df
    if "active" in df.columns:
        df = df[df["active"]]
    if filters.search:
        term = filters.search.lower()
        hit = df["name"].fillna("").str.lower().str.contains(term, regex=False)
        hit |= df["address"].fillna("").str.lower().str.contains(term, regex=False)
        hit |= df["services"].fillna("").str.lower().str.contains(term, regex=False)
        df = df[hit]
    if filters.country:
        df = df[_matches(df["country_id"], filters.country)]
    if filters.state:
        df = df[_matches(df["state_id"], filters.state)]
    if filters.type:
        df = df[_matches(df["center_type_id"], filters.type)]
    if filters.accessibility:
        df = df[df["accessibility"]]
    return df


def dedupe_by_name(df: pd.DataFrame) -> pd.DataFrame:
    """Keep the first centre for each case-insensitive, trimmed name."""
    if df.empty:
        return df
    keys = df["name"].fillna("").str.strip().str.lower()
    return df[~keys.duplicated(keep="first")]


def sort_by_distance(df: pd.DataFrame, location: UserLocation) -> pd.DataFrame:
    """Centres with coordinates nearest first, then those without."""
    df = df.copy()
    df["distance"] = pd.NA
    if df.empty:
        return df
    mask = has_coordinates(df)
    located = df[mask].copy()
    located["distance"] = haversine_series(location.lat, location.lng, located["latitude"], located["longitude"])
    located = located.sort_values("distance", kind="stable")
    return pd.concat([located, df[~mask]])


def compute_listing(
    filters: CentreFilters,
    ctx: Dict[str, Any],
    *,
    user_location: Optional[UserLocation] = None,
) -> Dict[str, Any]:
    centres: pd.DataFrame = ctx.get("centres", pd.DataFrame())
    filtered = apply_centre_filters(centres, filters)
    before = len(filtered)
    filtered = dedupe_by_name(filtered)
    if before != len(filtered):
        logger.debug("removed %d duplicate centres by name", before - len(filtered))

    if user_location is not None:
        filtered = sort_by_distance(filtered, user_location)
    else:
        filtered = filtered.copy()
        filtered["distance"] = pd.NA

    total = len(filtered)
    pages = max(1, math.ceil(total / filters.page_size))
    page = min(filters.page, pages)
    start = (page - 1) * filters.page_size
    page_df = filtered.iloc[start : start + filters.page_size]

    markers = []
    if not filtered.empty:
        located = filtered[has_coordinates(filtered)]
        markers = [
            {
                "id": r["id"],
                "name": r["name"],
                "address": r["address"],
                "lat": float(r["latitude"]),
                "lng": float(r["longitude"]),
                "type": lookup_name(ctx.get("center_types"), r["center_type_id"]),
            }
            for r in frame_records(located, ["id", "name", "address", "latitude", "longitude", "center_type_id"])
        ]

    return {
        "filters": asdict(filters),
        "user_location": asdict(user_location) if user_location else None,
        "total": total,
        "available": int(len(centres)),
        "page": page,
        "pages": pages,
        "centres": frame_records(page_df, PUBLIC_COLUMNS),
        "featured": frame_records(filtered.head(FEATURED_COUNT), PUBLIC_COLUMNS),
        "markers": markers,
    }


def compute_centre_detail(
    centre_id: str,
    ctx: Dict[str, Any],
    *,
    user_location: Optional[UserLocation] = None,
) -> Optional[Dict[str, Any]]:
    centres: pd.DataFrame = ctx.get("centres", pd.DataFrame())
    if centres.empty:
        return None
    match = centres[_matches(centres["id"], str(centre_id))]
    if match.empty:
        return None
    record = frame_records(match.head(1))[0]
    record.pop("name_key", None)

    distance = None
    if user_location is not None and bool(has_coordinates(match.head(1)).iloc[0]):
        distance = haversine_km(user_location.lat, user_location.lng, float(record["latitude"]), float(record["longitude"]))

    return {
        "centre": record,
        "country": lookup_name(ctx.get("countries"), record.get("country_id")),
        "state": lookup_name(ctx.get("states"), record.get("state_id"), default=""),
        "center_type": lookup_name(ctx.get("center_types"), record.get("center_type_id")),
        "distance_km": distance,
    }


def clean_text(value: object) -> Optional[str]:
    if value is None:
        return None
    s = str(value).strip()
    return s or None


def _coordinate(value: object, lo: float, hi: float, label: str, *, required: bool) -> Optional[float]:
    if value is None or (isinstance(value, str) and not value.strip()):
        if required:
            raise CentreValidationError("Valid latitude and longitude are required")
        return None
    try:
        out = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        out = math.nan
    if not lo <= out <= hi:
        raise CentreValidationError(f"{label} must be a number between {lo:g} and {hi:g}")
    return out


def validate_centre_fields(form: Mapping[str, Any], *, coordinates_required: bool = True) -> Dict[str, Any]:
    """Checks shared by the public add form and the admin edit form."""
    name = clean_text(form.get("name"))
    address = clean_text(form.get("address"))
    if not name:
        raise CentreValidationError("Center name is required")
    if not address:
        raise CentreValidationError("Address is required")
    if not clean_text(form.get("country_id")):
        raise CentreValidationError("Country is required")
    if not clean_text(form.get("center_type_id")):
        raise CentreValidationError("Center type is required")
    return {
        "name": name,
        "address": address,
        "latitude": _coordinate(form.get("latitude"), -90, 90, "Latitude", required=coordinates_required),
        "longitude": _coordinate(form.get("longitude"), -180, 180, "Longitude", required=coordinates_required),
        "country_id": clean_text(form.get("country_id")),
        "center_type_id": clean_text(form.get("center_type_id")),
        "accessibility": bool(form.get("accessibility", False)),
    }


def build_centre_row(form: Dict[str, Any]) -> Dict[str, Any]:
    row = validate_centre_fields(form)
    row.update({"active": True, "verified": False})
    for key in ["phone", "email", "website", "services", "state_id", "city_id"]:
        value = clean_text(form.get(key))
        if value:
            row[key] = value
    return row


def create_centre(store: SupabaseStore, form: Dict[str, Any]) -> Dict[str, Any]:
    row = build_centre_row(form)
    inserted = store.insert(CENTRES_TABLE, row)
    logger.info("centre created: %s", row["name"])
    return inserted[0] if inserted else row
