from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional

import pandas as pd

from directory.store import SupabaseStore


logger = logging.getLogger(__name__)

CENTRES_TABLE = "rehabilitation_centers"
COUNTRIES_TABLE = "countries"
STATES_TABLE = "states"
CENTER_TYPES_TABLE = "center_types"
CONTACT_TABLE = "contact_submissions"

CENTRE_COLUMNS = [
    "id",
    "name",
    "address",
    "latitude",
    "longitude",
    "phone",
    "email",
    "website",
    "services",
    "accessibility",
    "country_id",
    "state_id",
    "city_id",
    "center_type_id",
    "active",
    "verified",
    "created_at",
]
TEXT_COLUMNS = ["name", "address", "phone", "email", "website", "services"]
ID_COLUMNS = ["id", "country_id", "state_id", "city_id", "center_type_id"]
BOOL_COLUMNS = ["accessibility", "active", "verified"]
COORD_COLUMNS = ["latitude", "longitude"]

NA_TOKENS = {"nan", "none", "null", "<na>", ""}


def numericize(df: pd.DataFrame, cols: Iterable[str]) -> pd.DataFrame:
    for col in cols:
        if col in df.columns:
            df[col] = pd.to_numeric(df[col], errors="coerce")
    return df


def coerce_str_safe(df: pd.DataFrame, cols: Iterable[str]) -> pd.DataFrame:
    for col in cols:
        if col in df.columns:
            series = df[col].astype("string").str.strip()
            series = series.mask(series.str.lower().isin(NA_TOKENS))
            df[col] = series
    return df


def coerce_bool(df: pd.DataFrame, cols: Iterable[str], default: bool = False) -> pd.DataFrame:
    for col in cols:
        if col in df.columns:
            df[col] = df[col].map(lambda v: default if v is None or pd.isna(v) else bool(v)).astype(bool)
    return df


def normalize_name(value: object) -> Optional[str]:
    if value is None or pd.isna(value):
        return None
    s = str(value).strip().lower()
    return s or None


def centres_frame(rows: Iterable[Mapping[str, Any]]) -> pd.DataFrame:
    """Store rows -> centres frame with a stable column set and dtypes."""
    df = pd.DataFrame(list(rows))
    for col in CENTRE_COLUMNS:
        if col not in df.columns:
            df[col] = pd.NA
    df = df.loc[:, ~df.columns.duplicated()]
    df = coerce_str_safe(df, TEXT_COLUMNS)
    for col in ID_COLUMNS:
        df[col] = df[col].map(lambda v: None if v is None or pd.isna(v) else str(v)).astype("string")
    df = numericize(df, COORD_COLUMNS)
    df = coerce_bool(df, ["accessibility", "verified"], default=False)
    df = coerce_bool(df, ["active"], default=True)
    df["name"] = df["name"].fillna("")
    df["address"] = df["address"].fillna("")
    df["name_key"] = df["name"].map(normalize_name)
    return df


def lookup_frame(rows: Iterable[Mapping[str, Any]], extra: Iterable[str] = ()) -> pd.DataFrame:
    cols = ["id", "name", *extra]
    df = pd.DataFrame(list(rows))
    for col in cols:
        if col not in df.columns:
            df[col] = pd.NA
    df["id"] = df["id"].astype("string")
    return df.sort_values("name", kind="stable").reset_index(drop=True) if not df.empty else df


def lookup_name(frame: pd.DataFrame, row_id: object, default: str = "Unknown") -> str:
    if frame is None or frame.empty or row_id is None or pd.isna(row_id):
        return default
    match = frame[frame["id"].eq(str(row_id)).fillna(False).astype(bool)]
    if match.empty or pd.isna(match["name"].iloc[0]):
        return default
    return str(match["name"].iloc[0])


def has_coordinates(df: pd.DataFrame) -> pd.Series:
    """True where both coordinates are present and non-zero."""
    lat = df["latitude"]
    lng = df["longitude"]
    return lat.notna() & lng.notna() & lat.ne(0) & lng.ne(0)


def load_directory_data(store: SupabaseStore, *, active_only: bool = True) -> Dict[str, Any]:
    centre_filters: Dict[str, Any] = {"order": "name"}
    if active_only:
        centre_filters["eq"] = {"active": True}
    centres = centres_frame(store.select_all(CENTRES_TABLE, **centre_filters))
    countries = lookup_frame(store.select(COUNTRIES_TABLE, order="name"), extra=["code"])
    states = lookup_frame(store.select(STATES_TABLE, order="name"), extra=["code", "country_id"])
    center_types = lookup_frame(store.select(CENTER_TYPES_TABLE, order="name"), extra=["description"])
    logger.info(
        "directory data loaded: %d centres, %d countries, %d states, %d types",
        len(centres),
        len(countries),
        len(states),
        len(center_types),
    )
    return {"centres": centres, "countries": countries, "states": states, "center_types": center_types}


def frame_records(df: pd.DataFrame, columns: Optional[List[str]] = None) -> List[Dict[str, Any]]:
    if df is None or df.empty:
        return []
    out = df[[c for c in (columns or list(df.columns)) if c in df.columns]]
    out = out.astype(object).where(out.notna(), None)
    return out.to_dict(orient="records")


def centre_choices(centres: pd.DataFrame) -> Dict[str, str]:
    """id -> display name for pickers; centres sharing a name stay separate options."""
    if centres is None or centres.empty:
        return {}
    return {str(r["id"]): str(r["name"]) for r in centres[["id", "name"]].to_dict(orient="records")}
