from __future__ import annotations

import math

import numpy as np
import pandas as pd


EARTH_RADIUS_KM = 6371.0


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in kilometres."""
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2
    )
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def haversine_series(lat: float, lng: float, lats: pd.Series, lngs: pd.Series) -> pd.Series:
    lat2 = np.radians(pd.to_numeric(lats, errors="coerce").to_numpy(dtype=float, na_value=np.nan))
    lng2 = np.radians(pd.to_numeric(lngs, errors="coerce").to_numpy(dtype=float, na_value=np.nan))
    lat1 = math.radians(lat)
    d_lat = lat2 - lat1
    d_lon = lng2 - math.radians(lng)
    a = np.sin(d_lat / 2) ** 2 + math.cos(lat1) * np.cos(lat2) * np.sin(d_lon / 2) ** 2
    return pd.Series(EARTH_RADIUS_KM * 2 * np.arctan2(np.sqrt(a), np.sqrt(1 - a)), index=lats.index)


def format_distance(km: object) -> str:
    if km is None or pd.isna(km):
        return ""
    km = float(km)  # type: ignore[arg-type]
    if km < 1:
        return f"{round(km * 1000)} m"
    return f"{km:.1f} km"
