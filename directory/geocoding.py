from __future__ import annotations

import logging
import time
from dataclasses import asdict, dataclass
from typing import TYPE_CHECKING, Any, Callable, Dict, Iterable, List, Optional, Tuple

import googlemaps
from googlemaps.exceptions import ApiError, HTTPError, Timeout, TransportError
import pandas as pd

from directory.data import CENTRES_TABLE
from directory.store import StoreError, SupabaseStore

if TYPE_CHECKING:
    from directory.maps_loader import MapsSdk


logger = logging.getLogger(__name__)

BATCH_SIZE = 10
REQUEST_DELAY_SEC = 0.2

CSV_COLUMNS = ["Center ID", "Center Name", "Success", "Latitude", "Longitude", "Error"]

GOOGLE_ERRORS = (ApiError, HTTPError, Timeout, TransportError)


class Geocoder:
    """Address -> coordinates, bound to a loaded Maps SDK."""

    def __init__(self, sdk: "MapsSdk", client: Optional[googlemaps.Client] = None) -> None:
        self._client = client or googlemaps.Client(
            key=sdk.api_key, timeout=sdk.timeout, requests_session=sdk.session
        )

    @staticmethod
    def region_for(country: str) -> str:
        return "MY" if country == "Malaysia" else "TH"

    def geocode(self, address: str, country: str) -> Optional[Tuple[float, float]]:
        results = self._client.geocode(f"{address}, {country}", region=self.region_for(country))
        if not results:
            return None
        location = results[0]["geometry"]["location"]
        return float(location["lat"]), float(location["lng"])


@dataclass
class GeocodingResult:
    centre_id: str
    centre_name: str
    success: bool
    lat: Optional[float] = None
    lng: Optional[float] = None
    error: Optional[str] = None


@dataclass
class GeocodingStats:
    total: int = 0
    processed: int = 0
    successful: int = 0
    failed: int = 0
    skipped: int = 0


def _missing(value: object) -> bool:
    if value is None:
        return True
    try:
        return pd.isna(value) or float(value) == 0.0  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return True


def centres_needing_geocode(centres: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return [c for c in centres if _missing(c.get("latitude")) or _missing(c.get("longitude"))]


def run_batch_geocoding(
    store: SupabaseStore,
    geocoder: Geocoder,
    centres: Iterable[Dict[str, Any]],
    countries: Iterable[Dict[str, Any]],
    *,
    batch_size: int = BATCH_SIZE,
    delay: float = REQUEST_DELAY_SEC,
    sleep: Callable[[float], None] = time.sleep,
) -> Dict[str, Any]:
    todo = centres_needing_geocode(centres)
    country_by_id = {str(c.get("id")): c for c in countries}
    stats = GeocodingStats(total=len(todo))
    results: List[GeocodingResult] = []

    for start in range(0, len(todo), batch_size):
        batch = todo[start : start + batch_size]
        for idx, centre in enumerate(batch):
            centre_id = str(centre.get("id"))
            name = str(centre.get("name") or "")
            country = country_by_id.get(str(centre.get("country_id")))
            stats.processed += 1
            if country is None:
                stats.failed += 1
                results.append(GeocodingResult(centre_id, name, False, error="Country not found"))
                continue
            try:
                coords = geocoder.geocode(str(centre.get("address") or ""), str(country.get("name")))
                if coords is None:
                    stats.failed += 1
                    results.append(GeocodingResult(centre_id, name, False, error="Geocoding failed"))
                else:
                    lat, lng = coords
                    store.update(CENTRES_TABLE, {"latitude": lat, "longitude": lng}, eq={"id": centre_id})
                    stats.successful += 1
                    results.append(GeocodingResult(centre_id, name, True, lat=lat, lng=lng))
            except (*GOOGLE_ERRORS, StoreError, KeyError, ValueError) as exc:
                logger.warning("geocoding %s failed: %s", centre_id, exc)
                stats.failed += 1
                results.append(GeocodingResult(centre_id, name, False, error=str(exc) or type(exc).__name__))
            if idx < len(batch) - 1:
                sleep(delay)
        if start + batch_size < len(todo):
            sleep(delay * 2)

    logger.info("geocoding finished: %d/%d successful", stats.successful, stats.total)
    return {"stats": asdict(stats), "results": [asdict(r) for r in results]}


def results_to_csv(results: Iterable[Dict[str, Any]]) -> bytes:
    rows = [
        [
            r.get("centre_id"),
            r.get("centre_name"),
            "Yes" if r.get("success") else "No",
            r.get("lat") if r.get("lat") is not None else "",
            r.get("lng") if r.get("lng") is not None else "",
            r.get("error") or "",
        ]
        for r in results
    ]
    return pd.DataFrame(rows, columns=CSV_COLUMNS).to_csv(index=False).encode("utf-8")
