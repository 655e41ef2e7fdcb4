"""Google Places lookup used to verify centre records."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional
from urllib.parse import urlparse

import googlemaps

from directory.config import DEFAULT_HTTP_TIMEOUT
from directory.data import CENTRES_TABLE
from directory.geocoding import GOOGLE_ERRORS
from directory.store import SupabaseStore


logger = logging.getLogger(__name__)

DETAIL_FIELDS = ["name", "formatted_address", "formatted_phone_number", "website", "geometry", "type", "place_id"]
SEARCH_RADIUS_M = 5000
DETAIL_LIMIT = 3
GENERIC_PLACE_TYPES = {"establishment", "point_of_interest"}


class PlacesError(Exception):
    pass


@dataclass(frozen=True)
class VerifiedData:
    name: str
    address: str
    latitude: float
    longitude: float
    phone: Optional[str] = None
    website: Optional[str] = None
    business_type: Optional[str] = None
    place_id: Optional[str] = None
    services: Optional[str] = None


def search_places(
    query: str,
    api_key: Optional[str],
    *,
    latitude: Optional[float] = None,
    longitude: Optional[float] = None,
    client: Optional[googlemaps.Client] = None,
    timeout: float = DEFAULT_HTTP_TIMEOUT,
) -> Dict[str, Any]:
    """Text search plus details for the best few matches."""
    if not (query or "").strip():
        raise ValueError("Query is required")
    if not api_key and client is None:
        raise PlacesError("Google Maps API key not configured")
    client = client or googlemaps.Client(key=api_key, timeout=timeout)

    kwargs: Dict[str, Any] = {}
    if latitude and longitude:
        kwargs["location"] = (latitude, longitude)
        kwargs["radius"] = SEARCH_RADIUS_M

    logger.info("searching Google Places: %s", query)
    try:
        data = client.places(query.strip(), **kwargs)
    except GOOGLE_ERRORS as exc:
        logger.error("Google Places API error: %s", exc)
        raise PlacesError(f"Google Places API error: {str(exc) or type(exc).__name__}") from exc

    detailed = [_place_details(client, place) for place in (data.get("results") or [])[:DETAIL_LIMIT]]
    return {"results": detailed, "status": data.get("status")}


def _place_details(client: googlemaps.Client, place: Dict[str, Any]) -> Dict[str, Any]:
    try:
        data = client.place(place.get("place_id"), fields=DETAIL_FIELDS)
    except GOOGLE_ERRORS as exc:
        logger.warning("place details failed for %s: %s", place.get("place_id"), exc)
        return place
    if data.get("status") == "OK" and data.get("result"):
        result = dict(data["result"])
        result.setdefault("place_id", place.get("place_id"))
        return result
    return place


def business_type_for(types: List[str], current_type: Optional[str]) -> Optional[str]:
    lowered = [t.lower() for t in types or []]
    if "hospital" in lowered or "health" in lowered:
        return "Hospital"
    if "doctor" in lowered or "medical" in lowered:
        return "Private"
    return current_type


def services_from_types(types: List[str]) -> str:
    kept = [t.replace("_", " ") for t in types or [] if t.lower() not in GENERIC_PLACE_TYPES]
    return ", ".join(kept) or "Rehabilitation services"


def verified_from_place(place: Mapping[str, Any], current_type: Optional[str] = None) -> VerifiedData:
    location = ((place.get("geometry") or {}).get("location")) or {}
    if "lat" not in location or "lng" not in location:
        raise PlacesError("Place has no location")
    types = list(place.get("types") or [])
    return VerifiedData(
        name=str(place.get("name") or ""),
        address=str(place.get("formatted_address") or ""),
        latitude=float(location["lat"]),
        longitude=float(location["lng"]),
        phone=place.get("formatted_phone_number"),
        website=place.get("website"),
        business_type=business_type_for(types, current_type),
        place_id=place.get("place_id"),
        services=services_from_types(types),
    )


def normalize_website(url: Optional[str]) -> Optional[str]:
    if not url or not url.strip():
        return None
    formatted = re.sub(r"\s+", "", url)
    if not re.match(r"^https?://", formatted, re.I):
        formatted = "https://" + formatted
    parsed = urlparse(formatted)
    if not parsed.netloc or "." not in parsed.netloc:
        return None
    return formatted


def apply_verification(
    store: SupabaseStore,
    centre: Mapping[str, Any],
    verified: VerifiedData,
    center_types: List[Mapping[str, Any]],
) -> Dict[str, Any]:
    """Write verified Places data onto a centre and mark it verified."""
    center_type_id = centre.get("center_type_id")
    if verified.business_type and verified.business_type.strip():
        wanted = verified.business_type.strip().lower()
        for t in center_types:
            if str(t.get("name", "")).lower() == wanted:
                center_type_id = t.get("id")
                break

    values = {
        "name": verified.name or centre.get("name"),
        "address": verified.address or centre.get("address"),
        "latitude": verified.latitude,
        "longitude": verified.longitude,
        "phone": verified.phone or None,
        "website": normalize_website(verified.website),
        "services": verified.services or None,
        "center_type_id": center_type_id,
        "verified": True,
    }
    updated = store.update(CENTRES_TABLE, values, eq={"id": centre.get("id")})
    logger.info("centre %s verified via Google Places (%s)", centre.get("id"), verified.place_id)
    return updated[0] if updated else {**dict(centre), **values}