from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


DEFAULT_PAGE_SIZE = 24
MAX_PAGE_SIZE = 200
QUALITY_PAGE_SIZE = 50
ADMIN_PAGE_SIZE = 20

ISSUE_TYPES = ["all", "wrong_type", "no_coords", "bad_address", "unverified", "needs_review"]
VERIFIED_OPTIONS = ["all", "verified", "unverified"]
COORDINATE_OPTIONS = ["all", "yes", "no"]
ACTIVE_OPTIONS = ["all", "active", "inactive"]


@dataclass(frozen=True)
class UserLocation:
    lat: float
    lng: float


@dataclass(frozen=True)
class CentreFilters:
    country: str = ""
    state: str = ""
    type: str = ""
    search: str = ""
    accessibility: bool = False
    page: int = 1
    page_size: int = DEFAULT_PAGE_SIZE


@dataclass(frozen=True)
class QualityFilters:
    search: str = ""
    country: str = ""
    center_type: str = ""
    issue_type: str = "all"
    verified: str = "all"
    has_coordinates: str = "all"
    page: int = 1


@dataclass(frozen=True)
class AdminCentreFilters:
    search: str = ""
    country: str = ""
    center_type: str = ""
    verified: str = "all"
    active: str = "all"
    needs_geocode: bool = False
    page: int = 1


def _as_str(value: object) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _as_int(value: object, default: int, lo: int, hi: int) -> int:
    try:
        out = int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        out = default
    return max(lo, min(hi, out))


def _choice(value: object, options: list, default: str = "all") -> str:
    s = _as_str(value).lower()
    return s if s in options else default


def normalize_filters(raw: Optional[dict]) -> CentreFilters:
    raw = raw or {}
    return CentreFilters(
        country=_as_str(raw.get("country")),
        state=_as_str(raw.get("state")),
        type=_as_str(raw.get("type")),
        search=_as_str(raw.get("search")),
        accessibility=bool(raw.get("accessibility", False)),
        page=_as_int(raw.get("page", 1), 1, 1, 10_000),
        page_size=_as_int(raw.get("page_size", DEFAULT_PAGE_SIZE), DEFAULT_PAGE_SIZE, 1, MAX_PAGE_SIZE),
    )


def normalize_quality_filters(raw: Optional[dict]) -> QualityFilters:
    raw = raw or {}
    return QualityFilters(
        search=_as_str(raw.get("search")),
        country=_as_str(raw.get("country")),
        center_type=_as_str(raw.get("center_type")),
        issue_type=_choice(raw.get("issue_type"), ISSUE_TYPES),
        verified=_choice(raw.get("verified"), VERIFIED_OPTIONS),
        has_coordinates=_choice(raw.get("has_coordinates"), COORDINATE_OPTIONS),
        page=_as_int(raw.get("page", 1), 1, 1, 10_000),
    )


def normalize_admin_centre_filters(raw: Optional[dict]) -> AdminCentreFilters:
    raw = raw or {}
    return AdminCentreFilters(
        search=_as_str(raw.get("search")),
        country=_as_str(raw.get("country")),
        center_type=_as_str(raw.get("center_type")),
        verified=_choice(raw.get("verified"), VERIFIED_OPTIONS),
        active=_choice(raw.get("active"), ACTIVE_OPTIONS),
        needs_geocode=bool(raw.get("needs_geocode", False)),
        page=_as_int(raw.get("page", 1), 1, 1, 10_000),
    )


def parse_user_location(raw: Optional[dict]) -> Optional[UserLocation]:
    if not raw:
        return None
    try:
        lat = float(raw.get("lat"))  # type: ignore[arg-type]
        lng = float(raw.get("lng"))  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return None
    if not (-90.0 <= lat <= 90.0 and -180.0 <= lng <= 180.0):
        return None
    return UserLocation(lat=lat, lng=lng)
