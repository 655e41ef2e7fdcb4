from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field


class UserLocationModel(BaseModel):
    lat: float
    lng: float


class CentreFiltersModel(BaseModel):
    country: str = ""
    state: str = ""
    type: str = ""
    search: str = ""
    accessibility: bool = False
    page: int = 1
    page_size: int = 24


class CentreSearchModel(BaseModel):
    filters: CentreFiltersModel = Field(default_factory=CentreFiltersModel)
    user_location: Optional[UserLocationModel] = None


class CentreCreateModel(BaseModel):
    name: str = ""
    address: str = ""
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    country_id: str = ""
    state_id: Optional[str] = None
    city_id: Optional[str] = None
    center_type_id: str = ""
    phone: Optional[str] = None
    email: Optional[str] = None
    website: Optional[str] = None
    services: Optional[str] = None
    accessibility: bool = False


class ContactModel(BaseModel):
    name: str = ""
    email: str = ""
    subject: str = ""
    message: str = ""
    center_name: Optional[str] = None


class SubmissionStatusModel(BaseModel):
    status: Literal["new", "in_progress", "resolved"]


class LoginModel(BaseModel):
    email: str
    password: str


class QualityFiltersModel(BaseModel):
    search: str = ""
    country: str = ""
    center_type: str = ""
    issue_type: str = "all"
    verified: str = "all"
    has_coordinates: str = "all"
    page: int = 1


class CenterTypeUpdateModel(BaseModel):
    ids: List[str] = Field(default_factory=list)
    center_type_id: str


class CentreIdsModel(BaseModel):
    ids: List[str] = Field(default_factory=list)


class DuplicateCleanupModel(BaseModel):
    keys: Optional[List[str]] = None


class PlacesSearchModel(BaseModel):
    query: str = ""
    latitude: Optional[float] = None
    longitude: Optional[float] = None


class VerifyCentreModel(BaseModel):
    place: Dict[str, Any]


class GeocodingResultsModel(BaseModel):
    results: List[Dict[str, Any]] = Field(default_factory=list)


class AdminCentreFiltersModel(BaseModel):
    search: str = ""
    country: str = ""
    center_type: str = ""
    verified: str = "all"
    active: str = "all"
    needs_geocode: bool = False
    page: int = 1


class CentreUpdateModel(BaseModel):
    name: Optional[str] = None
    address: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    country_id: Optional[str] = None
    state_id: Optional[str] = None
    city_id: Optional[str] = None
    center_type_id: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    website: Optional[str] = None
    services: Optional[str] = None
    accessibility: Optional[bool] = None
    active: Optional[bool] = None
    verified: Optional[bool] = None


class BulkActionModel(BaseModel):
    ids: List[str] = Field(default_factory=list)
    action: Literal["verify", "unverify", "activate", "deactivate"]
