from __future__ import annotations

import logging
import math
from dataclasses import replace
from functools import lru_cache
from typing import Any, Dict, Optional

import numpy as np
import pandas as pd
from fastapi import Depends, FastAPI, File, Form, HTTPException, Query, Request, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from api.schemas import (
    AdminCentreFiltersModel,
    BulkActionModel,
    CenterTypeUpdateModel,
    CentreCreateModel,
    CentreIdsModel,
    CentreSearchModel,
    CentreUpdateModel,
    ContactModel,
    DuplicateCleanupModel,
    GeocodingResultsModel,
    LoginModel,
    PlacesSearchModel,
    QualityFiltersModel,
    SubmissionStatusModel,
    VerifyCentreModel,
)
from directory.auth import SESSION_COOKIE, AdminAuth, AuthError
from directory.centres_admin import compute_admin_centres, delete_centre, set_centre_flags, update_centre
from directory.config import get_settings
from directory.contact import (
    ContactValidationError,
    list_submissions,
    submission_counts,
    submit_contact,
    update_submission_status,
)
from directory.dashboard import compute_admin_dashboard
from directory.data import CENTER_TYPES_TABLE, CENTRES_TABLE, COUNTRIES_TABLE, STATES_TABLE, load_directory_data
from directory.filters import (
    normalize_admin_centre_filters,
    normalize_filters,
    normalize_quality_filters,
    parse_user_location,
)
from directory.geocoding import results_to_csv, run_batch_geocoding
from directory.importer import ImportReferenceError, import_directories
from directory.listing import CentreValidationError, compute_centre_detail, compute_listing, create_centre
from directory.maps_loader import ConfigError, MapsFacade, MapsLoaderError, NotReadyError, build_maps_facade
from directory.places import PlacesError, apply_verification, search_places, verified_from_place
from directory.quality import (
    cleanup_duplicates,
    compute_data_quality,
    delete_centres,
    find_duplicates,
    update_center_type,
)
from directory.store import SupabaseStore


settings = get_settings()
logging.basicConfig(level=settings.log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

app = FastAPI(title="Rehab Directory API", version="0.1.0")
logger = logging.getLogger(__name__)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# One loader per process, handed to endpoints through get_maps().
app.state.maps = build_maps_facade(lambda: get_settings().google_maps_api_key, timeout=settings.http_timeout)


@lru_cache(maxsize=1)
def _default_store() -> SupabaseStore:
    return SupabaseStore.from_settings(get_settings())


@lru_cache(maxsize=1)
def _default_auth() -> AdminAuth:
    return AdminAuth.from_settings(get_settings())


def get_store() -> SupabaseStore:
    return _default_store()


def get_auth() -> AdminAuth:
    return _default_auth()


def get_maps(request: Request) -> MapsFacade:
    return request.app.state.maps


def _session_token(request: Request) -> Optional[str]:
    header = request.headers.get("Authorization", "")
    if header.lower().startswith("bearer "):
        return header[7:].strip() or None
    return request.cookies.get(SESSION_COOKIE)


def require_admin(request: Request, auth: AdminAuth = Depends(get_auth)) -> Dict[str, Any]:
    try:
        user = auth.get_user(_session_token(request))
    except AuthError as exc:
        logger.warning("session check failed: %s", exc)
        user = None
    if not user:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return user


def _json(data: object) -> JSONResponse:
    """Return JSON with safe encoding for pandas/numpy objects."""

    def _safe_float(value: object) -> float | None:
        try:
            out = float(value)  # type: ignore[arg-type]
        except Exception:
            return None
        if math.isnan(out) or math.isinf(out):
            return None
        return out

    return JSONResponse(
        content=jsonable_encoder(
            data,
            custom_encoder={
                type(pd.NA): lambda _: None,
                np.integer: int,
                float: _safe_float,
                np.floating: _safe_float,
                np.bool_: bool,
                np.ndarray: lambda arr: arr.tolist(),
                pd.Timestamp: lambda ts: ts.isoformat(),
            },
        )
    )


def _error(exc: Exception, status_code: int = 500) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": str(exc), "type": type(exc).__name__})


def _maps_error(exc: MapsLoaderError) -> JSONResponse:
    if isinstance(exc, ConfigError):
        return _error(exc, 500)
    if isinstance(exc, NotReadyError):
        return _error(exc, 409)
    return _error(exc, 503)


@app.get("/health")
def health():
    return {"status": "ok"}


@app.get("/meta/countries")
def meta_countries(store: SupabaseStore = Depends(get_store)):
    try:
        return _json({"countries": store.select(COUNTRIES_TABLE, order="name")})
    except Exception as exc:
        logger.exception("meta_countries failed")
        return _error(exc)


@app.get("/meta/states")
def meta_states(country_id: str = Query(default=""), store: SupabaseStore = Depends(get_store)):
    try:
        eq = {"country_id": country_id} if country_id else None
        return _json({"states": store.select(STATES_TABLE, eq=eq, order="name")})
    except Exception as exc:
        logger.exception("meta_states failed")
        return _error(exc)


@app.get("/meta/center-types")
def meta_center_types(store: SupabaseStore = Depends(get_store)):
    try:
        return _json({"center_types": store.select(CENTER_TYPES_TABLE, order="name")})
    except Exception as exc:
        logger.exception("meta_center_types failed")
        return _error(exc)


@app.post("/centres/search")
def centres_search(body: CentreSearchModel, store: SupabaseStore = Depends(get_store)):
    try:
        data_ctx = load_directory_data(store)
        f = normalize_filters(body.filters.model_dump())
        location = parse_user_location(body.user_location.model_dump() if body.user_location else None)
        return _json(compute_listing(f, data_ctx, user_location=location))
    except Exception as exc:
        logger.exception("centres_search failed")
        return _error(exc)


@app.get("/centres/{centre_id}")
def centre_detail(
    centre_id: str,
    lat: Optional[float] = Query(default=None),
    lng: Optional[float] = Query(default=None),
    store: SupabaseStore = Depends(get_store),
):
    try:
        data_ctx = load_directory_data(store)
        location = parse_user_location({"lat": lat, "lng": lng}) if lat is not None and lng is not None else None
        detail = compute_centre_detail(centre_id, data_ctx, user_location=location)
    except Exception as exc:
        logger.exception("centre_detail failed")
        return _error(exc)
    if detail is None:
        return _error(LookupError(f"Centre {centre_id} not found"), 404)
    return _json(detail)


@app.post("/centres")
def centres_create(body: CentreCreateModel, store: SupabaseStore = Depends(get_store)):
    try:
        return _json({"centre": create_centre(store, body.model_dump())})
    except CentreValidationError as exc:
        return _error(exc, 400)
    except Exception as exc:
        logger.exception("centres_create failed")
        return _error(exc)


@app.post("/contact")
def contact(body: ContactModel, store: SupabaseStore = Depends(get_store)):
    try:
        return _json({"submission": submit_contact(store, body.model_dump())})
    except ContactValidationError as exc:
        return _error(exc, 400)
    except Exception as exc:
        logger.exception("contact failed")
        return _error(exc)


@app.get("/maps/status")
def maps_status(maps: MapsFacade = Depends(get_maps)):
    return {"status": maps.status.value, "loaded": maps.is_loaded()}


@app.post("/maps/load")
async def maps_load(maps: MapsFacade = Depends(get_maps)):
    try:
        sdk = await maps.ensure_loaded()
    except MapsLoaderError as exc:
        logger.warning("maps load failed: %s", exc)
        return _maps_error(exc)
    return {"status": maps.status.value, "loaded": maps.is_loaded(), "libraries": list(sdk.libraries)}


@app.get("/maps/script")
async def maps_script(maps: MapsFacade = Depends(get_maps)):
    try:
        await maps.ensure_loaded()
    except MapsLoaderError as exc:
        return _maps_error(exc)
    return {"html": maps.script_html()}


@app.post("/google-places/search")
def google_places_search(body: PlacesSearchModel):
    try:
        return _json(
            search_places(
                body.query,
                get_settings().google_maps_api_key,
                latitude=body.latitude,
                longitude=body.longitude,
                timeout=get_settings().http_timeout,
            )
        )
    except ValueError as exc:
        return _error(exc, 400)
    except Exception as exc:
        logger.exception("google_places_search failed")
        return _error(exc)


@app.post("/admin/login")
def admin_login(body: LoginModel, auth: AdminAuth = Depends(get_auth)):
    try:
        session = auth.sign_in(body.email, body.password)
    except AuthError as exc:
        return _error(exc, 401)
    response = JSONResponse(content={"email": session.email, "access_token": session.access_token})
    response.set_cookie(
        SESSION_COOKIE,
        session.access_token,
        httponly=True,
        samesite="lax",
        max_age=session.expires_in or None,
    )
    return response


@app.post("/admin/logout")
def admin_logout(request: Request, auth: AdminAuth = Depends(get_auth)):
    token = _session_token(request)
    if token:
        try:
            auth.sign_out(token)
        except AuthError as exc:
            logger.warning("logout failed: %s", exc)
    response = JSONResponse(content={"signed_out": True})
    response.delete_cookie(SESSION_COOKIE)
    return response


@app.get("/admin/session")
def admin_session(user: Dict[str, Any] = Depends(require_admin)):
    return {"authenticated": True, "email": user.get("email")}


@app.get("/admin/dashboard")
def admin_dashboard(_: Dict[str, Any] = Depends(require_admin), store: SupabaseStore = Depends(get_store)):
    try:
        return _json(compute_admin_dashboard(store))
    except Exception as exc:
        logger.exception("admin_dashboard failed")
        return _error(exc)


@app.get("/admin/contact-submissions")
def admin_contact_submissions(
    status: str = Query(default="all"),
    _: Dict[str, Any] = Depends(require_admin),
    store: SupabaseStore = Depends(get_store),
):
    try:
        all_rows = list_submissions(store)
        rows = all_rows if status == "all" else list_submissions(store, status)
        return _json({"submissions": rows, "counts": submission_counts(all_rows)})
    except ContactValidationError as exc:
        return _error(exc, 400)
    except Exception as exc:
        logger.exception("admin_contact_submissions failed")
        return _error(exc)


@app.patch("/admin/contact-submissions/{submission_id}")
def admin_contact_status(
    submission_id: str,
    body: SubmissionStatusModel,
    _: Dict[str, Any] = Depends(require_admin),
    store: SupabaseStore = Depends(get_store),
):
    try:
        return _json({"submission": update_submission_status(store, submission_id, body.status)})
    except Exception as exc:
        logger.exception("admin_contact_status failed")
        return _error(exc)


@app.post("/admin/import")
async def admin_import(
    malaysia: Optional[UploadFile] = File(default=None),
    thailand: Optional[UploadFile] = File(default=None),
    full_import: bool = Form(default=False),
    _: Dict[str, Any] = Depends(require_admin),
    store: SupabaseStore = Depends(get_store),
):
    try:
        my_bytes = await malaysia.read() if malaysia is not None else None
        th_bytes = await thailand.read() if thailand is not None else None
        report = await run_in_threadpool(
            import_directories, store, malaysia=my_bytes, thailand=th_bytes, full_import=full_import
        )
        return _json(report.to_dict())
    except ImportReferenceError as exc:
        return _error(exc, 400)
    except ValueError as exc:
        return _error(exc, 400)
    except Exception as exc:
        logger.exception("admin_import failed")
        return _error(exc)


@app.post("/admin/data-quality")
def admin_data_quality(
    filters: QualityFiltersModel,
    _: Dict[str, Any] = Depends(require_admin),
    store: SupabaseStore = Depends(get_store),
):
    try:
        data_ctx = load_directory_data(store, active_only=False)
        f = normalize_quality_filters(filters.model_dump())
        return _json(compute_data_quality(f, data_ctx))
    except Exception as exc:
        logger.exception("admin_data_quality failed")
        return _error(exc)


@app.post("/admin/centres/search")
def admin_centres_search(
    filters: AdminCentreFiltersModel,
    _: Dict[str, Any] = Depends(require_admin),
    store: SupabaseStore = Depends(get_store),
):
    try:
        data_ctx = load_directory_data(store, active_only=False)
        f = normalize_admin_centre_filters(filters.model_dump())
        return _json(compute_admin_centres(f, data_ctx))
    except Exception as exc:
        logger.exception("admin_centres_search failed")
        return _error(exc)


@app.post("/admin/centres/bulk")
def admin_centres_bulk(
    body: BulkActionModel,
    _: Dict[str, Any] = Depends(require_admin),
    store: SupabaseStore = Depends(get_store),
):
    try:
        return _json({"action": body.action, "updated": set_centre_flags(store, body.ids, body.action)})
    except CentreValidationError as exc:
        return _error(exc, 400)
    except Exception as exc:
        logger.exception("admin_centres_bulk failed")
        return _error(exc)


@app.patch("/admin/centres/{centre_id}")
def admin_update_centre(
    centre_id: str,
    body: CentreUpdateModel,
    _: Dict[str, Any] = Depends(require_admin),
    store: SupabaseStore = Depends(get_store),
):
    try:
        return _json({"centre": update_centre(store, centre_id, body.model_dump(exclude_unset=True))})
    except CentreValidationError as exc:
        return _error(exc, 400)
    except LookupError as exc:
        return _error(exc, 404)
    except Exception as exc:
        logger.exception("admin_update_centre failed")
        return _error(exc)


@app.delete("/admin/centres/{centre_id}")
def admin_delete_centre(
    centre_id: str,
    _: Dict[str, Any] = Depends(require_admin),
    store: SupabaseStore = Depends(get_store),
):
    try:
        return _json({"deleted": delete_centre(store, centre_id)})
    except LookupError as exc:
        return _error(exc, 404)
    except Exception as exc:
        logger.exception("admin_delete_centre failed")
        return _error(exc)


@app.post("/admin/centres/center-type")
def admin_update_center_type(
    body: CenterTypeUpdateModel,
    _: Dict[str, Any] = Depends(require_admin),
    store: SupabaseStore = Depends(get_store),
):
    try:
        return _json({"updated": update_center_type(store, body.ids, body.center_type_id)})
    except Exception as exc:
        logger.exception("admin_update_center_type failed")
        return _error(exc)


@app.post("/admin/centres/delete")
def admin_delete_centres(
    body: CentreIdsModel,
    _: Dict[str, Any] = Depends(require_admin),
    store: SupabaseStore = Depends(get_store),
):
    try:
        return _json({"deleted": delete_centres(store, body.ids)})
    except Exception as exc:
        logger.exception("admin_delete_centres failed")
        return _error(exc)


@app.get("/admin/duplicates")
def admin_duplicates(_: Dict[str, Any] = Depends(require_admin), store: SupabaseStore = Depends(get_store)):
    try:
        rows = store.select_all(CENTRES_TABLE, order="created_at", ascending=True)
        return _json(find_duplicates(rows))
    except Exception as exc:
        logger.exception("admin_duplicates failed")
        return _error(exc)


@app.post("/admin/duplicates/cleanup")
def admin_duplicates_cleanup(
    body: DuplicateCleanupModel,
    _: Dict[str, Any] = Depends(require_admin),
    store: SupabaseStore = Depends(get_store),
):
    try:
        return _json(cleanup_duplicates(store, body.keys))
    except Exception as exc:
        logger.exception("admin_duplicates_cleanup failed")
        return _error(exc)


@app.post("/admin/centres/{centre_id}/verify")
def admin_verify_centre(
    centre_id: str,
    body: VerifyCentreModel,
    _: Dict[str, Any] = Depends(require_admin),
    store: SupabaseStore = Depends(get_store),
):
    try:
        centre = store.get(CENTRES_TABLE, centre_id)
        if centre is None:
            return _error(LookupError(f"Centre {centre_id} not found"), 404)
        center_types = store.select(CENTER_TYPES_TABLE, columns="id,name")
        current = next((t.get("name") for t in center_types if t.get("id") == centre.get("center_type_id")), None)
        verified = verified_from_place(body.place, current)
        return _json({"centre": apply_verification(store, centre, verified, center_types)})
    except PlacesError as exc:
        return _error(exc, 400)
    except Exception as exc:
        logger.exception("admin_verify_centre failed")
        return _error(exc)


@app.post("/admin/geocoding/run")
async def admin_geocoding_run(
    _: Dict[str, Any] = Depends(require_admin),
    store: SupabaseStore = Depends(get_store),
    maps: MapsFacade = Depends(get_maps),
):
    try:
        await maps.ensure_loaded()
        geocoder = maps.create_derived_client()
    except MapsLoaderError as exc:
        return _maps_error(exc)
    except ValueError as exc:
        # rejected by the Google client, e.g. a malformed key
        return _error(exc, 400)
    try:
        centres = await run_in_threadpool(
            store.select,
            CENTRES_TABLE,
            columns="id,name,address,latitude,longitude,country_id",
            eq={"active": True},
            order="name",
        )
        countries = await run_in_threadpool(store.select, COUNTRIES_TABLE)
        return _json(await run_in_threadpool(run_batch_geocoding, store, geocoder, centres, countries))
    except Exception as exc:
        logger.exception("admin_geocoding_run failed")
        return _error(exc)


@app.post("/admin/geocoding/export")
def admin_geocoding_export(body: GeocodingResultsModel, _: Dict[str, Any] = Depends(require_admin)):
    return Response(
        content=results_to_csv(body.results),
        media_type="text/csv",
        headers={"Content-Disposition": "attachment; filename=geocoding-results.csv"},
    )


@app.post("/export/{page}")
def export_page(page: str, body: CentreSearchModel, store: SupabaseStore = Depends(get_store)):
    data_ctx = load_directory_data(store)

    filename = f"{page}.csv"
    if page == "centres":
        # every match on one page
        f = replace(normalize_filters(body.filters.model_dump()), page=1, page_size=max(1, len(data_ctx["centres"])))
        location = parse_user_location(body.user_location.model_dump() if body.user_location else None)
        export_df = pd.DataFrame(compute_listing(f, data_ctx, user_location=location)["centres"])
    else:
        export_df = pd.DataFrame()

    csv_bytes = export_df.to_csv(index=False).encode("utf-8")
    return Response(content=csv_bytes, media_type="text/csv", headers={"Content-Disposition": f"attachment; filename={filename}"})
