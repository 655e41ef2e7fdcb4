import html
from contextlib import contextmanager
from typing import Any, Dict, List, Optional

import altair as alt
import pandas as pd
import streamlit as st
import streamlit.components.v1 as components

from directory.auth import AdminAuth, AuthError
from directory.centres_admin import BULK_ACTIONS, compute_admin_centres, delete_centre, set_centre_flags, update_centre
from directory.config import get_settings
from directory.contact import (
    STATUSES,
    ContactValidationError,
    list_submissions,
    submission_counts,
    submit_contact,
    update_submission_status,
)
from directory.dashboard import compute_admin_dashboard
from directory.data import CENTER_TYPES_TABLE, CENTRES_TABLE, COUNTRIES_TABLE, centre_choices, load_directory_data
from directory.filters import (
    ACTIVE_OPTIONS,
    ISSUE_TYPES,
    VERIFIED_OPTIONS,
    normalize_admin_centre_filters,
    normalize_filters,
    normalize_quality_filters,
    parse_user_location,
)
from directory.geo import format_distance
from directory.geocoding import results_to_csv, run_batch_geocoding
from directory.importer import ImportReferenceError, import_directories
from directory.listing import CentreValidationError, compute_centre_detail, compute_listing, create_centre
from directory.map_view import build_map_html
from directory.maps_loader import LoaderThread, MapsFacade, MapsLoaderError, MapsSdk, build_maps_facade
from directory.places import PlacesError, apply_verification, search_places, verified_from_place
from directory.quality import (
    ISSUE_LABELS,
    cleanup_duplicates,
    compute_data_quality,
    delete_centres,
    find_duplicates,
    update_center_type,
)
from directory.store import StoreError, SupabaseStore

alt.data_transformers.disable_max_rows()
# ---------- UI / layout helpers ----------
def inject_base_styles():
    if st.session_state.get("_base_css_injected"):
        return
    st.markdown(
        """
        <style>
        .app-top-bar {padding: 6px 0 4px;border-bottom: 1px solid #e5e7eb;margin-bottom: 10px;}
        .app-top-bar .breadcrumb {color: #6b7280;font-size: 0.9rem;margin-bottom: 2px;}
        .app-top-bar .page-title {font-size: 1.4rem;font-weight: 700;color: #111827;}
        .card {border: 1px solid #e5e7eb;border-radius: 12px;padding: 16px;background: #ffffff;
               box-shadow: 0 1px 2px rgba(0,0,0,0.04); margin-bottom: 12px;}
        .card-header {display: flex;justify-content: space-between;align-items: center;margin-bottom: 8px;}
        .card-title {font-weight: 600;font-size: 1.0rem;color: #111827;}
        .card-actions {font-size: 0.9rem;color: #2563eb;}
        .chip-row {display: flex;flex-wrap: wrap;gap: 6px;margin-top: 6px;}
        .chip {background: #f3f4f6;border: 1px solid #e5e7eb;border-radius: 14px;padding: 4px 10px;font-size: 0.85rem;color: #374151;}
        .verified {color: #047857;font-weight: 600;}
        </style>
        """,
        unsafe_allow_html=True,
    )
    st.session_state["_base_css_injected"] = True


@contextmanager
def card(title: str, actions: Optional[str] = None):
    container = st.container()
    container.markdown(
        f"""
        <div class="card">
          <div class="card-header">
            <div class="card-title">{html.escape(str(title))}</div>
            <div class="card-actions">{html.escape(str(actions or ""))}</div>
          </div>
        """,
        unsafe_allow_html=True,
    )
    body = container.container()
    with body:
        yield body
    container.markdown("</div>", unsafe_allow_html=True)


def format_filter_summary(country: str, state: str, center_type: str, search: str, located: bool) -> str:
    chips = [
        f"Country: {country or 'All'}",
        f"State: {state or 'All'}",
        f"Type: {center_type or 'All'}",
        f"Search: {search}" if search else "Search: none",
        "Sorted by distance" if located else "Sorted by name",
    ]
    return "".join([f"<span class='chip'>{html.escape(txt)}</span>" for txt in chips])


def render_page_header(title: str, breadcrumb: str, filter_summary_html: str = "", export_df: Optional[pd.DataFrame] = None, export_name: str = "export.csv"):
    inject_base_styles()
    top = st.container()
    c1, c2 = top.columns([7, 3])
    with c1:
        st.markdown(
            f"<div class='app-top-bar'><div class='breadcrumb'>{breadcrumb}</div><div class='page-title'>{title}</div></div>",
            unsafe_allow_html=True,
        )
    with c2:
        btn_cols = st.columns(2)
        if btn_cols[0].button("Refresh", key=f"refresh_{title}"):
            load_data.clear()
            st.rerun()
        if export_df is not None and not export_df.empty:
            btn_cols[1].download_button(
                "Export CSV",
                data=export_df.to_csv(index=False).encode("utf-8"),
                file_name=export_name,
                mime="text/csv",
            )
    if filter_summary_html:
        st.markdown(f"<div class='chip-row'>{filter_summary_html}</div>", unsafe_allow_html=True)


# ---------- Composition root ----------
@st.cache_resource
def get_store() -> SupabaseStore:
    return SupabaseStore.from_settings(get_settings())


@st.cache_resource
def get_auth() -> AdminAuth:
    return AdminAuth.from_settings(get_settings())


@st.cache_resource
def get_maps() -> MapsFacade:
    settings = get_settings()
    return build_maps_facade(lambda: get_settings().google_maps_api_key, timeout=settings.http_timeout)


@st.cache_resource
def get_maps_thread() -> LoaderThread:
    return LoaderThread()


def ensure_maps_loaded() -> MapsSdk:
    """Load the shared Maps script on the loader's own event loop."""
    return get_maps_thread().run(get_maps().ensure_loaded())


@st.cache_data(ttl=300, show_spinner="Loading directory…")
def load_data(active_only: bool = True) -> Dict[str, Any]:
    return load_directory_data(get_store(), active_only=active_only)


def options_for(frame: pd.DataFrame) -> Dict[str, str]:
    """name -> id, with an "All" entry mapping to ""."""
    out = {"All": ""}
    if frame is not None and not frame.empty:
        out.update({str(r["name"]): str(r["id"]) for r in frame.to_dict(orient="records")})
    return out


def render_map(markers: List[Dict[str, Any]], user_location: Optional[Dict[str, float]] = None):
    maps = get_maps()
    try:
        ensure_maps_loaded()
    except MapsLoaderError as exc:
        st.warning(f"Interactive map unavailable ({exc}). Showing a basic map instead.")
        if markers:
            st.map(pd.DataFrame(markers)[["lat", "lng"]].rename(columns={"lng": "lon"}))
        return
    components.html(build_map_html(maps.script_html(), markers, user_location), height=480)


def render_centre_card(centre: Dict[str, Any], ctx: Dict[str, Any]):
    type_name = ctx["center_type_names"].get(str(centre.get("center_type_id")), "Unknown")
    badge = " <span class='verified'>✓ Verified</span>" if centre.get("verified") else ""
    st.markdown(f"**{html.escape(str(centre.get('name') or ''))}**{badge}", unsafe_allow_html=True)
    st.caption(f"{type_name} · {centre.get('address') or ''}")
    distance = format_distance(centre.get("distance"))
    if distance:
        st.caption(f"{distance} away")
    contact_bits = [b for b in [centre.get("phone"), centre.get("email"), centre.get("website")] if b]
    if contact_bits:
        st.write(" · ".join(contact_bits))


# ---------- UI setup ----------
st.set_page_config(page_title="Rehabilitation Centre Directory", layout="wide")
inject_base_styles()
st.title("Rehabilitation Centre Directory")
st.caption("Find rehabilitation centres across Malaysia and Thailand.")

try:
    data_ctx = load_data()
except StoreError as exc:
    st.error(f"Could not load the directory: {exc}. Check SUPABASE_URL and SUPABASE_ANON_KEY.")
    st.stop()

data_ctx["center_type_names"] = {
    str(r["id"]): str(r["name"]) for r in data_ctx["center_types"].to_dict(orient="records")
} if not data_ctx["center_types"].empty else {}

# ----- Sidebar: navigation + filters -----
with st.sidebar:
    st.markdown("### Navigate")
    nav_choice = st.radio("Navigate", ["Find Centres", "Centre Details", "Contact", "Add Centre", "Admin"], index=0)

    st.markdown("---")
    st.markdown("### Filters")
    country_options = options_for(data_ctx["countries"])
    country_name = st.selectbox("Country", list(country_options))
    states = data_ctx["states"]
    if country_options[country_name] and not states.empty:
        states = states[states["country_id"].astype(str).eq(country_options[country_name]).fillna(False).astype(bool)]
    state_options = options_for(states)
    state_name = st.selectbox("State", list(state_options))
    type_options = options_for(data_ctx["center_types"])
    type_name = st.selectbox("Centre type", list(type_options))
    search_query = st.text_input("Search name, address or services", "")
    accessible_only = st.checkbox("Wheelchair accessible only", value=False)

    st.markdown("---")
    with st.expander("My location", expanded=False):
        use_location = st.checkbox("Sort by distance from me", value=False)
        my_lat = st.number_input("Latitude", min_value=-90.0, max_value=90.0, value=3.139, format="%.5f")
        my_lng = st.number_input("Longitude", min_value=-180.0, max_value=180.0, value=101.6869, format="%.5f")

user_location = parse_user_location({"lat": my_lat, "lng": my_lng}) if use_location else None


def render_find_page():
    page = st.session_state.get("listing_page", 1)
    filters = normalize_filters(
        {
            "country": country_options[country_name],
            "state": state_options[state_name],
            "type": type_options[type_name],
            "search": search_query,
            "accessibility": accessible_only,
            "page": page,
        }
    )
    listing = compute_listing(filters, data_ctx, user_location=user_location)
    summary = format_filter_summary(
        "" if country_name == "All" else country_name,
        "" if state_name == "All" else state_name,
        "" if type_name == "All" else type_name,
        search_query,
        user_location is not None,
    )
    render_page_header(
        "Find Centres",
        "Home / Find Centres",
        summary,
        export_df=pd.DataFrame(listing["centres"]),
        export_name="centres.csv",
    )

    with card("Map", actions=f"{len(listing['markers'])} on map"):
        render_map(listing["markers"], {"lat": user_location.lat, "lng": user_location.lng} if user_location else None)

    with card("Centres", actions=f"{listing['total']} of {listing['available']}"):
        if not listing["centres"]:
            st.info("No centres match the current filters.")
        cols = st.columns(3)
        for i, centre in enumerate(listing["centres"]):
            with cols[i % 3]:
                render_centre_card(centre, data_ctx)
        nav = st.columns([1, 2, 1])
        if nav[0].button("← Previous", disabled=listing["page"] <= 1):
            st.session_state["listing_page"] = listing["page"] - 1
            st.rerun()
        nav[1].caption(f"Page {listing['page']} of {listing['pages']}")
        if nav[2].button("Next →", disabled=listing["page"] >= listing["pages"]):
            st.session_state["listing_page"] = listing["page"] + 1
            st.rerun()


def render_detail_page():
    render_page_header("Centre Details", "Home / Centre Details")
    centres = data_ctx["centres"]
    if centres.empty:
        st.info("No centres in the directory yet.")
        return
    names = centre_choices(centres)
    selected = st.selectbox("Centre", list(names), format_func=names.get)
    detail = compute_centre_detail(selected, data_ctx, user_location=user_location)
    if detail is None:
        st.warning("Centre not found.")
        return
    centre = detail["centre"]
    info_cols = st.columns(2)
    with info_cols[0]:
        with card("About"):
            st.markdown(f"**{centre['name']}**")
            st.write(centre.get("address") or "")
            st.caption(" · ".join(b for b in [detail["center_type"], detail["state"], detail["country"]] if b))
            if detail["distance_km"] is not None:
                st.caption(f"{format_distance(detail['distance_km'])} away")
            st.write(centre.get("services") or "Services not specified")
            if centre.get("accessibility"):
                st.write("♿ Wheelchair accessible")
    with info_cols[1]:
        with card("Contact"):
            st.write(f"Phone: {centre.get('phone') or 'Not listed'}")
            st.write(f"Email: {centre.get('email') or 'Not listed'}")
            st.write(f"Website: {centre.get('website') or 'Not listed'}")
    if centre.get("latitude") is not None and centre.get("longitude") is not None:
        with card("Location"):
            render_map(
                [
                    {
                        "id": centre["id"],
                        "name": centre["name"],
                        "address": centre.get("address") or "",
                        "lat": float(centre["latitude"]),
                        "lng": float(centre["longitude"]),
                        "type": detail["center_type"],
                    }
                ]
            )


def render_contact_page():
    render_page_header("Contact", "Home / Contact")
    with card("Send us a message"):
        with st.form("contact_form", clear_on_submit=True):
            name = st.text_input("Name *")
            email = st.text_input("Email *")
            subject = st.text_input("Subject", placeholder="General Inquiry")
            center_name = st.text_input("Centre name (optional)")
            message = st.text_area("Message *")
            submitted = st.form_submit_button("Send")
        if submitted:
            try:
                submit_contact(
                    get_store(),
                    {"name": name, "email": email, "subject": subject, "message": message, "center_name": center_name},
                )
            except ContactValidationError as exc:
                st.error(str(exc))
            except StoreError as exc:
                st.error(f"Could not send your message: {exc}")
            else:
                st.success("Thank you! We'll get back to you soon.")


def render_add_centre_page():
    render_page_header("Add Centre", "Home / Add Centre")
    country_ids = {k: v for k, v in options_for(data_ctx["countries"]).items() if v}
    type_ids = {k: v for k, v in options_for(data_ctx["center_types"]).items() if v}
    with card("Centre details"):
        with st.form("add_centre_form"):
            name = st.text_input("Centre name *")
            address = st.text_area("Address *")
            coord_cols = st.columns(2)
            lat = coord_cols[0].number_input("Latitude *", min_value=-90.0, max_value=90.0, value=0.0, format="%.6f")
            lng = coord_cols[1].number_input("Longitude *", min_value=-180.0, max_value=180.0, value=0.0, format="%.6f")
            country = st.selectbox("Country *", list(country_ids) or ["None available"])
            center_type = st.selectbox("Centre type *", list(type_ids) or ["None available"])
            phone = st.text_input("Phone")
            email = st.text_input("Email")
            website = st.text_input("Website")
            services = st.text_area("Services")
            accessibility = st.checkbox("Wheelchair accessible")
            submitted = st.form_submit_button("Add centre")
        if submitted:
            form = {
                "name": name,
                "address": address,
                "latitude": lat,
                "longitude": lng,
                "country_id": country_ids.get(country, ""),
                "center_type_id": type_ids.get(center_type, ""),
                "phone": phone,
                "email": email,
                "website": website,
                "services": services,
                "accessibility": accessibility,
            }
            try:
                created = create_centre(get_store(), form)
            except CentreValidationError as exc:
                st.error(str(exc))
            except StoreError as exc:
                st.error(f"Could not add the centre: {exc}")
            else:
                load_data.clear()
                st.success(f"Added {created.get('name')}.")


# ---------- Admin ----------
def current_admin() -> Optional[Dict[str, Any]]:
    token = st.session_state.get("admin_token")
    if not token:
        return None
    try:
        return get_auth().get_user(token)
    except AuthError as exc:
        st.warning(str(exc))
        return None


def render_login():
    with card("Admin sign-in"):
        with st.form("login_form"):
            email = st.text_input("Email")
            password = st.text_input("Password", type="password")
            submitted = st.form_submit_button("Sign in")
        if submitted:
            try:
                session = get_auth().sign_in(email, password)
            except AuthError as exc:
                st.error(str(exc))
            else:
                st.session_state["admin_token"] = session.access_token
                st.rerun()


def render_admin_dashboard(store: SupabaseStore):
    dashboard = compute_admin_dashboard(store)
    stats = dashboard["stats"]
    with card("Directory at a glance"):
        tiles = st.columns(4)
        tiles[0].metric("Total centres", f"{stats['total_centers']:,}")
        tiles[1].metric("Active", f"{stats['active_centers']:,}")
        tiles[2].metric("Verified", f"{stats['verified_centers']:,}")
        tiles[3].metric("Need geocoding", f"{stats['centers_needing_geocode']:,}")
        tiles = st.columns(3)
        tiles[0].metric("Added last 7 days", f"{stats['recent_submissions']:,}")
        tiles[1].metric("Countries", stats["countries_count"])
        tiles[2].metric("Centre types", stats["center_types_count"])
    chart_cols = st.columns(2)
    with chart_cols[0]:
        with card("Centres by country"):
            spec = dashboard["charts"]["by_country"]
            if spec is None:
                st.info("No centres yet.")
            else:
                st.vega_lite_chart(spec, use_container_width=True)
    with chart_cols[1]:
        with card("Recently added"):
            st.dataframe(pd.DataFrame(dashboard["recent_centers"]), hide_index=True)


def render_admin_contacts(store: SupabaseStore):
    rows = list_submissions(store)
    counts = submission_counts(rows)
    tiles = st.columns(4)
    tiles[0].metric("Total", counts["total"])
    tiles[1].metric("New", counts["new"])
    tiles[2].metric("In progress", counts["in_progress"])
    tiles[3].metric("Resolved", counts["resolved"])
    status = st.selectbox("Status", ["all"] + STATUSES)
    shown = rows if status == "all" else [r for r in rows if r.get("status") == status]
    for row in shown:
        with card(f"{row.get('subject')} · {row.get('name')}", actions=row.get("status")):
            st.caption(f"{row.get('email')} · {row.get('created_at') or ''}")
            if row.get("center_name"):
                st.caption(f"Centre: {row['center_name']}")
            st.write(row.get("message"))
            new_status = st.selectbox(
                "Set status", STATUSES, index=STATUSES.index(row.get("status", "new")), key=f"status_{row['id']}"
            )
            if new_status != row.get("status") and st.button("Update", key=f"update_{row['id']}"):
                update_submission_status(store, row["id"], new_status)
                st.rerun()


def render_admin_import(store: SupabaseStore):
    with card("Import Excel directories"):
        malaysia = st.file_uploader("Malaysia directory (.xlsx)", type=["xlsx"])
        thailand = st.file_uploader("Thailand directory (.xlsx)", type=["xlsx"])
        full_import = st.checkbox("Full import (otherwise the first 10 rows per file)", value=False)
        if st.button("Import"):
            try:
                report = import_directories(
                    store,
                    malaysia=malaysia.getvalue() if malaysia else None,
                    thailand=thailand.getvalue() if thailand else None,
                    full_import=full_import,
                )
            except (ValueError, ImportReferenceError) as exc:
                st.error(str(exc))
                return
            load_data.clear()
            st.success(
                f"Malaysia: {report.malaysia.inserted}/{report.malaysia.processed} inserted · "
                f"Thailand: {report.thailand.inserted}/{report.thailand.processed} inserted"
            )
            if report.errors:
                st.error("\n".join(report.errors))
            with st.expander("Import log"):
                st.code("\n".join(report.log))


def _index_of(options: Dict[str, str], value: object) -> int:
    ids = list(options.values())
    return ids.index(str(value)) if value is not None and str(value) in ids else 0


def render_admin_centres(store: SupabaseStore):
    all_ctx = load_data(active_only=False)
    countries = options_for(all_ctx["countries"])
    types = options_for(all_ctx["center_types"])
    controls = st.columns(6)
    search = controls[0].text_input("Search", key="centres_search")
    country = controls[1].selectbox("Country", list(countries), key="centres_country")
    center_type = controls[2].selectbox("Type", list(types), key="centres_type")
    verified = controls[3].selectbox("Verified", VERIFIED_OPTIONS, key="centres_verified")
    active = controls[4].selectbox("Active", ACTIVE_OPTIONS, key="centres_active")
    needs_geocode = controls[5].checkbox("Needs geocoding", key="centres_geocode")
    page = st.number_input("Page", min_value=1, value=1, step=1, key="centres_page")
    listing = compute_admin_centres(
        normalize_admin_centre_filters(
            {
                "search": search,
                "country": countries[country],
                "center_type": types[center_type],
                "verified": verified,
                "active": active,
                "needs_geocode": needs_geocode,
                "page": page,
            }
        ),
        all_ctx,
    )
    frame = pd.DataFrame(listing["centres"])
    summary = f"{listing['total']} of {listing['available']} · page {listing['page']} of {listing['pages']}"
    with card("Centres", actions=summary):
        if frame.empty:
            st.info("No centres match the current filters.")
            return
        st.dataframe(frame[["id", "name", "address", "center_type", "country", "active", "verified"]], hide_index=True)
        names = centre_choices(frame)
        selected = st.multiselect("Selected centres", list(names), format_func=names.get, key="centres_selected")
        for col, action in zip(st.columns(len(BULK_ACTIONS)), BULK_ACTIONS):
            if col.button(action.capitalize(), key=f"bulk_{action}", disabled=not selected):
                set_centre_flags(store, selected, action)
                load_data.clear()
                st.rerun()
    render_centre_editor(store, names, all_ctx)


def render_centre_editor(store: SupabaseStore, names: Dict[str, str], ctx: Dict[str, Any]):
    centre_id = st.selectbox("Edit centre", list(names), format_func=names.get, key="edit_centre")
    centre = store.get(CENTRES_TABLE, centre_id)
    if centre is None:
        st.warning("Centre not found.")
        return
    country_ids = {k: v for k, v in options_for(ctx["countries"]).items() if v}
    type_ids = {k: v for k, v in options_for(ctx["center_types"]).items() if v}
    with card(f"Edit {centre.get('name')}"):
        with st.form(f"edit_centre_{centre_id}"):
            name = st.text_input("Centre name *", value=centre.get("name") or "")
            address = st.text_area("Address *", value=centre.get("address") or "")
            coord_cols = st.columns(2)
            lat = coord_cols[0].text_input("Latitude", value="" if centre.get("latitude") is None else str(centre["latitude"]))
            lng = coord_cols[1].text_input("Longitude", value="" if centre.get("longitude") is None else str(centre["longitude"]))
            country = st.selectbox("Country *", list(country_ids) or ["None available"], index=_index_of(country_ids, centre.get("country_id")))
            center_type = st.selectbox(
                "Centre type *", list(type_ids) or ["None available"], index=_index_of(type_ids, centre.get("center_type_id"))
            )
            phone = st.text_input("Phone", value=centre.get("phone") or "")
            email = st.text_input("Email", value=centre.get("email") or "")
            website = st.text_input("Website", value=centre.get("website") or "")
            services = st.text_area("Services", value=centre.get("services") or "")
            flags = st.columns(3)
            accessibility = flags[0].checkbox("Wheelchair accessible", value=bool(centre.get("accessibility")))
            active = flags[1].checkbox("Active", value=bool(centre.get("active", True)))
            verified = flags[2].checkbox("Verified", value=bool(centre.get("verified")))
            saved = st.form_submit_button("Save changes")
        if saved:
            form = {
                "name": name,
                "address": address,
                "latitude": lat,
                "longitude": lng,
                "country_id": country_ids.get(country, ""),
                "center_type_id": type_ids.get(center_type, ""),
                "phone": phone,
                "email": email,
                "website": website,
                "services": services,
                "accessibility": accessibility,
                "active": active,
                "verified": verified,
            }
            try:
                update_centre(store, centre_id, form)
            except CentreValidationError as exc:
                st.error(str(exc))
            else:
                load_data.clear()
                st.success("Centre saved.")
        confirm = st.checkbox("I understand this cannot be undone", key=f"confirm_delete_{centre_id}")
        if st.button("Delete centre", key=f"delete_{centre_id}", disabled=not confirm):
            try:
                delete_centre(store, centre_id)
            except LookupError as exc:
                st.warning(str(exc))
                return
            load_data.clear()
            st.rerun()


def render_admin_quality(store: SupabaseStore):
    all_ctx = load_data(active_only=False)
    controls = st.columns(4)
    issue = controls[0].selectbox("Issue", ISSUE_TYPES, format_func=lambda k: ISSUE_LABELS[k])
    verified = controls[1].selectbox("Verified", ["all", "verified", "unverified"])
    has_coords = controls[2].selectbox("Has coordinates", ["all", "yes", "no"])
    search = controls[3].text_input("Search", key="quality_search")
    page = st.number_input("Page", min_value=1, value=1, step=1)
    quality = compute_data_quality(
        normalize_quality_filters(
            {"issue_type": issue, "verified": verified, "has_coordinates": has_coords, "search": search, "page": page}
        ),
        all_ctx,
    )
    if quality["summary"]:
        tiles = st.columns(4)
        for col, key in zip(tiles, ["total", "no_coords", "unverified", "bad_address"]):
            col.metric(ISSUE_LABELS.get(key, "Total"), quality["summary"][key])
    frame = pd.DataFrame(quality["centres"])
    with card("Centres", actions=f"{quality['total']} · page {quality['page']} of {quality['pages']}"):
        if frame.empty:
            st.info("Nothing to review.")
            return
        st.dataframe(frame[["id", "name", "address", "center_type", "country", "verified"]], hide_index=True)
        selected = st.multiselect("Selected centres", frame["id"].tolist(), format_func=lambda i: frame.set_index("id").loc[i, "name"])
        type_ids = {k: v for k, v in options_for(all_ctx["center_types"]).items() if v}
        action_cols = st.columns(2)
        new_type = action_cols[0].selectbox("Change type to", list(type_ids) or ["None available"])
        if action_cols[0].button("Apply type", disabled=not selected or not type_ids):
            update_center_type(store, selected, type_ids[new_type])
            load_data.clear()
            st.rerun()
        if action_cols[1].button("Delete selected", disabled=not selected):
            delete_centres(store, selected)
            load_data.clear()
            st.rerun()


def render_admin_duplicates(store: SupabaseStore):
    found = find_duplicates(store.select_all(CENTRES_TABLE, order="created_at", ascending=True))
    stats = found["stats"]
    tiles = st.columns(3)
    tiles[0].metric("Centres", stats["total"])
    tiles[1].metric("Duplicate names", stats["duplicates"])
    tiles[2].metric("Records to delete", stats["to_delete"])
    for group in found["groups"]:
        with card(group["name"], actions=f"{group['count']} records"):
            st.dataframe(pd.DataFrame(group["records"]), hide_index=True)
    if found["groups"] and st.button("Remove duplicates (keeps the oldest record)"):
        result = cleanup_duplicates(store)
        load_data.clear()
        st.success(f"Deleted {result['deleted']} duplicate records.")


def render_admin_verify(store: SupabaseStore):
    settings = get_settings()
    centres = data_ctx["centres"]
    if centres.empty:
        st.info("No centres to verify.")
        return
    names = centre_choices(centres)
    selected = st.selectbox("Centre", list(names), format_func=names.get, key="verify_centre")
    centre = store.get(CENTRES_TABLE, selected)
    if centre is None:
        st.warning("Centre not found.")
        return
    query = st.text_input("Search Google Places", value=f"{centre.get('name')} {centre.get('address') or ''}".strip())
    if st.button("Search"):
        try:
            st.session_state["places_results"] = search_places(
                query,
                settings.google_maps_api_key,
                latitude=centre.get("latitude"),
                longitude=centre.get("longitude"),
                timeout=settings.http_timeout,
            )["results"]
        except (ValueError, PlacesError) as exc:
            st.error(str(exc))
    center_types = store.select(CENTER_TYPES_TABLE, columns="id,name")
    current = next((t.get("name") for t in center_types if t.get("id") == centre.get("center_type_id")), None)
    for i, place in enumerate(st.session_state.get("places_results", [])):
        with card(place.get("name", "Place")):
            st.caption(place.get("formatted_address", ""))
            if st.button("Use this place", key=f"use_place_{i}"):
                try:
                    apply_verification(store, centre, verified_from_place(place, current), center_types)
                except PlacesError as exc:
                    st.error(str(exc))
                else:
                    load_data.clear()
                    st.success("Centre verified.")


def render_admin_geocoding(store: SupabaseStore):
    maps = get_maps()
    with card("Batch geocoding", actions=maps.status.value):
        st.caption("Looks up coordinates for active centres that have none.")
        if st.button("Run geocoding"):
            try:
                ensure_maps_loaded()
                geocoder = maps.create_derived_client()
            except (MapsLoaderError, ValueError) as exc:
                st.error(str(exc))
                return
            centres = store.select(
                CENTRES_TABLE, columns="id,name,address,latitude,longitude,country_id", eq={"active": True}, order="name"
            )
            with st.spinner("Geocoding…"):
                st.session_state["geocoding"] = run_batch_geocoding(store, geocoder, centres, store.select(COUNTRIES_TABLE))
            load_data.clear()
        outcome = st.session_state.get("geocoding")
        if outcome:
            stats = outcome["stats"]
            tiles = st.columns(4)
            tiles[0].metric("To geocode", stats["total"])
            tiles[1].metric("Successful", stats["successful"])
            tiles[2].metric("Failed", stats["failed"])
            tiles[3].metric("Processed", stats["processed"])
            st.dataframe(pd.DataFrame(outcome["results"]), hide_index=True)
            st.download_button(
                "Export results CSV",
                data=results_to_csv(outcome["results"]),
                file_name="geocoding-results.csv",
                mime="text/csv",
            )


ADMIN_PAGES = {
    "Dashboard": render_admin_dashboard,
    "Centres": render_admin_centres,
    "Contact submissions": render_admin_contacts,
    "Import": render_admin_import,
    "Data quality": render_admin_quality,
    "Duplicates": render_admin_duplicates,
    "Verify with Google Places": render_admin_verify,
    "Geocoding": render_admin_geocoding,
}


def render_admin_page():
    render_page_header("Admin", "Home / Admin")
    user = current_admin()
    if not user:
        render_login()
        return
    top = st.columns([6, 1])
    top[0].caption(f"Signed in as {user.get('email')}")
    if top[1].button("Sign out"):
        try:
            get_auth().sign_out(st.session_state["admin_token"])
        except AuthError as exc:
            st.warning(str(exc))
        st.session_state.pop("admin_token", None)
        st.rerun()
    section = st.selectbox("Section", list(ADMIN_PAGES))
    try:
        ADMIN_PAGES[section](get_store())
    except StoreError as exc:
        st.error(f"Data store error: {exc}")


if nav_choice == "Find Centres":
    render_find_page()
elif nav_choice == "Centre Details":
    render_detail_page()
elif nav_choice == "Contact":
    render_contact_page()
elif nav_choice == "Add Centre":
    render_add_centre_page()
else:
    render_admin_page()
