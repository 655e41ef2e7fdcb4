import pandas as pd
import pytest

from directory.data import centre_choices, centres_frame, load_directory_data
from directory.filters import CentreFilters, UserLocation, normalize_filters, parse_user_location
from directory.geo import format_distance, haversine_km
from directory.listing import (
    CentreValidationError,
    build_centre_row,
    compute_centre_detail,
    compute_listing,
    create_centre,
)


@pytest.fixture
def ctx(store):
    return load_directory_data(store)


def test_haversine_known_distance():
    # Kuala Lumpur -> Bangkok is roughly 1,180 km
    assert haversine_km(3.139, 101.6869, 13.7563, 100.5018) == pytest.approx(1180, rel=0.02)
    assert haversine_km(3.0, 101.0, 3.0, 101.0) == 0


def test_format_distance():
    assert format_distance(0.25) == "250 m"
    assert format_distance(12.345) == "12.3 km"
    assert format_distance(None) == ""


def test_normalize_filters_clamps_values():
    f = normalize_filters({"search": "  rehab ", "page": "0", "page_size": 5000})
    assert f.search == "rehab"
    assert f.page == 1
    assert f.page_size == 200


def test_parse_user_location_rejects_bad_input():
    assert parse_user_location({"lat": "3.1", "lng": "101.6"}) == UserLocation(3.1, 101.6)
    assert parse_user_location({"lat": 95, "lng": 0}) is None
    assert parse_user_location({"lat": "x", "lng": 0}) is None
    assert parse_user_location(None) is None


def test_listing_hides_inactive_and_dedupes_names(ctx):
    listing = compute_listing(CentreFilters(), ctx)
    names = [c["name"] for c in listing["centres"]]
    assert "Closed Centre" not in names
    assert names.count("KL Rehab") == 1
    assert "kl rehab" not in [n.strip() for n in names if n != "KL Rehab"]
    assert listing["total"] == 4


def test_listing_filters_by_country_type_and_search(ctx):
    assert [c["name"] for c in compute_listing(CentreFilters(country="c-th"), ctx)["centres"]] == ["Bangkok Care"]
    assert [c["name"] for c in compute_listing(CentreFilters(type="t-com"), ctx)["centres"]] == ["Penang Recovery"]
    assert [c["name"] for c in compute_listing(CentreFilters(search="penang"), ctx)["centres"]] == ["Penang Recovery"]
    assert [c["name"] for c in compute_listing(CentreFilters(accessibility=True), ctx)["centres"]] == ["KL Rehab"]


def test_listing_sorts_by_distance_with_unlocated_last(ctx):
    listing = compute_listing(CentreFilters(), ctx, user_location=UserLocation(13.75, 100.5))
    names = [c["name"] for c in listing["centres"]]
    assert names[0] == "Bangkok Care"
    assert names[-1] == "No Coords Centre"
    assert listing["centres"][0]["distance"] < 5
    assert listing["centres"][-1]["distance"] is None


def test_listing_markers_only_for_located_centres(ctx):
    listing = compute_listing(CentreFilters(), ctx)
    assert {m["name"] for m in listing["markers"]} == {"KL Rehab", "Penang Recovery", "Bangkok Care"}
    kl = next(m for m in listing["markers"] if m["name"] == "KL Rehab")
    assert kl["type"] == "Inpatient"


def test_listing_pagination(ctx):
    listing = compute_listing(CentreFilters(page=2, page_size=3), ctx)
    assert listing["pages"] == 2
    assert listing["page"] == 2
    assert len(listing["centres"]) == 1
    past_end = compute_listing(CentreFilters(page=9, page_size=3), ctx)
    assert past_end["page"] == 2


def test_centre_detail_resolves_lookups(ctx):
    detail = compute_centre_detail("r-03", ctx, user_location=UserLocation(13.7563, 100.5018))
    assert detail["centre"]["name"] == "Bangkok Care"
    assert detail["country"] == "Thailand"
    assert detail["state"] == "Bangkok"
    assert detail["center_type"] == "Outpatient"
    assert detail["distance_km"] == pytest.approx(0, abs=0.01)
    assert compute_centre_detail("missing", ctx) is None


def test_build_centre_row_validates():
    form = {"name": "New", "address": "1 Jalan", "latitude": "3.1", "longitude": "101.6", "country_id": "c-my", "center_type_id": "t-in"}
    row = build_centre_row({**form, "phone": " ", "website": "example.com"})
    assert row["latitude"] == 3.1
    assert row["active"] is True and row["verified"] is False
    assert "phone" not in row
    assert row["website"] == "example.com"

    with pytest.raises(CentreValidationError):
        build_centre_row({**form, "name": ""})
    with pytest.raises(CentreValidationError):
        build_centre_row({**form, "latitude": "abc"})
    with pytest.raises(CentreValidationError):
        build_centre_row({**form, "longitude": 200})


def test_create_centre_inserts(store):
    created = create_centre(
        store,
        {"name": "New", "address": "1 Jalan", "latitude": 3.1, "longitude": 101.6, "country_id": "c-my", "center_type_id": "t-in"},
    )
    assert created["name"] == "New"
    assert any(r["name"] == "New" for r in store.tables["rehabilitation_centers"])


def test_centre_choices_keep_centres_that_share_a_name(centres):
    twins = [dict(centres[0]), {**centres[0], "id": "r-07", "created_at": "2024-02-01T00:00:00+00:00"}]
    choices = centre_choices(centres_frame(twins))
    assert choices == {"r-01": "KL Rehab", "r-07": "KL Rehab"}
    assert centre_choices(pd.DataFrame()) == {}
