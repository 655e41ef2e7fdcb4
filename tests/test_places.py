from unittest.mock import MagicMock

import pytest
from googlemaps.exceptions import ApiError, TransportError

from directory.places import (
    PlacesError,
    apply_verification,
    business_type_for,
    normalize_website,
    search_places,
    verified_from_place,
)
from tests.conftest import CENTER_TYPES

PLACE = {
    "place_id": "p1",
    "name": "KL Rehab Centre",
    "formatted_address": "1 Jalan Ampang, Kuala Lumpur",
    "formatted_phone_number": "03-1234 5678",
    "website": "klrehab.my",
    "geometry": {"location": {"lat": 3.16, "lng": 101.71}},
    "types": ["hospital", "health", "point_of_interest", "establishment"],
}


def test_search_places_fetches_details_for_top_results():
    client = MagicMock()
    summary = {"place_id": "p1", "name": "KL Rehab"}
    client.places.return_value = {"status": "OK", "results": [summary] * 5}
    client.place.side_effect = [
        {"status": "OK", "result": PLACE},
        {"status": "OK", "result": {}},
        TransportError("flaky"),
    ]
    result = search_places("KL Rehab", "key", latitude=3.1, longitude=101.6, client=client)

    assert result["status"] == "OK"
    assert [r["name"] for r in result["results"]] == ["KL Rehab Centre", "KL Rehab", "KL Rehab"]
    assert client.places.call_args[1] == {"location": (3.1, 101.6), "radius": 5000}
    assert client.place.call_count == 3


def test_search_places_errors():
    with pytest.raises(ValueError):
        search_places("  ", "key", client=MagicMock())
    with pytest.raises(PlacesError):
        search_places("x", None)
    client = MagicMock()
    client.places.side_effect = ApiError("REQUEST_DENIED", "bad key")
    with pytest.raises(PlacesError, match="REQUEST_DENIED"):
        search_places("x", "key", client=client)


def test_zero_results_is_not_an_error():
    client = MagicMock()
    client.places.return_value = {"status": "ZERO_RESULTS", "results": []}
    assert search_places("nowhere", "key", client=client) == {"results": [], "status": "ZERO_RESULTS"}
    client.place.assert_not_called()


def test_business_type_for():
    assert business_type_for(["hospital"], "Community") == "Hospital"
    assert business_type_for(["doctor"], "Community") == "Private"
    assert business_type_for(["gym"], "Community") == "Community"


def test_normalize_website():
    assert normalize_website("klrehab.my") == "https://klrehab.my"
    assert normalize_website("http://a.com/x") == "http://a.com/x"
    assert normalize_website("localhost") is None
    assert normalize_website("  ") is None


def test_verified_from_place_requires_location():
    verified = verified_from_place(PLACE, "Inpatient")
    assert verified.business_type == "Hospital"
    assert verified.services == "hospital, health"
    with pytest.raises(PlacesError):
        verified_from_place({"name": "x"})


def test_apply_verification_updates_centre(store):
    centre = store.get("rehabilitation_centers", "r-02")
    updated = apply_verification(store, centre, verified_from_place(PLACE), CENTER_TYPES)
    assert updated["verified"] is True
    assert updated["center_type_id"] == "t-hosp"
    assert updated["website"] == "https://klrehab.my"
    assert updated["latitude"] == 3.16
