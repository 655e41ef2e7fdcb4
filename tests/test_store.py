from unittest.mock import MagicMock

import pytest
import requests

from directory.config import Settings
from directory.store import StoreError, SupabaseStore, build_params


def _response(status=200, body=None, headers=None):
    response = MagicMock()
    response.status_code = status
    response.json.return_value = body
    response.text = str(body)
    response.headers = headers or {}
    return response


@pytest.fixture
def session():
    return MagicMock()


@pytest.fixture
def rest(session):
    return SupabaseStore("https://proj.supabase.co/", "anon-key", session=session)


def test_build_params_translates_filters():
    params = build_params(
        columns="id,name",
        eq={"active": True, "country_id": "c-my"},
        in_={"id": ["a", "b"]},
        is_null=["latitude"],
        gte={"created_at": "2024-01-01"},
        order="name",
        ascending=False,
        limit=10,
        offset=20,
    )
    assert params == {
        "select": "id,name",
        "active": "eq.true",
        "country_id": "eq.c-my",
        "id": "in.(a,b)",
        "latitude": "is.null",
        "created_at": "gte.2024-01-01",
        "order": "name.desc",
        "limit": "10",
        "offset": "20",
    }


def test_client_sets_auth_headers(session, rest):
    assert rest.rest_url == "https://proj.supabase.co/rest/v1"
    headers = session.headers.update.call_args[0][0]
    assert headers["apikey"] == "anon-key"
    assert headers["Authorization"] == "Bearer anon-key"


def test_missing_configuration_is_rejected():
    with pytest.raises(StoreError):
        SupabaseStore.from_settings(Settings())


def test_select_returns_rows(session, rest):
    session.request.return_value = _response(body=[{"id": 1}])
    assert rest.select("countries", order="name") == [{"id": 1}]
    method, url = session.request.call_args[0]
    assert method == "GET"
    assert url.endswith("/rest/v1/countries")
    assert session.request.call_args[1]["params"]["order"] == "name.asc"


def test_select_all_pages_until_short_page(session, rest):
    session.request.side_effect = [
        _response(body=[{"id": 1}, {"id": 2}]),
        _response(body=[{"id": 3}]),
    ]
    rows = rest.select_all("rehabilitation_centers", page_size=2)
    assert [r["id"] for r in rows] == [1, 2, 3]
    offsets = [c[1]["params"]["offset"] for c in session.request.call_args_list]
    assert offsets == ["0", "2"]


def test_count_reads_content_range(session, rest):
    session.request.return_value = _response(headers={"Content-Range": "0-0/42"})
    assert rest.count("rehabilitation_centers", eq={"verified": True}) == 42
    assert session.request.call_args[0][0] == "HEAD"
    assert session.request.call_args[1]["headers"] == {"Prefer": "count=exact"}


def test_insert_wraps_single_row(session, rest):
    session.request.return_value = _response(status=201, body=[{"id": "x", "name": "A"}])
    assert rest.insert("contact_submissions", {"name": "A"}) == [{"id": "x", "name": "A"}]
    assert session.request.call_args[1]["json"] == [{"name": "A"}]
    assert session.request.call_args[1]["headers"]["Prefer"] == "return=representation"


def test_http_error_raises_store_error_with_message(session, rest):
    session.request.return_value = _response(status=400, body={"message": "bad column"})
    with pytest.raises(StoreError) as excinfo:
        rest.select("countries")
    assert "bad column" in str(excinfo.value)
    assert excinfo.value.status_code == 400


def test_transport_error_raises_store_error(session, rest):
    session.request.side_effect = requests.ConnectionError("down")
    with pytest.raises(StoreError):
        rest.select("countries")


def test_unfiltered_writes_are_refused(session, rest):
    with pytest.raises(StoreError):
        rest.update("rehabilitation_centers", {"verified": True})
    with pytest.raises(StoreError):
        rest.delete("rehabilitation_centers")
    session.request.assert_not_called()
