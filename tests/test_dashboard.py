from datetime import datetime, timezone

from directory.dashboard import compute_admin_dashboard
from tests.conftest import FakeStore


def test_dashboard_stats(store):
    result = compute_admin_dashboard(store, now=datetime(2024, 1, 10, tzinfo=timezone.utc))
    assert result["stats"] == {
        "total_centers": 6,
        "active_centers": 5,
        "verified_centers": 1,
        "centers_needing_geocode": 1,
        "recent_submissions": 4,
        "countries_count": 2,
        "center_types_count": 5,
    }
    assert result["recent_centers"][0]["id"] == "r-06"
    assert "encoding" in result["charts"]["by_country"]


def test_dashboard_without_centres():
    result = compute_admin_dashboard(FakeStore())
    assert result["stats"]["total_centers"] == 0
    assert result["recent_centers"] == []
    assert result["charts"]["by_country"] is None
