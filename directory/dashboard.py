from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import pandas as pd

from directory.charts import centres_by_group_chart, to_vega_spec
from directory.data import (
    CENTER_TYPES_TABLE,
    CENTRES_TABLE,
    COUNTRIES_TABLE,
    centres_frame,
    frame_records,
    lookup_frame,
)
from directory.store import SupabaseStore


RECENT_DAYS = 7
RECENT_LIMIT = 10


def compute_admin_dashboard(store: SupabaseStore, *, now: Optional[datetime] = None) -> Dict[str, Any]:
    now = now or datetime.now(timezone.utc)
    since = (now - timedelta(days=RECENT_DAYS)).isoformat()
    stats = {
        "total_centers": store.count(CENTRES_TABLE),
        "active_centers": store.count(CENTRES_TABLE, eq={"active": True}),
        "verified_centers": store.count(CENTRES_TABLE, eq={"verified": True}),
        "centers_needing_geocode": store.count(CENTRES_TABLE, is_null=["latitude"]),
        "recent_submissions": store.count(CENTRES_TABLE, gte={"created_at": since}),
        "countries_count": store.count(COUNTRIES_TABLE),
        "center_types_count": store.count(CENTER_TYPES_TABLE),
    }
    recent = store.select(
        CENTRES_TABLE,
        columns="id,name,address,created_at,verified,latitude,longitude",
        order="created_at",
        ascending=False,
        limit=RECENT_LIMIT,
    )

    chart = None
    rows = store.select_all(CENTRES_TABLE, columns="id,country_id,verified")
    if rows:
        centres = centres_frame(rows)
        countries = lookup_frame(store.select(COUNTRIES_TABLE, order="name"))
        names = dict(zip(countries["id"].astype(str), countries["name"].astype(str))) if not countries.empty else {}
        centres["country"] = centres["country_id"].map(lambda v: names.get(str(v), "Unknown"))
        counts = centres.groupby(["country", "verified"]).size().reset_index(name="centres")
        chart = to_vega_spec(centres_by_group_chart(counts, "country", "Country"))

    return {"stats": stats, "recent_centers": frame_records(pd.DataFrame(recent)), "charts": {"by_country": chart}}
