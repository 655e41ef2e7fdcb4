from __future__ import annotations

from typing import Any, Dict

import altair as alt
import pandas as pd

alt.data_transformers.disable_max_rows()


def to_vega_spec(chart: alt.Chart) -> Dict[str, Any]:
    """Convert an Altair chart into a Vega-Lite spec dict (JSON-serializable)."""
    return chart.to_dict()


def centres_by_group_chart(counts: pd.DataFrame, group: str, title: str) -> alt.Chart:
    return (
        alt.Chart(counts)
        .mark_bar()
        .encode(
            x=alt.X("centres:Q", title="Centres"),
            y=alt.Y(f"{group}:N", title=title, sort="-x"),
            color=alt.Color("verified:N", title="Verified"),
            tooltip=[group, "verified", alt.Tooltip("centres:Q", format=",")],
        )
    )
