"""HTML for the interactive centre map embedded in the Streamlit pages."""

from __future__ import annotations

import json
from typing import Any, Dict, List, Optional, Tuple

# Malaysia / Thailand
DEFAULT_CENTER = {"lat": 8.5, "lng": 101.0}

MAP_TEMPLATE = """
<div id="map" style="height: 460px; border-radius: 12px;"></div>
{script}
<script>
  const markers = {markers};
  const center = {center};
  function infoContent(m) {{
    const box = document.createElement("div");
    const title = document.createElement("strong");
    title.textContent = m.name || "";
    box.appendChild(title);
    box.appendChild(document.createElement("br"));
    box.appendChild(document.createTextNode(m.address || ""));
    box.appendChild(document.createElement("br"));
    const kind = document.createElement("em");
    kind.textContent = m.type || "";
    box.appendChild(kind);
    return box;
  }}
  function initMap() {{
    if (!window.google || !google.maps) {{ return; }}
    const map = new google.maps.Map(document.getElementById("map"), {{center: center, zoom: {zoom}}});
    const info = new google.maps.InfoWindow();
    markers.forEach((m) => {{
      const marker = new google.maps.Marker({{position: {{lat: m.lat, lng: m.lng}}, map: map, title: m.name}});
      marker.addListener("click", () => {{
        info.setContent(infoContent(m));
        info.open(map, marker);
      }});
    }});
  }}
  window.addEventListener("load", initMap);
</script>
"""


def script_json(value: Any) -> str:
    """JSON that is safe to place inside a <script> element."""
    return (
        json.dumps(value)
        .replace("<", "\\u003c")
        .replace(">", "\\u003e")
        .replace("&", "\\u0026")
        .replace("'", "\\u0027")
    )


def map_view(
    markers: List[Dict[str, Any]], user_location: Optional[Dict[str, float]] = None
) -> Tuple[Dict[str, float], int]:
    if user_location:
        return {"lat": user_location["lat"], "lng": user_location["lng"]}, 10
    if markers:
        return {"lat": markers[0]["lat"], "lng": markers[0]["lng"]}, 6
    return dict(DEFAULT_CENTER), 5


def build_map_html(
    script_html: str,
    markers: List[Dict[str, Any]],
    user_location: Optional[Dict[str, float]] = None,
) -> str:
    center, zoom = map_view(markers, user_location)
    return MAP_TEMPLATE.format(script=script_html, markers=script_json(markers), center=script_json(center), zoom=zoom)
