import json

from directory.map_view import DEFAULT_CENTER, build_map_html, map_view, script_json

HOSTILE = "x</script><script>alert(1)</script>"


def _marker(name, address="1 Jalan", lat=3.1, lng=101.6):
    return {"id": "r-01", "name": name, "address": address, "lat": lat, "lng": lng, "type": "Inpatient"}


def test_script_json_cannot_close_the_script_element():
    out = script_json([{"name": HOSTILE}])
    assert "</" not in out
    assert "<" not in out and ">" not in out
    assert json.loads(out) == [{"name": HOSTILE}]


def test_hostile_centre_name_stays_inside_the_markers_script():
    html = build_map_html("", [_marker(HOSTILE, address="<img src=x onerror=alert(2)>")])
    # only the template's own closing tag
    assert html.count("</script>") == 1
    assert "<script>alert(1)" not in html
    assert "<img" not in html


def test_info_window_is_built_from_text_nodes():
    html = build_map_html("", [_marker("KL Rehab")])
    assert "textContent" in html
    assert "setContent(infoContent(m))" in html
    assert "${" not in html


def test_script_tags_are_included_before_the_map_script():
    tag = '<script src="https://maps.googleapis.com/maps/api/js?key=k" async defer></script>'
    html = build_map_html(tag, [])
    assert html.index(tag) < html.index("const markers")
    assert html.count("</script>") == 2


def test_map_view_centres_on_user_then_first_marker():
    assert map_view([_marker("a")], {"lat": 5.4, "lng": 100.3}) == ({"lat": 5.4, "lng": 100.3}, 10)
    assert map_view([_marker("a", lat=13.7, lng=100.5)]) == ({"lat": 13.7, "lng": 100.5}, 6)
    assert map_view([]) == (DEFAULT_CENTER, 5)
