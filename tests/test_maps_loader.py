import asyncio
import threading
import time
from unittest.mock import MagicMock

import pytest
import requests

from directory.geocoding import Geocoder
from directory.maps_loader import (
    MAPS_ORIGIN,
    ConfigError,
    IntegrityError,
    LoaderStatus,
    LoaderThread,
    LoadOutcome,
    MapsLoader,
    MapsSdk,
    NetworkError,
    NotReadyError,
    ScriptDocument,
    ScriptInjector,
    ScriptTag,
    build_maps_facade,
)

MAPS_BODY = "/* bootstrap */ window.google = window.google || {}; google.maps = google.maps || {};"


def _session(body=MAPS_BODY, exc=None):
    session = MagicMock()
    if exc is not None:
        session.get.side_effect = exc
    else:
        response = MagicMock()
        response.text = body
        response.raise_for_status.return_value = None
        session.get.return_value = response
    return session


def _sdk(key="test-key"):
    return MapsSdk(api_key=key, script_src="https://maps.googleapis.com/maps/api/js?key=x", libraries=("places",), session=MagicMock())


class GatedInjector:
    """Injector whose attempts finish only when the gate opens."""

    def __init__(self, outcomes):
        self.outcomes = list(outcomes)
        self.calls = 0
        self.gate = asyncio.Event()

    async def inject(self, api_key):
        self.calls += 1
        await self.gate.wait()
        return self.outcomes.pop(0)


# ---------- ScriptInjector ----------


def test_script_src_carries_key_and_libraries():
    injector = ScriptInjector(ScriptDocument(), session=_session())
    src = injector.script_src("abc 123")
    assert src.startswith("https://maps.googleapis.com/maps/api/js?")
    assert "key=abc%20123" in src
    assert src.endswith("libraries=places,geometry")


def test_script_tag_html_is_async_and_deferred():
    html = ScriptTag(src="https://maps.googleapis.com/maps/api/js?key=a&libraries=places").to_html()
    assert html.startswith('<script src="https://maps.googleapis.com/maps/api/js?key=a&amp;libraries=places"')
    assert " async" in html and " defer" in html


@pytest.mark.asyncio
async def test_inject_replaces_stale_maps_tags_and_keeps_others():
    document = ScriptDocument()
    document.append(ScriptTag(src="https://maps.googleapis.com/maps/api/js?key=old"))
    document.append(ScriptTag(src="https://maps.googleapis.com/maps/api/js?key=older"))
    document.append(ScriptTag(src="https://cdn.example.com/analytics.js"))
    injector = ScriptInjector(document, session=_session())

    outcome = await injector.inject("new-key")

    assert outcome.ok
    maps_tags = document.query(MAPS_ORIGIN)
    assert len(maps_tags) == 1
    assert "key=new-key" in maps_tags[0].src
    assert any("cdn.example.com" in t.src for t in document.tags)


@pytest.mark.asyncio
async def test_inject_returns_network_error_on_transport_failure():
    injector = ScriptInjector(ScriptDocument(), session=_session(exc=requests.ConnectionError("offline")))
    outcome = await injector.inject("k")
    assert not outcome.ok
    assert isinstance(outcome.error, NetworkError)


@pytest.mark.asyncio
async def test_inject_returns_integrity_error_when_namespace_missing():
    injector = ScriptInjector(ScriptDocument(), session=_session(body="<html>quota exceeded</html>"))
    outcome = await injector.inject("k")
    assert isinstance(outcome.error, IntegrityError)


def test_load_outcome_unwrap():
    sdk = _sdk()
    assert LoadOutcome.loaded(sdk).unwrap() is sdk
    with pytest.raises(NetworkError):
        LoadOutcome.failed(NetworkError("boom")).unwrap()


# ---------- MapsLoader ----------


@pytest.mark.asyncio
async def test_concurrent_callers_share_one_fetch():
    session = _session()
    facade = build_maps_facade(lambda: "test-key", session=session)

    results = await asyncio.gather(*[facade.ensure_loaded() for _ in range(5)])

    assert session.get.call_count == 1
    assert all(r is results[0] for r in results)
    assert facade.status is LoaderStatus.LOADED
    assert len([t for t in facade.script_html().splitlines() if MAPS_ORIGIN in t]) == 1


@pytest.mark.asyncio
async def test_status_is_loading_while_attempt_in_flight():
    injector = GatedInjector([LoadOutcome.loaded(_sdk())])
    loader = MapsLoader(injector, lambda: "test-key")

    first = asyncio.ensure_future(loader.ensure_loaded())
    await asyncio.sleep(0)
    assert loader.status is LoaderStatus.LOADING
    assert not loader.is_loaded()

    second = asyncio.ensure_future(loader.ensure_loaded())
    await asyncio.sleep(0)
    injector.gate.set()
    assert await first is await second
    assert injector.calls == 1
    assert loader.status is LoaderStatus.LOADED


@pytest.mark.asyncio
async def test_loaded_loader_does_not_fetch_again():
    session = _session()
    facade = build_maps_facade(lambda: "test-key", session=session)
    sdk = await facade.ensure_loaded()

    assert await facade.ensure_loaded() is sdk
    assert session.get.call_count == 1


@pytest.mark.asyncio
async def test_failed_attempt_rejects_all_waiters_then_retries():
    injector = GatedInjector([LoadOutcome.failed(NetworkError("offline")), LoadOutcome.loaded(_sdk())])
    loader = MapsLoader(injector, lambda: "test-key")

    waiters = [asyncio.ensure_future(loader.ensure_loaded()) for _ in range(3)]
    await asyncio.sleep(0)
    injector.gate.set()
    results = await asyncio.gather(*waiters, return_exceptions=True)

    assert all(isinstance(r, NetworkError) for r in results)
    assert loader.status is LoaderStatus.NOT_LOADED
    assert not loader.is_loaded()

    sdk = await loader.ensure_loaded()
    assert injector.calls == 2
    assert loader.is_loaded()
    assert sdk.api_key == "test-key"


@pytest.mark.asyncio
async def test_integrity_failure_resets_status():
    facade = build_maps_facade(lambda: "k", session=_session(body="nothing here"))
    with pytest.raises(IntegrityError):
        await facade.ensure_loaded()
    assert facade.status is LoaderStatus.NOT_LOADED


@pytest.mark.asyncio
async def test_missing_key_raises_config_error_without_fetching():
    session = _session()
    facade = build_maps_facade(lambda: None, session=session)

    with pytest.raises(ConfigError):
        await facade.ensure_loaded()

    assert facade.status is LoaderStatus.NOT_LOADED
    assert session.get.call_count == 0
    assert facade.script_html() == ""


@pytest.mark.asyncio
async def test_key_is_read_at_load_time():
    keys = iter([None, "late-key"])
    facade = build_maps_facade(lambda: next(keys), session=_session())

    with pytest.raises(ConfigError):
        await facade.ensure_loaded()
    sdk = await facade.ensure_loaded()
    assert sdk.api_key == "late-key"


@pytest.mark.asyncio
async def test_cancelled_caller_does_not_cancel_shared_attempt():
    injector = GatedInjector([LoadOutcome.loaded(_sdk())])
    loader = MapsLoader(injector, lambda: "test-key")

    impatient = asyncio.ensure_future(loader.ensure_loaded())
    patient = asyncio.ensure_future(loader.ensure_loaded())
    await asyncio.sleep(0)
    impatient.cancel()
    injector.gate.set()

    sdk = await patient
    with pytest.raises(asyncio.CancelledError):
        await impatient
    assert loader.is_loaded()
    assert sdk.api_key == "test-key"


@pytest.mark.asyncio
async def test_derived_client_requires_loaded_sdk():
    facade = build_maps_facade(lambda: "AIza-test-key", session=_session())
    with pytest.raises(NotReadyError):
        facade.create_derived_client()

    await facade.ensure_loaded()
    assert isinstance(facade.create_derived_client(), Geocoder)


# ---------- LoaderThread ----------


def test_threads_share_one_load_through_loader_thread():
    def slow_get(url, **kwargs):
        time.sleep(0.3)
        response = MagicMock()
        response.text = MAPS_BODY
        response.raise_for_status.return_value = None
        return response

    session = MagicMock()
    session.get.side_effect = slow_get
    facade = build_maps_facade(lambda: "test-key", session=session)
    runner = LoaderThread()
    results, errors = [], []

    def render():
        try:
            results.append(runner.run(facade.ensure_loaded(), timeout=5))
        except Exception as exc:
            errors.append(exc)

    threads = [threading.Thread(target=render) for _ in range(2)]
    try:
        threads[0].start()
        time.sleep(0.05)
        threads[1].start()
        for t in threads:
            t.join(timeout=5)
    finally:
        runner.close()

    assert errors == []
    assert len(results) == 2
    assert results[0] is results[1]
    assert session.get.call_count == 1
    assert facade.is_loaded()
