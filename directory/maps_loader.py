"""Single-flight loader for the Google Maps JavaScript API.

The loader guarantees the Maps script is fetched and initialized at most once
per loader lifetime, however many consumers ask for it concurrently:

- ``MapsLoader`` holds the status and the one in-flight load handle.
- ``ScriptInjector`` owns the page's script tags and performs the fetch.
- ``MapsFacade`` is what rendering code gets handed by the composition root.

Everything runs on one asyncio event loop. State changes happen between
suspension points, so no locks are needed. The only blocking call (the HTTP
fetch) is pushed to a worker thread and never touches loader state.

Callers that are not async themselves (Streamlit sessions each run on their
own thread) go through a ``LoaderThread``, which owns the single loop the
loader lives on.
"""

from __future__ import annotations

import asyncio
import html
import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, List, Optional, Tuple
from urllib.parse import quote

import requests

from directory.config import DEFAULT_HTTP_TIMEOUT
from directory.geocoding import Geocoder


logger = logging.getLogger(__name__)

MAPS_ORIGIN = "maps.googleapis.com"
MAPS_SCRIPT_URL = f"https://{MAPS_ORIGIN}/maps/api/js"
MAPS_LIBRARIES: Tuple[str, ...] = ("places", "geometry")
# The bootstrap script defines this namespace once it has executed.
NAMESPACE_MARKER = "google.maps"


class LoaderStatus(str, Enum):
    NOT_LOADED = "not_loaded"
    LOADING = "loading"
    LOADED = "loaded"


class MapsLoaderError(Exception):
    """Base class for everything the loader can raise."""


class ConfigError(MapsLoaderError):
    """No API key configured. Nothing was fetched."""


class NetworkError(MapsLoaderError):
    """The script fetch failed at the transport level."""


class IntegrityError(MapsLoaderError):
    """The fetch succeeded but the Maps namespace was not populated."""


class NotReadyError(MapsLoaderError):
    """A derived client was requested before the script finished loading."""


@dataclass(frozen=True)
class ScriptTag:
    src: str
    async_: bool = True
    defer: bool = True

    def to_html(self) -> str:
        attrs = [f'src="{html.escape(self.src, quote=True)}"']
        if self.async_:
            attrs.append("async")
        if self.defer:
            attrs.append("defer")
        return f"<script {' '.join(attrs)}></script>"


class ScriptDocument:
    """The script tags injected into the page head."""

    def __init__(self) -> None:
        self._tags: List[ScriptTag] = []

    @property
    def tags(self) -> List[ScriptTag]:
        return list(self._tags)

    def query(self, origin: str) -> List[ScriptTag]:
        return [t for t in self._tags if origin in t.src]

    def append(self, tag: ScriptTag) -> None:
        self._tags.append(tag)

    def remove_matching(self, origin: str) -> int:
        before = len(self._tags)
        self._tags = [t for t in self._tags if origin not in t.src]
        return before - len(self._tags)

    def render_head(self) -> str:
        return "\n".join(t.to_html() for t in self._tags)


@dataclass(frozen=True)
class MapsSdk:
    """Readiness signal produced by a successful injection."""

    api_key: str = field(repr=False)
    script_src: str = field(repr=False)
    libraries: Tuple[str, ...]
    session: requests.Session = field(repr=False, compare=False)
    timeout: float = DEFAULT_HTTP_TIMEOUT


@dataclass(frozen=True)
class LoadOutcome:
    sdk: Optional[MapsSdk] = None
    error: Optional[MapsLoaderError] = None

    @classmethod
    def loaded(cls, sdk: MapsSdk) -> "LoadOutcome":
        return cls(sdk=sdk)

    @classmethod
    def failed(cls, error: MapsLoaderError) -> "LoadOutcome":
        return cls(error=error)

    @property
    def ok(self) -> bool:
        return self.error is None and self.sdk is not None

    def unwrap(self) -> MapsSdk:
        if self.error is not None:
            raise self.error
        if self.sdk is None:
            raise IntegrityError("Google Maps failed to load")
        return self.sdk


class ScriptInjector:
    def __init__(
        self,
        document: ScriptDocument,
        *,
        session: Optional[requests.Session] = None,
        timeout: float = DEFAULT_HTTP_TIMEOUT,
        libraries: Tuple[str, ...] = MAPS_LIBRARIES,
    ) -> None:
        self.document = document
        self.session = session or requests.Session()
        self.timeout = timeout
        self.libraries = tuple(libraries)

    def script_src(self, api_key: str) -> str:
        return f"{MAPS_SCRIPT_URL}?key={quote(api_key, safe='')}&libraries={','.join(self.libraries)}"

    def _fetch(self, src: str) -> str:
        response = self.session.get(src, timeout=self.timeout)
        response.raise_for_status()
        return response.text or ""

    async def inject(self, api_key: str) -> LoadOutcome:
        """Replace any Maps script tag with a fresh one and fetch it.

        Produces exactly one outcome per call; transport failures are returned,
        not raised.
        """
        removed = self.document.remove_matching(MAPS_ORIGIN)
        if removed:
            logger.debug("removed %d stale maps script tag(s)", removed)

        tag = ScriptTag(src=self.script_src(api_key))
        self.document.append(tag)

        try:
            body = await asyncio.to_thread(self._fetch, tag.src)
        except requests.RequestException as exc:
            return LoadOutcome.failed(NetworkError(f"Failed to load Google Maps script: {exc}"))

        if NAMESPACE_MARKER not in body:
            return LoadOutcome.failed(IntegrityError("Google Maps failed to load"))
        return LoadOutcome.loaded(
            MapsSdk(
                api_key=api_key,
                script_src=tag.src,
                libraries=self.libraries,
                session=self.session,
                timeout=self.timeout,
            )
        )


class MapsLoader:
    def __init__(self, injector: ScriptInjector, api_key_provider: Callable[[], Optional[str]]) -> None:
        self._injector = injector
        self._api_key_provider = api_key_provider
        self._status = LoaderStatus.NOT_LOADED
        self._in_flight: Optional[asyncio.Future] = None
        self._sdk: Optional[MapsSdk] = None

    @property
    def status(self) -> LoaderStatus:
        return self._status

    def is_loaded(self) -> bool:
        return self._status is LoaderStatus.LOADED and self._sdk is not None

    async def ensure_loaded(self) -> MapsSdk:
        if self.is_loaded():
            return self._sdk  # type: ignore[return-value]

        if self._status is LoaderStatus.LOADING and self._in_flight is not None:
            outcome = await asyncio.shield(self._in_flight)
            return outcome.unwrap()

        api_key = self._api_key_provider()
        if not api_key:
            raise ConfigError("Google Maps API key not configured")

        self._status = LoaderStatus.LOADING
        self._in_flight = asyncio.ensure_future(self._attempt(api_key))
        # shield: a cancelled caller must not cancel the shared attempt
        outcome = await asyncio.shield(self._in_flight)
        return outcome.unwrap()

    async def _attempt(self, api_key: str) -> LoadOutcome:
        outcome: Optional[LoadOutcome] = None
        try:
            outcome = await self._injector.inject(api_key)
        finally:
            self._in_flight = None
            if outcome is not None and outcome.ok:
                self._sdk = outcome.sdk
                self._status = LoaderStatus.LOADED
            else:
                self._sdk = None
                self._status = LoaderStatus.NOT_LOADED
            logger.debug("maps load attempt finished: %s", self._status.value)
        return outcome

    def create_derived_client(self) -> Geocoder:
        if not self.is_loaded():
            raise NotReadyError("Google Maps not loaded")
        return Geocoder(self._sdk)  # type: ignore[arg-type]

    create_geocoder = create_derived_client


class MapsFacade:
    """What map-rendering code is handed. Holds no state of its own."""

    def __init__(self, loader: MapsLoader, document: ScriptDocument) -> None:
        self._loader = loader
        self._document = document

    @property
    def status(self) -> LoaderStatus:
        return self._loader.status

    async def ensure_loaded(self) -> MapsSdk:
        return await self._loader.ensure_loaded()

    def is_loaded(self) -> bool:
        return self._loader.is_loaded()

    def create_derived_client(self) -> Geocoder:
        return self._loader.create_derived_client()

    def script_html(self) -> str:
        return self._document.render_head()


def build_maps_facade(
    api_key_provider: Callable[[], Optional[str]],
    *,
    session: Optional[requests.Session] = None,
    timeout: float = DEFAULT_HTTP_TIMEOUT,
) -> MapsFacade:
    document = ScriptDocument()
    injector = ScriptInjector(document, session=session, timeout=timeout)
    return MapsFacade(MapsLoader(injector, api_key_provider), document)


class LoaderThread:
    """An event loop on a daemon thread, shared by synchronous callers.

    A loader must only ever be awaited from one loop: an in-flight attempt is
    bound to the loop that started it. Threads that need the loader submit
    their coroutine here and block on the result.
    """

    def __init__(self, name: str = "maps-loader") -> None:
        self.loop = asyncio.new_event_loop()
        self._thread = threading.Thread(target=self.loop.run_forever, name=name, daemon=True)
        self._thread.start()

    def run(self, coro: Awaitable[Any], timeout: Optional[float] = None) -> Any:
        return asyncio.run_coroutine_threadsafe(coro, self.loop).result(timeout)

    def close(self) -> None:
        self.loop.call_soon_threadsafe(self.loop.stop)
        self._thread.join()
        self.loop.close()
