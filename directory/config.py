from __future__ import annotations

import os
from dataclasses import dataclass, field
from functools import lru_cache
from typing import List, Optional


DEFAULT_CORS_ORIGINS = ["http://localhost:3000", "http://127.0.0.1:3000"]
DEFAULT_HTTP_TIMEOUT = 10.0


@dataclass(frozen=True)
class Settings:
    google_maps_api_key: Optional[str] = None
    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None
    http_timeout: float = DEFAULT_HTTP_TIMEOUT
    cors_origins: List[str] = field(default_factory=lambda: list(DEFAULT_CORS_ORIGINS))
    log_level: str = "INFO"


def _env(*names: str) -> Optional[str]:
    for name in names:
        value = (os.environ.get(name) or "").strip()
        if value:
            return value
    return None


def _as_float(value: Optional[str], default: float) -> float:
    if value is None:
        return default
    try:
        out = float(value)
    except ValueError:
        return default
    return out if out > 0 else default


def _as_list(value: Optional[str], default: List[str]) -> List[str]:
    if not value:
        return list(default)
    return [v.strip() for v in value.split(",") if v.strip()]


def load_settings() -> Settings:
    """Read settings from the environment (no caching)."""
    url = _env("SUPABASE_URL", "NEXT_PUBLIC_SUPABASE_URL")
    return Settings(
        google_maps_api_key=_env("GOOGLE_MAPS_API_KEY", "NEXT_PUBLIC_GOOGLE_MAPS_API_KEY"),
        supabase_url=url.rstrip("/") if url else None,
        supabase_key=_env("SUPABASE_ANON_KEY", "SUPABASE_KEY", "NEXT_PUBLIC_SUPABASE_ANON_KEY"),
        http_timeout=_as_float(_env("HTTP_TIMEOUT"), DEFAULT_HTTP_TIMEOUT),
        cors_origins=_as_list(_env("CORS_ORIGINS"), DEFAULT_CORS_ORIGINS),
        log_level=(_env("LOG_LEVEL") or "INFO").upper(),
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return load_settings()
