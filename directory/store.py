"""Thin client for the hosted data store (Supabase / PostgREST dialect)."""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional

import requests

from directory.config import DEFAULT_HTTP_TIMEOUT, Settings


logger = logging.getLogger(__name__)

PAGE_SIZE = 1000


class StoreError(Exception):
    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


def _literal(value: object) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "null"
    return str(value)


def build_params(
    *,
    columns: str = "*",
    eq: Optional[Mapping[str, object]] = None,
    in_: Optional[Mapping[str, Iterable[object]]] = None,
    is_null: Optional[Iterable[str]] = None,
    gte: Optional[Mapping[str, object]] = None,
    order: Optional[str] = None,
    ascending: bool = True,
    limit: Optional[int] = None,
    offset: Optional[int] = None,
) -> Dict[str, str]:
    params: Dict[str, str] = {}
    if columns:
        params["select"] = columns
    for col, value in (eq or {}).items():
        params[col] = f"eq.{_literal(value)}"
    for col, values in (in_ or {}).items():
        params[col] = "in.(" + ",".join(_literal(v) for v in values) + ")"
    for col in is_null or []:
        params[col] = "is.null"
    for col, value in (gte or {}).items():
        params[col] = f"gte.{_literal(value)}"
    if order:
        params["order"] = f"{order}.{'asc' if ascending else 'desc'}"
    if limit is not None:
        params["limit"] = str(int(limit))
    if offset is not None:
        params["offset"] = str(int(offset))
    return params


class SupabaseStore:
    """Row CRUD over the REST endpoint of the hosted database."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        *,
        session: Optional[requests.Session] = None,
        timeout: float = DEFAULT_HTTP_TIMEOUT,
    ) -> None:
        if not base_url or not api_key:
            raise StoreError("Supabase URL and key must be configured")
        self.rest_url = f"{base_url.rstrip('/')}/rest/v1"
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update(
            {
                "apikey": api_key,
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            }
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "SupabaseStore":
        return cls(settings.supabase_url or "", settings.supabase_key or "", timeout=settings.http_timeout)

    def _request(
        self,
        method: str,
        table: str,
        *,
        params: Optional[Dict[str, str]] = None,
        json: object = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> requests.Response:
        url = f"{self.rest_url}/{table}"
        try:
            response = self.session.request(method, url, params=params, json=json, headers=headers, timeout=self.timeout)
        except requests.RequestException as exc:
            raise StoreError(f"{method} {table} failed: {exc}") from exc
        if response.status_code >= 400:
            try:
                message = response.json().get("message") or response.text
            except ValueError:
                message = response.text
            raise StoreError(f"{method} {table} failed: {message}", status_code=response.status_code)
        return response

    def select(self, table: str, **filters: Any) -> List[Dict[str, Any]]:
        response = self._request("GET", table, params=build_params(**filters))
        return list(response.json() or [])

    def select_all(self, table: str, *, page_size: int = PAGE_SIZE, **filters: Any) -> List[Dict[str, Any]]:
        """Fetch every matching row, page by page."""
        rows: List[Dict[str, Any]] = []
        offset = 0
        while True:
            page = self.select(table, limit=page_size, offset=offset, **filters)
            rows.extend(page)
            if len(page) < page_size:
                break
            offset += page_size
        return rows

    def get(self, table: str, row_id: object, columns: str = "*") -> Optional[Dict[str, Any]]:
        rows = self.select(table, columns=columns, eq={"id": row_id}, limit=1)
        return rows[0] if rows else None

    def count(self, table: str, **filters: Any) -> int:
        filters.setdefault("columns", "id")
        response = self._request(
            "HEAD", table, params=build_params(**filters), headers={"Prefer": "count=exact"}
        )
        content_range = response.headers.get("Content-Range", "")
        total = content_range.rsplit("/", 1)[-1]
        try:
            return int(total)
        except ValueError:
            return 0

    def insert(self, table: str, rows: Iterable[Mapping[str, Any]] | Mapping[str, Any]) -> List[Dict[str, Any]]:
        payload = [dict(rows)] if isinstance(rows, Mapping) else [dict(r) for r in rows]
        response = self._request("POST", table, json=payload, headers={"Prefer": "return=representation"})
        return list(response.json() or [])

    def update(
        self,
        table: str,
        values: Mapping[str, Any],
        *,
        eq: Optional[Mapping[str, object]] = None,
        in_: Optional[Mapping[str, Iterable[object]]] = None,
    ) -> List[Dict[str, Any]]:
        if not eq and not in_:
            raise StoreError("update without a filter is not allowed")
        params = build_params(columns="", eq=eq, in_=in_)
        response = self._request(
            "PATCH", table, params=params, json=dict(values), headers={"Prefer": "return=representation"}
        )
        return list(response.json() or [])

    def delete(
        self,
        table: str,
        *,
        eq: Optional[Mapping[str, object]] = None,
        in_: Optional[Mapping[str, Iterable[object]]] = None,
    ) -> None:
        if not eq and not in_:
            raise StoreError("delete without a filter is not allowed")
        self._request("DELETE", table, params=build_params(columns="", eq=eq, in_=in_))
