"""Admin sign-in against the hosted auth service (Supabase GoTrue REST)."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import requests

from directory.config import DEFAULT_HTTP_TIMEOUT, Settings


logger = logging.getLogger(__name__)

SESSION_COOKIE = "admin_session"


class AuthError(Exception):
    pass


@dataclass(frozen=True)
class AdminSession:
    access_token: str
    refresh_token: Optional[str]
    expires_in: Optional[int]
    email: Optional[str]


class AdminAuth:
    def __init__(
        self,
        base_url: str,
        api_key: str,
        *,
        session: Optional[requests.Session] = None,
        timeout: float = DEFAULT_HTTP_TIMEOUT,
    ) -> None:
        if not base_url or not api_key:
            raise AuthError("Supabase URL and key must be configured")
        self.auth_url = f"{base_url.rstrip('/')}/auth/v1"
        self.api_key = api_key
        self.timeout = timeout
        self.session = session or requests.Session()

    @classmethod
    def from_settings(cls, settings: Settings) -> "AdminAuth":
        return cls(settings.supabase_url or "", settings.supabase_key or "", timeout=settings.http_timeout)

    def _headers(self, token: Optional[str] = None) -> Dict[str, str]:
        return {"apikey": self.api_key, "Authorization": f"Bearer {token or self.api_key}"}

    def _post(self, path: str, *, token: Optional[str] = None, json: Any = None, params: Any = None) -> requests.Response:
        try:
            return self.session.post(
                f"{self.auth_url}/{path}",
                headers=self._headers(token),
                json=json,
                params=params,
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise AuthError(f"Auth service unavailable: {exc}") from exc

    def sign_in(self, email: str, password: str) -> AdminSession:
        email = (email or "").strip()
        if not email or not password:
            raise AuthError("Email and password are required")
        response = self._post("token", params={"grant_type": "password"}, json={"email": email, "password": password})
        if response.status_code >= 400:
            try:
                body = response.json()
            except ValueError:
                body = {}
            message = body.get("error_description") or body.get("msg") or "Invalid email or password"
            logger.warning("admin sign-in rejected for %s", email)
            raise AuthError(message)
        data = response.json()
        token = data.get("access_token")
        if not token:
            raise AuthError("Auth service returned no session")
        logger.info("admin signed in: %s", email)
        return AdminSession(
            access_token=token,
            refresh_token=data.get("refresh_token"),
            expires_in=data.get("expires_in"),
            email=(data.get("user") or {}).get("email", email),
        )

    def sign_out(self, access_token: str) -> None:
        response = self._post("logout", token=access_token)
        if response.status_code >= 400 and response.status_code != 401:
            raise AuthError(f"Sign-out failed ({response.status_code})")

    def get_user(self, access_token: Optional[str]) -> Optional[Dict[str, Any]]:
        """Return the user for a live session, else ``None``."""
        if not access_token:
            return None
        try:
            response = self.session.get(
                f"{self.auth_url}/user", headers=self._headers(access_token), timeout=self.timeout
            )
        except requests.RequestException as exc:
            raise AuthError(f"Auth service unavailable: {exc}") from exc
        if response.status_code != 200:
            return None
        return response.json()
