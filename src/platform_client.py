"""
Platform Client — hosted backend adapter
==========================================
Thin HTTP client for the hosted platform that owns every entity, the
auth session and the e-mail integration.  Nothing is stored locally:
each call is one REST request.

Usage:
    client = PlatformClient.from_request(request)
    user = client.auth.me()
    goals = client.entities.Goal.filter({"user_id": user["id"]}, "-created_date", 50)
    client.as_service_role().integrations.send_email(to, subject, body)
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional

import requests
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

import config

log = logging.getLogger("platform_client")


class PlatformError(Exception):
    """Non-2xx response from the platform."""

    def __init__(self, status_code: int, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.message = message


class PlatformClient:
    """Authenticated handle on one platform application."""

    def __init__(
        self,
        base_url: str = config.PLATFORM_API_URL,
        app_id: str = config.PLATFORM_APP_ID,
        token: Optional[str] = None,
        service_token: Optional[str] = config.PLATFORM_SERVICE_TOKEN,
        session: Optional[requests.Session] = None,
        timeout: float = config.PLATFORM_TIMEOUT,
    ):
        self.base_url = base_url.rstrip("/")
        self.app_id = app_id
        self.token = token
        self.service_token = service_token
        self.session = session or requests.Session()
        self.timeout = timeout
        self.entities = _EntityNamespace(self)
        self.auth = _Auth(self)
        self.integrations = _Integrations(self)

    @classmethod
    def from_request(cls, request: Any, **kwargs: Any) -> "PlatformClient":
        """Build a client carrying the caller's bearer token (if any)."""
        header = request.headers.get("authorization") or ""
        token = None
        if header.lower().startswith("bearer "):
            token = header[7:].strip() or None
        return cls(token=token, **kwargs)

    def as_service_role(self) -> "PlatformClient":
        """Same application, authenticated with the service-role token."""
        if not self.service_token:
            raise PlatformError(500, "PLATFORM_SERVICE_TOKEN is not set")
        return PlatformClient(
            base_url=self.base_url,
            app_id=self.app_id,
            token=self.service_token,
            service_token=self.service_token,
            session=self.session,
            timeout=self.timeout,
        )

    def entity(self, name: str) -> "EntityCollection":
        return EntityCollection(self, name)

    # ─── Transport ──────────────────────────────────────────

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json", "X-App-Id": self.app_id}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        retry=retry_if_exception_type((requests.ConnectionError, requests.Timeout)),
        reraise=True,
    )
    def _send(self, method: str, url: str, **kwargs: Any) -> requests.Response:
        """Single HTTP call with retry + exponential backoff.

        Only transport failures (connection reset, timeout) are retried;
        HTTP error statuses are returned to the caller unchanged.
        """
        return self.session.request(method, url, headers=self._headers(), timeout=self.timeout, **kwargs)

    def request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        payload: Optional[Any] = None,
    ) -> Any:
        url = f"{self.base_url}/apps/{self.app_id}/{path.lstrip('/')}"
        resp = self._send(method, url, params=params, json=payload)
        if resp.status_code >= 400:
            raise PlatformError(resp.status_code, _error_message(resp))
        if resp.status_code == 204 or not resp.content:
            return None
        return resp.json()


def _error_message(resp: requests.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.text or f"HTTP {resp.status_code}"
    if isinstance(body, dict):
        return str(body.get("message") or body.get("detail") or body.get("error") or body)
    return str(body)


class EntityCollection:
    """CRUD over one entity type (Workout, Goal, ...)."""

    def __init__(self, client: PlatformClient, name: str):
        self.client = client
        self.name = name

    def _path(self, entity_id: Optional[str] = None) -> str:
        if entity_id is None:
            return f"entities/{self.name}"
        return f"entities/{self.name}/{entity_id}"

    def list(self, sort: Optional[str] = None, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        return self.filter({}, sort=sort, limit=limit)

    def filter(
        self,
        query: Dict[str, Any],
        sort: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        params: Dict[str, Any] = {}
        if query:
            params["q"] = json.dumps(query)
        if sort:
            params["sort"] = sort
        if limit is not None:
            params["limit"] = int(limit)
        return self.client.request("GET", self._path(), params=params) or []

    def get(self, entity_id: str) -> Optional[Dict[str, Any]]:
        try:
            return self.client.request("GET", self._path(entity_id))
        except PlatformError as e:
            if e.status_code == 404:
                return None
            raise

    def create(self, data: Dict[str, Any]) -> Dict[str, Any]:
        return self.client.request("POST", self._path(), payload=data)

    def update(self, entity_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        return self.client.request("PUT", self._path(entity_id), payload=data)

    def delete(self, entity_id: str) -> None:
        self.client.request("DELETE", self._path(entity_id))


class _EntityNamespace:
    """Attribute access sugar: ``client.entities.Workout``."""

    def __init__(self, client: PlatformClient):
        self._client = client

    def __getattr__(self, name: str) -> EntityCollection:
        if name.startswith("_"):
            raise AttributeError(name)
        return EntityCollection(self._client, name)


class _Auth:
    def __init__(self, client: PlatformClient):
        self._client = client

    def me(self) -> Optional[Dict[str, Any]]:
        """Return the authenticated user, or None when the token is missing or rejected."""
        if not self._client.token:
            return None
        try:
            return self._client.request("GET", "entities/User/me")
        except PlatformError as e:
            if e.status_code in (401, 403):
                log.info("Platform rejected token: %s", e.message)
                return None
            raise


class _Integrations:
    def __init__(self, client: PlatformClient):
        self._client = client

    def send_email(self, to: str, subject: str, body: str) -> Any:
        return self._client.request(
            "POST",
            "integration-endpoints/Core/SendEmail",
            payload={"to": to, "subject": subject, "body": body},
        )
