"""
Open Source Cloud platform — authenticated HTTP client.

A PlatformContext wraps one tenant's personal access token (PAT). Every
instance-API call first exchanges the PAT for a short-lived service access
token (SAT) scoped to the target service, then calls that service's instance
API:

  POST   https://token.svc.{env}.osaas.io/servicetoken       → SAT
  GET    https://api-{service}.auto.{env}.osaas.io/instances/{name}
  POST   https://api-{service}.auto.{env}.osaas.io/instances
  DELETE https://api-{service}.auto.{env}.osaas.io/instances/{name}
  GET    https://api-{service}.auto.{env}.osaas.io/health/{name}
  GET    https://api-{service}.auto.{env}.osaas.io/ports/{name}

SATs are cached per service until shortly before they expire. Transport
errors and non-2xx responses surface as PlatformError.
"""
from __future__ import annotations

import hashlib
import logging
import time
from typing import Any

import httpx

from openmam.platform.exceptions import InstanceAlreadyExists, PlatformError

logger = logging.getLogger(__name__)

_DEFAULT_TIMEOUT = 30.0
_DEFAULT_SAT_TTL = 3600.0
# Refresh cached SATs this long before they expire
_SAT_EXPIRY_MARGIN = 60.0


def account_key(personal_access_token: str) -> str:
    """Stable, non-reversible identifier for a PAT (used for cache keys and logs)."""
    return hashlib.sha256(personal_access_token.encode()).hexdigest()[:16]


def _raise_for_status(response: httpx.Response, action: str) -> None:
    if response.is_success:
        return
    raise PlatformError(
        f"{action} failed: HTTP {response.status_code} {response.text[:200]}",
        status_code=response.status_code,
    )


def _json(response: httpx.Response, action: str) -> Any:
    try:
        return response.json()
    except ValueError as exc:
        raise PlatformError(f"{action} returned invalid JSON") from exc


class PlatformContext:
    """Authenticated handle on one tenant's platform account."""

    def __init__(
        self,
        personal_access_token: str,
        *,
        environment: str = "prod",
        timeout: float = _DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not personal_access_token:
            raise ValueError("personal_access_token is required")
        self._pat = personal_access_token
        self.environment = environment
        self.account_key = account_key(personal_access_token)
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)
        # service_id → (token, monotonic expiry)
        self._tokens: dict[str, tuple[str, float]] = {}

    def __repr__(self) -> str:
        return f"<PlatformContext account={self.account_key} env={self.environment}>"

    # ── URLs ─────────────────────────────────────────────────────────────────

    @property
    def token_url(self) -> str:
        return f"https://token.svc.{self.environment}.osaas.io/servicetoken"

    def api_url(self, service_id: str) -> str:
        return f"https://api-{service_id}.auto.{self.environment}.osaas.io"

    # ── Low-level ────────────────────────────────────────────────────────────

    async def _request(
        self,
        method: str,
        url: str,
        *,
        headers: dict[str, str] | None = None,
        json: Any = None,
    ) -> httpx.Response:
        try:
            return await self._client.request(method, url, headers=headers, json=json)
        except httpx.HTTPError as exc:
            raise PlatformError(f"{method} {url} failed: {exc}") from exc

    async def get_service_access_token(self, service_id: str) -> str:
        cached = self._tokens.get(service_id)
        if cached is not None and cached[1] > time.monotonic() + _SAT_EXPIRY_MARGIN:
            return cached[0]

        action = f"Service token for {service_id}"
        response = await self._request(
            "POST",
            self.token_url,
            headers={"x-pat-jwt": f"Bearer {self._pat}"},
            json={"serviceId": service_id},
        )
        _raise_for_status(response, action)
        body = _json(response, action)
        token = body.get("token") if isinstance(body, dict) else None
        if not token:
            raise PlatformError(f"{action} missing from response")

        ttl = float(body.get("expiry") or _DEFAULT_SAT_TTL)
        self._tokens[service_id] = (token, time.monotonic() + ttl)
        return token

    async def _service_request(
        self,
        method: str,
        service_id: str,
        path: str,
        *,
        json: Any = None,
    ) -> httpx.Response:
        token = await self.get_service_access_token(service_id)
        return await self._request(
            method,
            f"{self.api_url(service_id)}{path}",
            headers={"Authorization": f"Bearer {token}"},
            json=json,
        )

    # ── Instance API ─────────────────────────────────────────────────────────

    async def get_instance(self, service_id: str, name: str) -> dict[str, Any] | None:
        """The instance record, or None if no instance has that name."""
        response = await self._service_request("GET", service_id, f"/instances/{name}")
        if response.status_code == 404:
            return None
        action = f"Get {service_id}/{name}"
        _raise_for_status(response, action)
        return _json(response, action)

    async def create_instance(self, service_id: str, params: dict[str, Any]) -> dict[str, Any]:
        name = params.get("name", "?")
        action = f"Create {service_id}/{name}"
        response = await self._service_request("POST", service_id, "/instances", json=params)
        if response.status_code == 409:
            raise InstanceAlreadyExists(f"{action}: already exists", status_code=409)
        _raise_for_status(response, action)
        return _json(response, action)

    async def remove_instance(self, service_id: str, name: str) -> None:
        """Delete the instance. Removing an absent instance is not an error."""
        response = await self._service_request("DELETE", service_id, f"/instances/{name}")
        if response.status_code == 404:
            return
        _raise_for_status(response, f"Remove {service_id}/{name}")

    async def get_instance_health(self, service_id: str, name: str) -> str:
        """Health status string as reported by the platform, lowercased."""
        action = f"Health of {service_id}/{name}"
        response = await self._service_request("GET", service_id, f"/health/{name}")
        _raise_for_status(response, action)
        body = _json(response, action)
        status = body.get("status") if isinstance(body, dict) else None
        return str(status or "unknown").lower()

    async def get_instance_ports(self, service_id: str, name: str) -> list[dict[str, Any]]:
        action = f"Ports of {service_id}/{name}"
        response = await self._service_request("GET", service_id, f"/ports/{name}")
        _raise_for_status(response, action)
        body = _json(response, action)
        if isinstance(body, dict):
            return [body]
        return list(body or [])

    async def aclose(self) -> None:
        await self._client.aclose()
