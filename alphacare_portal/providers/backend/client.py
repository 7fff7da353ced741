from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass
from typing import Any, Final

import httpx

from alphacare_portal.config import settings
from alphacare_portal.domain.roles import normalize_namespace


_RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}

_EP_OAUTH_AUTHORIZE = "/auth/google"
_EP_OAUTH_SESSION = "/auth/session"
_EP_OAUTH_COMPLETE_REGISTRATION = "/auth/oauth/complete-registration"


@dataclass(frozen=True)
class RoleEndpoints:
    login: str
    register: str
    logout: str
    profile: str
    refresh: str


ROLE_ENDPOINTS: Final[dict[str, RoleEndpoints]] = {
    "doctor": RoleEndpoints(
        login="/login",
        register="/register",
        logout="/logout",
        profile="/profile",
        refresh="/refresh-token",
    ),
    "patient": RoleEndpoints(
        login="/auth/login",
        register="/auth/register",
        logout="/auth/logout",
        profile="/patients/me/profile",
        refresh="/auth/refresh-token",
    ),
    "coordinator": RoleEndpoints(
        login="/auth/coordinator/login",
        register="/auth/coordinator/register",
        logout="/auth/coordinator/logout",
        profile="/auth/coordinator/profile",
        refresh="/auth/coordinator/refresh-token",
    ),
    "admin": RoleEndpoints(
        login="/admin/login",
        register="/admin/register",
        logout="/admin/logout",
        profile="/admin/profile",
        refresh="/admin/refresh-token",
    ),
}


class BackendError(Exception):
    """Structured failure from the portal backend (HTTP status plus message)."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        server_message: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.server_message = server_message

    @property
    def category(self) -> str:
        if self.status_code is None or self.status_code in _RETRYABLE_STATUS_CODES:
            return "transient"
        if self.status_code in {401, 403}:
            return "auth"
        return "terminal"

    @property
    def retryable(self) -> bool:
        return self.category == "transient"


def endpoints_for(namespace: str) -> RoleEndpoints:
    return ROLE_ENDPOINTS[normalize_namespace(namespace)]


def _headers(token: str | None) -> dict[str, str]:
    headers = {
        "Accept": "application/json",
        "Content-Type": "application/json",
    }
    if token:
        headers["Authorization"] = f"Bearer {token}"
    return headers


def _server_message(response: httpx.Response) -> str | None:
    try:
        payload = response.json()
    except ValueError:
        return None
    if not isinstance(payload, dict):
        return None
    for key in ("message", "detail", "error"):
        value = payload.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
        if isinstance(value, dict) and isinstance(value.get("message"), str):
            return value["message"]
    return None


def _retry_delay(attempt: int, base_delay: float, max_delay: float) -> float:
    delay = min(base_delay * (2 ** (attempt - 1)), max_delay)
    return delay + random.uniform(0, delay * 0.2)


async def _request_with_retry(
    *,
    method: str,
    url: str,
    headers: dict[str, str],
    timeout_seconds: float,
    max_attempts: int,
    base_delay: float,
    max_delay: float,
    transport: httpx.AsyncBaseTransport | None = None,
    json_payload: dict[str, Any] | None = None,
) -> httpx.Response:
    response: httpx.Response | None = None
    for attempt in range(1, max_attempts + 1):
        try:
            async with httpx.AsyncClient(timeout=timeout_seconds, transport=transport) as client:
                response = await client.request(
                    method=method,
                    url=url,
                    headers=headers,
                    json=json_payload,
                )
        except httpx.HTTPError:
            if attempt >= max_attempts:
                raise
            await asyncio.sleep(_retry_delay(attempt, base_delay, max_delay))
            continue

        if response.status_code in _RETRYABLE_STATUS_CODES and attempt < max_attempts:
            await asyncio.sleep(_retry_delay(attempt, base_delay, max_delay))
            continue
        return response

    assert response is not None
    return response


class BackendClient:
    """Async client for the portal backend's authentication contract.

    Login, register, logout and refresh are sent exactly once; profile and
    session reads are retried on connectivity errors and 429/5xx.
    """

    def __init__(
        self,
        base_url: str | None = None,
        *,
        timeout_seconds: float | None = None,
        max_retry_attempts: int | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = (base_url or settings.api_base_url).rstrip("/")
        self.timeout_seconds = timeout_seconds or settings.api_timeout_seconds
        self.max_retry_attempts = max(1, max_retry_attempts or settings.api_max_retry_attempts)
        self._transport = transport

    async def _request_json(
        self,
        method: str,
        path: str,
        *,
        token: str | None = None,
        json_payload: dict[str, Any] | None = None,
        retry: bool = False,
    ) -> Any:
        url = f"{self.base_url}{path}"
        try:
            response = await _request_with_retry(
                method=method,
                url=url,
                headers=_headers(token),
                timeout_seconds=self.timeout_seconds,
                max_attempts=self.max_retry_attempts if retry else 1,
                base_delay=settings.api_retry_base_delay_seconds,
                max_delay=settings.api_retry_max_delay_seconds,
                transport=self._transport,
                json_payload=json_payload,
            )
        except httpx.HTTPError as exc:
            raise BackendError(f"Backend connectivity error: {exc}") from exc

        if response.status_code >= 400:
            server_message = _server_message(response)
            raise BackendError(
                f"Backend returned HTTP {response.status_code}: {server_message or response.text[:200]}",
                status_code=response.status_code,
                server_message=server_message,
            )
        if response.status_code == 204 or not response.content:
            return {}
        try:
            return response.json()
        except ValueError as exc:
            raise BackendError(
                "Backend returned non-JSON response",
                status_code=response.status_code,
            ) from exc

    async def login(self, namespace: str, credentials: dict[str, Any]) -> Any:
        return await self._request_json("POST", endpoints_for(namespace).login, json_payload=credentials)

    async def register(self, namespace: str, data: dict[str, Any]) -> Any:
        return await self._request_json("POST", endpoints_for(namespace).register, json_payload=data)

    async def logout(self, namespace: str, token: str) -> None:
        await self._request_json("POST", endpoints_for(namespace).logout, token=token, json_payload={})

    async def get_profile(self, namespace: str, token: str) -> Any:
        return await self._request_json("GET", endpoints_for(namespace).profile, token=token, retry=True)

    async def refresh(self, namespace: str, token: str, refresh_token: str | None = None) -> Any:
        payload: dict[str, Any] = {}
        if refresh_token:
            payload["refreshToken"] = refresh_token
        return await self._request_json("POST", endpoints_for(namespace).refresh, token=token, json_payload=payload)

    async def get_oauth_authorize_url(self) -> str:
        data = await self._request_json("GET", _EP_OAUTH_AUTHORIZE, retry=True)
        url = data.get("url") if isinstance(data, dict) else None
        if isinstance(url, str) and url:
            return url
        nested = data.get("data") if isinstance(data, dict) else None
        if isinstance(nested, dict) and isinstance(nested.get("url"), str):
            return nested["url"]
        raise BackendError("Unexpected OAuth authorize URL response shape")

    async def get_session(self, token: str) -> Any:
        return await self._request_json("GET", _EP_OAUTH_SESSION, token=token, retry=True)

    async def complete_oauth_registration(self, data: dict[str, Any]) -> Any:
        return await self._request_json("POST", _EP_OAUTH_COMPLETE_REGISTRATION, json_payload=data)

