"""Zoho accounts server client (OAuth token grants and OpenID userinfo)."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any

import httpx

from app.core.config import settings
from app.core.exceptions import ZohoAuthenticationError, ZohoConnectionError

logger = logging.getLogger(__name__)

_RETRYABLE_STATUSES = {429, 500, 502, 503, 504}
DEFAULT_EXPIRES_IN = 3600


@dataclass(frozen=True)
class ZohoTokenGrant:
    access_token: str
    expires_in: int
    refresh_token: str | None = None
    api_domain: str | None = None
    token_type: str | None = None
    scope: str | None = None
    id_token: str | None = None

    def expires_at(self, now: int | None = None) -> int:
        issued_at = int(time.time()) if now is None else now
        return issued_at + self.expires_in


def _coerce_expires_in(value: Any) -> int:
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return DEFAULT_EXPIRES_IN
    return parsed if parsed > 0 else DEFAULT_EXPIRES_IN


def _parse_grant(payload: dict[str, Any]) -> ZohoTokenGrant:
    # Zoho answers some rejected grants with HTTP 200 and an "error" field.
    error = payload.get("error")
    if error:
        raise ZohoAuthenticationError(f"Zoho token error: {error}", details={"error": str(error)})
    access_token = str(payload.get("access_token") or "").strip()
    if not access_token:
        raise ZohoAuthenticationError("Zoho token response missing access_token")
    return ZohoTokenGrant(
        access_token=access_token,
        expires_in=_coerce_expires_in(payload.get("expires_in")),
        refresh_token=payload.get("refresh_token") or None,
        api_domain=payload.get("api_domain") or None,
        token_type=payload.get("token_type") or None,
        scope=payload.get("scope") or None,
        id_token=payload.get("id_token") or None,
    )


class ZohoOAuthClient:
    def __init__(
        self,
        *,
        client_id: str | None = None,
        client_secret: str | None = None,
        timeout: float | None = None,
        max_retries: int | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.client_id = client_id if client_id is not None else settings.ZOHO_CLIENT_ID
        self.client_secret = client_secret if client_secret is not None else settings.ZOHO_CLIENT_SECRET
        self.token_url = settings.zoho_token_url
        self.userinfo_url = settings.zoho_userinfo_url
        self.timeout = timeout if timeout is not None else settings.ZOHO_HTTP_TIMEOUT_SECONDS
        self.max_retries = max(1, max_retries if max_retries is not None else settings.ZOHO_HTTP_MAX_RETRIES)
        self.transport = transport

    def _client(self) -> httpx.Client:
        return httpx.Client(
            timeout=self.timeout,
            headers={"Accept": "application/json"},
            transport=self.transport,
        )

    def _send(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        backoff = 0.5
        with self._client() as client:
            for attempt in range(1, self.max_retries + 1):
                try:
                    response = client.request(method, url, **kwargs)
                except httpx.TimeoutException as exc:
                    if attempt >= self.max_retries:
                        raise ZohoConnectionError("Zoho request timed out") from exc
                    time.sleep(backoff)
                    backoff *= 2
                    continue
                except httpx.HTTPError as exc:
                    if attempt >= self.max_retries:
                        raise ZohoConnectionError(f"Zoho request failed: {exc.__class__.__name__}") from exc
                    time.sleep(backoff)
                    backoff *= 2
                    continue

                if response.status_code in _RETRYABLE_STATUSES and attempt < self.max_retries:
                    time.sleep(backoff)
                    backoff *= 2
                    continue
                return response
        raise ZohoConnectionError()

    def _token_request(self, form: dict[str, str]) -> ZohoTokenGrant:
        response = self._send(
            "POST",
            self.token_url,
            data={**form, "client_id": self.client_id, "client_secret": self.client_secret},
        )
        if response.status_code >= 500:
            raise ZohoConnectionError(f"Zoho API error: {response.status_code} {response.reason_phrase}")
        if response.status_code >= 400:
            raise ZohoAuthenticationError(
                f"Zoho API error: {response.status_code} {response.reason_phrase}",
                details={"status_code": response.status_code},
            )
        try:
            payload = response.json()
        except ValueError as exc:
            raise ZohoAuthenticationError("Zoho token response is not JSON") from exc
        if not isinstance(payload, dict):
            raise ZohoAuthenticationError("Zoho token response is not an object")
        return _parse_grant(payload)

    def refresh_access_token(self, refresh_token: str) -> ZohoTokenGrant:
        if not (refresh_token or "").strip():
            raise ZohoAuthenticationError("No refresh token available")
        grant = self._token_request({"grant_type": "refresh_token", "refresh_token": refresh_token})
        logger.debug("Zoho access token refreshed (expires_in=%s)", grant.expires_in)
        return grant

    def exchange_code(self, code: str, *, redirect_uri: str, code_verifier: str) -> ZohoTokenGrant:
        return self._token_request(
            {
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": redirect_uri,
                "code_verifier": code_verifier,
            }
        )

    def get_userinfo(self, access_token: str) -> dict[str, Any]:
        response = self._send(
            "GET",
            self.userinfo_url,
            headers={"Authorization": f"Bearer {access_token}"},
        )
        if response.status_code >= 400:
            raise ZohoAuthenticationError(
                f"Zoho userinfo error: {response.status_code} {response.reason_phrase}",
                details={"status_code": response.status_code},
            )
        try:
            data = response.json()
        except ValueError as exc:
            raise ZohoAuthenticationError("Zoho userinfo response is not JSON") from exc
        return data if isinstance(data, dict) else {}
