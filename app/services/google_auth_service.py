import logging
import time
from typing import Protocol

import httpx

from app.core.config import settings
from app.core.errors import UpstreamFailure
from app.core.security import GOOGLE_TOKEN_URL, create_service_account_assertion

logger = logging.getLogger(__name__)

SHEETS_SCOPES = ["https://www.googleapis.com/auth/spreadsheets"]
CALENDAR_SCOPES = ["https://www.googleapis.com/auth/calendar"]

# Refresh a little before Google's expiry so in-flight requests don't race it
_EXPIRY_MARGIN_SECONDS = 60


class TokenSource(Protocol):
    async def get_token(self) -> str: ...


class ServiceAccountTokenSource:
    """Exchanges a signed service-account assertion for an access token and caches it."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        client_email: str,
        private_key_pem: str,
        scopes: list[str],
    ) -> None:
        self._client = client
        self._client_email = client_email
        self._private_key_pem = private_key_pem
        self._scopes = scopes
        self._token: str | None = None
        self._expires_at = 0.0

    @classmethod
    def from_settings(cls, client: httpx.AsyncClient, scopes: list[str]) -> "ServiceAccountTokenSource":
        return cls(client, settings.google_client_email, settings.private_key_pem, scopes)

    async def get_token(self) -> str:
        if self._token and time.time() < self._expires_at - _EXPIRY_MARGIN_SECONDS:
            return self._token
        assertion = create_service_account_assertion(
            self._client_email, self._private_key_pem, self._scopes
        )
        try:
            resp = await self._client.post(
                GOOGLE_TOKEN_URL,
                data={
                    "grant_type": "urn:ietf:params:oauth:grant-type:jwt-bearer",
                    "assertion": assertion,
                },
                headers={"Content-Type": "application/x-www-form-urlencoded"},
            )
        except httpx.HTTPError as e:
            raise UpstreamFailure(f"Google token request failed: {e}") from e
        if resp.status_code != 200:
            logger.warning(
                "Google token exchange failed: status=%s body=%s client_email=%s",
                resp.status_code,
                resp.text[:500],
                self._client_email,
            )
            raise UpstreamFailure("Google token exchange failed")
        data = resp.json()
        self._token = data["access_token"]
        self._expires_at = time.time() + int(data.get("expires_in", 3600))
        return self._token
