from __future__ import annotations

import logging
import threading
import time

import httpx

# Refresh this many seconds before the token actually expires
_EXPIRY_MARGIN_SECONDS = 300


class GoogleAuthError(RuntimeError):
    pass


class GoogleTokenProvider:
    """Exchanges a long-lived OAuth refresh token for short-lived access tokens.

    Tokens are cached until shortly before they expire. Shared by the Sheets,
    Calendar and Gmail adapters.
    """

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        refresh_token: str,
        token_url: str = "https://oauth2.googleapis.com/token",
        client: httpx.Client | None = None,
    ) -> None:
        if not (client_id and client_secret and refresh_token):
            raise ValueError("GOOGLE_CLIENT_ID, GOOGLE_CLIENT_SECRET and GOOGLE_REFRESH_TOKEN are required")
        self._client_id = client_id
        self._client_secret = client_secret
        self._refresh_token = refresh_token
        self._token_url = token_url
        self._client = client or httpx.Client(timeout=10.0)
        self._access_token: str | None = None
        self._expires_at = 0.0
        self._lock = threading.Lock()
        self._logger = logging.getLogger(__name__)

    def __call__(self) -> str:
        return self.get_token()

    def get_token(self) -> str:
        with self._lock:
            if self._access_token and time.monotonic() < self._expires_at - _EXPIRY_MARGIN_SECONDS:
                return self._access_token
            self._refresh()
            return self._access_token

    def _refresh(self) -> None:
        try:
            response = self._client.post(
                self._token_url,
                data={
                    "client_id": self._client_id,
                    "client_secret": self._client_secret,
                    "refresh_token": self._refresh_token,
                    "grant_type": "refresh_token",
                },
            )
        except httpx.HTTPError as e:
            raise GoogleAuthError(f"Token refresh request failed: {e}") from e

        if response.status_code != 200:
            self._logger.error("Google token refresh failed", extra={"error": response.text[:200]})
            raise GoogleAuthError(f"Token refresh failed with status {response.status_code}")

        tokens = response.json()
        access_token = tokens.get("access_token")
        if not access_token:
            raise GoogleAuthError("No access token in refresh response")

        self._access_token = access_token
        self._expires_at = time.monotonic() + float(tokens.get("expires_in", 3600))
        self._logger.info("Google access token refreshed")
