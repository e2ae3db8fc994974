"""Device-code OAuth for the netdisk open platform.

This module provides:
- DeviceTicket: Device code and user code for browser verification
- AccessToken: OAuth token with its expiry
- DeviceAuthClient: Requests tickets, polls for tokens, refreshes tokens
- ensure_fresh_token: Refresh the token stored in the CLI config if needed

Flow:
1. get_device_ticket() returns a user code and a verification URL
2. The user opens the URL and enters the code
3. wait_for_authorization() polls until the token is granted
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import httpx

from pcscli.client.errors import ClientError, NetworkError, ServerError
from pcscli.core.config import ApiConfig, AppCredentials

logger = logging.getLogger(__name__)

DEVICE_CODE_PATH = "/oauth/2.0/device/code"
TOKEN_PATH = "/oauth/2.0/token"
SCOPE = "basic,netdisk"

# Refresh when less than this remains of the token lifetime
REFRESH_MARGIN = 7 * 24 * 3600  # seconds
EXPIRY_MARGIN = 600  # seconds


class AuthorizationPendingError(ServerError):
    """The user has not confirmed the device code yet."""


@dataclass
class DeviceTicket:
    """One-time device authorization ticket."""

    device_code: str
    user_code: str
    verification_url: str
    expires_in: int
    interval: int
    qrcode_url: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DeviceTicket:
        """Create from API response dictionary."""
        return cls(
            device_code=data["device_code"],
            user_code=data["user_code"],
            verification_url=data["verification_url"],
            expires_in=int(data.get("expires_in", 300)),
            interval=int(data.get("interval", 5)),
            qrcode_url=data.get("qrcode_url", ""),
        )


@dataclass
class AccessToken:
    """OAuth access token."""

    access_token: str
    refresh_token: str
    expires_at: int
    scope: str = SCOPE

    @classmethod
    def from_dict(cls, data: dict[str, Any], now: float | None = None) -> AccessToken:
        """Create from a token response (expires_in is relative to ``now``)."""
        issued = int(time.time() if now is None else now)
        return cls(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token", ""),
            expires_at=issued + int(data.get("expires_in", 0)),
            scope=data.get("scope", SCOPE),
        )

    def needs_refresh(self, now: float | None = None) -> bool:
        """True when less than 7 days of validity remain."""
        now = time.time() if now is None else now
        return now + REFRESH_MARGIN > self.expires_at

    def is_expired(self, now: float | None = None) -> bool:
        """True when the token expires within 10 minutes."""
        now = time.time() if now is None else now
        return now + EXPIRY_MARGIN > self.expires_at


class DeviceAuthClient:
    """Client for the device-code OAuth endpoints."""

    def __init__(
        self,
        credentials: AppCredentials,
        config: ApiConfig | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            credentials: Application key, secret and name.
            config: API hosts and connection settings.
        """
        self._credentials = credentials
        self._config = config or ApiConfig()
        self._client = httpx.Client(
            timeout=self._config.timeout,
            verify=self._config.verify_ssl,
            headers={"User-Agent": self._config.user_agent},
        )

    def close(self) -> None:
        """Close the HTTP client."""
        self._client.close()

    def __enter__(self) -> DeviceAuthClient:
        """Context manager entry."""
        return self

    def __exit__(self, *args: object) -> None:
        """Context manager exit."""
        self.close()

    def _get(self, path: str, params: dict[str, Any]) -> dict[str, Any]:
        url = f"{self._config.oauth_url}{path}"
        logger.debug(f"GET {url} grant={params.get('grant_type', params.get('response_type'))}")
        try:
            response = self._client.get(url, params=params)
        except httpx.RequestError as e:
            raise NetworkError(str(e) or type(e).__name__) from e

        try:
            data = response.json()
        except ValueError:
            raise ServerError("", raw=response.text or f"HTTP {response.status_code}") from None

        error = data.get("error")
        if error == "authorization_pending":
            raise AuthorizationPendingError(error)
        if error:
            description = data.get("error_description", "")
            raise ServerError(f"{error}: {description}" if description else error, raw=response.text)
        if response.status_code >= 400:
            raise ServerError("", raw=response.text)
        return data

    def get_device_ticket(self) -> DeviceTicket:
        """Request a device code and a user code."""
        data = self._get(
            DEVICE_CODE_PATH,
            {
                "response_type": "device_code",
                "client_id": self._credentials.app_key,
                "scope": SCOPE,
            },
        )
        return DeviceTicket.from_dict(data)

    def poll_access_token(self, device_code: str) -> AccessToken:
        """Exchange a device code for a token, once.

        Raises:
            AuthorizationPendingError: If the user has not confirmed yet.
            ServerError: If the grant is refused (e.g. expired code).
        """
        data = self._get(
            TOKEN_PATH,
            {
                "grant_type": "device_token",
                "code": device_code,
                "client_id": self._credentials.app_key,
                "client_secret": self._credentials.app_secret,
            },
        )
        return AccessToken.from_dict(data)

    def refresh(self, refresh_token: str) -> AccessToken:
        """Get a new token from a refresh token."""
        data = self._get(
            TOKEN_PATH,
            {
                "grant_type": "refresh_token",
                "refresh_token": refresh_token,
                "client_id": self._credentials.app_key,
                "client_secret": self._credentials.app_secret,
            },
        )
        return AccessToken.from_dict(data)

    def wait_for_authorization(
        self,
        ticket: DeviceTicket,
        sleep: Callable[[float], None] = time.sleep,
    ) -> AccessToken:
        """Poll until the user confirms the device code.

        Sleeps ``interval + 1`` seconds before every poll.

        Raises:
            ClientError: If the ticket expires before confirmation.
            ServerError: If the server refuses the grant.
        """
        delay = abs(ticket.interval) + 1
        waited = 0
        while True:
            sleep(delay)
            waited += delay
            try:
                token = self.poll_access_token(ticket.device_code)
            except AuthorizationPendingError:
                if ticket.expires_in and waited >= ticket.expires_in:
                    raise ClientError(
                        f"Device code expired after {ticket.expires_in}s without confirmation"
                    ) from None
                logger.debug(f"Authorization pending after {waited}s")
                continue
            logger.info("Device authorization granted")
            return token


def ensure_fresh_token(
    config_data: dict[str, Any],
    auth_client: DeviceAuthClient,
    now: float | None = None,
) -> bool:
    """Refresh the token held in ``config_data`` when it is close to expiry.

    ``config_data`` is updated in place on success.

    Returns:
        True if the config holds a usable token afterwards, False if the
        user has to authorize again.
    """
    if not config_data.get("access_token"):
        return False

    token = AccessToken(
        access_token=config_data["access_token"],
        refresh_token=config_data.get("refresh_token", ""),
        expires_at=int(config_data.get("expires_at", 0)),
    )
    if not token.needs_refresh(now):
        return True
    if not token.refresh_token:
        return not token.is_expired(now)

    logger.info("Access token expires soon, refreshing")
    try:
        fresh = auth_client.refresh(token.refresh_token)
    except (NetworkError, ServerError) as e:
        logger.error(f"Token refresh failed: {e}")
        return not token.is_expired(now)

    config_data["access_token"] = fresh.access_token
    config_data["refresh_token"] = fresh.refresh_token
    config_data["expires_at"] = fresh.expires_at
    return True
