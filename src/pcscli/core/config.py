"""Shared configuration classes for pcscli.

This module defines the explicit engine configuration. Every host and fixed
identifier used on the wire lives here, so callers can point the client at
another deployment without touching the transfer code.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

DEFAULT_API_URL = "https://pan.baidu.com"
DEFAULT_FILE_SERVER_URL = "https://d.pcs.baidu.com"
DEFAULT_OAUTH_URL = "https://openapi.baidu.com"
DEFAULT_LOCATE_APP_ID = "250528"
DEFAULT_USER_AGENT = "pan.baidu.com"


@dataclass
class ApiConfig:
    """Configuration for talking to the netdisk API.

    Attributes:
        api_url: Host for metadata calls (list, precreate, create, ...).
        file_server_url: Host for byte transfers and the fallback upload node.
        oauth_url: Host for device-code authorization.
        locate_app_id: Application id the locateupload endpoint expects.
        user_agent: User-Agent header; the service rejects unknown agents
            on download links.
        timeout: Request timeout in seconds.
        verify_ssl: Whether to verify TLS certificates (default True).
    """

    api_url: str = DEFAULT_API_URL
    file_server_url: str = DEFAULT_FILE_SERVER_URL
    oauth_url: str = DEFAULT_OAUTH_URL
    locate_app_id: str = DEFAULT_LOCATE_APP_ID
    user_agent: str = DEFAULT_USER_AGENT
    timeout: float = 30.0
    verify_ssl: bool = True

    def __post_init__(self) -> None:
        """Normalize URLs."""
        self.api_url = self.api_url.rstrip("/")
        self.file_server_url = self.file_server_url.rstrip("/")
        self.oauth_url = self.oauth_url.rstrip("/")


@dataclass(frozen=True)
class AppCredentials:
    """Keys of the registered netdisk application.

    Attributes:
        app_key: AppKey from the developer console.
        app_secret: SecretKey from the developer console.
        app_name: Application name; single-shot uploads are confined to
            ``/apps/<app_name>/``.
    """

    app_key: str
    app_secret: str
    app_name: str

    @classmethod
    def from_env(cls) -> AppCredentials:
        """Read credentials from PCS_APP_KEY, PCS_APP_SECRET and PCS_APP_NAME."""
        return cls(
            app_key=os.environ.get("PCS_APP_KEY", ""),
            app_secret=os.environ.get("PCS_APP_SECRET", ""),
            app_name=os.environ.get("PCS_APP_NAME", ""),
        )

    @property
    def apps_root(self) -> str:
        """Remote directory the application may write single-shot uploads to."""
        return f"/apps/{self.app_name}"
