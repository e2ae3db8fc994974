"""Tests for core configuration classes."""

from __future__ import annotations

import pytest

from pcscli.core.config import ApiConfig, AppCredentials


class TestApiConfig:
    """Tests for ApiConfig class."""

    def test_defaults(self) -> None:
        """Should default to the public service hosts."""
        config = ApiConfig()
        assert config.api_url == "https://pan.baidu.com"
        assert config.file_server_url == "https://d.pcs.baidu.com"
        assert config.oauth_url == "https://openapi.baidu.com"
        assert config.locate_app_id == "250528"
        assert config.user_agent == "pan.baidu.com"
        assert config.timeout == 30.0
        assert config.verify_ssl is True

    def test_init_custom_timeout(self) -> None:
        """Should accept custom timeout."""
        config = ApiConfig(timeout=60.0)
        assert config.timeout == 60.0

    def test_url_trailing_slash_removed(self) -> None:
        """Should strip trailing slashes from every host."""
        config = ApiConfig(
            api_url="http://api.test/",
            file_server_url="http://files.test//",
            oauth_url="http://oauth.test/",
        )
        assert config.api_url == "http://api.test"
        assert config.file_server_url == "http://files.test"
        assert config.oauth_url == "http://oauth.test"


class TestAppCredentials:
    """Tests for AppCredentials class."""

    def test_from_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Should read the three PCS_APP_* variables."""
        monkeypatch.setenv("PCS_APP_KEY", "key")
        monkeypatch.setenv("PCS_APP_SECRET", "secret")
        monkeypatch.setenv("PCS_APP_NAME", "mybackup")

        credentials = AppCredentials.from_env()

        assert credentials == AppCredentials("key", "secret", "mybackup")

    def test_from_env_missing(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Missing variables should give empty strings."""
        for name in ("PCS_APP_KEY", "PCS_APP_SECRET", "PCS_APP_NAME"):
            monkeypatch.delenv(name, raising=False)

        credentials = AppCredentials.from_env()

        assert credentials.app_key == ""
        assert credentials.app_secret == ""

    def test_apps_root(self) -> None:
        """Should place the application directory under /apps."""
        assert AppCredentials("k", "s", "mybackup").apps_root == "/apps/mybackup"
