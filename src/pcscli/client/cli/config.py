"""Configuration utilities for the pcscli CLI.

This module provides shared configuration functions used across CLI commands.
The config file is JSON and holds the OAuth token, so it is written with
owner-only permissions.
"""

from __future__ import annotations

import json
import logging
import os
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Any

import click

if TYPE_CHECKING:
    from pcscli.client.api import PcsClient

logger = logging.getLogger(__name__)

DEFAULT_REMOTE_ROOT = "/"
DEFAULT_LOCAL_ROOT = "/data/backup/"


def get_config_dir() -> Path:
    """Get the configuration directory for pcscli.

    Returns:
        Path to ~/.pcscli or equivalent.
    """
    return Path.home() / ".pcscli"


def get_config_file(custom: str | Path | None = None) -> Path:
    """Get the path to the config file (``custom`` if given and non-blank)."""
    if custom is not None and str(custom).strip():
        return Path(str(custom).strip()).expanduser()
    return get_config_dir() / "config.json"


def load_config(path: Path | None = None) -> dict[str, Any]:
    """Load configuration from config file."""
    config_file = path or get_config_file()
    if config_file.exists():
        return dict(json.loads(config_file.read_text()))
    return {}


def save_config(config: dict[str, Any], path: Path | None = None) -> None:
    """Save configuration to config file, readable by the owner only."""
    config_file = path or get_config_file()
    config_file.parent.mkdir(parents=True, exist_ok=True)
    fd = os.open(config_file, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "w") as f:
        f.write(json.dumps(config, indent=2))
    os.chmod(config_file, 0o600)
    logger.debug(f"Saved config to {config_file}")


def get_remote_root(config: dict[str, Any]) -> str:
    """Default remote directory for uploads."""
    return str(config.get("remote_root") or DEFAULT_REMOTE_ROOT)


def get_local_root(config: dict[str, Any]) -> Path:
    """Default local directory for uploads."""
    return Path(config.get("local_root") or DEFAULT_LOCAL_ROOT).expanduser()


def open_client(ctx: click.Context) -> PcsClient:
    """Build a PcsClient from the stored token, refreshing it if needed.

    Exits with status 1 when no usable token is stored.
    """
    from pcscli.client.api import PcsClient
    from pcscli.client.auth import DeviceAuthClient, ensure_fresh_token
    from pcscli.core.config import ApiConfig, AppCredentials

    config_file: Path = ctx.obj["config_file"]
    config = load_config(config_file)
    if not config.get("access_token"):
        click.echo("Error: Not authorized. Run 'pcscli auth' first.", err=True)
        sys.exit(1)

    credentials = AppCredentials.from_env()
    api_config = ApiConfig()
    before = config.get("access_token")
    with DeviceAuthClient(credentials, api_config) as auth_client:
        if not ensure_fresh_token(config, auth_client):
            click.echo("Error: Access token expired. Run 'pcscli auth' again.", err=True)
            sys.exit(1)
    if config.get("access_token") != before:
        save_config(config, config_file)
        logger.info("Access token refreshed")

    client = PcsClient(config["access_token"], api_config, app_name=credentials.app_name)
    ctx.call_on_close(client.close)
    return client
