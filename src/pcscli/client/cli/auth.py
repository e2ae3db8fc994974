"""Authorization command for the pcscli CLI.

Commands:
- auth (alias login): Authorize this CLI with device-code OAuth
"""

from __future__ import annotations

import logging
import sys

import click

from pcscli.client.cli.config import load_config, save_config

logger = logging.getLogger(__name__)


@click.command()
@click.option("--force", is_flag=True, help="Authorize again even if the stored token works.")
@click.pass_context
def auth(ctx: click.Context, force: bool) -> None:
    """Authorize pcscli to access your netdisk.

    Prints a verification URL and a user code; open the URL in a browser,
    enter the code, and the token is stored in the config file.
    """
    from pcscli.client.api import PcsClient
    from pcscli.client.auth import AccessToken, DeviceAuthClient
    from pcscli.client.errors import PcsError
    from pcscli.core.config import ApiConfig, AppCredentials

    config_file = ctx.obj["config_file"]
    config = load_config(config_file)
    api_config = ApiConfig()

    if config.get("access_token") and not force:
        token = AccessToken(
            access_token=config["access_token"],
            refresh_token=config.get("refresh_token", ""),
            expires_at=int(config.get("expires_at", 0)),
        )
        if not token.needs_refresh():
            try:
                with PcsClient(token.access_token, api_config) as client:
                    info = client.get_user_info()
            except PcsError as e:
                logger.info(f"Stored token rejected: {e}")
            else:
                click.echo(
                    f"Already authorized as {info.baidu_name} {info.netdisk_name} "
                    f"({info.vip_label}). Use --config to manage another account."
                )
                return

    credentials = AppCredentials.from_env()
    if not credentials.app_key or not credentials.app_secret:
        click.echo(
            "Error: PCS_APP_KEY and PCS_APP_SECRET must be set to authorize.", err=True
        )
        sys.exit(1)

    try:
        with DeviceAuthClient(credentials, api_config) as auth_client:
            ticket = auth_client.get_device_ticket()
            click.echo(f"Open {ticket.verification_url} in a browser")
            click.echo(f"and enter the code: {click.style(ticket.user_code, bold=True)}")
            click.echo("Waiting for confirmation...")
            token = auth_client.wait_for_authorization(ticket)
    except PcsError as e:
        click.echo(f"Error: Authorization failed: {e}", err=True)
        sys.exit(1)

    config["access_token"] = token.access_token
    config["refresh_token"] = token.refresh_token
    config["expires_at"] = token.expires_at
    config.setdefault("remote_root", "/")
    save_config(config, config_file)
    click.echo(click.style("Authorized.", fg="green") + f" Token saved to {config_file}")
