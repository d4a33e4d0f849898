"""
gcal-auth command-line interface.

Usage:
    gcal-auth login --config gcal-auth.yaml
    gcal-auth login --manual
    gcal-auth status
    gcal-auth generate-key
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from pathlib import Path

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from gcal_auth import __version__

app = typer.Typer(
    name="gcal-auth",
    help="Google Calendar OAuth2 + PKCE authentication",
    no_args_is_help=True,
    rich_markup_mode="rich",
)
console = Console()


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"[bold]gcal-auth[/bold] v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None,
        "--version",
        "-v",
        help="Show version",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """gcal-auth: delegated Google Calendar credentials, kept in memory."""


def _load_config(config: str):  # noqa: ANN202
    from pydantic import ValidationError

    from gcal_auth.config import GCalAuthConfig

    config_path = config if Path(config).exists() else None
    try:
        return GCalAuthConfig.load(config_path)
    except ValidationError as e:
        console.print(f"[red]Invalid configuration:[/red] {e.error_count()} error(s)")
        for error in e.errors():
            location = ".".join(str(part) for part in error["loc"])
            console.print(f"  {location}: {error['msg']}", markup=False)
        raise typer.Exit(1)


@app.command()
def login(
    config: str = typer.Option(
        "gcal-auth.yaml",
        "--config",
        "-c",
        help="Path to config file",
    ),
    manual: bool = typer.Option(
        False,
        "--manual",
        help="Paste the authorization code instead of using the local callback listener",
    ),
) -> None:
    """Run the interactive Google authorization flow."""
    from gcal_auth.auth.errors import GCalAuthError
    from gcal_auth.logging_config import configure_logging
    from gcal_auth.service import AuthService

    cfg = _load_config(config)
    if manual:
        cfg.auth.use_manual_auth = True
    configure_logging(cfg.logging.level, sanitize=cfg.logging.sanitize)

    console.print(Panel.fit(
        "[bold blue]gcal-auth[/bold blue]: Google Calendar authorization",
        subtitle=f"v{__version__}",
    ))

    async def _run() -> dict:
        async with AuthService.from_config(cfg) as auth:
            await auth.ensure_credential()
            return auth.token_info()

    try:
        info = asyncio.run(_run())
    except GCalAuthError as e:
        console.print(f"[red]Authorization failed:[/red] {e}")
        raise typer.Exit(1)
    except KeyboardInterrupt:
        console.print("[yellow]Authorization cancelled[/yellow]")
        raise typer.Exit(130)

    _display_token_info(info)


@app.command()
def status(
    config: str = typer.Option(
        "gcal-auth.yaml",
        "--config",
        "-c",
        help="Path to config file",
    ),
) -> None:
    """Validate configuration and show the callback listener settings."""
    from gcal_auth.auth.errors import ConfigurationError
    from gcal_auth.auth.token_store import load_encryption_key

    cfg = _load_config(config)

    table = Table(title="gcal-auth configuration")
    table.add_column("Setting", style="bold")
    table.add_column("Value")
    table.add_row("Client ID", cfg.google.client_id or "[red]missing[/red]")
    table.add_row("Client secret", "set" if cfg.google.client_secret else "[red]missing[/red]")
    table.add_row("Redirect URI", cfg.redirect_uri)
    table.add_row("Listener", f"{cfg.auth.host}:{cfg.auth.port}")
    table.add_row("Manual auth", "yes" if cfg.auth.use_manual_auth else "no")
    table.add_row("Scopes", "\n".join(cfg.google.scopes))
    table.add_row(
        "Encryption key",
        "configured" if cfg.auth.token_encryption_key else "generated per process",
    )
    console.print(table)

    try:
        cfg.validate_credentials()
        load_encryption_key(cfg.auth.token_encryption_key)
    except ConfigurationError as e:
        console.print(f"[red]✗[/red] {e}")
        raise typer.Exit(1)
    console.print("[green]✓[/green] Configuration is valid")


@app.command("generate-key")
def generate_key() -> None:
    """Print a new 256-bit key for TOKEN_ENCRYPTION_KEY."""
    from cryptography.hazmat.primitives.ciphers.aead import AESGCM

    console.print(AESGCM.generate_key(bit_length=256).hex())


def _display_token_info(info: dict) -> None:
    table = Table(title="Authorization")
    table.add_column("Item", style="bold")
    table.add_column("Value")
    table.add_row("Access token", "[green]present[/green]" if info["has_access_token"] else "[red]absent[/red]")
    table.add_row("Refresh token", "[green]present[/green]" if info["has_refresh_token"] else "[yellow]absent[/yellow]")
    expires_at = info.get("expires_at")
    if expires_at:
        table.add_row(
            "Expires",
            datetime.fromtimestamp(expires_at, tz=timezone.utc).isoformat(timespec="seconds"),
        )
    console.print(table)
    console.print(
        "[dim]Credentials are held in memory only and are discarded when this process exits.[/dim]"
    )


if __name__ == "__main__":
    app()
