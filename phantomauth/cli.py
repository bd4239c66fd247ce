"""
PhantomAuth CLI - key generation, config checks and the API server.
"""

import base64
import json
import logging
import secrets
import time
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.table import Table

from .config import Config
from .context import RequestSignals, derive_context
from .errors import ConfigurationError

console = Console()


def setup_logging(verbose: bool = False):
    """Set up logging configuration."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[logging.StreamHandler()]
    )


def load_config(config_path: Optional[str]) -> Config:
    """Load YAML config (if given) and overlay the environment."""
    return Config.from_env(Path(config_path) if config_path else None)


@click.group()
@click.option('-v', '--verbose', is_flag=True, help='Enable verbose output')
@click.pass_context
def main(ctx, verbose):
    """PhantomAuth - passwordless magic links and device tokens"""
    ctx.ensure_object(dict)
    ctx.obj['verbose'] = verbose
    setup_logging(verbose)


@main.command()
@click.option('--env', 'as_env', is_flag=True, help='Print as PHANTOMAUTH_* exports')
def keygen(as_env: bool):
    """Generate a signing secret and an AES-256 encryption key."""
    signing_secret = secrets.token_urlsafe(48)
    encryption_key = base64.b64encode(secrets.token_bytes(32)).decode('ascii')

    if as_env:
        click.echo(f"export PHANTOMAUTH_SIGNING_SECRET={signing_secret}")
        click.echo(f"export PHANTOMAUTH_ENCRYPTION_KEY={encryption_key}")
        return

    table = Table(show_header=False, box=None)
    table.add_column("Key", style="dim")
    table.add_column("Value", style="cyan")
    table.add_row("signing_secret", signing_secret)
    table.add_row("encryption_key", encryption_key)
    console.print(table)
    console.print("\n[yellow]Store these in your secret manager; they are not saved anywhere.[/yellow]")


@main.command('check-config')
@click.option('--config', '-c', 'config_path', type=click.Path(exists=True), help='YAML config file')
def check_config(config_path: Optional[str]):
    """Validate configuration and show effective settings."""
    try:
        config = load_config(config_path)
        config.validate()
    except ConfigurationError as e:
        console.print("[bold red]✗ Configuration invalid[/bold red]")
        for problem in e.details.get("problems", [e.message]):
            console.print(f"   • {problem}")
        raise SystemExit(1)

    console.print("[bold green]✓ Configuration valid[/bold green]\n")

    table = Table(show_header=False, box=None)
    table.add_column("Key", style="dim")
    table.add_column("Value")
    table.add_row("Link expiry", f"{config.link_expiry_seconds}s")
    table.add_row("Max redeem attempts", str(config.max_redeem_attempts))
    table.add_row("Device token expiry", f"{config.device_token_expiry_days} days")
    table.add_row("Geo match radius", f"{config.geo_match_radius_km} km")
    console.print(table)

    limits = Table(title="Rate limits")
    limits.add_column("Scope", style="cyan")
    limits.add_column("Points", justify="right")
    limits.add_column("Window", justify="right")
    limits.add_column("Block", justify="right")
    for name, rule in sorted(config.rate_limits.items()):
        limits.add_row(name, str(rule.points), f"{rule.window_seconds}s", f"{rule.block_seconds}s")
    console.print(limits)


@main.command()
@click.option('--ip', help='Client IP address')
@click.option('--user-agent', '-u', help='User-Agent header')
@click.option('--fingerprint', '-f', help='Device fingerprint header')
@click.option('--country', help='Country code')
@click.option('--city', help='City name')
@click.option('--lat', type=float, help='Latitude')
@click.option('--long', 'long_', type=float, help='Longitude')
def context(ip, user_agent, fingerprint, country, city, lat, long_):
    """Derive and print the context for a set of request signals."""
    signals = RequestSignals(
        ip=ip,
        user_agent=user_agent,
        fingerprint=fingerprint,
        country=country,
        city=city,
        latitude=lat,
        longitude=long_,
    )
    derived = derive_context(signals, time.time())
    click.echo(json.dumps(derived.to_dict(), indent=2))


@main.command()
@click.option('--config', '-c', 'config_path', type=click.Path(exists=True), help='YAML config file')
@click.option('--host', '-h', default=None, help='Host to bind to')
@click.option('--port', '-p', default=None, type=int, help='Port to bind to')
def serve(config_path: Optional[str], host: Optional[str], port: Optional[int]):
    """Start the API server (in-memory store)."""
    from .api.server import run_server

    config = load_config(config_path)
    try:
        config.validate()
    except ConfigurationError as e:
        console.print(f"[bold red]✗ {e.message}[/bold red]")
        raise SystemExit(1)

    host = host or config.server.host
    port = port or config.server.port
    console.print(f"\n[bold blue]PhantomAuth[/bold blue] listening on http://{host}:{port}\n")
    run_server(host=host, port=port, config=config)


if __name__ == '__main__':
    main()
