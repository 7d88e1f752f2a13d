"""Configuration CLI commands."""

from pathlib import Path

import click
import yaml


@click.group()
def config() -> None:
    """Manage AuthGate configuration."""


@config.command("init")
@click.option(
    "--path",
    type=click.Path(dir_okay=False, path_type=Path),  # type: ignore[type-var]
    default=None,
    help="Where to write the file (default: ~/.authgate/config.yaml)",
)
@click.option("--force", is_flag=True, help="Overwrite an existing file.")
def init_config(path: Path | None, force: bool) -> None:
    """Write a default configuration file."""
    from authgate.core.config import DEFAULT_CONFIG_FILE, get_default_config_yaml

    target = path or DEFAULT_CONFIG_FILE
    if target.exists() and not force:
        raise click.ClickException(f"{target} already exists (use --force to overwrite)")

    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(get_default_config_yaml())
    target.chmod(0o600)
    click.echo(f"Configuration written to: {target}")
    click.echo("")
    click.echo("Next steps:")
    click.echo("  1. Set client_id and client_secret (or AUTHGATE_CLIENT_ID / AUTHGATE_CLIENT_SECRET)")
    click.echo("  2. Run 'authgate config check'")


@config.command("show")
@click.option(
    "--path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),  # type: ignore[type-var]
    default=None,
    help="Configuration file to read.",
)
def show_config(path: Path | None) -> None:
    """Print the effective configuration with secrets redacted."""
    from authgate.core.config import load_config
    from authgate.core.errors import ConfigurationError

    try:
        app_config = load_config(path)
    except ConfigurationError as e:
        raise click.ClickException(e.message) from None

    source = app_config.config_path or "(defaults and environment)"
    click.echo(f"# Source: {source}")
    click.echo(yaml.safe_dump(app_config.to_dict(include_secrets=False), default_flow_style=False), nl=False)


@config.command("check")
@click.option(
    "--path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),  # type: ignore[type-var]
    default=None,
    help="Configuration file to read.",
)
def check_config(path: Path | None) -> None:
    """Validate the configuration the server would start with."""
    from authgate.core.config import load_config
    from authgate.core.errors import ConfigurationError

    try:
        app_config = load_config(path)
        app_config.validate()
    except ConfigurationError as e:
        click.echo(f"Configuration invalid: {e.message}", err=True)
        raise SystemExit(1) from None

    click.echo("Configuration OK")
    click.echo(f"  Issuer:       {app_config.oidc.issuer_url}")
    click.echo(f"  Client ID:    {app_config.oidc.client_id}")
    click.echo(f"  Callback:     {app_config.oidc.callback_path}")
    click.echo(f"  ID token alg: {app_config.oidc.id_token_signed_response_alg}")
