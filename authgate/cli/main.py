"""CLI entry point for AuthGate."""

import json

import click

from authgate import __version__
from authgate.cli import config as config_commands
from authgate.cli import serve as serve_commands


@click.group()
@click.version_option(version=__version__, prog_name="authgate")
@click.pass_context
def cli(ctx: click.Context) -> None:
    """AuthGate - OIDC Authorization Code + PKCE Login Gateway."""
    ctx.ensure_object(dict)


@cli.command()
@click.argument("issuer", required=False)
@click.option("--raw", is_flag=True, help="Also print the full discovery document.")
def discover(issuer: str | None, raw: bool) -> None:
    """Fetch and print an identity provider's discovery metadata.

    ISSUER defaults to the configured issuer URL.
    """
    from authgate.core.config import load_config
    from authgate.core.errors import AuthGateError
    from authgate.core.oidc.discovery import ProviderConfig

    try:
        settings = load_config().oidc
        issuer_url = issuer or settings.issuer_url
        if not issuer_url:
            raise click.UsageError("No issuer given and none configured (AUTHGATE_ISSUER_URL)")
        metadata = ProviderConfig(settings).discover(issuer_url)
    except AuthGateError as e:
        raise click.ClickException(e.message) from None

    click.echo(f"Issuer:                 {metadata.issuer}")
    click.echo(f"Authorization endpoint: {metadata.authorization_endpoint}")
    click.echo(f"Token endpoint:         {metadata.token_endpoint}")
    click.echo(f"JWKS URI:               {metadata.jwks_uri or '(none)'}")
    algs = ", ".join(metadata.id_token_signing_alg_values_supported) or "(not advertised)"
    click.echo(f"ID token algorithms:    {algs}")
    methods = ", ".join(metadata.code_challenge_methods_supported) or "(not advertised)"
    click.echo(f"PKCE methods:           {methods}")
    if raw:
        click.echo(json.dumps(metadata.raw_config, indent=2))


cli.add_command(config_commands.config)
cli.add_command(serve_commands.serve)
