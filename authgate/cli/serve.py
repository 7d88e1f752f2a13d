"""Server CLI commands."""

import click


@click.command()
@click.option(
    "--host",
    "-h",
    default=None,
    help="Host to bind to (default: from config or 127.0.0.1)",
)
@click.option(
    "--port",
    "-p",
    type=int,
    default=None,
    help="Port to bind to (default: from config or 3000)",
)
@click.option(
    "--debug",
    is_flag=True,
    help="Enable debug mode",
)
def serve(host: str | None, port: int | None, debug: bool) -> None:
    """Start the AuthGate web server.

    Client credentials must be configured before the server starts; a
    missing client_id or client_secret aborts startup.

    Examples:

        # Start with settings from ~/.authgate/config.yaml and AUTHGATE_* variables
        authgate serve

        # Start on custom port
        authgate serve --port 8080
    """
    from authgate.app import run_server
    from authgate.core.config import load_config
    from authgate.core.errors import ConfigurationError

    try:
        config = load_config()
        if debug:
            config.server.debug = True
        config.validate()
    except ConfigurationError as e:
        raise click.ClickException(e.message) from None

    run_server(app_config=config, host=host, port=port)
