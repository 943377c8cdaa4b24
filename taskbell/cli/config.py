"""
Config CLI commands.

Handles the client configuration: server address, realtime settings,
push service, display language and the logged-in user's session.
"""

from typing import Optional

import click

from taskbell.config import (
    ClientConfig,
    ConfigValidationError,
    URL_PATTERN,
    VALID_LANGUAGES,
    VALID_SCHEMES,
)


def _restart_note() -> None:
    click.echo()
    click.echo(
        click.style("Note: ", fg="cyan")
        + "Restart the client for changes to take effect."
    )


def _mask(token: str) -> str:
    if not token:
        return "(not set)"
    if len(token) <= 8:
        return "*" * len(token)
    return f"{token[:4]}...{token[-4:]}"


# ============================================================================
# Config Command Group
# ============================================================================


@click.group()
@click.pass_context
def config(ctx: click.Context) -> None:
    """
    Manage client configuration.

    Settings are stored in client-config.yaml; TASKBELL_* environment
    variables take precedence over the file.
    """
    ctx.ensure_object(dict)


@config.command("show")
def show() -> None:
    """Display the effective configuration."""
    client_config = ClientConfig()

    click.echo(f"Config file:   {client_config.config_path}")
    click.echo(f"Server:        {client_config.root_url}")
    click.echo(f"Realtime:      {client_config.realtime_url}")
    click.echo(f"Push service:  {client_config.push_service_url or '(disabled)'}")
    click.echo(f"Data dir:      {client_config.data_dir}")
    click.echo(f"Log level:     {client_config.log_level}")
    click.echo(f"Language:      {client_config.language}")
    click.echo()
    user = client_config.user_id if client_config.user_id is not None else "(not set)"
    click.echo(f"User id:       {user}")
    click.echo(f"API token:     {_mask(client_config.api_token)}")


@config.command("set-session")
@click.argument("user_id", type=int)
@click.argument("api_token")
def set_session(user_id: int, api_token: str) -> None:
    """
    Store the logged-in user's session.

    Example:

        taskbell config set-session 42 1|aBcDeF...
    """
    client_config = ClientConfig()
    client_config.update_session(user_id, api_token)
    click.echo(click.style(f"Session stored for user {user_id}.", fg="green"))
    _restart_note()


@config.command("clear-session")
def clear_session() -> None:
    """Forget the stored session (log out)."""
    client_config = ClientConfig()
    client_config.clear_session()
    client_config.save()
    click.echo(click.style("Session cleared.", fg="green"))
    _restart_note()


@config.command("set-server")
@click.argument("url")
@click.pass_context
def set_server(ctx: click.Context, url: str) -> None:
    """
    Set the backend URL.

    Example:

        taskbell config set-server https://tasks.example.sch.id
    """
    if not URL_PATTERN.match(url):
        click.echo(click.style("Error: ", fg="red") + f"Invalid URL: {url}")
        ctx.exit(1)

    client_config = ClientConfig()
    client_config.server_url = url.rstrip("/")
    client_config.save()
    click.echo(click.style("Server updated: ", fg="green") + client_config.root_url)
    _restart_note()


@config.command("set-realtime")
@click.option("--key", "app_key", help="Reverb application key")
@click.option("--host", help="Reverb host")
@click.option("--port", type=int, help="Reverb port")
@click.option("--scheme", type=click.Choice(sorted(VALID_SCHEMES)), help="http or https")
@click.pass_context
def set_realtime(
    ctx: click.Context,
    app_key: Optional[str],
    host: Optional[str],
    port: Optional[int],
    scheme: Optional[str],
) -> None:
    """
    Set the Reverb WebSocket settings.

    Example:

        taskbell config set-realtime --host ws.example.sch.id --port 443 --scheme https
    """
    client_config = ClientConfig()
    if app_key is not None:
        client_config.reverb_app_key = app_key
    if host is not None:
        client_config.reverb_host = host
    if port is not None:
        client_config.reverb_port = port
    if scheme is not None:
        client_config.reverb_scheme = scheme

    try:
        client_config.validate()
    except ConfigValidationError as e:
        click.echo(click.style("Error: ", fg="red") + str(e))
        ctx.exit(1)

    client_config.save()
    click.echo(click.style("Realtime updated: ", fg="green") + client_config.realtime_url)
    _restart_note()


@config.command("set-push-service")
@click.argument("url", required=False)
@click.pass_context
def set_push_service(ctx: click.Context, url: Optional[str]) -> None:
    """
    Set the push service URL (omit URL to disable push).

    Example:

        taskbell config set-push-service https://push.example.sch.id/send
    """
    if url and not URL_PATTERN.match(url):
        click.echo(click.style("Error: ", fg="red") + f"Invalid URL: {url}")
        ctx.exit(1)

    client_config = ClientConfig()
    client_config.push_service_url = url or ""
    client_config.save()
    if url:
        click.echo(click.style("Push service set: ", fg="green") + url)
    else:
        click.echo(click.style("Push notifications disabled.", fg="yellow"))


@config.command("set-language")
@click.argument("language", type=click.Choice(sorted(VALID_LANGUAGES)))
def set_language(language: str) -> None:
    """
    Set the language of relative notification times.

    Example:

        taskbell config set-language id
    """
    client_config = ClientConfig()
    client_config.language = language
    client_config.save()
    click.echo(click.style("Language set: ", fg="green") + language)
