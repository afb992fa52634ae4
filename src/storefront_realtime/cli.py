import json

import click

from . import __version__


def get_version():
    return __version__


@click.group()
def cli():
    pass


@cli.command()
@click.option("--format", default="text", type=click.Choice(["text", "json"]))
def version(format):
    if format == "json":
        click.echo(json.dumps({"version": get_version()}))
    else:
        click.echo(f"v{get_version()}")


@cli.command()
@click.option("--host", default=None, help="Bind address (defaults to HOST)")
@click.option("--port", default=None, type=int, help="Bind port (defaults to PORT)")
@click.option("--reload/--no-reload", default=None)
def serve(host, port, reload):
    from .server.main import start_server

    start_server(host=host, port=port, reload=reload)


@cli.command("issue-token")
@click.argument("user_id")
@click.option("--role", default="user", type=click.Choice(["user", "admin"]))
@click.option("--expires-minutes", default=None, type=int)
def issue_token(user_id, role, expires_minutes):
    """Mint an access token for local testing against the realtime channel."""
    from datetime import timedelta

    from .auth import JWTHandler

    handler = JWTHandler()
    delta = timedelta(minutes=expires_minutes) if expires_minutes else None
    click.echo(handler.create_access_token({"sub": user_id, "role": role}, expires_delta=delta))


if __name__ == "__main__":
    cli()
