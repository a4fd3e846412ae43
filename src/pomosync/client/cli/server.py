"""Server administration commands for the pomosync CLI.

Commands:
- server run: Start the relay/API server
- server create-token: Issue an access token for a user
"""

from __future__ import annotations

import os

import click


@click.group()
def server() -> None:
    """Server management commands.

    These commands are for administrators running a pomosync server.
    """


@server.command("run")
@click.option("--host", default="127.0.0.1", show_default=True, help="Interface to bind.")
@click.option("--port", default=8000, show_default=True, type=int, help="Port to listen on.")
@click.option(
    "--db-path",
    type=click.Path(),
    default=None,
    help="Path to database file (default: POMOSYNC_DB_PATH or ./pomosync.db).",
)
@click.option(
    "--log-path",
    type=click.Path(),
    default=None,
    help="Path to log file (default: POMOSYNC_LOG_PATH or ./pomosync-server.log).",
)
def run_server(host: str, port: int, db_path: str | None, log_path: str | None) -> None:
    """Start the pomosync server."""
    import uvicorn

    if db_path:
        os.environ["POMOSYNC_DB_PATH"] = db_path
    if log_path:
        os.environ["POMOSYNC_LOG_PATH"] = log_path

    uvicorn.run(
        "pomosync.server.app:app_factory",
        factory=True,
        host=host,
        port=port,
    )


@server.command("create-token")
@click.argument("user")
@click.option("--name", default="", help="Label for the token (e.g. device name).")
@click.option(
    "--expires-days",
    type=int,
    default=None,
    help="Expire the token after N days (default: never).",
)
@click.option(
    "--db-path",
    type=click.Path(),
    default=None,
    help="Path to database file (default: POMOSYNC_DB_PATH or ./pomosync.db).",
)
def create_token_cmd(
    user: str,
    name: str,
    expires_days: int | None,
    db_path: str | None,
) -> None:
    """Issue an access token for USER (created if needed).

    All devices configured with tokens of the same user share one timer.

    Examples:

        pomosync server create-token alice --name laptop

        pomosync server create-token alice --expires-days 90
    """
    from datetime import timedelta
    from pathlib import Path

    from pomosync.server.database import Database

    resolved_db_path = Path(db_path or os.environ.get("POMOSYNC_DB_PATH", "pomosync.db"))
    expires_in = timedelta(days=expires_days) if expires_days else None

    db = Database(resolved_db_path)
    try:
        db_user = db.get_or_create_user(user)
        raw_token, _ = db.create_token(db_user.id, name=name, expires_in=expires_in)
    finally:
        db.close()

    click.echo(f"Token for {user}:")
    click.echo(raw_token)
    click.echo("\nConfigure a device with:")
    click.echo(f"  pomosync configure --server <URL> --token {raw_token}")
