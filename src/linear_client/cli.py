"""Command-line diagnostics for the Linear client."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Optional

import anyio
import typer
from rich import print_json

from .client_factory import create_session
from .credentials import FileCredentialStore, utcnow
from .errors import AmbiguousIdentifierError, LinearError, SessionExpiredError
from .logging_utils import configure_logging
from .resolver import IdentifierKind
from .settings import LinearAPIConfig

app = typer.Typer(help="Resolve identifiers and run GraphQL operations against Linear.")

_state: dict[str, Any] = {}


@app.callback()
def main(
    token: Optional[str] = typer.Option(
        None,
        "--token",
        envvar="LINEAR_API_ACCESS_TOKEN",
        help="Linear API key or OAuth access token.",
    ),
    credentials_path: Optional[Path] = typer.Option(
        None,
        "--credentials",
        envvar="LINEAR_API_CREDENTIALS_PATH",
        dir_okay=False,
        resolve_path=True,
        help="JSON credential file with refresh token support.",
    ),
    api_url: Optional[str] = typer.Option(
        None,
        "--api-url",
        envvar="LINEAR_API_API_URL",
        help="Override the Linear GraphQL URL.",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log retries and cache activity."),
) -> None:
    """Shared options for every command."""

    config_kwargs: dict[str, Any] = {}
    if token is not None:
        config_kwargs["access_token"] = token
    if credentials_path is not None:
        config_kwargs["credentials_path"] = credentials_path
    if api_url is not None:
        config_kwargs["api_url"] = api_url
    _state["config_kwargs"] = config_kwargs
    _state["verbose"] = verbose


def _load_config() -> LinearAPIConfig:
    try:
        config = LinearAPIConfig(**_state.get("config_kwargs", {}))
    except Exception as exc:  # pragma: no cover
        typer.secho(f"Failed to load API configuration: {exc}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1) from exc
    configure_logging("DEBUG" if _state.get("verbose") else config.log_level)
    return config


def _fail(exc: LinearError) -> typer.Exit:
    typer.secho(str(exc), fg=typer.colors.RED, err=True)
    if isinstance(exc, SessionExpiredError):
        typer.secho("Re-authenticate to obtain a new credential.", fg=typer.colors.YELLOW, err=True)
    return typer.Exit(code=1)


@app.command()
def resolve(
    kind: IdentifierKind = typer.Argument(..., help="What the value refers to."),
    value: str = typer.Argument(..., help="Email, name, team key, issue key, or cycle number."),
    team: Optional[str] = typer.Option(None, "--team", "-t", help="Team key, name, or ID (cycles only)."),
) -> None:
    """Resolve a human-readable reference to its Linear ID."""

    config = _load_config()

    async def _run() -> str:
        async with create_session(config) as session:
            return await session.resolver.resolve(value, kind, team_id=team)

    try:
        resolved = anyio.run(_run)
    except AmbiguousIdentifierError as exc:
        typer.secho(f"'{value}' is ambiguous. Candidates:", fg=typer.colors.YELLOW, err=True)
        for candidate in exc.candidates:
            typer.echo(f"  • {candidate}", err=True)
        raise typer.Exit(code=1) from exc
    except LinearError as exc:
        raise _fail(exc) from exc

    typer.echo(resolved)


@app.command()
def query(
    input_file: Optional[Path] = typer.Option(
        None,
        "--input",
        "-i",
        exists=True,
        dir_okay=False,
        readable=True,
        help="Path to the GraphQL document. Reads stdin when omitted.",
    ),
    variables: Optional[str] = typer.Option(None, "--variables", help="Variables as a JSON object."),
) -> None:
    """Execute a GraphQL document and print the ``data`` object."""

    document = input_file.read_text(encoding="utf-8") if input_file else typer.get_text_stream("stdin").read()
    if not document.strip():
        typer.secho("GraphQL document is empty", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)

    try:
        parsed_variables = json.loads(variables) if variables else None
    except json.JSONDecodeError as exc:
        typer.secho(f"Invalid --variables JSON: {exc}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1) from exc

    config = _load_config()

    async def _run() -> dict[str, Any]:
        async with create_session(config) as session:
            return await session.client.execute(document, parsed_variables)

    try:
        data = anyio.run(_run)
    except LinearError as exc:
        raise _fail(exc) from exc

    print_json(data=data)


@app.command("token-status")
def token_status() -> None:
    """Show expiry and refresh capability of the stored credential."""

    config = _load_config()
    if config.credentials_path is None:
        typer.echo("Using a static token (no expiry, no refresh).")
        return

    try:
        credential = FileCredentialStore(config.credentials_path).load()
    except LinearError as exc:
        raise _fail(exc) from exc

    typer.echo(f"Credential file: {config.credentials_path}")
    typer.echo(f"Refresh token: {'present' if credential.refresh_token else 'missing'}")
    if credential.expires_at is None:
        typer.echo("Expires: never (legacy token)")
        return

    remaining = credential.expires_at - utcnow()
    color = typer.colors.GREEN
    if credential.is_expired():
        color = typer.colors.RED
    elif credential.needs_refresh(config.refresh_window):
        color = typer.colors.YELLOW
    typer.secho(f"Expires: {credential.expires_at.isoformat()} ({remaining})", fg=color)


if __name__ == "__main__":
    app()
