"""
Command-line interface.

    pgmanager project create|list|delete
    pgmanager db create|info|list|delete
    pgmanager cleanup --older-than 7d
    pgmanager orphans [--drop]
    pgmanager init-db
    pgmanager serve --host 0.0.0.0 --port 8080
    pgmanager version

Every command builds its own Provisioner through open_runtime() and runs
one orchestrator call under asyncio.run(). Errors are printed to stderr
and exit with status 1.
"""

from __future__ import annotations

import asyncio
import datetime
from collections.abc import Awaitable, Callable
from typing import NoReturn, Optional, TypeVar

import typer

from pgmanager.core.config import VERSION, get_settings
from pgmanager.core.logger import setup_logging
from pgmanager.core.runtime import open_runtime
from pgmanager.errors import PgManagerError
from pgmanager.services.naming import ENV_PR, parse_duration, parse_env_token
from pgmanager.services.provisioning import DatabaseInfo, Provisioner
from pgmanager.store.sql import SqlMetadataStore

T = TypeVar("T")

app = typer.Typer(help="Provision per-environment PostgreSQL databases.", no_args_is_help=True)
project_app = typer.Typer(help="Manage projects.", no_args_is_help=True)
db_app = typer.Typer(help="Manage databases.", no_args_is_help=True)
app.add_typer(project_app, name="project")
app.add_typer(db_app, name="db")


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging.")) -> None:
    setup_logging(debug=verbose or get_settings().DEBUG)


# ── Plumbing ────────────────────────────────────────────────
def _run(call: Callable[[Provisioner], Awaitable[T]]) -> T:
    async def runner() -> T:
        async with open_runtime(get_settings()) as provisioner:
            return await call(provisioner)

    try:
        return asyncio.run(runner())
    except PgManagerError as exc:
        typer.secho(f"Error: {exc}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1) from exc


def _target(env: str, pr_number: int | None) -> tuple[str, int | None]:
    """Accept `pr 123` as well as the combined `pr_123` token."""
    if not env.startswith(f"{ENV_PR}_"):
        return env, pr_number
    if pr_number is not None:
        _fail("give the PR number either in the token or as an argument, not both")
    try:
        return parse_env_token(env)
    except PgManagerError as exc:
        _fail(str(exc))


def _fmt_time(value: datetime.datetime | None) -> str:
    return value.strftime("%Y-%m-%d %H:%M") if value is not None else "-"


def _fail(message: str) -> NoReturn:
    typer.secho(f"Error: {message}", fg=typer.colors.RED, err=True)
    raise typer.Exit(code=1)


# ── Projects ────────────────────────────────────────────────
@project_app.command("create")
def project_create(name: str) -> None:
    """Create a project."""
    _run(lambda p: p.create_project(name))
    typer.echo(f"Project '{name}' created successfully")


@project_app.command("list")
def project_list() -> None:
    """List projects."""
    projects = _run(lambda p: p.list_projects())
    if not projects:
        typer.echo("No projects found")
        return
    typer.echo(f"{'NAME':<20} {'CREATED':<20}")
    typer.echo("-" * 42)
    for project in projects:
        typer.echo(f"{project.name:<20} {_fmt_time(project.created_at):<20}")


@project_app.command("delete")
def project_delete(
    name: str,
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation."),
) -> None:
    """Delete a project and drop all of its databases."""
    if not yes:
        typer.confirm(
            f"Delete project '{name}' and ALL its databases?", abort=True
        )
    deletion = _run(lambda p: p.delete_project(name))
    typer.echo(
        f"Project '{name}' deleted ({len(deletion.dropped)} of "
        f"{len(deletion.databases)} databases dropped)"
    )
    for db_name, reason in sorted(deletion.failed.items()):
        typer.secho(f"  ! {db_name}: {reason}", fg=typer.colors.YELLOW, err=True)
    if deletion.failed:
        raise typer.Exit(code=1)


# ── Databases ───────────────────────────────────────────────
@db_app.command("create")
def db_create(
    project: str,
    env: str = typer.Argument(..., help="prod, dev, staging, pr, or pr_<number>."),
    pr_number: Optional[int] = typer.Argument(None, help="PR number for env=pr."),
) -> None:
    """Provision a database. The password is shown only once."""
    env, pr_number = _target(env, pr_number)
    info = _run(lambda p: p.create_database(project, env, pr_number))
    typer.echo("Database created successfully")
    typer.echo(f"  Database: {info.database_name}")
    typer.echo(f"  User:     {info.user_name}")
    typer.echo(f"  Password: {info.password}")
    typer.echo(f"  Host:     {info.host}")
    typer.echo(f"  Port:     {info.port}")
    if info.expires_at is not None:
        typer.echo(f"  Expires:  {_fmt_time(info.expires_at)}")
    typer.echo(f"\nConnection string:\n  {info.connection_string}")


@db_app.command("info")
def db_info(
    project: str,
    env: str,
    pr_number: Optional[int] = typer.Argument(None),
) -> None:
    """Show one database (without its password)."""
    env, pr_number = _target(env, pr_number)
    info = _run(lambda p: p.get_database(project, env, pr_number))
    typer.echo(f"Database: {info.database_name}")
    typer.echo(f"User:     {info.user_name}")
    typer.echo(f"Host:     {info.host}")
    typer.echo(f"Port:     {info.port}")
    typer.echo(f"Created:  {_fmt_time(info.created_at)}")
    if info.expires_at is not None:
        typer.echo(f"Expires:  {_fmt_time(info.expires_at)}")
    typer.echo(
        "\nNote: password and connection string are only shown when the "
        "database is created."
    )


@db_app.command("list")
def db_list(project: str = typer.Argument("", help="Omit to list every project.")) -> None:
    """List databases."""
    databases: list[DatabaseInfo] = _run(lambda p: p.list_databases(project))
    if not databases:
        typer.echo("No databases found")
        return
    typer.echo(f"{'PROJECT':<15} {'ENV':<10} {'DATABASE':<25} {'CREATED':<20}")
    typer.echo("-" * 72)
    for info in databases:
        typer.echo(
            f"{info.project:<15} {info.env_token:<10} "
            f"{info.database_name:<25} {_fmt_time(info.created_at):<20}"
        )


@db_app.command("delete")
def db_delete(
    project: str,
    env: str,
    pr_number: Optional[int] = typer.Argument(None),
) -> None:
    """Drop a database and its role."""
    env, pr_number = _target(env, pr_number)
    name = _run(lambda p: p.delete_database(project, env, pr_number))
    typer.echo(f"Database {name} deleted successfully")


# ── Maintenance ─────────────────────────────────────────────
@app.command("cleanup")
def cleanup(
    older_than: str = typer.Option("7d", help="Remove PR databases older than this (e.g. 7d, 24h)."),
) -> None:
    """Remove expired databases and old PR databases."""
    try:
        delta = parse_duration(older_than)
    except PgManagerError as exc:
        _fail(str(exc))
    report = _run(lambda p: p.cleanup(delta))

    if not report.deleted:
        typer.echo("No databases to clean up")
    else:
        typer.echo(f"Deleted {len(report.deleted)} database(s):")
        for name in report.deleted:
            typer.echo(f"  - {name}")
    for name, reason in sorted(report.failed.items()):
        typer.secho(f"  ! {name}: {reason}", fg=typer.colors.YELLOW, err=True)
    if report.failed:
        raise typer.Exit(code=1)


@app.command("orphans")
def orphans(
    drop: bool = typer.Option(False, "--drop", help="Drop databases that exist only on the cluster."),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation."),
) -> None:
    """Report databases that exist only on the cluster or only in metadata."""
    if drop:
        _reclaim_orphans(yes)
        return

    report = _run(lambda p: p.find_orphans())
    if not report.live_only and not report.metadata_only:
        typer.echo("No orphans found")
        return
    for name in report.live_only:
        typer.echo(f"live only:     {name}")
    for name in report.metadata_only:
        typer.echo(f"metadata only: {name}")


def _reclaim_orphans(yes: bool) -> None:
    if not yes:
        typer.confirm(
            "Drop every live-only database? Make sure no creates are in flight.",
            abort=True,
        )
    report = _run(lambda p: p.reclaim_orphans())
    if not report.deleted:
        typer.echo("No orphaned databases to drop")
    else:
        typer.echo(f"Dropped {len(report.deleted)} orphaned database(s):")
        for name in report.deleted:
            typer.echo(f"  - {name}")
    for name, reason in sorted(report.failed.items()):
        typer.secho(f"  ! {name}: {reason}", fg=typer.colors.YELLOW, err=True)
    if report.failed:
        raise typer.Exit(code=1)


@app.command("init-db")
def init_db() -> None:
    """Create the metadata tables if they do not exist."""

    async def runner() -> None:
        store = SqlMetadataStore.from_url(get_settings().metadata_url)
        try:
            await store.create_schema()
        finally:
            await store.close()

    try:
        asyncio.run(runner())
    except PgManagerError as exc:
        _fail(str(exc))
    typer.echo("Metadata tables ready")


@app.command("serve")
def serve(
    host: str = typer.Option("0.0.0.0", help="Interface to bind."),
    port: int = typer.Option(8080, "--port", "-p", help="Port to listen on."),
) -> None:
    """Run the REST API."""
    import uvicorn

    typer.echo(f"Starting API server on {host}:{port}")
    uvicorn.run("pgmanager.main:build_app", factory=True, host=host, port=port)


@app.command("version")
def version() -> None:
    typer.echo(f"pgmanager {VERSION}")


if __name__ == "__main__":
    app()
