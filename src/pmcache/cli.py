"""pm command line interface."""

import logging
import re
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path

import typer

from pmcache import set_verbose
from pmcache.config import Config, load_config
from pmcache.constants import DB_PATH
from pmcache.errors import ConfigError, StoreLockedError
from pmcache.fetcher import create_client
from pmcache.store import Domain, PackageListing, PackageStore
from pmcache.sync import Synchronizer

logger = logging.getLogger(__name__)

cli = typer.Typer(help="A binary package manager for pkgsrc", no_args_is_help=True)


@dataclass
class CliState:
    config: Config
    prefix: str | None
    db_path: Path


def _fail(message: str) -> typer.Exit:
    typer.echo(message, err=True)
    return typer.Exit(code=1)


@contextmanager
def _open_store(state: CliState) -> Iterator[PackageStore]:
    try:
        with PackageStore.open(state.db_path) as store:
            yield store
    except StoreLockedError as e:
        raise _fail(f"ERROR: {e}") from None


def _require_prefix(state: CliState) -> str:
    if not state.prefix:
        raise _fail("ERROR: No prefix configured")
    return state.prefix


def _print_packages(packages: list[PackageListing]) -> None:
    for pkg in packages:
        typer.echo(f"{pkg.pkgname:20} {pkg.comment}")


@cli.callback()
def setup(
    ctx: typer.Context,
    config: Path | None = typer.Option(None, "-c", "--config", help="Use specified configuration file"),
    prefix: str | None = typer.Option(None, "-p", "--prefix", help="Set default prefix"),
    db: Path = typer.Option(DB_PATH, "--db", envvar="PM_DB", help="Use specified package database"),
    verbose: bool = typer.Option(False, "-v", "--verbose", help="Enable verbose output"),
):
    """A binary package manager for pkgsrc."""
    try:
        cfg = load_config(config)
    except ConfigError as e:
        raise _fail(f"ERROR: {e}") from None
    set_verbose(verbose or cfg.verbose)
    ctx.obj = CliState(config=cfg, prefix=prefix or cfg.get_default_prefix(), db_path=db)


@cli.command()
def update(ctx: typer.Context):
    """Update pkg_summary from each configured repository."""
    state: CliState = ctx.obj
    if not state.config.prefixes:
        raise _fail("ERROR: No prefixes or repositories configured")

    with _open_store(state) as store, create_client() as client:
        results = Synchronizer(store, client).run(state.config)

    failed = sum(1 for r in results if not r.ok)
    if failed:
        typer.echo(f"ERROR: {failed} of {len(results)} targets failed to update", err=True)
    if failed == len(results):
        raise typer.Exit(code=1)


@cli.command()
def avail(ctx: typer.Context):
    """List available packages."""
    state: CliState = ctx.obj
    prefix = _require_prefix(state)
    with _open_store(state) as store:
        packages = store.list_packages(Domain.REMOTE, prefix)
    if not packages:
        raise _fail(f"No packages available for prefix={prefix}")
    _print_packages(packages)


@cli.command()
def search(ctx: typer.Context, query: str = typer.Argument(..., help="Regular expression to look for")):
    """Search available packages."""
    state: CliState = ctx.obj
    prefix = _require_prefix(state)
    try:
        re.compile(query)
    except re.error as e:
        raise typer.BadParameter(f"not a valid regular expression: {e}", param_hint="QUERY") from None

    with _open_store(state) as store:
        packages = store.search_packages(Domain.REMOTE, prefix, query)
    if not packages:
        raise _fail(f"No packages matching '{query}' available for prefix={prefix}")
    _print_packages(packages)


@cli.command("list")
def list_installed(ctx: typer.Context):
    """List installed packages."""
    state: CliState = ctx.obj
    prefix = _require_prefix(state)
    with _open_store(state) as store:
        packages = store.list_packages(Domain.LOCAL, prefix)
    if not packages:
        raise _fail(f"No packages recorded under {prefix}")
    _print_packages(packages)


# short aliases
cli.command("up", hidden=True)(update)
cli.command("av", hidden=True)(avail)
cli.command("se", hidden=True)(search)
cli.command("ls", hidden=True)(list_installed)


def main() -> None:
    """Main entry point for the pm CLI."""
    cli()
