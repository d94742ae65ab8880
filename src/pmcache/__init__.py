"""pmcache: package metadata cache for the pm binary package manager."""

import logging

import httpx
import typer
from rich.console import Console
from rich.logging import RichHandler

__version__ = "0.1.0"

logging.basicConfig(
    level=logging.INFO,
    format="%(message)s",
    datefmt="[%X]",
    handlers=[
        RichHandler(
            console=Console(stderr=True),
            rich_tracebacks=True,
            tracebacks_suppress=[typer, httpx],
        )
    ],
)
logging.getLogger("httpx").setLevel(logging.WARNING)


def set_verbose(enabled: bool) -> None:
    """Switch between INFO and DEBUG output for the whole process."""
    logging.getLogger().setLevel(logging.DEBUG if enabled else logging.INFO)
