"""Installed packages of a prefix, as reported by pkg_info(1)."""

import logging
import subprocess
from collections.abc import Iterable, Iterator
from pathlib import Path

from pmcache.constants import AUTOMATIC_MARKER
from pmcache.errors import EnumeratorError
from pmcache.models import LocalToken
from pmcache.summary import SummaryEntry
from pmcache.utils import path_mtime

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024


def pkgdb_token(pkgdb: Path) -> LocalToken:
    """Freshness token of an installed package database.

    pkg_add and pkg_delete touch the database directory, so its mtime changes
    whenever the set of installed packages does.
    """
    return LocalToken(*path_mtime(pkgdb))


def iter_installed_summary(pkg_info: Path, pkgdb: Path) -> Iterator[bytes]:
    """Run ``pkg_info -X -a`` and stream its pkg_summary output.

    Raises:
        EnumeratorError: if pkg_info cannot be started or exits with an error.
    """
    cmd = [str(pkg_info), "-K", str(pkgdb), "-X", "-a"]
    logger.debug(f"Running {' '.join(cmd)}")
    try:
        proc = subprocess.Popen(cmd, stdout=subprocess.PIPE)
    except OSError as e:
        raise EnumeratorError(f"Could not run {pkg_info}: {e}") from e

    with proc:
        assert proc.stdout is not None
        while chunk := proc.stdout.read(CHUNK_SIZE):
            yield chunk

    if proc.returncode != 0:
        raise EnumeratorError(f"{pkg_info} exited with status {proc.returncode}")


def mark_automatic(entries: Iterable[SummaryEntry], pkgdb: Path) -> Iterator[SummaryEntry]:
    """Flag entries that were installed automatically as a dependency."""
    for entry in entries:
        entry.automatic = (pkgdb / entry.pkgname / AUTOMATIC_MARKER).exists()
        yield entry
