"""Bring the package database up to date with installed and remote packages."""

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from enum import Enum

import httpx
from sqlalchemy.exc import SQLAlchemyError

from pmcache.config import Config, PrefixConfig, RepositoryConfig
from pmcache.errors import PmError
from pmcache.fetcher import open_remote_summary, summary_suffixes
from pmcache.installed import iter_installed_summary, mark_automatic, pkgdb_token
from pmcache.models import RemoteToken
from pmcache.store import Domain, PackageStore
from pmcache.summary import SummaryEntry, iter_summary_entries

logger = logging.getLogger(__name__)

# failures that abort the current target only
TARGET_ERRORS = (PmError, httpx.HTTPError, SQLAlchemyError, OSError)

type Enumerator = Callable[[PrefixConfig], Iterable[bytes]]


class SyncState(str, Enum):
    """Progress of one target.

    CHECKING -> UP_TO_DATE, or CHECKING -> REFRESHING -> DONE; FAILED from
    any step.
    """

    CHECKING = "checking"
    UP_TO_DATE = "up-to-date"
    REFRESHING = "refreshing"
    DONE = "done"
    FAILED = "failed"


@dataclass
class SyncResult:
    domain: Domain
    target: str
    state: SyncState = SyncState.CHECKING
    count: int = 0
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.state in (SyncState.UP_TO_DATE, SyncState.DONE)


def run_pkg_info(prefix: PrefixConfig) -> Iterable[bytes]:
    assert prefix.pkg_info is not None and prefix.pkgdb is not None
    return iter_installed_summary(prefix.pkg_info, prefix.pkgdb)


class Synchronizer:
    """Refreshes the store from every configured prefix and repository.

    Each prefix and repository is a separate target with its own transaction;
    a failing target is logged and skipped.
    """

    def __init__(
        self,
        store: PackageStore,
        client: httpx.Client,
        enumerator: Enumerator = run_pkg_info,
    ):
        self.store = store
        self.client = client
        self.enumerator = enumerator

    def _ingest(
        self,
        result: SyncResult,
        token,
        stored,
        entries: Iterable[SummaryEntry],
        prefix: str,
    ) -> None:
        result.state = SyncState.REFRESHING
        if stored is None:
            result.count = self.store.insert(result.domain, result.target, token, entries, prefix=prefix)
        else:
            result.count = self.store.replace(result.domain, result.target, token, entries)
        result.state = SyncState.DONE

    def sync_local(self, prefix: PrefixConfig) -> SyncResult:
        """Record the packages installed under a prefix if they changed."""
        assert prefix.pkgdb is not None
        result = SyncResult(Domain.LOCAL, prefix.path)
        try:
            token = pkgdb_token(prefix.pkgdb)
            stored = self.store.lookup(Domain.LOCAL, prefix.path)
            if stored == token:
                logger.debug(f"Packages installed under {prefix.path} are up to date")
                result.state = SyncState.UP_TO_DATE
                return result

            if stored is None:
                logger.info(f"Recording packages installed under {prefix.path}")
            else:
                logger.info(f"Refreshing packages installed under {prefix.path}")
            entries = mark_automatic(iter_summary_entries(self.enumerator(prefix)), prefix.pkgdb)
            self._ingest(result, token, stored, entries, prefix.path)
        except TARGET_ERRORS as e:
            logger.error(f"Failed to record packages installed under {prefix.path}: {e}")
            result.state = SyncState.FAILED
            result.error = str(e)
        return result

    def sync_remote(self, repo: RepositoryConfig) -> SyncResult:
        """Fetch a repository's pkg_summary if it changed since the last update."""
        result = SyncResult(Domain.REMOTE, repo.url)
        try:
            with open_remote_summary(self.client, repo.url, summary_suffixes(repo.summary_suffix)) as summary:
                token = RemoteToken(summary.last_modified, summary.suffix)
                stored = self.store.lookup(Domain.REMOTE, repo.url)
                if stored == token:
                    logger.info(f"{repo.url} is up to date")
                    result.state = SyncState.UP_TO_DATE
                    return result

                if stored is None:
                    logger.info(f"Creating {repo.url}")
                else:
                    logger.info(f"Updating {repo.url}")
                entries = iter_summary_entries(summary.iter_bytes())
                self._ingest(result, token, stored, entries, repo.prefix)
        except TARGET_ERRORS as e:
            logger.error(f"Failed to update {repo.url}: {e}")
            result.state = SyncState.FAILED
            result.error = str(e)
        return result

    def run(self, config: Config) -> list[SyncResult]:
        """Update every prefix, then the repositories serving it."""
        results = []
        for prefix in config.prefixes:
            results.append(self.sync_local(prefix))
            for repo in prefix.repositories:
                results.append(self.sync_remote(repo))

        failed = sum(1 for r in results if not r.ok)
        logger.debug(f"Update finished: {len(results) - failed} targets ok, {failed} failed")
        return results
