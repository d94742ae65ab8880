"""Package metadata store.

Two independent domains are kept: packages installed under a prefix (keyed by
the prefix path) and packages available from a remote repository (keyed by the
repository URL). Refreshing a repository always replaces every package it owns
inside a single transaction, so readers never see a half-updated repository.
"""

import logging
import re
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import NamedTuple

import sqlalchemy as sa
from sqlalchemy.engine import Engine
from sqlmodel import Session, select

from pmcache.db import create_db_engine, ensure_schema
from pmcache.errors import RepositoryExistsError, RepositoryNotFoundError
from pmcache.lock import store_lock
from pmcache.models import (
    LOCAL_ATTRIBUTE_TABLES,
    REMOTE_ATTRIBUTE_TABLES,
    LocalPackage,
    LocalRepository,
    LocalToken,
    RemotePackage,
    RemoteRepository,
    RemoteToken,
)
from pmcache.summary import SummaryEntry

logger = logging.getLogger(__name__)

type Token = LocalToken | RemoteToken
type Repository = LocalRepository | RemoteRepository


class Domain(str, Enum):
    """Which set of packages an operation applies to."""

    LOCAL = "local"
    REMOTE = "remote"


class PackageListing(NamedTuple):
    pkgname: str
    comment: str


@dataclass(frozen=True)
class _DomainTables:
    repository: type[LocalRepository] | type[RemoteRepository]
    package: type[LocalPackage] | type[RemotePackage]
    attributes: dict
    key_column: str


_TABLES = {
    Domain.LOCAL: _DomainTables(LocalRepository, LocalPackage, LOCAL_ATTRIBUTE_TABLES, "prefix"),
    Domain.REMOTE: _DomainTables(RemoteRepository, RemotePackage, REMOTE_ATTRIBUTE_TABLES, "url"),
}


class PackageStore:
    """Handle on the package database.

    Use :meth:`open` to get one; it holds the database lock until the
    ``with`` block exits.
    """

    batch_size = 100

    def __init__(self, engine: Engine):
        self.engine = engine

    @classmethod
    @contextmanager
    def open(cls, db_path: Path) -> Iterator["PackageStore"]:
        """Lock and open the database at db_path, creating or resetting its schema as needed.

        Raises:
            StoreLockedError: if another process has the database open.
        """
        db_path.parent.mkdir(parents=True, exist_ok=True)
        with store_lock(db_path.with_name(f"{db_path.name}.lock")):
            engine = create_db_engine(db_path)
            try:
                ensure_schema(engine)
                yield cls(engine)
            finally:
                engine.dispose()

    def _get_repository(self, session: Session, domain: Domain, key: str) -> Repository | None:
        tables = _TABLES[domain]
        key_column = getattr(tables.repository, tables.key_column)
        return session.exec(select(tables.repository).where(key_column == key)).first()

    def lookup(self, domain: Domain, key: str) -> Token | None:
        """Return the freshness token recorded for a repository, None if unknown."""
        with Session(self.engine) as session:
            repo = self._get_repository(session, domain, key)
            return repo.token if repo else None

    def insert(
        self,
        domain: Domain,
        key: str,
        token: Token,
        entries: Iterable[SummaryEntry],
        prefix: str | None = None,
    ) -> int:
        """Record a new repository and all of its packages.

        Args:
            domain: LOCAL (key is the prefix) or REMOTE (key is the URL)
            key: Unique repository key
            token: Freshness token to store with the repository
            entries: Packages to store, consumed inside the transaction
            prefix: Prefix a remote repository installs into (REMOTE only)

        Returns:
            The number of packages stored.

        Raises:
            RepositoryExistsError: if the repository is already recorded.
        """
        tables = _TABLES[domain]
        columns = {tables.key_column: key, **token._asdict()}
        if domain is Domain.REMOTE:
            if prefix is None:
                raise ValueError("Remote repositories need a prefix")
            columns["prefix"] = prefix

        with Session(self.engine) as session, session.begin():
            if self._get_repository(session, domain, key) is not None:
                raise RepositoryExistsError(f"{domain.value} repository {key} is already recorded")
            repo = tables.repository(**columns)
            session.add(repo)
            session.flush()
            count = self._add_packages(session, tables, repo.id, entries)

        logger.debug(f"Recorded {count} packages for {domain.value} repository {key}")
        return count

    def replace(self, domain: Domain, key: str, token: Token, entries: Iterable[SummaryEntry]) -> int:
        """Replace every package of a recorded repository and update its token.

        Replacing with the same entries and token leaves the stored packages
        unchanged; only the repository's ``last_fetched_at`` stamp moves.

        Returns:
            The number of packages stored.

        Raises:
            RepositoryNotFoundError: if the repository was never recorded.
        """
        tables = _TABLES[domain]
        with Session(self.engine) as session, session.begin():
            repo = self._get_repository(session, domain, key)
            if repo is None:
                raise RepositoryNotFoundError(f"{domain.value} repository {key} is not recorded")

            for table in tables.attributes.values():
                session.execute(sa.delete(table).where(table.repository_id == repo.id))
            session.execute(sa.delete(tables.package).where(tables.package.repository_id == repo.id))

            count = self._add_packages(session, tables, repo.id, entries)

            repo.sqlmodel_update(token._asdict())
            repo.last_fetched_at = datetime.now(tz=UTC)
            session.add(repo)

        logger.debug(f"Replaced packages of {domain.value} repository {key} with {count} new ones")
        return count

    def _add_packages(
        self,
        session: Session,
        tables: _DomainTables,
        repository_id: int,
        entries: Iterable[SummaryEntry],
    ) -> int:
        count = 0
        batch = []
        for entry in entries:
            batch.append((tables.package.from_entry(entry, repository_id), entry))
            if len(batch) >= self.batch_size:
                count += self._flush_batch(session, tables, repository_id, batch)
                batch = []
        if batch:
            count += self._flush_batch(session, tables, repository_id, batch)
        return count

    def _flush_batch(self, session: Session, tables: _DomainTables, repository_id: int, batch: list) -> int:
        session.add_all(package for package, _ in batch)
        # assigns package ids for the attribute rows
        session.flush()
        session.add_all(
            table(package_id=package.id, repository_id=repository_id, value=value)
            for package, entry in batch
            for attr, table in tables.attributes.items()
            for value in getattr(entry, attr)
        )
        session.flush()
        return len(batch)

    def _prefix_query(self, domain: Domain, prefix: str):
        tables = _TABLES[domain]
        package, repository = tables.package, tables.repository
        return (
            select(package.pkgname, package.comment)
            .join(repository, repository.id == package.repository_id)
            .where(repository.prefix == prefix)
        )

    def list_packages(self, domain: Domain, prefix: str) -> list[PackageListing]:
        """List every package recorded under a prefix, ordered by package name."""
        package = _TABLES[domain].package
        query = self._prefix_query(domain, prefix).order_by(package.pkgname)
        with Session(self.engine) as session:
            return [PackageListing(*row) for row in session.exec(query)]

    def search_packages(self, domain: Domain, prefix: str, pattern: str) -> list[PackageListing]:
        """Like :meth:`list_packages`, restricted to packages whose name or
        comment matches a case-insensitive regular expression.

        Raises:
            re.error: if pattern is not a valid regular expression.
        """
        re.compile(pattern)
        pattern = f"(?i){pattern}"
        package = _TABLES[domain].package
        query = (
            self._prefix_query(domain, prefix)
            .where(sa.or_(package.pkgname.regexp_match(pattern), package.comment.regexp_match(pattern)))
            .order_by(package.pkgname)
        )
        with Session(self.engine) as session:
            return [PackageListing(*row) for row in session.exec(query)]

    def get_repositories(self, domain: Domain) -> list[Repository]:
        """All recorded repositories of a domain, ordered by key."""
        tables = _TABLES[domain]
        key_column = getattr(tables.repository, tables.key_column)
        with Session(self.engine, expire_on_commit=False) as session:
            return list(session.exec(select(tables.repository).order_by(key_column)).all())
