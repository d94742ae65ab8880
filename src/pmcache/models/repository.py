from datetime import datetime
from typing import TYPE_CHECKING, NamedTuple

import sqlmodel as sm
from sqlmodel import Field, Relationship, SQLModel

if TYPE_CHECKING:
    from pmcache.models.packages import LocalPackage, RemotePackage


class LocalToken(NamedTuple):
    """Modification time of a prefix's installed package database."""

    mtime: int
    mtime_nsec: int


class RemoteToken(NamedTuple):
    """Last-Modified time of a remote pkg_summary and the suffix it was fetched with."""

    mtime: int
    summary_suffix: str


class SchemaVersion(SQLModel, table=True):
    """Single row holding the version of the table layout."""

    __tablename__ = "schema_version"

    id: int | None = Field(default=None, primary_key=True)
    version: int


class LocalRepository(SQLModel, table=True):
    """The set of packages installed under one prefix."""

    __tablename__ = "local_repository"

    id: int | None = Field(default=None, primary_key=True)
    prefix: str = Field(index=True, unique=True)
    mtime: int
    mtime_nsec: int

    packages: list["LocalPackage"] = Relationship(back_populates="repository", cascade_delete=True)

    last_fetched_at: datetime | None = Field(
        default=None,
        sa_column=sm.Column(
            "last_fetched_at",
            sm.DateTime(timezone=True),
            server_default=sm.func.now(),
            onupdate=sm.func.now(),
            nullable=False,
        ),
    )

    @property
    def token(self) -> LocalToken:
        return LocalToken(self.mtime, self.mtime_nsec)

    @property
    def key(self) -> str:
        return self.prefix


class RemoteRepository(SQLModel, table=True):
    """A remote binary package repository serving a pkg_summary."""

    __tablename__ = "remote_repository"

    id: int | None = Field(default=None, primary_key=True)
    url: str = Field(index=True, unique=True)
    prefix: str = Field(index=True)
    summary_suffix: str
    mtime: int

    packages: list["RemotePackage"] = Relationship(back_populates="repository", cascade_delete=True)

    last_fetched_at: datetime | None = Field(
        default=None,
        sa_column=sm.Column(
            "last_fetched_at",
            sm.DateTime(timezone=True),
            server_default=sm.func.now(),
            onupdate=sm.func.now(),
            nullable=False,
        ),
    )

    @property
    def token(self) -> RemoteToken:
        return RemoteToken(self.mtime, self.summary_suffix)

    @property
    def key(self) -> str:
        return self.url
