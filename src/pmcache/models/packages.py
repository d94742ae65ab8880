"""Models for installed and available packages."""

from typing import TYPE_CHECKING

from sqlmodel import BigInteger, Field, Relationship, SQLModel

if TYPE_CHECKING:
    from pmcache.models.repository import LocalRepository, RemoteRepository
    from pmcache.summary import SummaryEntry


class PackageBase(SQLModel):
    """Columns shared by installed and available packages.

    Multi-valued summary keys live in the attribute tables, except for
    CATEGORIES and DESCRIPTION which are only ever displayed and are stored
    joined (by spaces and newlines respectively).
    """

    id: int | None = Field(default=None, primary_key=True)

    pkgname: str = Field(index=True)
    pkgbase: str = Field(index=True)
    pkgversion: str
    comment: str
    build_date: str
    categories: str
    description: str
    machine_arch: str
    opsys: str
    os_version: str
    pkgpath: str
    pkgtools_version: str
    size_pkg: int = Field(sa_type=BigInteger)

    file_cksum: str | None = None
    file_name: str | None = None
    file_size: int | None = Field(default=None, sa_type=BigInteger)
    homepage: str | None = None
    license: str | None = None
    pkg_options: str | None = None
    prev_pkgpath: str | None = None

    @classmethod
    def columns_from_entry(cls, entry: "SummaryEntry") -> dict:
        """Map a parsed summary entry onto package columns."""
        return {
            "pkgname": entry.pkgname,
            "pkgbase": entry.pkgbase,
            "pkgversion": entry.pkgversion,
            "comment": entry.comment,
            "build_date": entry.build_date,
            "categories": " ".join(entry.categories),
            "description": "\n".join(entry.description),
            "machine_arch": entry.machine_arch,
            "opsys": entry.opsys,
            "os_version": entry.os_version,
            "pkgpath": entry.pkgpath,
            "pkgtools_version": entry.pkgtools_version,
            "size_pkg": entry.size_pkg,
            "file_cksum": entry.file_cksum,
            "file_name": entry.file_name,
            "file_size": entry.file_size,
            "homepage": entry.homepage,
            "license": entry.license,
            "pkg_options": entry.pkg_options,
            "prev_pkgpath": entry.prev_pkgpath,
        }


class LocalPackage(PackageBase, table=True):
    """A package installed under a prefix, as reported by pkg_info."""

    __tablename__ = "local_package"

    automatic: bool = False

    repository_id: int = Field(foreign_key="local_repository.id", ondelete="CASCADE", index=True)
    repository: "LocalRepository" = Relationship(back_populates="packages")

    @classmethod
    def from_entry(cls, entry: "SummaryEntry", repository_id: int) -> "LocalPackage":
        return cls(
            **cls.columns_from_entry(entry),
            automatic=entry.automatic,
            repository_id=repository_id,
        )


class RemotePackage(PackageBase, table=True):
    """A binary package available from a remote repository."""

    __tablename__ = "remote_package"

    repository_id: int = Field(foreign_key="remote_repository.id", ondelete="CASCADE", index=True)
    repository: "RemoteRepository" = Relationship(back_populates="packages")

    @classmethod
    def from_entry(cls, entry: "SummaryEntry", repository_id: int) -> "RemotePackage":
        return cls(**cls.columns_from_entry(entry), repository_id=repository_id)
