"""Multi-valued package attributes (DEPENDS, PROVIDES, ...), one row per value.

Every row also carries the owning repository so a refresh can drop all of a
repository's attributes with a single statement per table.
"""

from sqlmodel import Field, SQLModel


class LocalAttribute(SQLModel):
    """Columns shared by every attribute table of installed packages."""

    id: int | None = Field(default=None, primary_key=True)
    package_id: int | None = Field(default=None, foreign_key="local_package.id", ondelete="CASCADE", index=True)
    repository_id: int = Field(foreign_key="local_repository.id", ondelete="CASCADE", index=True)
    value: str


class RemoteAttribute(SQLModel):
    """Columns shared by every attribute table of available packages."""

    id: int | None = Field(default=None, primary_key=True)
    package_id: int | None = Field(default=None, foreign_key="remote_package.id", ondelete="CASCADE", index=True)
    repository_id: int = Field(foreign_key="remote_repository.id", ondelete="CASCADE", index=True)
    value: str


class LocalConflicts(LocalAttribute, table=True):
    __tablename__ = "local_conflicts"


class LocalDepends(LocalAttribute, table=True):
    __tablename__ = "local_depends"


class LocalProvides(LocalAttribute, table=True):
    __tablename__ = "local_provides"


class LocalRequires(LocalAttribute, table=True):
    __tablename__ = "local_requires"


class LocalSupersedes(LocalAttribute, table=True):
    __tablename__ = "local_supersedes"


class RemoteConflicts(RemoteAttribute, table=True):
    __tablename__ = "remote_conflicts"


class RemoteDepends(RemoteAttribute, table=True):
    __tablename__ = "remote_depends"


class RemoteProvides(RemoteAttribute, table=True):
    __tablename__ = "remote_provides"


class RemoteRequires(RemoteAttribute, table=True):
    __tablename__ = "remote_requires"


class RemoteSupersedes(RemoteAttribute, table=True):
    __tablename__ = "remote_supersedes"


# SummaryEntry list attribute -> table, per domain
LOCAL_ATTRIBUTE_TABLES: dict[str, type[LocalAttribute]] = {
    "conflicts": LocalConflicts,
    "depends": LocalDepends,
    "provides": LocalProvides,
    "requires": LocalRequires,
    "supersedes": LocalSupersedes,
}
REMOTE_ATTRIBUTE_TABLES: dict[str, type[RemoteAttribute]] = {
    "conflicts": RemoteConflicts,
    "depends": RemoteDepends,
    "provides": RemoteProvides,
    "requires": RemoteRequires,
    "supersedes": RemoteSupersedes,
}
