"""Expose ORM models."""

from sqlmodel import SQLModel

# must be in place before any table is declared
NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_`%(constraint_name)s`",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}
SQLModel.metadata.naming_convention = NAMING_CONVENTION

from .attributes import (  # noqa: E402
    LOCAL_ATTRIBUTE_TABLES,
    REMOTE_ATTRIBUTE_TABLES,
    LocalAttribute,
    RemoteAttribute,
)
from .packages import LocalPackage, PackageBase, RemotePackage  # noqa: E402
from .repository import (  # noqa: E402
    LocalRepository,
    LocalToken,
    RemoteRepository,
    RemoteToken,
    SchemaVersion,
)

__all__ = [
    "LOCAL_ATTRIBUTE_TABLES",
    "NAMING_CONVENTION",
    "REMOTE_ATTRIBUTE_TABLES",
    "LocalAttribute",
    "LocalPackage",
    "LocalRepository",
    "LocalToken",
    "PackageBase",
    "RemoteAttribute",
    "RemotePackage",
    "RemoteRepository",
    "RemoteToken",
    "SchemaVersion",
]
