"""Exception types raised by pmcache."""


class PmError(Exception):
    """Base class for all pmcache errors."""


class ConfigError(PmError):
    """The configuration file is missing, unreadable or invalid."""


class SummaryError(PmError):
    """Problem with a pkg_summary document."""


class SummaryRecordError(SummaryError):
    """A single record could not be turned into a valid entry.

    This is always recoverable: the record is dropped and parsing continues
    with the next one.
    """

    def __init__(self, message: str, pkgname: str | None = None):
        super().__init__(message)
        self.pkgname = pkgname


class SummaryDecodeError(SummaryError):
    """The document is not valid UTF-8. Fatal for the refresh in progress."""


class FetchError(PmError):
    """A remote summary could not be retrieved."""


class EnumeratorError(PmError):
    """Listing the installed packages of a prefix failed."""


class StoreError(PmError):
    """Base class for metadata store errors."""


class StoreLockedError(StoreError):
    """Another process holds the store lock."""


class RepositoryExistsError(StoreError):
    """Tried to insert a repository whose key is already recorded."""


class RepositoryNotFoundError(StoreError):
    """Tried to replace a repository that was never recorded."""
