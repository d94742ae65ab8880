import datetime
import logging
from pathlib import Path

from dateutil.parser import parse as parse_date

logger = logging.getLogger(__name__)


def try_parse_date(date_str: str | None) -> datetime.datetime | None:
    """Try to parse a date string into a timestamp.

    Args:
        date_str: The date string to parse (e.g., from HTTP Last-Modified header)

    Returns:
        The parsed timestamp, or None if parsing failed or date_str is None
    """

    try:
        return parse_date(date_str) if date_str else None
    except Exception as e:
        logger.debug(f"Failed to parse date '{date_str}': {e}")
        return None


def http_date_to_epoch(date_str: str | None) -> int | None:
    """Convert an HTTP date header into whole seconds since the epoch.

    Naive dates are taken to be UTC, which is what RFC 9110 mandates anyway.
    """
    parsed = try_parse_date(date_str)
    if parsed is None:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=datetime.UTC)
    return int(parsed.timestamp())


def split_pkgname(pkgname: str) -> tuple[str, str]:
    """Split a full package name into base name and version.

    The split happens on the rightmost hyphen, so ``foo-bar-1.2.3`` becomes
    ``("foo-bar", "1.2.3")``.

    Raises:
        ValueError: if either half would be empty.

    Examples:
        >>> split_pkgname("py312-requests-2.31.0nb1")
        ('py312-requests', '2.31.0nb1')
    """
    base, sep, version = pkgname.rpartition("-")
    if not sep or not base or not version:
        raise ValueError(f"'{pkgname}' is not of the form <name>-<version>")
    return base, version


def path_mtime(path: Path) -> tuple[int, int]:
    """Return the (seconds, nanoseconds) modification time of a path."""
    return divmod(path.stat().st_mtime_ns, 1_000_000_000)
