from os import getenv
from pathlib import Path

# bump whenever the table layout changes; a mismatch drops and recreates the store
SCHEMA_VERSION = 1

_XDG_DATA_HOME = Path(getenv("XDG_DATA_HOME", Path.home() / ".local" / "share"))
_XDG_CONFIG_HOME = Path(getenv("XDG_CONFIG_HOME", Path.home() / ".config"))

DATA_DIR = Path(getenv("PM_DATA_DIR", _XDG_DATA_HOME / "pm")).expanduser().resolve()
DB_PATH = DATA_DIR / "pm.db"

CONFIG_PATH = Path(getenv("PM_CONFIG", _XDG_CONFIG_HOME / "pm.toml")).expanduser()

# ordered by compressed size, best to worst; the first one the repository serves wins
DEFAULT_SUMMARY_SUFFIXES = ("xz", "bz2", "gz")
SUMMARY_BASENAME = "pkg_summary"

# pkg_install only writes this file for packages pulled in as dependencies
AUTOMATIC_MARKER = "+INSTALLED_INFO"

HTTP_TIMEOUT = 30.0


def db_url(db_path: Path) -> str:
    """Build an SQLAlchemy URL for an SQLite database file."""
    if db_path.is_relative_to(Path.cwd()):
        return f"sqlite:///{db_path.relative_to(Path.cwd())}"
    return f"sqlite:///{db_path}"
