"""Configuration file handling.

The configuration is a TOML file listing the prefixes packages are installed
into and the remote repositories that provide packages for them::

    default_prefix = "/usr/pkg"

    [[prefix]]
    path = "/usr/pkg"

    [[repository]]
    url = "https://cdn.example.org/packages/All"
    prefix = "/usr/pkg"
    summary_suffix = "xz"
"""

import logging
from pathlib import Path
from typing import Literal

import tomlkit
from pydantic import BaseModel, Field, ValidationError, model_validator
from tomlkit.exceptions import TOMLKitError

from pmcache.constants import CONFIG_PATH
from pmcache.errors import ConfigError

logger = logging.getLogger(__name__)


class RepositoryConfig(BaseModel):
    """A remote repository serving a pkg_summary for one prefix."""

    url: str
    prefix: str
    summary_suffix: Literal["xz", "bz2", "gz"] | None = None


class PrefixConfig(BaseModel):
    """An installation prefix and where its package tools and database live."""

    path: str
    pkgdb: Path | None = None
    pkg_info: Path | None = None
    repositories: list[RepositoryConfig] = Field(default_factory=list)

    @model_validator(mode="after")
    def _fill_defaults(self) -> "PrefixConfig":
        if self.pkgdb is None:
            self.pkgdb = Path(self.path) / "pkgdb"
        if self.pkg_info is None:
            self.pkg_info = Path(self.path) / "sbin" / "pkg_info"
        return self


class Config(BaseModel):
    """Resolved configuration."""

    default_prefix: str | None = None
    verbose: bool = False
    prefixes: list[PrefixConfig] = Field(default_factory=list, alias="prefix")
    repositories: list[RepositoryConfig] = Field(default_factory=list, alias="repository")

    @model_validator(mode="after")
    def _attach_repositories(self) -> "Config":
        by_path = {prefix.path: prefix for prefix in self.prefixes}
        for repo in self.repositories:
            if repo.prefix not in by_path:
                by_path[repo.prefix] = PrefixConfig(path=repo.prefix)
                self.prefixes.append(by_path[repo.prefix])
            by_path[repo.prefix].repositories.append(repo)
        return self

    def get_default_prefix(self) -> str | None:
        """The prefix commands apply to unless told otherwise."""
        if self.default_prefix:
            return self.default_prefix
        return self.prefixes[0].path if self.prefixes else None

    def get_prefix(self, path: str) -> PrefixConfig | None:
        return next((prefix for prefix in self.prefixes if prefix.path == path), None)


def load_config(path: Path | None = None) -> Config:
    """Load and validate the configuration file.

    Raises:
        ConfigError: if the file does not exist or is not a valid configuration.
    """
    path = path or CONFIG_PATH
    try:
        with path.open(encoding="utf-8") as f:
            data = tomlkit.load(f).unwrap()
    except FileNotFoundError:
        raise ConfigError(f"Configuration file {path} does not exist") from None
    except (OSError, UnicodeDecodeError, TOMLKitError) as e:
        raise ConfigError(f"Unable to read configuration file {path}: {e}") from e

    try:
        config = Config.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration file {path}:\n{e}") from e

    logger.debug(f"Loaded {path}: {len(config.prefixes)} prefixes, {len(config.repositories)} repositories")
    return config
