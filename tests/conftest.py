import stat
from pathlib import Path

import pytest

from pmcache import set_verbose
from pmcache.store import PackageStore

from . import summary_document, summary_record

# unconditionally enable verbose mode
set_verbose(True)


@pytest.fixture
def sample_summary() -> bytes:
    return summary_document(
        summary_record("zsh-5.9", "The Z shell", CATEGORIES="shells", DEPENDS=["pcre2>=10.0"]),
        summary_record("bash-5.2.26", "The GNU Bourne Again Shell", CATEGORIES="shells"),
        summary_record(
            "py312-requests-2.31.0nb1",
            "HTTP library, written in Python",
            CATEGORIES="www python",
            DEPENDS=["py312-urllib3>=1.21.1", "py312-idna>=2.5"],
        ),
    )


@pytest.fixture
def store(tmp_path):
    with PackageStore.open(tmp_path / "pm.db") as store:
        yield store


@pytest.fixture
def pkgdb(tmp_path) -> Path:
    path = tmp_path / "prefix" / "pkgdb"
    path.mkdir(parents=True)
    return path


@pytest.fixture
def make_pkg_info(tmp_path):
    """Create a stand-in pkg_info(1) that prints a fixed pkg_summary."""

    def _make(output: bytes, status: int = 0) -> Path:
        data = tmp_path / "pkg_info.out"
        data.write_bytes(output)
        script = tmp_path / "pkg_info"
        script.write_text(f'#!/bin/sh\ncat "{data}"\nexit {status}\n')
        script.chmod(script.stat().st_mode | stat.S_IXUSR)
        return script

    return _make
