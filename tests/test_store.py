import re
import sqlite3

import pytest
import sqlalchemy as sa
from sqlmodel import Session, select

from pmcache.constants import SCHEMA_VERSION
from pmcache.errors import RepositoryExistsError, RepositoryNotFoundError, StoreLockedError, SummaryDecodeError
from pmcache.models import LOCAL_ATTRIBUTE_TABLES, LocalPackage, LocalToken, RemotePackage, RemoteToken, SchemaVersion
from pmcache.models.attributes import LocalDepends, RemoteDepends
from pmcache.store import Domain, PackageListing, PackageStore
from pmcache.summary import iter_summary_entries, parse_summary

from . import summary_document, summary_record

PREFIX = "/usr/pkg"
REPO_URL = "https://cdn.example.org/packages/All"


def _entries(*names):
    return parse_summary(summary_document(*(summary_record(name) for name in names)))


def test_insert_and_list(store, sample_summary):
    count = store.insert(Domain.LOCAL, PREFIX, LocalToken(1700000000, 42), parse_summary(sample_summary))
    assert count == 3
    assert store.lookup(Domain.LOCAL, PREFIX) == LocalToken(1700000000, 42)
    assert store.list_packages(Domain.LOCAL, PREFIX) == [
        PackageListing("bash-5.2.26", "The GNU Bourne Again Shell"),
        PackageListing("py312-requests-2.31.0nb1", "HTTP library, written in Python"),
        PackageListing("zsh-5.9", "The Z shell"),
    ]


def test_lookup_unknown(store):
    assert store.lookup(Domain.LOCAL, PREFIX) is None
    assert store.lookup(Domain.REMOTE, REPO_URL) is None


def test_insert_stores_columns_and_attributes(store, sample_summary):
    store.insert(Domain.REMOTE, REPO_URL, RemoteToken(1700000000, "xz"), parse_summary(sample_summary), prefix=PREFIX)

    with Session(store.engine) as session:
        pkg = session.exec(select(RemotePackage).where(RemotePackage.pkgname == "py312-requests-2.31.0nb1")).one()
        assert pkg.pkgbase == "py312-requests"
        assert pkg.pkgversion == "2.31.0nb1"
        assert pkg.categories == "www python"
        assert pkg.size_pkg == 1024
        depends = session.exec(select(RemoteDepends.value).where(RemoteDepends.package_id == pkg.id)).all()
        assert sorted(depends) == ["py312-idna>=2.5", "py312-urllib3>=1.21.1"]
        assert session.exec(select(LocalDepends)).all() == []


def test_insert_existing_repository(store):
    store.insert(Domain.LOCAL, PREFIX, LocalToken(1, 0), _entries("foo-1.0"))
    with pytest.raises(RepositoryExistsError):
        store.insert(Domain.LOCAL, PREFIX, LocalToken(2, 0), _entries("bar-1.0"))
    assert store.list_packages(Domain.LOCAL, PREFIX) == [PackageListing("foo-1.0", "The foo-1.0 package")]


def test_insert_remote_needs_prefix(store):
    with pytest.raises(ValueError):
        store.insert(Domain.REMOTE, REPO_URL, RemoteToken(1, "xz"), _entries("foo-1.0"))


def test_insert_empty_repository(store):
    assert store.insert(Domain.REMOTE, REPO_URL, RemoteToken(1, "xz"), [], prefix=PREFIX) == 0
    assert store.lookup(Domain.REMOTE, REPO_URL) == RemoteToken(1, "xz")
    assert store.list_packages(Domain.REMOTE, PREFIX) == []


def test_replace(store):
    store.insert(Domain.REMOTE, REPO_URL, RemoteToken(1, "xz"), _entries("foo-1.0", "bar-1.0"), prefix=PREFIX)
    count = store.replace(Domain.REMOTE, REPO_URL, RemoteToken(2, "gz"), _entries("foo-1.1", "baz-3"))

    assert count == 2
    assert store.lookup(Domain.REMOTE, REPO_URL) == RemoteToken(2, "gz")
    assert [p.pkgname for p in store.list_packages(Domain.REMOTE, PREFIX)] == ["baz-3", "foo-1.1"]


def test_replace_removes_old_attributes(store, sample_summary):
    store.insert(Domain.LOCAL, PREFIX, LocalToken(1, 0), parse_summary(sample_summary))
    store.replace(Domain.LOCAL, PREFIX, LocalToken(2, 0), _entries("foo-1.0"))

    with Session(store.engine) as session:
        assert session.exec(select(LocalDepends)).all() == []
        assert len(session.exec(select(LocalPackage)).all()) == 1


def test_replace_unknown_repository(store):
    with pytest.raises(RepositoryNotFoundError):
        store.replace(Domain.LOCAL, PREFIX, LocalToken(1, 0), _entries("foo-1.0"))


def _local_snapshot(store):
    """Token, package columns and attribute rows; row ids and last_fetched_at are left out."""
    with Session(store.engine) as session:
        packages = sorted(
            tuple(sorted(pkg.model_dump(exclude={"id", "repository_id"}).items()))
            for pkg in session.exec(select(LocalPackage))
        )
        attributes = sorted(
            (table.__tablename__, pkgname, value)
            for table in LOCAL_ATTRIBUTE_TABLES.values()
            for pkgname, value in session.exec(
                select(LocalPackage.pkgname, table.value).join(LocalPackage, LocalPackage.id == table.package_id)
            )
        )
    return store.lookup(Domain.LOCAL, PREFIX), packages, attributes


def test_replace_is_idempotent(store, sample_summary):
    store.insert(Domain.LOCAL, PREFIX, LocalToken(1, 0), parse_summary(sample_summary))
    store.replace(Domain.LOCAL, PREFIX, LocalToken(2, 0), parse_summary(sample_summary))
    once = _local_snapshot(store)
    store.replace(Domain.LOCAL, PREFIX, LocalToken(2, 0), parse_summary(sample_summary))
    twice = _local_snapshot(store)

    assert twice == once
    assert once[0] == LocalToken(2, 0)
    assert len(once[1]) == 3
    assert ("local_depends", "zsh-5.9", "pcre2>=10.0") in once[2]


def test_failed_replace_rolls_back(store, sample_summary):
    store.insert(Domain.REMOTE, REPO_URL, RemoteToken(1, "xz"), parse_summary(sample_summary), prefix=PREFIX)
    before = store.list_packages(Domain.REMOTE, PREFIX)

    chunks = [summary_document(summary_record("new-1.0")), b"PKGNAME=broken-\xff\n\n"]
    with pytest.raises(SummaryDecodeError):
        store.replace(Domain.REMOTE, REPO_URL, RemoteToken(2, "xz"), iter_summary_entries(chunks))

    assert store.lookup(Domain.REMOTE, REPO_URL) == RemoteToken(1, "xz")
    assert store.list_packages(Domain.REMOTE, PREFIX) == before


def test_failed_insert_rolls_back(store):
    chunks = [summary_document(summary_record("new-1.0")), b"PKGNAME=broken-\xff\n\n"]
    with pytest.raises(SummaryDecodeError):
        store.insert(Domain.LOCAL, PREFIX, LocalToken(1, 0), iter_summary_entries(chunks))
    assert store.lookup(Domain.LOCAL, PREFIX) is None
    assert store.list_packages(Domain.LOCAL, PREFIX) == []


def test_many_packages(store):
    names = [f"pkg{i:04d}-1.0" for i in range(PackageStore.batch_size * 2 + 17)]
    assert store.insert(Domain.LOCAL, PREFIX, LocalToken(1, 0), _entries(*names)) == len(names)
    assert [p.pkgname for p in store.list_packages(Domain.LOCAL, PREFIX)] == names


def test_domains_and_prefixes_are_separate(store):
    store.insert(Domain.LOCAL, PREFIX, LocalToken(1, 0), _entries("installed-1.0"))
    store.insert(Domain.REMOTE, REPO_URL, RemoteToken(1, "xz"), _entries("available-1.0"), prefix=PREFIX)
    other = "https://other.example.org/All"
    store.insert(Domain.REMOTE, other, RemoteToken(1, "xz"), _entries("elsewhere-1.0"), prefix="/opt/pkg")

    assert [p.pkgname for p in store.list_packages(Domain.LOCAL, PREFIX)] == ["installed-1.0"]
    assert [p.pkgname for p in store.list_packages(Domain.REMOTE, PREFIX)] == ["available-1.0"]
    assert [p.pkgname for p in store.list_packages(Domain.REMOTE, "/opt/pkg")] == ["elsewhere-1.0"]
    assert store.list_packages(Domain.LOCAL, "/opt/pkg") == []


def test_repositories_sharing_a_prefix(store):
    # inserted out of order on purpose
    for url, name in [("https://b.example.org/All", "curl-8.7.1"), ("https://a.example.org/All", "zlib-1.3")]:
        store.insert(Domain.REMOTE, url, RemoteToken(1, "xz"), _entries(name), prefix=PREFIX)

    assert [p.pkgname for p in store.list_packages(Domain.REMOTE, PREFIX)] == ["curl-8.7.1", "zlib-1.3"]
    assert [r.url for r in store.get_repositories(Domain.REMOTE)] == [
        "https://a.example.org/All",
        "https://b.example.org/All",
    ]


def test_search(store, sample_summary):
    store.insert(Domain.REMOTE, REPO_URL, RemoteToken(1, "xz"), parse_summary(sample_summary), prefix=PREFIX)

    assert [p.pkgname for p in store.search_packages(Domain.REMOTE, PREFIX, "sh")] == ["bash-5.2.26", "zsh-5.9"]
    # matches the comment, case-insensitively
    assert [p.pkgname for p in store.search_packages(Domain.REMOTE, PREFIX, "PYTHON")] == [
        "py312-requests-2.31.0nb1"
    ]
    assert [p.pkgname for p in store.search_packages(Domain.REMOTE, PREFIX, "^z")] == ["zsh-5.9"]
    assert store.search_packages(Domain.REMOTE, PREFIX, "emacs") == []
    assert store.search_packages(Domain.REMOTE, "/opt/pkg", "sh") == []


def test_search_invalid_pattern(store):
    with pytest.raises(re.error):
        store.search_packages(Domain.REMOTE, PREFIX, "foo(")


def test_schema_created(store):
    with Session(store.engine) as session:
        assert session.exec(select(SchemaVersion.version)).all() == [SCHEMA_VERSION]


def test_schema_mismatch_resets_store(tmp_path):
    db_path = tmp_path / "pm.db"
    with PackageStore.open(db_path) as store:
        store.insert(Domain.LOCAL, PREFIX, LocalToken(1, 0), _entries("foo-1.0"))
        with Session(store.engine) as session, session.begin():
            session.execute(sa.update(SchemaVersion).values(version=SCHEMA_VERSION + 1))

    with PackageStore.open(db_path) as store:
        assert store.lookup(Domain.LOCAL, PREFIX) is None
        assert store.list_packages(Domain.LOCAL, PREFIX) == []
        with Session(store.engine) as session:
            assert session.exec(select(SchemaVersion.version)).all() == [SCHEMA_VERSION]


def test_unversioned_database_is_reset(tmp_path):
    db_path = tmp_path / "pm.db"
    conn = sqlite3.connect(db_path)
    conn.execute("CREATE TABLE leftover (id INTEGER PRIMARY KEY)")
    conn.commit()
    conn.close()

    with PackageStore.open(db_path) as store:
        tables = sa.inspect(store.engine).get_table_names()
    assert "leftover" not in tables
    assert "remote_package" in tables


def test_reopen_keeps_data(tmp_path):
    db_path = tmp_path / "pm.db"
    with PackageStore.open(db_path) as store:
        store.insert(Domain.LOCAL, PREFIX, LocalToken(1, 0), _entries("foo-1.0"))
    with PackageStore.open(db_path) as store:
        assert store.lookup(Domain.LOCAL, PREFIX) == LocalToken(1, 0)


def test_store_is_locked_while_open(tmp_path):
    db_path = tmp_path / "pm.db"
    with PackageStore.open(db_path):
        with pytest.raises(StoreLockedError):
            with PackageStore.open(db_path):
                pass
    with PackageStore.open(db_path):
        pass
