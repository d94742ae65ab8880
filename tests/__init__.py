import lzma
import os
from pathlib import Path

BASE_FIELDS = {
    "BUILD_DATE": "2024-05-01 12:00:00 +0000",
    "CATEGORIES": "devel",
    "DESCRIPTION": "A package used by the test suite.",
    "MACHINE_ARCH": "x86_64",
    "OPSYS": "NetBSD",
    "OS_VERSION": "10.0",
    "PKGPATH": "devel/test",
    "PKGTOOLS_VERSION": "20091115",
    "SIZE_PKG": "1024",
}


def summary_record(pkgname: str, comment: str | None = None, **fields) -> str:
    """Build one pkg_summary record, terminated by its blank line.

    A field given as a list is repeated once per value, a field given as
    None is left out.
    """
    values = {"PKGNAME": pkgname, "COMMENT": comment or f"The {pkgname} package", **BASE_FIELDS, **fields}
    lines = []
    for key, value in values.items():
        if value is None:
            continue
        for item in value if isinstance(value, list) else [value]:
            lines.append(f"{key}={item}\n")
    return "".join(lines) + "\n"


def summary_document(*records: str) -> bytes:
    return "".join(records).encode("utf-8")


def xz_compress(data: bytes) -> bytes:
    return lzma.compress(data, format=lzma.FORMAT_XZ)


def bump_mtime(path: Path, seconds: int = 10) -> None:
    st = path.stat()
    os.utime(path, ns=(st.st_atime_ns, st.st_mtime_ns + seconds * 1_000_000_000))
