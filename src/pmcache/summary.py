"""pkg_summary(5) parsing.

A summary document is a sequence of records separated by a blank line, each
record being a list of ``KEY=value`` lines describing one binary package.
Documents can be tens of megabytes, so they are consumed incrementally:
:class:`SummaryStream` accepts arbitrarily sized byte chunks and hands every
complete record to :func:`parse_record`.
"""

import logging
from collections.abc import Iterable, Iterator
from typing import Annotated, Literal

from pydantic import BaseModel, Field, ValidationError, computed_field, field_validator

from pmcache.errors import SummaryDecodeError, SummaryRecordError
from pmcache.utils import split_pkgname

logger = logging.getLogger(__name__)

RequiredStr = Annotated[str, Field(min_length=1)]
OptionalStr = str | None
StrListField = Annotated[list[str], Field(default_factory=list)]
NonEmptyStrList = Annotated[list[str], Field(min_length=1)]

RECORD_SEPARATOR = b"\n\n"

# sizes are stored as signed 64-bit integers
MAX_SIZE = 2**63 - 1

FieldKind = Literal["str", "list", "int"]

# pkg_summary key -> (SummaryEntry attribute, how repeated keys are handled)
SUMMARY_KEYS: dict[str, tuple[str, FieldKind]] = {
    "BUILD_DATE": ("build_date", "str"),
    "CATEGORIES": ("categories", "list"),
    "COMMENT": ("comment", "str"),
    "CONFLICTS": ("conflicts", "list"),
    "DEPENDS": ("depends", "list"),
    "DESCRIPTION": ("description", "list"),
    "FILE_CKSUM": ("file_cksum", "str"),
    "FILE_NAME": ("file_name", "str"),
    "FILE_SIZE": ("file_size", "int"),
    "HOMEPAGE": ("homepage", "str"),
    "LICENSE": ("license", "str"),
    "MACHINE_ARCH": ("machine_arch", "str"),
    "OPSYS": ("opsys", "str"),
    "OS_VERSION": ("os_version", "str"),
    "PKG_OPTIONS": ("pkg_options", "str"),
    "PKGNAME": ("pkgname", "str"),
    "PKGPATH": ("pkgpath", "str"),
    "PKGTOOLS_VERSION": ("pkgtools_version", "str"),
    "PREV_PKGPATH": ("prev_pkgpath", "str"),
    "PROVIDES": ("provides", "list"),
    "REQUIRES": ("requires", "list"),
    "SIZE_PKG": ("size_pkg", "int"),
    "SUPERSEDES": ("supersedes", "list"),
}
_ATTR_TO_KEY = {attr: key for key, (attr, _) in SUMMARY_KEYS.items()}


class SummaryEntry(BaseModel):
    """One package as described by a pkg_summary record.

    Constructing an entry validates it: required fields must be non-empty and
    sizes must be non-negative integers (``SIZE_PKG=0`` is fine, meta-packages
    have no files).
    """

    build_date: RequiredStr
    categories: NonEmptyStrList
    comment: RequiredStr
    description: NonEmptyStrList
    machine_arch: RequiredStr
    opsys: RequiredStr
    os_version: RequiredStr
    pkgname: RequiredStr
    pkgpath: RequiredStr
    pkgtools_version: RequiredStr
    size_pkg: int = Field(ge=0, le=MAX_SIZE)

    conflicts: StrListField
    depends: StrListField
    provides: StrListField
    requires: StrListField
    supersedes: StrListField

    file_cksum: OptionalStr = None
    file_name: OptionalStr = None
    file_size: int | None = Field(default=None, ge=0, le=MAX_SIZE)
    homepage: OptionalStr = None
    license: OptionalStr = None
    pkg_options: OptionalStr = None
    prev_pkgpath: OptionalStr = None

    # not part of the format, set for installed packages only
    automatic: bool = False

    @field_validator("pkgname")
    @classmethod
    def _check_pkgname(cls, value: str) -> str:
        split_pkgname(value)
        return value

    @computed_field
    @property
    def pkgbase(self) -> str:
        """Package name without its version."""
        return split_pkgname(self.pkgname)[0]

    @computed_field
    @property
    def pkgversion(self) -> str:
        """Version part of the package name."""
        return split_pkgname(self.pkgname)[1]


def _describe_errors(exc: ValidationError) -> str:
    problems = []
    for err in exc.errors():
        attr = str(err["loc"][0]) if err["loc"] else "?"
        key = _ATTR_TO_KEY.get(attr, attr)
        if err["type"] == "missing":
            problems.append(f"Missing {key}")
        else:
            problems.append(f"Invalid {key}: {err['msg']}")
    return ", ".join(problems)


def parse_record(record: str) -> SummaryEntry:
    """Parse one record into a :class:`SummaryEntry`.

    Unknown keys and lines without ``=`` are logged and ignored. Scalar keys
    that appear more than once keep the last value, list keys accumulate.

    Raises:
        SummaryRecordError: if the resulting entry is not valid.
    """
    fields: dict[str, str | int | list[str]] = {}
    for line in record.split("\n"):
        if not line:
            continue
        key, sep, value = line.partition("=")
        if not sep:
            logger.warning(f"Ignoring malformed summary line: {line!r}")
            continue
        try:
            attr, kind = SUMMARY_KEYS[key]
        except KeyError:
            logger.warning(f"Ignoring unhandled summary key {key!r}")
            continue

        if kind == "list":
            fields.setdefault(attr, []).append(value)  # type: ignore[union-attr]
        elif kind == "int":
            # stricter than int(): no sign, no whitespace, no underscores
            if not (value.isascii() and value.isdigit()):
                raise SummaryRecordError(
                    f"Invalid {key}: {value!r} is not a non-negative integer",
                    pkgname=fields.get("pkgname"),  # type: ignore[arg-type]
                )
            if len(value.lstrip("0")) > len(str(MAX_SIZE)) or int(value) > MAX_SIZE:
                raise SummaryRecordError(
                    f"Invalid {key}: {value!r} is out of range",
                    pkgname=fields.get("pkgname"),  # type: ignore[arg-type]
                )
            fields[attr] = int(value)
        else:
            fields[attr] = value

    try:
        return SummaryEntry.model_validate(fields)
    except ValidationError as e:
        raise SummaryRecordError(_describe_errors(e), pkgname=fields.get("pkgname")) from e  # type: ignore[arg-type]


class SummaryStream:
    """Incremental pkg_summary parser.

    Feed it byte chunks in document order; every time a chunk completes one or
    more records they are parsed and returned. The chunk boundaries do not
    matter, feeding a document byte by byte yields the same entries as feeding
    it in one go.

    Bytes after the last record separator are kept in :attr:`pending` until
    more data arrives. A well-formed document ends with a blank line, so
    nothing should be pending once the whole document has been fed; a
    truncated trailing record is never parsed.
    """

    def __init__(self):
        self._buf = bytearray()
        self.records = 0
        self.rejected = 0

    @property
    def pending(self) -> bytes:
        """Bytes received but not yet part of a complete record."""
        return bytes(self._buf)

    def feed(self, chunk: bytes) -> list[SummaryEntry]:
        """Add a chunk of the document and return any newly completed entries.

        Raises:
            SummaryDecodeError: if the completed records are not valid UTF-8.
        """
        if not chunk:
            return []

        # only the new data plus one byte of overlap can contain a new separator
        search_from = max(len(self._buf) - 1, 0)
        self._buf.extend(chunk)
        boundary = self._buf.rfind(RECORD_SEPARATOR, search_from)
        if boundary < 0:
            return []

        complete = bytes(self._buf[:boundary])
        del self._buf[: boundary + len(RECORD_SEPARATOR)]

        try:
            text = complete.decode("utf-8")
        except UnicodeDecodeError as e:
            raise SummaryDecodeError(f"pkg_summary is not valid UTF-8: {e}") from e

        entries = []
        for record in text.split("\n\n"):
            if not record.strip():
                continue
            self.records += 1
            try:
                entries.append(parse_record(record))
            except SummaryRecordError as e:
                self.rejected += 1
                name = e.pkgname or "<unknown>"
                logger.warning(f"Skipping invalid summary record for {name}: {e}")
        return entries


def iter_summary_entries(chunks: Iterable[bytes]) -> Iterator[SummaryEntry]:
    """Stream entries out of an iterable of byte chunks."""
    stream = SummaryStream()
    for chunk in chunks:
        yield from stream.feed(chunk)
    if stream.pending.strip():
        logger.warning(f"Ignoring {len(stream.pending)} bytes of truncated trailing record")
    logger.debug(f"Parsed {stream.records} summary records, rejected {stream.rejected}")


def parse_summary(data: bytes) -> list[SummaryEntry]:
    """Parse a complete pkg_summary document held in memory."""
    return list(iter_summary_entries([data]))
