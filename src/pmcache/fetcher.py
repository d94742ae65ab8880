"""Retrieval of pkg_summary documents from remote repositories."""

import bz2
import logging
import lzma
import zlib
from collections.abc import Callable, Iterable, Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass

import httpx

from pmcache.constants import DEFAULT_SUMMARY_SUFFIXES, HTTP_TIMEOUT, SUMMARY_BASENAME
from pmcache.errors import FetchError
from pmcache.utils import http_date_to_epoch

logger = logging.getLogger(__name__)

DECOMPRESSORS: dict[str, Callable] = {
    "xz": lzma.LZMADecompressor,
    "bz2": bz2.BZ2Decompressor,
    "gz": lambda: zlib.decompressobj(wbits=zlib.MAX_WBITS | 16),
}


def create_client() -> httpx.Client:
    return httpx.Client(follow_redirects=True, timeout=HTTP_TIMEOUT)


def summary_suffixes(override: str | None = None) -> tuple[str, ...]:
    """Return the pkg_summary suffixes to try, in order.

    An explicitly configured suffix is the only one tried, otherwise every
    supported compression is tried from best to worst.
    """
    return (override,) if override else DEFAULT_SUMMARY_SUFFIXES


def build_summary_url(repo_url: str, suffix: str) -> str:
    """Construct the pkg_summary URL of a repository.

    Examples:
        >>> build_summary_url("https://cdn.example.org/packages/All/", "xz")
        'https://cdn.example.org/packages/All/pkg_summary.xz'
    """
    return f"{repo_url.rstrip('/')}/{SUMMARY_BASENAME}.{suffix}"


def iter_decompressed(chunks: Iterable[bytes], suffix: str) -> Iterator[bytes]:
    """Incrementally decompress a stream of compressed chunks.

    Concatenated streams (e.g. multi-member gzip files) are handled.

    Raises:
        FetchError: if the data is corrupt or ends before the compressed stream does.
    """
    try:
        factory = DECOMPRESSORS[suffix]
    except KeyError:
        raise FetchError(f"Unsupported pkg_summary suffix '{suffix}'") from None

    decompressor = factory()
    try:
        for chunk in chunks:
            while chunk:
                if decompressor.eof:
                    decompressor = factory()
                data = decompressor.decompress(chunk)
                if data:
                    yield data
                chunk = decompressor.unused_data if decompressor.eof else b""
    except (OSError, EOFError, lzma.LZMAError, zlib.error) as e:
        raise FetchError(f"Corrupt {suffix} data: {e}") from e

    if not decompressor.eof:
        raise FetchError(f"Truncated {suffix} data")


@dataclass
class RemoteSummary:
    """An open, retrievable pkg_summary."""

    url: str
    suffix: str
    last_modified: int
    response: httpx.Response

    def iter_bytes(self) -> Iterator[bytes]:
        """Stream the decompressed document."""
        try:
            yield from iter_decompressed(self.response.iter_bytes(), self.suffix)
        except httpx.TransportError as e:
            raise FetchError(f"Failed to download {self.url}: {e}") from e


@contextmanager
def open_remote_summary(
    client: httpx.Client,
    repo_url: str,
    suffixes: Sequence[str],
) -> Iterator[RemoteSummary]:
    """Open the first pkg_summary a repository serves.

    Each suffix is tried in order. A suffix is skipped if the server does not
    answer with a success status or does not send a usable Last-Modified
    header, which is needed to tell whether the cached copy is current. Only
    the headers are read, the body is left for the caller to stream.

    Raises:
        FetchError: if no suffix could be retrieved or the server is unreachable.
    """
    for suffix in suffixes:
        url = build_summary_url(repo_url, suffix)
        logger.debug(f"Trying {url}")
        try:
            with client.stream("GET", url) as response:
                if not response.is_success:
                    logger.debug(f"Failed to fetch {url}: HTTP {response.status_code}")
                    continue
                last_modified = http_date_to_epoch(response.headers.get("last-modified"))
                if last_modified is None:
                    logger.warning(f"No usable Last-Modified header for {url}, skipping")
                    continue
                yield RemoteSummary(url, suffix, last_modified, response)
                return
        except httpx.TransportError as e:
            raise FetchError(f"Failed to fetch {url}: {e}") from e

    raise FetchError(f"No pkg_summary found at {repo_url} (tried: {', '.join(suffixes)})")
