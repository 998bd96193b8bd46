"""Module for resolving a sitemap or sitemap index into page URLs."""

from __future__ import annotations

import gzip
import logging
import time
from contextlib import contextmanager
from pathlib import Path
from typing import BinaryIO, Iterator, Optional, TextIO, Tuple, Union
from urllib.parse import urlsplit

from .cache import SitemapCache
from .config import ErrorPolicy, SitemapConfig
from .errors import ArgumentError, FilesystemError, RootElementMismatch, SitemapError
from .models import DocumentKind, IndexEntry, UrlEntry
from .parser import SitemapParser, classify

logger = logging.getLogger(__name__)

GZIP_SUFFIX = ".gz"

Entry = Union[IndexEntry, UrlEntry]


def is_gzipped(url: str) -> bool:
    """True when the path of *url* ends with ``.gz``."""
    return urlsplit(url).path.lower().endswith(GZIP_SUFFIX)


@contextmanager
def open_document(path: Path, url: str) -> Iterator[BinaryIO]:
    """Open a cached file, gunzipping it on the fly for ``.gz`` URLs.

    Both handles are released on every exit path, the decompressor first.
    """
    try:
        raw = open(path, "rb")
    except OSError as e:
        raise FilesystemError(f"Cannot open cached file {path}: {e}", url=url) from e

    with raw:
        if is_gzipped(url):
            with gzip.GzipFile(fileobj=raw, mode="rb") as gz:
                yield gz
        else:
            yield raw


def validate_url(url: Optional[str]) -> str:
    if not url or not url.strip():
        raise ArgumentError("a sitemap.xml URL is required")
    url = url.strip()
    parts = urlsplit(url)
    if parts.scheme not in ("http", "https") or not parts.netloc:
        raise ArgumentError(f"Not an http(s) URL: {url}", url=url)
    return url


class SitemapProcessor:
    """Orchestrates fetching, classifying and decoding of sitemaps.

    The cache and parser can be injected, which keeps unit tests free of
    network and filesystem patching:

    >>> processor = SitemapProcessor(config, cache=fake_cache)
    >>> list(processor.iter_urls("https://example.com/sitemap.xml"))

    A sitemap index is followed exactly one level deep; a sitemap listed in
    an index is always decoded as a url-set.
    """

    def __init__(
        self,
        config: SitemapConfig,
        *,
        cache: Optional[SitemapCache] = None,
        parser: Optional[SitemapParser] = None,
    ):
        self.config = config
        self.cache = cache if cache is not None else SitemapCache(config)
        self.parser = parser if parser is not None else SitemapParser()

        # Counters for the current run
        self.sitemaps_read = 0
        self.skipped_sitemaps = 0

    # --- Decoding ---
    def _decode_as(
        self, path: Path, url: str, kind: DocumentKind
    ) -> Iterator[Tuple[DocumentKind, Entry]]:
        with open_document(path, url) as stream:
            for entry in self.parser.decode(stream, kind, url=url):
                yield kind, entry
        self.sitemaps_read += 1

    def _decode_file(
        self, path: Path, url: str, kind: DocumentKind, *, allow_fallback: bool
    ) -> Iterator[Tuple[DocumentKind, Entry]]:
        """Decode *path* as *kind*, optionally retrying as the other kind.

        The byte sniff in :func:`classify` can be fooled, e.g. by a url-set
        whose URLs contain ``sitemapindex``. The root element check raises
        before anything is yielded, so retrying never duplicates output.
        """
        try:
            yield from self._decode_as(path, url, kind)
        except RootElementMismatch as e:
            other = (
                DocumentKind.LEAF if kind is DocumentKind.INDEX else DocumentKind.INDEX
            )
            if not allow_fallback or e.found != other.root_element:
                raise
            logger.warning(
                "%s was classified as %s but its root is <%s>; decoding as %s.",
                url,
                kind.root_element,
                e.found,
                other.root_element,
            )
            yield from self._decode_as(path, url, other)

    # --- Index handling ---
    def _iter_index_entry(self, entry: IndexEntry) -> Iterator[str]:
        path = self.cache.resolve(entry.loc, force=self.config.force)
        for _, url_entry in self._decode_file(
            path, entry.loc, DocumentKind.LEAF, allow_fallback=False
        ):
            yield url_entry.loc

    def _handle_index_entry(self, entry: IndexEntry) -> Iterator[str]:
        """Emit the URLs of one indexed sitemap, applying ``on_error``."""
        logger.info("Processing sitemap: %s", entry.loc)
        if self.config.on_error is ErrorPolicy.ABORT:
            yield from self._iter_index_entry(entry)
            return

        try:
            yield from self._iter_index_entry(entry)
        except SitemapError as e:
            self.skipped_sitemaps += 1
            logger.warning("Skipping %s: %s", entry.loc, e)

    # --- Public API ---
    def iter_urls(self, sitemap_url: str) -> Iterator[str]:
        """Yield every page URL reachable from *sitemap_url*, in document order."""
        sitemap_url = validate_url(sitemap_url)
        self.sitemaps_read = 0
        self.skipped_sitemaps = 0

        path = self.cache.resolve(sitemap_url, force=self.config.force)
        kind = classify(path)
        logger.info("Processing %s (%s)", sitemap_url, kind.root_element)

        for found_kind, entry in self._decode_file(
            path, sitemap_url, kind, allow_fallback=True
        ):
            if found_kind is DocumentKind.LEAF:
                yield entry.loc
            else:
                yield from self._handle_index_entry(entry)

    def run(self, sitemap_url: str, output: TextIO) -> int:
        """Write every resolved URL to *output*, one per line.

        Returns the number of URLs written.
        """
        start_time = time.time()
        count = 0
        for loc in self.iter_urls(sitemap_url):
            output.write(loc + "\n")
            count += 1
        output.flush()

        total_time = time.time() - start_time
        logger.info(
            "Wrote %d URLs from %d sitemaps in %.2f seconds (%d skipped).",
            count,
            self.sitemaps_read,
            total_time,
            self.skipped_sitemaps,
        )
        return count
