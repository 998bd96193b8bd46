"""Content-addressed on-disk cache for downloaded sitemap files.

A URL maps to ``<cache_dir>/<sha1[:2]>/<sha1>`` where ``sha1`` is the hex
digest of the URL itself, not of the downloaded bytes. The mapping is pure,
so the same URL always lands on the same path whatever was fetched before.

Entries are only ever replaced wholesale through
:meth:`SitemapFetcher.fetch`, which renames a finished ``.wip`` file into
place.
"""

from __future__ import annotations

import hashlib
import logging
from pathlib import Path
from typing import Optional

from .config import SitemapConfig
from .errors import FilesystemError
from .fetcher import SitemapFetcher

logger = logging.getLogger(__name__)


def url_digest(url: str) -> str:
    """Return the hex SHA1 digest of *url*."""
    return hashlib.sha1(url.encode("utf-8")).hexdigest()


class SitemapCache:
    """Resolves URLs to local files, downloading on a miss."""

    def __init__(
        self,
        config: SitemapConfig,
        *,
        fetcher: Optional[SitemapFetcher] = None,
    ):
        self.config = config
        self.cache_dir = config.cache_dir
        self.fetcher = fetcher if fetcher is not None else SitemapFetcher(config)

    def path_for(self, url: str, filename: Optional[str] = None) -> Path:
        """Return the cache path for *url* without touching the filesystem.

        Args:
            url: The URL to map.
            filename: Optional explicit file name. When given, the file is
                placed directly in the cache directory, with no shard.

        Returns:
            The path the cached copy of *url* lives at.
        """
        if filename:
            return self.cache_dir / filename
        digest = url_digest(url)
        return self.cache_dir / digest[:2] / digest

    def resolve(
        self, url: str, *, filename: Optional[str] = None, force: bool = False
    ) -> Path:
        """Return a local path holding the contents of *url*.

        Downloads when the file is missing or *force* is set; otherwise the
        cached copy is returned without any network call.
        """
        destination = self.path_for(url, filename)

        try:
            destination.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise FilesystemError(
                f"Cannot create cache directory {destination.parent}: {e}", url=url
            ) from e

        if force or not destination.exists():
            self.fetcher.fetch(url, destination)
        else:
            logger.debug("Cache hit for %s at %s", url, destination)
        return destination
