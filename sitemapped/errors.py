"""Exception types raised by the sitemap resolver.

Every component wraps the library exception it hits (``requests``,
``OSError``, ``ElementTree.ParseError``) into one of these at its own
boundary, so callers only need to catch :class:`SitemapError`.
"""

from __future__ import annotations

from typing import Optional


class SitemapError(Exception):
    """Base class for all resolver failures."""

    def __init__(self, message: str, *, url: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.url = url


class ArgumentError(SitemapError):
    """No sitemap URL was given, or an option value is invalid."""


class FilesystemError(SitemapError):
    """Cache directory or cache file could not be created, read or renamed."""


class NetworkError(SitemapError):
    """Transport failure or non-success HTTP status after all retries."""


class DecodeError(SitemapError):
    """The document is not well-formed XML or has an unexpected shape."""


class RootElementMismatch(DecodeError):
    """The document root is not the element the decoder expected."""

    def __init__(self, expected: str, found: str, *, url: Optional[str] = None):
        super().__init__(
            f"Expected <{expected}> root element, found <{found}>", url=url
        )
        self.expected = expected
        self.found = found
