"""Value types produced by the sitemap decoder."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class DocumentKind(Enum):
    INDEX = "sitemapindex"
    LEAF = "urlset"

    @property
    def root_element(self) -> str:
        return self.value


@dataclass(frozen=True)
class IndexEntry:
    """One ``<sitemap>`` element of a sitemap index."""

    loc: str
    lastmod: Optional[str] = None


@dataclass(frozen=True)
class UrlEntry:
    """One ``<url>`` element of a url-set."""

    loc: str
