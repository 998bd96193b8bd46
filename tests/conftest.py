import codecs
import gzip

import pytest
import requests

from sitemapped.cache import SitemapCache
from sitemapped.config import SitemapConfig
from sitemapped.fetcher import SitemapFetcher
from sitemapped.processor import SitemapProcessor


# Helper class standing in for a streamed requests.Response
class MockResponse:
    def __init__(self, content, status_code=200, encoding="utf-8", chunk_size=16):
        # Encode based on the provided encoding
        if isinstance(content, str):
            self.content = content.encode(encoding)
        else:  # Assume bytes if not string (e.g., for BOM or gzip payloads)
            self.content = content
        self.status_code = status_code
        self.ok = 200 <= status_code < 300
        self.chunk_size = chunk_size
        self.closed = False

    def raise_for_status(self):
        if not self.ok:
            raise requests.exceptions.HTTPError(f"{self.status_code} Client Error")

    def iter_content(self, chunk_size=1):
        # Ignore the caller's chunk size so multi-chunk writes get exercised
        for start in range(0, len(self.content), self.chunk_size):
            yield self.content[start : start + self.chunk_size]

    def close(self):
        self.closed = True

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()


class FakeSession:
    """Session double answering from a URL -> response mapping.

    Values may be a ``MockResponse``, raw ``str``/``bytes`` (served with a
    200), or an exception instance to raise. Every call is recorded.
    """

    def __init__(self, responses=None):
        self.responses = dict(responses or {})
        self.calls = []

    def get(self, url, **kwargs):
        self.calls.append((url, kwargs))
        value = self.responses.get(url)
        if value is None:
            print(f"WARN: Unexpected URL requested in test: {url}")
            return MockResponse("<root/>", status_code=404)
        if isinstance(value, Exception):
            raise value
        if isinstance(value, MockResponse):
            return value
        return MockResponse(value)

    def count(self, url):
        return sum(1 for called, _ in self.calls if called == url)


def urlset(*locs):
    body = "".join(f"<url><loc>{loc}</loc></url>" for loc in locs)
    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        '<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">'
        f"{body}</urlset>"
    )


def sitemapindex(*locs):
    body = "".join(
        f"<sitemap><loc>{loc}</loc><lastmod>2024-07-01</lastmod></sitemap>"
        for loc in locs
    )
    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        '<sitemapindex xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">'
        f"{body}</sitemapindex>"
    )


BOM_URLSET = codecs.BOM_UTF8 + urlset("http://bom.test/page1").encode("utf-8")

SITEMAPS = {
    # Leaf sitemap
    "https://a.test/sitemap.xml": urlset("https://a.test/1", "https://a.test/2"),
    # Index with a single child
    "https://b.test/index.xml": sitemapindex("https://b.test/child.xml"),
    "https://b.test/child.xml": urlset("https://b.test/only"),
    # Index with three children, one of them gzipped
    "https://c.test/index.xml": sitemapindex(
        "https://c.test/a.xml", "https://c.test/b.xml.gz", "https://c.test/c.xml"
    ),
    "https://c.test/a.xml": urlset("https://c.test/a1", "https://c.test/a2"),
    "https://c.test/b.xml.gz": gzip.compress(urlset("https://c.test/b1").encode()),
    "https://c.test/c.xml": urlset(
        "https://c.test/c1", "https://c.test/c2", "https://c.test/c3"
    ),
    # Index whose second child is broken
    "https://d.test/index.xml": sitemapindex(
        "https://d.test/good.xml", "https://d.test/bad.xml", "https://d.test/last.xml"
    ),
    "https://d.test/good.xml": urlset("https://d.test/g1"),
    "https://d.test/bad.xml": "<urlset><url><loc>https://d.test/x</loc></urlx></urlset>",
    "https://d.test/last.xml": urlset("https://d.test/l1"),
    # Index whose child is another index
    "https://e.test/index.xml": sitemapindex("https://e.test/nested.xml"),
    "https://e.test/nested.xml": sitemapindex("https://e.test/deeper.xml"),
    # BOM-prefixed leaf
    "http://bom.test/sitemap.xml": BOM_URLSET,
    # Network failure
    "https://error.test/sitemap.xml": requests.exceptions.ConnectionError(
        "Network error"
    ),
}


@pytest.fixture
def fake_session():
    return FakeSession(SITEMAPS)


@pytest.fixture
def config(tmp_path):
    return SitemapConfig(cache_dir=tmp_path / "cache")


@pytest.fixture
def make_processor(tmp_path, fake_session):
    """Build a processor wired to ``fake_session`` with config overrides."""

    def factory(**overrides):
        overrides.setdefault("cache_dir", tmp_path / "cache")
        config = SitemapConfig(**overrides)
        fetcher = SitemapFetcher(config, session=fake_session)
        cache = SitemapCache(config, fetcher=fetcher)
        return SitemapProcessor(config, cache=cache)

    return factory
