"""Module for classifying and decoding sitemap XML content."""

from __future__ import annotations

import codecs
import gzip
import logging
import re
import xml.etree.ElementTree as ET
import zlib
from pathlib import Path
from typing import BinaryIO, Iterator, Optional, Tuple

from .errors import DecodeError, FilesystemError, RootElementMismatch
from .models import DocumentKind, IndexEntry, UrlEntry

logger = logging.getLogger(__name__)

SNIFF_SIZE = 1024
INDEX_MARKER = DocumentKind.INDEX.root_element.encode("ascii")
CHUNK_SIZE = 64 * 1024
XML_DECL_ENCODING = re.compile(
    rb"""(<\?xml[^>]*?\bencoding\s*=\s*["'])([A-Za-z][A-Za-z0-9._-]*)["']"""
)
XML_DECL_ENCODING_TEXT = re.compile(
    r"""(<\?xml[^>]*?\bencoding\s*=\s*["'])[A-Za-z][A-Za-z0-9._-]*"""
)


def local_name(tag: str) -> str:
    """Strip a ``{namespace}`` prefix from an element tag."""
    return tag.rpartition("}")[2]


def classify(path: Path) -> DocumentKind:
    """Guess whether the file at *path* is a sitemap index or a url-set.

    Only the first ``SNIFF_SIZE`` bytes are looked at: if they contain the
    ``sitemapindex`` marker the document is an index. A shorter file is
    classified from whatever could be read.
    """
    try:
        with open(path, "rb") as f:
            head = f.read(SNIFF_SIZE)
    except OSError as e:
        raise FilesystemError(f"Cannot read {path}: {e}") from e

    if INDEX_MARKER in head:
        return DocumentKind.INDEX
    return DocumentKind.LEAF


def declared_encoding(head: bytes) -> Optional[str]:
    """Return the codec a document must be transcoded from, if any.

    Looks at the byte order mark and the ``encoding`` pseudo-attribute of the
    XML declaration in *head*. ``None`` means the bytes can go to expat as
    they are: UTF-8 and UTF-16 documents, and documents without a
    declaration. Raises ``LookupError`` for a codec Python does not know.
    """
    if head.startswith(codecs.BOM_UTF8):
        return None
    if head[:2] in (codecs.BOM_UTF16_LE, codecs.BOM_UTF16_BE):
        return None
    if b"\x00" in head[:4]:
        return None

    match = XML_DECL_ENCODING.match(head)
    if match is None:
        return None
    encoding = codecs.lookup(match.group(2).decode("ascii")).name
    if encoding == "utf-8" or encoding.startswith("utf-16"):
        return None
    return encoding


def utf8_chunks(stream: BinaryIO) -> Iterator[bytes]:
    """Read *stream* in chunks, re-encoding it as UTF-8 where needed.

    Expat refuses multi-byte charsets other than UTF-8 and UTF-16, so
    documents declaring any other charset (Shift_JIS, GB2312, Big5, ...) are
    decoded with an incremental codec and their declaration is rewritten to
    say ``UTF-8``.
    """
    head = stream.read(SNIFF_SIZE)
    encoding = declared_encoding(head)
    if encoding is None:
        data = head
        while data:
            yield data
            data = stream.read(CHUNK_SIZE)
        return

    logger.debug("Transcoding %s document to UTF-8", encoding)
    decoder = codecs.getincrementaldecoder(encoding)()
    text = decoder.decode(head)
    text = XML_DECL_ENCODING_TEXT.sub(r"\g<1>UTF-8", text, count=1)
    yield text.encode("utf-8")
    data = stream.read(CHUNK_SIZE)
    while data:
        yield decoder.decode(data).encode("utf-8")
        data = stream.read(CHUNK_SIZE)
    yield decoder.decode(b"", final=True).encode("utf-8")


class SitemapParser:
    """Decodes sitemap index and url-set documents into entries.

    Input streams are binary. The XML declaration picks the document's
    encoding, defaulting to UTF-8; charsets expat cannot read natively are
    transcoded first by :func:`utf8_chunks`. Elements are matched on their
    local name, so the sitemaps.org namespace is optional.
    """

    def decode_index(
        self, stream: BinaryIO, *, url: Optional[str] = None
    ) -> Iterator[IndexEntry]:
        """Yield one :class:`IndexEntry` per ``<sitemap>``, in document order."""
        for fields in self._iter_entries(stream, DocumentKind.INDEX, "sitemap", url):
            loc = fields.get("loc")
            if loc:
                yield IndexEntry(loc=loc, lastmod=fields.get("lastmod") or None)

    def decode_urlset(
        self, stream: BinaryIO, *, url: Optional[str] = None
    ) -> Iterator[UrlEntry]:
        """Yield one :class:`UrlEntry` per ``<url>``, in document order."""
        for fields in self._iter_entries(stream, DocumentKind.LEAF, "url", url):
            loc = fields.get("loc")
            if loc:
                yield UrlEntry(loc=loc)

    def decode(
        self, stream: BinaryIO, kind: DocumentKind, *, url: Optional[str] = None
    ) -> Iterator:
        if kind is DocumentKind.INDEX:
            return self.decode_index(stream, url=url)
        return self.decode_urlset(stream, url=url)

    def _iter_entries(
        self,
        stream: BinaryIO,
        kind: DocumentKind,
        entry_tag: str,
        url: Optional[str],
    ) -> Iterator[dict]:
        """Stream the direct children of the root named *entry_tag*.

        Each entry is reduced to a dict of its direct child elements' trimmed
        text, keyed by local name. Nested extension elements such as
        ``<image:image><image:loc>`` are therefore ignored.
        """
        root = None
        depth = 0
        for event, elem in self._iterparse(stream, url):
            if event == "start":
                depth += 1
                if root is None:
                    root = elem
                    found = local_name(elem.tag)
                    if found != kind.root_element:
                        raise RootElementMismatch(kind.root_element, found, url=url)
                continue

            depth -= 1
            if depth == 1 and local_name(elem.tag) == entry_tag:
                yield {
                    local_name(child.tag): (child.text or "").strip()
                    for child in elem
                }
                # Drop processed entries to keep memory flat on large sitemaps
                root.clear()

    @staticmethod
    def _iterparse(
        stream: BinaryIO, url: Optional[str]
    ) -> Iterator[Tuple[str, ET.Element]]:
        parser = ET.XMLPullParser(events=("start", "end"))
        try:
            for data in utf8_chunks(stream):
                parser.feed(data)
                yield from parser.read_events()
            parser.close()
            yield from parser.read_events()
        except ET.ParseError as e:
            raise DecodeError(f"Error parsing XML from {url}: {e}", url=url) from e
        except (gzip.BadGzipFile, EOFError, zlib.error) as e:
            raise DecodeError(f"Error decompressing {url}: {e}", url=url) from e
        except (LookupError, ValueError) as e:
            # Unknown codec, or bytes that do not match the declared charset
            raise DecodeError(f"Error decoding {url}: {e}", url=url) from e
        except OSError as e:
            raise FilesystemError(f"Error reading {url}: {e}", url=url) from e
