"""Module for downloading sitemap files into the cache atomically.

Adds the following on top of a plain ``requests.get``:

* Configurable "User‑Agent" header and a timeout covering the whole
  request, body included
* Retries with exponential backoff on connection errors, read timeouts and
  HTTP 429, via a ``urllib3`` ``Retry`` policy mounted on the session
* Atomic writes: the body is streamed into ``<destination>.wip`` and only
  renamed onto *destination* once the copy is complete, so a reader never
  sees a truncated cache file

TLS certificates are verified unless the config asks for ``insecure``.
"""

from __future__ import annotations

import logging
import os
import time
from pathlib import Path
from typing import Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .config import SitemapConfig
from .errors import FilesystemError, NetworkError

logger = logging.getLogger(__name__)

WIP_SUFFIX = ".wip"
CHUNK_SIZE = 64 * 1024
RETRY_STATUSES = (429,)


def build_retry(config: SitemapConfig) -> Retry:
    """Translate the configured attempt count into a ``Retry`` policy.

    ``max_retries`` counts attempts, so a value of 3 means one request plus
    two retries.
    """
    return Retry(
        total=config.max_retries - 1,
        backoff_factor=config.backoff_factor,
        status_forcelist=RETRY_STATUSES,
        allowed_methods={"GET"},
        raise_on_status=True,
        respect_retry_after_header=True,
    )


def build_session(config: SitemapConfig) -> requests.Session:
    """Create a session with the configured headers, TLS mode and retries."""
    session = requests.Session()
    adapter = HTTPAdapter(max_retries=build_retry(config))
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    session.headers.update({"User-Agent": config.user_agent})
    session.verify = not config.insecure
    if config.insecure:
        logger.warning("TLS certificate verification is disabled.")
    return session


class DeadlineExceeded(requests.exceptions.Timeout):
    """The response body did not arrive within the request timeout."""


class SitemapFetcher:
    """Downloads a URL into a local path, never exposing a partial file."""

    def __init__(
        self,
        config: SitemapConfig,
        *,
        session: Optional[requests.Session] = None,
    ):
        """Create a new ``SitemapFetcher``.

        Parameters
        ----------
        config
            Run configuration; supplies timeout, user agent, retry and TLS
            settings.
        session
            Pre-built session, mainly for tests. If *None*, one is created
            with :func:`build_session`.
        """
        self.config = config
        self.timeout = config.timeout
        self.session = session if session is not None else build_session(config)

    def fetch(self, url: str, destination: Path) -> Path:
        """Download *url* into *destination* and return the final path.

        The timeout bounds the whole attempt, body included. An attempt that
        runs past it is retried with the same backoff as the session's retry
        policy until ``max_retries`` attempts have been made.

        Raises
        ------
        NetworkError
            If the request fails, times out or returns a non-success status
            once all retries are used up.
        FilesystemError
            If the temporary file cannot be written or renamed. A ``.wip``
            file left behind by a failed download is not removed.
        """
        destination = Path(destination)
        wip = destination.with_name(destination.name + WIP_SUFFIX)
        logger.info("Downloading %s", url)

        attempt = 1
        while True:
            try:
                written = self._download(url, wip)
                break
            except DeadlineExceeded as e:
                if attempt >= self.config.max_retries:
                    raise NetworkError(f"Error fetching {url}: {e}", url=url) from e
                delay = self.config.backoff_factor * (2 ** (attempt - 1))
                logger.warning(
                    "%s (attempt %d of %d), retrying in %.2fs",
                    e,
                    attempt,
                    self.config.max_retries,
                    delay,
                )
                time.sleep(delay)
                attempt += 1
            except requests.exceptions.RequestException as e:
                raise NetworkError(f"Error fetching {url}: {e}", url=url) from e

        try:
            os.replace(wip, destination)
        except OSError as e:
            raise FilesystemError(
                f"Error moving {wip} to {destination}: {e}", url=url
            ) from e

        logger.debug("Wrote %d bytes to %s", written, destination)
        return destination

    def _download(self, url: str, wip: Path) -> int:
        deadline = time.monotonic() + self.timeout
        with self.session.get(url, timeout=self.timeout, stream=True) as resp:
            resp.raise_for_status()  # Raise HTTPError for bad responses (4xx or 5xx)
            return self._write(resp, wip, url, deadline)

    def _write(
        self, resp: requests.Response, wip: Path, url: str, deadline: float
    ) -> int:
        written = 0
        try:
            with open(wip, "wb") as f:
                for chunk in resp.iter_content(chunk_size=CHUNK_SIZE):
                    if chunk:
                        f.write(chunk)
                        written += len(chunk)
                    if time.monotonic() > deadline:
                        raise DeadlineExceeded(
                            f"Timed out after {self.timeout}s reading {url}"
                        )
        except requests.exceptions.RequestException:
            # RequestException subclasses IOError; keep it a network failure
            raise
        except OSError as e:
            raise FilesystemError(f"Error writing {wip}: {e}", url=url) from e
        return written
