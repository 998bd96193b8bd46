"""Configuration for the sitemap resolver.

A single :class:`SitemapConfig` value is built once, usually by the CLI, and
handed to the cache, fetcher and processor constructors.

Defaults can be overridden through environment variables, or a ``.env`` file
placed in the working directory:

```env
# .env
SITEMAPPED_CACHE_DIR=/var/cache/sitemap
SITEMAPPED_MAX_RETRIES=5
SITEMAPPED_TIMEOUT=30
SITEMAPPED_USER_AGENT=ExampleBot/1.0 (+webmaster@example.com)
```

The variables are loaded via *python‑dotenv*.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, replace
from enum import Enum
from pathlib import Path
from typing import Callable, TypeVar

import platformdirs
from dotenv import load_dotenv

from .errors import ArgumentError

VERSION = "0.1.5"

# --- Environment configuration ------------------------------------------------

# Load variables from .env if present; silently ignore missing file
load_dotenv()

ENV_PREFIX = "SITEMAPPED_"

DEFAULT_CACHE_DIR = Path(platformdirs.user_cache_dir("sitemap"))
DEFAULT_MAX_RETRIES = 3
DEFAULT_TIMEOUT = 15.0
DEFAULT_BACKOFF_FACTOR = 0.5
DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/126.0.0.0 Safari/537.36"
)

T = TypeVar("T")


class ErrorPolicy(str, Enum):
    """What to do when one sitemap of an index cannot be fetched or decoded."""

    ABORT = "abort"
    SKIP = "skip"


def _env(name: str, default: T, convert: Callable[[str], T]) -> T:
    raw = os.getenv(ENV_PREFIX + name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return convert(raw.strip())
    except ValueError as e:
        raise ArgumentError(f"Invalid value for {ENV_PREFIX + name}: {raw!r}") from e


@dataclass(frozen=True)
class SitemapConfig:
    """Settings shared by every component of a single run."""

    cache_dir: Path = DEFAULT_CACHE_DIR
    force: bool = False
    max_retries: int = DEFAULT_MAX_RETRIES
    timeout: float = DEFAULT_TIMEOUT
    user_agent: str = DEFAULT_USER_AGENT
    insecure: bool = False
    backoff_factor: float = DEFAULT_BACKOFF_FACTOR
    on_error: ErrorPolicy = ErrorPolicy.ABORT

    def __post_init__(self):
        # Accept plain strings for convenience
        object.__setattr__(self, "cache_dir", Path(self.cache_dir))
        try:
            object.__setattr__(self, "on_error", ErrorPolicy(self.on_error))
        except ValueError as e:
            choices = ", ".join(policy.value for policy in ErrorPolicy)
            raise ArgumentError(
                f"on_error must be one of {choices}, got {self.on_error!r}."
            ) from e

        if self.max_retries < 1:
            raise ArgumentError("max_retries must be a positive integer.")
        if self.timeout <= 0:
            raise ArgumentError("timeout must be greater than zero.")
        if self.backoff_factor < 0:
            raise ArgumentError("backoff_factor must not be negative.")

    @classmethod
    def from_env(cls, **overrides) -> "SitemapConfig":
        """Build a config from ``SITEMAPPED_*`` variables plus *overrides*.

        Overrides whose value is ``None`` are ignored, so argparse results can
        be passed straight through.
        """
        config = cls(
            cache_dir=_env("CACHE_DIR", DEFAULT_CACHE_DIR, Path),
            max_retries=_env("MAX_RETRIES", DEFAULT_MAX_RETRIES, int),
            timeout=_env("TIMEOUT", DEFAULT_TIMEOUT, float),
            user_agent=_env("USER_AGENT", DEFAULT_USER_AGENT, str),
        )
        explicit = {k: v for k, v in overrides.items() if v is not None}
        return replace(config, **explicit) if explicit else config
