"""Main entry point for the sitemapped command line tool."""

import argparse
import logging
import sys

from .config import VERSION, ErrorPolicy, SitemapConfig
from .errors import ArgumentError, SitemapError
from .processor import SitemapProcessor


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sitemapped",
        description=(
            "Turn a sitemap or sitemap index URL into a list of URLs, "
            "caching downloaded sitemaps on disk."
        ),
    )
    parser.add_argument(
        "url", nargs="?", help="The sitemap or sitemap index URL to resolve."
    )
    parser.add_argument(
        "--version", action="store_true", help="Show version and exit."
    )
    parser.add_argument(
        "-c",
        "--cache-dir",
        default=None,
        help="Path to cache directory (default: <user cache dir>/sitemap).",
    )
    parser.add_argument(
        "-f",
        "--force",
        action="store_true",
        default=None,
        help="Force redownload, even if a cached file exists.",
    )
    parser.add_argument(
        "-r",
        "--max-retries",
        type=int,
        default=None,
        help="Maximum number of HTTP attempts per download (default: 3).",
    )
    parser.add_argument(
        "-T",
        "--timeout",
        type=float,
        default=None,
        help=(
            "Timeout in seconds for each download attempt, body included "
            "(default: 15)."
        ),
    )
    parser.add_argument(
        "--ua",
        "--user-agent",
        dest="user_agent",
        default=None,
        help="User-Agent header sent with every request.",
    )
    parser.add_argument(
        "-k",
        "--insecure",
        action="store_true",
        default=None,
        help="Do not verify TLS certificates.",
    )
    parser.add_argument(
        "--on-error",
        choices=[policy.value for policy in ErrorPolicy],
        default=None,
        help="What to do when a sitemap listed in an index fails "
        "(default: abort).",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Log progress to stderr; repeat for debug output.",
    )
    return parser


def configure_logging(verbosity: int) -> None:
    if verbosity >= 2:
        level = logging.DEBUG
    elif verbosity == 1:
        level = logging.INFO
    else:
        level = logging.WARNING
    logging.basicConfig(
        level=level, format="%(levelname)s: %(message)s", stream=sys.stderr
    )


def main(argv=None):
    """Parses command-line arguments and writes the resolved URLs to stdout."""
    args = build_parser().parse_args(argv)

    if args.version:
        print(VERSION)
        sys.exit(0)

    configure_logging(args.verbose)

    try:
        if not args.url:
            raise ArgumentError("a sitemap.xml URL is required")
        config = SitemapConfig.from_env(
            cache_dir=args.cache_dir,
            force=args.force,
            max_retries=args.max_retries,
            timeout=args.timeout,
            user_agent=args.user_agent,
            insecure=args.insecure,
            on_error=args.on_error,
        )
    except ArgumentError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    processor = SitemapProcessor(config)

    try:
        processor.run(args.url, sys.stdout)
    except (SitemapError, IOError) as e:
        print(f"An error occurred during processing: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
