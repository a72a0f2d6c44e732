"""
Command-line interface for the crawler.
"""
from __future__ import annotations

import argparse
import sys
from datetime import datetime
from pathlib import Path
from typing import List, Optional
from urllib.parse import urlparse

from fedcrawler.config import (
    DEFAULT_SEED,
    DEFAULT_TIMEOUT_S,
    DEFAULT_USER_AGENT,
    DEFAULT_WORKERS,
    load_configuration,
)
from fedcrawler.core import CrawlStats, crawl
from fedcrawler.report import build_report, save_report


def print_summary(stats: CrawlStats) -> None:
    """Print crawl summary to stderr."""
    sys.stderr.write("=" * 50 + "\n")
    sys.stderr.write("CRAWL SUMMARY\n")
    sys.stderr.write("=" * 50 + "\n\n")

    sys.stderr.write(f"Alive instances:        {stats.instances_alive}\n")
    sys.stderr.write(f"Dead instances:         {stats.instances_dead}\n")
    sys.stderr.write(f"Followers failures:     {stats.followers_failures}\n\n")

    if stats.error_counts:
        sys.stderr.write("Errors by type:\n")
        for error_type, count in sorted(stats.error_counts.items()):
            sys.stderr.write(f"  {error_type}: {count}\n")
    else:
        sys.stderr.write("No errors encountered.\n")

    sys.stderr.write("\n")


def generate_output_path(seed_url: str, suffix: str, started: Optional[datetime] = None) -> Path:
    """Generate output path: indexes/{hostname}_{datetime}.{suffix}"""
    parsed = urlparse(seed_url)
    hostname = parsed.hostname or "unknown"
    # Sanitize hostname for filename (replace dots with underscores)
    hostname_safe = hostname.replace(".", "_")
    timestamp = (started or datetime.now()).strftime("%Y%m%d_%H%M%S")
    return Path("indexes") / f"{hostname_safe}_{timestamp}.{suffix}"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Index the federation reachable from a seed instance via its following/followers collections."
    )
    parser.add_argument("seed_url", nargs="?", default=DEFAULT_SEED, help=f"Seed instance URL (default: {DEFAULT_SEED})")
    parser.add_argument("--proxy", help="SOCKS proxy for onion hosts, e.g. 127.0.0.1:9050 (default: $FEDCRAWL_PROXY)")
    parser.add_argument("--force-proxy", action="store_true", default=None, help="Route every request through the proxy")
    parser.add_argument("--no-onion", dest="onion_support", action="store_false", default=None,
                        help="Refuse .onion instances instead of routing them through the proxy")
    parser.add_argument("--timeout", type=float, default=DEFAULT_TIMEOUT_S,
                        help=f"Request timeout in seconds (default: {DEFAULT_TIMEOUT_S:g})")
    parser.add_argument("--workers", type=int, default=DEFAULT_WORKERS,
                        help=f"Maximum concurrent fetches (default: {DEFAULT_WORKERS})")
    parser.add_argument("--user-agent", default=DEFAULT_USER_AGENT, help="User-Agent header")
    parser.add_argument("--json-out", help="JSON report path, or '-' for stdout (default: auto-generated in indexes/)")
    parser.add_argument("--html-out", help="HTML report path (default: auto-generated in indexes/)")
    parser.add_argument("--pretty", action="store_true", help="Pretty-print JSON")
    parser.add_argument("--verbose", action="store_true", help="Show progress and summary")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the crawler CLI."""
    args = build_parser().parse_args(argv)

    try:
        config = load_configuration(
            args.seed_url,
            proxy=args.proxy,
            force_proxy=args.force_proxy,
            onion_support=args.onion_support,
            timeout_s=args.timeout,
            user_agent=args.user_agent,
            max_workers=args.workers,
            verbose=args.verbose,
        )
    except ValueError as e:
        sys.stderr.write(f"error: {e}\n")
        return 1

    started = datetime.now()
    registry, stats = crawl(config)
    report = build_report(registry)

    # Print summary if verbose
    if config.verbose:
        print_summary(stats)

    html_path = Path(args.html_out) if args.html_out else generate_output_path(config.seed_url, "html", started)
    try:
        if args.json_out == "-":
            print(report.to_json(pretty=args.pretty))
            html_path.parent.mkdir(parents=True, exist_ok=True)
            html_path.write_text(report.to_html(), encoding="utf-8")
        else:
            json_path = Path(args.json_out) if args.json_out else generate_output_path(config.seed_url, "json", started)
            save_report(report, json_path, html_path, pretty=args.pretty)
            if config.verbose:
                sys.stderr.write(f"JSON report written to: {json_path}\n")
    except OSError as e:
        sys.stderr.write(f"error: could not write report: {e}\n")
        return 1

    if config.verbose:
        sys.stderr.write(f"HTML report written to: {html_path}\n")

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
