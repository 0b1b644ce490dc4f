"""Command line interface for SpeedCrawl."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional, Sequence

from .core.config import CrawlConfig, load_configuration
from .core.errors import SetupError
from .recon.crawler import Crawler
from .recon.session import PlaywrightSession

logger = logging.getLogger("speedcrawl")

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
VERBOSITY_LEVELS = {0: logging.WARNING, 1: logging.INFO, 2: logging.INFO, 3: logging.DEBUG}


def parse_arguments(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="speedcrawl", description="Browser-driven crawler for security testing")
    parser.add_argument("-u", "--url", required=True, help="Target URL to crawl")
    parser.add_argument("-d", "--depth", type=int, default=3, help="Maximum crawl depth")
    parser.add_argument("-p", "--pages", type=int, default=100, help="Maximum pages to crawl")
    parser.add_argument("-o", "--output", default=None, help="Output directory (default: speedcrawl-output/<host>)")
    parser.add_argument("-v", "--verbose", type=int, default=1, choices=range(0, 4), help="Verbosity level (0-3)")
    parser.add_argument("--formats", default="json", help="Output formats: json,jsonl,har,http")
    parser.add_argument("--submit-forms", action="store_true", help="Submit forms automatically")
    parser.add_argument("--deep-js-analysis", action="store_true", help="Analyze same-origin scripts for endpoints")
    parser.add_argument(
        "--no-extract-secrets", dest="extract_secrets", action="store_false", help="Skip secret scanning"
    )
    parser.add_argument("--include-subdomains", metavar="PATTERN", help="Subdomain pattern, e.g. *.example.com")
    parser.add_argument("--any-origin", dest="same_origin", action="store_false", help="Follow links to any host")
    parser.add_argument("--blocked-extensions", default=None, help="Comma-separated extensions to skip")
    parser.add_argument("--headful", action="store_true", help="Show the browser window")
    parser.add_argument("--user-agent", default=None, help="Custom User-Agent")
    parser.add_argument("--proxy", default=None, help="HTTP/HTTPS proxy URL")
    parser.add_argument("--no-ssl-check", action="store_true", help="Ignore TLS certificate errors")
    parser.add_argument("--request-delay", type=int, default=None, help="Delay between visits (ms)")
    parser.add_argument("--timeout", type=int, default=None, help="Navigation timeout (ms)")
    parser.add_argument("--max-failures", type=int, default=5, help="Consecutive navigation failures before stopping")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> CrawlConfig:
    return load_configuration(
        args.url,
        args.output,
        formats=args.formats,
        blocked_extensions=args.blocked_extensions,
        headless=False if args.headful else None,
        proxy=args.proxy,
        user_agent=args.user_agent,
        navigation_timeout_ms=args.timeout,
        request_delay_ms=args.request_delay,
        max_pages=args.pages,
        max_depth=args.depth,
        same_origin=args.same_origin,
        include_subdomains=args.include_subdomains,
        deep_js_analysis=args.deep_js_analysis,
        extract_secrets=args.extract_secrets,
        submit_forms=args.submit_forms,
        ignore_https_errors=args.no_ssl_check,
        max_consecutive_failures=args.max_failures,
    )


def configure_logging(output_dir: Path, *, verbosity: int, debug: bool) -> None:
    level = logging.DEBUG if debug else VERBOSITY_LEVELS.get(verbosity, logging.INFO)
    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    for handler in list(root.handlers):
        root.removeHandler(handler)

    console = logging.StreamHandler()
    console.setLevel(level)
    console.setFormatter(logging.Formatter("[%(levelname)s] %(message)s"))
    root.addHandler(console)

    try:
        output_dir.mkdir(parents=True, exist_ok=True)
        combined = logging.FileHandler(output_dir / "speedcrawl-combined.log", encoding="utf-8")
        combined.setLevel(logging.DEBUG if debug else logging.INFO)
        errors = logging.FileHandler(output_dir / "speedcrawl-error.log", encoding="utf-8")
        errors.setLevel(logging.ERROR)
    except OSError as exc:
        raise SetupError(f"Output directory {output_dir} is not writable: {exc}") from exc
    for handler in (combined, errors):
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(handler)


def run_cli(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_arguments(argv)
    try:
        config = build_config(args)
        configure_logging(Path(config.output_dir), verbosity=args.verbose, debug=args.debug)
    except SetupError as exc:
        print(f"[!] {exc}", file=sys.stderr)
        return 1

    logger.info("Target: %s", config.target_url)
    logger.info("Scope: %d pages, depth %d", config.max_pages, config.max_depth)
    logger.info("Output: %s (%s)", config.output_dir, ", ".join(sorted(config.formats)))

    try:
        with PlaywrightSession(config) as session:
            summary = Crawler(config, session).run()
    except SetupError as exc:
        logger.error("%s", exc)
        return 1

    print("\n=== Crawl summary ===")
    print(f" - Pages crawled: {summary.pages_processed}")
    print(f" - Forms submitted: {summary.forms} ({summary.fields_processed} fields)")
    print(f" - HTTP requests: {summary.total_requests}")
    print(f" - Endpoints: {summary.endpoints}")
    print(f" - Secrets: {summary.secrets}")
    print(f" - Technologies: {summary.technologies}")
    print(f" - Duration: {summary.duration_seconds:.2f}s")
    print(f"[+] Results saved in {config.output_dir}")
    return 0


def main() -> None:
    sys.exit(run_cli())


if __name__ == "__main__":
    main()
