"""Configuration loading and validation for a crawl run."""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Optional, Union
from urllib.parse import urlparse

from dotenv import load_dotenv

from .errors import SetupError

SUPPORTED_FORMATS = frozenset({"json", "jsonl", "har", "http"})
DEFAULT_FORMATS = frozenset({"json"})
DEFAULT_BLOCKED_EXTENSIONS = ("jpg", "png", "gif", "css", "woff", "woff2", "svg", "ico", "js", "map")
DEFAULT_OUTPUT_ROOT = Path("speedcrawl-output")
DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

ListLike = Union[str, Iterable[str], None]


@dataclass(frozen=True, slots=True)
class ScoringWeights:
    """Weights used to rank captured requests for the canonical raw request."""

    post: int = 5
    form_body: int = 5
    json_body: int = 4
    query_per_param: int = 1
    query_cap: int = 3


@dataclass(slots=True)
class CrawlConfig:
    """Holds runtime options for a full crawl execution."""

    target_url: str
    output_dir: Path
    max_pages: int = 100
    max_depth: int = 3
    formats: frozenset[str] = DEFAULT_FORMATS
    same_origin: bool = True
    include_subdomains: Optional[str] = None
    blocked_extensions: frozenset[str] = frozenset(DEFAULT_BLOCKED_EXTENSIONS)
    request_delay_ms: int = 1000
    navigation_timeout_ms: int = 30000
    headless: bool = True
    deep_js_analysis: bool = False
    extract_secrets: bool = True
    submit_forms: bool = False
    ignore_https_errors: bool = False
    user_agent: str = DEFAULT_USER_AGENT
    proxy: Optional[str] = None
    max_consecutive_failures: int = 5
    max_scripts_per_page: int = 20
    idle_timeout_ms: int = 10000
    headless_grace_ms: int = 2500
    headful_delay_ms: int = 1500
    channel_capacity: int = 1000
    scoring: ScoringWeights = field(default_factory=ScoringWeights)

    @property
    def target_host(self) -> str:
        return (urlparse(self.target_url).hostname or "").lower()

    def wants(self, output_format: str) -> bool:
        return output_format in self.formats


def parse_list(value: ListLike) -> list[str]:
    """Accepts ``"a, b"`` or an iterable and returns the trimmed, non-empty items."""

    if value is None:
        return []
    items = value.split(",") if isinstance(value, str) else list(value)
    return [str(item).strip() for item in items if str(item).strip()]


def default_output_dir(target_url: str) -> Path:
    host = urlparse(target_url).hostname or "target"
    return DEFAULT_OUTPUT_ROOT / re.sub(r"[^a-zA-Z0-9.-]", "-", host)


def _env_flag(name: str) -> Optional[bool]:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return None
    return raw.lower() in {"1", "true", "yes"}


def _env_int(name: str) -> Optional[int]:
    raw = os.getenv(name)
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError as exc:
        raise SetupError(f"{name} must be an integer, got {raw!r}") from exc


def validate_target_url(url: str) -> str:
    candidate = (url or "").strip()
    parsed = urlparse(candidate)
    if parsed.scheme not in {"http", "https"} or not parsed.hostname:
        raise SetupError(f"Invalid target URL: {url!r}")
    return candidate


def load_configuration(
    target_url: str,
    output_dir: Optional[Union[str, Path]] = None,
    *,
    formats: ListLike = None,
    blocked_extensions: ListLike = None,
    headless: Optional[bool] = None,
    proxy: Optional[str] = None,
    user_agent: Optional[str] = None,
    navigation_timeout_ms: Optional[int] = None,
    request_delay_ms: Optional[int] = None,
    **overrides,
) -> CrawlConfig:
    """Builds a validated ``CrawlConfig`` from explicit options and the environment."""

    load_dotenv()  # Loads .env values if present

    url = validate_target_url(target_url)

    selected_formats = frozenset(f.lower() for f in parse_list(formats)) if formats is not None else DEFAULT_FORMATS
    unknown = selected_formats - SUPPORTED_FORMATS
    if unknown:
        raise SetupError(f"Unsupported output format(s): {', '.join(sorted(unknown))}")

    extensions = (
        frozenset(ext.lower().lstrip(".") for ext in parse_list(blocked_extensions))
        if blocked_extensions is not None
        else frozenset(DEFAULT_BLOCKED_EXTENSIONS)
    )

    env_headless = _env_flag("SPEEDCRAWL_HEADLESS")
    env_timeout = _env_int("SPEEDCRAWL_TIMEOUT")
    env_delay = _env_int("SPEEDCRAWL_REQUEST_DELAY")

    config = CrawlConfig(
        target_url=url,
        output_dir=Path(output_dir) if output_dir else default_output_dir(url),
        formats=selected_formats,
        blocked_extensions=extensions,
        headless=headless if headless is not None else (env_headless if env_headless is not None else True),
        proxy=proxy or os.getenv("SPEEDCRAWL_PROXY") or None,
        user_agent=user_agent or os.getenv("SPEEDCRAWL_USER_AGENT") or DEFAULT_USER_AGENT,
        navigation_timeout_ms=(
            navigation_timeout_ms if navigation_timeout_ms is not None else (env_timeout if env_timeout is not None else 30000)
        ),
        request_delay_ms=request_delay_ms if request_delay_ms is not None else (env_delay if env_delay is not None else 1000),
        **overrides,
    )
    _validate(config)
    return config


def _validate(config: CrawlConfig) -> None:
    if config.max_pages < 1:
        raise SetupError("max_pages must be at least 1")
    if config.max_depth < 0:
        raise SetupError("max_depth cannot be negative")
    if config.request_delay_ms < 0 or config.navigation_timeout_ms < 0:
        raise SetupError("delays and timeouts cannot be negative")
    if config.max_consecutive_failures < 1:
        raise SetupError("max_consecutive_failures must be at least 1")
    if config.channel_capacity < 1:
        raise SetupError("channel_capacity must be at least 1")
    pattern = config.include_subdomains
    if pattern is not None and not pattern.strip():
        raise SetupError("include_subdomains pattern cannot be empty")
