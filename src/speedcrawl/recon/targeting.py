from __future__ import annotations

from dataclasses import dataclass, field
from fnmatch import fnmatch
from typing import Optional
from urllib.parse import urlsplit, urlunsplit

from ..core.config import CrawlConfig

CRAWLABLE_SCHEMES = frozenset({"http", "https"})


def strip_fragment(url: str) -> str:
    parsed = urlsplit(url)
    return urlunsplit(parsed._replace(fragment=""))


def normalize_url(url: str) -> str:
    """Dedup key: lower-cased scheme and host, path (``/`` when empty) and query."""

    parsed = urlsplit(url.strip())
    path = parsed.path or "/"
    return urlunsplit((parsed.scheme.lower(), parsed.netloc.lower(), path, parsed.query, ""))


def path_extension(url: str) -> str:
    """Returns the lower-cased extension of the last path segment, or ``""``."""

    segment = urlsplit(url).path.rsplit("/", 1)[-1]
    if "." not in segment:
        return ""
    return segment.rsplit(".", 1)[-1].lower()


@dataclass(slots=True)
class ScopeFilter:
    """Encapsulates origin, subdomain and extension rules for crawl candidates."""

    base_host: str
    same_origin: bool = True
    subdomain_pattern: Optional[str] = None
    blocked_extensions: frozenset[str] = field(default_factory=frozenset)

    @classmethod
    def from_config(cls, config: CrawlConfig) -> "ScopeFilter":
        return cls(
            base_host=config.target_host,
            same_origin=config.same_origin,
            subdomain_pattern=config.include_subdomains,
            blocked_extensions=config.blocked_extensions,
        )

    def is_allowed(self, url: str) -> bool:
        try:
            parsed = urlsplit(url)
            hostname = (parsed.hostname or "").lower()
        except ValueError:
            return False

        if parsed.scheme.lower() not in CRAWLABLE_SCHEMES or not hostname:
            return False
        if self.is_blocked_extension(url):
            return False
        return self.host_in_scope(hostname)

    def host_in_scope(self, hostname: str) -> bool:
        hostname = hostname.lower()
        if not self.same_origin or hostname == self.base_host:
            return True
        if not self.subdomain_pattern:
            return False
        if not hostname.endswith(f".{self.base_host}"):
            return False
        return fnmatch(hostname, self.subdomain_pattern.lower())

    def is_blocked_extension(self, url: str) -> bool:
        extension = path_extension(url)
        return bool(extension) and extension in self.blocked_extensions
