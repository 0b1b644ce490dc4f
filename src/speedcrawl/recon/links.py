from __future__ import annotations

from typing import Iterable, List, Optional
from urllib.parse import urljoin, urlsplit

from bs4 import BeautifulSoup

from .targeting import CRAWLABLE_SCHEMES, strip_fragment

UNSAFE_PREFIXES = ("javascript:", "mailto:", "tel:", "data:")


def is_crawlable_href(href: Optional[str]) -> bool:
    """Rejects empty, fragment-only and non-navigational hrefs."""

    if not href:
        return False
    value = href.strip()
    if not value or value.startswith("#"):
        return False
    return not value.lower().startswith(UNSAFE_PREFIXES)


def filter_links(links: Iterable[str]) -> List[str]:
    """Keeps absolute http(s) links, fragment stripped, first occurrence only."""

    seen: set[str] = set()
    accepted: List[str] = []
    for link in links:
        if not is_crawlable_href(link):
            continue
        if urlsplit(link).scheme.lower() not in CRAWLABLE_SCHEMES:
            continue
        cleaned = strip_fragment(link.strip())
        if cleaned in seen:
            continue
        seen.add(cleaned)
        accepted.append(cleaned)
    return accepted


def gather_from_html(html: str, base_url: str) -> List[str]:
    """Absolute anchor URLs found in raw HTML."""

    soup = BeautifulSoup(html, "html.parser")
    links: List[str] = []
    for anchor in soup.find_all("a", href=True):
        href = anchor.get("href")
        if is_crawlable_href(href):
            links.append(urljoin(base_url, href.strip()))
    return links


def script_sources(html: str, base_url: str) -> List[str]:
    """External ``.js`` script URLs referenced by the page, in document order."""

    soup = BeautifulSoup(html, "html.parser")
    sources: List[str] = []
    for script in soup.find_all("script", src=True):
        src = urljoin(base_url, script.get("src", "").strip())
        path = urlsplit(src).path.lower()
        if path.endswith(".js") and src not in sources:
            sources.append(src)
    return sources
