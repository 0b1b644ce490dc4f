"""Cookie helpers shared by the browser session."""

from __future__ import annotations

from typing import Iterable, Optional, Sequence


def filter_cookies(cookies: Sequence[dict], hostname: str) -> list[dict]:
    """Keeps cookies whose domain is ``hostname`` or one of its parents."""

    if not cookies or not hostname:
        return []

    hostname = hostname.lower()
    allowed: list[dict] = []
    for cookie in cookies:
        domain = (cookie.get("domain") or "").lstrip(".").lower()
        if not domain:
            continue
        if hostname == domain or hostname.endswith(f".{domain}"):
            allowed.append(cookie)
    return allowed


def cookie_jar(cookies: Optional[Iterable[dict]]) -> dict[str, str]:
    if not cookies:
        return {}
    jar: dict[str, str] = {}
    for cookie in cookies:
        name = cookie.get("name")
        value = cookie.get("value")
        if name and value:
            jar[name] = value
    return jar
