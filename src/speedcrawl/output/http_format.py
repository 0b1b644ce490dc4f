"""Raw HTTP/1.1 rendering of captured requests."""

from __future__ import annotations

from typing import Dict, List, Tuple
from urllib.parse import urlsplit

from ..core.models import CapturedRequest

CRLF = "\r\n"
DROPPED_HEADERS = frozenset({"host", "content-length"})


def looks_like_json(body: str) -> bool:
    stripped = body.lstrip()
    return stripped.startswith("{") or stripped.startswith("[")


def host_header(url: str) -> str:
    """``host[:port]`` for ``url`` with any ``user:pass@`` userinfo left out."""

    parsed = urlsplit(url)
    host = parsed.hostname or ""
    if ":" in host:
        host = f"[{host}]"
    try:
        port = parsed.port
    except ValueError:
        port = None
    return f"{host}:{port}" if port is not None else host


def format_http_request(request: CapturedRequest) -> str:
    """Renders ``request`` as replayable raw HTTP text.

    ``Host`` always comes first, ``Content-Length`` is recomputed from the
    UTF-8 body and ``Connection: close`` is added when absent.
    """

    parsed = urlsplit(request.url)
    target = parsed.path or "/"
    if parsed.query:
        target = f"{target}?{parsed.query}"

    body = request.body or ""
    headers: List[Tuple[str, str]] = [
        (name, value) for name, value in request.headers if name.lower() not in DROPPED_HEADERS
    ]
    present = {name.lower() for name, _ in headers}

    if body:
        if "content-type" not in present and looks_like_json(body):
            headers.append(("Content-Type", "application/json"))
        headers.append(("Content-Length", str(len(body.encode("utf-8")))))
    if "connection" not in present:
        headers.append(("Connection", "close"))

    lines = [f"{request.method} {target} HTTP/1.1", f"Host: {host_header(request.url)}"]
    lines.extend(f"{name}: {value}" for name, value in headers)
    return CRLF.join(lines) + CRLF + CRLF + body


def snake_case_headers(headers: Dict[str, str]) -> Dict[str, str]:
    return {str(key).lower().replace("-", "_"): value for key, value in headers.items()}
