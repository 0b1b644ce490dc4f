"""Scripted stand-ins for the browser session and page analyzers."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from speedcrawl.core.config import CrawlConfig, load_configuration
from speedcrawl.core.errors import NavigationError
from speedcrawl.core.models import CapturedRequest, CapturedResponse, Finding, FormOutcome


@dataclass
class FakePage:
    title: str = "Page"
    links: List[str] = field(default_factory=list)
    html: str = "<html></html>"
    requests: List[CapturedRequest] = field(default_factory=list)
    status: int = 200
    fail: bool = False


class FakeSession:
    """Serves pages from a dict and replays their traffic into the channel."""

    def __init__(self, pages: Dict[str, FakePage], scripts: Optional[Dict[str, str]] = None) -> None:
        self.pages = pages
        self.scripts = scripts or {}
        self.channel = None
        self.navigations: List[str] = []
        self.fetched: List[str] = []
        self.settle_calls: List[dict] = []
        self._current: Optional[FakePage] = None

    def attach(self, channel) -> None:
        self.channel = channel

    def navigate(self, url: str, timeout_ms: int) -> None:
        self.navigations.append(url)
        page = self.pages.get(url)
        if page is None or page.fail:
            self._current = None
            raise NavigationError(url, "net::ERR_CONNECTION_REFUSED")
        self._current = page
        for request in page.requests:
            if self.channel is not None:
                self.channel.publish(request)
                self.channel.publish(
                    CapturedResponse.build(request.method, request.url, page.status, {"Content-Type": "text/html"})
                )

    def settle(self, *, wait_for_idle: bool, idle_timeout_ms: int, grace_ms: int) -> None:
        self.settle_calls.append({"wait_for_idle": wait_for_idle, "grace_ms": grace_ms})

    def current_requests(self) -> List[CapturedRequest]:
        return list(self._page().requests)

    def title(self) -> str:
        return self._page().title

    def content(self) -> str:
        return self._page().html

    def extract_links(self) -> List[str]:
        return list(self._page().links)

    def fetch_text(self, url: str) -> Optional[str]:
        self.fetched.append(url)
        return self.scripts.get(url)

    def cookies(self) -> List[dict]:
        return []

    def _page(self) -> FakePage:
        assert self._current is not None, "navigate() first"
        return self._current


class StaticAnalyzer:
    """Returns the same findings for every piece of content it sees."""

    def __init__(self, kind: str, values: List[str]) -> None:
        self.kind = kind
        self.values = values
        self.sources: List[str] = []

    def analyze(self, content: str, source: str) -> List[Finding]:
        self.sources.append(source)
        return [Finding(kind=self.kind, value=value, source=source) for value in self.values]


class ExplodingAnalyzer:
    def analyze(self, content: str, source: str) -> List[Finding]:
        raise RuntimeError("analyzer crashed")


class ExplodingForms:
    def process_form(self, session, *, submit: bool = False) -> FormOutcome:
        raise RuntimeError("form went away")


class CountingForms:
    """Fills three fields and submits only when asked to."""

    def __init__(self) -> None:
        self.submit_flags: List[bool] = []

    def process_form(self, session, *, submit: bool = False) -> FormOutcome:
        self.submit_flags.append(submit)
        return FormOutcome(fields_processed=3, submitted=submit)


def make_config(tmp_path: Path, url: str = "https://example.com", **overrides) -> CrawlConfig:
    overrides.setdefault("request_delay_ms", 0)
    return load_configuration(url, tmp_path / "out", **overrides)
