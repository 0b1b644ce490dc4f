"""Interfaces for the page analyzers the visit pipeline drives.

The crawler only decides when these run and how their findings are merged;
detection logic lives in the implementations plugged in here.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, List, Protocol, Sequence
from urllib.parse import parse_qsl, urlsplit

from ..core.models import CapturedRequest, Finding, FormOutcome
from ..traffic.correlator import is_asset

if TYPE_CHECKING:  # pragma: no cover - import-time type checking only
    from ..recon.session import BrowserSession


class ContentAnalyzer(Protocol):
    """Technology, static endpoint or secret analysis of page or script text."""

    def analyze(self, content: str, source: str) -> List[Finding]:
        ...


class RuntimeEndpointCollector(Protocol):
    def collect(self, requests: Sequence[CapturedRequest], page_url: str) -> List[Finding]:
        ...


class FormInteractor(Protocol):
    """Fills the page's forms; only submits them when ``submit`` is true."""

    def process_form(self, session: "BrowserSession", *, submit: bool = False) -> FormOutcome:
        ...


class CaptchaHandler(Protocol):
    def handle(self, session: "BrowserSession") -> bool:
        ...


class NullAnalyzer:
    def analyze(self, content: str, source: str) -> List[Finding]:
        return []


class NullFormInteractor:
    def process_form(self, session: "BrowserSession", *, submit: bool = False) -> FormOutcome:
        return FormOutcome()


class NullCaptchaHandler:
    def handle(self, session: "BrowserSession") -> bool:
        return False


class RequestLogEndpointCollector:
    """Reports same-host API-like calls the page made while loading."""

    def collect(self, requests: Sequence[CapturedRequest], page_url: str) -> List[Finding]:
        host = (urlsplit(page_url).hostname or "").lower()
        findings: List[Finding] = []
        for request in requests:
            parsed = urlsplit(request.url)
            if (parsed.hostname or "").lower() != host or is_asset(request.url):
                continue
            if request.resource_type == "document" and not request.body:
                continue
            if request.resource_type not in {"xhr", "fetch"} and not (
                request.body or parse_qsl(parsed.query)
            ):
                continue
            findings.append(Finding(kind="endpoint", value=parsed.path or "/", source="runtime"))
        return findings


@dataclass
class Collaborators:
    """Bundle of the pluggable analyzers used by each visit."""

    technology: ContentAnalyzer = field(default_factory=NullAnalyzer)
    static_endpoints: ContentAnalyzer = field(default_factory=NullAnalyzer)
    secrets: ContentAnalyzer = field(default_factory=NullAnalyzer)
    runtime_endpoints: RuntimeEndpointCollector = field(default_factory=RequestLogEndpointCollector)
    forms: FormInteractor = field(default_factory=NullFormInteractor)
    captcha: CaptchaHandler = field(default_factory=NullCaptchaHandler)
