"""Cross-page counters and deduplicated discovery sets for one run."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Tuple
from urllib.parse import urlsplit

from .models import Finding, PageResult


def normalize_endpoint(value: str) -> str:
    """Dedup key for an endpoint: its path without query, fragment or trailing slash."""

    raw = (value or "").strip()
    path = urlsplit(raw).path if "://" in raw or raw.startswith("//") else raw.split("?", 1)[0].split("#", 1)[0]
    if not path:
        return "/"
    if not path.startswith("/"):
        path = "/" + path
    if len(path) > 1:
        path = path.rstrip("/") or "/"
    return path


@dataclass
class DiscoverySets:
    """Insertion-ordered sets keyed by the dedup rule of each kind."""

    endpoints: Dict[str, Finding] = field(default_factory=dict)
    secrets: Dict[Tuple[str, str, str], Finding] = field(default_factory=dict)
    technologies: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class RunSummary:
    start_time: str
    end_time: str
    duration_seconds: float
    pages_processed: int
    total_requests: int
    asset_requests: int
    failed_navigations: int
    forms: int
    fields_processed: int
    secrets: int
    endpoints: int
    technologies: int
    js_chunks: int

    def to_dict(self) -> dict:
        return {
            "crawl": {
                "startTime": self.start_time,
                "endTime": self.end_time,
                "duration": f"{self.duration_seconds:.2f}s",
                "pagesProcessed": self.pages_processed,
                "totalRequests": self.total_requests,
                "assetRequests": self.asset_requests,
                "failedNavigations": self.failed_navigations,
            },
            "findings": {
                "forms": self.forms,
                "fieldsProcessed": self.fields_processed,
                "secrets": self.secrets,
                "endpoints": self.endpoints,
                "technologies": self.technologies,
                "jsChunks": self.js_chunks,
            },
        }

    def to_markdown(self) -> str:
        return "\n".join(
            [
                "# SpeedCrawl Summary",
                "",
                f"- Pages: {self.pages_processed}",
                f"- Forms: {self.forms}",
                f"- Fields: {self.fields_processed}",
                f"- Requests: {self.total_requests}",
                f"- Endpoints: {self.endpoints}",
                f"- Secrets: {self.secrets}",
                f"- Technologies: {self.technologies}",
                f"- JS Chunks: {self.js_chunks}",
                f"- Duration: {self.duration_seconds:.2f}s",
            ]
        )


def _iso(epoch: float) -> str:
    return datetime.fromtimestamp(epoch, tz=timezone.utc).isoformat().replace("+00:00", "Z")


class RunAggregator:
    """Single-writer funnel for everything a run discovers.

    All mutation goes through the methods below, each of which holds the
    internal lock, so visits running on different threads can share one
    aggregator.
    """

    def __init__(self, clock=time.time) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self.started_at: float = clock()
        self.finished_at: Optional[float] = None
        self.pages: List[PageResult] = []
        self.discoveries = DiscoverySets()
        self.total_requests = 0
        self.asset_requests = 0
        self.failed_navigations = 0
        self.forms = 0
        self.fields_processed = 0
        self.js_chunks = 0

    def record_page(self, page: PageResult) -> None:
        with self._lock:
            self.pages.append(page)

    def record_request(self, count: int = 1, *, asset: bool = False) -> None:
        with self._lock:
            self.total_requests += count
            if asset:
                self.asset_requests += count

    def record_navigation_failure(self) -> None:
        with self._lock:
            self.failed_navigations += 1

    def record_forms(self, fields_processed: int, submitted: bool) -> None:
        with self._lock:
            self.fields_processed += max(0, int(fields_processed))
            if submitted:
                self.forms += 1

    def record_js_chunks(self, count: int) -> None:
        with self._lock:
            self.js_chunks += max(0, int(count))

    def merge_endpoints(self, findings: Iterable[Finding]) -> int:
        added = 0
        with self._lock:
            for finding in findings:
                if not finding.value:
                    continue
                key = normalize_endpoint(finding.value)
                if key not in self.discoveries.endpoints:
                    self.discoveries.endpoints[key] = finding
                    added += 1
        return added

    def merge_secrets(self, findings: Iterable[Finding]) -> int:
        added = 0
        with self._lock:
            for finding in findings:
                if not finding.value:
                    continue
                key = (finding.kind, finding.value, finding.source)
                if key not in self.discoveries.secrets:
                    self.discoveries.secrets[key] = finding
                    added += 1
        return added

    def merge_technologies(self, names: Iterable[str]) -> int:
        added = 0
        with self._lock:
            for name in names:
                cleaned = (name or "").strip()
                if not cleaned:
                    continue
                key = cleaned.casefold()
                if key not in self.discoveries.technologies:
                    self.discoveries.technologies[key] = cleaned
                    added += 1
        return added

    def finish(self) -> None:
        with self._lock:
            self.finished_at = self._clock()

    @property
    def endpoints(self) -> List[str]:
        return list(self.discoveries.endpoints)

    @property
    def secrets(self) -> List[Finding]:
        return list(self.discoveries.secrets.values())

    @property
    def technologies(self) -> List[str]:
        return list(self.discoveries.technologies.values())

    @property
    def page_urls(self) -> List[str]:
        return [page.url for page in self.pages]

    def summary(self) -> RunSummary:
        with self._lock:
            end = self.finished_at if self.finished_at is not None else self._clock()
            return RunSummary(
                start_time=_iso(self.started_at),
                end_time=_iso(end),
                duration_seconds=max(0.0, end - self.started_at),
                pages_processed=len(self.pages),
                total_requests=self.total_requests,
                asset_requests=self.asset_requests,
                failed_navigations=self.failed_navigations,
                forms=self.forms,
                fields_processed=self.fields_processed,
                secrets=len(self.discoveries.secrets),
                endpoints=len(self.discoveries.endpoints),
                technologies=len(self.discoveries.technologies),
                js_chunks=self.js_chunks,
            )
