"""High level crawler that drives visits and collects the run's artifacts."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List

from ..analysis.collaborators import Collaborators
from ..core.aggregator import RunAggregator, RunSummary
from ..core.config import CrawlConfig
from ..output.emitter import OutputEmitter
from ..traffic.channel import TrafficChannel
from ..traffic.correlator import TrafficCorrelator
from .frontier import FrontierScheduler
from .pipeline import VisitOutcome, VisitPipeline
from .session import BrowserSession
from .targeting import ScopeFilter

logger = logging.getLogger(__name__)


@dataclass
class Crawler:
    """Breadth-first crawl of the target, one page visit at a time."""

    config: CrawlConfig
    session: BrowserSession
    collaborators: Collaborators = field(default_factory=Collaborators)
    sleep: Callable[[float], None] = time.sleep
    artifacts: List[Path] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.scope = ScopeFilter.from_config(self.config)
        self.aggregator = RunAggregator()
        self.frontier = FrontierScheduler(
            self.scope,
            max_pages=self.config.max_pages,
            max_depth=self.config.max_depth,
            failure_threshold=self.config.max_consecutive_failures,
        )
        self.emitter = OutputEmitter(self.config)
        self.correlator = TrafficCorrelator(self.emitter, self.aggregator, weights=self.config.scoring)
        self.channel = TrafficChannel(self.correlator.observe, capacity=self.config.channel_capacity)
        self.session.attach(self.channel)
        self.pipeline = VisitPipeline(
            self.config,
            self.session,
            self.collaborators,
            self.scope,
            channel=self.channel,
        )

    # ------------------------------------------------------------------
    # Core workflow
    # ------------------------------------------------------------------
    def run(self) -> RunSummary:
        self.emitter.open()
        try:
            if not self.frontier.enqueue(self.config.target_url, 0):
                logger.warning("Target %s is outside the configured scope", self.config.target_url)
            while True:
                entry = self.frontier.next()
                if entry is None:
                    break
                logger.info("Processing: %s (depth %d)", entry.url, entry.depth)
                outcome = self.pipeline.visit(entry)
                self._close_visit()
                self._fold(outcome)
                if not self.frontier.is_done() and self.config.request_delay_ms:
                    self.sleep(self.config.request_delay_ms / 1000)
        finally:
            self._close_visit()
            self.correlator.flush()
            self.aggregator.finish()
            self.artifacts = self.emitter.finalize(self.aggregator)

        summary = self.aggregator.summary()
        logger.info(
            "Crawl finished: %d page(s), %d request(s), results in %s",
            summary.pages_processed,
            summary.total_requests,
            self.config.output_dir,
        )
        return summary

    def _close_visit(self) -> None:
        self.channel.drain()
        self.correlator.end_visit()

    def _fold(self, outcome: VisitOutcome) -> None:
        if not outcome.navigated:
            self.frontier.record_failure()
            self.aggregator.record_navigation_failure()
            return

        self.frontier.record_success()
        if outcome.page is not None:
            self.aggregator.record_page(outcome.page)
        self.aggregator.merge_technologies(outcome.technologies)
        self.aggregator.merge_endpoints(outcome.endpoints)
        self.aggregator.merge_secrets(outcome.secrets)
        self.aggregator.record_forms(outcome.form.fields_processed, outcome.form.submitted)
        self.aggregator.record_js_chunks(outcome.js_chunks)

        accepted = 0
        for link in outcome.new_links:
            if self.frontier.enqueue(link, outcome.entry.depth + 1):
                accepted += 1

        logger.info(
            "[%d/%d] %s: %d link(s), %d queued (%.1fs)",
            self.frontier.pages_visited,
            self.config.max_pages,
            outcome.entry.url,
            len(outcome.new_links),
            accepted,
            time.time() - self.aggregator.started_at,
        )
