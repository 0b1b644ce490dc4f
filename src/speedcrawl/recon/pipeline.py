"""Per-page visit pipeline.

Each stage runs in isolation: a failing stage is recorded as a
``VisitStageError`` on the outcome and the next stage still runs. Only a
navigation failure ends the visit early.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Tuple, TypeVar
from urllib.parse import urlsplit

from ..analysis.collaborators import Collaborators
from ..core.config import CrawlConfig
from ..core.errors import NavigationError, VisitStageError
from ..core.models import Finding, FormOutcome, FrontierEntry, PageResult
from ..traffic.channel import TrafficChannel
from .links import filter_links, script_sources
from .session import BrowserSession
from .targeting import ScopeFilter

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class StageResult:
    name: str
    ok: bool
    error: Optional[VisitStageError] = None


@dataclass
class VisitOutcome:
    """Everything one visit produced, including which stages failed."""

    entry: FrontierEntry
    page: Optional[PageResult] = None
    navigation_error: Optional[NavigationError] = None
    new_links: List[str] = field(default_factory=list)
    technologies: List[str] = field(default_factory=list)
    endpoints: List[Finding] = field(default_factory=list)
    secrets: List[Finding] = field(default_factory=list)
    form: FormOutcome = field(default_factory=FormOutcome)
    js_chunks: int = 0
    stages: List[StageResult] = field(default_factory=list)

    @property
    def navigated(self) -> bool:
        return self.navigation_error is None

    @property
    def failed_stages(self) -> List[str]:
        return [stage.name for stage in self.stages if not stage.ok]


@dataclass
class _PageContext:
    url: str
    html: Optional[str] = None
    scripts: Optional[List[Tuple[str, str]]] = None


class VisitPipeline:
    def __init__(
        self,
        config: CrawlConfig,
        session: BrowserSession,
        collaborators: Collaborators,
        scope: ScopeFilter,
        channel: Optional[TrafficChannel] = None,
    ) -> None:
        self.config = config
        self.session = session
        self.collaborators = collaborators
        self.scope = scope
        self.channel = channel

    def visit(self, entry: FrontierEntry) -> VisitOutcome:
        outcome = VisitOutcome(entry=entry)
        context = _PageContext(url=entry.url)

        try:
            self.session.navigate(entry.url, self.config.navigation_timeout_ms)
        except NavigationError as exc:
            logger.warning("Failed: %s - %s", entry.url, exc.reason or exc)
            outcome.navigation_error = exc
            outcome.stages.append(StageResult("navigate", False, VisitStageError("navigate", exc)))
            self._drain()
            return outcome
        outcome.stages.append(StageResult("navigate", True))
        self._drain()

        self._run(outcome, "settle", self._settle)
        self._run(outcome, "captcha", lambda: self.collaborators.captcha.handle(self.session))

        technologies = self._run(outcome, "technologies", lambda: self._technologies(context))
        outcome.technologies = technologies or []

        if self.config.deep_js_analysis:
            static = self._run(outcome, "static_analysis", lambda: self._static_endpoints(context, outcome))
            outcome.endpoints.extend(static or [])

        form = self._run(outcome, "forms", self._forms)
        if form is not None:
            outcome.form = form

        runtime = self._run(
            outcome,
            "runtime_endpoints",
            lambda: self.collaborators.runtime_endpoints.collect(self.session.current_requests(), entry.url),
        )
        outcome.endpoints.extend(runtime or [])

        if self.config.extract_secrets:
            secrets = self._run(outcome, "secrets", lambda: self._secrets(context))
            outcome.secrets = secrets or []

        links = self._run(outcome, "links", lambda: filter_links(self.session.extract_links()))
        links = links or []
        outcome.new_links = [link for link in links if self.scope.is_allowed(link)]

        title = self._safe_title()
        outcome.page = PageResult(url=entry.url, depth=entry.depth, title=title, link_count=len(links))
        if outcome.failed_stages:
            logger.debug("Visit of %s finished with failed stages: %s", entry.url, ", ".join(outcome.failed_stages))
        return outcome

    # ------------------------------------------------------------------
    # Stage bodies
    # ------------------------------------------------------------------
    def _settle(self) -> None:
        if self.config.headless:
            self.session.settle(
                wait_for_idle=True,
                idle_timeout_ms=self.config.idle_timeout_ms,
                grace_ms=self.config.headless_grace_ms,
            )
        else:
            # visible sessions never reliably reach network idle
            self.session.settle(wait_for_idle=False, idle_timeout_ms=0, grace_ms=self.config.headful_delay_ms)

    def _forms(self) -> FormOutcome:
        return self.collaborators.forms.process_form(self.session, submit=self.config.submit_forms)

    def _technologies(self, context: _PageContext) -> List[str]:
        findings = self.collaborators.technology.analyze(self._html(context), context.url)
        return [finding.value for finding in findings if finding.value]

    def _static_endpoints(self, context: _PageContext, outcome: VisitOutcome) -> List[Finding]:
        analyzer = self.collaborators.static_endpoints
        findings = list(analyzer.analyze(self._html(context), context.url))
        scripts = self._scripts(context)
        for script_url, body in scripts:
            findings.extend(analyzer.analyze(body, script_url))
        outcome.js_chunks = len(scripts)
        return findings

    def _secrets(self, context: _PageContext) -> List[Finding]:
        analyzer = self.collaborators.secrets
        findings = list(analyzer.analyze(self._html(context), context.url))
        for script_url, body in self._scripts(context):
            findings.extend(analyzer.analyze(body, script_url))
        return findings

    def _html(self, context: _PageContext) -> str:
        if context.html is None:
            context.html = self.session.content()
        return context.html

    def _scripts(self, context: _PageContext) -> List[Tuple[str, str]]:
        """Bodies of the first same-origin scripts, fetched once per visit."""

        if context.scripts is not None:
            return context.scripts

        host = (urlsplit(context.url).hostname or "").lower()
        candidates = [
            src
            for src in script_sources(self._html(context), context.url)
            if (urlsplit(src).hostname or "").lower() == host
        ]
        scripts: List[Tuple[str, str]] = []
        for src in candidates[: self.config.max_scripts_per_page]:
            try:
                body = self.session.fetch_text(src)
            except Exception:
                logger.debug("Script fetch failed for %s", src, exc_info=True)
                continue
            if body:
                scripts.append((src, body))
        context.scripts = scripts
        return scripts

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _run(self, outcome: VisitOutcome, name: str, stage: Callable[[], T]) -> Optional[T]:
        try:
            result = stage()
        except Exception as exc:
            error = VisitStageError(name, exc)
            logger.warning("Stage %s failed on %s: %s", name, outcome.entry.url, exc)
            logger.debug("Stage %s traceback", name, exc_info=True)
            outcome.stages.append(StageResult(name, False, error))
            return None
        finally:
            self._drain()
        outcome.stages.append(StageResult(name, True))
        return result

    def _safe_title(self) -> str:
        try:
            return self.session.title() or "Untitled"
        except Exception:
            logger.debug("Could not read page title", exc_info=True)
            return "Untitled"

    def _drain(self) -> None:
        if self.channel is not None:
            self.channel.drain()
