"""Pairs captured requests with responses and streams them to the emitter."""

from __future__ import annotations

import json
import logging
from collections import OrderedDict, deque
from typing import TYPE_CHECKING, Deque, Dict, Optional, Tuple
from urllib.parse import parse_qsl, urlsplit

from ..core.aggregator import RunAggregator
from ..core.config import ScoringWeights
from ..core.models import CapturedRequest, CapturedResponse, RequestRecord
from ..recon.targeting import path_extension
from .channel import TrafficEvent

if TYPE_CHECKING:  # pragma: no cover - import-time type checking only
    from ..output.emitter import OutputEmitter

logger = logging.getLogger(__name__)

ASSET_EXTENSIONS = frozenset(
    {"js", "mjs", "css", "map", "png", "jpg", "jpeg", "gif", "svg", "ico", "webp", "woff", "woff2", "ttf", "eot"}
)


def is_asset(url: str, extensions: frozenset[str] = ASSET_EXTENSIONS) -> bool:
    try:
        return path_extension(url) in extensions
    except ValueError:
        return False


def _is_form_body(request: CapturedRequest) -> bool:
    content_type = (request.header("content-type") or "").lower()
    if "application/x-www-form-urlencoded" not in content_type or not request.body:
        return False
    if "=" not in request.body:
        return False
    return any(key for key, _ in parse_qsl(request.body, keep_blank_values=True))


def _is_json_body(request: CapturedRequest) -> bool:
    body = (request.body or "").strip()
    if not body or body[0] not in "{[":
        return False
    try:
        return isinstance(json.loads(body), (dict, list))
    except ValueError:
        return False


def interest_score(request: CapturedRequest, weights: ScoringWeights = ScoringWeights()) -> int:
    """Heuristic rank used to pick the most replay-worthy request of a run."""

    score = 0
    if request.method == "POST":
        score += weights.post
    if _is_form_body(request):
        score += weights.form_body
    elif _is_json_body(request):
        score += weights.json_body
    try:
        params = parse_qsl(urlsplit(request.url).query, keep_blank_values=True)
    except ValueError:
        params = []
    if params:
        score += min(weights.query_cap, len(params) * weights.query_per_param)
    return score


class TrafficCorrelator:
    """Correlates traffic by ``(method, url)`` inside the active visit."""

    def __init__(
        self,
        emitter: "OutputEmitter",
        aggregator: RunAggregator,
        *,
        weights: ScoringWeights = ScoringWeights(),
        asset_extensions: frozenset[str] = ASSET_EXTENSIONS,
    ) -> None:
        self.emitter = emitter
        self.aggregator = aggregator
        self.weights = weights
        self.asset_extensions = asset_extensions
        self._inflight: "OrderedDict[Tuple[str, str], Deque[CapturedRequest]]" = OrderedDict()
        self._best: Optional[RequestRecord] = None
        self.records_emitted = 0

    def observe(self, event: TrafficEvent) -> None:
        if isinstance(event, CapturedRequest):
            self.observe_request(event)
        elif isinstance(event, CapturedResponse):
            self.observe_response(event)

    def observe_request(self, request: CapturedRequest) -> None:
        self.emitter.append_request(request)
        self.aggregator.record_request(1, asset=is_asset(request.url, self.asset_extensions))
        self._inflight.setdefault(request.key, deque()).append(request)

    def observe_response(self, response: CapturedResponse) -> None:
        pending = self._inflight.get(response.key)
        if not pending:
            logger.debug("Dropping uncorrelated response %s %s", response.method, response.url)
            return
        request = pending.popleft()
        if not pending:
            del self._inflight[response.key]
        self._complete(request, response)

    def end_visit(self) -> int:
        """Emits every request still waiting for a response with a null response."""

        unanswered = 0
        while self._inflight:
            _, pending = self._inflight.popitem(last=False)
            for request in pending:
                self._complete(request, None)
                unanswered += 1
        return unanswered

    def flush(self) -> Optional[RequestRecord]:
        """Closes the last visit and writes the canonical best request."""

        self.end_visit()
        if self._best is not None:
            self.emitter.write_best_request(self._best)
        return self._best

    @property
    def pending_count(self) -> int:
        return sum(len(pending) for pending in self._inflight.values())

    @property
    def best(self) -> Optional[RequestRecord]:
        return self._best

    def _complete(self, request: CapturedRequest, response: Optional[CapturedResponse]) -> None:
        asset = is_asset(request.url, self.asset_extensions)
        record = RequestRecord(
            request=request,
            response=response,
            is_asset=asset,
            interest_score=0 if asset else interest_score(request, self.weights),
        )
        self.emitter.append_record(record)
        self.records_emitted += 1
        if asset:
            return
        self.emitter.append_scan_line(record)
        if self._best is None or record.interest_score > self._best.interest_score:
            self._best = record
