"""Breadth-first frontier with scope, depth and failure bounds."""

from __future__ import annotations

import logging
import threading
from collections import deque
from typing import Deque, Optional, Set

from ..core.models import FrontierEntry
from .targeting import ScopeFilter, normalize_url, strip_fragment

logger = logging.getLogger(__name__)

DEFAULT_FAILURE_THRESHOLD = 5


class FrontierScheduler:
    """Owns the crawl queue and decides what is visited next and when to stop.

    ``enqueue`` and ``next`` are serialized by a lock so two visits racing on
    the same discovered link cannot both enqueue it.
    """

    def __init__(
        self,
        scope: ScopeFilter,
        *,
        max_pages: int,
        max_depth: int,
        failure_threshold: int = DEFAULT_FAILURE_THRESHOLD,
    ) -> None:
        self.scope = scope
        self.max_pages = max_pages
        self.max_depth = max_depth
        self.failure_threshold = failure_threshold
        self._queue: Deque[FrontierEntry] = deque()
        self._visited: Set[str] = set()
        self._lock = threading.Lock()
        self.pages_visited = 0
        self.consecutive_failures = 0

    def enqueue(self, url: str, depth: int) -> bool:
        if depth > self.max_depth:
            return False
        if not self.scope.is_allowed(url):
            return False

        key = normalize_url(url)
        with self._lock:
            if key in self._visited:
                return False
            self._visited.add(key)
            self._queue.append(FrontierEntry(url=strip_fragment(url), depth=depth))
        return True

    def next(self) -> Optional[FrontierEntry]:
        with self._lock:
            if self._is_done_locked():
                return None
            return self._queue.popleft()

    def is_done(self) -> bool:
        with self._lock:
            return self._is_done_locked()

    def is_visited(self, url: str) -> bool:
        with self._lock:
            return normalize_url(url) in self._visited

    def record_success(self) -> None:
        with self._lock:
            self.pages_visited += 1
            self.consecutive_failures = 0

    def record_failure(self) -> None:
        with self._lock:
            self.consecutive_failures += 1
            if self.consecutive_failures == self.failure_threshold:
                logger.warning(
                    "Stopping after %d consecutive navigation failures", self.consecutive_failures
                )

    @property
    def breaker_tripped(self) -> bool:
        return self.consecutive_failures >= self.failure_threshold

    @property
    def pending(self) -> int:
        with self._lock:
            return len(self._queue)

    def _is_done_locked(self) -> bool:
        return (
            not self._queue
            or self.pages_visited >= self.max_pages
            or self.consecutive_failures >= self.failure_threshold
        )
