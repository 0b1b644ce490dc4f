"""Exception hierarchy shared by the crawler components."""

from __future__ import annotations

from pathlib import Path
from typing import Optional


class SpeedCrawlError(RuntimeError):
    """Base class for crawler failures."""


class SetupError(SpeedCrawlError):
    """Raised when the run cannot start (bad target, unwritable output)."""


class NavigationError(SpeedCrawlError):
    """Raised when a page cannot be loaded at all."""

    def __init__(self, url: str, reason: str = "") -> None:
        self.url = url
        self.reason = reason
        super().__init__(f"navigation to {url} failed: {reason}" if reason else f"navigation to {url} failed")


class VisitStageError(SpeedCrawlError):
    """Failure of a single visit stage; the visit continues without it."""

    def __init__(self, stage: str, cause: Optional[BaseException] = None) -> None:
        self.stage = stage
        self.cause = cause
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"stage '{stage}' failed{detail}")


class OutputWriteError(SpeedCrawlError):
    """Raised when an artifact cannot be persisted."""

    def __init__(self, path: Path, cause: Optional[BaseException] = None) -> None:
        self.path = path
        self.cause = cause
        super().__init__(f"could not write {path}: {cause}")
