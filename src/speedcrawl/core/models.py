"""Data structures shared across the crawler, correlator and emitter."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True, slots=True)
class FrontierEntry:
    url: str
    depth: int


@dataclass(frozen=True, slots=True)
class CapturedRequest:
    """Outbound request reported by the browser session."""

    method: str
    url: str
    headers: Tuple[Tuple[str, str], ...] = ()
    body: Optional[str] = None
    timestamp: int = field(default_factory=now_ms)
    resource_type: Optional[str] = None

    @classmethod
    def build(
        cls,
        method: str,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        body: Optional[str] = None,
        *,
        timestamp: Optional[int] = None,
        resource_type: Optional[str] = None,
    ) -> "CapturedRequest":
        return cls(
            method=(method or "GET").upper(),
            url=url,
            headers=tuple((str(k), str(v)) for k, v in (headers or {}).items()),
            body=body or None,
            timestamp=timestamp if timestamp is not None else now_ms(),
            resource_type=resource_type,
        )

    @property
    def key(self) -> Tuple[str, str]:
        return (self.method, self.url)

    def header(self, name: str) -> Optional[str]:
        lowered = name.lower()
        for key, value in self.headers:
            if key.lower() == lowered:
                return value
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "method": self.method,
            "url": self.url,
            "headers": dict(self.headers),
            "postData": self.body or "",
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "CapturedRequest":
        return cls.build(
            raw.get("method", "GET"),
            raw.get("url", ""),
            raw.get("headers") or {},
            raw.get("postData") or None,
            timestamp=raw.get("timestamp"),
        )


@dataclass(frozen=True, slots=True)
class CapturedResponse:
    method: str
    url: str
    status_code: int
    headers: Tuple[Tuple[str, str], ...] = ()
    status_text: str = ""
    timestamp: int = field(default_factory=now_ms)

    @classmethod
    def build(
        cls,
        method: str,
        url: str,
        status_code: int,
        headers: Optional[Dict[str, str]] = None,
        *,
        status_text: str = "",
        timestamp: Optional[int] = None,
    ) -> "CapturedResponse":
        return cls(
            method=(method or "GET").upper(),
            url=url,
            status_code=int(status_code),
            headers=tuple((str(k), str(v)) for k, v in (headers or {}).items()),
            status_text=status_text or "",
            timestamp=timestamp if timestamp is not None else now_ms(),
        )

    @property
    def key(self) -> Tuple[str, str]:
        return (self.method, self.url)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status_code,
            "statusText": self.status_text,
            "headers": dict(self.headers),
            "timestamp": self.timestamp,
        }


@dataclass(frozen=True, slots=True)
class RequestRecord:
    """A request paired with its response (if one arrived)."""

    request: CapturedRequest
    response: Optional[CapturedResponse]
    is_asset: bool
    interest_score: int

    def to_dict(self) -> Dict[str, Any]:
        data = self.request.to_dict()
        data["response"] = self.response.to_dict() if self.response else None
        data["isAsset"] = self.is_asset
        data["score"] = self.interest_score
        return data

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "RequestRecord":
        request = CapturedRequest.from_dict(raw)
        response_raw = raw.get("response")
        response = None
        if isinstance(response_raw, dict):
            response = CapturedResponse.build(
                request.method,
                request.url,
                response_raw.get("status", 0),
                response_raw.get("headers") or {},
                status_text=response_raw.get("statusText", ""),
                timestamp=response_raw.get("timestamp"),
            )
        return cls(
            request=request,
            response=response,
            is_asset=bool(raw.get("isAsset", False)),
            interest_score=int(raw.get("score", 0)),
        )


@dataclass(frozen=True, slots=True)
class PageResult:
    url: str
    depth: int
    title: str
    link_count: int
    timestamp_ms: int = field(default_factory=now_ms)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "url": self.url,
            "depth": self.depth,
            "title": self.title,
            "linksFound": self.link_count,
            "timestamp": self.timestamp_ms,
        }


@dataclass(frozen=True, slots=True)
class Finding:
    """A single analyzer result tagged with where it came from."""

    kind: str
    value: str
    source: str = ""

    def to_dict(self) -> Dict[str, str]:
        return {"type": self.kind, "value": self.value, "source": self.source}


@dataclass(frozen=True, slots=True)
class FormOutcome:
    fields_processed: int = 0
    submitted: bool = False
