"""Writers for every artifact a crawl run produces.

Traffic is never retained in memory: requests and correlated records are
appended to line-delimited logs as they happen, and the batch formats
(HAR, raw HTTP files) are rebuilt at ``finalize`` by re-reading those logs.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import IO, Callable, Dict, Iterator, List, Optional
from urllib.parse import parse_qsl, urlsplit

from .. import __version__
from ..core.aggregator import RunAggregator
from ..core.config import CrawlConfig
from ..core.errors import OutputWriteError, SetupError
from ..core.models import CapturedRequest, RequestRecord
from .http_format import format_http_request, snake_case_headers

logger = logging.getLogger(__name__)

REQUEST_LOG = "requests-stream.jsonl"
RECORD_LOG = "records-stream.jsonl"
SCAN_LOG = Path("jsonl") / "network.jsonl"
HAR_FILE = Path("har") / "requests.har"
HTTP_DIR = Path("http-requests")
HTTP_EACH_DIR = HTTP_DIR / "each"
HTTP_BATCH_FILE = HTTP_DIR / "requests.http"
BEST_REQUEST_FILE = "http.raw"
HTTP_SEPARATOR = "\n\n---\n\n"


def _iso_ms(timestamp_ms: int) -> str:
    moment = datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _content_type(headers: Dict[str, str]) -> str:
    for key, value in headers.items():
        if key.lower() == "content-type":
            return value
    return "application/octet-stream"


def har_entry(record: RequestRecord) -> dict:
    request = record.request
    request_headers = dict(request.headers)
    response = record.response
    try:
        query = parse_qsl(urlsplit(request.url).query, keep_blank_values=True)
    except ValueError:
        query = []

    entry: dict = {
        "startedDateTime": _iso_ms(request.timestamp),
        "time": max(0, response.timestamp - request.timestamp) if response else 0,
        "request": {
            "method": request.method,
            "url": request.url,
            "httpVersion": "HTTP/1.1",
            "cookies": [],
            "headers": [{"name": name, "value": value} for name, value in request.headers],
            "queryString": [{"name": name, "value": value} for name, value in query],
            "headersSize": -1,
            "bodySize": len(request.body.encode("utf-8")) if request.body else 0,
        },
        "response": {
            "status": response.status_code if response else 0,
            "statusText": response.status_text if response else "",
            "httpVersion": "HTTP/1.1",
            "cookies": [],
            "headers": [{"name": name, "value": value} for name, value in (response.headers if response else ())],
            "content": {"size": -1, "mimeType": _content_type(dict(response.headers)) if response else ""},
            "redirectURL": "",
            "headersSize": -1,
            "bodySize": -1,
        },
        "cache": {},
        "timings": {"send": 0, "wait": 0, "receive": 0},
    }
    if request.body:
        entry["request"]["postData"] = {"mimeType": _content_type(request_headers), "text": request.body}
    return entry


def scan_line(record: RequestRecord) -> dict:
    request = record.request
    response = record.response
    return {
        "timestamp": _iso_ms(request.timestamp),
        "request": {
            "method": request.method,
            "endpoint": request.url,
            "tag": None,
            "attribute": None,
            "source": None,
            "raw": format_http_request(request),
        },
        "response": {
            "status_code": response.status_code if response else None,
            "headers": snake_case_headers(dict(response.headers)) if response else {},
            "body": "",
            "technologies": [],
            "raw": "",
        },
    }


class OutputEmitter:
    """Appends traffic incrementally and writes bulk artifacts at the end."""

    def __init__(self, config: CrawlConfig) -> None:
        self.config = config
        self.output_dir = Path(config.output_dir)
        self._request_log: Optional[IO[str]] = None
        self._record_log: Optional[IO[str]] = None
        self._scan_log: Optional[IO[str]] = None
        self._request_seq = 0
        self.write_errors = 0

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def open(self) -> None:
        try:
            self.output_dir.mkdir(parents=True, exist_ok=True)
            self._request_log = self._open_log(self.output_dir / REQUEST_LOG)
            self._record_log = self._open_log(self.output_dir / RECORD_LOG)
            if self.config.wants("jsonl"):
                self._scan_log = self._open_log(self.output_dir / SCAN_LOG)
        except OSError as exc:
            self.close()
            raise SetupError(f"Output directory {self.output_dir} is not writable: {exc}") from exc

    def close(self) -> None:
        for handle in (self._request_log, self._record_log, self._scan_log):
            if handle is not None and not handle.closed:
                try:
                    handle.close()
                except OSError:
                    logger.error("Could not close %s", handle.name, exc_info=True)

    def __enter__(self) -> "OutputEmitter":
        self.open()
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    @staticmethod
    def _open_log(path: Path) -> IO[str]:
        path.parent.mkdir(parents=True, exist_ok=True)
        # line buffered so a crash still leaves every completed line on disk
        return path.open("w", encoding="utf-8", buffering=1)

    # ------------------------------------------------------------------
    # Incremental writes
    # ------------------------------------------------------------------
    def append_request(self, request: CapturedRequest) -> None:
        self._request_seq += 1
        payload = {"seq": self._request_seq, **request.to_dict()}
        self._append(self._request_log, payload)

    def append_record(self, record: RequestRecord) -> None:
        self._append(self._record_log, record.to_dict())

    def append_scan_line(self, record: RequestRecord) -> None:
        if self._scan_log is None:
            return
        self._append(self._scan_log, scan_line(record))

    def write_best_request(self, record: RequestRecord) -> Optional[Path]:
        path = self.output_dir / BEST_REQUEST_FILE
        try:
            self._write_text(path, format_http_request(record.request))
        except OutputWriteError as exc:
            self._report(exc)
            return None
        logger.info("Best request (score %d) written to %s", record.interest_score, path)
        return path

    def _append(self, handle: Optional[IO[str]], payload: dict) -> None:
        if handle is None or handle.closed:
            return
        try:
            handle.write(json.dumps(payload, ensure_ascii=False) + "\n")
        except OSError as exc:
            self._report(OutputWriteError(Path(handle.name), exc))

    # ------------------------------------------------------------------
    # Final artifacts
    # ------------------------------------------------------------------
    def finalize(self, aggregator: RunAggregator) -> List[Path]:
        """Writes every end-of-run artifact, skipping the ones that fail."""

        self.close()
        summary = aggregator.summary()
        secrets = aggregator.secrets

        jobs: List[Callable[[], List[Path]]] = [
            lambda: [self._write_lines("endpoints.txt", aggregator.endpoints, "No endpoints")],
            lambda: [self._write_lines("technologies.txt", aggregator.technologies, "None")],
            lambda: [self._write_lines("all-urls.txt", aggregator.page_urls, "")],
            lambda: [
                self._write_text(
                    self.output_dir / "secrets.txt",
                    "\n\n".join(f"[{s.kind}] {s.value}\n  Source: {s.source}" for s in secrets) or "No secrets found",
                )
            ],
            lambda: [self._write_json("summary.json", summary.to_dict())],
            lambda: [self._write_text(self.output_dir / "summary.md", summary.to_markdown())],
        ]
        if self.config.wants("json"):
            jobs.append(lambda: [self._write_json("results.json", self._results_document(aggregator))])
        if self.config.wants("jsonl"):
            jobs.append(lambda: [self.output_dir / SCAN_LOG])
        if self.config.wants("har"):
            jobs.append(lambda: [self._write_har()])
        if self.config.wants("http"):
            jobs.append(self._write_http_files)

        written: List[Path] = []
        for job in jobs:
            try:
                written.extend(job())
            except OutputWriteError as exc:
                self._report(exc)
        return written

    def _results_document(self, aggregator: RunAggregator) -> dict:
        return {
            "target": self.config.target_url,
            "pages": [page.to_dict() for page in aggregator.pages],
            "endpoints": aggregator.endpoints,
            "secrets": [secret.to_dict() for secret in aggregator.secrets],
            "technologies": aggregator.technologies,
            "summary": aggregator.summary().to_dict(),
        }

    def iter_records(self) -> Iterator[RequestRecord]:
        """Streams correlated records back from the on-disk log."""

        path = self.output_dir / RECORD_LOG
        if not path.exists():
            return
        with path.open("r", encoding="utf-8") as handle:
            for line in handle:
                if not line.strip():
                    continue
                try:
                    yield RequestRecord.from_dict(json.loads(line))
                except (ValueError, TypeError):
                    logger.debug("Skipping malformed record line in %s", path)

    def _write_har(self) -> Path:
        path = self.output_dir / HAR_FILE
        creator = json.dumps({"name": "SpeedCrawl", "version": __version__})
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with path.open("w", encoding="utf-8") as handle:
                handle.write('{"log": {"version": "1.2", "creator": ' + creator + ', "pages": [], "entries": [')
                for index, record in enumerate(self.iter_records()):
                    if index:
                        handle.write(",")
                    handle.write("\n" + json.dumps(har_entry(record), ensure_ascii=False))
                handle.write("\n]}}\n")
        except OSError as exc:
            raise OutputWriteError(path, exc) from exc
        logger.info("HAR written: %s", path)
        return path

    def _write_http_files(self) -> List[Path]:
        each_dir = self.output_dir / HTTP_EACH_DIR
        batch_path = self.output_dir / HTTP_BATCH_FILE
        try:
            each_dir.mkdir(parents=True, exist_ok=True)
            with batch_path.open("w", encoding="utf-8", newline="") as batch:
                sequence = 0
                for record in self.iter_records():
                    if record.is_asset:
                        continue
                    sequence += 1
                    raw = format_http_request(record.request)
                    (each_dir / f"{sequence:06d}.http").write_text(raw, encoding="utf-8", newline="")
                    batch.write(raw + HTTP_SEPARATOR)
        except OSError as exc:
            raise OutputWriteError(batch_path, exc) from exc
        logger.info("Raw HTTP requests written: %d file(s) in %s", sequence, each_dir)
        return [batch_path, each_dir]

    def _write_lines(self, name: str, values: List[str], placeholder: str) -> Path:
        path = self.output_dir / name
        self._write_text(path, "\n".join(values) or placeholder)
        return path

    def _write_json(self, name: str, data: dict) -> Path:
        path = self.output_dir / name
        self._write_text(path, json.dumps(data, indent=2, ensure_ascii=False))
        return path

    @staticmethod
    def _write_text(path: Path, text: str) -> Path:
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(text, encoding="utf-8", newline="")
        except OSError as exc:
            raise OutputWriteError(path, exc) from exc
        return path

    def _report(self, exc: OutputWriteError) -> None:
        self.write_errors += 1
        logger.error("%s", exc)
