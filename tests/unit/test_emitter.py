import json
import logging

import pytest

from speedcrawl.core.aggregator import RunAggregator
from speedcrawl.core.errors import SetupError
from speedcrawl.core.models import CapturedRequest, CapturedResponse, Finding, PageResult, RequestRecord
from speedcrawl.output.emitter import HAR_FILE, HTTP_BATCH_FILE, HTTP_EACH_DIR, OutputEmitter
from tests.helpers.fakes import make_config


def _record(method, url, *, body=None, status=200, asset=False, score=0):
    request = CapturedRequest.build(method, url, {"Accept": "*/*"}, body, timestamp=1_700_000_000_000)
    response = CapturedResponse.build(method, url, status, {"Content-Type": "application/json"}) if status else None
    return RequestRecord(request=request, response=response, is_asset=asset, interest_score=score)


def _aggregator():
    aggregator = RunAggregator()
    aggregator.record_page(PageResult(url="https://example.com", depth=0, title="Home", link_count=1))
    aggregator.merge_endpoints([Finding("endpoint", "/api/users", "runtime")])
    aggregator.merge_secrets([Finding("JWT_TOKEN", "eyJ.x.y", "https://example.com/app.js")])
    aggregator.merge_technologies(["Nginx"])
    aggregator.finish()
    return aggregator


def test_finalize_writes_text_lists_and_summary(tmp_path):
    emitter = OutputEmitter(make_config(tmp_path))
    emitter.open()

    written = emitter.finalize(_aggregator())
    out = emitter.output_dir

    assert (out / "endpoints.txt").read_text(encoding="utf-8") == "/api/users"
    assert (out / "technologies.txt").read_text(encoding="utf-8") == "Nginx"
    assert (out / "all-urls.txt").read_text(encoding="utf-8") == "https://example.com"
    assert (out / "secrets.txt").read_text(encoding="utf-8") == (
        "[JWT_TOKEN] eyJ.x.y\n  Source: https://example.com/app.js"
    )
    summary = json.loads((out / "summary.json").read_text(encoding="utf-8"))
    assert summary["crawl"]["pagesProcessed"] == 1
    assert summary["findings"]["endpoints"] == 1
    results = json.loads((out / "results.json").read_text(encoding="utf-8"))
    assert results["pages"][0]["title"] == "Home"
    assert out / "summary.md" in written
    assert not (out / HAR_FILE).exists()


def test_empty_run_still_writes_placeholders(tmp_path):
    emitter = OutputEmitter(make_config(tmp_path))
    emitter.open()

    emitter.finalize(RunAggregator())
    out = emitter.output_dir

    assert (out / "endpoints.txt").read_text(encoding="utf-8") == "No endpoints"
    assert (out / "secrets.txt").read_text(encoding="utf-8") == "No secrets found"
    assert (out / "technologies.txt").read_text(encoding="utf-8") == "None"
    assert json.loads((out / "summary.json").read_text(encoding="utf-8"))["crawl"]["totalRequests"] == 0


def test_har_is_rebuilt_from_the_record_log(tmp_path):
    emitter = OutputEmitter(make_config(tmp_path, formats="har"))
    emitter.open()
    emitter.append_record(_record("GET", "https://example.com/?page=2"))
    emitter.append_record(_record("POST", "https://example.com/api", body='{"a":1}', status=0))
    emitter.append_record(_record("GET", "https://example.com/app.js", asset=True))

    emitter.finalize(RunAggregator())

    har = json.loads((emitter.output_dir / HAR_FILE).read_text(encoding="utf-8"))
    entries = har["log"]["entries"]
    assert har["log"]["version"] == "1.2"
    assert len(entries) == 3
    assert entries[0]["request"]["queryString"] == [{"name": "page", "value": "2"}]
    assert entries[0]["response"]["status"] == 200
    assert entries[0]["startedDateTime"] == "2023-11-14T22:13:20.000Z"
    assert entries[1]["request"]["postData"]["text"] == '{"a":1}'
    assert entries[1]["response"]["status"] == 0


def test_empty_har_is_valid_json(tmp_path):
    emitter = OutputEmitter(make_config(tmp_path, formats="har"))
    emitter.open()

    emitter.finalize(RunAggregator())

    assert json.loads((emitter.output_dir / HAR_FILE).read_text(encoding="utf-8"))["log"]["entries"] == []


def test_http_format_writes_one_file_per_non_asset_request(tmp_path):
    emitter = OutputEmitter(make_config(tmp_path, formats="http"))
    emitter.open()
    emitter.append_record(_record("GET", "https://example.com/a"))
    emitter.append_record(_record("GET", "https://example.com/style.css", asset=True))
    emitter.append_record(_record("POST", "https://example.com/b", body="x=1"))

    emitter.finalize(RunAggregator())

    each = sorted(path.name for path in (emitter.output_dir / HTTP_EACH_DIR).iterdir())
    assert each == ["000001.http", "000002.http"]
    second = (emitter.output_dir / HTTP_EACH_DIR / "000002.http").read_text(encoding="utf-8", newline="")
    assert second.startswith("POST /b HTTP/1.1\r\n")
    batch = (emitter.output_dir / HTTP_BATCH_FILE).read_text(encoding="utf-8", newline="")
    assert batch.count("\n\n---\n\n") == 2


def test_record_log_survives_malformed_lines(tmp_path):
    emitter = OutputEmitter(make_config(tmp_path, formats="http"))
    emitter.open()
    emitter.append_record(_record("GET", "https://example.com/a"))
    emitter.close()
    with (emitter.output_dir / "records-stream.jsonl").open("a", encoding="utf-8") as handle:
        handle.write('{"method": "GET", "url": "https://exa')

    assert [record.request.url for record in emitter.iter_records()] == ["https://example.com/a"]


def test_failed_artifact_is_logged_and_others_still_written(tmp_path, caplog):
    emitter = OutputEmitter(make_config(tmp_path))
    emitter.open()
    (emitter.output_dir / "endpoints.txt").mkdir()

    with caplog.at_level(logging.ERROR, logger="speedcrawl.output.emitter"):
        written = emitter.finalize(_aggregator())

    assert emitter.write_errors == 1
    assert "endpoints.txt" in caplog.text
    assert (emitter.output_dir / "summary.json") in written


def test_unwritable_output_directory_is_a_setup_error(tmp_path):
    blocker = tmp_path / "out"
    blocker.write_text("not a directory", encoding="utf-8")
    emitter = OutputEmitter(make_config(tmp_path))

    with pytest.raises(SetupError):
        emitter.open()
