from speedcrawl.core.aggregator import RunAggregator, normalize_endpoint
from speedcrawl.core.models import Finding, PageResult


class _Clock:
    def __init__(self) -> None:
        self.now = 1_700_000_000.0

    def __call__(self) -> float:
        return self.now


def test_normalize_endpoint_collapses_variants():
    assert normalize_endpoint("https://example.com/api/users/?id=1") == "/api/users"
    assert normalize_endpoint("/api/users") == "/api/users"
    assert normalize_endpoint("api/users#x") == "/api/users"
    assert normalize_endpoint("https://example.com") == "/"


def test_merging_same_endpoint_twice_keeps_one():
    aggregator = RunAggregator()
    finding = Finding(kind="endpoint", value="/api/login", source="runtime")

    assert aggregator.merge_endpoints([finding]) == 1
    assert aggregator.merge_endpoints([finding]) == 0
    assert aggregator.merge_endpoints([Finding("endpoint", "https://example.com/api/login/", "static")]) == 0

    assert aggregator.endpoints == ["/api/login"]


def test_secrets_dedup_on_kind_value_and_source():
    aggregator = RunAggregator()
    aggregator.merge_secrets(
        [
            Finding("AWS_ACCESS_KEY", "AKIAEXAMPLE", "https://example.com/"),
            Finding("AWS_ACCESS_KEY", "AKIAEXAMPLE", "https://example.com/"),
            Finding("AWS_ACCESS_KEY", "AKIAEXAMPLE", "https://example.com/app.js"),
        ]
    )

    assert len(aggregator.secrets) == 2


def test_technologies_dedup_case_insensitively():
    aggregator = RunAggregator()
    aggregator.merge_technologies(["React", "react", " Vue ", ""])

    assert aggregator.technologies == ["React", "Vue"]


def test_summary_reports_counts_and_duration():
    clock = _Clock()
    aggregator = RunAggregator(clock=clock)
    aggregator.record_page(PageResult(url="https://example.com", depth=0, title="Home", link_count=2))
    aggregator.record_request(3)
    aggregator.record_request(1, asset=True)
    aggregator.record_forms(4, True)
    aggregator.record_forms(2, False)
    aggregator.record_navigation_failure()
    clock.now += 12.5
    aggregator.finish()

    summary = aggregator.summary()

    assert summary.pages_processed == 1
    assert summary.total_requests == 4
    assert summary.asset_requests == 1
    assert summary.forms == 1
    assert summary.fields_processed == 6
    assert summary.failed_navigations == 1
    assert summary.duration_seconds == 12.5
    assert summary.to_dict()["crawl"]["duration"] == "12.50s"
    assert "- Pages: 1" in summary.to_markdown()


def test_empty_summary_has_zero_counts():
    summary = RunAggregator().summary()

    assert summary.pages_processed == 0
    assert summary.endpoints == 0
    assert summary.to_dict()["findings"]["secrets"] == 0
