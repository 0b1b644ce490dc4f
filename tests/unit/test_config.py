from pathlib import Path

import pytest

from speedcrawl.core.config import (
    DEFAULT_BLOCKED_EXTENSIONS,
    DEFAULT_USER_AGENT,
    default_output_dir,
    load_configuration,
    parse_list,
)
from speedcrawl.core.errors import SetupError


def test_load_configuration_uses_environment(monkeypatch, tmp_path):
    monkeypatch.setenv("SPEEDCRAWL_HEADLESS", "false")
    monkeypatch.setenv("SPEEDCRAWL_PROXY", "http://127.0.0.1:8080")
    monkeypatch.setenv("SPEEDCRAWL_USER_AGENT", "scanner/1.0")
    monkeypatch.setenv("SPEEDCRAWL_TIMEOUT", "5000")
    monkeypatch.setenv("SPEEDCRAWL_REQUEST_DELAY", "0")

    config = load_configuration("https://example.com/", tmp_path)

    assert config.headless is False
    assert config.proxy == "http://127.0.0.1:8080"
    assert config.user_agent == "scanner/1.0"
    assert config.navigation_timeout_ms == 5000
    assert config.request_delay_ms == 0
    assert config.output_dir == tmp_path


def test_explicit_options_win_over_environment(monkeypatch):
    monkeypatch.setenv("SPEEDCRAWL_HEADLESS", "false")
    monkeypatch.setenv("SPEEDCRAWL_TIMEOUT", "5000")

    config = load_configuration("https://example.com", headless=True, navigation_timeout_ms=100)

    assert config.headless is True
    assert config.navigation_timeout_ms == 100


def test_load_configuration_defaults():
    config = load_configuration("https://Example.com/app")

    assert config.max_pages == 100
    assert config.max_depth == 3
    assert config.formats == frozenset({"json"})
    assert config.blocked_extensions == frozenset(DEFAULT_BLOCKED_EXTENSIONS)
    assert config.request_delay_ms == 1000
    assert config.navigation_timeout_ms == 30000
    assert config.headless is True
    assert config.extract_secrets is True
    assert config.max_consecutive_failures == 5
    assert config.user_agent == DEFAULT_USER_AGENT
    assert config.target_host == "example.com"
    assert config.output_dir == Path("speedcrawl-output") / "example.com"


def test_formats_and_extensions_are_parsed_from_lists():
    config = load_configuration(
        "https://example.com",
        formats="JSON, har,http",
        blocked_extensions=[".PDF", "zip"],
    )

    assert config.formats == frozenset({"json", "har", "http"})
    assert config.wants("har")
    assert not config.wants("jsonl")
    assert config.blocked_extensions == frozenset({"pdf", "zip"})


@pytest.mark.parametrize(
    "url",
    ["", "example.com", "ftp://example.com/", "javascript:alert(1)", "https://"],
)
def test_invalid_target_is_rejected(url):
    with pytest.raises(SetupError):
        load_configuration(url)


def test_unknown_format_is_rejected():
    with pytest.raises(SetupError, match="xml"):
        load_configuration("https://example.com", formats="json,xml")


def test_bad_numbers_are_rejected(monkeypatch):
    with pytest.raises(SetupError):
        load_configuration("https://example.com", max_pages=0)
    with pytest.raises(SetupError):
        load_configuration("https://example.com", max_depth=-1)

    monkeypatch.setenv("SPEEDCRAWL_TIMEOUT", "soon")
    with pytest.raises(SetupError, match="SPEEDCRAWL_TIMEOUT"):
        load_configuration("https://example.com")


def test_parse_list_and_default_output_dir():
    assert parse_list(" a, ,b ") == ["a", "b"]
    assert parse_list(None) == []
    assert default_output_dir("http://my_host.test:8080/x") == Path("speedcrawl-output") / "my-host.test"
