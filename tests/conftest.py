import pytest

import speedcrawl.core.config as config_module


@pytest.fixture(autouse=True)
def _no_dotenv(monkeypatch):
    monkeypatch.setattr(config_module, "load_dotenv", lambda *_args, **_kwargs: False)
    for key in (
        "SPEEDCRAWL_HEADLESS",
        "SPEEDCRAWL_PROXY",
        "SPEEDCRAWL_USER_AGENT",
        "SPEEDCRAWL_TIMEOUT",
        "SPEEDCRAWL_REQUEST_DELAY",
    ):
        monkeypatch.delenv(key, raising=False)
