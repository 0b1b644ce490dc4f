"""SpeedCrawl: browser-driven crawler that captures traffic for security testing."""

__version__ = "1.0.0"
