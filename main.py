#!/usr/bin/env python3
"""Runs SpeedCrawl straight from a source checkout."""

from __future__ import annotations

import sys
from pathlib import Path

SRC_PATH = Path(__file__).resolve().parent / "src"
if SRC_PATH.exists():  # not installed, use the checkout
    sys.path.insert(0, str(SRC_PATH))

from speedcrawl.cli import run_cli  # noqa: E402


if __name__ == "__main__":
    sys.exit(run_cli())
