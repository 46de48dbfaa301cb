from __future__ import annotations

import time
from collections.abc import Mapping

from flask import current_app


TEST_NOW_HEADER = "X-Test-Now-Ms"

# Largest instant a JavaScript Date can hold; later overrides are ignored.
MAX_OVERRIDE_MS = 8_640_000_000_000_000


def wall_clock_ms() -> int:
    return time.time_ns() // 1_000_000


def current_time_ms(headers: Mapping[str, str]) -> int:
    """
    Return the current instant in epoch milliseconds.

    When ``TEST_MODE`` is enabled, a positive integer up to
    ``MAX_OVERRIDE_MS`` in the ``X-Test-Now-Ms`` header replaces the wall
    clock so expiry can be exercised deterministically. Otherwise the header
    is ignored.
    """

    if current_app.config.get("TEST_MODE", False):
        override = headers.get(TEST_NOW_HEADER)
        if override:
            try:
                parsed = int(override)
            except ValueError:
                parsed = 0
            if 0 < parsed <= MAX_OVERRIDE_MS:
                return parsed
    return wall_clock_ms()
