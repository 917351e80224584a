"""Unit tests for logging setup."""

from __future__ import annotations

import logging

from wbsmatch.core.logging import QUIET_LOGGERS, configure_logging


def test_level_override():
    configure_logging("warning", "text")
    assert logging.getLogger().level == logging.WARNING


def test_third_party_loggers_quieted():
    configure_logging("DEBUG", "json")
    for name in QUIET_LOGGERS:
        assert logging.getLogger(name).level == logging.WARNING
