# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Shared test configuration and fixtures."""

try:
    import timeismoney  # noqa: F401
except ImportError:
    raise ImportError("timeismoney is not installed. Run: pip install -e '.[test]'") from None

import logging

import pytest
import structlog

from timeismoney.annotation import AnnotationRegistry
from timeismoney.patterns import PatternRegistry
from timeismoney.settings import CurrencyConfig, Settings, WageInfo


@pytest.fixture(autouse=True)
def _reset_logging():
    """Undo logging_config.configure() side effects between tests."""
    yield
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()
    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(logging.WARNING)


@pytest.fixture
def usd_settings() -> Settings:
    """$ before the amount, 1,234.56 format, 15 USD/hour."""
    return Settings(wage=WageInfo(amount=15, frequency="hourly", currency_code="USD"))


@pytest.fixture
def eur_settings() -> Settings:
    """€ after the amount, 1.234,56 format, 20 EUR/hour."""
    return Settings(
        currency=CurrencyConfig(
            symbol="€",
            code="EUR",
            symbol_position="after",
            thousands_separator=".",
            decimal_separator=",",
        ),
        wage=WageInfo(amount=20, currency_code="EUR"),
    )


@pytest.fixture
def patterns() -> PatternRegistry:
    return PatternRegistry()


@pytest.fixture
def marks() -> AnnotationRegistry:
    return AnnotationRegistry()
