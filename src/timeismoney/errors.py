# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""timeismoney exception hierarchy.

All timeismoney-specific errors inherit from TimeIsMoneyError. Unparsable
prices and currency mismatches are ordinary results, not exceptions.
"""

from __future__ import annotations


class TimeIsMoneyError(Exception):
    """Base exception for all timeismoney errors."""


class ConfigError(TimeIsMoneyError):
    """Currency configuration cannot be compiled (e.g. identical separators)."""


class SettingsError(TimeIsMoneyError):
    """Settings snapshot could not be loaded or validated."""

    def __init__(self, message: str, *, source: str = "") -> None:
        super().__init__(message)
        self.source = source


class MalformedDomNodeError(TimeIsMoneyError):
    """Unexpected node shape during recognition or annotation."""

    def __init__(self, message: str, *, node_ref: str = "") -> None:
        super().__init__(message)
        self.node_ref = node_ref
