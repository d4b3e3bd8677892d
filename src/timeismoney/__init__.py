# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Time Is Money: annotate web page prices with the work time they cost.

Pipeline per batch of DOM nodes:
- recognition: multi-pass price detection (attribute, split, direct, contextual)
- normalizer: raw match text -> (amount, ISO code)
- converter: amount + wage -> hours and minutes of work
- annotation: write "$19.99 (2h 30m)" next to the price, exactly once
"""

from __future__ import annotations

from dataclasses import dataclass

__version__ = "0.4.0"


@dataclass(frozen=True)
class NormalizedPrice:
    """A price reduced to a number and a currency."""

    amount: float  # always >= 0
    currency_code: str | None  # ISO 4217, None when undetermined

    @property
    def is_determined(self) -> bool:
        return self.currency_code is not None


@dataclass(frozen=True)
class WorkTime:
    """Successful conversion result: whole hours plus 0..59 minutes."""

    hours: int
    minutes: int

    def __post_init__(self) -> None:
        if self.hours < 0 or not 0 <= self.minutes <= 59:
            raise ValueError(f"Invalid work time {self.hours}h {self.minutes}m")

    @property
    def total_minutes(self) -> int:
        return self.hours * 60 + self.minutes

    def __str__(self) -> str:
        return f"{self.hours}h {self.minutes}m"
