# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Price -> work time conversion.

Pure functions, no DOM and no logging. A conversion either yields a
WorkTime or a ConversionFailure; nothing here raises for bad input.
"""

from __future__ import annotations

import math
from enum import StrEnum

from . import WorkTime
from .settings import TimeFormat, WageInfo

WEEKS_PER_YEAR = 52
HOURS_PER_WEEK = 40


class ConversionFailure(StrEnum):
    """Terminal "cannot convert" outcomes. Never written to the DOM."""

    CURRENCY_MISMATCH = "currency_mismatch"
    INVALID_AMOUNT = "invalid_amount"
    INVALID_WAGE = "invalid_wage"


ConversionResult = WorkTime | ConversionFailure


def hourly_rate(wage: WageInfo) -> float:
    if wage.frequency == "yearly":
        return wage.amount / WEEKS_PER_YEAR / HOURS_PER_WEEK
    return wage.amount


def convert(amount: float, price_currency: str | None, wage: WageInfo) -> ConversionResult:
    """Convert ``amount`` in ``price_currency`` to hours of work at ``wage``.

    Currency comparison is exact on uppercased ISO codes; there is no
    exchange-rate conversion. Minutes round half-up, and a result of 60
    minutes carries into the hour.
    """
    if price_currency is None or price_currency.upper() != wage.currency_code.upper():
        return ConversionFailure.CURRENCY_MISMATCH
    if not math.isfinite(amount) or amount < 0:
        return ConversionFailure.INVALID_AMOUNT

    rate = hourly_rate(wage)
    if not math.isfinite(rate) or rate <= 0:
        return ConversionFailure.INVALID_WAGE

    total_hours = amount / rate
    if not math.isfinite(total_hours):
        return ConversionFailure.INVALID_AMOUNT
    hours = math.floor(total_hours)
    minutes = math.floor(60 * (total_hours - hours) + 0.5)
    if minutes >= 60:
        hours += 1
        minutes = 0
    return WorkTime(hours=hours, minutes=minutes)


def _plural(n: int, unit: str) -> str:
    return f"{n} {unit}" if n == 1 else f"{n} {unit}s"


def format_work_time(work_time: WorkTime, style: TimeFormat = "compact") -> str:
    """Render ``work_time`` as ``2h 30m`` (compact) or ``2 hours, 30 minutes``."""
    if style == "compact":
        return f"{work_time.hours}h {work_time.minutes}m"
    parts = []
    if work_time.hours:
        parts.append(_plural(work_time.hours, "hour"))
    if work_time.minutes or not parts:
        parts.append(_plural(work_time.minutes, "minute"))
    return ", ".join(parts)


def annotation_suffix(work_time: WorkTime, style: TimeFormat = "compact") -> str:
    return f" ({format_work_time(work_time, style)})"
