"""Tests for price -> work time conversion and formatting."""

from __future__ import annotations

import math

import pytest

from timeismoney import WorkTime
from timeismoney.converter import (
    ConversionFailure,
    annotation_suffix,
    convert,
    format_work_time,
    hourly_rate,
)
from timeismoney.settings import WageInfo

HOURLY_15 = WageInfo(amount=15, frequency="hourly", currency_code="USD")
YEARLY_31200 = WageInfo(amount=31200, frequency="yearly", currency_code="USD")


class TestHourlyRate:
    def test_hourly_passthrough(self):
        assert hourly_rate(HOURLY_15) == 15

    def test_yearly_divides_by_52_weeks_of_40_hours(self):
        assert hourly_rate(YEARLY_31200) == pytest.approx(15.0)


class TestConvert:
    def test_thirty_dollars_at_fifteen_an_hour(self):
        assert convert(30.0, "USD", HOURLY_15) == WorkTime(hours=2, minutes=0)

    def test_yearly_wage(self):
        assert convert(7.50, "USD", YEARLY_31200) == WorkTime(hours=0, minutes=30)

    def test_zero_amount(self):
        assert convert(0.0, "USD", HOURLY_15) == WorkTime(hours=0, minutes=0)

    def test_currency_mismatch(self):
        assert convert(25.0, "EUR", HOURLY_15) is ConversionFailure.CURRENCY_MISMATCH

    def test_undetermined_currency_is_mismatch(self):
        assert convert(25.0, None, HOURLY_15) is ConversionFailure.CURRENCY_MISMATCH

    def test_currency_compare_is_case_insensitive(self):
        assert convert(15.0, "usd", HOURLY_15) == WorkTime(hours=1, minutes=0)

    def test_minutes_round_half_up(self):
        # 0.125 h = 7.5 min
        assert convert(1.0, "USD", WageInfo(amount=8, currency_code="USD")) == WorkTime(hours=0, minutes=8)

    def test_sixty_minutes_carry_into_hour(self):
        # 1.999 h -> 119.94 min -> 1h 60m -> 2h 0m
        assert convert(1.999, "USD", WageInfo(amount=1, currency_code="USD")) == WorkTime(hours=2, minutes=0)

    @pytest.mark.parametrize("amount", [0.0, -5.0])
    def test_non_positive_wage(self, amount):
        wage = WageInfo(amount=amount, currency_code="USD")
        assert convert(10.0, "USD", wage) is ConversionFailure.INVALID_WAGE

    def test_non_finite_wage(self):
        wage = WageInfo(amount=math.inf, currency_code="USD")
        assert convert(10.0, "USD", wage) is ConversionFailure.INVALID_WAGE

    @pytest.mark.parametrize("amount", [-1.0, math.nan, math.inf])
    def test_invalid_amount(self, amount):
        assert convert(amount, "USD", HOURLY_15) is ConversionFailure.INVALID_AMOUNT

    def test_mismatch_checked_before_wage(self):
        wage = WageInfo(amount=0, currency_code="USD")
        assert convert(10.0, "GBP", wage) is ConversionFailure.CURRENCY_MISMATCH


class TestWorkTime:
    def test_rejects_sixty_minutes(self):
        with pytest.raises(ValueError):
            WorkTime(hours=1, minutes=60)

    def test_total_minutes(self):
        assert WorkTime(hours=2, minutes=30).total_minutes == 150


class TestFormatting:
    def test_compact(self):
        assert format_work_time(WorkTime(2, 30)) == "2h 30m"

    def test_compact_zero(self):
        assert format_work_time(WorkTime(0, 0)) == "0h 0m"

    @pytest.mark.parametrize(
        "work_time, expected",
        [
            (WorkTime(2, 30), "2 hours, 30 minutes"),
            (WorkTime(1, 1), "1 hour, 1 minute"),
            (WorkTime(3, 0), "3 hours"),
            (WorkTime(0, 45), "45 minutes"),
            (WorkTime(0, 0), "0 minutes"),
        ],
    )
    def test_verbose(self, work_time, expected):
        assert format_work_time(work_time, "verbose") == expected

    def test_annotation_suffix(self):
        assert annotation_suffix(WorkTime(2, 0)) == " (2h 0m)"
