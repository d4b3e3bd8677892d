# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""RawMatch -> NormalizedPrice.

Returns None (never 0) for text that holds no usable number. Callers treat
None as "skip": unparsable prices are frequent on real pages and are not
logged.
"""

from __future__ import annotations

import math

from . import NormalizedPrice
from .patterns import DEFAULT_CURRENCY, CompiledPattern
from .recognition import RawMatch
from .settings import CurrencyConfig

_SPACE_LIKE = (" ", "\u00a0", "\u202f")


def parse_amount(text: str, thousands: str, decimal: str) -> float | None:
    """Parse ``text`` written with the given separators.

    Everything except digits and the two separators is dropped first, so
    stray symbols and whitespace do not matter.
    """
    if thousands == " ":
        for ch in _SPACE_LIKE[1:]:
            text = text.replace(ch, " ")
    kept = "".join(ch for ch in text if ch.isdigit() or ch in (thousands, decimal))
    if not any(ch.isdigit() for ch in kept):
        return None
    canonical = kept.replace(thousands, "").replace(decimal, ".")
    try:
        value = float(canonical)
    except ValueError:
        return None
    if not math.isfinite(value) or value < 0:
        return None
    return value


def normalize(match: RawMatch, config: CurrencyConfig | None = None) -> NormalizedPrice | None:
    """Normalize ``match`` using the config of the pattern that found it."""
    pattern: CompiledPattern | None = match.pattern
    if config is None:
        config = pattern.config if pattern is not None else DEFAULT_CURRENCY
    amount = parse_amount(match.text, config.thousands_separator, config.decimal_separator)
    if amount is None:
        return None
    code = pattern.resolve_currency(match.currency_hint) if pattern is not None else _code_only(match.currency_hint)
    return NormalizedPrice(amount=amount, currency_code=code)


def _code_only(hint: str) -> str | None:
    hint = hint.strip()
    return hint.upper() if len(hint) == 3 and hint.isascii() and hint.isalpha() else None


def format_price(amount: float, config: CurrencyConfig) -> str:
    """Render ``amount`` as a page would under ``config`` ("$1,234.50", "12,5 €")."""
    whole, frac = f"{amount:.2f}".split(".")
    groups = []
    while len(whole) > 3:
        groups.insert(0, whole[-3:])
        whole = whole[:-3]
    groups.insert(0, whole)
    number = config.thousands_separator.join(groups) + config.decimal_separator + frac
    symbol = config.symbol or config.code
    if config.symbol_position == "before":
        return f"{symbol}{number}"
    return f"{number} {symbol}"
