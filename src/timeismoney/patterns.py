# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Currency pattern compilation with a small config-keyed LRU.

Pure Python module, no DOM dependencies.

One CompiledPattern per CurrencyConfig holds:
- direct: code-qualified, symbol-prefixed and symbol-suffixed amounts
- contextual: the same amounts preceded by a qualifier ("under", "from", ...)
- split_token: one fragment of a price split across DOM nodes
- amount: a bare number in the configured format

Patterns are universal: nothing here is keyed by site. Besides the user's
own symbol and code, a fixed table of common symbols/codes is recognised so
foreign prices are detected and then rejected as a currency mismatch.

NOTE: not thread-safe. The coordinator is single-threaded and only inserts
at batch start.
"""

from __future__ import annotations

import logging
import re
from collections import OrderedDict
from dataclasses import dataclass, field

from .errors import ConfigError
from .settings import CurrencyConfig

logger = logging.getLogger(__name__)

DEFAULT_CURRENCY = CurrencyConfig()

MAX_CACHED_CONFIGS = 16

# Symbol → ISO 4217 code when the symbol is not the user's own
KNOWN_SYMBOLS: dict[str, str] = {
    "US$": "USD",
    "C$": "CAD",
    "A$": "AUD",
    "NZ$": "NZD",
    "HK$": "HKD",
    "S$": "SGD",
    "R$": "BRL",
    "$": "USD",
    "€": "EUR",
    "£": "GBP",
    "¥": "JPY",
    "￥": "JPY",
    "円": "JPY",
    "元": "CNY",
    "₹": "INR",
    "₽": "RUB",
    "₩": "KRW",
    "원": "KRW",
    "zł": "PLN",
    "kr": "SEK",
    "Fr": "CHF",
}

KNOWN_CODES: tuple[str, ...] = (
    "USD", "EUR", "GBP", "JPY", "CAD", "AUD", "CHF", "CNY", "HKD", "NZD", "SEK",
    "KRW", "SGD", "NOK", "MXN", "INR", "RUB", "ZAR", "BRL", "PLN", "DKK",
)  # fmt: skip

QUALIFIERS: tuple[str, ...] = ("starting at", "as low as", "under", "from", "only", "just", "save")

_THOUSANDS_CLASS = {
    ",": ",",
    ".": r"\.",
    " ": "[ \u00a0\u202f]",
}


# ---------------------------------------------------------------------------
# Compiled pattern set
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CompiledPattern:
    """Regex set for one CurrencyConfig. Immutable; shared across a batch."""

    config: CurrencyConfig
    direct: re.Pattern[str]
    contextual: re.Pattern[str]
    split_token: re.Pattern[str]
    amount: re.Pattern[str]  # bare number in the configured format
    symbols: tuple[str, ...] = field(default=(), repr=False)
    fallback: bool = False  # compiled from DEFAULT_CURRENCY because config was invalid

    def resolve_currency(self, hint: str) -> str | None:
        """Map a symbol or code hint to an ISO code; None if unknown."""
        hint = hint.strip()
        if not hint:
            return None
        if self.config.symbol and hint == self.config.symbol:
            return self.config.code or None
        if hint in KNOWN_SYMBOLS:
            return KNOWN_SYMBOLS[hint]
        if len(hint) == 3 and hint.isascii() and hint.isalpha():
            return hint.upper()
        return None


def match_parts(m: re.Match[str]) -> tuple[str, str]:
    """Return (currency_hint, amount_text) for a direct/contextual match."""
    groups = m.groupdict()
    for prefix in ("cb", "ca", "sb", "sa"):
        hint = groups.get(prefix)
        if hint:
            return hint, groups[f"{prefix}_amt"]
    raise ValueError(f"Match {m.group(0)!r} carries no currency group")


def _symbol_alternation(symbols: tuple[str, ...]) -> str:
    parts = []
    # Longest first so "US$" wins over "$"
    for sym in sorted(set(symbols), key=len, reverse=True):
        escaped = re.escape(sym)
        if any(ch.isascii() and ch.isalpha() for ch in sym):
            escaped = rf"(?<![A-Za-z]){escaped}(?![A-Za-z])"
        parts.append(escaped)
    return "(?:" + "|".join(parts) + ")"


def _code_alternation(codes: tuple[str, ...]) -> str:
    return r"(?<![A-Za-z])(?:" + "|".join(sorted(set(codes))) + r")(?![A-Za-z])"


def _number_pattern(config: CurrencyConfig) -> str:
    th = _THOUSANDS_CLASS[config.thousands_separator]
    dec = re.escape(config.decimal_separator)
    return rf"(?<!\d)(?:\d{{1,3}}(?:{th}\d{{3}})+|\d+)(?:{dec}\d{{1,2}})?(?!\d)"


def build_pattern(config: CurrencyConfig, *, fallback: bool = False) -> CompiledPattern:
    """Compile the regex set for ``config``. Symbols are always escaped.

    Raises ConfigError if the config cannot describe a price format.
    """
    problems = config.problems()
    if problems:
        raise ConfigError("; ".join(problems))
    symbols = tuple(s for s in (config.symbol, *KNOWN_SYMBOLS) if s)
    codes = tuple(c for c in (config.code, *KNOWN_CODES) if c)
    sym = _symbol_alternation(symbols)
    code = _code_alternation(codes)
    num = _number_pattern(config)

    code_alts = [
        rf"(?P<cb>{code})\s?(?P<cb_amt>{num})",
        rf"(?P<ca_amt>{num})\s?(?P<ca>{code})",
    ]
    sym_before = rf"(?P<sb>{sym})\s?(?P<sb_amt>{num})"
    sym_after = rf"(?P<sa_amt>{num})\s?(?P<sa>{sym})"
    sym_alts = [sym_before, sym_after] if config.symbol_position == "before" else [sym_after, sym_before]
    direct = re.compile("|".join(code_alts + sym_alts))

    qualifier = "|".join(q.replace(" ", r"\s+") for q in QUALIFIERS)
    currency = f"(?:{sym}|{code})"
    contextual = re.compile(
        rf"(?P<qualifier>(?i:\b(?:{qualifier})\b))\s+"
        rf"(?:(?P<sb>{currency})\s*(?P<sb_amt>{num})|(?P<sa_amt>{num})\s*(?P<sa>{currency}))"
    )

    th = _THOUSANDS_CLASS[config.thousands_separator]
    dec = re.escape(config.decimal_separator)
    split_token = re.compile(
        rf"(?:(?P<lead>{currency})\s*)?"
        rf"(?P<lsep>{dec})?"
        rf"(?P<num>\d(?:(?:{th}|{dec}|\d)*\d)?)?"
        rf"(?P<sep>{dec})?"
        rf"\s*(?P<trail>{currency})?"
    )

    return CompiledPattern(
        config=config,
        direct=direct,
        contextual=contextual,
        split_token=split_token,
        amount=re.compile(num),
        symbols=symbols,
        fallback=fallback,
    )


# ---------------------------------------------------------------------------
# Registry stats (observability)
# ---------------------------------------------------------------------------


@dataclass
class RegistryStats:
    """Counters for registry behaviour, used for logging and tests."""

    hits: int = 0
    misses: int = 0
    evictions: int = 0
    fallbacks: int = 0

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total > 0 else 0.0


# ---------------------------------------------------------------------------
# PatternRegistry
# ---------------------------------------------------------------------------


class PatternRegistry:
    """Config-keyed LRU of CompiledPattern.

    Recompilation is cheap and deterministic, so evicted entries are simply
    rebuilt on the next miss.
    """

    def __init__(self, max_entries: int = MAX_CACHED_CONFIGS) -> None:
        self._max_entries = max(1, min(max_entries, MAX_CACHED_CONFIGS))
        self._lru: OrderedDict[tuple, CompiledPattern] = OrderedDict()
        self._stats = RegistryStats()

    def compile(self, config: CurrencyConfig) -> CompiledPattern:
        """Return the CompiledPattern for ``config``, compiling on miss.

        Never raises for a bad config: invalid configs (ConfigError) are
        logged and served the DEFAULT_CURRENCY pattern.
        """
        key = config.cache_key
        cached = self._lru.get(key)
        if cached is not None:
            self._stats.hits += 1
            self._lru.move_to_end(key)
            return cached

        self._stats.misses += 1
        try:
            compiled = build_pattern(config)
        except ConfigError as e:
            self._stats.fallbacks += 1
            logger.warning("Invalid currency config %s: %s; using default %s pattern", key, e, DEFAULT_CURRENCY.code)
            compiled = build_pattern(DEFAULT_CURRENCY, fallback=True)

        self._lru[key] = compiled
        self._lru.move_to_end(key)
        while len(self._lru) > self._max_entries:
            evicted_key, _ = self._lru.popitem(last=False)
            self._stats.evictions += 1
            logger.debug("Pattern eviction: %s", evicted_key)
        return compiled

    def clear(self) -> None:
        self._lru.clear()

    @property
    def stats(self) -> RegistryStats:
        return self._stats

    def __len__(self) -> int:
        return len(self._lru)

    def __contains__(self, config: object) -> bool:
        return isinstance(config, CurrencyConfig) and config.cache_key in self._lru
