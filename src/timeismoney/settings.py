# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Settings snapshot models and loader.

The snapshot is an input of the pipeline: one immutable ``Settings`` per
batch. Field aliases accept the camelCase names the browser storage uses,
and the legacy separator words (``commas``, ``dot``, ...) older versions
stored.

Separator sanity (thousands != decimal) is not validated here; see
``CurrencyConfig.problems`` and PatternRegistry's fallback.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import SettingsError

logger = logging.getLogger(__name__)

SymbolPosition = Literal["before", "after"]
Separator = Literal[",", ".", " "]
WageFrequency = Literal["hourly", "yearly"]
TimeFormat = Literal["compact", "verbose"]

# Values stored by earlier extension versions
_LEGACY_THOUSANDS = {"commas": ",", "spacesAndDots": ".", "dots": ".", "spaces": " "}
_LEGACY_DECIMAL = {"dot": ".", "comma": ","}


class CurrencyConfig(BaseModel):
    """How the user's currency is written on pages."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    symbol: str = "$"
    code: str = "USD"
    symbol_position: SymbolPosition = Field("before", alias="symbolPosition")
    thousands_separator: Separator = Field(",", alias="thousandsSeparator")
    decimal_separator: Separator = Field(".", alias="decimalSeparator")

    @field_validator("code", mode="before")
    @classmethod
    def _upper_code(cls, v: Any) -> Any:
        return v.strip().upper() if isinstance(v, str) else v

    @field_validator("symbol", mode="before")
    @classmethod
    def _strip_symbol(cls, v: Any) -> Any:
        return v.strip() if isinstance(v, str) else v

    @field_validator("thousands_separator", mode="before")
    @classmethod
    def _legacy_thousands(cls, v: Any) -> Any:
        return _LEGACY_THOUSANDS.get(v, v) if isinstance(v, str) else v

    @field_validator("decimal_separator", mode="before")
    @classmethod
    def _legacy_decimal(cls, v: Any) -> Any:
        return _LEGACY_DECIMAL.get(v, v) if isinstance(v, str) else v

    @property
    def cache_key(self) -> tuple[str, str, str, str, str]:
        return (
            self.symbol,
            self.code,
            self.symbol_position,
            self.thousands_separator,
            self.decimal_separator,
        )

    def problems(self) -> list[str]:
        """Return human-readable reasons this config cannot be compiled (empty = OK)."""
        issues: list[str] = []
        if self.thousands_separator == self.decimal_separator:
            issues.append(f"thousands and decimal separators are both {self.decimal_separator!r}")
        if not self.symbol and not self.code:
            issues.append("neither symbol nor code is set")
        if self.code and (len(self.code) != 3 or not self.code.isalpha()):
            issues.append(f"currency code {self.code!r} is not a 3-letter code")
        return issues


class WageInfo(BaseModel):
    """User's wage; read-only within a batch."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    amount: float
    frequency: WageFrequency = "hourly"
    currency_code: str = Field("USD", alias="currencyCode")

    @field_validator("currency_code", mode="before")
    @classmethod
    def _upper_code(cls, v: Any) -> Any:
        return v.strip().upper() if isinstance(v, str) else v


class Settings(BaseModel):
    """One settings snapshot, fetched once per batch by the host."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    currency: CurrencyConfig = Field(default_factory=CurrencyConfig)
    wage: WageInfo = Field(default_factory=lambda: WageInfo(amount=30.0))
    enabled: bool = True
    time_format: TimeFormat = Field("compact", alias="timeFormat")

    @classmethod
    def from_storage(cls, stored: dict[str, Any]) -> Settings:
        """Build a snapshot from the flat key/value layout of extension storage.

        Keys: amount, frequency, currencySymbol, currencyCode, thousands,
        decimal, disabled, symbolPosition (optional).
        """
        code = stored.get("currencyCode", "USD")
        try:
            return cls(
                currency=CurrencyConfig(
                    symbol=stored.get("currencySymbol", "$"),
                    code=code,
                    symbol_position=stored.get("symbolPosition", "before"),
                    thousands_separator=stored.get("thousands", ","),
                    decimal_separator=stored.get("decimal", "."),
                ),
                wage=WageInfo(
                    amount=stored.get("amount", 30.0),
                    frequency=stored.get("frequency", "hourly"),
                    currency_code=code,
                ),
                enabled=not stored.get("disabled", False),
            )
        except ValidationError as e:
            raise SettingsError(f"Invalid stored settings: {e}", source="storage") from e


DEFAULT_SETTINGS = Settings()


def load_settings(path: str | Path | None) -> Settings:
    """Load a snapshot from a YAML or JSON file.

    A missing path (None or nonexistent file) yields DEFAULT_SETTINGS.
    Raises SettingsError for unreadable or invalid files.
    """
    if path is None:
        return DEFAULT_SETTINGS
    p = Path(path)
    if not p.exists():
        logger.debug("Settings file %s not found, using defaults", p)
        return DEFAULT_SETTINGS

    try:
        raw_text = p.read_text(encoding="utf-8")
        raw = json.loads(raw_text) if p.suffix.lower() == ".json" else yaml.safe_load(raw_text)
    except (OSError, UnicodeDecodeError, json.JSONDecodeError, yaml.YAMLError) as e:
        raise SettingsError(f"Cannot read settings from {p}: {e}", source=str(p)) from e

    if raw is None:
        return DEFAULT_SETTINGS
    if not isinstance(raw, dict):
        raise SettingsError(f"Settings in {p} must be a mapping, got {type(raw).__name__}", source=str(p))

    try:
        # Flat storage layout has no nested "currency" block
        if "currency" not in raw and ("currencySymbol" in raw or "currencyCode" in raw):
            return Settings.from_storage(raw)
        return Settings.model_validate(raw)
    except ValidationError as e:
        raise SettingsError(f"Invalid settings in {p}: {e}", source=str(p)) from e
