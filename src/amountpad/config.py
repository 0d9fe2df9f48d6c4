"""Configuration loading (``amountpad.yaml``) and rate-table files."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, model_validator

from amountpad.numbers import NumberLocale

CONFIG_FILENAME = "amountpad.yaml"

DEFAULT_CONFIG: dict[str, Any] = {
    "decimal_separator": ".",
    "grouping_separator": ",",
    "shorten_threshold": 10_000,
    "fiat_decimals": 2,
    "crypto_decimals": 9,
    "number_max_fraction_digits": 12,
    "log_dir": None,  # structured event log disabled when unset
    "logging_fsync": False,
}


class PadConfig(BaseModel):
    """Validated configuration values."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    decimal_separator: str = "."
    grouping_separator: str = ","
    shorten_threshold: float = Field(default=10_000, gt=0)
    fiat_decimals: int = Field(default=2, ge=0, le=12)
    crypto_decimals: int = Field(default=9, ge=0, le=18)
    number_max_fraction_digits: int = Field(default=12, ge=0, le=18)
    log_dir: str | None = None
    logging_fsync: bool = False

    @model_validator(mode="before")
    @classmethod
    def _default_grouping(cls, data: Any) -> Any:
        if isinstance(data, dict) and "grouping_separator" not in data:
            if data.get("decimal_separator") == ",":
                data = {**data, "grouping_separator": "."}
        return data

    @model_validator(mode="after")
    def _check_locale(self) -> "PadConfig":
        self.locale  # raises on unusable separators
        return self

    @property
    def locale(self) -> NumberLocale:
        return NumberLocale(
            decimal_separator=self.decimal_separator,
            grouping_separator=self.grouping_separator,
        )


DEFAULT_PAD_CONFIG = PadConfig()


def _read_yaml(path: Path) -> dict[str, Any]:
    data = yaml.safe_load(path.read_text(encoding="utf-8"))
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: expected a mapping at the top level")
    return data


def load_config(path: Path | None = None) -> PadConfig:
    """Load configuration, merging ``amountpad.yaml`` over the defaults.

    A file that sets ``decimal_separator: ","`` without a
    ``grouping_separator`` gets ``"."`` for grouping.

    Args:
        path: A config file, or a directory containing ``amountpad.yaml``.
            ``None`` or a directory without the file yields the defaults.

    Raises:
        ValueError: On unknown keys or invalid values.
    """
    config = dict(DEFAULT_CONFIG)
    if path is not None:
        if path.is_dir():
            path = path / CONFIG_FILENAME
        if path.exists():
            user_config = _read_yaml(path)
            unknown = sorted(set(user_config) - set(DEFAULT_CONFIG))
            if unknown:
                raise ValueError(f"Unknown config keys in {path}: {unknown}")
            config.update(user_config)
            if "grouping_separator" not in user_config and config["decimal_separator"] == ",":
                config["grouping_separator"] = "."
    # pydantic ValidationError subclasses ValueError
    return PadConfig(**config)


def load_rates_file(path: Path) -> dict[str, Any]:
    """Read a YAML rate table.

    Two shapes are accepted::

        base_currency: USD
        rates: {EUR: 0.92, GBP: 0.79}

    or a pair table::

        base_currency: USD   # optional pivot
        pairs:
          EUR: {USD: 1.09}

    Returns:
        The raw mapping; see ``ExchangeRateSnapshot.from_mapping``.
    """
    data = _read_yaml(path)
    if "rates" not in data and "pairs" not in data:
        raise ValueError(f"{path}: expected a 'rates' or 'pairs' section")
    return data
