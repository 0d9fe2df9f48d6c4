"""Configuration and rate-table loading."""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from amountpad.config import (
    CONFIG_FILENAME,
    DEFAULT_CONFIG,
    PadConfig,
    load_config,
    load_rates_file,
)
from amountpad.exchange import ExchangeRateSnapshot


def write_yaml(path: Path, data: object) -> Path:
    path.write_text(yaml.dump(data, sort_keys=False), encoding="utf-8")
    return path


class TestLoadConfig:
    def test_defaults(self) -> None:
        cfg = load_config()
        assert cfg == PadConfig()
        assert cfg.model_dump() == DEFAULT_CONFIG

    def test_directory_without_file(self, tmp_path: Path) -> None:
        assert load_config(tmp_path) == PadConfig()

    def test_directory_with_file(self, tmp_path: Path) -> None:
        write_yaml(tmp_path / CONFIG_FILENAME, {"decimal_separator": ",", "grouping_separator": " "})
        cfg = load_config(tmp_path)
        assert cfg.locale.decimal_separator == ","
        assert cfg.locale.grouping_separator == " "
        assert cfg.shorten_threshold == 10_000

    def test_comma_decimal_defaults_grouping_to_dot(self, tmp_path: Path) -> None:
        write_yaml(tmp_path / CONFIG_FILENAME, {"decimal_separator": ","})
        cfg = load_config(tmp_path)
        assert cfg.locale.decimal_separator == ","
        assert cfg.locale.grouping_separator == "."
        assert PadConfig(decimal_separator=",").grouping_separator == "."

    def test_explicit_file(self, tmp_path: Path) -> None:
        path = write_yaml(tmp_path / "custom.yaml", {"fiat_decimals": 3, "log_dir": "logs"})
        cfg = load_config(path)
        assert cfg.fiat_decimals == 3
        assert cfg.log_dir == "logs"

    def test_empty_file(self, tmp_path: Path) -> None:
        (tmp_path / CONFIG_FILENAME).write_text("", encoding="utf-8")
        assert load_config(tmp_path) == PadConfig()

    def test_unknown_key(self, tmp_path: Path) -> None:
        write_yaml(tmp_path / CONFIG_FILENAME, {"decimal_seperator": ","})
        with pytest.raises(ValueError, match="Unknown config keys"):
            load_config(tmp_path)

    def test_not_a_mapping(self, tmp_path: Path) -> None:
        write_yaml(tmp_path / CONFIG_FILENAME, ["a", "b"])
        with pytest.raises(ValueError, match="mapping"):
            load_config(tmp_path)

    @pytest.mark.parametrize(
        "overrides",
        [
            {"decimal_separator": ",", "grouping_separator": ","},
            {"decimal_separator": ""},
            {"decimal_separator": "+"},
            {"shorten_threshold": 0},
            {"fiat_decimals": -1},
        ],
    )
    def test_invalid_values(self, tmp_path: Path, overrides: dict) -> None:
        write_yaml(tmp_path / CONFIG_FILENAME, overrides)
        with pytest.raises(ValueError):
            load_config(tmp_path)


class TestLoadRatesFile:
    def test_base_table(self, tmp_path: Path) -> None:
        path = write_yaml(tmp_path / "rates.yaml", {"base_currency": "USD", "rates": {"EUR": 0.5}})
        snap = ExchangeRateSnapshot.from_mapping(load_rates_file(path))
        assert snap.base_currency == "USD"
        assert snap.rate("USD", "EUR") == 0.5

    def test_pair_table(self, tmp_path: Path) -> None:
        path = write_yaml(tmp_path / "rates.yaml", {"pairs": {"EUR": {"GBP": 0.85}}})
        snap = ExchangeRateSnapshot.from_mapping(load_rates_file(path))
        assert snap.rate("EUR", "GBP") == 0.85

    def test_missing_section(self, tmp_path: Path) -> None:
        path = write_yaml(tmp_path / "rates.yaml", {"base_currency": "USD"})
        with pytest.raises(ValueError, match="'rates' or 'pairs'"):
            load_rates_file(path)
