"""Unit tests for configuration management."""

from pathlib import Path

import pytest

from plan_tracker.config.defaults import get_default_config
from plan_tracker.config.loader import DATA_DIR_ENV, ConfigLoader, build_config
from plan_tracker.config.validation import ConfigValidator


class TestDefaultConfig:
    """Test suite for default configuration."""

    def test_default_config_creation(self) -> None:
        """Test that default configuration can be created."""
        config = get_default_config()
        assert config.cache.deriv_5m.cap == 72
        assert config.cache.deriv_15m.cap == 96
        assert config.cache.raw_5m.cap == 288
        assert config.cache.tf_1h.cap == 336
        assert config.volatility.atr_period == 14
        assert config.volatility.bbw_period == 20
        assert config.exchange.max_attempts == 2

    def test_default_symbols(self) -> None:
        assert get_default_config().symbols == ("BTC-USDT",)


class TestConfigLoader:
    """Test suite for configuration loader."""

    def _write(self, directory: Path, name: str, text: str) -> None:
        (directory / name).write_text(text, encoding="utf-8")

    def test_config_loader_creation(self) -> None:
        """Test that ConfigLoader can be created."""
        loader = ConfigLoader.create()
        assert isinstance(loader.config_dir, Path)

    def test_missing_yaml_files_keep_defaults(self, tmp_path, monkeypatch) -> None:
        monkeypatch.delenv(DATA_DIR_ENV, raising=False)
        loader = ConfigLoader.create(tmp_path)
        config = loader.load("BTC-USDT")
        assert config == get_default_config()

    def test_precedence(self, tmp_path, monkeypatch) -> None:
        """Test defaults < settings.yaml < symbols.yaml < overrides."""
        monkeypatch.delenv(DATA_DIR_ENV, raising=False)
        self._write(tmp_path, "settings.yaml",
                    "grid:\n  sweep_band_pct: 0.01\n  sweep_lookback: 8\n")
        self._write(tmp_path, "symbols.yaml",
                    "symbols:\n  ETH-USDT:\n    grid:\n      sweep_band_pct: 0.02\n")
        loader = ConfigLoader.create(tmp_path)

        assert loader.load().grid.sweep_band_pct == 0.01
        assert loader.load("ETH-USDT").grid.sweep_band_pct == 0.02
        assert loader.load("ETH-USDT").grid.sweep_lookback == 8

        overridden = loader.load("ETH-USDT", {"grid": {"sweep_band_pct": 0.03}})
        assert overridden.grid.sweep_band_pct == 0.03
        # Other defaults should remain
        assert overridden.grid.wick_ratio_min == 0.45

    def test_data_dir_env_override(self, tmp_path, monkeypatch) -> None:
        monkeypatch.setenv(DATA_DIR_ENV, str(tmp_path / "data"))
        config = ConfigLoader.create(tmp_path).load()
        assert config.paths.data_dir == str(tmp_path / "data")

    def test_settings_list_becomes_tuple(self, tmp_path, monkeypatch) -> None:
        monkeypatch.delenv(DATA_DIR_ENV, raising=False)
        self._write(tmp_path, "settings.yaml", "symbols:\n  - BTC-USDT\n  - ETH-USDT\n")
        config = ConfigLoader.create(tmp_path).load()
        assert config.symbols == ("BTC-USDT", "ETH-USDT")

    def test_build_config_nested(self) -> None:
        config = build_config({"cache": {"deriv_5m": {"bucket_ms": 300000,
                                                      "retention_ms": 3600000,
                                                      "cap": 12}},
                               "unknown_section": {"x": 1}})
        assert config.cache.deriv_5m.cap == 12
        assert config.cache.deriv_15m.cap == 96


class TestConfigValidator:
    """Test suite for configuration validation."""

    def test_defaults_are_valid(self, monkeypatch) -> None:
        monkeypatch.delenv(DATA_DIR_ENV, raising=False)
        config = ConfigLoader.create().merge_config("BTC-USDT")
        assert ConfigValidator.validate_config(config) == []

    def test_invalid_series_limits(self) -> None:
        errors = ConfigValidator.validate_series_limits(
            "deriv_5m", {"bucket_ms": 300000, "retention_ms": 1000, "cap": 0}
        )
        fields = {e.field for e in errors}
        assert "cache.deriv_5m.cap" in fields
        assert "cache.deriv_5m.retention_ms" in fields

    def test_invalid_max_attempts(self) -> None:
        errors = ConfigValidator.validate_exchange_params({"max_attempts": 5})
        assert len(errors) == 1
        assert errors[0].field == "exchange.max_attempts"

    def test_volatility_thresholds_must_increase(self) -> None:
        errors = ConfigValidator.validate_volatility_params(
            {"quiet_below": 1.2, "normal_below": 0.8, "hot_below": 1.6}
        )
        assert [e.field for e in errors] == ["volatility.thresholds"]

    @pytest.mark.parametrize("value", [0, -1, 1.5])
    def test_invalid_wick_ratio(self, value) -> None:
        errors = ConfigValidator.validate_grid_params({"wick_ratio_min": value})
        assert errors and errors[0].field == "grid.wick_ratio_min"

    def test_negative_jitter(self) -> None:
        errors = ConfigValidator.validate_scheduler_params({"jitter_seconds": -1})
        assert errors[0].field == "scheduler.jitter_seconds"
