"""Configuration loader with 3-tier parameter precedence."""

import os
from dataclasses import dataclass, fields, is_dataclass
from pathlib import Path
from typing import Any, Optional

import yaml

from .defaults import DefaultConfig, get_default_config

DATA_DIR_ENV = "PLAN_TRACKER_DATA_DIR"


@dataclass(frozen=True)
class ConfigLoader:
    """Manages configuration loading with 3-tier precedence."""

    config_dir: Path
    defaults: DefaultConfig

    @classmethod
    def create(cls, config_dir: Optional[Path] = None) -> "ConfigLoader":
        """Create a ConfigLoader instance."""
        if config_dir is None:
            config_dir = Path(__file__).parent.parent.parent / "config"

        return cls(
            config_dir=Path(config_dir),
            defaults=get_default_config(),
        )

    def _read_yaml(self, name: str) -> dict[str, Any]:
        path = self.config_dir / name
        if not path.exists():
            return {}

        with open(path) as f:
            loaded = yaml.safe_load(f)

        return loaded if isinstance(loaded, dict) else {}

    def load_settings(self) -> dict[str, Any]:
        """Load global overrides from settings.yaml."""
        return self._read_yaml("settings.yaml")

    def load_symbol_config(self, symbol: str) -> dict[str, Any]:
        """Load symbol-specific configuration overrides."""
        symbols_config = self._read_yaml("symbols.yaml")
        return symbols_config.get("symbols", {}).get(symbol, {}) or {}

    def merge_config(
        self,
        symbol: Optional[str] = None,
        overrides: Optional[dict[str, Any]] = None
    ) -> dict[str, Any]:
        """
        Merge configuration with 3-tier precedence.

        Priority order:
        1. Explicit overrides (highest priority)
        2. Symbol-specific overrides from symbols.yaml
        3. settings.yaml on top of the dataclass defaults (lowest priority)
        """
        config = self._dataclass_to_dict(self.defaults)
        config = self._deep_merge(config, self.load_settings())

        if symbol:
            config = self._deep_merge(config, self.load_symbol_config(symbol))

        if overrides:
            config = self._deep_merge(config, overrides)

        data_dir = os.environ.get(DATA_DIR_ENV)
        if data_dir:
            config["paths"]["data_dir"] = data_dir

        return config

    def load(
        self,
        symbol: Optional[str] = None,
        overrides: Optional[dict[str, Any]] = None
    ) -> DefaultConfig:
        """Merge all tiers and rebuild the typed configuration tree."""
        return build_config(self.merge_config(symbol, overrides))

    def _dataclass_to_dict(self, obj: Any) -> dict[str, Any]:
        """Convert nested dataclasses to dictionary."""
        if hasattr(obj, '__dataclass_fields__'):
            result = {}
            for field_name in obj.__dataclass_fields__:
                value = getattr(obj, field_name)
                if hasattr(value, '__dataclass_fields__'):
                    result[field_name] = self._dataclass_to_dict(value)
                else:
                    result[field_name] = value
            return result
        return obj  # type: ignore[no-any-return]

    def _deep_merge(self, base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
        """Deep merge two dictionaries."""
        result = base.copy()

        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value

        return result


def _from_dict(cls: type, data: dict[str, Any]) -> Any:
    kwargs = {}
    for f in fields(cls):
        if f.name not in data:
            continue
        value = data[f.name]
        if is_dataclass(f.type) and isinstance(value, dict):
            value = _from_dict(f.type, value)
        elif isinstance(value, list):
            value = tuple(value)
        kwargs[f.name] = value
    return cls(**kwargs)


def build_config(data: dict[str, Any]) -> DefaultConfig:
    """Rebuild a DefaultConfig from a merged dictionary; unknown keys are ignored."""
    return _from_dict(DefaultConfig, data)
