"""Configuration validation utilities."""

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class ValidationError:
    """Represents a configuration validation error."""
    field: str
    message: str
    value: Any


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


class ConfigValidator:
    """Validates configuration parameters."""

    @staticmethod
    def validate_series_limits(name: str, params: dict[str, Any]) -> list[ValidationError]:
        """Validate one bucket/retention/cap triple."""
        errors = []

        for key in ("bucket_ms", "retention_ms", "cap"):
            if key not in params:
                continue
            value = params[key]
            if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
                errors.append(ValidationError(
                    field=f"cache.{name}.{key}",
                    message="Must be a positive integer",
                    value=value
                ))

        bucket = params.get("bucket_ms")
        retention = params.get("retention_ms")
        if isinstance(bucket, int) and isinstance(retention, int) and 0 < retention < bucket:
            errors.append(ValidationError(
                field=f"cache.{name}.retention_ms",
                message="Retention must cover at least one bucket",
                value=retention
            ))

        return errors

    @staticmethod
    def validate_scheduler_params(params: dict[str, Any]) -> list[ValidationError]:
        """Validate scheduler timers."""
        errors = []

        for key in ("derivatives_interval_seconds", "volatility_interval_seconds",
                    "pipeline_timeout_seconds"):
            if key in params:
                value = params[key]
                if not _is_number(value) or value <= 0:
                    errors.append(ValidationError(
                        field=f"scheduler.{key}",
                        message="Must be a positive number",
                        value=value
                    ))

        for key in ("jitter_seconds", "backoff_seconds", "startup_delay_seconds"):
            if key in params:
                value = params[key]
                if not _is_number(value) or value < 0:
                    errors.append(ValidationError(
                        field=f"scheduler.{key}",
                        message="Must be a non-negative number",
                        value=value
                    ))

        if "enabled" in params and not isinstance(params["enabled"], bool):
            errors.append(ValidationError(
                field="scheduler.enabled",
                message="Must be a boolean",
                value=params["enabled"]
            ))

        return errors

    @staticmethod
    def validate_exchange_params(params: dict[str, Any]) -> list[ValidationError]:
        """Validate exchange call budget."""
        errors = []

        if "timeout_seconds" in params:
            value = params["timeout_seconds"]
            if not _is_number(value) or value <= 0:
                errors.append(ValidationError(
                    field="exchange.timeout_seconds",
                    message="Must be a positive number",
                    value=value
                ))

        if "max_attempts" in params:
            value = params["max_attempts"]
            if not isinstance(value, int) or isinstance(value, bool) or not 1 <= value <= 2:
                errors.append(ValidationError(
                    field="exchange.max_attempts",
                    message="Must be 1 or 2 (at most one retry)",
                    value=value
                ))

        return errors

    @staticmethod
    def validate_volatility_params(params: dict[str, Any]) -> list[ValidationError]:
        """Validate volatility periods and regime thresholds."""
        errors = []

        for key in ("atr_period", "bbw_period", "baseline_window"):
            if key in params:
                value = params[key]
                if not isinstance(value, int) or isinstance(value, bool) or value <= 1:
                    errors.append(ValidationError(
                        field=f"volatility.{key}",
                        message="Must be an integer greater than 1",
                        value=value
                    ))

        thresholds = [params.get(k) for k in ("quiet_below", "normal_below", "hot_below")]
        if all(_is_number(t) for t in thresholds):
            if not thresholds[0] < thresholds[1] < thresholds[2]:
                errors.append(ValidationError(
                    field="volatility.thresholds",
                    message="quiet_below < normal_below < hot_below required",
                    value=thresholds
                ))

        return errors

    @staticmethod
    def validate_grid_params(params: dict[str, Any]) -> list[ValidationError]:
        """Validate grid sweep parameters."""
        errors = []

        if "wick_ratio_min" in params:
            value = params["wick_ratio_min"]
            if not _is_number(value) or value <= 0 or value > 1:
                errors.append(ValidationError(
                    field="grid.wick_ratio_min",
                    message="Must be a positive number between 0 and 1",
                    value=value
                ))

        if "sweep_lookback" in params:
            value = params["sweep_lookback"]
            if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
                errors.append(ValidationError(
                    field="grid.sweep_lookback",
                    message="Must be a positive integer",
                    value=value
                ))

        return errors

    @staticmethod
    def validate_config(config: dict[str, Any]) -> list[ValidationError]:
        """Validate complete configuration."""
        errors = []

        for name, limits in config.get("cache", {}).items():
            if isinstance(limits, dict):
                errors.extend(ConfigValidator.validate_series_limits(name, limits))

        if "scheduler" in config:
            errors.extend(ConfigValidator.validate_scheduler_params(config["scheduler"]))

        if "exchange" in config:
            errors.extend(ConfigValidator.validate_exchange_params(config["exchange"]))

        if "volatility" in config:
            errors.extend(ConfigValidator.validate_volatility_params(config["volatility"]))

        if "grid" in config:
            errors.extend(ConfigValidator.validate_grid_params(config["grid"]))

        return errors
