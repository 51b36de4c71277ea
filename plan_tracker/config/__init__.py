"""
Configuration for the plan tracker.

Frozen dataclass defaults, YAML overrides and validation.
"""
from .defaults import DefaultConfig, get_default_config
from .loader import ConfigLoader, build_config
from .validation import ConfigValidator, ValidationError

__all__ = [
    "ConfigLoader",
    "ConfigValidator",
    "DefaultConfig",
    "ValidationError",
    "build_config",
    "get_default_config",
]
