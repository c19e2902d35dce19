"""Configuration loading, validation and typed option structs."""

from .loader import ConfigError, load_config, get_config_value
from .validator import ValidationError, validate_config

__all__ = [
    'ConfigError',
    'ValidationError',
    'load_config',
    'get_config_value',
    'validate_config',
]
