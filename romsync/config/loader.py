"""Configuration loading and parsing."""

import copy
import yaml
from pathlib import Path
from typing import Dict, Any, Optional


class ConfigError(Exception):
    """Configuration-related errors."""
    pass


DEFAULT_CONFIG: Dict[str, Any] = {
    'paths': {
        'target': '.',
        'database': None,   # defaults to <target>/romsync.db
    },
    'download': {
        'systems': [],      # empty = every entry of the selected sources
        'sources': ['no-intro', 'redump'],
        'jobs': 4,
        'disk_profile': 'balanced',
        'retry_count': 3,
        'retry_delay': 2.0,
        'update': False,
        'dry_run': False,
        'extract': True,
        'enable_1g1r': True,
        'progress_interval': 0.25,
    },
    'filters': {
        'preset': None,
        'custom': None,
        'include_prerelease': False,
        'include_unlicensed': False,
        'include_hacks': False,
        'include_homebrew': True,
        'include_regions': [],
        'exclude_regions': [],
        'include_languages': [],
        'exclude_languages': [],
        'infer_languages': True,
        'region_languages': None,
        'include_patterns': [],
        'exclude_patterns': [],
        'include_list': None,
        'exclude_list': None,
    },
    'priority': {
        'preferred_region': None,
        'region_order': [],
        'preferred_language': None,
        'language_order': [],
    },
    'sync': {
        'force': False,
        'include_hashes': False,
    },
    'http': {
        'timeout': 30.0,
        'user_agent': None,
    },
    'logging': {
        'level': 'INFO',
        'console': True,
        'file': None,
    },
}


def merge_config(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """
    Deep-merge ``override`` into a copy of ``base``.

    Nested dictionaries merge key by key; any other value replaces the base.
    """
    result = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = merge_config(result[key], value)
        else:
            result[key] = copy.deepcopy(value)
    return result


def load_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """
    Load and parse configuration file.

    Args:
        config_path: Path to config.yaml file. If None, uses ./config.yaml
            when present and the built-in defaults otherwise.

    Returns:
        Parsed configuration dictionary merged over DEFAULT_CONFIG

    Raises:
        ConfigError: If config file cannot be loaded or parsed
    """
    if config_path is None:
        config_path = Path.cwd() / "config.yaml"
        if not config_path.exists():
            return copy.deepcopy(DEFAULT_CONFIG)
    else:
        config_path = Path(config_path).expanduser()

    if not config_path.exists():
        raise ConfigError(f"Configuration file not found: {config_path}")

    try:
        with open(config_path, 'r', encoding='utf-8') as f:
            config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in config file: {e}")
    except OSError as e:
        raise ConfigError(f"Failed to read config file: {e}")

    # An empty file is a valid "use the defaults" config
    if config is None:
        config = {}

    if not isinstance(config, dict):
        raise ConfigError("Configuration file must contain a YAML dictionary")

    return merge_config(DEFAULT_CONFIG, config)


def get_config_value(config: Dict[str, Any], path: str, default: Any = None) -> Any:
    """
    Get a nested configuration value using dot notation.

    Args:
        config: Configuration dictionary
        path: Dot-separated path (e.g., 'download.jobs')
        default: Default value if path not found or set to None

    Returns:
        Configuration value or default

    Example:
        >>> get_config_value(config, 'download.sources')
        ['no-intro', 'redump']
    """
    keys = path.split('.')
    value = config

    for key in keys:
        if isinstance(value, dict) and key in value:
            value = value[key]
        else:
            return default

    return default if value is None else value


def get_database_path(config: Dict[str, Any]) -> Path:
    """Resolve the catalog database path (``<target>/romsync.db`` by default)."""
    explicit = get_config_value(config, 'paths.database')
    if explicit:
        return Path(explicit).expanduser()
    return Path(get_config_value(config, 'paths.target', '.')).expanduser() / 'romsync.db'
