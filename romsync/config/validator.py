"""Configuration validation."""

import logging
import re
from typing import Dict, Any, List

logger = logging.getLogger(__name__)

VALID_SOURCES = ('no-intro', 'redump')
VALID_DISK_PROFILES = ('fast', 'balanced', 'slow')
VALID_PRESETS = ('usa', 'english', 'ntsc', 'pal', 'japanese', 'all')
VALID_LOG_LEVELS = ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL')


class ValidationError(Exception):
    """Configuration validation errors."""
    pass


def validate_config(config: Dict[str, Any]) -> None:
    """
    Validate configuration structure and values.

    Args:
        config: Configuration dictionary from loader

    Raises:
        ValidationError: If configuration is invalid
    """
    errors = []

    errors.extend(_validate_paths(config.get('paths', {}) or {}))
    errors.extend(_validate_download(config.get('download', {}) or {}))
    errors.extend(_validate_filters(config.get('filters', {}) or {}))
    errors.extend(_validate_priority(config.get('priority', {}) or {}))
    errors.extend(_validate_http(config.get('http', {}) or {}))
    errors.extend(_validate_logging(config.get('logging', {}) or {}))

    if errors:
        raise ValidationError(
            "Configuration validation failed:\n  - " + "\n  - ".join(errors)
        )


def _is_string_list(value: Any) -> bool:
    return isinstance(value, list) and all(isinstance(item, str) for item in value)


def _validate_paths(section: Dict[str, Any]) -> List[str]:
    """Validate paths section."""
    errors = []

    if not section.get('target'):
        errors.append("paths.target is required")
    elif not isinstance(section['target'], str):
        errors.append("paths.target must be a string")

    database = section.get('database')
    if database is not None and not isinstance(database, str):
        errors.append("paths.database must be a string")

    return errors


def _validate_download(section: Dict[str, Any]) -> List[str]:
    """Validate download options section."""
    errors = []

    systems = section.get('systems', [])
    if not _is_string_list(systems):
        errors.append("download.systems must be a list of strings")

    sources = section.get('sources', [])
    if not _is_string_list(sources):
        errors.append("download.sources must be a list of strings")
    else:
        for source in sources:
            if source not in VALID_SOURCES:
                errors.append(
                    f"download.sources: unknown source '{source}' "
                    f"(valid: {', '.join(VALID_SOURCES)})"
                )

    jobs = section.get('jobs', 4)
    if not isinstance(jobs, int) or isinstance(jobs, bool) or not 1 <= jobs <= 64:
        errors.append("download.jobs must be an integer between 1 and 64")

    profile = section.get('disk_profile', 'balanced')
    if profile not in VALID_DISK_PROFILES:
        errors.append(
            f"download.disk_profile must be one of: {', '.join(VALID_DISK_PROFILES)}"
        )

    retry_count = section.get('retry_count', 3)
    if not isinstance(retry_count, int) or isinstance(retry_count, bool) or retry_count < 1:
        errors.append("download.retry_count must be a positive integer")

    for key in ('retry_delay', 'progress_interval'):
        value = section.get(key)
        if value is not None and (not isinstance(value, (int, float)) or value < 0):
            errors.append(f"download.{key} must be a non-negative number")

    for key in ('update', 'dry_run', 'extract', 'enable_1g1r'):
        value = section.get(key)
        if value is not None and not isinstance(value, bool):
            errors.append(f"download.{key} must be a boolean")

    return errors


def _validate_filters(section: Dict[str, Any]) -> List[str]:
    """Validate filters section."""
    errors = []

    preset = section.get('preset')
    if preset is not None and preset not in VALID_PRESETS:
        errors.append(f"filters.preset must be one of: {', '.join(VALID_PRESETS)}")

    custom = section.get('custom')
    if custom is not None:
        if not isinstance(custom, str):
            errors.append("filters.custom must be a string")
        else:
            try:
                re.compile(custom)
            except re.error as e:
                errors.append(f"filters.custom is not a valid regular expression: {e}")

    for key in ('include_prerelease', 'include_unlicensed', 'include_hacks',
                'include_homebrew', 'infer_languages'):
        value = section.get(key)
        if value is not None and not isinstance(value, bool):
            errors.append(f"filters.{key} must be a boolean")

    for key in ('include_regions', 'exclude_regions', 'include_languages',
                'exclude_languages', 'include_patterns', 'exclude_patterns'):
        value = section.get(key)
        if value is not None and not (isinstance(value, str) or _is_string_list(value)):
            errors.append(f"filters.{key} must be a list of strings")

    for key in ('include_list', 'exclude_list'):
        value = section.get(key)
        if value is not None and not (isinstance(value, str) or _is_string_list(value)):
            errors.append(f"filters.{key} must be a file path or a list of names")

    region_languages = section.get('region_languages')
    if region_languages is not None and not isinstance(region_languages, dict):
        errors.append("filters.region_languages must be a mapping of region to languages")

    return errors


def _validate_priority(section: Dict[str, Any]) -> List[str]:
    """Validate 1G1R priority section."""
    errors = []

    for key in ('preferred_region', 'preferred_language'):
        value = section.get(key)
        if value is not None and not isinstance(value, str):
            errors.append(f"priority.{key} must be a string")

    for key in ('region_order', 'language_order'):
        value = section.get(key)
        if value is not None and not (isinstance(value, str) or _is_string_list(value)):
            errors.append(f"priority.{key} must be a list of strings")

    return errors


def _validate_http(section: Dict[str, Any]) -> List[str]:
    """Validate http section."""
    errors = []

    timeout = section.get('timeout', 30.0)
    if not isinstance(timeout, (int, float)) or timeout <= 0:
        errors.append("http.timeout must be a positive number")

    user_agent = section.get('user_agent')
    if user_agent is not None and not isinstance(user_agent, str):
        errors.append("http.user_agent must be a string")

    return errors


def _validate_logging(section: Dict[str, Any]) -> List[str]:
    """Validate logging section."""
    errors = []

    level = section.get('level', 'INFO')
    if not isinstance(level, str) or level.upper() not in VALID_LOG_LEVELS:
        errors.append(f"logging.level must be one of: {', '.join(VALID_LOG_LEVELS)}")

    console = section.get('console')
    if console is not None and not isinstance(console, bool):
        errors.append("logging.console must be a boolean")

    log_file = section.get('file')
    if log_file is not None and not isinstance(log_file, str):
        errors.append("logging.file must be a string")

    return errors
