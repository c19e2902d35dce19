"""
Filename filtering ahead of 1G1R selection.

Region presets, custom name regexes, release-type exclusions,
region/language include and exclude sets, glob patterns and explicit
include/exclude lists.
"""

import fnmatch
import logging
import re
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Pattern, Sequence

from romsync.config.options import FilterOptions
from romsync.naming.romname import ClassifiedName, classify, split_comma_tokens, strip_extension

logger = logging.getLogger(__name__)


class FilterError(Exception):
    """Invalid filter expression."""
    pass


REGION_PRESETS: Dict[str, Optional[Pattern]] = {
    'usa': re.compile(r'\(USA\)'),
    'english': re.compile(r'\((USA|Europe|World|Australia|En)\)'),
    'ntsc': re.compile(r'\((USA|Japan|Korea)\)'),
    'pal': re.compile(r'\((Europe|Australia|Germany|France|Spain|Italy|Netherlands|Sweden)\)'),
    'japanese': re.compile(r'\(Japan\)'),
    'all': None,
}

# Languages assumed for a release that carries a region tag but no
# language tag. Overridable through filters.region_languages.
DEFAULT_REGION_LANGUAGES: Dict[str, List[str]] = {
    'us': ['en'],
    'uk': ['en'],
    'au': ['en'],
    'nz': ['en'],
    'ca': ['en', 'fr'],
    'wor': ['en'],
    'eu': ['en'],
    'ame': ['en'],
    'de': ['de'],
    'fr': ['fr'],
    'sp': ['es'],
    'it': ['it'],
    'nl': ['nl'],
    'se': ['sv'],
    'no': ['no'],
    'dk': ['da'],
    'fi': ['fi'],
    'pl': ['pl'],
    'ru': ['ru'],
    'br': ['pt'],
    'jp': ['ja'],
    'kr': ['ko'],
    'cn': ['zh'],
    'tw': ['zh'],
}


def get_preset_filter(preset: str) -> Optional[Pattern]:
    """
    Get the name regex for a region preset.

    Raises:
        FilterError: If the preset is unknown
    """
    try:
        return REGION_PRESETS[preset]
    except KeyError:
        raise FilterError(
            f"Unknown region preset '{preset}' (valid: {', '.join(REGION_PRESETS)})"
        ) from None


def parse_custom_filter(pattern: str) -> Pattern:
    """
    Compile a user supplied name regex.

    Raises:
        FilterError: If the pattern does not compile
    """
    try:
        return re.compile(pattern)
    except re.error as e:
        raise FilterError(f"Invalid filter '{pattern}': {e}") from e


def build_name_filter(options: FilterOptions) -> Optional[Pattern]:
    """Resolve the name regex; a preset takes precedence over a custom filter."""
    if options.preset:
        return get_preset_filter(options.preset)
    if options.custom_filter:
        return parse_custom_filter(options.custom_filter)
    return None


def parse_pattern_list(value: Optional[str]) -> List[str]:
    """
    Split a comma separated list; ``\\,`` is a literal comma.

    Example:
        >>> parse_pattern_list('Game\\\\, The,Other')
        ['Game, The', 'Other']
    """
    if not value:
        return []
    return split_comma_tokens(value)


def load_filter_list(path: Path) -> List[str]:
    """
    Read a name list file: one entry per line, ``#`` comments and blank
    lines ignored.

    Raises:
        FilterError: If the file cannot be read
    """
    try:
        text = Path(path).read_text(encoding='utf-8')
    except OSError as e:
        raise FilterError(f"Cannot read filter list {path}: {e}") from e

    entries = []
    for line in text.splitlines():
        line = line.strip()
        if line and not line.startswith('#'):
            entries.append(line)
    return entries


def infer_language_codes(
    region_codes: Iterable[str],
    table: Optional[Dict[str, List[str]]] = None
) -> List[str]:
    """
    Infer language codes from region codes.

    Args:
        region_codes: Canonical region codes of a release
        table: Region -> languages mapping (DEFAULT_REGION_LANGUAGES if None)

    Returns:
        Ordered, de-duplicated language codes
    """
    if table is None:
        table = DEFAULT_REGION_LANGUAGES

    languages: List[str] = []
    for region in region_codes:
        for language in table.get(region, []):
            if language not in languages:
                languages.append(language)
    return languages


def _name_keys(filename: str) -> List[str]:
    base = strip_extension(filename)
    return [filename.casefold(), base.casefold()]


def _in_name_set(filename: str, names: set) -> bool:
    return any(key in names for key in _name_keys(filename))


def _excluded_by_flags(info: ClassifiedName, options: FilterOptions) -> bool:
    flags = info.flags
    return (
        (flags.prerelease and not options.include_prerelease)
        or (flags.unlicensed and not options.include_unlicensed)
        or (flags.hack and not options.include_hacks)
        or (flags.homebrew and not options.include_homebrew)
    )


def _language_codes(info: ClassifiedName, options: FilterOptions) -> Sequence[str]:
    if info.language_codes or not options.infer_languages:
        return info.language_codes
    return infer_language_codes(info.region_codes, options.region_languages)


def _glob_match(filename: str, patterns: Sequence[str]) -> bool:
    lowered = filename.lower()
    return any(fnmatch.fnmatchcase(lowered, pattern.lower()) for pattern in patterns)


def apply_filters(filenames: Sequence[str], options: FilterOptions) -> List[str]:
    """
    Filter catalog filenames.

    All active dimensions are conjunctive and applied in this order:

    1. exclude list (always wins, even over the include list)
    2. include list
    3. name regex (preset over custom)
    4. release-type exclusions (prerelease, unlicensed, hack, homebrew)
    5. region include / exclude
    6. language include / exclude, inferring languages from regions for
       names without a language tag when ``infer_languages`` is set
    7. include glob patterns
    8. exclude glob patterns

    List entries match the full filename or the name without extension,
    case-insensitively.

    Args:
        filenames: Candidate filenames (order is preserved)
        options: Filter options

    Returns:
        Filenames that passed every filter

    Raises:
        FilterError: If the name regex is invalid
    """
    name_filter = build_name_filter(options)

    exclude_names = {name.casefold() for name in options.exclude_list or []}
    include_names = (
        {name.casefold() for name in options.include_list}
        if options.include_list is not None else None
    )
    include_regions = set(options.include_regions)
    exclude_regions = set(options.exclude_regions)
    include_languages = set(options.include_languages)
    exclude_languages = set(options.exclude_languages)

    results = []
    for filename in filenames:
        if exclude_names and _in_name_set(filename, exclude_names):
            continue
        if include_names is not None and not _in_name_set(filename, include_names):
            continue
        if name_filter is not None and not name_filter.search(filename):
            continue

        info = classify(filename)

        if _excluded_by_flags(info, options):
            continue

        regions = set(info.region_codes)
        if include_regions and not regions & include_regions:
            continue
        if exclude_regions and regions & exclude_regions:
            continue

        if include_languages or exclude_languages:
            languages = set(_language_codes(info, options))
            if include_languages and not languages & include_languages:
                continue
            if exclude_languages and languages & exclude_languages:
                continue

        if options.include_patterns and not _glob_match(filename, options.include_patterns):
            continue
        if options.exclude_patterns and _glob_match(filename, options.exclude_patterns):
            continue

        results.append(filename)

    logger.debug(f"Filters kept {len(results)} of {len(filenames)} names")
    return results
