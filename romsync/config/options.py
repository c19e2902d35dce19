"""
Typed option structs built from the configuration dictionary.

Every filter and priority dimension the download pipeline understands is
enumerated here rather than passed around as a loose dictionary.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from romsync.config.loader import get_config_value
from romsync.download.backpressure import DiskProfile


def _normalize_codes(values, normalizer) -> List[str]:
    codes = []
    for value in values or []:
        code = normalizer(str(value)) or str(value).strip().lower()
        if code and code not in codes:
            codes.append(code)
    return codes


def _as_list(value: Any) -> List[str]:
    """Accept a YAML list or a comma separated string."""
    from romsync.naming.filters import parse_pattern_list

    if value is None:
        return []
    if isinstance(value, str):
        return parse_pattern_list(value)
    return [str(item) for item in value]


@dataclass
class FilterOptions:
    """
    Filter dimensions applied before 1G1R selection.

    Precedence when several are active is fixed by
    romsync.naming.filters.apply_filters: the exclude list always wins,
    then the include list, name regex, release-type exclusions, region,
    language and finally glob patterns. All dimensions are conjunctive.

    Attributes:
        preset: Named region preset (usa, english, ntsc, pal, japanese, all)
        custom_filter: Custom name regex; ignored when a preset is set
        include_prerelease: Keep beta/demo/proto releases
        include_unlicensed: Keep unlicensed/pirate releases
        include_hacks: Keep hacks
        include_homebrew: Keep homebrew
        include_regions: Canonical region codes to keep (empty = any)
        exclude_regions: Canonical region codes to drop
        include_languages: Canonical language codes to keep (empty = any)
        exclude_languages: Canonical language codes to drop
        infer_languages: Infer languages from regions when a name has none
        region_languages: Region code -> inferred language codes
        include_patterns: Glob patterns a name must match (any of)
        exclude_patterns: Glob patterns that drop a name
        include_list: Exact filenames or titles to keep (None = no list)
        exclude_list: Exact filenames or titles to drop
    """
    preset: Optional[str] = None
    custom_filter: Optional[str] = None
    include_prerelease: bool = False
    include_unlicensed: bool = False
    include_hacks: bool = False
    include_homebrew: bool = True
    include_regions: List[str] = field(default_factory=list)
    exclude_regions: List[str] = field(default_factory=list)
    include_languages: List[str] = field(default_factory=list)
    exclude_languages: List[str] = field(default_factory=list)
    infer_languages: bool = True
    region_languages: Optional[Dict[str, List[str]]] = None
    include_patterns: List[str] = field(default_factory=list)
    exclude_patterns: List[str] = field(default_factory=list)
    include_list: Optional[List[str]] = None
    exclude_list: Optional[List[str]] = None

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> 'FilterOptions':
        """
        Build filter options from the ``filters`` config section.

        ``include_list``/``exclude_list`` may be an inline list or a path
        to a text file with one name per line.
        """
        from romsync.naming.filters import load_filter_list
        from romsync.naming.romname import normalize_language_code, normalize_region_code

        section = config.get('filters', {}) or {}

        def name_list(key: str) -> Optional[List[str]]:
            value = section.get(key)
            if value is None:
                return None
            if isinstance(value, str):
                return load_filter_list(Path(value).expanduser())
            return [str(item) for item in value]

        region_languages = section.get('region_languages')
        if region_languages is not None:
            region_languages = {
                str(region).lower(): _normalize_codes(_as_list(langs), normalize_language_code)
                for region, langs in region_languages.items()
            }

        return cls(
            preset=section.get('preset'),
            custom_filter=section.get('custom'),
            include_prerelease=bool(section.get('include_prerelease', False)),
            include_unlicensed=bool(section.get('include_unlicensed', False)),
            include_hacks=bool(section.get('include_hacks', False)),
            include_homebrew=bool(section.get('include_homebrew', True)),
            include_regions=_normalize_codes(
                _as_list(section.get('include_regions')), normalize_region_code
            ),
            exclude_regions=_normalize_codes(
                _as_list(section.get('exclude_regions')), normalize_region_code
            ),
            include_languages=_normalize_codes(
                _as_list(section.get('include_languages')), normalize_language_code
            ),
            exclude_languages=_normalize_codes(
                _as_list(section.get('exclude_languages')), normalize_language_code
            ),
            infer_languages=bool(section.get('infer_languages', True)),
            region_languages=region_languages,
            include_patterns=_as_list(section.get('include_patterns')),
            exclude_patterns=_as_list(section.get('exclude_patterns')),
            include_list=name_list('include_list'),
            exclude_list=name_list('exclude_list'),
        )


@dataclass
class PriorityOptions:
    """
    Region/language preferences for 1G1R selection.

    Attributes:
        preferred_region: Region code ranked above everything else
        region_order: Region codes ranked next, ahead of the built-in order
        preferred_language: Language code ranked above everything else
        language_order: Language codes ranked next
    """
    preferred_region: Optional[str] = None
    region_order: List[str] = field(default_factory=list)
    preferred_language: Optional[str] = None
    language_order: List[str] = field(default_factory=list)

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> 'PriorityOptions':
        from romsync.naming.romname import normalize_language_code, normalize_region_code

        section = config.get('priority', {}) or {}

        preferred_region = section.get('preferred_region')
        if preferred_region:
            preferred_region = normalize_region_code(preferred_region) or preferred_region.lower()

        preferred_language = section.get('preferred_language')
        if preferred_language:
            preferred_language = (
                normalize_language_code(preferred_language) or preferred_language.lower()
            )

        return cls(
            preferred_region=preferred_region or None,
            region_order=_normalize_codes(
                _as_list(section.get('region_order')), normalize_region_code
            ),
            preferred_language=preferred_language or None,
            language_order=_normalize_codes(
                _as_list(section.get('language_order')), normalize_language_code
            ),
        )


@dataclass
class DownloaderOptions:
    """
    Everything one download run needs.

    Attributes:
        roms_dir: Root directory holding one folder per system
        jobs: Requested parallel downloads
        disk_profile: Destination disk speed class
        retry_count: Attempts per file
        retry_delay: Initial delay between attempts (seconds)
        update: Re-check files that already exist locally
        dry_run: Emit zero-count batches without touching the network
        extract: Unpack archives for entries that support it
        enable_1g1r: Apply one-game-one-ROM selection
        progress_interval: Minimum seconds between progress events per file
        user_agent: User-Agent header sent with every request
        filters: Filter options
        priority: 1G1R priority options
    """
    roms_dir: Path
    jobs: int = 4
    disk_profile: DiskProfile = DiskProfile.BALANCED
    retry_count: int = 3
    retry_delay: float = 2.0
    update: bool = False
    dry_run: bool = False
    extract: bool = True
    enable_1g1r: bool = True
    progress_interval: float = 0.25
    user_agent: Optional[str] = None
    filters: FilterOptions = field(default_factory=FilterOptions)
    priority: PriorityOptions = field(default_factory=PriorityOptions)

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> 'DownloaderOptions':
        target = Path(get_config_value(config, 'paths.target', '.')).expanduser()

        return cls(
            roms_dir=target / 'Roms',
            jobs=int(get_config_value(config, 'download.jobs', 4)),
            disk_profile=DiskProfile(get_config_value(config, 'download.disk_profile', 'balanced')),
            retry_count=int(get_config_value(config, 'download.retry_count', 3)),
            retry_delay=float(get_config_value(config, 'download.retry_delay', 2.0)),
            update=bool(get_config_value(config, 'download.update', False)),
            dry_run=bool(get_config_value(config, 'download.dry_run', False)),
            extract=bool(get_config_value(config, 'download.extract', True)),
            enable_1g1r=bool(get_config_value(config, 'download.enable_1g1r', True)),
            progress_interval=float(get_config_value(config, 'download.progress_interval', 0.25)),
            user_agent=get_config_value(config, 'http.user_agent'),
            filters=FilterOptions.from_config(config),
            priority=PriorityOptions.from_config(config),
        )
