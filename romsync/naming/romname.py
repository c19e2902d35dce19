"""
ROM filename classification.

Extracts title, regions, languages, version, disc/part and release-type
flags from No-Intro / Redump style filenames such as
``Pokemon - Red Version (USA, Europe) (Rev 1).zip``.
"""

import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple


@dataclass(frozen=True)
class VersionInfo:
    """Parsed revision or version tag."""
    kind: str                # 'rev' or 'ver'
    parts: Tuple[int, ...]   # numeric parts, trailing letter folded in as A=1
    raw: str
    letter: Optional[str] = None


@dataclass(frozen=True)
class DiscInfo:
    """Parsed disc / side / part tag."""
    type: str                # disc, disk, cd, gd, dvd, side, part, volume
    index: int
    raw: str
    total: Optional[int] = None

    @property
    def key(self) -> str:
        """Stable key identifying this part within a release."""
        return f"{self.type}{self.index}"


@dataclass(frozen=True)
class ReleaseFlags:
    """Independent release-type flags."""
    prerelease: bool = False
    unlicensed: bool = False
    hack: bool = False
    homebrew: bool = False


@dataclass(frozen=True)
class ClassifiedName:
    """
    Structured attributes derived from a filename.

    Attributes:
        base_name: Filename without extension
        title: Base name with all trailing ``(...)``/``[...]`` groups removed
        region_codes: Canonical region codes in order of appearance
        region_labels: Display labels for region_codes
        language_codes: Canonical language codes in order of appearance
        version: First version/revision tag found
        disc: First disc/part tag found
        tags: Display labels of recognized release-type tags
        flags: Release-type flags
    """
    base_name: str
    title: str
    region_codes: Tuple[str, ...] = ()
    region_labels: Tuple[str, ...] = ()
    language_codes: Tuple[str, ...] = ()
    version: Optional[VersionInfo] = None
    disc: Optional[DiscInfo] = None
    tags: Tuple[str, ...] = ()
    flags: ReleaseFlags = field(default_factory=ReleaseFlags)


REGION_CODE_LABELS: Dict[str, str] = {
    'eu': 'Europe',
    'us': 'USA',
    'ss': 'ScreenScraper',
    'uk': 'United Kingdom',
    'wor': 'World',
    'jp': 'Japan',
    'au': 'Australia',
    'ame': 'America',
    'de': 'Germany',
    'cus': 'Custom',
    'cn': 'China',
    'kr': 'Korea',
    'asi': 'Asia',
    'br': 'Brazil',
    'sp': 'Spain',
    'fr': 'France',
    'gr': 'Greece',
    'it': 'Italy',
    'no': 'Norway',
    'dk': 'Denmark',
    'nz': 'New Zealand',
    'nl': 'Netherlands',
    'pl': 'Poland',
    'ru': 'Russia',
    'se': 'Sweden',
    'tw': 'Taiwan',
    'ca': 'Canada',
    'fi': 'Finland',
    'oce': 'Oceania',
    'mor': 'Middle East',
}

# Normalized spelling -> canonical region code
REGION_ALIASES: Dict[str, str] = {
    'e': 'eu', 'eu': 'eu', 'europe': 'eu',
    'u': 'us', 'us': 'us', 'usa': 'us', 'unitedstates': 'us',
    'ss': 'ss', 'screenscraper': 'ss',
    'w': 'wor', 'wor': 'wor', 'world': 'wor', 'global': 'wor',
    'j': 'jp', 'jp': 'jp', 'japan': 'jp', 'jpn': 'jp',
    'uk': 'uk', 'unitedkingdom': 'uk', 'greatbritain': 'uk', 'britain': 'uk',
    'au': 'au', 'australia': 'au', 'aus': 'au',
    'ame': 'ame', 'america': 'ame',
    'de': 'de', 'germany': 'de',
    'cus': 'cus', 'custom': 'cus',
    'cn': 'cn', 'china': 'cn',
    'kr': 'kr', 'korea': 'kr', 'southkorea': 'kr',
    'asi': 'asi', 'asia': 'asi',
    'br': 'br', 'brazil': 'br',
    'sp': 'sp', 'spain': 'sp', 'espa': 'sp',
    'fr': 'fr', 'france': 'fr',
    'gr': 'gr', 'greece': 'gr',
    'it': 'it', 'italy': 'it',
    'no': 'no', 'norway': 'no',
    'dk': 'dk', 'denmark': 'dk',
    'nz': 'nz', 'newzealand': 'nz',
    'nl': 'nl', 'netherlands': 'nl',
    'pl': 'pl', 'poland': 'pl',
    'ru': 'ru', 'russia': 'ru',
    'se': 'se', 'sweden': 'se',
    'tw': 'tw', 'taiwan': 'tw',
    'ca': 'ca', 'canada': 'ca',
    'fi': 'fi', 'finland': 'fi',
    'oce': 'oce', 'oceania': 'oce',
    'mor': 'mor', 'middleeast': 'mor',
}

# Normalized spelling -> canonical language code
LANGUAGE_ALIASES: Dict[str, str] = {
    'en': 'en', 'eng': 'en', 'english': 'en',
    'de': 'de', 'ger': 'de', 'german': 'de',
    'fr': 'fr', 'fre': 'fr', 'french': 'fr',
    'es': 'es', 'spa': 'es', 'spanish': 'es',
    'it': 'it', 'ita': 'it', 'italian': 'it',
    'pt': 'pt', 'por': 'pt', 'portuguese': 'pt',
    'ja': 'ja', 'jpn': 'ja', 'japanese': 'ja',
    'nl': 'nl', 'dut': 'nl', 'dutch': 'nl',
    'sv': 'sv', 'swe': 'sv', 'swedish': 'sv',
    'no': 'no', 'nor': 'no', 'norwegian': 'no',
    'da': 'da', 'danish': 'da',
    'fi': 'fi', 'finnish': 'fi',
    'ru': 'ru', 'russian': 'ru',
    'pl': 'pl', 'polish': 'pl',
    'zh': 'zh', 'chi': 'zh', 'chinese': 'zh',
    'ko': 'ko', 'kor': 'ko', 'korean': 'ko',
    'tr': 'tr', 'turkish': 'tr',
    'hu': 'hu', 'hungarian': 'hu',
    'cz': 'cz', 'czech': 'cz',
    'sk': 'sk', 'slovak': 'sk',
}

PRERELEASE_PATTERN = re.compile(
    r'^(beta|demo|proto|prototype|sample|preview|alpha|pre-?release)\b', re.IGNORECASE
)
UNLICENSED_PATTERN = re.compile(r'^(unl|unlicensed|pirate|bootleg)\b', re.IGNORECASE)
HACK_PATTERN = re.compile(r'^(hack|hacked|romhack)\b', re.IGNORECASE)
HOMEBREW_PATTERN = re.compile(r'^home\s?brew\b', re.IGNORECASE)

_EXTENSION_PATTERN = re.compile(r'\.[^.\s()\[\]]+$')
_TRAILING_TAG_PATTERN = re.compile(r'\s*(\([^)]*\)|\[[^\]]*\])\s*$')
_TAG_GROUP_PATTERN = re.compile(r'\(([^)]+)\)|\[([^\]]+)\]')
_DISC_PATTERN = re.compile(
    r'^(disc|disk|cd|gd|dvd|side|part|volume|vol)\s*([0-9]+|[A-Z])(?:\s*of\s*(\d+))?$',
    re.IGNORECASE
)
_REVISION_PATTERN = re.compile(r'^(?:rev|revision)\s*([0-9]+|[A-Z])$', re.IGNORECASE)
_VERSION_PATTERN = re.compile(r'^(?:v|ver|version)\s*([0-9]+(?:\.[0-9]+)*)([A-Z])?$', re.IGNORECASE)
_LEADING_WORD_PATTERN = re.compile(r'^[A-Za-z]+')


def normalize_key(value: str) -> str:
    """Lowercase and drop everything but ASCII letters and digits."""
    return re.sub(r'[^a-z0-9]', '', value.strip().lower())


def normalize_region_code(value: str) -> Optional[str]:
    """
    Map a region spelling to its canonical code.

    Args:
        value: Region name, abbreviation or code (e.g. 'USA', 'u', 'Europe')

    Returns:
        Canonical region code, or None if unrecognized
    """
    return REGION_ALIASES.get(normalize_key(value))


def normalize_language_code(value: str) -> Optional[str]:
    """
    Map a language spelling to its canonical code.

    Args:
        value: Language name or code (e.g. 'En', 'english', 'ger')

    Returns:
        Canonical language code, or None if unrecognized
    """
    return LANGUAGE_ALIASES.get(normalize_key(value))


def strip_extension(filename: str) -> str:
    """Remove the trailing file extension, if any."""
    return _EXTENSION_PATTERN.sub('', filename)


def split_comma_tokens(value: str) -> List[str]:
    """
    Split on commas, honoring backslash-escaped commas.

    Empty tokens are dropped and surrounding whitespace trimmed.
    """
    tokens = []
    current = []
    escaped = False

    for ch in value:
        if escaped:
            current.append(ch)
            escaped = False
        elif ch == '\\':
            escaped = True
        elif ch == ',':
            token = ''.join(current).strip()
            if token:
                tokens.append(token)
            current = []
        else:
            current.append(ch)

    token = ''.join(current).strip()
    if token:
        tokens.append(token)

    return tokens


def strip_trailing_tags(value: str) -> str:
    """Repeatedly remove trailing parenthesized/bracketed groups."""
    output = value
    while True:
        stripped = _TRAILING_TAG_PATTERN.sub('', output, count=1)
        if stripped == output:
            break
        output = stripped
    return output.strip()


def _letter_index(value: str) -> Optional[int]:
    letter = value.upper()
    if len(letter) == 1 and 'A' <= letter <= 'Z':
        return ord(letter) - 64
    return None


def parse_disc_info(token: str) -> Optional[DiscInfo]:
    """Parse tokens such as 'Disc 2 of 3', 'Side B', 'CD1', 'Vol 2'."""
    trimmed = token.strip()
    match = _DISC_PATTERN.match(trimmed)
    if not match:
        return None

    label = match.group(2)
    index = int(label) if label.isdigit() else _letter_index(label)
    if not index or index <= 0:
        return None

    kind = match.group(1).lower()
    if kind == 'vol':
        kind = 'volume'

    total = int(match.group(3)) if match.group(3) else None
    return DiscInfo(type=kind, index=index, raw=trimmed, total=total or None)


def parse_version_info(token: str) -> Optional[VersionInfo]:
    """Parse tokens such as 'Rev 2', 'Rev A', 'v1.1', 'v1.02b'."""
    trimmed = token.strip()

    match = _REVISION_PATTERN.match(trimmed)
    if match:
        value = match.group(1)
        if value.isdigit():
            return VersionInfo(kind='rev', parts=(int(value),), raw=trimmed)
        index = _letter_index(value)
        if index:
            return VersionInfo(kind='rev', parts=(index,), raw=trimmed, letter=value.upper())

    match = _VERSION_PATTERN.match(trimmed)
    if match:
        parts = tuple(int(p) for p in match.group(1).split('.'))
        letter = match.group(2).upper() if match.group(2) else None
        if letter:
            parts = parts + (ord(letter) - 64,)
        return VersionInfo(kind='ver', parts=parts, raw=trimmed, letter=letter)

    return None


def _classify_release_tag(token: str) -> Optional[Tuple[str, str]]:
    """Return (tag label, flag name) for a release-type keyword."""
    for pattern, flag in (
        (PRERELEASE_PATTERN, 'prerelease'),
        (UNLICENSED_PATTERN, 'unlicensed'),
    ):
        if pattern.match(token):
            word = _LEADING_WORD_PATTERN.match(token)
            label = word.group(0) if word else token
            return label[0].upper() + label[1:], flag

    if HACK_PATTERN.match(token):
        return 'Hack', 'hack'
    if HOMEBREW_PATTERN.match(token):
        return 'Homebrew', 'homebrew'
    return None


def classify(filename: str) -> ClassifiedName:
    """
    Classify a catalog filename.

    Pure and total: unrecognized tokens are ignored, never raised on.
    Tokens inside every ``(...)``/``[...]`` group are tried in order as
    disc/part, version, language, region and finally release-type keyword.
    Only the first disc and first version token are kept; language and
    region codes accumulate.

    Args:
        filename: Catalog filename, with or without extension

    Returns:
        ClassifiedName

    Example:
        >>> info = classify('Pokemon - Red Version (USA, Europe) (Rev 1).gb')
        >>> info.title, info.region_codes, info.version.parts
        ('Pokemon - Red Version', ('us', 'eu'), (1,))
    """
    base_name = strip_extension(filename)
    title = strip_trailing_tags(base_name) or base_name

    region_codes: List[str] = []
    language_codes: List[str] = []
    tags: List[str] = []
    flags: Dict[str, bool] = {}
    version: Optional[VersionInfo] = None
    disc: Optional[DiscInfo] = None

    for match in _TAG_GROUP_PATTERN.finditer(base_name):
        group = match.group(1) or match.group(2)
        for token in split_comma_tokens(group):
            if disc is None:
                disc = parse_disc_info(token)
                if disc is not None:
                    continue

            if version is None:
                version = parse_version_info(token)
                if version is not None:
                    continue

            language = normalize_language_code(token)
            if language:
                if language not in language_codes:
                    language_codes.append(language)
                continue

            region = normalize_region_code(token)
            if region:
                if region not in region_codes:
                    region_codes.append(region)
                continue

            release_tag = _classify_release_tag(token)
            if release_tag:
                label, flag = release_tag
                if label not in tags:
                    tags.append(label)
                flags[flag] = True

    return ClassifiedName(
        base_name=base_name,
        title=title,
        region_codes=tuple(region_codes),
        region_labels=tuple(
            REGION_CODE_LABELS[code] for code in region_codes if code in REGION_CODE_LABELS
        ),
        language_codes=tuple(language_codes),
        version=version,
        disc=disc,
        tags=tuple(tags),
        flags=ReleaseFlags(**flags),
    )
