"""
One-game-one-ROM (1G1R) variant selection.

Groups catalog filenames by title, then by region/language set, and keeps
exactly one group per title. Every disc or part of the winning group is
kept, so a multi-disc release is never split across variants.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from romsync.config.options import PriorityOptions
from romsync.naming.filters import DEFAULT_REGION_LANGUAGES, infer_language_codes
from romsync.naming.romname import ClassifiedName, VersionInfo, classify, normalize_key

logger = logging.getLogger(__name__)

DEFAULT_REGION_PRIORITY: List[str] = [
    'us', 'wor', 'eu', 'uk', 'au', 'ca', 'nz', 'ame',
    'de', 'fr', 'sp', 'it', 'nl', 'se', 'no', 'dk', 'fi', 'br',
    'asi', 'jp', 'kr', 'cn', 'tw', 'ru', 'pl', 'gr', 'oce', 'mor',
    'cus', 'ss',
]

DEFAULT_LANGUAGE_PRIORITY: List[str] = [
    'en', 'fr', 'de', 'es', 'it', 'nl', 'pt', 'sv', 'no', 'da', 'fi',
    'pl', 'ru', 'ja', 'zh', 'ko', 'tr', 'hu', 'cz', 'sk',
]

# Raw tags that never parse as a version but are known to mark a revision
LEGACY_VERSION_PARTS: Dict[str, Tuple[int, ...]] = {
    'rev11': (1, 1),
    'rev12': (1, 2),
    'rev13': (1, 3),
    'rev1a': (1, 1),
}

# Fixed positional width used when folding version parts
_VERSION_WIDTH = 4


def build_rank_table(
    preferred: Optional[str],
    overrides: Optional[Sequence[str]],
    defaults: Sequence[str]
) -> Dict[str, int]:
    """
    Build a code -> rank table; earlier codes rank higher.

    Order is preferred code, then overrides, then defaults, with duplicates
    keeping their first position. Rank is (list length - position).

    Example:
        >>> build_rank_table('jp', ['eu'], ['us', 'eu', 'jp'])
        {'jp': 3, 'eu': 2, 'us': 1}
    """
    ordered: List[str] = []
    for code in [preferred] + list(overrides or []) + list(defaults):
        if code and code not in ordered:
            ordered.append(code)

    total = len(ordered)
    return {code: total - position for position, code in enumerate(ordered)}


def _fold_parts(parts: Sequence[int]) -> int:
    padded = (list(parts) + [0] * _VERSION_WIDTH)[:_VERSION_WIDTH]
    rank = 0
    for part in padded:
        rank = rank * 100 + min(max(part, 0), 99)
    return rank


def version_rank(info: Optional[VersionInfo], raw_tags: Sequence[str] = ()) -> int:
    """
    Fold a version into one base-100 positional number.

    ``Rev 2`` > ``Rev 1`` > no version; ``v1.2`` > ``v1.1``. Names without a
    parseable version fall back to LEGACY_VERSION_PARTS for any raw tag.
    """
    if info is not None:
        return _fold_parts(info.parts)

    for tag in raw_tags:
        parts = LEGACY_VERSION_PARTS.get(normalize_key(tag))
        if parts:
            return _fold_parts(parts)
    return 0


def _raw_tags(info: ClassifiedName) -> List[str]:
    tail = info.base_name[len(info.title):]
    tags = []
    for chunk in tail.replace('[', '(').replace(']', ')').split('('):
        chunk = chunk.strip().rstrip(')').strip()
        if chunk:
            tags.append(chunk)
    return tags


@dataclass
class _Ranks:
    region_rank: Dict[str, int]
    language_rank: Dict[str, int]

    @classmethod
    def from_options(cls, options: Optional[PriorityOptions]) -> '_Ranks':
        options = options or PriorityOptions()
        return cls(
            region_rank=build_rank_table(
                options.preferred_region, options.region_order, DEFAULT_REGION_PRIORITY
            ),
            language_rank=build_rank_table(
                options.preferred_language, options.language_order, DEFAULT_LANGUAGE_PRIORITY
            ),
        )

    def score(self, info: ClassifiedName) -> Tuple[int, int, int]:
        region = max((self.region_rank.get(code, 0) for code in info.region_codes), default=0)

        languages = info.language_codes or infer_language_codes(
            info.region_codes, DEFAULT_REGION_LANGUAGES
        )
        language = max((self.language_rank.get(code, 0) for code in languages), default=0)

        return region, language, version_rank(info.version, _raw_tags(info))


@dataclass
class VariantGroup:
    """
    One region/language variant of a title.

    Attributes:
        key: (normalized title, sorted region codes, sorted language codes)
        discs: disc/part key -> (filename, version rank) of the best file
        region_rank: Best region rank seen among members
        language_rank: Best language rank seen among members
        version_rank: Best version rank seen among members
    """
    key: Tuple[str, Tuple[str, ...], Tuple[str, ...]]
    discs: Dict[str, Tuple[str, int]] = field(default_factory=dict)
    region_rank: int = 0
    language_rank: int = 0
    version_rank: int = 0

    def add(self, filename: str, disc_key: str, ranks: Tuple[int, int, int]) -> None:
        region, language, version = ranks
        self.region_rank = max(self.region_rank, region)
        self.language_rank = max(self.language_rank, language)
        self.version_rank = max(self.version_rank, version)

        current = self.discs.get(disc_key)
        if current is None or version > current[1]:
            self.discs[disc_key] = (filename, version)

    @property
    def sort_key(self) -> Tuple[int, int, int, int]:
        return (self.region_rank, self.language_rank, self.version_rank, len(self.discs))

    @property
    def filenames(self) -> List[str]:
        return [filename for filename, _ in self.discs.values()]


def normalize_title(title: str) -> str:
    """Case-fold and collapse whitespace."""
    return ' '.join(title.casefold().split())


def calculate_priority(filename: str, options: Optional[PriorityOptions] = None) -> int:
    """
    Single comparable score for one filename.

    Region rank dominates, then language rank, then version rank.
    """
    region, language, version = _Ranks.from_options(options).score(classify(filename))
    return (region * 1000 + language) * 100 ** _VERSION_WIDTH + version


def select_one_per_title(
    filenames: Sequence[str],
    options: Optional[PriorityOptions] = None
) -> List[str]:
    """
    Keep one release per title.

    Args:
        filenames: Candidate filenames
        options: Region/language preferences (built-in order if None)

    Returns:
        Subset of filenames in their original order. Inputs of zero or one
        name are returned unchanged.

    Example:
        >>> select_one_per_title(['Foo (USA).gb', 'Foo (USA) (Rev 1).gb', 'Foo (Europe).gb'])
        ['Foo (USA) (Rev 1).gb']
    """
    if len(filenames) <= 1:
        return list(filenames)

    ranks = _Ranks.from_options(options)
    titles: Dict[str, Dict[tuple, VariantGroup]] = {}

    for filename in filenames:
        info = classify(filename)
        title_key = normalize_title(info.title)
        group_key = (
            title_key,
            tuple(sorted(info.region_codes)),
            tuple(sorted(info.language_codes)),
        )

        groups = titles.setdefault(title_key, {})
        group = groups.get(group_key)
        if group is None:
            group = groups[group_key] = VariantGroup(key=group_key)

        disc_key = info.disc.key if info.disc else ''
        group.add(filename, disc_key, ranks.score(info))

    selected = set()
    for title_key, groups in titles.items():
        winner = None
        for group in groups.values():
            # Strict comparison keeps the first-seen group on a full tie
            if winner is None or group.sort_key > winner.sort_key:
                winner = group
        selected.update(winner.filenames)

        if len(groups) > 1:
            logger.debug(
                f"1G1R '{title_key}': kept {len(winner.discs)} file(s) "
                f"from {len(groups)} variants"
            )

    return [filename for filename in filenames if filename in selected]
