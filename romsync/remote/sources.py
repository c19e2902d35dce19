"""Remote sources and the catalog entries (systems) they serve."""

import re
from dataclasses import dataclass
from typing import Iterable, List, Pattern

SOURCE_URLS = {
    'no-intro': 'https://myrient.erista.me/files/No-Intro',
    'redump': 'https://myrient.erista.me/files/Redump',
}


@dataclass(frozen=True)
class RomEntry:
    """
    One remote directory mapped to a local system directory.

    Attributes:
        key: Catalog system key (e.g. 'FC_CART')
        source: Source name, a key of SOURCE_URLS
        remote_path: URL-encoded directory path below the source root
        archive_pattern: Files of the listing that are downloaded
        extract_glob: Archive members kept on extraction
        label: Human readable name
        extract: Unpack archives after download
        dest_dir: Local directory under the ROM root
    """
    key: str
    source: str
    remote_path: str
    archive_pattern: Pattern
    extract_glob: str
    label: str
    extract: bool
    dest_dir: str

    @property
    def base_url(self) -> str:
        return SOURCE_URLS[self.source]

    @property
    def listing_url(self) -> str:
        return f"{self.base_url}/{self.remote_path}"


_ZIP = re.compile(r'\.zip$')
_ZIP_OR_7Z = re.compile(r'\.(zip|7z)$')

ROM_ENTRIES: List[RomEntry] = [
    RomEntry('FC_CART', 'no-intro', 'Nintendo%20-%20Famicom/',
             _ZIP, '*.nes', 'Famicom (cart)', True, 'FC'),
    RomEntry('FC_FDS', 'no-intro',
             'Nintendo%20-%20Family%20Computer%20Disk%20System%20%28FDS%29/',
             _ZIP, '*.fds', 'Famicom Disk System', True, 'FC'),
    RomEntry('GB', 'no-intro', 'Nintendo%20-%20Game%20Boy/',
             _ZIP, '*.gb', 'Game Boy', True, 'GB'),
    RomEntry('GBA', 'no-intro', 'Nintendo%20-%20Game%20Boy%20Advance/',
             _ZIP, '*.gba', 'Game Boy Advance', True, 'GBA'),
    RomEntry('GBC', 'no-intro', 'Nintendo%20-%20Game%20Boy%20Color/',
             _ZIP, '*.gbc', 'Game Boy Color', True, 'GBC'),
    RomEntry('MD', 'no-intro', 'Sega%20-%20Mega%20Drive%20-%20Genesis/',
             _ZIP, '*.md', 'Mega Drive / Genesis', True, 'MD'),
    RomEntry('PCE', 'no-intro', 'NEC%20-%20PC%20Engine%20-%20TurboGrafx-16/',
             _ZIP, '*.pce', 'PC Engine', True, 'PCE'),
    RomEntry('PKM', 'no-intro', 'Nintendo%20-%20Pokemon%20Mini/',
             _ZIP, '*.min', 'Pokemon Mini', True, 'PKM'),
    RomEntry('SGB', 'no-intro', 'Nintendo%20-%20Super%20Nintendo%20Entertainment%20System/',
             _ZIP, '*.sfc', 'Super Game Boy (SNES)', True, 'SGB'),
    RomEntry('PS', 'redump', 'Sony%20-%20PlayStation/',
             _ZIP_OR_7Z, '*', 'PlayStation (Redump)', False, 'PS'),
    RomEntry('MD_SEGA_CD', 'redump', 'Sega%20-%20Mega-CD%20-%20Sega%20CD/',
             _ZIP_OR_7Z, '*', 'Mega CD / Sega CD (Redump)', False, 'MD'),
]


def get_entries_by_sources(sources: Iterable[str]) -> List[RomEntry]:
    """Entries served by any of the given sources, in table order."""
    wanted = set(sources)
    return [entry for entry in ROM_ENTRIES if entry.source in wanted]


def get_entries_by_keys(keys: Iterable[str]) -> List[RomEntry]:
    """Entries whose key is listed (case-insensitive), in table order."""
    wanted = {key.upper() for key in keys}
    return [entry for entry in ROM_ENTRIES if entry.key in wanted]


def unknown_entry_keys(keys: Iterable[str]) -> List[str]:
    """Keys that name no known entry."""
    known = {entry.key for entry in ROM_ENTRIES}
    return [key for key in keys if key.upper() not in known]
