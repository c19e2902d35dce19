"""
Local collection scan.

Walks ``<roms_dir>/<SYSTEM>/`` and builds an in-memory manifest. Never
touches the catalog store; the reconciler writes the manifest afterwards.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Set

from romsync.naming.romname import classify, strip_extension
from romsync.remote.sources import ROM_ENTRIES
from romsync.scanner.hash_calculator import hash_file

logger = logging.getLogger(__name__)


class ScannerError(Exception):
    """ROM scanning errors."""
    pass


# Local system directory -> (source, catalog system key)
SYSTEM_DIRS: Dict[str, Dict[str, str]] = {
    'FC': {'source': 'no-intro', 'key': 'FC_CART'},
    'GB': {'source': 'no-intro', 'key': 'GB'},
    'GBA': {'source': 'no-intro', 'key': 'GBA'},
    'GBC': {'source': 'no-intro', 'key': 'GBC'},
    'MD': {'source': 'no-intro', 'key': 'MD'},
    'PCE': {'source': 'no-intro', 'key': 'PCE'},
    'PKM': {'source': 'no-intro', 'key': 'PKM'},
    'SGB': {'source': 'no-intro', 'key': 'SGB'},
    'PS': {'source': 'redump', 'key': 'PS'},
}

ROM_EXTENSIONS: Dict[str, List[str]] = {
    'FC': ['.nes', '.fds'],
    'GB': ['.gb'],
    'GBA': ['.gba'],
    'GBC': ['.gbc'],
    'MD': ['.md', '.bin', '.gen'],
    'PCE': ['.pce'],
    'PKM': ['.min'],
    'SGB': ['.gb', '.gbc'],
    'PS': ['.bin', '.cue', '.chd', '.pbp'],
}

# Downloaded archives stay on disk when extraction is off or failed
ARCHIVE_EXTENSIONS = ['.zip', '.7z']


@dataclass
class LocalRomInfo:
    """One ROM file found on disk."""
    filename: str
    title: str
    path: Path
    size: int
    sha1: Optional[str] = None
    crc32: Optional[str] = None


@dataclass
class SystemCollection:
    """ROMs of one local system directory."""
    system: str
    source: str
    roms: List[LocalRomInfo] = field(default_factory=list)
    total_size: int = 0

    @property
    def rom_count(self) -> int:
        return len(self.roms)


@dataclass
class CollectionManifest:
    """Result of a full collection scan."""
    roms_dir: Path
    systems: List[SystemCollection] = field(default_factory=list)

    @property
    def total_roms(self) -> int:
        return sum(system.rom_count for system in self.systems)

    @property
    def total_size(self) -> int:
        return sum(system.total_size for system in self.systems)


def infer_catalog_system_key(system_dir: str, filename: str) -> str:
    """
    Map a local system directory and filename to a catalog system key.

    ``FC`` holds both cartridge and disk system images; ``.fds`` files
    belong to FC_FDS, everything else to FC_CART. Other directories map to
    their own name.
    """
    if system_dir == 'FC':
        return 'FC_FDS' if Path(filename).suffix.lower() == '.fds' else 'FC_CART'
    info = SYSTEM_DIRS.get(system_dir)
    return info['key'] if info else system_dir


def catalog_system_keys(system_dir: str, filename: str) -> List[str]:
    """
    Candidate catalog keys for a local file, most likely first.

    An archive can come from any entry sharing the directory (``MD`` holds
    both MD and MD_SEGA_CD downloads), so every such key is a candidate.
    """
    keys = [infer_catalog_system_key(system_dir, filename)]
    if is_archive_file(filename):
        for entry in ROM_ENTRIES:
            if entry.dest_dir == system_dir and entry.key not in keys:
                keys.append(entry.key)
    return keys


def infer_catalog_filename(filename: str) -> str:
    """
    Catalog archive name for a local file.

    Extracted ROMs map to their archive (``Game.gb`` -> ``Game.zip``);
    archives kept on disk are their own catalog name.
    """
    if is_archive_file(filename):
        return filename
    return f"{strip_extension(filename)}.zip"


def is_archive_file(filename: str) -> bool:
    return Path(filename).suffix.lower() in ARCHIVE_EXTENSIONS


def is_rom_file(filename: str, system_dir: str) -> bool:
    extensions = ROM_EXTENSIONS.get(system_dir)
    if extensions is None:
        return False
    return Path(filename).suffix.lower() in extensions or is_archive_file(filename)


def _wanted_dirs(systems: Optional[Iterable[str]]) -> Optional[Set[str]]:
    """Accept local directory names or catalog keys (FC_CART -> FC)."""
    if not systems:
        return None

    wanted = set()
    for name in systems:
        upper = name.upper()
        if upper in SYSTEM_DIRS:
            wanted.add(upper)
        for entry in ROM_ENTRIES:
            if entry.key == upper:
                wanted.add(entry.dest_dir)
    return wanted


def scan_system(system_dir: Path, system: str, include_hashes: bool = False) -> Optional[SystemCollection]:
    """
    Scan one system directory.

    Returns:
        SystemCollection, or None if the directory is missing or unknown
    """
    info = SYSTEM_DIRS.get(system)
    if info is None or not system_dir.is_dir():
        return None

    collection = SystemCollection(system=system, source=info['source'])

    for path in system_dir.iterdir():
        name = path.name
        # Skip metadata sidecars and hidden files
        if name.startswith('.') or name.endswith('.json'):
            continue
        if not path.is_file() or not is_rom_file(name, system):
            continue

        size = path.stat().st_size
        rom = LocalRomInfo(filename=name, title=classify(name).title, path=path, size=size)

        if include_hashes:
            try:
                file_hash = hash_file(path)
                rom.sha1 = file_hash.sha1
                rom.crc32 = file_hash.crc32
            except OSError as e:
                logger.debug(f"Failed to hash {path}: {e}")

        collection.roms.append(rom)
        collection.total_size += size

    collection.roms.sort(key=lambda rom: (rom.title.casefold(), rom.filename))
    logger.debug(f"{system}: {collection.rom_count} ROM(s) found")
    return collection


def scan_collection(
    roms_dir: Path,
    systems: Optional[Iterable[str]] = None,
    include_hashes: bool = False
) -> CollectionManifest:
    """
    Scan every known system directory under roms_dir.

    Args:
        roms_dir: ROM root (``<target>/Roms``)
        systems: Restrict to these directories or catalog keys
        include_hashes: Compute SHA-1/CRC32 for every ROM

    Returns:
        CollectionManifest (empty when roms_dir does not exist)

    Raises:
        ScannerError: If roms_dir exists but is not a directory
    """
    roms_dir = Path(roms_dir)
    manifest = CollectionManifest(roms_dir=roms_dir)

    if not roms_dir.exists():
        logger.info(f"ROM directory not found, nothing to scan: {roms_dir}")
        return manifest
    if not roms_dir.is_dir():
        raise ScannerError(f"ROM path is not a directory: {roms_dir}")

    wanted = _wanted_dirs(systems)
    for system in SYSTEM_DIRS:
        if wanted is not None and system not in wanted:
            continue
        try:
            collection = scan_system(roms_dir / system, system, include_hashes)
        except PermissionError as e:
            raise ScannerError(f"Permission denied accessing {roms_dir / system}: {e}") from e
        if collection is not None:
            manifest.systems.append(collection)

    logger.info(
        f"Scanned {manifest.total_roms} ROM(s) in {len(manifest.systems)} system(s) under {roms_dir}"
    )
    return manifest
