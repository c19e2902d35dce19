"""
Persistent catalog store.

SQLite through SQLAlchemy. Holds remote listing snapshots with derived
metadata, local file records and per-(system, source) sync state. One
CatalogStore handle is created by the caller and passed to every component
that needs it.
"""

import json
import logging
import re
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence, Set, Union

from sqlalchemy import create_engine, delete, event, func, select
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from romsync.catalog.models import Base, LocalRom, RemoteRom, RomMetadata, SyncState, SYNC_STATUSES
from romsync.naming.romname import classify

logger = logging.getLogger(__name__)

# Maximum ids per DELETE ... WHERE id IN (...) statement
DELETE_BATCH_SIZE = 500

_TAG_GROUP = re.compile(r'\(([^)]+)\)|\[([^\]]+)\]')


class CatalogError(Exception):
    """Catalog store open, migration or write failure."""
    pass


@dataclass
class ListingSyncStats:
    """Row counts from applying one remote listing."""
    inserted: int = 0
    updated: int = 0
    unchanged: int = 0
    removed: int = 0

    @property
    def total(self) -> int:
        return self.inserted + self.updated + self.unchanged


@dataclass(frozen=True)
class RecordedRemoteMeta:
    """Remote size / last-modified recorded for a local file."""
    size: Optional[int] = None
    last_modified: Optional[str] = None


@dataclass
class CatalogStats:
    """Row counts across the catalog."""
    remote_roms: int = 0
    local_roms: int = 0
    linked_local_roms: int = 0
    remote_by_system: Dict[str, int] = field(default_factory=dict)
    local_by_system: Dict[str, int] = field(default_factory=dict)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _chunks(values: Sequence[Any], size: int) -> Iterator[Sequence[Any]]:
    for start in range(0, len(values), size):
        yield values[start:start + size]


def metadata_values(filename: str) -> Dict[str, Any]:
    """
    Derive rom_metadata column values from a catalog filename.

    Returns:
        Dictionary keyed by RomMetadata column name (without the key)
    """
    info = classify(filename)
    tags = {tag.lower() for tag in info.tags}
    raw_groups = set()
    for match in _TAG_GROUP.finditer(info.base_name):
        raw_groups.add((match.group(1) or match.group(2)).strip().lower())

    return {
        'title': info.title,
        'regions': json.dumps(list(info.region_labels)) if info.region_labels else None,
        'languages': json.dumps(list(info.language_codes)) if info.language_codes else None,
        'revision': info.version.parts[0] if info.version and info.version.parts else None,
        'is_beta': 'beta' in tags,
        'is_demo': 'demo' in tags,
        'is_proto': 'proto' in tags or 'prototype' in tags,
        'is_sample': 'sample' in tags,
        'is_unlicensed': info.flags.unlicensed,
        'is_homebrew': info.flags.homebrew,
        'is_hack': info.flags.hack,
        'is_virtual': 'virtual console' in raw_groups,
        'is_compilation': 'compilation' in raw_groups,
    }


class CatalogStore:
    """
    Catalog database handle with explicit open/close lifecycle.

    Features:
    - Tables created on open; SQLite foreign keys enabled per connection so
      metadata cascades and local links are nulled on remote row deletes
    - Remote listing upsert with batched removal in one transaction
    - Local file upserts keyed on path; only record_download() ever sets
      downloaded_at
    - Prefix-scoped prune in bounded batches

    Example:
        with CatalogStore('romsync.db') as store:
            stats = store.upsert_remote_listing('GB', 'no-intro', entries)
            store.record_download(path, system='GB', filename='Tetris (World).zip')
    """

    def __init__(self, path: Union[str, Path], echo: bool = False):
        """
        Initialize store (not yet opened).

        Args:
            path: Database file path, or ':memory:'
            echo: Log every SQL statement
        """
        self.path = str(path)
        self.echo = echo
        self._engine: Optional[Engine] = None
        self._session_factory: Optional[sessionmaker] = None

    @property
    def is_open(self) -> bool:
        return self._engine is not None

    def open(self) -> 'CatalogStore':
        """
        Open the database and create missing tables.

        Raises:
            CatalogError: If the database cannot be opened or migrated
        """
        if self._engine is not None:
            return self

        try:
            if self.path == ':memory:':
                engine = create_engine(
                    'sqlite://',
                    echo=self.echo,
                    connect_args={'check_same_thread': False},
                    poolclass=StaticPool,
                )
            else:
                Path(self.path).expanduser().parent.mkdir(parents=True, exist_ok=True)
                engine = create_engine(
                    f"sqlite:///{Path(self.path).expanduser()}",
                    echo=self.echo,
                    connect_args={'check_same_thread': False},
                )

            @event.listens_for(engine, "connect")
            def _enable_foreign_keys(dbapi_connection, connection_record):
                cursor = dbapi_connection.cursor()
                cursor.execute("PRAGMA foreign_keys=ON")
                cursor.execute("PRAGMA journal_mode=WAL")
                cursor.close()

            Base.metadata.create_all(engine)
        except (SQLAlchemyError, OSError) as e:
            raise CatalogError(f"Failed to open catalog {self.path}: {e}") from e

        self._engine = engine
        self._session_factory = sessionmaker(engine, expire_on_commit=False)
        logger.debug(f"Opened catalog {self.path}")
        return self

    def close(self) -> None:
        """Dispose of the engine; safe to call twice."""
        if self._engine is not None:
            self._engine.dispose()
            self._engine = None
            self._session_factory = None
            logger.debug(f"Closed catalog {self.path}")

    def __enter__(self) -> 'CatalogStore':
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @contextmanager
    def _transaction(self) -> Iterator[Session]:
        if self._session_factory is None:
            raise CatalogError("Catalog store is not open")

        session = self._session_factory()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            raise CatalogError(f"Catalog write failed: {e}") from e
        except BaseException:
            session.rollback()
            raise
        finally:
            session.close()

    # Remote catalog

    def upsert_remote_listing(
        self,
        system: str,
        source: str,
        entries: Iterable[Any],
        directory_last_modified: Optional[str] = None
    ) -> ListingSyncStats:
        """
        Apply one remote listing snapshot.

        New files are inserted with metadata, files whose last-modified
        changed are updated, files no longer listed are removed (in batches
        of DELETE_BATCH_SIZE), and the sync state is marked synced, all in
        one transaction.

        Args:
            system: Catalog system key
            source: Source name
            entries: Objects with filename, size and last_modified
            directory_last_modified: Directory fingerprint for the sync state

        Returns:
            ListingSyncStats

        Raises:
            CatalogError: On any database failure (nothing is committed)
        """
        stats = ListingSyncStats()
        now = utcnow()

        with self._transaction() as session:
            existing = {
                row.filename: row
                for row in session.scalars(
                    select(RemoteRom).where(RemoteRom.system == system, RemoteRom.source == source)
                )
            }

            seen: Set[str] = set()
            for entry in entries:
                if entry.filename in seen:
                    continue
                seen.add(entry.filename)
                size = entry.size or None

                row = existing.get(entry.filename)
                if row is None:
                    row = RemoteRom(
                        system=system,
                        source=source,
                        filename=entry.filename,
                        size=size,
                        last_modified=entry.last_modified,
                        last_synced_at=now,
                    )
                    row.rom_metadata = RomMetadata(**metadata_values(entry.filename))
                    session.add(row)
                    stats.inserted += 1
                elif row.last_modified != entry.last_modified or row.size != size:
                    row.size = size
                    row.last_modified = entry.last_modified
                    row.last_synced_at = now
                    values = metadata_values(entry.filename)
                    if row.rom_metadata is None:
                        row.rom_metadata = RomMetadata(**values)
                    else:
                        for key, value in values.items():
                            setattr(row.rom_metadata, key, value)
                    stats.updated += 1
                else:
                    row.last_synced_at = now
                    stats.unchanged += 1

            session.flush()

            stale_ids = [row.id for name, row in existing.items() if name not in seen]
            for chunk in _chunks(stale_ids, DELETE_BATCH_SIZE):
                session.execute(
                    delete(RemoteRom).where(RemoteRom.id.in_(chunk)),
                    execution_options={'synchronize_session': False},
                )
            stats.removed = len(stale_ids)

            self._upsert_sync_state(
                session, system, source,
                remote_last_modified=directory_last_modified,
                local_last_synced=now,
                remote_count=len(seen),
                status='synced',
                last_error=None,
            )

        logger.debug(
            f"{system}/{source}: +{stats.inserted} ~{stats.updated} "
            f"={stats.unchanged} -{stats.removed}"
        )
        return stats

    def find_remote_rom_id(self, system: str, filename: str) -> Optional[int]:
        """Id of the remote row for (system, filename), via the composite index."""
        with self._transaction() as session:
            return session.scalar(
                select(RemoteRom.id)
                .where(RemoteRom.system == system, RemoteRom.filename == filename)
                .order_by(RemoteRom.id)
                .limit(1)
            )

    def get_remote_roms(self, system: str, source: Optional[str] = None) -> List[RemoteRom]:
        with self._transaction() as session:
            query = select(RemoteRom).where(RemoteRom.system == system)
            if source:
                query = query.where(RemoteRom.source == source)
            return list(session.scalars(query.order_by(RemoteRom.filename)))

    def get_rom_metadata(self, remote_rom_id: int) -> Optional[RomMetadata]:
        with self._transaction() as session:
            return session.get(RomMetadata, remote_rom_id)

    # Sync state

    def _upsert_sync_state(self, session: Session, system: str, source: str, **values) -> None:
        statement = sqlite_insert(SyncState).values(system=system, source=source, **values)
        statement = statement.on_conflict_do_update(
            index_elements=['system', 'source'],
            set_=values,
        )
        session.execute(statement)

    def get_sync_state(self, system: str, source: str) -> Optional[SyncState]:
        with self._transaction() as session:
            return session.scalar(
                select(SyncState).where(SyncState.system == system, SyncState.source == source)
            )

    def get_sync_states(self) -> List[SyncState]:
        with self._transaction() as session:
            return list(session.scalars(select(SyncState).order_by(SyncState.system)))

    def mark_sync_status(
        self,
        system: str,
        source: str,
        status: str,
        error: Optional[str] = None
    ) -> None:
        """
        Set the sync status of one (system, source).

        Raises:
            ValueError: If status is not one of SYNC_STATUSES
        """
        if status not in SYNC_STATUSES:
            raise ValueError(f"Invalid sync status '{status}'")

        with self._transaction() as session:
            self._upsert_sync_state(session, system, source, status=status, last_error=error)

    # Local files

    def _upsert_local(self, values: Dict[str, Any], update_keys: Iterable[str]) -> None:
        with self._transaction() as session:
            if values.get('remote_rom_id') is None:
                values['remote_rom_id'] = session.scalar(
                    select(RemoteRom.id)
                    .where(RemoteRom.system == values['system'],
                           RemoteRom.filename == values['filename'])
                    .order_by(RemoteRom.id)
                    .limit(1)
                )

            statement = sqlite_insert(LocalRom).values(**values)
            update = {key: statement.excluded[key] for key in update_keys if key in values}
            if values.get('remote_rom_id') is None:
                # Keep an existing link rather than clearing it
                update.pop('remote_rom_id', None)
            statement = statement.on_conflict_do_update(index_elements=['local_path'], set_=update)
            session.execute(statement)

    def record_download(
        self,
        local_path: Union[str, Path],
        system: str,
        filename: str,
        file_size: Optional[int] = None,
        remote_rom_id: Optional[int] = None,
        remote_size: Optional[int] = None,
        remote_last_modified: Optional[str] = None,
        sha1: Optional[str] = None,
        crc32: Optional[str] = None
    ) -> None:
        """
        Record a file this process downloaded; sets downloaded_at to now.

        The remote row is linked by id, or by (system, filename) when no id
        is given.
        """
        now = utcnow()
        values = {
            'local_path': str(local_path),
            'system': system,
            'filename': filename,
            'file_size': file_size,
            'remote_rom_id': remote_rom_id,
            'remote_size': remote_size,
            'remote_last_modified': remote_last_modified,
            'downloaded_at': now,
        }
        update_keys = ['system', 'filename', 'file_size', 'remote_rom_id',
                       'remote_size', 'remote_last_modified', 'downloaded_at']
        if sha1 or crc32:
            values.update(sha1=sha1, crc32=crc32, verified_at=now)
            update_keys += ['sha1', 'crc32', 'verified_at']

        self._upsert_local(values, update_keys)

    def record_local_file(
        self,
        local_path: Union[str, Path],
        system: str,
        filename: str,
        file_size: Optional[int] = None,
        remote_rom_id: Optional[int] = None,
        remote_size: Optional[int] = None,
        remote_last_modified: Optional[str] = None,
        sha1: Optional[str] = None,
        crc32: Optional[str] = None
    ) -> None:
        """
        Record a file observed on disk.

        Never sets or clears downloaded_at. Hashes and verified_at are only
        written when hashes are given; remote metadata only when given.
        """
        values = {
            'local_path': str(local_path),
            'system': system,
            'filename': filename,
            'file_size': file_size,
            'remote_rom_id': remote_rom_id,
        }
        update_keys = ['system', 'filename', 'file_size', 'remote_rom_id']

        if remote_size is not None:
            values['remote_size'] = remote_size
            update_keys.append('remote_size')
        if remote_last_modified is not None:
            values['remote_last_modified'] = remote_last_modified
            update_keys.append('remote_last_modified')
        if sha1 or crc32:
            values.update(sha1=sha1, crc32=crc32, verified_at=utcnow())
            update_keys += ['sha1', 'crc32', 'verified_at']

        self._upsert_local(values, update_keys)

    def get_recorded_remote_meta(self, system: str, filename: str) -> Optional[RecordedRemoteMeta]:
        """
        Remote size / last-modified last recorded for (system, filename).

        Returns:
            RecordedRemoteMeta, or None when no local record carries any
        """
        with self._transaction() as session:
            row = session.execute(
                select(LocalRom.remote_size, LocalRom.remote_last_modified)
                .where(LocalRom.system == system, LocalRom.filename == filename)
                .where((LocalRom.remote_size.is_not(None)) | (LocalRom.remote_last_modified.is_not(None)))
                .order_by(LocalRom.id.desc())
                .limit(1)
            ).first()

        if row is None:
            return None
        return RecordedRemoteMeta(size=row.remote_size, last_modified=row.remote_last_modified)

    def find_local_rom(self, local_path: Union[str, Path]) -> Optional[LocalRom]:
        with self._transaction() as session:
            return session.scalar(select(LocalRom).where(LocalRom.local_path == str(local_path)))

    def get_local_roms_by_system(self, system: str) -> List[LocalRom]:
        with self._transaction() as session:
            return list(session.scalars(
                select(LocalRom).where(LocalRom.system == system).order_by(LocalRom.local_path)
            ))

    def prune_local_roms(self, prefix: Union[str, Path], keep_paths: Iterable[str]) -> int:
        """
        Delete local rows under prefix whose path is not in keep_paths.

        Rows outside the prefix are never touched. Deletes run in batches of
        DELETE_BATCH_SIZE inside one transaction.

        Returns:
            Number of rows removed
        """
        normalized = str(prefix)
        if not normalized.endswith(('/', '\\')):
            normalized += '/'
        keep = {str(path) for path in keep_paths}

        escaped = normalized.replace('\\', '\\\\').replace('%', '\\%').replace('_', '\\_')

        with self._transaction() as session:
            rows = session.execute(
                select(LocalRom.id, LocalRom.local_path)
                .where(LocalRom.local_path.like(f"{escaped}%", escape='\\'))
            ).all()

            # LIKE is case-insensitive in SQLite; re-check the prefix exactly
            stale_ids = [
                row.id for row in rows
                if row.local_path.startswith(normalized) and row.local_path not in keep
            ]
            for chunk in _chunks(stale_ids, DELETE_BATCH_SIZE):
                session.execute(delete(LocalRom).where(LocalRom.id.in_(chunk)))

        if stale_ids:
            logger.info(f"Pruned {len(stale_ids)} local record(s) under {normalized}")
        return len(stale_ids)

    # Statistics

    def get_catalog_stats(self) -> CatalogStats:
        with self._transaction() as session:
            stats = CatalogStats(
                remote_roms=session.scalar(select(func.count(RemoteRom.id))) or 0,
                local_roms=session.scalar(select(func.count(LocalRom.id))) or 0,
                linked_local_roms=session.scalar(
                    select(func.count(LocalRom.id)).where(LocalRom.remote_rom_id.is_not(None))
                ) or 0,
            )
            for system, count in session.execute(
                select(RemoteRom.system, func.count(RemoteRom.id)).group_by(RemoteRom.system)
            ):
                stats.remote_by_system[system] = count
            for system, count in session.execute(
                select(LocalRom.system, func.count(LocalRom.id)).group_by(LocalRom.system)
            ):
                stats.local_by_system[system] = count
        return stats
