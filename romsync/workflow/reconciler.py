"""
Sync reconciler.

Runs the remote catalog sync and the local scan concurrently, then merges
the scan into the catalog in one sequential pass so the two phases never
write to the store at the same time.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Tuple

import httpx

from romsync.catalog.store import CatalogError, CatalogStore
from romsync.remote.sources import ROM_ENTRIES, RomEntry, get_entries_by_keys
from romsync.scanner.collection import (
    CollectionManifest,
    catalog_system_keys,
    infer_catalog_filename,
    scan_collection,
)
from romsync.workflow.catalog_sync import CatalogSync
from romsync.workflow.events import CatalogSyncCompleted, CatalogSyncEvent, SystemSyncFailed

logger = logging.getLogger(__name__)

EventCallback = Callable[[CatalogSyncEvent], None]


class ReconcileError(Exception):
    """The sequential reconciliation pass failed."""
    pass


@dataclass
class RemoteSyncSummary:
    """Outcome of the remote phase."""
    completed: Optional[CatalogSyncCompleted] = None
    failures: List[SystemSyncFailed] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.completed is not None and not self.failures


@dataclass
class LocalReconcileStats:
    """Outcome of the reconciliation pass."""
    recorded: int = 0
    linked: int = 0
    pruned: int = 0


@dataclass
class SyncReport:
    ok: bool
    scan: CollectionManifest
    remote: RemoteSyncSummary
    local: LocalReconcileStats
    elapsed_ms: int


class SyncReconciler:
    """
    Refreshes the remote catalog and the local file records in one run.

    Example:
        reconciler = SyncReconciler(store, client, roms_dir)
        report = await reconciler.run(['GB', 'GBA'])
    """

    def __init__(
        self,
        store: CatalogStore,
        client: httpx.AsyncClient,
        roms_dir: Path,
        user_agent: Optional[str] = None,
        include_hashes: bool = False,
        on_event: Optional[EventCallback] = None,
        retries: int = 3,
        retry_delay: float = 2.0
    ):
        self.store = store
        self.roms_dir = Path(roms_dir)
        self.include_hashes = include_hashes
        self.on_event = on_event
        self.catalog_sync = CatalogSync(store, client, user_agent, retries, retry_delay)

    async def run(self, systems: Optional[Iterable[str]] = None, force: bool = False) -> SyncReport:
        """
        Sync remote listings and local files.

        Args:
            systems: Catalog system keys (all entries if None)
            force: Refresh listings even when unchanged

        Returns:
            SyncReport; ok is False when any remote system failed

        Raises:
            ScannerError: If the ROM root is not a directory
            ReconcileError: If writing the scan to the catalog failed
        """
        started = time.monotonic()
        systems = list(systems) if systems else None
        entries = get_entries_by_keys(systems) if systems else list(ROM_ENTRIES)

        scan_result, remote_result = await asyncio.gather(
            asyncio.to_thread(scan_collection, self.roms_dir, systems, self.include_hashes),
            self._sync_remote(entries, force),
            return_exceptions=True,
        )
        # Both phases have finished here; re-raise in a fixed order
        if isinstance(scan_result, BaseException):
            raise scan_result
        if isinstance(remote_result, BaseException):
            raise remote_result

        local = self._reconcile(scan_result, restrict=systems is not None)

        report = SyncReport(
            ok=remote_result.ok,
            scan=scan_result,
            remote=remote_result,
            local=local,
            elapsed_ms=int((time.monotonic() - started) * 1000),
        )
        logger.info(
            f"Sync finished in {report.elapsed_ms} ms: {local.recorded} local file(s) recorded, "
            f"{local.linked} linked, {local.pruned} pruned"
        )
        return report

    async def _sync_remote(self, entries: List[RomEntry], force: bool) -> RemoteSyncSummary:
        summary = RemoteSyncSummary()
        async for event in self.catalog_sync.sync(entries, force):
            if isinstance(event, SystemSyncFailed):
                summary.failures.append(event)
            elif isinstance(event, CatalogSyncCompleted):
                summary.completed = event
            if self.on_event is not None:
                self.on_event(event)
        return summary

    def _reconcile(self, manifest: CollectionManifest, restrict: bool) -> LocalReconcileStats:
        """Upsert scanned files and prune rows for files no longer present."""
        stats = LocalReconcileStats()
        keep = set()

        try:
            for collection in manifest.systems:
                for rom in collection.roms:
                    filename = infer_catalog_filename(rom.filename)
                    system, remote_rom_id = self._link(collection.system, rom.filename, filename)

                    self.store.record_local_file(
                        rom.path,
                        system=system,
                        filename=filename,
                        file_size=rom.size,
                        remote_rom_id=remote_rom_id,
                        sha1=rom.sha1,
                        crc32=rom.crc32,
                    )
                    keep.add(str(rom.path))
                    stats.recorded += 1
                    if remote_rom_id is not None:
                        stats.linked += 1

            if restrict:
                # Only prune under the directories that were scanned
                for collection in manifest.systems:
                    stats.pruned += self.store.prune_local_roms(self.roms_dir / collection.system, keep)
            else:
                stats.pruned = self.store.prune_local_roms(self.roms_dir, keep)
        except CatalogError as e:
            raise ReconcileError(f"Failed to reconcile local files: {e}") from e

        return stats

    def _link(self, system_dir: str, local_name: str, filename: str) -> Tuple[str, Optional[int]]:
        """First candidate system with a matching remote row, else the most likely one."""
        candidates = catalog_system_keys(system_dir, local_name)
        for system in candidates:
            remote_rom_id = self.store.find_remote_rom_id(system, filename)
            if remote_rom_id is not None:
                return system, remote_rom_id
        return candidates[0], None
