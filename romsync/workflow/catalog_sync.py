"""
Remote catalog sync.

Refreshes the catalog's remote tables from the listings of each entry.
One system failing is reported and never aborts the others.
"""

import logging
import time
from typing import AsyncIterator, Iterable, Optional

import httpx

from romsync.catalog.store import CatalogError, CatalogStore
from romsync.remote.error_handler import RemoteError, retry_with_backoff
from romsync.remote.listing import fetch_listing
from romsync.remote.sources import RomEntry
from romsync.workflow.events import (
    CatalogSyncCompleted,
    CatalogSyncEvent,
    CatalogSyncStarted,
    SystemSyncCompleted,
    SystemSyncFailed,
    SystemSyncSkipped,
    SystemSyncStarted,
)

logger = logging.getLogger(__name__)


class CatalogSync:
    """
    Syncs remote listings into the catalog store.

    Systems whose directory last-modified matches the recorded fingerprint
    and whose status is 'synced' are skipped unless forced.
    """

    def __init__(
        self,
        store: CatalogStore,
        client: httpx.AsyncClient,
        user_agent: Optional[str] = None,
        retries: int = 3,
        retry_delay: float = 2.0
    ):
        self.store = store
        self.client = client
        self.user_agent = user_agent
        self.retries = max(1, retries)
        self.retry_delay = retry_delay

    async def sync(self, entries: Iterable[RomEntry], force: bool = False) -> AsyncIterator[CatalogSyncEvent]:
        """
        Sync every entry in order.

        Args:
            entries: Catalog entries to refresh
            force: Ignore fingerprints and refresh everything

        Yields:
            Catalog sync events, CatalogSyncCompleted last
        """
        entries = list(entries)
        started = time.monotonic()
        synced = skipped = failed = total_roms = 0

        yield CatalogSyncStarted(systems=tuple(entry.key for entry in entries))

        for entry in entries:
            yield SystemSyncStarted(system=entry.key, source=entry.source, label=entry.label)
            system_started = time.monotonic()

            try:
                previous = self.store.get_sync_state(entry.key, entry.source)
                self.store.mark_sync_status(entry.key, entry.source, 'syncing')

                listing = await retry_with_backoff(
                    lambda: fetch_listing(self.client, entry, self.user_agent),
                    max_attempts=self.retries,
                    initial_delay=self.retry_delay,
                    context=f"listing {entry.key}",
                )
                fingerprint = listing.directory_last_modified

                if (not force and previous is not None and previous.status == 'synced'
                        and fingerprint and previous.remote_last_modified == fingerprint):
                    self.store.mark_sync_status(entry.key, entry.source, 'synced')
                    skipped += 1
                    total_roms += previous.remote_count or 0
                    yield SystemSyncSkipped(entry.key, entry.source, 'unchanged')
                    continue

                if not listing.entries:
                    # An empty listing is more likely an upstream glitch than a wipe
                    self.store.mark_sync_status(entry.key, entry.source, 'synced')
                    skipped += 1
                    yield SystemSyncSkipped(entry.key, entry.source, 'empty listing')
                    continue

                stats = self.store.upsert_remote_listing(
                    entry.key, entry.source, listing.entries, fingerprint
                )
            except (RemoteError, httpx.HTTPError, CatalogError) as e:
                message = str(e) or e.__class__.__name__
                logger.warning(f"{entry.key}: catalog sync failed: {message}")
                failed += 1
                try:
                    self.store.mark_sync_status(entry.key, entry.source, 'error', error=message)
                except CatalogError as mark_error:
                    logger.error(f"{entry.key}: could not record sync error: {mark_error}")
                yield SystemSyncFailed(entry.key, entry.source, message)
                continue

            synced += 1
            rom_count = len(listing.entries)
            total_roms += rom_count
            logger.info(
                f"{entry.key}: {stats.inserted} new, {stats.updated} updated, "
                f"{stats.removed} removed ({rom_count} total)"
            )
            yield SystemSyncCompleted(
                system=entry.key,
                source=entry.source,
                inserted=stats.inserted,
                updated=stats.updated,
                unchanged=stats.unchanged,
                removed=stats.removed,
                rom_count=rom_count,
                duration_ms=int((time.monotonic() - system_started) * 1000),
            )

        yield CatalogSyncCompleted(
            systems_synced=synced,
            systems_skipped=skipped,
            systems_failed=failed,
            total_roms=total_roms,
            duration_ms=int((time.monotonic() - started) * 1000),
        )
