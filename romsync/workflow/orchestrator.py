"""
Download orchestrator.

Per catalog entry: fetch listing -> filter -> 1G1R -> diff against local
files and recorded catalog metadata -> fetch the delta under admission
control -> extract -> persist. Progress surfaces as an async stream of
events from romsync.workflow.events.
"""

import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass, field
from pathlib import Path
from typing import AsyncIterator, Awaitable, Deque, Iterable, List, Optional
from urllib.parse import quote

import httpx

from romsync.catalog.store import CatalogStore
from romsync.config.options import DownloaderOptions
from romsync.download.backpressure import (
    FALLBACK_ESTIMATE_BYTES,
    BackpressureController,
    resolve_backpressure,
)
from romsync.download.extract import ExtractResult, extract_zip, is_zip_archive
from romsync.download.fetcher import FileDownloader, find_extracted_siblings
from romsync.naming.filters import FilterError, apply_filters
from romsync.naming.selector import select_one_per_title
from romsync.remote.error_handler import RemoteError, retry_with_backoff
from romsync.remote.listing import ListingEntry, fetch_listing, normalize_last_modified
from romsync.remote.sources import RomEntry
from romsync.workflow.events import (
    DownloadBatchCompleteEvent,
    DownloadBatchStartEvent,
    DownloadCompleteEvent,
    DownloadErrorEvent,
    DownloadEvent,
    DownloadExtractEvent,
    DownloadFilteredEvent,
    DownloadListingEvent,
    DownloadProgressEvent,
    DownloadStartEvent,
)

logger = logging.getLogger(__name__)

# Extraction runs under its own, smaller cap
MAX_EXTRACT_CONCURRENCY = 8

# Characters left unescaped in file URLs
URL_SAFE_CHARS = "!'()*"

_DONE = object()


@dataclass
class PlannedFetch:
    """A file selected for download."""
    listing: ListingEntry
    estimated_bytes: int
    expected_size: Optional[int] = None
    bytes_downloaded: int = 0
    extracted_paths: List[Path] = field(default_factory=list)

    @property
    def filename(self) -> str:
        return self.listing.filename


@dataclass
class SkippedFile:
    """A file already present locally whose catalog metadata is refreshed."""
    listing: ListingEntry
    paths: List[Path]


@dataclass
class EntryPlan:
    """Download decisions for one entry."""
    to_fetch: List[PlannedFetch] = field(default_factory=list)
    skipped: List[SkippedFile] = field(default_factory=list)
    skipped_count: int = 0

    @property
    def total_bytes(self) -> int:
        return sum(item.estimated_bytes for item in self.to_fetch)


@dataclass
class _BatchResults:
    succeeded: List[PlannedFetch] = field(default_factory=list)
    failed: List[PlannedFetch] = field(default_factory=list)
    bytes_downloaded: int = 0


class DownloadOrchestrator:
    """
    Drives downloads for a sequence of catalog entries.

    Features:
    - Entries run one after another; files within an entry run concurrently
      in a worker pool bounded by the admission scheduler
    - Events surface in completion order through an asyncio.Queue
    - Entry-scoped failures become DownloadErrorEvent values and never
      stop the other entries
    - cancel() stops new fetches; in-flight fetches finish and their results
      are persisted before the stream ends

    Example:
        orchestrator = DownloadOrchestrator(client, options, store)
        async for event in orchestrator.run(entries):
            reporter.handle(event)
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        options: DownloaderOptions,
        store: Optional[CatalogStore] = None,
        downloader: Optional[FileDownloader] = None
    ):
        """
        Initialize orchestrator.

        Args:
            client: Shared HTTP client for listings and files
            options: Download options
            store: Catalog store for recorded metadata (optional)
            downloader: File downloader (built from options if None)
        """
        self.client = client
        self.options = options
        self.store = store
        self.downloader = downloader or FileDownloader(
            client,
            retries=options.retry_count,
            retry_delay=options.retry_delay,
            user_agent=options.user_agent,
            progress_interval=options.progress_interval,
        )
        self._cancelled = False

    def cancel(self) -> None:
        """Request cooperative early termination."""
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    async def run(self, entries: Iterable[RomEntry]) -> AsyncIterator[DownloadEvent]:
        """
        Download every entry in order.

        Args:
            entries: Catalog entries to process

        Yields:
            Download events
        """
        self.options.roms_dir.mkdir(parents=True, exist_ok=True)

        for entry in entries:
            if self._cancelled:
                break
            async for event in self.run_entry(entry):
                yield event

    async def run_entry(self, entry: RomEntry) -> AsyncIterator[DownloadEvent]:
        """Run the full pipeline for one entry."""
        options = self.options
        dest_dir = options.roms_dir / entry.dest_dir
        dest_dir.mkdir(parents=True, exist_ok=True)

        yield DownloadListingEvent(system=entry.key, label=entry.label, source=entry.source)

        if options.dry_run:
            yield DownloadFilteredEvent(entry.key, entry.label, 0, 0, 0, 0)
            yield DownloadBatchCompleteEvent(entry.key, entry.label, 0, 0, 0, 0, 0)
            return

        try:
            listing = await retry_with_backoff(
                lambda: fetch_listing(self.client, entry, options.user_agent),
                max_attempts=options.retry_count,
                initial_delay=options.retry_delay,
                context=f"listing {entry.key}",
            )
        except RemoteError as e:
            logger.warning(f"{entry.key}: listing failed: {e}")
            yield DownloadErrorEvent(
                id=f"listing-{entry.key}",
                filename='',
                system=entry.key,
                error=str(e),
                retryable=e.status_code is None or e.status_code >= 500,
            )
            return
        except httpx.HTTPError as e:
            logger.warning(f"{entry.key}: listing failed: {e}")
            yield DownloadErrorEvent(
                id=f"listing-{entry.key}",
                filename='',
                system=entry.key,
                error=f"Failed to fetch listing: {e}",
                retryable=True,
            )
            return

        effective_update = options.update
        if effective_update and self._directory_unchanged(entry, listing.directory_last_modified):
            logger.info(f"{entry.key}: remote directory unchanged, skipping update checks")
            effective_update = False

        try:
            names = apply_filters([item.filename for item in listing.entries], options.filters)
        except FilterError as e:
            yield DownloadErrorEvent(
                id=f"filter-{entry.key}",
                filename='',
                system=entry.key,
                error=f"Invalid filter: {e}",
                retryable=False,
            )
            return

        if options.enable_1g1r:
            names = select_one_per_title(names, options.priority)

        by_name = {item.filename: item for item in listing.entries}
        plan = self.plan_entry(entry, dest_dir, [by_name[name] for name in names], effective_update)

        yield DownloadFilteredEvent(
            system=entry.key,
            label=entry.label,
            total=len(listing.entries),
            to_download=len(plan.to_fetch),
            skipped=plan.skipped_count,
            total_bytes=plan.total_bytes,
        )

        if not plan.to_fetch:
            self._persist(entry, plan, [])
            yield DownloadBatchCompleteEvent(
                entry.key, entry.label, 0, 0, plan.skipped_count, 0, 0
            )
            return

        yield DownloadBatchStartEvent(
            system=entry.key,
            label=entry.label,
            count=len(plan.to_fetch),
            total_bytes=plan.total_bytes,
        )

        started = time.monotonic()
        results = _BatchResults()
        queue: asyncio.Queue = asyncio.Queue()

        limits = resolve_backpressure(options.disk_profile, options.jobs)
        controller = BackpressureController(limits.max_bytes_in_flight, limits.max_concurrent)
        pending: Deque[PlannedFetch] = deque(plan.to_fetch)

        async def fetch_worker() -> None:
            while pending and not self._cancelled:
                item = pending.popleft()
                await self._fetch_one(entry, dest_dir, item, controller, queue, results)

        workers = [fetch_worker() for _ in range(min(limits.max_concurrent, len(plan.to_fetch)))]
        async for event in self._stream(workers, queue):
            yield event

        if self._cancelled:
            logger.info(f"{entry.key}: cancelled, persisting {len(results.succeeded)} finished download(s)")
            self._persist(entry, plan, results.succeeded)
            return

        if options.extract and entry.extract and results.succeeded:
            semaphore = asyncio.Semaphore(min(MAX_EXTRACT_CONCURRENCY, max(1, options.jobs)))
            extractions = [
                self._extract_one(entry, dest_dir, item, semaphore, queue)
                for item in results.succeeded
            ]
            async for event in self._stream(extractions, queue):
                yield event

        self._persist(entry, plan, results.succeeded)

        yield DownloadBatchCompleteEvent(
            system=entry.key,
            label=entry.label,
            success=len(results.succeeded),
            failed=len(results.failed),
            skipped=plan.skipped_count,
            bytes_downloaded=results.bytes_downloaded,
            duration_ms=int((time.monotonic() - started) * 1000),
        )

    def _directory_unchanged(self, entry: RomEntry, directory_last_modified: Optional[str]) -> bool:
        if self.store is None or not directory_last_modified:
            return False
        state = self.store.get_sync_state(entry.key, entry.source)
        return bool(state and state.remote_last_modified == directory_last_modified)

    def plan_entry(
        self,
        entry: RomEntry,
        dest_dir: Path,
        candidates: List[ListingEntry],
        update: bool
    ) -> EntryPlan:
        """
        Decide which candidates to download.

        A file is downloaded when neither the archive nor an extracted
        sibling exists. When one exists and update is set, it is downloaded
        again only if the remote size differs from the local archive, or
        from the recorded remote size when only extracted files remain, or
        the normalized remote and recorded last-modified differ.
        """
        plan = EntryPlan()

        for item in candidates:
            filename = item.filename
            base_name = filename.rsplit('.', 1)[0] if '.' in filename else filename
            archive_path = dest_dir / filename
            has_archive = archive_path.is_file()
            siblings = find_extracted_siblings(dest_dir, base_name, exclude=filename)

            should_download = not has_archive and not siblings

            if not should_download and update:
                local_size = archive_path.stat().st_size if has_archive else 0
                recorded = (
                    self.store.get_recorded_remote_meta(entry.key, filename)
                    if self.store is not None else None
                )
                recorded_size = recorded.size if recorded else None

                size_changed = (
                    (item.size > 0 and local_size > 0 and item.size != local_size)
                    or (item.size > 0 and not has_archive and bool(recorded_size)
                        and item.size != recorded_size)
                )

                remote_lm = normalize_last_modified(item.last_modified)
                local_lm = normalize_last_modified(recorded.last_modified if recorded else None)
                lm_changed = bool(remote_lm and local_lm and remote_lm != local_lm)

                should_download = size_changed or lm_changed

            if should_download:
                expected = item.size if item.size > 0 else None
                plan.to_fetch.append(PlannedFetch(
                    listing=item,
                    estimated_bytes=expected or FALLBACK_ESTIMATE_BYTES,
                    expected_size=expected,
                ))
                continue

            plan.skipped_count += 1
            if item.size > 0 or item.last_modified:
                paths = [archive_path] if has_archive else siblings
                plan.skipped.append(SkippedFile(listing=item, paths=paths))

        return plan

    async def _stream(self, coroutines: List[Awaitable[None]], queue: asyncio.Queue) -> AsyncIterator[DownloadEvent]:
        """
        Run coroutines concurrently and yield queued events as they arrive.

        The stream ends once every coroutine finished and the queue is
        drained. If the consumer stops early, running work is awaited.
        """
        async def supervise() -> None:
            try:
                await asyncio.gather(*coroutines)
            finally:
                queue.put_nowait(_DONE)

        supervisor = asyncio.create_task(supervise())
        try:
            while True:
                event = await queue.get()
                if event is _DONE:
                    break
                yield event
                if self._cancelled:
                    # Stop consuming; in-flight work still runs to completion
                    break
        finally:
            await supervisor
            self._discard_queued(queue)

    @staticmethod
    def _discard_queued(queue: asyncio.Queue) -> None:
        while not queue.empty():
            queue.get_nowait()

    async def _fetch_one(
        self,
        entry: RomEntry,
        dest_dir: Path,
        item: PlannedFetch,
        controller: BackpressureController,
        queue: asyncio.Queue,
        results: _BatchResults
    ) -> None:
        filename = item.filename
        download_id = f"{entry.key}-{filename}"
        dest_path = dest_dir / filename
        url = f"{entry.base_url}/{entry.remote_path}{quote(filename, safe=URL_SAFE_CHARS)}"

        await controller.acquire(item.estimated_bytes)
        try:
            queue.put_nowait(DownloadStartEvent(
                id=download_id,
                filename=filename,
                system=entry.key,
                expected_size=item.expected_size,
            ))

            def on_progress(current: int, total: int, speed: float) -> None:
                queue.put_nowait(DownloadProgressEvent(
                    id=download_id,
                    filename=filename,
                    system=entry.key,
                    current=current,
                    total=total,
                    speed=speed,
                    percent=round(current / total * 100) if total > 0 else 0,
                ))

            result = await self.downloader.download(url, dest_path, item.expected_size, on_progress)

            if result.success:
                item.bytes_downloaded = result.bytes_downloaded
                results.succeeded.append(item)
                results.bytes_downloaded += result.bytes_downloaded
                queue.put_nowait(DownloadCompleteEvent(
                    id=download_id,
                    filename=filename,
                    system=entry.key,
                    bytes_downloaded=result.bytes_downloaded,
                    local_path=str(dest_path),
                    skipped=result.skipped,
                ))
            else:
                results.failed.append(item)
                queue.put_nowait(DownloadErrorEvent(
                    id=download_id,
                    filename=filename,
                    system=entry.key,
                    error=result.error or "Unknown error",
                    retryable=True,
                ))
        finally:
            controller.release(item.estimated_bytes, item.bytes_downloaded)

    async def _extract_one(
        self,
        entry: RomEntry,
        dest_dir: Path,
        item: PlannedFetch,
        semaphore: asyncio.Semaphore,
        queue: asyncio.Queue
    ) -> None:
        filename = item.filename
        archive_path = dest_dir / filename
        if not is_zip_archive(filename) or not archive_path.is_file():
            return

        download_id = f"{entry.key}-{filename}"
        async with semaphore:
            queue.put_nowait(DownloadExtractEvent(download_id, filename, entry.key, 'start'))

            try:
                result = await asyncio.to_thread(
                    extract_zip, archive_path, dest_dir, entry.extract_glob, True, True
                )
            except Exception as e:
                logger.error(f"{entry.key}: extraction of {filename} crashed: {e}", exc_info=True)
                result = ExtractResult(success=False, error=str(e) or type(e).__name__)

            if result.success:
                item.extracted_paths = [dest_dir / name for name in result.extracted_files]
                queue.put_nowait(DownloadExtractEvent(
                    download_id, filename, entry.key, 'complete',
                    extracted_files=tuple(result.extracted_files),
                ))
            else:
                queue.put_nowait(DownloadExtractEvent(
                    download_id, filename, entry.key, 'error', error=result.error,
                ))

    def _persist(self, entry: RomEntry, plan: EntryPlan, downloaded: List[PlannedFetch]) -> None:
        """Record downloaded files and refresh metadata of skipped ones."""
        if self.store is None:
            return

        for item in downloaded:
            remote_size = item.listing.size or None
            paths = item.extracted_paths or [self.options.roms_dir / entry.dest_dir / item.filename]
            for path in paths:
                if not path.is_file():
                    continue
                self.store.record_download(
                    path,
                    system=entry.key,
                    filename=item.filename,
                    file_size=path.stat().st_size,
                    remote_size=remote_size,
                    remote_last_modified=item.listing.last_modified,
                )

        for skipped in plan.skipped:
            for path in skipped.paths:
                self.store.record_local_file(
                    path,
                    system=entry.key,
                    filename=skipped.listing.filename,
                    file_size=path.stat().st_size,
                    remote_size=skipped.listing.size or None,
                    remote_last_modified=skipped.listing.last_modified,
                )

        logger.debug(
            f"{entry.key}: recorded {len(downloaded)} download(s), "
            f"refreshed {len(plan.skipped)} skipped file(s)"
        )
