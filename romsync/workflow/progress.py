"""
Progress reporting for download and sync runs.

Provides simple console output driven by workflow events.
"""

import sys
import time
from dataclasses import dataclass, field
from typing import List, Optional, TextIO

from romsync.scanner.hash_calculator import format_file_size
from romsync.workflow.events import (
    CatalogSyncCompleted,
    DownloadBatchCompleteEvent,
    DownloadCompleteEvent,
    DownloadErrorEvent,
    DownloadExtractEvent,
    DownloadFilteredEvent,
    DownloadListingEvent,
    SystemSyncCompleted,
    SystemSyncFailed,
    SystemSyncSkipped,
)


@dataclass
class SystemProgress:
    """Progress tracking for a system."""
    system: str
    label: str
    total: int = 0
    to_download: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    bytes_downloaded: int = 0
    duration_ms: int = 0


@dataclass
class ErrorRecord:
    system: str
    filename: str
    message: str
    retryable: bool


class DownloadProgressReporter:
    """
    Prints per-file and per-system progress for download runs.

    Features:
    - Per-system summary lines
    - Error collection for the final summary
    - Final totals across all systems
    """

    def __init__(self, stream: Optional[TextIO] = None, verbose: bool = False):
        """
        Initialize reporter.

        Args:
            stream: Output stream (default: stdout)
            verbose: Also print one line per completed file
        """
        self.stream = stream or sys.stdout
        self.verbose = verbose
        self.systems: List[SystemProgress] = []
        self.errors: List[ErrorRecord] = []
        self.current: Optional[SystemProgress] = None
        self.start_time = time.time()

    def _print(self, message: str = "") -> None:
        print(message, file=self.stream)

    def handle(self, event) -> None:
        """Update counters and print output for one download event."""
        if isinstance(event, DownloadListingEvent):
            self.current = SystemProgress(system=event.system, label=event.label)
            self._print(f"\n{'='*60}")
            self._print(f"{event.label} [{event.system}]")
            self._print(f"{'='*60}")

        elif isinstance(event, DownloadFilteredEvent):
            if self.current:
                self.current.total = event.total
                self.current.to_download = event.to_download
            self._print(
                f"  Listed: {event.total}  To download: {event.to_download} "
                f"({format_file_size(event.total_bytes)})  Skipped: {event.skipped}"
            )

        elif isinstance(event, DownloadCompleteEvent):
            if self.verbose:
                self._print(f"  ✓ {event.filename} ({format_file_size(event.bytes_downloaded)})")

        elif isinstance(event, DownloadExtractEvent):
            if event.status == 'error':
                self._print(f"  ✗ {event.filename} - extraction failed: {event.error}")

        elif isinstance(event, DownloadErrorEvent):
            self.errors.append(ErrorRecord(event.system, event.filename, event.error, event.retryable))
            name = event.filename or event.system
            self._print(f"  ✗ {name} - {event.error}")

        elif isinstance(event, DownloadBatchCompleteEvent):
            self._finish_system(event)

    def _finish_system(self, event: DownloadBatchCompleteEvent) -> None:
        progress = self.current or SystemProgress(system=event.system, label=event.label)
        progress.succeeded = event.success
        progress.failed = event.failed
        progress.skipped = event.skipped
        progress.bytes_downloaded = event.bytes_downloaded
        progress.duration_ms = event.duration_ms

        seconds = event.duration_ms / 1000
        self._print(f"{'-'*60}")
        self._print(f"  Downloaded: {progress.succeeded}")
        self._print(f"  Failed:     {progress.failed}")
        self._print(f"  Skipped:    {progress.skipped}")
        self._print(f"  Size:       {format_file_size(progress.bytes_downloaded)}")
        self._print(f"  Time:       {seconds:.1f}s")

        self.systems.append(progress)
        self.current = None

    @property
    def failed(self) -> int:
        return sum(s.failed for s in self.systems)

    def has_errors(self) -> bool:
        return len(self.errors) > 0

    def print_final_summary(self) -> None:
        """Print final summary of all systems processed."""
        if not self.systems:
            self._print("No systems processed.")
            return

        elapsed = time.time() - self.start_time
        minutes = int(elapsed // 60)
        seconds = int(elapsed % 60)

        self._print(f"\n{'='*60}")
        self._print("Final Summary")
        self._print(f"{'='*60}")
        self._print(f"Systems processed: {len(self.systems)}")
        self._print(f"  Downloaded:      {sum(s.succeeded for s in self.systems)}")
        self._print(f"  Failed:          {self.failed}")
        self._print(f"  Skipped:         {sum(s.skipped for s in self.systems)}")
        self._print(f"  Transferred:     {format_file_size(sum(s.bytes_downloaded for s in self.systems))}")
        self._print(f"Total time:        {minutes}m {seconds}s")
        if self.errors:
            self._print(f"Errors:            {len(self.errors)}")
        self._print(f"{'='*60}")


class SyncProgressReporter:
    """Prints one line per system for catalog sync runs."""

    def __init__(self, stream: Optional[TextIO] = None):
        self.stream = stream or sys.stdout
        self.failures: List[str] = []

    def handle(self, event) -> None:
        if isinstance(event, SystemSyncCompleted):
            print(
                f"  ✓ {event.system}: {event.rom_count} ROMs "
                f"(+{event.inserted} ~{event.updated} -{event.removed})",
                file=self.stream,
            )
        elif isinstance(event, SystemSyncSkipped):
            print(f"  ○ {event.system}: {event.reason}", file=self.stream)
        elif isinstance(event, SystemSyncFailed):
            self.failures.append(event.system)
            print(f"  ✗ {event.system}: {event.error}", file=self.stream)
        elif isinstance(event, CatalogSyncCompleted):
            print(
                f"Catalog: {event.systems_synced} synced, {event.systems_skipped} unchanged, "
                f"{event.systems_failed} failed, {event.total_roms} ROMs",
                file=self.stream,
            )
