"""Event types emitted by the download and catalog sync workflows.

Events are immutable dataclasses. Consumers dispatch on the event class;
the ``kind`` class attribute carries the same information as a string for
logging and serialization.
"""

from dataclasses import dataclass
from typing import ClassVar, Literal, Optional, Tuple, Union


@dataclass(frozen=True)
class DownloadListingEvent:
    """Emitted when the remote listing of an entry is about to be fetched.

    Attributes:
        system: Catalog system key (e.g. 'GB')
        label: Human readable entry name
        source: Source name ('no-intro', 'redump')
    """
    kind: ClassVar[str] = 'listing'
    system: str
    label: str
    source: str


@dataclass(frozen=True)
class DownloadFilteredEvent:
    """Emitted once filtering and 1G1R decided what to download.

    Attributes:
        system: Catalog system key
        label: Human readable entry name
        total: Number of files in the remote listing
        to_download: Files scheduled for download
        skipped: Files already present and up to date
        total_bytes: Estimated bytes to transfer
    """
    kind: ClassVar[str] = 'filtered'
    system: str
    label: str
    total: int
    to_download: int
    skipped: int
    total_bytes: int


@dataclass(frozen=True)
class DownloadBatchStartEvent:
    """Emitted before the first fetch of an entry starts."""
    kind: ClassVar[str] = 'batch-start'
    system: str
    label: str
    count: int
    total_bytes: int


@dataclass(frozen=True)
class DownloadStartEvent:
    """Emitted when a file was admitted and its fetch begins."""
    kind: ClassVar[str] = 'start'
    id: str
    filename: str
    system: str
    expected_size: Optional[int] = None


@dataclass(frozen=True)
class DownloadProgressEvent:
    """Periodic transfer progress for one file.

    Attributes:
        current: Bytes on disk so far (including a resumed prefix)
        total: Expected total bytes, 0 if unknown
        speed: Bytes per second for the current attempt
        percent: Integer percentage, 0 if total is unknown
    """
    kind: ClassVar[str] = 'progress'
    id: str
    filename: str
    system: str
    current: int
    total: int
    speed: float
    percent: int


@dataclass(frozen=True)
class DownloadCompleteEvent:
    """Emitted when a file was fetched (or confirmed unchanged by the server)."""
    kind: ClassVar[str] = 'complete'
    id: str
    filename: str
    system: str
    bytes_downloaded: int
    local_path: str
    skipped: bool = False


@dataclass(frozen=True)
class DownloadErrorEvent:
    """Emitted when a listing, filter or file fetch fails.

    Attributes:
        id: 'listing-<system>', 'filter-<system>' or '<system>-<filename>'
        filename: Failed file, empty for entry-level errors
        error: Human readable message
        retryable: Whether running again may succeed
    """
    kind: ClassVar[str] = 'error'
    id: str
    filename: str
    system: str
    error: str
    retryable: bool


@dataclass(frozen=True)
class DownloadExtractEvent:
    """Emitted around the extraction of one downloaded archive."""
    kind: ClassVar[str] = 'extract'
    id: str
    filename: str
    system: str
    status: Literal['start', 'complete', 'error']
    error: Optional[str] = None
    extracted_files: Tuple[str, ...] = ()


@dataclass(frozen=True)
class DownloadBatchCompleteEvent:
    """Emitted last for every entry.

    Attributes:
        success: Files fetched successfully
        failed: Files that failed after all retries
        skipped: Files already present and up to date
        bytes_downloaded: Bytes transferred
        duration_ms: Wall time of the fetch and extraction phases
    """
    kind: ClassVar[str] = 'batch-complete'
    system: str
    label: str
    success: int
    failed: int
    skipped: int
    bytes_downloaded: int
    duration_ms: int


DownloadEvent = Union[
    DownloadListingEvent,
    DownloadFilteredEvent,
    DownloadBatchStartEvent,
    DownloadStartEvent,
    DownloadProgressEvent,
    DownloadCompleteEvent,
    DownloadErrorEvent,
    DownloadExtractEvent,
    DownloadBatchCompleteEvent,
]


@dataclass(frozen=True)
class CatalogSyncStarted:
    """Emitted once before any system is synced."""
    kind: ClassVar[str] = 'sync:start'
    systems: Tuple[str, ...]


@dataclass(frozen=True)
class SystemSyncStarted:
    kind: ClassVar[str] = 'system:start'
    system: str
    source: str
    label: str


@dataclass(frozen=True)
class SystemSyncSkipped:
    kind: ClassVar[str] = 'system:skip'
    system: str
    source: str
    reason: str


@dataclass(frozen=True)
class SystemSyncCompleted:
    """Emitted after a listing was committed to the catalog."""
    kind: ClassVar[str] = 'system:complete'
    system: str
    source: str
    inserted: int
    updated: int
    unchanged: int
    removed: int
    rom_count: int
    duration_ms: int


@dataclass(frozen=True)
class SystemSyncFailed:
    kind: ClassVar[str] = 'system:error'
    system: str
    source: str
    error: str


@dataclass(frozen=True)
class CatalogSyncCompleted:
    """Emitted last with totals across all systems."""
    kind: ClassVar[str] = 'sync:complete'
    systems_synced: int
    systems_skipped: int
    systems_failed: int
    total_roms: int
    duration_ms: int


CatalogSyncEvent = Union[
    CatalogSyncStarted,
    SystemSyncStarted,
    SystemSyncSkipped,
    SystemSyncCompleted,
    SystemSyncFailed,
    CatalogSyncCompleted,
]
