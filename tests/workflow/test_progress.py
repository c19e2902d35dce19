import io

import pytest

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
from romsync.workflow.progress import DownloadProgressReporter, SyncProgressReporter


def _run_batch(reporter, failed=0):
    reporter.handle(DownloadListingEvent("GB", "Game Boy", "no-intro"))
    reporter.handle(DownloadFilteredEvent("GB", "Game Boy", 10, 4, 3, 4096))
    reporter.handle(DownloadCompleteEvent("GB-Golf (USA).zip", "Golf (USA).zip", "GB", 2048, "/x"))
    if failed:
        reporter.handle(DownloadErrorEvent("GB-Hotel (Japan).zip", "Hotel (Japan).zip", "GB", "HTTP 404", True))
    reporter.handle(DownloadBatchCompleteEvent("GB", "Game Boy", 4 - failed, failed, 3, 8192, 1500))


@pytest.mark.unit
def test_download_reporter_summarizes_systems():
    stream = io.StringIO()
    reporter = DownloadProgressReporter(stream=stream)

    _run_batch(reporter)
    reporter.print_final_summary()

    output = stream.getvalue()
    assert "Game Boy [GB]" in output
    assert "To download: 4 (4.0 KB)" in output
    assert "Downloaded: 4" in output
    assert "Systems processed: 1" in output
    # Per-file lines only in verbose mode
    assert "Golf (USA).zip" not in output
    assert not reporter.has_errors()
    assert reporter.failed == 0


@pytest.mark.unit
def test_download_reporter_collects_errors():
    stream = io.StringIO()
    reporter = DownloadProgressReporter(stream=stream, verbose=True)

    _run_batch(reporter, failed=1)
    reporter.handle(DownloadExtractEvent("GB-Golf (USA).zip", "Golf (USA).zip", "GB", "error", error="bad zip"))
    reporter.print_final_summary()

    output = stream.getvalue()
    assert "✓ Golf (USA).zip" in output
    assert "✗ Hotel (Japan).zip - HTTP 404" in output
    assert "extraction failed: bad zip" in output
    assert reporter.has_errors()
    assert reporter.failed == 1
    assert reporter.errors[0].retryable is True


@pytest.mark.unit
def test_entry_level_error_uses_system_name():
    stream = io.StringIO()
    reporter = DownloadProgressReporter(stream=stream)

    reporter.handle(DownloadErrorEvent("listing-GB", "", "GB", "HTTP 503", True))

    assert "✗ GB - HTTP 503" in stream.getvalue()


@pytest.mark.unit
def test_empty_run_summary():
    stream = io.StringIO()
    DownloadProgressReporter(stream=stream).print_final_summary()
    assert "No systems processed." in stream.getvalue()


@pytest.mark.unit
def test_sync_reporter_lines():
    stream = io.StringIO()
    reporter = SyncProgressReporter(stream=stream)

    reporter.handle(SystemSyncCompleted("GB", "no-intro", 2, 1, 5, 1, 8, 10))
    reporter.handle(SystemSyncSkipped("GBA", "no-intro", "unchanged"))
    reporter.handle(SystemSyncFailed("PS", "redump", "HTTP 503"))
    reporter.handle(CatalogSyncCompleted(1, 1, 1, 8, 100))

    lines = stream.getvalue().splitlines()
    assert lines[0] == "  ✓ GB: 8 ROMs (+2 ~1 -1)"
    assert lines[1] == "  ○ GBA: unchanged"
    assert lines[2] == "  ✗ PS: HTTP 503"
    assert lines[3] == "Catalog: 1 synced, 1 unchanged, 1 failed, 8 ROMs"
    assert reporter.failures == ["PS"]
