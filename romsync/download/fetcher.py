"""
Resumable file downloader.

Streams to a ``.part`` file next to the destination, resumes interrupted
transfers with HTTP Range requests and renames into place atomically.
"""

import asyncio
import logging
import os
import re
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional

import httpx

from romsync.remote.error_handler import (
    MAX_BACKOFF_DELAY,
    RemoteError,
    SkippableRemoteError,
    handle_http_status,
)
from romsync.remote.listing import DEFAULT_USER_AGENT

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024
PART_SUFFIX = '.part'

_CONTENT_RANGE = re.compile(r'bytes \d+-\d+/(\d+)')

# (current bytes, total bytes or 0, bytes per second)
ProgressCallback = Callable[[int, int, float], None]


class FetchError(Exception):
    """Transfer completed but the result is unusable (empty, truncated)."""
    pass


class _RestartTransfer(Exception):
    """The partial file was discarded; start over without waiting."""
    pass


@dataclass
class FetchResult:
    """Outcome of one file download."""
    success: bool
    skipped: bool = False
    bytes_downloaded: int = 0
    error: Optional[str] = None


def part_path_for(dest_path: Path) -> Path:
    """Temporary path used while a download is in progress."""
    return dest_path.with_name(dest_path.name + PART_SUFFIX)


def _partial_size(part_path: Path) -> int:
    try:
        return part_path.stat().st_size
    except OSError:
        return 0


def _remove(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.debug(f"Could not remove {path}: {e}")


def find_extracted_siblings(
    dest_dir: Path,
    base_name: str,
    exclude: Optional[str] = None
) -> List[Path]:
    """
    Files in dest_dir whose name minus its last extension equals base_name.

    ``Game.zip`` extracted to ``Game.nes`` leaves ``Game.nes`` as a sibling.

    Args:
        dest_dir: Directory to look in
        base_name: Filename without extension
        exclude: Exact filename to ignore (usually the archive itself)
    """
    try:
        names = os.listdir(dest_dir)
    except OSError:
        return []

    siblings = []
    for name in sorted(names):
        if name == exclude or '.' not in name:
            continue
        if name.rsplit('.', 1)[0] == base_name and (Path(dest_dir) / name).is_file():
            siblings.append(Path(dest_dir) / name)
    return siblings


def any_extension_exists(dest_dir: Path, base_name: str) -> bool:
    """True if any file named ``<base_name>.<ext>`` exists in dest_dir."""
    return bool(find_extracted_siblings(dest_dir, base_name))


class FileDownloader:
    """
    Downloads single files with retry and Range resume.

    Features:
    - Streams to ``<dest>.part``; an existing partial file is a resume point
    - 206 responses append, 200 responses restart from zero
    - 404 is final, other failures retry with exponential backoff
      (doubling from retry_delay, capped at 30 s)
    - Size verification against Content-Range / Content-Length / listing size
    - Atomic rename into place, never a half-written file under the final name
    - Throttled progress callbacks

    Example:
        downloader = FileDownloader(client, retries=3, retry_delay=2.0)
        result = await downloader.download(url, Path('GB/Tetris (World).zip'))
        if not result.success:
            logger.error(result.error)
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        retries: int = 3,
        retry_delay: float = 2.0,
        user_agent: Optional[str] = None,
        progress_interval: float = 0.25
    ):
        """
        Initialize downloader.

        Args:
            client: Shared httpx.AsyncClient
            retries: Total attempts per file (at least 1)
            retry_delay: Delay before the second attempt, in seconds
            user_agent: User-Agent header (DEFAULT_USER_AGENT if None)
            progress_interval: Minimum seconds between progress callbacks
        """
        self.client = client
        self.retries = max(1, retries)
        self.retry_delay = retry_delay
        self.user_agent = user_agent or DEFAULT_USER_AGENT
        self.progress_interval = progress_interval

    async def download(
        self,
        url: str,
        dest_path: Path,
        expected_size: Optional[int] = None,
        on_progress: Optional[ProgressCallback] = None
    ) -> FetchResult:
        """
        Download url to dest_path.

        Args:
            url: File URL
            dest_path: Final destination
            expected_size: Size from the listing, if known
            on_progress: Called with (current, total, speed)

        Returns:
            FetchResult; failures are reported, never raised
        """
        dest_path = Path(dest_path)
        part_path = part_path_for(dest_path)
        dest_path.parent.mkdir(parents=True, exist_ok=True)

        delay = self.retry_delay
        last_error = None

        for attempt in range(1, self.retries + 1):
            try:
                return await self._attempt(url, dest_path, part_path, expected_size, on_progress)
            except _RestartTransfer as e:
                last_error = str(e)
                continue
            except SkippableRemoteError as e:
                if e.status_code == 404:
                    _remove(part_path)
                return FetchResult(success=False, error=str(e))
            except (RemoteError, FetchError, httpx.HTTPError, OSError) as e:
                # Keep the partial file: the next attempt resumes from it
                last_error = str(e) or e.__class__.__name__

            if attempt < self.retries:
                logger.debug(
                    f"Download of {dest_path.name} failed ({last_error}), "
                    f"retrying in {delay:.1f}s (attempt {attempt}/{self.retries})"
                )
                await asyncio.sleep(min(delay, MAX_BACKOFF_DELAY))
                delay *= 2

        logger.warning(f"Download of {dest_path.name} failed after {self.retries} attempts: {last_error}")
        return FetchResult(success=False, error=last_error or "Max retries exceeded")

    async def _attempt(
        self,
        url: str,
        dest_path: Path,
        part_path: Path,
        expected_size: Optional[int],
        on_progress: Optional[ProgressCallback]
    ) -> FetchResult:
        existing_size = _partial_size(part_path)
        headers = {'User-Agent': self.user_agent}
        if existing_size > 0:
            headers['Range'] = f"bytes={existing_size}-"

        async with self.client.stream('GET', url, headers=headers) as response:
            status = response.status_code

            if status == 304:
                return FetchResult(success=True, skipped=True)

            if status == 416:
                if expected_size and existing_size >= expected_size:
                    os.replace(part_path, dest_path)
                    return FetchResult(success=True)
                _remove(part_path)
                raise _RestartTransfer(f"Range not satisfiable for {dest_path.name}")

            handle_http_status(status, context=dest_path.name)

            resume = status == 206
            total_size = expected_size
            if resume:
                match = _CONTENT_RANGE.search(response.headers.get('Content-Range', ''))
                if match:
                    total_size = int(match.group(1))
            else:
                content_length = response.headers.get('Content-Length')
                if content_length and content_length.isdigit():
                    total_size = int(content_length)
                existing_size = 0

            written = await self._stream_to_file(
                response, part_path, resume, existing_size, total_size, on_progress
            )

        final_size = _partial_size(part_path)
        if final_size == 0:
            _remove(part_path)
            raise FetchError("Downloaded file is empty")

        if total_size is not None and final_size != total_size:
            raise FetchError(f"Size mismatch: expected {total_size}, got {final_size}")

        os.replace(part_path, dest_path)
        return FetchResult(success=True, bytes_downloaded=written)

    async def _stream_to_file(
        self,
        response: httpx.Response,
        part_path: Path,
        resume: bool,
        existing_size: int,
        total_size: Optional[int],
        on_progress: Optional[ProgressCallback]
    ) -> int:
        started = time.monotonic()
        last_report = 0.0
        written = 0

        with open(part_path, 'ab' if resume else 'wb') as f:
            async for chunk in response.aiter_bytes(CHUNK_SIZE):
                f.write(chunk)
                written += len(chunk)

                if on_progress:
                    now = time.monotonic()
                    if now - last_report >= self.progress_interval:
                        last_report = now
                        elapsed = now - started
                        speed = written / elapsed if elapsed > 0 else 0.0
                        on_progress(existing_size + written, total_size or 0, speed)

        if on_progress:
            elapsed = time.monotonic() - started
            speed = written / elapsed if elapsed > 0 else 0.0
            on_progress(existing_size + written, total_size or 0, speed)

        return written
