"""
Remote directory listing fetch and parsing.

Handles the HTML table listings served by Myrient-style file indexes, with
fallbacks for pipe-table renderings and loose one-link-per-line pages.
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import List, Optional, Pattern
from urllib.parse import unquote

import httpx

from romsync import __version__
from romsync.remote.error_handler import handle_http_status
from romsync.remote.sources import RomEntry

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = f"Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) romsync/{__version__}"

_TABLE_ROW = re.compile(
    r'<tr[^>]*>\s*<td[^>]*>\s*<a\s+href="([^"]+)"[^>]*>[^<]+</a>\s*</td>'
    r'\s*<td[^>]*>\s*([^<]*)\s*</td>\s*<td[^>]*>\s*([^<]*)\s*</td>',
    re.IGNORECASE | re.MULTILINE
)
_PIPE_ROW = re.compile(r'^\|\s*([^|]+?)\s*\|\s*([^|]+?)\s*\|\s*([^|]+?)\s*\|', re.MULTILINE)
_HREF = re.compile(r'href="([^"]+)"')
_LINE_SIZE = re.compile(r'(\d[\d.,]*\s*[KMGT]i?B?)', re.IGNORECASE)
_LINE_DATE = re.compile(r'(\d{2}-[A-Za-z]{3}-\d{4}\s+\d{2}:\d{2}(?::\d{2})?)')

_DIRECTORY_TABLE_ROW = re.compile(
    r'<tr[^>]*>\s*<td[^>]*>\s*<a\s+href="\./"[^>]*>\.?/?</a>\s*</td>'
    r'\s*<td[^>]*>\s*[^<]*\s*</td>\s*<td[^>]*>\s*([^<]*)\s*</td>',
    re.IGNORECASE | re.MULTILINE
)
_DIRECTORY_PIPE_ROW = re.compile(r'^\|\s*\./?\s*\|\s*-\s*\|\s*([^|]+?)\s*\|', re.MULTILINE)

_SIZE = re.compile(r'^(\d[\d.,]*)(?:\s*([A-Za-z]+))?$')
_LISTING_TIMESTAMP = re.compile(
    r'^(\d{2})-([A-Za-z]{3})-(\d{4})\s+(\d{2}):(\d{2})(?::(\d{2}))?$'
)

_MONTHS = {
    'jan': 1, 'feb': 2, 'mar': 3, 'apr': 4, 'may': 5, 'jun': 6,
    'jul': 7, 'aug': 8, 'sep': 9, 'oct': 10, 'nov': 11, 'dec': 12,
}

_SIZE_UNITS = {
    '': 1, 'b': 1, 'bytes': 1,
    'k': 1024, 'kb': 1024, 'kib': 1024,
    'm': 1024 ** 2, 'mb': 1024 ** 2, 'mib': 1024 ** 2,
    'g': 1024 ** 3, 'gb': 1024 ** 3, 'gib': 1024 ** 3,
    't': 1024 ** 4, 'tb': 1024 ** 4, 'tib': 1024 ** 4,
}

_SKIPPED_HREFS = {'./', '../', '.', '..'}


@dataclass(frozen=True)
class ListingEntry:
    """One remote file: size 0 means unknown."""
    filename: str
    size: int = 0
    last_modified: Optional[str] = None


@dataclass
class RemoteListing:
    """Parsed listing of one remote directory."""
    entries: List[ListingEntry] = field(default_factory=list)
    directory_last_modified: Optional[str] = None


def parse_size(value: str) -> float:
    """
    Parse a human readable size into bytes.

    Units are powers of 1024; ``-``, empty and unparseable values are 0.

    Example:
        >>> parse_size('35.9 KiB')
        36761.6
    """
    trimmed = value.strip()
    if not trimmed or trimmed == '-':
        return 0

    match = _SIZE.match(trimmed)
    if not match:
        return 0

    try:
        number = float(match.group(1).replace(',', ''))
    except ValueError:
        return 0

    unit = (match.group(2) or '').lower()
    return number * _SIZE_UNITS.get(unit, 0)


def _to_iso(dt: datetime) -> str:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).strftime('%Y-%m-%dT%H:%M:%SZ')


def parse_listing_timestamp(value: str) -> Optional[str]:
    """
    Parse a listing timestamp such as ``04-Jan-2023 09:01`` (UTC).

    Returns:
        ISO-8601 UTC string, or None if the value is not in that format
    """
    trimmed = value.strip()
    match = _LISTING_TIMESTAMP.match(trimmed)
    if not match:
        return None

    month = _MONTHS.get(match.group(2).lower())
    if month is None:
        return None

    try:
        dt = datetime(
            int(match.group(3)), month, int(match.group(1)),
            int(match.group(4)), int(match.group(5)), int(match.group(6) or 0),
            tzinfo=timezone.utc
        )
    except ValueError:
        return None
    return _to_iso(dt)


def normalize_last_modified(value: Optional[str]) -> Optional[str]:
    """
    Normalize a timestamp to an ISO-8601 UTC string.

    Accepts the listing format, ISO-8601 and RFC 2822 (HTTP date) strings.

    Returns:
        Normalized string, or None for empty/unparseable values
    """
    if not value:
        return None
    trimmed = value.strip()
    if not trimmed or trimmed == '-':
        return None

    listing = parse_listing_timestamp(trimmed)
    if listing:
        return listing

    try:
        return _to_iso(datetime.fromisoformat(trimmed.replace('Z', '+00:00')))
    except ValueError:
        pass

    try:
        return _to_iso(parsedate_to_datetime(trimmed))
    except (TypeError, ValueError, IndexError):
        return None


def parse_directory_last_modified(html: str) -> Optional[str]:
    """Extract the directory fingerprint from the listing's ``./`` row."""
    match = _DIRECTORY_TABLE_ROW.search(html)
    if match and match.group(1):
        return parse_listing_timestamp(match.group(1))

    match = _DIRECTORY_PIPE_ROW.search(html)
    if match and match.group(1):
        return parse_listing_timestamp(match.group(1))

    return None


def _make_entry(href: str, size_cell: str, date_cell: str,
                archive_pattern: Pattern) -> Optional[ListingEntry]:
    if not href or href in _SKIPPED_HREFS or href.endswith('/'):
        return None

    filename = unquote(href)
    if not archive_pattern.search(filename):
        return None

    size_text = size_cell.strip()
    size = 0 if size_text == '-' else round(parse_size(size_text))
    return ListingEntry(filename, size, parse_listing_timestamp(date_cell))


def parse_listing(html: str, archive_pattern: Pattern) -> List[ListingEntry]:
    """
    Parse a directory listing into file entries.

    Args:
        html: Listing page body
        archive_pattern: Only filenames matching this regex are returned

    Returns:
        Entries in page order
    """
    entries = []

    for href, size_cell, date_cell in _TABLE_ROW.findall(html):
        entry = _make_entry(href, size_cell, date_cell, archive_pattern)
        if entry:
            entries.append(entry)

    if entries:
        return entries

    for name, size_cell, date_cell in _PIPE_ROW.findall(html):
        entry = _make_entry(name.strip(), size_cell, date_cell, archive_pattern)
        if entry:
            entries.append(entry)

    if entries:
        return entries

    for line in html.splitlines():
        href = _HREF.search(line)
        if not href:
            continue
        size = _LINE_SIZE.search(line)
        date = _LINE_DATE.search(line)
        entry = _make_entry(
            href.group(1),
            size.group(1) if size else '0',
            date.group(1) if date else '',
            archive_pattern
        )
        if entry:
            entries.append(entry)

    return entries


async def fetch_listing(
    client: httpx.AsyncClient,
    entry: RomEntry,
    user_agent: Optional[str] = None
) -> RemoteListing:
    """
    Fetch and parse the listing of one catalog entry.

    Args:
        client: Shared HTTP client
        entry: Catalog entry to list
        user_agent: User-Agent header (DEFAULT_USER_AGENT if None)

    Returns:
        RemoteListing

    Raises:
        RemoteError subclass: For non-2xx responses (see handle_http_status)
        httpx.TransportError: For network failures
    """
    url = entry.listing_url
    logger.debug(f"Fetching listing {url}")

    response = await client.get(url, headers={'User-Agent': user_agent or DEFAULT_USER_AGENT})
    handle_http_status(response.status_code, context=f"listing {entry.key}")

    html = response.text
    listing = RemoteListing(
        entries=parse_listing(html, entry.archive_pattern),
        directory_last_modified=parse_directory_last_modified(html),
    )
    logger.info(f"{entry.key}: {len(listing.entries)} file(s) listed")
    return listing
