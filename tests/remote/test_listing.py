import httpx
import pytest
import respx

from romsync.remote.error_handler import SkippableRemoteError
from romsync.remote.listing import (
    fetch_listing,
    normalize_last_modified,
    parse_directory_last_modified,
    parse_listing,
    parse_listing_timestamp,
    parse_size,
)
from romsync.remote.sources import (
    ROM_ENTRIES,
    get_entries_by_keys,
    get_entries_by_sources,
    unknown_entry_keys,
)

GB = get_entries_by_keys(["GB"])[0]
ZIP = GB.archive_pattern


@pytest.mark.unit
def test_parse_table_listing(listing_page):
    html = listing_page([
        ("Tetris%20%28World%29.zip", "35.9 KiB", "04-Jan-2023 09:01"),
        ("Dr.%20Mario%20%28World%29.zip", "1.5 MiB", "05-Feb-2023 10:02:03"),
        ("notes.txt", "1 KiB", "05-Feb-2023 10:02"),
        ("subdir/", "-", "05-Feb-2023 10:02"),
    ], directory_date="06-Mar-2024 11:22")

    entries = parse_listing(html, ZIP)

    assert [e.filename for e in entries] == ["Tetris (World).zip", "Dr. Mario (World).zip"]
    assert entries[0].size == round(35.9 * 1024)
    assert entries[0].last_modified == "2023-01-04T09:01:00Z"
    assert entries[1].size == round(1.5 * 1024 * 1024)
    assert entries[1].last_modified == "2023-02-05T10:02:03Z"
    assert parse_directory_last_modified(html) == "2024-03-06T11:22:00Z"


@pytest.mark.unit
def test_parse_pipe_listing():
    text = "\n".join([
        "| Name | Size | Date |",
        "| ./ | - | 01-Jan-2024 00:00 |",
        "| Game (USA).zip | 2 MiB | 02-Jan-2024 03:04 |",
    ])

    entries = parse_listing(text, ZIP)

    assert len(entries) == 1
    assert entries[0].filename == "Game (USA).zip"
    assert entries[0].size == 2 * 1024 * 1024
    assert parse_directory_last_modified(text) == "2024-01-01T00:00:00Z"


@pytest.mark.unit
def test_parse_line_fallback():
    html = '<a href="Game%20%28USA%29.zip">Game (USA).zip</a>   12-Dec-2022 08:00   3.0M\n'

    entries = parse_listing(html, ZIP)

    assert entries[0].filename == "Game (USA).zip"
    assert entries[0].size == 3 * 1024 * 1024
    assert entries[0].last_modified == "2022-12-12T08:00:00Z"


@pytest.mark.unit
@pytest.mark.parametrize(
    "value, expected",
    [
        ("35.9 KiB", 35.9 * 1024),
        ("1,024 B", 1024),
        ("2G", 2 * 1024 ** 3),
        ("-", 0),
        ("", 0),
        ("garbage", 0),
    ],
)
def test_parse_size(value, expected):
    assert parse_size(value) == pytest.approx(expected)


@pytest.mark.unit
def test_timestamps_normalize_to_iso_utc():
    assert parse_listing_timestamp("04-Jan-2023 09:01") == "2023-01-04T09:01:00Z"
    assert parse_listing_timestamp("2023-01-04") is None
    assert normalize_last_modified("04-Jan-2023 09:01") == "2023-01-04T09:01:00Z"
    assert normalize_last_modified("2023-01-04T09:01:00Z") == "2023-01-04T09:01:00Z"
    assert normalize_last_modified("2023-01-04T10:01:00+01:00") == "2023-01-04T09:01:00Z"
    assert normalize_last_modified("Wed, 04 Jan 2023 09:01:00 GMT") == "2023-01-04T09:01:00Z"
    assert normalize_last_modified("-") is None
    assert normalize_last_modified(None) is None
    assert normalize_last_modified("whenever") is None


@pytest.mark.unit
@pytest.mark.asyncio
async def test_fetch_listing_sends_user_agent(listing_page):
    html = listing_page([("Game%20%28USA%29.zip", "1 KiB", "01-Jan-2024 00:00")])

    async with httpx.AsyncClient() as client:
        with respx.mock(assert_all_called=True) as mock:
            route = mock.get(host="myrient.erista.me").respond(200, text=html)
            listing = await fetch_listing(client, GB, user_agent="romsync-test")

    assert route.calls.last.request.headers["User-Agent"] == "romsync-test"
    assert [e.filename for e in listing.entries] == ["Game (USA).zip"]
    assert listing.directory_last_modified == "2024-01-01T00:00:00Z"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_fetch_listing_maps_http_errors():
    async with httpx.AsyncClient() as client:
        with respx.mock() as mock:
            mock.get(host="myrient.erista.me").respond(404)
            with pytest.raises(SkippableRemoteError):
                await fetch_listing(client, GB)


@pytest.mark.unit
def test_entry_lookup():
    assert GB.listing_url == "https://myrient.erista.me/files/No-Intro/Nintendo%20-%20Game%20Boy/"
    assert [e.key for e in get_entries_by_keys(["gba", "GB"])] == ["GB", "GBA"]
    assert {e.source for e in get_entries_by_sources(["redump"])} == {"redump"}
    assert unknown_entry_keys(["GB", "N64"]) == ["N64"]
    assert len({e.key for e in ROM_ENTRIES}) == len(ROM_ENTRIES)
