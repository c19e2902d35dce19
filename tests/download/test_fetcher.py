import httpx
import pytest
import respx

from romsync.download.fetcher import (
    FileDownloader,
    any_extension_exists,
    find_extracted_siblings,
    part_path_for,
)

URL = "https://mirror.example/files/Game%20(USA).zip"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_download_writes_file_and_reports_progress(tmp_path):
    dest = tmp_path / "GB" / "Game (USA).zip"
    progress = []

    async with httpx.AsyncClient() as client:
        with respx.mock(assert_all_called=True) as mock:
            mock.get(URL).respond(200, content=b"x" * 1000)
            downloader = FileDownloader(client, retries=1, retry_delay=0, progress_interval=0)
            result = await downloader.download(URL, dest, 1000, lambda *args: progress.append(args))

    assert result.success is True
    assert result.bytes_downloaded == 1000
    assert dest.read_bytes() == b"x" * 1000
    assert not part_path_for(dest).exists()
    assert progress[-1][0] == 1000
    assert progress[-1][1] == 1000


@pytest.mark.unit
@pytest.mark.asyncio
async def test_download_resumes_partial_file(tmp_path):
    dest = tmp_path / "game.zip"
    part_path_for(dest).write_bytes(b"abc")
    seen_ranges = []

    def handler(request):
        seen_ranges.append(request.headers.get("Range"))
        return httpx.Response(206, content=b"defg", headers={"Content-Range": "bytes 3-6/7"})

    async with httpx.AsyncClient() as client:
        with respx.mock() as mock:
            mock.get(URL).mock(side_effect=handler)
            result = await FileDownloader(client, retries=1, retry_delay=0).download(URL, dest, 7)

    assert result.success is True
    assert seen_ranges == ["bytes=3-"]
    assert dest.read_bytes() == b"abcdefg"
    assert result.bytes_downloaded == 4


@pytest.mark.unit
@pytest.mark.asyncio
async def test_full_response_restarts_partial(tmp_path):
    dest = tmp_path / "game.zip"
    part_path_for(dest).write_bytes(b"zzz")

    async with httpx.AsyncClient() as client:
        with respx.mock() as mock:
            mock.get(URL).respond(200, content=b"hello")
            result = await FileDownloader(client, retries=1, retry_delay=0).download(URL, dest)

    assert result.success is True
    assert dest.read_bytes() == b"hello"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_not_found_is_final_and_removes_partial(tmp_path):
    dest = tmp_path / "game.zip"
    part_path_for(dest).write_bytes(b"stale")

    async with httpx.AsyncClient() as client:
        with respx.mock() as mock:
            route = mock.get(URL).respond(404)
            result = await FileDownloader(client, retries=3, retry_delay=0).download(URL, dest)

    assert result.success is False
    assert route.call_count == 1
    assert not part_path_for(dest).exists()
    assert not dest.exists()


@pytest.mark.unit
@pytest.mark.asyncio
async def test_server_error_is_retried(tmp_path):
    dest = tmp_path / "game.zip"

    async with httpx.AsyncClient() as client:
        with respx.mock() as mock:
            route = mock.get(URL).mock(side_effect=[
                httpx.Response(503),
                httpx.Response(200, content=b"payload"),
            ])
            result = await FileDownloader(client, retries=3, retry_delay=0).download(URL, dest)

    assert result.success is True
    assert route.call_count == 2
    assert dest.read_bytes() == b"payload"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_transport_error_is_retried(tmp_path):
    dest = tmp_path / "game.zip"

    async with httpx.AsyncClient() as client:
        with respx.mock() as mock:
            route = mock.get(URL).mock(side_effect=[
                httpx.ConnectError("boom"),
                httpx.Response(200, content=b"payload"),
            ])
            result = await FileDownloader(client, retries=2, retry_delay=0).download(URL, dest)

    assert result.success is True
    assert route.call_count == 2


@pytest.mark.unit
@pytest.mark.asyncio
async def test_empty_body_fails_after_retries(tmp_path):
    dest = tmp_path / "game.zip"

    async with httpx.AsyncClient() as client:
        with respx.mock() as mock:
            route = mock.get(URL).respond(200, content=b"")
            result = await FileDownloader(client, retries=2, retry_delay=0).download(URL, dest)

    assert result.success is False
    assert "empty" in result.error
    assert route.call_count == 2
    assert not dest.exists()


@pytest.mark.unit
@pytest.mark.asyncio
async def test_range_not_satisfiable_with_complete_partial(tmp_path):
    dest = tmp_path / "game.zip"
    part_path_for(dest).write_bytes(b"12345")

    async with httpx.AsyncClient() as client:
        with respx.mock() as mock:
            mock.get(URL).respond(416)
            result = await FileDownloader(client, retries=1, retry_delay=0).download(URL, dest, 5)

    assert result.success is True
    assert dest.read_bytes() == b"12345"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_range_not_satisfiable_restarts_transfer(tmp_path):
    dest = tmp_path / "game.zip"
    part_path_for(dest).write_bytes(b"12345")

    async with httpx.AsyncClient() as client:
        with respx.mock() as mock:
            route = mock.get(URL).mock(side_effect=[
                httpx.Response(416),
                httpx.Response(200, content=b"0123456789"),
            ])
            result = await FileDownloader(client, retries=2, retry_delay=0).download(URL, dest, 10)

    assert result.success is True
    assert route.call_count == 2
    assert dest.read_bytes() == b"0123456789"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_size_mismatch_keeps_partial_for_resume(tmp_path):
    dest = tmp_path / "game.zip"
    part_path_for(dest).write_bytes(b"ab")

    async with httpx.AsyncClient() as client:
        with respx.mock() as mock:
            mock.get(URL).respond(206, content=b"cd", headers={"Content-Range": "bytes 2-3/10"})
            result = await FileDownloader(client, retries=1, retry_delay=0).download(URL, dest, 10)

    assert result.success is False
    assert "Size mismatch" in result.error
    assert part_path_for(dest).read_bytes() == b"abcd"
    assert not dest.exists()


@pytest.mark.unit
def test_find_extracted_siblings(tmp_path):
    (tmp_path / "Game (USA).zip").write_bytes(b"zip")
    (tmp_path / "Game (USA).gb").write_bytes(b"rom")
    (tmp_path / "Game (USA) (Rev 1).gb").write_bytes(b"rom")
    (tmp_path / "Other.gb").write_bytes(b"rom")

    siblings = find_extracted_siblings(tmp_path, "Game (USA)", exclude="Game (USA).zip")

    assert siblings == [tmp_path / "Game (USA).gb"]
    assert any_extension_exists(tmp_path, "Other")
    assert not any_extension_exists(tmp_path, "Missing")
    assert find_extracted_siblings(tmp_path / "nope", "Game") == []
