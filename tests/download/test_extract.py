import io
import zipfile

import pytest

from romsync.download.extract import extract_zip, is_zip_archive, matches_glob


@pytest.mark.unit
def test_extract_matching_members_and_delete_archive(tmp_path, zip_factory):
    archive = zip_factory("Game (USA).zip", [
        ("Game (USA).gb", b"rom"),
        ("readme.txt", b"text"),
    ])
    out = tmp_path / "out"

    result = extract_zip(archive, out, "*.gb")

    assert result.success is True
    assert result.extracted_files == ["Game (USA).gb"]
    assert (out / "Game (USA).gb").read_bytes() == b"rom"
    assert not (out / "readme.txt").exists()
    assert not archive.exists()


@pytest.mark.unit
def test_glob_is_case_insensitive(tmp_path, zip_factory):
    archive = zip_factory("Game.zip", [("GAME.GB", b"rom")])

    result = extract_zip(archive, tmp_path / "out", "*.gb")

    assert result.extracted_files == ["GAME.GB"]


@pytest.mark.unit
def test_flatten_drops_member_directories(tmp_path, zip_factory):
    archive = zip_factory("Game.zip", [("nested/dir/Game.gb", b"rom"), ("nested/", b"")])

    result = extract_zip(archive, tmp_path / "out", "*", delete_archive=False)

    assert result.extracted_files == ["Game.gb"]
    assert (tmp_path / "out" / "Game.gb").exists()
    assert archive.exists()


@pytest.mark.unit
def test_unflattened_extraction_rejects_parent_paths(tmp_path, zip_factory):
    archive = zip_factory("Game.zip", [("../escape.gb", b"bad"), ("sub/ok.gb", b"ok")])

    result = extract_zip(archive, tmp_path / "out", "*", flatten=False)

    assert result.extracted_files == ["sub/ok.gb"]
    assert not (tmp_path / "escape.gb").exists()


@pytest.mark.unit
def test_archive_kept_when_nothing_matched(tmp_path, zip_factory):
    archive = zip_factory("Game.zip", [("readme.txt", b"text")])

    result = extract_zip(archive, tmp_path / "out", "*.gb")

    assert result.success is True
    assert result.extracted_files == []
    assert archive.exists()


@pytest.mark.unit
def test_corrupt_archive_reports_error(tmp_path):
    archive = tmp_path / "broken.zip"
    archive.write_bytes(b"not a zip")

    result = extract_zip(archive, tmp_path / "out")

    assert result.success is False
    assert result.error
    assert archive.exists()


@pytest.mark.unit
def test_no_partial_files_left_behind(tmp_path, zip_factory):
    archive = zip_factory("Game.zip", [("a.gb", b"1"), ("b.gb", b"2")])
    out = tmp_path / "out"

    extract_zip(archive, out, "*.gb")

    assert sorted(p.name for p in out.iterdir()) == ["a.gb", "b.gb"]


@pytest.mark.unit
def test_helpers():
    assert is_zip_archive("Game (USA).ZIP")
    assert not is_zip_archive("Game (USA).7z")
    assert matches_glob("x.GB", "*.gb")
    assert not matches_glob("x.gba", "*.gb")
    assert matches_glob("Game (USA) [b].gb", "*")


@pytest.mark.unit
def test_damaged_member_data_reports_error(tmp_path, corrupt_zip):
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        archive.writestr("Bad (USA).gb", b"rom data " * 200)
    archive_path = tmp_path / "Bad (USA).zip"
    archive_path.write_bytes(corrupt_zip(buffer.getvalue()))
    out = tmp_path / "out"

    result = extract_zip(archive_path, out, "*.gb")

    assert result.success is False
    assert result.error
    assert archive_path.exists()
    assert list(out.iterdir()) == []
