"""
Shared pytest fixtures and utilities for the romsync test suite.
"""

import io
import struct
import zipfile
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, Optional, Tuple

import pytest
import yaml

from romsync.catalog.store import CatalogStore


@pytest.fixture
def make_config(tmp_path: Path) -> Callable[[Dict[str, Any]], Path]:
    """
    Create a minimal config.yaml in a temp directory.

    Usage:
        path = make_config({"download": {"jobs": 2}})
    """

    def _builder(overrides: Optional[Dict[str, Any]] = None) -> Path:
        base = {
            "paths": {
                "target": str(tmp_path / "collection"),
            },
            "download": {"jobs": 2},
            "logging": {"level": "WARNING", "console": False},
        }
        if overrides:
            base = merge_dicts(base, overrides)

        cfg_path = tmp_path / "config.yaml"
        cfg_path.write_text(yaml.safe_dump(base))
        return cfg_path

    return _builder


@pytest.fixture
def store():
    """
    Open in-memory catalog store, closed after the test.
    """
    catalog = CatalogStore(":memory:").open()
    yield catalog
    catalog.close()


@pytest.fixture
def zip_factory(tmp_path: Path) -> Callable[..., Path]:
    """
    Build ZIP archives from (member name, content) pairs.

    Usage:
        archive = zip_factory("Game (USA).zip", [("Game (USA).gb", b"rom")])
    """

    def _builder(
        name: str,
        members: Iterable[Tuple[str, bytes]],
        directory: Optional[Path] = None
    ) -> Path:
        target_dir = directory or tmp_path
        target_dir.mkdir(parents=True, exist_ok=True)
        path = target_dir / name
        with zipfile.ZipFile(path, "w") as archive:
            for member, content in members:
                archive.writestr(member, content)
        return path

    return _builder


def listing_html(files: Iterable[Tuple[str, str, str]], directory_date: str = "01-Jan-2024 00:00") -> str:
    """
    Render a directory listing page like the mirror serves.

    Args:
        files: (href, size cell, date cell) rows
        directory_date: Date cell of the ``./`` row
    """
    rows = [
        '<tr><td><a href="../">Parent directory/</a></td><td>-</td><td>-</td></tr>',
        f'<tr><td><a href="./">./</a></td><td>-</td><td>{directory_date}</td></tr>',
    ]
    for href, size, date in files:
        rows.append(
            f'<tr><td class="link"><a href="{href}" title="{href}">{href}</a></td>'
            f'<td class="size">{size}</td><td class="date">{date}</td></tr>'
        )
    return "<html><body><table>\n" + "\n".join(rows) + "\n</table></body></html>"


def merge_dicts(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """
    Shallow+deep merge helper for fixture config dictionaries.
    """
    result: Dict[str, Any] = dict(base)
    for key, value in override.items():
        if (
            key in result
            and isinstance(result[key], dict)
            and isinstance(value, dict)
        ):
            result[key] = merge_dicts(result[key], value)
        else:
            result[key] = value
    return result


@pytest.fixture
def listing_page() -> Callable[..., str]:
    """Fixture form of listing_html for tests in sub-directories."""
    return listing_html


def corrupt_member_data(data: bytes) -> bytes:
    """
    Overwrite the first member's compressed stream of a ZIP with 0xFF bytes.

    Headers and the central directory stay valid, so opening the archive
    succeeds and the failure only shows up while the member is inflated.
    """
    with zipfile.ZipFile(io.BytesIO(data)) as archive:
        info = archive.infolist()[0]
    offset = info.header_offset
    name_length, extra_length = struct.unpack("<HH", data[offset + 26:offset + 30])
    start = offset + 30 + name_length + extra_length
    end = start + info.compress_size
    return data[:start] + b"\xff" * info.compress_size + data[end:]


@pytest.fixture
def corrupt_zip() -> Callable[[bytes], bytes]:
    """Fixture form of corrupt_member_data for tests in sub-directories."""
    return corrupt_member_data
