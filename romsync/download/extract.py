"""
ZIP extraction.

Members are streamed to ``<out>.part.<pid>`` and renamed into place, so an
interrupted extraction never leaves a truncated file under its final name.
Blocking; the orchestrator runs it in a worker thread.
"""

import fnmatch
import logging
import os
import shutil
import zipfile
import zlib
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import List, Optional

logger = logging.getLogger(__name__)

COPY_BUFFER_SIZE = 1024 * 1024


@dataclass
class ExtractResult:
    """Outcome of one archive extraction."""
    success: bool
    extracted_files: List[str] = field(default_factory=list)
    error: Optional[str] = None


def matches_glob(name: str, glob: str) -> bool:
    """Case-insensitive glob match of a member base name."""
    return fnmatch.fnmatchcase(name.lower(), glob.lower())


def is_zip_archive(filename: str) -> bool:
    """Check if a filename is a ZIP archive by extension."""
    return Path(filename).suffix.lower() == '.zip'


def _member_output(member_name: str, flatten: bool) -> Optional[PurePosixPath]:
    path = PurePosixPath(member_name.replace('\\', '/'))
    if flatten:
        return PurePosixPath(path.name) if path.name else None

    parts = [p for p in path.parts if p not in ('', '.', '/')]
    if not parts or '..' in parts:
        return None
    return PurePosixPath(*parts)


def extract_zip(
    archive_path: Path,
    dest_dir: Path,
    extract_glob: str = '*',
    delete_archive: bool = True,
    flatten: bool = True
) -> ExtractResult:
    """
    Extract matching members of a ZIP archive.

    Args:
        archive_path: Archive to extract
        dest_dir: Output directory (created if missing)
        extract_glob: Glob matched against each member's base name
        delete_archive: Remove the archive after a successful extraction
            that produced at least one file
        flatten: Drop member directory components

    Returns:
        ExtractResult; on failure the archive is left untouched
    """
    archive_path = Path(archive_path)
    dest_dir = Path(dest_dir)
    extracted: List[str] = []

    try:
        dest_dir.mkdir(parents=True, exist_ok=True)

        with zipfile.ZipFile(archive_path) as archive:
            for info in archive.infolist():
                if info.is_dir():
                    continue

                relative = _member_output(info.filename, flatten)
                if relative is None or not matches_glob(relative.name, extract_glob):
                    continue

                output_path = dest_dir.joinpath(*relative.parts)
                output_path.parent.mkdir(parents=True, exist_ok=True)
                part_path = output_path.with_name(f"{output_path.name}.part.{os.getpid()}")

                try:
                    with archive.open(info) as source, open(part_path, 'wb') as target:
                        shutil.copyfileobj(source, target, COPY_BUFFER_SIZE)
                    os.replace(part_path, output_path)
                except BaseException:
                    if part_path.exists():
                        part_path.unlink()
                    raise

                extracted.append(str(relative))

    except (
        OSError,
        EOFError,
        zlib.error,
        zipfile.BadZipFile,
        zipfile.LargeZipFile,
        RuntimeError,
    ) as e:
        # zlib.error and EOFError come from damaged member data behind a valid header
        logger.warning(f"Extraction of {archive_path.name} failed: {e}")
        return ExtractResult(success=False, extracted_files=extracted, error=str(e))

    if delete_archive and extracted:
        try:
            archive_path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Could not delete {archive_path.name} after extraction: {e}")

    logger.debug(f"Extracted {len(extracted)} file(s) from {archive_path.name}")
    return ExtractResult(success=True, extracted_files=extracted)
