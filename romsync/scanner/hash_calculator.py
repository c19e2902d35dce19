"""Hash calculation for local ROM files."""

import zlib
import hashlib
from dataclasses import dataclass
from pathlib import Path

CHUNK_SIZE = 8 * 1024 * 1024  # 8MB chunks for better I/O efficiency


@dataclass(frozen=True)
class FileHash:
    """SHA-1 and CRC32 of one file, uppercase hex."""
    sha1: str
    crc32: str
    size: int


def hash_file(file_path: Path) -> FileHash:
    """
    Calculate SHA-1 and CRC32 in one streaming pass.

    Args:
        file_path: Path to file to hash

    Returns:
        FileHash

    Raises:
        OSError: If file cannot be read
    """
    sha1 = hashlib.sha1()
    crc = 0
    size = 0

    with open(file_path, 'rb') as f:
        while True:
            chunk = f.read(CHUNK_SIZE)
            if not chunk:
                break
            sha1.update(chunk)
            crc = zlib.crc32(chunk, crc)
            size += len(chunk)

    # Unsigned 32-bit value as uppercase hex
    return FileHash(
        sha1=sha1.hexdigest().upper(),
        crc32=f"{crc & 0xFFFFFFFF:08X}",
        size=size,
    )


def format_file_size(size_bytes: int) -> str:
    """
    Format file size in human-readable format.

    Args:
        size_bytes: Size in bytes

    Returns:
        Formatted string (e.g., "1.5 MB", "750 KB")
    """
    if size_bytes < 1024:
        return f"{size_bytes} B"
    elif size_bytes < 1024 * 1024:
        return f"{size_bytes / 1024:.1f} KB"
    elif size_bytes < 1024 * 1024 * 1024:
        return f"{size_bytes / (1024 * 1024):.1f} MB"
    else:
        return f"{size_bytes / (1024 * 1024 * 1024):.2f} GB"
