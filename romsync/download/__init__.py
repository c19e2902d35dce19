"""
Download package for romsync.

Handles admission control, resumable file transfers and archive extraction.
"""

from .backpressure import BackpressureController, DiskProfile, resolve_backpressure
from .fetcher import FileDownloader, FetchResult
from .extract import ExtractResult, extract_zip

__all__ = [
    'BackpressureController',
    'DiskProfile',
    'resolve_backpressure',
    'FileDownloader',
    'FetchResult',
    'ExtractResult',
    'extract_zip',
]
