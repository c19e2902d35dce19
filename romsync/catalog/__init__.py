"""
Catalog package for romsync.

Persists remote listings, local files and sync bookkeeping in SQLite.
"""

from .store import CatalogError, CatalogStore

__all__ = [
    'CatalogError',
    'CatalogStore',
]
