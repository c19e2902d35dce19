"""
ROM filename handling for romsync.

Classifies No-Intro / Redump style filenames, filters listings and picks
one preferred release per title.
"""

from .romname import ClassifiedName, classify
from .filters import FilterError, apply_filters
from .selector import select_one_per_title

__all__ = [
    'ClassifiedName',
    'classify',
    'FilterError',
    'apply_filters',
    'select_one_per_title',
]
