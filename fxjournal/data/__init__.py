"""
Data Layer — cached trade loading.

cache.py    — tagged in-process cache with compute-on-miss
loading.py  — filter / sort / paginate / progressive loading over trades
"""

from fxjournal.data.cache import (
    CacheEntry,
    CacheInvalidation,
    CacheKeys,
    CacheOperation,
    CacheService,
    CacheStats,
)
from fxjournal.data.loading import (
    DataLoadingService,
    FilterCriteria,
    LoadingConfig,
    LoadingResult,
    PaginationOptions,
    ProgressiveLoad,
    SortCriteria,
    SortDirection,
)

__all__ = [
    "CacheEntry", "CacheInvalidation", "CacheKeys", "CacheOperation",
    "CacheService", "CacheStats",
    "DataLoadingService", "FilterCriteria", "LoadingConfig", "LoadingResult",
    "PaginationOptions", "ProgressiveLoad", "SortCriteria", "SortDirection",
]
