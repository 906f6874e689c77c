"""
In-process cache for trade-derived results.

Entries carry dependency tags so related results can be dropped together
(e.g. everything computed from the trade list is tagged ``"trades"``).
Eviction is least-recently-used once ``max_size`` is reached; there is no
time-based expiry.
"""

from __future__ import annotations

import asyncio
import hashlib
import inspect
import json
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Iterable, Optional, Sequence, Union

from fxjournal.utils.config import get_settings
from fxjournal.utils.exceptions import CacheError
from fxjournal.utils.logger import get_logger

logger = get_logger(__name__)

ComputeFn = Callable[[], Union[Any, Awaitable[Any]]]


@dataclass
class CacheEntry:
    key: str
    value: Any
    timestamp: float = field(default_factory=time.time)
    tags: tuple[str, ...] = ()


@dataclass
class CacheOperation:
    key: str
    compute_fn: ComputeFn
    tags: Optional[Sequence[str]] = None


@dataclass
class CacheStats:
    size: int
    max_size: int
    hits: int
    misses: int
    hit_rate: float
    oldest_entry: Optional[float]
    newest_entry: Optional[float]

    def to_dict(self) -> dict:
        return {
            "size": self.size,
            "max_size": self.max_size,
            "hits": self.hits,
            "misses": self.misses,
            "hit_rate": self.hit_rate,
            "oldest_entry": self.oldest_entry,
            "newest_entry": self.newest_entry,
        }


class CacheKeys:
    """Key builders for trade-derived analytics.

    Setup and pattern keys start with ``setup_<type>_`` / ``pattern_<type>_``
    so ``CacheInvalidation`` can drop them by prefix.
    """

    @staticmethod
    def trade(trade_id: str) -> str:
        return f"trade_{trade_id}"

    @staticmethod
    def setup_performance(setup_type: str, trades_hash: str) -> str:
        return f"setup_{setup_type}_perf_{trades_hash}"

    @staticmethod
    def setup_analytics(setup_type: str, trades_hash: str) -> str:
        return f"setup_{setup_type}_analytics_{trades_hash}"

    @staticmethod
    def pattern_performance(pattern_type: str, trades_hash: str) -> str:
        return f"pattern_{pattern_type}_perf_{trades_hash}"

    @staticmethod
    def pattern_analytics(pattern_type: str, trades_hash: str) -> str:
        return f"pattern_{pattern_type}_analytics_{trades_hash}"

    @staticmethod
    def position_analytics(trade_id: str, version: int) -> str:
        return f"position_analytics_{trade_id}_{version}"

    @staticmethod
    def exit_efficiency(trades_hash: str) -> str:
        return f"exit_efficiency_{trades_hash}"

    @staticmethod
    def all_setup_performance(trades_hash: str) -> str:
        return f"all_setup_perf_{trades_hash}"

    @staticmethod
    def all_pattern_performance(trades_hash: str) -> str:
        return f"all_pattern_perf_{trades_hash}"

    @staticmethod
    def setup_comparison(setup_types: Sequence[str], trades_hash: str) -> str:
        return f"setup_comp_{'_'.join(setup_types)}_{trades_hash}"

    @staticmethod
    def pattern_comparison(pattern_types: Sequence[str], trades_hash: str) -> str:
        return f"pattern_comp_{'_'.join(pattern_types)}_{trades_hash}"


class CacheService:
    """
    Tagged key → value store with compute-on-miss.

    Concurrent ``get_or_compute`` calls for the same missing key share a
    single in-flight computation.
    """

    def __init__(self, max_size: Optional[int] = None, name: str = "default"):
        self.name = name
        self.max_size = max_size if max_size is not None else get_settings().cache_max_size
        if self.max_size <= 0:
            raise CacheError(f"max_size must be positive, got {self.max_size}")
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._in_flight: dict[str, asyncio.Future] = {}
        self._hits = 0
        self._misses = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    @property
    def pending_count(self) -> int:
        return len(self._in_flight)

    def _lookup(self, key: str) -> tuple[bool, Any]:
        entry = self._entries.get(key)
        if entry is None:
            self._misses += 1
            return False, None
        self._entries.move_to_end(key)
        self._hits += 1
        return True, entry.value

    def get(self, key: str) -> Any:
        """Cached value for ``key``, or None when absent."""
        _, value = self._lookup(key)
        return value

    def set(self, key: str, value: Any, tags: Optional[Iterable[str]] = None) -> None:
        if key not in self._entries and len(self._entries) >= self.max_size:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug("cache_evicted", cache=self.name, key=evicted)
        self._entries[key] = CacheEntry(key=key, value=value, tags=tuple(tags or ()))
        self._entries.move_to_end(key)

    def clear(self, tag_or_key: Optional[str] = None) -> int:
        """Remove entries tagged with ``tag_or_key`` or stored under that key.

        With no argument everything is removed. Returns the number removed.
        """
        if tag_or_key is None:
            removed = len(self._entries)
            self._entries.clear()
            logger.debug("cache_cleared", cache=self.name, removed=removed)
            return removed

        doomed = [
            key for key, entry in self._entries.items()
            if key == tag_or_key or tag_or_key in entry.tags
        ]
        for key in doomed:
            del self._entries[key]
        return len(doomed)

    def clear_matching(self, pattern: str) -> int:
        """Remove every entry whose key contains ``pattern``."""
        doomed = [key for key in self._entries if pattern in key]
        for key in doomed:
            del self._entries[key]
        return len(doomed)

    def invalidate_by_dependency(self, dependency: str) -> int:
        doomed = [key for key, entry in self._entries.items() if dependency in entry.tags]
        for key in doomed:
            del self._entries[key]
        return len(doomed)

    async def get_or_compute(
        self,
        key: str,
        compute_fn: ComputeFn,
        tags: Optional[Iterable[str]] = None,
    ) -> Any:
        if not callable(compute_fn):
            raise CacheError("compute_fn must be callable", key=key)

        found, value = self._lookup(key)
        if found:
            return value

        pending = self._in_flight.get(key)
        if pending is None:
            pending = asyncio.ensure_future(self._compute(key, compute_fn, tags))
            self._in_flight[key] = pending
        # Every caller awaits through shield: cancelling one caller leaves
        # the shared computation running for the others.
        return await asyncio.shield(pending)

    async def _compute(self, key: str, compute_fn: ComputeFn,
                       tags: Optional[Iterable[str]]) -> Any:
        try:
            result = compute_fn()
            if inspect.isawaitable(result):
                result = await result
        except Exception as e:
            logger.warning("cache_compute_failed", cache=self.name, key=key, error=str(e))
            raise
        else:
            self.set(key, result, tags)
            return result
        finally:
            self._in_flight.pop(key, None)

    async def batch_get_or_compute(self, operations: Iterable[CacheOperation]) -> list[Any]:
        return list(await asyncio.gather(
            *(self.get_or_compute(op.key, op.compute_fn, op.tags) for op in operations)
        ))

    @staticmethod
    def get_trades_hash(trades: Sequence[Any]) -> str:
        """Fingerprint of a trade list: ids in order, newest modification, total P&L.

        Edits that change none of these (e.g. a symbol fixed without touching
        ``updated_at``) keep the same fingerprint.
        """
        last_modified = 0.0
        total_pnl = 0.0
        for trade in trades:
            stamp = getattr(trade, "updated_at", None) or getattr(trade, "date", None)
            if stamp:
                try:
                    last_modified = max(last_modified, datetime.fromisoformat(stamp).timestamp())
                except (TypeError, ValueError):
                    pass
            pnl = getattr(trade, "pnl", None)
            if isinstance(pnl, (int, float)):
                total_pnl += pnl
        payload = json.dumps({
            "count": len(trades),
            "ids": [str(getattr(trade, "id", "")) for trade in trades],
            "last_modified": last_modified,
            "total_pnl": round(total_pnl, 8),
        }, sort_keys=True)
        return hashlib.sha256(payload.encode()).hexdigest()[:16]

    def get_stats(self) -> CacheStats:
        stamps = [entry.timestamp for entry in self._entries.values()]
        total = self._hits + self._misses
        return CacheStats(
            size=len(self._entries),
            max_size=self.max_size,
            hits=self._hits,
            misses=self._misses,
            hit_rate=(self._hits / total * 100) if total else 0.0,
            oldest_entry=min(stamps) if stamps else None,
            newest_entry=max(stamps) if stamps else None,
        )

    def reset_stats(self) -> None:
        self._hits = 0
        self._misses = 0

    def cleanup(self) -> None:
        self._entries.clear()
        self.reset_stats()
        logger.info("cache_cleanup", cache=self.name)


class CacheInvalidation:
    """Invalidation hooks for journal edits. Caches are passed explicitly."""

    @staticmethod
    def on_trade_update(trade_id: str, trade_cache: CacheService,
                        *derived: CacheService) -> None:
        trade_cache.clear(CacheKeys.trade(trade_id))
        trade_cache.clear("trades")
        for cache in derived:
            cache.clear()

    @staticmethod
    def on_trades_update(*caches: CacheService) -> None:
        for cache in caches:
            cache.clear()

    @staticmethod
    def on_setup_update(setup_type: str, *caches: CacheService) -> None:
        for cache in caches:
            cache.clear_matching(f"setup_{setup_type}_")

    @staticmethod
    def on_pattern_update(pattern_type: str, *caches: CacheService) -> None:
        for cache in caches:
            cache.clear_matching(f"pattern_{pattern_type}_")
