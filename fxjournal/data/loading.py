"""
Trade Loading Service — filter, sort, paginate, stream
======================================================

Works over the caller's in-memory trade list. Results of ``load_trades``
and point look-ups are memoised in an injected ``CacheService`` under the
``"trades"`` tag, so ``cache.clear("trades")`` drops all of them.

Malformed options never raise: a filter field, sort or pagination value
that cannot be interpreted is treated as absent.
"""

from __future__ import annotations

import asyncio
import functools
import hashlib
import inspect
import json
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from fxjournal.data.cache import CacheKeys, CacheOperation, CacheService
from fxjournal.journal.trade_models import Trade
from fxjournal.monitoring.performance import MetricCategory, MetricName, PerformanceMonitorService
from fxjournal.utils.config import get_settings
from fxjournal.utils.exceptions import DataLoadError
from fxjournal.utils.logger import get_logger

logger = get_logger(__name__)

TRADES_TAG = "trades"

BatchCallback = Callable[[List[Trade], float], Union[None, Awaitable[None]]]
Predicate = Callable[[Trade], bool]


class SortDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"


@dataclass
class LoadingConfig:
    batch_size: int = field(default_factory=lambda: get_settings().loader_batch_size)
    enable_pagination: bool = True
    enable_filtering: bool = True
    enable_sorting: bool = True

    def __post_init__(self):
        if not isinstance(self.batch_size, int) or self.batch_size <= 0:
            raise DataLoadError(f"batch_size must be a positive integer, got {self.batch_size!r}")

    @classmethod
    def analytics(cls) -> "LoadingConfig":
        return cls(batch_size=50)

    @classmethod
    def widget(cls) -> "LoadingConfig":
        return cls(batch_size=25, enable_pagination=False, enable_sorting=False)

    def to_dict(self) -> dict:
        return {
            "batch_size": self.batch_size,
            "enable_pagination": self.enable_pagination,
            "enable_filtering": self.enable_filtering,
            "enable_sorting": self.enable_sorting,
        }


def _canonical(value: Any) -> Any:
    if value is None or isinstance(value, (bool, int, float)):
        return value
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, str):
        return value
    if isinstance(value, (list, tuple, set, frozenset)):
        return sorted(str(_canonical(v)) for v in value)
    return str(value)


@dataclass
class FilterCriteria:
    """Optional predicates, combined with AND. None means unconstrained."""
    date_range: Optional[Tuple[str, str]] = None
    status: Optional[Sequence[str]] = None
    symbols: Optional[Sequence[str]] = None
    setup_types: Optional[Sequence[str]] = None
    pattern_types: Optional[Sequence[str]] = None
    min_pnl: Optional[float] = None
    max_pnl: Optional[float] = None
    has_partial_closes: Optional[bool] = None
    has_setup: Optional[bool] = None
    has_patterns: Optional[bool] = None

    def to_dict(self) -> dict:
        out = {}
        for name in self.__dataclass_fields__:
            value = getattr(self, name)
            if value is None:
                continue
            if name == "date_range" and isinstance(value, (list, tuple)):
                out[name] = [str(v) for v in value]
            else:
                out[name] = _canonical(value)
        return out


@dataclass
class SortCriteria:
    field: str
    direction: SortDirection = SortDirection.ASC

    def to_dict(self) -> dict:
        return {"field": _canonical(self.field), "direction": _canonical(self.direction)}


@dataclass
class PaginationOptions:
    page: int = 1
    page_size: int = 20

    def to_dict(self) -> dict:
        return {"page": _canonical(self.page), "page_size": _canonical(self.page_size)}

    def is_valid(self) -> bool:
        return (
            isinstance(self.page, int) and not isinstance(self.page, bool)
            and isinstance(self.page_size, int) and not isinstance(self.page_size, bool)
            and self.page >= 1 and self.page_size >= 1
        )


@dataclass
class LoadingResult:
    data: List[Trade]
    total_count: int
    has_more: bool = False
    next_page: Optional[int] = None
    load_time: float = 0.0          # milliseconds

    def to_dict(self) -> dict:
        return {
            "data": [t.to_dict() for t in self.data],
            "total_count": self.total_count,
            "has_more": self.has_more,
            "next_page": self.next_page,
            "load_time": self.load_time,
        }


# ─── Predicates ─────────────────────────────────────────────

def _parse_datetime(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value:
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def _is_date_only(value: Any) -> bool:
    return isinstance(value, str) and len(value) == 10 and "T" not in value


def _as_str_set(value: Any) -> Optional[set]:
    if isinstance(value, (str, Enum)):
        value = [value]
    if not isinstance(value, (list, tuple, set, frozenset)):
        return None
    try:
        return {v.value if isinstance(v, Enum) else v for v in value}
    except TypeError:
        return None


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _date_predicate(date_range: Any) -> Optional[Predicate]:
    if not isinstance(date_range, (list, tuple)) or len(date_range) != 2:
        return None
    start = _parse_datetime(date_range[0])
    end = _parse_datetime(date_range[1])
    if start is None or end is None:
        return None
    if _is_date_only(date_range[1]):
        end = end + timedelta(days=1) - timedelta(microseconds=1)

    def check(trade: Trade) -> bool:
        trade_date = _parse_datetime(trade.date)
        if trade_date is None:
            return True
        return start <= trade_date <= end

    return check


def _build_predicates(criteria: FilterCriteria) -> List[Predicate]:
    predicates: List[Predicate] = []

    by_date = _date_predicate(criteria.date_range)
    if by_date is not None:
        predicates.append(by_date)

    statuses = _as_str_set(criteria.status)
    if statuses is not None:
        predicates.append(lambda t: t.status in statuses)

    symbols = _as_str_set(criteria.symbols)
    if symbols is not None:
        predicates.append(lambda t: t.currency_pair in symbols)

    # Type filters only constrain trades that carry the sub-record.
    setup_types = _as_str_set(criteria.setup_types)
    if setup_types is not None:
        predicates.append(lambda t: t.setup is None or t.setup.type in setup_types)

    pattern_types = _as_str_set(criteria.pattern_types)
    if pattern_types is not None:
        predicates.append(
            lambda t: not t.patterns or any(p.type in pattern_types for p in t.patterns)
        )

    if _is_number(criteria.min_pnl):
        min_pnl = criteria.min_pnl
        predicates.append(lambda t: (t.pnl or 0) >= min_pnl)
    if _is_number(criteria.max_pnl):
        max_pnl = criteria.max_pnl
        predicates.append(lambda t: (t.pnl or 0) <= max_pnl)

    if isinstance(criteria.has_partial_closes, bool):
        wanted = criteria.has_partial_closes
        predicates.append(lambda t: bool(t.partial_closes) == wanted)
    if isinstance(criteria.has_setup, bool):
        wanted_setup = criteria.has_setup
        predicates.append(lambda t: (t.setup is not None) == wanted_setup)
    if isinstance(criteria.has_patterns, bool):
        wanted_patterns = criteria.has_patterns
        predicates.append(lambda t: bool(t.patterns) == wanted_patterns)

    return predicates


def apply_filters(trades: Iterable[Trade], criteria: Optional[FilterCriteria]) -> List[Trade]:
    if not isinstance(criteria, FilterCriteria):
        return list(trades)
    predicates = _build_predicates(criteria)
    return [t for t in trades if all(p(t) for p in predicates)]


def _compare(a: Any, b: Any) -> int:
    try:
        if a < b:
            return -1
        if a > b:
            return 1
    except TypeError:
        pass
    return 0


def apply_sorting(trades: Iterable[Trade], sort: Optional[SortCriteria]) -> List[Trade]:
    """Stable sort on ``sort.field``; None values always go last."""
    trades = list(trades)
    if not isinstance(sort, SortCriteria) or not isinstance(sort.field, str):
        return trades
    if sort.field not in Trade.__dataclass_fields__ and sort.field != "symbol":
        return trades
    try:
        direction = SortDirection(sort.direction)
    except ValueError:
        return trades

    defined = [t for t in trades if getattr(t, sort.field, None) is not None]
    missing = [t for t in trades if getattr(t, sort.field, None) is None]
    key = functools.cmp_to_key(lambda a, b: _compare(getattr(a, sort.field), getattr(b, sort.field)))
    ordered = sorted(defined, key=key, reverse=direction is SortDirection.DESC)
    return ordered + missing


# ─── Progressive loading ────────────────────────────────────

class ProgressiveLoad:
    """
    Async iterator over fixed-size batches of an already filtered/sorted list.

    Yields ``(batch, progress)`` with progress in [0, 1] and gives the event
    loop a turn between batches. ``cancel()`` (or setting ``cancel_event``)
    stops iteration before the next batch.
    """

    def __init__(self, trades: List[Trade], batch_size: int,
                 cancel_event: Optional[asyncio.Event] = None):
        self._trades = trades
        self._batch_size = batch_size
        self._cancel_event = cancel_event
        self._cancelled = False
        self._offset = 0
        self.total = len(trades)

    @property
    def cancelled(self) -> bool:
        return self._cancelled or (self._cancel_event is not None and self._cancel_event.is_set())

    @property
    def progress(self) -> float:
        if not self.total:
            return 1.0
        return min(self._offset / self.total, 1.0)

    @property
    def done(self) -> bool:
        return self._offset >= self.total

    def cancel(self) -> None:
        self._cancelled = True

    def __aiter__(self) -> "ProgressiveLoad":
        return self

    async def __anext__(self) -> Tuple[List[Trade], float]:
        if self._offset > 0:
            await asyncio.sleep(0)
        if self.cancelled or self.done:
            raise StopAsyncIteration
        batch = self._trades[self._offset:self._offset + self._batch_size]
        self._offset += len(batch)
        return batch, self.progress


# ─── Service ────────────────────────────────────────────────

class DataLoadingService:
    """
    Filter / sort / paginate an in-memory trade list with memoised results.
    """

    def __init__(self, cache: CacheService, config: Optional[LoadingConfig] = None,
                 monitor: Optional[PerformanceMonitorService] = None):
        self._cache = cache
        self._config = config or LoadingConfig()
        self._monitor = monitor

    @property
    def config(self) -> LoadingConfig:
        return self._config

    @property
    def cache(self) -> CacheService:
        return self._cache

    def _generate_cache_key(self, prefix: str, options: Dict[str, Any]) -> str:
        encoded = json.dumps(options, sort_keys=True, separators=(",", ":"), default=str)
        return f"{prefix}_{hashlib.sha256(encoded.encode()).hexdigest()[:32]}"

    def _prepare(self, all_trades: Sequence[Trade], filter: Optional[FilterCriteria],
                 sort: Optional[SortCriteria]) -> List[Trade]:
        trades = list(all_trades)
        if filter is not None and self._config.enable_filtering:
            trades = apply_filters(trades, filter)
        if sort is not None and self._config.enable_sorting:
            trades = apply_sorting(trades, sort)
        return trades

    async def load_trades(
        self,
        all_trades: Sequence[Trade],
        filter: Optional[FilterCriteria] = None,
        sort: Optional[SortCriteria] = None,
        pagination: Optional[PaginationOptions] = None,
    ) -> LoadingResult:
        started = time.perf_counter()
        cache_key = self._generate_cache_key(TRADES_TAG, {
            "filter": filter.to_dict() if isinstance(filter, FilterCriteria) else None,
            "sort": sort.to_dict() if isinstance(sort, SortCriteria) else None,
            "pagination": pagination.to_dict() if isinstance(pagination, PaginationOptions) else None,
            "trades": self._cache.get_trades_hash(all_trades),
            "config": self._config.to_dict(),
        })

        cached = self._cache.get(cache_key)
        if cached is not None:
            return cached

        trades = self._prepare(all_trades, filter, sort)
        total_count = len(trades)
        page_data = trades
        has_more = False
        next_page = None

        if (self._config.enable_pagination and isinstance(pagination, PaginationOptions)
                and pagination.is_valid()):
            start = (pagination.page - 1) * pagination.page_size
            end = start + pagination.page_size
            page_data = trades[start:end]
            has_more = end < total_count
            next_page = pagination.page + 1 if has_more else None

        result = LoadingResult(
            data=page_data,
            total_count=total_count,
            has_more=has_more,
            next_page=next_page,
            load_time=(time.perf_counter() - started) * 1000,
        )
        self._cache.set(cache_key, result, [TRADES_TAG])

        if self._monitor is not None:
            self._monitor.record_metric_value(
                MetricName.DATA_LOAD_TIME, result.load_time, MetricCategory.DATA,
                {"operation": "load_trades", "total_count": total_count},
            )
        return result

    def iter_batches(
        self,
        all_trades: Sequence[Trade],
        filter: Optional[FilterCriteria] = None,
        sort: Optional[SortCriteria] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> ProgressiveLoad:
        trades = self._prepare(all_trades, filter, sort)
        return ProgressiveLoad(trades, self._config.batch_size, cancel_event)

    async def load_trades_progressively(
        self,
        all_trades: Sequence[Trade],
        on_batch_loaded: BatchCallback,
        filter: Optional[FilterCriteria] = None,
        sort: Optional[SortCriteria] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> List[Trade]:
        """Deliver trades in batches, reporting cumulative progress after each."""
        loader = self.iter_batches(all_trades, filter, sort, cancel_event)
        loaded: List[Trade] = []
        async for batch, progress in loader:
            loaded.extend(batch)
            outcome = on_batch_loaded(batch, progress)
            if inspect.isawaitable(outcome):
                await outcome
        if loader.cancelled and not loader.done:
            logger.info("progressive_load_cancelled", loaded=len(loaded), total=loader.total)
        return loaded

    async def load_trade_on_demand(self, trade_id: str,
                                   all_trades: Sequence[Trade]) -> Optional[Trade]:
        return await self._cache.get_or_compute(
            CacheKeys.trade(trade_id),
            lambda: _find_trade(all_trades, trade_id),
            [TRADES_TAG],
        )

    async def batch_load_trades(self, trade_ids: Sequence[str],
                                all_trades: Sequence[Trade]) -> Dict[str, Optional[Trade]]:
        operations = [
            CacheOperation(
                key=CacheKeys.trade(trade_id),
                compute_fn=functools.partial(_find_trade, all_trades, trade_id),
                tags=[TRADES_TAG],
            )
            for trade_id in trade_ids
        ]
        results = await self._cache.batch_get_or_compute(operations)
        return dict(zip(trade_ids, results))

    def clear_cache(self, pattern: Optional[str] = None) -> int:
        if pattern:
            return self._cache.clear_matching(pattern)
        return self._cache.clear(TRADES_TAG)

    def get_stats(self) -> dict:
        return {
            "cache_size": len(self._cache),
            "pending_loads": self._cache.pending_count,
            "config": self._config.to_dict(),
        }


def _find_trade(trades: Sequence[Trade], trade_id: str) -> Optional[Trade]:
    return next((t for t in trades if t.id == trade_id), None)
