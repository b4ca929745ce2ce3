"""TTL cache for route results with at-most-one computation per key."""

from __future__ import annotations

import hashlib
import json
import logging
import time
from collections import OrderedDict
from concurrent.futures import Future
from dataclasses import asdict, dataclass
from datetime import datetime
from threading import Lock
from typing import Callable, Iterable

from ...config import settings
from ...models.domain import Coordinate, Hazard, RiskZone
from .models import RouteOptions, RouteResult, RouteType

logger = logging.getLogger(__name__)


@dataclass
class _RouteCacheEntry:
    inserted_at: float
    value: RouteResult


class RouteCache:
    """Thread-safe LRU cache whose entries expire after ``ttl_s`` seconds.

    Concurrent ``get_or_compute`` calls for the same key share one computation:
    the first caller computes, the others wait on its result. Results are
    published only after the computation succeeds.
    """

    def __init__(
        self,
        *,
        ttl_s: int,
        max_entries: int,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl_s = max(1, int(ttl_s))
        self._max_entries = max(1, int(max_entries))
        self._clock = clock
        self._lock = Lock()
        self._items: OrderedDict[str, _RouteCacheEntry] = OrderedDict()
        self._inflight: dict[str, Future] = {}

        self._hits = 0
        self._misses = 0
        self._evictions = 0

    def _is_expired(self, entry: _RouteCacheEntry) -> bool:
        return (self._clock() - entry.inserted_at) > self._ttl_s

    def get(self, key: str) -> RouteResult | None:
        with self._lock:
            return self._lookup(key)

    def _lookup(self, key: str) -> RouteResult | None:
        entry = self._items.get(key)
        if entry is None:
            return None
        if self._is_expired(entry):
            self._items.pop(key, None)
            return None
        self._items.move_to_end(key)
        return entry.value

    def set(self, key: str, value: RouteResult) -> None:
        with self._lock:
            self._store(key, value)

    def _store(self, key: str, value: RouteResult) -> None:
        if key in self._items:
            self._items.move_to_end(key)
        self._items[key] = _RouteCacheEntry(inserted_at=self._clock(), value=value)
        while len(self._items) > self._max_entries:
            self._items.popitem(last=False)
            self._evictions += 1

    def get_or_compute(self, key: str, compute: Callable[[], RouteResult]) -> RouteResult:
        with self._lock:
            cached = self._lookup(key)
            if cached is not None:
                self._hits += 1
                logger.debug(f"Route cache hit for {key[:12]}")
                return cached
            pending = self._inflight.get(key)
            if pending is None:
                self._misses += 1
                pending = Future()
                self._inflight[key] = pending
                owner = True
            else:
                self._hits += 1
                owner = False

        if not owner:
            logger.debug(f"Waiting on in-flight route computation for {key[:12]}")
            return pending.result()

        try:
            value = compute()
        except BaseException as exc:
            with self._lock:
                self._inflight.pop(key, None)
            pending.set_exception(exc)
            raise

        with self._lock:
            self._store(key, value)
            self._inflight.pop(key, None)
        pending.set_result(value)
        return value

    def clear(self) -> int:
        with self._lock:
            cleared = len(self._items)
            self._items.clear()
            return cleared

    def snapshot(self) -> dict[str, int]:
        with self._lock:
            return {
                "size": len(self._items),
                "hits": self._hits,
                "misses": self._misses,
                "evictions": self._evictions,
                "in_flight": len(self._inflight),
                "ttl_s": self._ttl_s,
                "max_entries": self._max_entries,
            }


def build_cache_key(
    origin: Coordinate,
    destination: Coordinate,
    route_type: RouteType,
    zones: Iterable[RiskZone],
    hazards: Iterable[Hazard],
    at_time: datetime,
    options: RouteOptions,
) -> str:
    """Stable hash of every routing input; ``at_time`` is bucketed to the minute."""

    payload = {
        "origin": origin.as_pair(),
        "destination": destination.as_pair(),
        "route_type": RouteType(route_type).value,
        "zones": [asdict(zone) for zone in zones],
        "hazards": [asdict(hazard) for hazard in hazards],
        "at_time": at_time.replace(second=0, microsecond=0).isoformat(),
        "options": asdict(options),
    }
    encoded = json.dumps(payload, sort_keys=True, default=str)
    return hashlib.sha256(encoded.encode("utf-8")).hexdigest()


ROUTE_CACHE = RouteCache(
    ttl_s=settings.route_cache_ttl_seconds,
    max_entries=settings.route_cache_max_entries,
)


def clear_route_cache() -> int:
    return ROUTE_CACHE.clear()


def route_cache_stats() -> dict[str, int]:
    return ROUTE_CACHE.snapshot()
