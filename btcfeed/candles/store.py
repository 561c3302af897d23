from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Iterable, List, Optional, Tuple

from btcfeed.models.market import KlineRecord


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class SeriesStore:
    """
    In-memory candle series + freshness tracking.

    candles      -> ordered by arrival/update, at most max_candles long
    last_updated -> when we last wrote to the series
      - set by replace_history when the REST history is installed
      - set by merge on every kline stream update

    Every method takes the lock, so one writer at a time and snapshots
    can be read from any thread.
    """
    max_candles: int = 100
    candles: List[KlineRecord] = field(default_factory=list)
    last_updated: Optional[datetime] = None
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def __post_init__(self) -> None:
        if self.max_candles < 1:
            raise ValueError("max_candles must be at least 1")

    def touch(self) -> None:
        """Mark the series as updated right now. Caller holds the lock."""
        self.last_updated = utcnow()

    def replace_history(self, records: Iterable[KlineRecord]) -> None:
        """Replace the series with `records`, keeping only the newest max_candles."""
        records = list(records)
        with self._lock:
            self.candles = records[-self.max_candles:]
            self.touch()

    def merge(self, record: KlineRecord) -> bool:
        """
        Merge one candle update.

        - search from the newest end for a candle with the same open_time
        - found: replace it in place (the still-open candle getting a new tick)
        - not found: append, then evict the oldest if we are over the cap

        Returns True when an existing candle was replaced.
        """
        with self._lock:
            for idx in range(len(self.candles) - 1, -1, -1):
                if self.candles[idx].open_time == record.open_time:
                    self.candles[idx] = record
                    self.touch()
                    return True

            self.candles.append(record)
            if len(self.candles) > self.max_candles:
                del self.candles[0]
            self.touch()
            return False

    def snapshot(self) -> Tuple[KlineRecord, ...]:
        with self._lock:
            return tuple(self.candles)

    def latest(self) -> Optional[KlineRecord]:
        with self._lock:
            return self.candles[-1] if self.candles else None

    def __len__(self) -> int:
        with self._lock:
            return len(self.candles)

    def get_last_updated(self) -> Optional[datetime]:
        with self._lock:
            return self.last_updated

    def is_fresh(self, max_age_seconds: int) -> bool:
        """
        Freshness check:
        - Must have some data
        - last_updated must be within max_age_seconds
        """
        with self._lock:
            if not self.candles or self.last_updated is None:
                return False
            return (utcnow() - self.last_updated) <= timedelta(seconds=max_age_seconds)
