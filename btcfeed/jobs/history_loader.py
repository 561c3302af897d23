from __future__ import annotations

import logging
import time
from typing import List, Optional

from btcfeed.models.market import KlineRecord
from btcfeed.providers.base import MarketDataProvider
from btcfeed.providers.binance import interval_code

log = logging.getLogger("history_loader")


def now_ms() -> int:
    return int(time.time() * 1000)


def load_history(
    provider: MarketDataProvider,
    symbol: str,
    interval_minutes: int = 1,
    lookback_minutes: int = 30,
    limit: int = 30,
    now: Optional[int] = None,
) -> List[KlineRecord]:
    """
    One-shot fetch of the recent kline window used to seed the series.

    The window is [now - lookback_minutes, now] in epoch millis. This is a
    blocking call; run it in a worker thread from async code.

    Raises FetchError / DecodeError from the provider. Installing the result
    into a SeriesStore is the caller's job.
    """
    end_ms = now if now is not None else now_ms()
    start_ms = end_ms - lookback_minutes * 60_000
    interval = interval_code(interval_minutes)

    candles = provider.fetch_klines(symbol, interval, start_ms, end_ms, limit)
    log.info(
        "Fetched kline history symbol=%s interval=%s count=%d",
        symbol,
        interval,
        len(candles),
    )
    return candles
