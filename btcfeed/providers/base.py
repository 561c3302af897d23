from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List

from btcfeed.models.market import KlineRecord


class MarketDataProvider(ABC):
    """
    Provider contract (interface).

    Any provider must implement:
    - fetch_klines(): historical candles via REST (blocking)
    - trade_stream_url() / kline_stream_url(): WebSocket endpoints for live data
    """

    @abstractmethod
    def fetch_klines(
        self,
        symbol: str,
        interval: str,
        start_ms: int,
        end_ms: int,
        limit: int,
    ) -> List[KlineRecord]:
        raise NotImplementedError

    @abstractmethod
    def trade_stream_url(self, symbol: str) -> str:
        raise NotImplementedError

    @abstractmethod
    def kline_stream_url(self, symbol: str, interval: str) -> str:
        raise NotImplementedError

    def close(self) -> None:
        """Release network resources. Default: nothing to release."""
