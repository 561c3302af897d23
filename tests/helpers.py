from __future__ import annotations

import asyncio
import json
from typing import Callable, Dict, List, Optional

from btcfeed.config import Settings
from btcfeed.models.market import KlineRecord
from btcfeed.providers.base import MarketDataProvider

_CLOSE = object()


def make_settings(**overrides) -> Settings:
    values = dict(
        app_env="test",
        log_level="INFO",
        provider="BINANCE",
        symbol="BTCUSDT",
        binance_rest_url="https://api.binance.com",
        binance_ws_url="wss://stream.binance.com:9443/ws",
        http_timeout_seconds=10.0,
        ws_ping_interval_seconds=20.0,
        ws_ping_timeout_seconds=20.0,
        kline_interval_minutes=1,
        history_lookback_minutes=30,
        history_limit=30,
        max_candles=100,
        price_suffix="USD",
    )
    values.update(overrides)
    return Settings(**values)


def candle(open_time: int, close: float = 100.0, volume: float = 1.0) -> KlineRecord:
    return KlineRecord(
        open_time=open_time,
        close_time=open_time + 59,
        open=100.0,
        high=max(100.0, close),
        low=min(100.0, close),
        close=close,
        volume=volume,
    )


def kline_event(open_time: int, close: str = "100.0", volume: str = "1.0") -> str:
    return json.dumps(
        {
            "e": "kline",
            "E": open_time + 1,
            "s": "BTCUSDT",
            "k": {
                "t": open_time,
                "T": open_time + 59,
                "s": "BTCUSDT",
                "i": "1m",
                "o": "100.0",
                "h": "101.0",
                "l": "99.0",
                "c": close,
                "v": volume,
                "x": False,
            },
        }
    )


def trade_event(price: str) -> str:
    return json.dumps({"e": "trade", "E": 1, "s": "BTCUSDT", "t": 12345, "p": price, "q": "0.01"})


class FakeConnection:
    """In-memory stand-in for a websockets client connection."""

    def __init__(self, fail_on_open: Optional[BaseException] = None) -> None:
        self.queue: asyncio.Queue = asyncio.Queue()
        self.fail_on_open = fail_on_open
        self.close_code: Optional[int] = None

    async def __aenter__(self):
        if self.fail_on_open is not None:
            raise self.fail_on_open
        return self

    async def __aexit__(self, *exc) -> bool:
        return False

    def __aiter__(self):
        return self

    async def __anext__(self):
        item = await self.queue.get()
        if item is _CLOSE:
            raise StopAsyncIteration
        if isinstance(item, BaseException):
            raise item
        return item

    def feed(self, raw) -> None:
        self.queue.put_nowait(raw)

    def fail(self, exc: BaseException) -> None:
        self.queue.put_nowait(exc)

    def server_close(self) -> None:
        self.queue.put_nowait(_CLOSE)

    async def close(self, code: int = 1000, reason: str = "") -> None:
        self.close_code = code
        self.queue.put_nowait(_CLOSE)


class FakeConnector:
    """Callable with the websockets.connect signature; hands out FakeConnections."""

    def __init__(self, fail_on_open: Optional[Dict[str, BaseException]] = None) -> None:
        self.fail_on_open = fail_on_open or {}
        self.calls: List[tuple] = []
        self.connections: Dict[str, List[FakeConnection]] = {}

    def __call__(self, url: str, **kwargs) -> FakeConnection:
        self.calls.append((url, kwargs))
        failure = next((exc for key, exc in self.fail_on_open.items() if key in url), None)
        conn = FakeConnection(fail_on_open=failure)
        self.connections.setdefault(url, []).append(conn)
        return conn

    def latest(self, needle: str) -> FakeConnection:
        for url, conns in self.connections.items():
            if needle in url:
                return conns[-1]
        raise AssertionError(f"no connection opened for {needle!r}; have {list(self.connections)}")


class FakeProvider(MarketDataProvider):
    def __init__(self, candles: Optional[List[KlineRecord]] = None, error: Optional[Exception] = None) -> None:
        self.candles = candles or []
        self.error = error
        self.calls: List[tuple] = []
        self.closed = False

    def fetch_klines(self, symbol, interval, start_ms, end_ms, limit):
        self.calls.append((symbol, interval, start_ms, end_ms, limit))
        if self.error is not None:
            raise self.error
        return list(self.candles)

    def trade_stream_url(self, symbol: str) -> str:
        return f"wss://test/ws/{symbol.lower()}@trade"

    def kline_stream_url(self, symbol: str, interval: str) -> str:
        return f"wss://test/ws/{symbol.lower()}@kline_{interval}"

    def close(self) -> None:
        self.closed = True


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.001)
