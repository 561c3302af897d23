from __future__ import annotations

import asyncio
import logging
import traceback
from typing import List, Optional, Tuple

from btcfeed.candles.store import SeriesStore
from btcfeed.config import Settings
from btcfeed.errors import DecodeError, FetchError
from btcfeed.jobs.history_loader import load_history
from btcfeed.jobs.kline_stream import KlineStream
from btcfeed.jobs.stream import ConnectFactory, StreamState
from btcfeed.jobs.trade_stream import PRICE_CONNECTING, TradeStream
from btcfeed.models.market import KlineRecord
from btcfeed.providers.base import MarketDataProvider
from btcfeed.providers.binance import interval_code
from btcfeed.state import Observable

log = logging.getLogger("stream_client")

STATUS_INITIALIZING = "Initializing..."


class StreamClient:
    """
    Owns the series store, the two live streams and the published state.

    Published (Observable) state:
    - current_price: "<price> USD" or a connection placeholder
    - current_series: immutable tuple snapshot of the candle series
    - connection_status: human-readable lifecycle stage

    connect() loads the REST history first, then starts the trade and kline
    streams as background tasks. Feed failures never raise out of connect()
    or disconnect(); they show up in the observables instead.
    """

    def __init__(
        self,
        provider: MarketDataProvider,
        settings: Settings,
        store: Optional[SeriesStore] = None,
        connect: Optional[ConnectFactory] = None,
        close_timeout: float = 5.0,
    ) -> None:
        self.provider = provider
        self.settings = settings
        self.store = store if store is not None else SeriesStore(max_candles=settings.max_candles)
        self.close_timeout = close_timeout

        self.current_price: Observable[str] = Observable(PRICE_CONNECTING)
        self.current_series: Observable[Tuple[KlineRecord, ...]] = Observable(self.store.snapshot())
        self.connection_status: Observable[str] = Observable(STATUS_INITIALIZING)

        interval = interval_code(settings.kline_interval_minutes)
        self.trade_stream = TradeStream(
            provider.trade_stream_url(settings.symbol),
            price=self.current_price,
            status=self.connection_status,
            connect=connect,
            price_suffix=settings.price_suffix,
            ping_interval=settings.ws_ping_interval_seconds,
            ping_timeout=settings.ws_ping_timeout_seconds,
        )
        self.kline_stream = KlineStream(
            provider.kline_stream_url(settings.symbol, interval),
            store=self.store,
            series=self.current_series,
            status=self.connection_status,
            connect=connect,
            ping_interval=settings.ws_ping_interval_seconds,
            ping_timeout=settings.ws_ping_timeout_seconds,
        )

        self._connected = False
        self._tasks: List[asyncio.Task] = []
        # Bumped by every connect() and disconnect(); a connect() whose
        # generation is stale must not start streams.
        self._generation = 0
        self._lifecycle_lock = asyncio.Lock()

    @property
    def is_connected(self) -> bool:
        return self._connected

    async def connect(self) -> None:
        if self._connected:
            log.warning("connect() called while already connected; ignoring")
            return
        self._connected = True
        self._generation += 1
        generation = self._generation

        await self._load_history(generation)

        # disconnect() (and maybe a newer connect()) may have run while the
        # history request was in flight
        if not self._is_current(generation):
            log.info("Disconnected during history load; not starting streams")
            return

        # Wait for a disconnect() that is still tearing down the previous streams.
        async with self._lifecycle_lock:
            if not self._is_current(generation):
                return
            self._tasks = [
                asyncio.create_task(self.trade_stream.run(), name="trade_stream"),
                asyncio.create_task(self.kline_stream.run(), name="kline_stream"),
            ]
        self.connection_status.set("Streams started")

    def _is_current(self, generation: int) -> bool:
        return self._connected and generation == self._generation

    async def _load_history(self, generation: int) -> None:
        s = self.settings
        self.connection_status.set("Loading history...")

        try:
            candles = await asyncio.to_thread(
                load_history,
                self.provider,
                s.symbol,
                interval_minutes=s.kline_interval_minutes,
                lookback_minutes=s.history_lookback_minutes,
                limit=s.history_limit,
            )
        except (FetchError, DecodeError) as e:
            # Streams still start; a chart without history beats no chart.
            log.error("History load failed symbol=%s error=%r", s.symbol, e)
            self._history_failed(generation)
            return
        except Exception as e:
            log.error("History load crashed symbol=%s error=%r", s.symbol, e)
            log.error(traceback.format_exc())
            self._history_failed(generation)
            return

        if not self._is_current(generation):
            return

        self.store.replace_history(candles)
        snapshot = self.store.snapshot()
        self.current_series.set(snapshot)
        self.connection_status.set(f"History loaded ({len(snapshot)} candles)")

    def _history_failed(self, generation: int) -> None:
        if self._is_current(generation):
            self.connection_status.set("History load failed")

    async def disconnect(self) -> None:
        if not self._connected:
            return
        self._connected = False
        self._generation += 1

        async with self._lifecycle_lock:
            tasks, self._tasks = self._tasks, []
            await asyncio.gather(self.trade_stream.close(), self.kline_stream.close())

            # A stream still in its handshake has no socket to close yet.
            for stream, task in zip((self.trade_stream, self.kline_stream), tasks):
                if stream.state in (StreamState.IDLE, StreamState.CONNECTING):
                    task.cancel()

            if tasks:
                _, pending = await asyncio.wait(tasks, timeout=self.close_timeout)
                for task in pending:
                    task.cancel()
                if pending:
                    await asyncio.gather(*pending, return_exceptions=True)

        self.connection_status.set("Disconnected")
        log.info("Disconnected")

    def close(self) -> None:
        self.provider.close()
