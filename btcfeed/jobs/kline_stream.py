from __future__ import annotations

from typing import Optional, Tuple, Union

from btcfeed.candles.store import SeriesStore
from btcfeed.errors import DecodeError, TransportClosed, TransportError
from btcfeed.jobs.stream import ConnectFactory, WebSocketStream
from btcfeed.models.market import KlineRecord
from btcfeed.providers.binance import decode_kline
from btcfeed.state import Observable


class KlineStream(WebSocketStream):
    """
    Live candle subscription -> merged into the series store.

    Each event carries the full current state of one candle. While a candle is
    still open Binance keeps re-sending it with the same open time, so the
    store replaces it in place; the first event of the next minute appends.
    """

    name = "kline_stream"

    def __init__(
        self,
        url: str,
        store: SeriesStore,
        series: Observable[Tuple[KlineRecord, ...]],
        status: Observable[str],
        connect: Optional[ConnectFactory] = None,
        ping_interval: float = 20.0,
        ping_timeout: float = 20.0,
    ) -> None:
        super().__init__(url, connect=connect, ping_interval=ping_interval, ping_timeout=ping_timeout)
        self.store = store
        self.series = series
        self.status = status
        self.dropped = 0

    def handle_message(self, raw: Union[str, bytes]) -> None:
        result = decode_kline(raw)
        if isinstance(result, DecodeError):
            self.dropped += 1
            self.log.warning("Dropping kline message: %s", result)
            return

        replaced = self.store.merge(result)
        snapshot = self.store.snapshot()
        self.series.set(snapshot)

        if replaced:
            self.status.set(f"Kline updated ({len(snapshot)} candles)")
        else:
            self.log.info("New kline open_time=%d count=%d", result.open_time, len(snapshot))
            self.status.set(f"New kline added ({len(snapshot)} candles)")

    def on_open(self) -> None:
        self.status.set("Live klines connected")

    def on_failed(self, error: TransportError) -> None:
        self.status.set("Kline connection failed")

    def on_closed(self, error: TransportClosed) -> None:
        self.status.set("Kline connection closed")
