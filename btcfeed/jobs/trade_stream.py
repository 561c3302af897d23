from __future__ import annotations

from typing import Optional, Union

from btcfeed.errors import DecodeError, TransportClosed, TransportError
from btcfeed.jobs.stream import ConnectFactory, WebSocketStream
from btcfeed.providers.binance import decode_trade_price
from btcfeed.state import Observable

PRICE_CONNECTING = "Connecting..."
PRICE_CONNECTED = "Connected"
PRICE_CLOSED = "Connection closed"


class TradeStream(WebSocketStream):
    """
    Trade tick subscription -> last traded price.

    Publishes "<price> <suffix>" (e.g. "67123.45 USD") for every trade, plus
    placeholder strings on open / failure / close.
    """

    name = "trade_stream"

    def __init__(
        self,
        url: str,
        price: Observable[str],
        status: Observable[str],
        connect: Optional[ConnectFactory] = None,
        price_suffix: str = "USD",
        ping_interval: float = 20.0,
        ping_timeout: float = 20.0,
    ) -> None:
        super().__init__(url, connect=connect, ping_interval=ping_interval, ping_timeout=ping_timeout)
        self.price = price
        self.status = status
        self.price_suffix = price_suffix
        self.dropped = 0

    def handle_message(self, raw: Union[str, bytes]) -> None:
        result = decode_trade_price(raw)
        if isinstance(result, DecodeError):
            self.dropped += 1
            self.log.warning("Dropping trade message: %s", result)
            return
        self.price.set(f"{result} {self.price_suffix}")

    def on_open(self) -> None:
        self.price.set(PRICE_CONNECTED)
        self.status.set("Live price connected")

    def on_failed(self, error: TransportError) -> None:
        self.price.set(f"Connection failed: {error}")

    def on_closed(self, error: TransportClosed) -> None:
        self.price.set(PRICE_CLOSED)
