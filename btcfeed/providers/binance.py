from __future__ import annotations

import logging
import math
from typing import Any, List, Optional, Union

import httpx
from pydantic import ValidationError

from btcfeed.errors import DecodeError, FetchError
from btcfeed.models.binance import KlineMessage, TradeMessage
from btcfeed.models.market import KlineRecord
from btcfeed.providers.base import MarketDataProvider

log = logging.getLogger("binance_provider")

# Interval length in minutes -> Binance interval code
INTERVAL_CODES = {
    1: "1m",
    3: "3m",
    5: "5m",
    15: "15m",
    30: "30m",
    60: "1h",
    120: "2h",
    240: "4h",
    360: "6h",
    480: "8h",
    720: "12h",
    1440: "1d",
}


def interval_code(minutes: int) -> str:
    try:
        return INTERVAL_CODES[minutes]
    except KeyError:
        raise ValueError(
            f"Unsupported kline interval {minutes}m. Expected one of: {sorted(INTERVAL_CODES)}"
        ) from None


class BinanceProvider(MarketDataProvider):
    """
    Binance spot market data (REST + WS), public endpoints only.

    REST:
    - GET /api/v3/klines for the startup history window

    WS:
    - <symbol>@trade for the last traded price
    - <symbol>@kline_<interval> for live candle updates
    """

    def __init__(
        self,
        rest_url: str = "https://api.binance.com",
        ws_url: str = "wss://stream.binance.com:9443/ws",
        timeout_s: float = 10.0,
        client: Optional[httpx.Client] = None,
    ) -> None:
        self.rest_url = rest_url.rstrip("/")
        self.ws_url = ws_url.rstrip("/")
        self._client = client or httpx.Client(timeout=httpx.Timeout(timeout_s))

    def close(self) -> None:
        self._client.close()

    # -------------------------
    # Public interface used by the app
    # -------------------------
    def trade_stream_url(self, symbol: str) -> str:
        return f"{self.ws_url}/{symbol.lower()}@trade"

    def kline_stream_url(self, symbol: str, interval: str) -> str:
        return f"{self.ws_url}/{symbol.lower()}@kline_{interval}"

    def fetch_klines(
        self,
        symbol: str,
        interval: str,
        start_ms: int,
        end_ms: int,
        limit: int,
    ) -> List[KlineRecord]:
        """
        Binance kline endpoint:
          GET {rest_url}/api/v3/klines?symbol=BTCUSDT&interval=1m&startTime=..&endTime=..&limit=..

        Raises FetchError on transport failure or non-2xx status,
        DecodeError if any row has an unexpected shape (the whole batch is rejected).
        """
        url = f"{self.rest_url}/api/v3/klines"
        params = {
            "symbol": symbol.upper(),
            "interval": interval,
            "startTime": str(start_ms),
            "endTime": str(end_ms),
            "limit": str(limit),
        }

        try:
            resp = self._client.get(url, params=params)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise FetchError(f"Kline history request failed: {e!r}") from e

        if not resp.is_success:
            raise FetchError(
                f"Kline history request failed with HTTP {resp.status_code}",
                status_code=resp.status_code,
            )

        try:
            data = resp.json()
        except ValueError as e:
            raise DecodeError("Kline history response is not JSON") from e

        return parse_kline_rows(data)


# -------------------------
# Decoding
# -------------------------
def parse_kline_rows(data: Any) -> List[KlineRecord]:
    """
    REST rows are positional arrays:
      [openTime, open, high, low, close, volume, closeTime, quoteVolume, trades, ...]
    """
    if not isinstance(data, list):
        raise DecodeError(f"Expected a JSON array of klines, got {type(data).__name__}")

    out: List[KlineRecord] = []
    for i, row in enumerate(data):
        if not isinstance(row, list) or len(row) < 7:
            raise DecodeError(f"Kline row {i} has unexpected shape: {row!r}")
        try:
            out.append(
                KlineRecord(
                    open_time=_as_int(row[0]),
                    close_time=_as_int(row[6]),
                    open=_as_float(row[1]),
                    high=_as_float(row[2]),
                    low=_as_float(row[3]),
                    close=_as_float(row[4]),
                    volume=_as_float(row[5]),
                )
            )
        except (TypeError, ValueError) as e:
            raise DecodeError(f"Kline row {i} has non-numeric fields: {row!r}") from e
    return out


def _as_int(v: Any) -> int:
    # bool is an int subclass; a timestamp never is
    if isinstance(v, bool) or not isinstance(v, (int, str)):
        raise TypeError(f"expected integer timestamp, got {v!r}")
    return int(v)


def _as_float(v: Any) -> float:
    out = float(v)
    if not math.isfinite(out):
        raise ValueError(f"expected a finite number, got {v!r}")
    return out


def decode_trade_price(raw: Union[str, bytes]) -> Union[str, DecodeError]:
    """Returns the trade price string, or a DecodeError describing why the message was unusable."""
    try:
        return TradeMessage.model_validate_json(raw).price
    except ValidationError as e:
        return DecodeError(f"Bad trade message: {_first_error(e)}")


def decode_kline(raw: Union[str, bytes]) -> Union[KlineRecord, DecodeError]:
    """Returns the candle carried by a kline event, or a DecodeError."""
    try:
        k = KlineMessage.model_validate_json(raw).kline
    except ValidationError as e:
        return DecodeError(f"Bad kline message: {_first_error(e)}")

    return KlineRecord(
        open_time=k.open_time,
        close_time=k.close_time,
        open=k.open,
        high=k.high,
        low=k.low,
        close=k.close,
        volume=k.volume,
    )


def _first_error(e: ValidationError) -> str:
    errors = e.errors()
    if not errors:
        return str(e)
    first = errors[0]
    loc = ".".join(str(p) for p in first.get("loc", ())) or "<root>"
    return f"{loc}: {first.get('msg')}"
