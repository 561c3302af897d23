from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime, timezone


def ms_to_dt(ms: int) -> datetime:
    return datetime.fromtimestamp(ms / 1000.0, tz=timezone.utc)


@dataclass(frozen=True)
class KlineRecord:
    """
    KlineRecord = one OHLCV candle for a fixed interval (1 minute by default).

    open_time: epoch millis of the candle window start (identity key)
    close_time: epoch millis of the last millisecond in the window
    open/high/low/close: prices during the window
    volume: traded base-asset volume during the window
    """
    open_time: int
    close_time: int
    open: float
    high: float
    low: float
    close: float
    volume: float

    @property
    def open_dt(self) -> datetime:
        return ms_to_dt(self.open_time)

    @property
    def close_dt(self) -> datetime:
        return ms_to_dt(self.close_time)

    def to_dict(self) -> dict:
        return asdict(self)
