from __future__ import annotations

import re

from pydantic import BaseModel, ConfigDict, Field, field_validator


# Plain non-negative decimal as Binance sends it: "67123.45000000"
DECIMAL_RE = re.compile(r"^\d+(\.\d+)?$")


class TradeMessage(BaseModel):
    """
    Binance <symbol>@trade event.

    Only the price is read. Binance sends it as a string-encoded decimal
    ("67123.45"); it is kept as the original string so the published price
    is exactly what the exchange sent.
    """

    model_config = ConfigDict(extra="ignore")

    price: str = Field(alias="p")

    @field_validator("price", mode="before")
    @classmethod
    def _numeric_string(cls, v):
        if not isinstance(v, str) or not DECIMAL_RE.match(v.strip()):
            raise ValueError("price must be a string-encoded decimal")
        return v.strip()


class KlinePayload(BaseModel):
    model_config = ConfigDict(extra="ignore", allow_inf_nan=False)

    open_time: int = Field(alias="t")
    close_time: int = Field(alias="T")
    open: float = Field(alias="o")
    high: float = Field(alias="h")
    low: float = Field(alias="l")
    close: float = Field(alias="c")
    volume: float = Field(alias="v")


class KlineMessage(BaseModel):
    """
    Binance <symbol>@kline_<interval> event:
      {"e": "kline", "E": ..., "s": "BTCUSDT", "k": {"t": ..., "T": ..., "o": "...", ...}}
    """

    model_config = ConfigDict(extra="ignore")

    kline: KlinePayload = Field(alias="k")
