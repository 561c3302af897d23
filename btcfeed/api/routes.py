from __future__ import annotations

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from btcfeed.client import StreamClient

router = APIRouter()

# A 1m series that has not moved for 90s is stale.
SERIES_MAX_AGE_SECONDS = 90


def get_client(request: Request) -> StreamClient:
    return request.app.state.client


def iso(dt: Optional[datetime]) -> Optional[str]:
    return dt.isoformat() if dt else None


@router.get("/price")
def price(client: StreamClient = Depends(get_client)):
    return {
        "price": client.current_price.value,
        "status": client.connection_status.value,
    }


@router.get("/series")
def series(
    limit: int = Query(100, ge=1, le=1000, description="Newest N candles to return"),
    client: StreamClient = Depends(get_client),
):
    candles = client.current_series.value[-limit:]
    return {
        "symbol": client.settings.symbol,
        "count": len(candles),
        "candles": [c.to_dict() for c in candles],
    }


@router.get("/snapshot")
def snapshot(client: StreamClient = Depends(get_client)):
    """
    Snapshot:
    - how many candles we hold and when the series last changed
    - whether the series is fresh
    - where each live stream is in its lifecycle
    """
    store = client.store
    latest = store.latest()

    return {
        "symbol": client.settings.symbol,
        "connected": client.is_connected,
        "status": client.connection_status.value,
        "candles": len(store),
        "max_candles": store.max_candles,
        "latest_open_time": latest.open_time if latest else None,
        "last_updated": iso(store.get_last_updated()),
        "fresh": store.is_fresh(SERIES_MAX_AGE_SECONDS),
        "max_age_seconds": SERIES_MAX_AGE_SECONDS,
        "streams": {
            "trade": {
                "state": client.trade_stream.state.value,
                "messages": client.trade_stream.messages_received,
                "dropped": client.trade_stream.dropped,
            },
            "kline": {
                "state": client.kline_stream.state.value,
                "messages": client.kline_stream.messages_received,
                "dropped": client.kline_stream.dropped,
            },
        },
    }
