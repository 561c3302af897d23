from __future__ import annotations

import os
import sys

# Add repo root to Python import path so `import btcfeed...` works
sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

import json
import random
import time

from btcfeed.candles.store import SeriesStore
from btcfeed.errors import DecodeError
from btcfeed.providers.binance import decode_kline


def kline_message(open_time: int, o: float, h: float, l: float, c: float, v: float) -> str:
    return json.dumps(
        {
            "e": "kline",
            "s": "BTCUSDT",
            "k": {
                "t": open_time,
                "T": open_time + 59_999,
                "o": f"{o:.2f}",
                "h": f"{h:.2f}",
                "l": f"{l:.2f}",
                "c": f"{c:.2f}",
                "v": f"{v:.5f}",
            },
        }
    )


def run(minutes: int = 8, updates_per_minute: int = 6, max_candles: int = 5) -> None:
    """
    Generates fake kline events and merges them the way the live stream does.

    - Each simulated minute gets several updates with the same open time
      (Binance re-sends the still-open candle), then the next minute starts.
    - Price does a random walk.
    - Every few messages we inject a malformed one to show it is dropped.
    """
    store = SeriesStore(max_candles=max_candles)

    open_time = (int(time.time() * 1000) // 60_000) * 60_000
    price = 67_000.0

    print(f"Simulating {minutes} minutes of kline updates (cap={max_candles})...\n")

    for _ in range(minutes):
        o = h = l = price
        v = 0.0
        for i in range(updates_per_minute):
            price += random.uniform(-15, 15)
            h, l = max(h, price), min(l, price)
            v += random.uniform(0.01, 2.0)

            raw = kline_message(open_time, o, h, l, price, v)
            if i == updates_per_minute // 2:
                raw = raw.replace('"c"', '"close"')

            result = decode_kline(raw)
            if isinstance(result, DecodeError):
                print(f"[DROPPED] {result}")
                continue

            replaced = store.merge(result)
            print(
                f"[{'UPDATE' if replaced else 'APPEND'}] t={result.open_time} "
                f"O={result.open} H={result.high} L={result.low} C={result.close} V={result.volume} "
                f"-> {len(store)} candles"
            )

        open_time += 60_000

    print("\nDone.")
    print(f"Candles held: {[c.open_time for c in store.snapshot()]}")


if __name__ == "__main__":
    run()
