import asyncio
import unittest

from websockets.exceptions import ConnectionClosedError
from websockets.frames import Close

from btcfeed.candles.store import SeriesStore
from btcfeed.errors import TransportClosed, TransportError
from btcfeed.jobs.kline_stream import KlineStream
from btcfeed.jobs.stream import StreamState
from btcfeed.jobs.trade_stream import PRICE_CLOSED, PRICE_CONNECTED, PRICE_CONNECTING, TradeStream
from btcfeed.state import Observable
from helpers import FakeConnector, candle, kline_event, trade_event, wait_until

TRADE_URL = "wss://test/ws/btcusdt@trade"
KLINE_URL = "wss://test/ws/btcusdt@kline_1m"


class TestTradeStream(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.connector = FakeConnector()
        self.price = Observable(PRICE_CONNECTING)
        self.status = Observable("")
        self.stream = TradeStream(TRADE_URL, self.price, self.status, connect=self.connector)
        self.seen = []
        self.price.subscribe(self.seen.append)

    async def start(self):
        task = asyncio.create_task(self.stream.run())
        await wait_until(lambda: self.stream.state == StreamState.OPEN)
        return task, self.connector.latest("@trade")

    async def test_open_then_prices_in_wire_order(self):
        self.assertEqual(self.stream.state, StreamState.IDLE)
        task, conn = await self.start()
        self.assertEqual(self.price.value, PRICE_CONNECTED)
        self.assertEqual(self.status.value, "Live price connected")

        conn.feed(trade_event("67123.45"))
        conn.feed(trade_event("67124.00"))
        await wait_until(lambda: self.stream.messages_received == 2)

        self.assertEqual(self.stream.state, StreamState.RECEIVING)
        self.assertEqual(self.price.value, "67124.00 USD")
        self.assertEqual(self.seen, [PRICE_CONNECTING, PRICE_CONNECTED, "67123.45 USD", "67124.00 USD"])

        conn.server_close()
        await task

    async def test_passes_ping_settings(self):
        task, conn = await self.start()
        url, kwargs = self.connector.calls[0]
        self.assertEqual(url, TRADE_URL)
        self.assertEqual(kwargs, {"ping_interval": 20.0, "ping_timeout": 20.0})
        conn.server_close()
        await task

    async def test_malformed_message_is_dropped_and_stream_survives(self):
        task, conn = await self.start()

        with self.assertLogs("trade_stream", level="WARNING"):
            conn.feed('{"e": "trade"}')
            conn.feed("garbage")
            conn.feed(trade_event("1.25"))
            await wait_until(lambda: self.stream.messages_received == 3)

        self.assertEqual(self.stream.dropped, 2)
        self.assertEqual(self.price.value, "1.25 USD")
        self.assertEqual(self.stream.state, StreamState.RECEIVING)

        conn.server_close()
        await task

    async def test_server_close(self):
        task, conn = await self.start()
        conn.server_close()
        await task

        self.assertEqual(self.stream.state, StreamState.CLOSED)
        self.assertIsInstance(self.stream.last_error, TransportClosed)
        self.assertEqual(self.price.value, PRICE_CLOSED)

    async def test_abnormal_server_close_is_closed_not_failed(self):
        task, conn = await self.start()
        conn.fail(ConnectionClosedError(Close(1011, "server restart"), None))
        await task

        self.assertEqual(self.stream.state, StreamState.CLOSED)
        self.assertIsInstance(self.stream.last_error, TransportClosed)
        self.assertEqual(self.price.value, PRICE_CLOSED)

    async def test_transport_failure_while_receiving(self):
        task, conn = await self.start()
        conn.fail(ConnectionResetError("peer reset"))
        await task

        self.assertEqual(self.stream.state, StreamState.FAILED)
        self.assertIsInstance(self.stream.last_error, TransportError)
        self.assertEqual(self.price.value, "Connection failed: peer reset")

    async def test_connect_failure(self):
        connector = FakeConnector(fail_on_open={"@trade": OSError("name resolution failed")})
        stream = TradeStream(TRADE_URL, self.price, self.status, connect=connector)

        await stream.run()

        self.assertEqual(stream.state, StreamState.FAILED)
        self.assertTrue(self.price.value.startswith("Connection failed"))

    async def test_close_uses_normal_closure(self):
        task, conn = await self.start()

        await self.stream.close()
        await task

        self.assertEqual(conn.close_code, 1000)
        self.assertEqual(self.stream.state, StreamState.CLOSED)

    async def test_close_before_run_is_noop(self):
        await self.stream.close()
        self.assertEqual(self.stream.state, StreamState.IDLE)

    async def test_cancel_marks_closed(self):
        task, conn = await self.start()
        task.cancel()
        with self.assertRaises(asyncio.CancelledError):
            await task
        self.assertEqual(self.stream.state, StreamState.CLOSED)


class TestKlineStream(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.connector = FakeConnector()
        self.store = SeriesStore(max_candles=4)
        self.store.replace_history([candle(1000), candle(1060), candle(1120)])
        self.series = Observable(self.store.snapshot())
        self.status = Observable("")
        self.stream = KlineStream(KLINE_URL, self.store, self.series, self.status, connect=self.connector)
        self.task = asyncio.create_task(self.stream.run())
        await wait_until(lambda: self.stream.state == StreamState.OPEN)
        self.conn = self.connector.latest("@kline")

    async def asyncTearDown(self):
        self.conn.server_close()
        await self.task

    async def process(self, raw):
        before = self.stream.messages_received
        self.conn.feed(raw)
        await wait_until(lambda: self.stream.messages_received == before + 1)

    async def test_open_status(self):
        self.assertEqual(self.status.value, "Live klines connected")

    async def test_update_in_place_then_append(self):
        await self.process(kline_event(1120, close="150.0"))
        snap = self.series.value
        self.assertEqual([c.open_time for c in snap], [1000, 1060, 1120])
        self.assertEqual(snap[2].close, 150.0)
        self.assertEqual(self.status.value, "Kline updated (3 candles)")

        await self.process(kline_event(1180))
        self.assertEqual([c.open_time for c in self.series.value], [1000, 1060, 1120, 1180])
        self.assertEqual(self.status.value, "New kline added (4 candles)")

    async def test_eviction_at_cap(self):
        await self.process(kline_event(1180))
        await self.process(kline_event(1240))
        self.assertEqual([c.open_time for c in self.series.value], [1060, 1120, 1180, 1240])

    async def test_malformed_message_leaves_series_unchanged(self):
        before = self.series.value
        published = []
        self.series.subscribe(published.append)
        published.clear()

        with self.assertLogs("kline_stream", level="WARNING"):
            await self.process('{"e": "kline"}')
            await self.process(kline_event(1180, close="oops"))
            await self.process("{not json")

        self.assertIs(self.series.value, before)
        self.assertEqual(published, [])
        self.assertEqual(self.stream.dropped, 3)
        self.assertEqual(self.stream.state, StreamState.RECEIVING)

    async def test_abnormal_server_close_status(self):
        self.conn.fail(ConnectionClosedError(Close(1011, "server restart"), None))
        await self.task
        self.assertEqual(self.stream.state, StreamState.CLOSED)
        self.assertEqual(self.status.value, "Kline connection closed")

    async def test_failure_status(self):
        self.conn.fail(OSError("network down"))
        await self.task
        self.assertEqual(self.stream.state, StreamState.FAILED)
        self.assertEqual(self.status.value, "Kline connection failed")


if __name__ == "__main__":
    unittest.main()
