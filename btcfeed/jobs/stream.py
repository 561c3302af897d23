from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Any, Callable, Optional, Union

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from btcfeed.errors import StreamError, TransportClosed, TransportError

ConnectFactory = Callable[..., Any]


class StreamState(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    OPEN = "open"
    RECEIVING = "receiving"
    CLOSED = "closed"
    FAILED = "failed"


class WebSocketStream:
    """
    One persistent WebSocket subscription.

    run() walks the state machine:
      IDLE -> CONNECTING -> OPEN -> RECEIVING (per message)
      any -> FAILED on handshake/OS/timeout errors
      any -> CLOSED on server close (clean or abnormal code), close() or cancel

    Subclasses implement handle_message() and the on_* hooks. handle_message()
    must not raise: bad messages are logged and dropped by the subclass.
    There is no reconnect; a FAILED or CLOSED stream stays that way until
    run() is called again.
    """

    name = "stream"

    def __init__(
        self,
        url: str,
        connect: Optional[ConnectFactory] = None,
        ping_interval: float = 20.0,
        ping_timeout: float = 20.0,
    ) -> None:
        self.url = url
        self._connect = connect or websockets.connect
        self.ping_interval = ping_interval
        self.ping_timeout = ping_timeout
        self.state = StreamState.IDLE
        self.last_error: Optional[StreamError] = None
        self.messages_received = 0
        self._ws = None
        self.log = logging.getLogger(self.name)

    async def run(self) -> None:
        self.state = StreamState.CONNECTING
        self.last_error = None
        self.log.info("Connecting url=%s", self.url)

        try:
            async with self._connect(
                self.url,
                ping_interval=self.ping_interval,
                ping_timeout=self.ping_timeout,
            ) as ws:
                self._ws = ws
                self.state = StreamState.OPEN
                self.log.info("Connected url=%s", self.url)
                self.on_open()

                async for raw in ws:
                    self.state = StreamState.RECEIVING
                    self.messages_received += 1
                    self.handle_message(raw)

        except asyncio.CancelledError:
            self._closed(TransportClosed("stream cancelled"))
            raise
        except ConnectionClosed as e:
            # Server went away after the handshake, with or without a clean close code
            self._closed(TransportClosed(str(e)))
        except (WebSocketException, OSError, asyncio.TimeoutError) as e:
            self._failed(TransportError(str(e) or e.__class__.__name__))
        else:
            self._closed(TransportClosed("connection closed"))
        finally:
            self._ws = None

    async def close(self) -> None:
        """Close the socket with a normal-closure code. Safe to call at any time."""
        ws = self._ws
        if ws is None:
            return
        try:
            await ws.close(code=1000, reason="client disconnect")
        except (WebSocketException, OSError) as e:
            self.log.debug("Ignoring error while closing url=%s error=%r", self.url, e)

    # -------------------------
    # Hooks
    # -------------------------
    def handle_message(self, raw: Union[str, bytes]) -> None:
        raise NotImplementedError

    def on_open(self) -> None:
        pass

    def on_failed(self, error: TransportError) -> None:
        pass

    def on_closed(self, error: TransportClosed) -> None:
        pass

    def _failed(self, error: TransportError) -> None:
        self.state = StreamState.FAILED
        self.last_error = error
        self.log.warning("Connection failed url=%s error=%s", self.url, error)
        self.on_failed(error)

    def _closed(self, error: TransportClosed) -> None:
        if self.state in (StreamState.CLOSED, StreamState.FAILED):
            return
        self.state = StreamState.CLOSED
        self.last_error = error
        self.log.info("Connection closed url=%s reason=%s", self.url, error)
        self.on_closed(error)
