from __future__ import annotations

"""
Push channel: a WebSocket JSON-RPC subscription to new-block notifications.

- Uses the `websockets` package (asyncio client).
- Sends `eth_subscribe ["newHeads"]` and dispatches every `eth_subscription`
  frame for that subscription id to `on_block(header)`.
- No auto-reconnect. A transport error is logged, the channel closes and
  `on_closed(exc)` is called once. Whoever owns the channel decides whether to
  open a fresh one.

Example:
    import asyncio
    from mixion_sdk.rpc.ws import PushChannel

    async def main():
        ch = PushChannel("wss://ethereum-rpc.publicnode.com")
        await ch.open(on_block=lambda head: print("head", head.get("number")))
        await asyncio.sleep(30)
        await ch.close()

    asyncio.run(main())
"""

import asyncio
import contextlib
import json
import logging
from itertools import count
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Protocol

from websockets.asyncio.client import connect as ws_connect
from websockets.exceptions import ConnectionClosed

from ..errors import JsonRpcCode, RpcError, TransportError, from_jsonrpc_error
from ..version import __version__ as SDK_VERSION

log = logging.getLogger("mixion.push")

OnBlock = Callable[[Any], None]
OnClosed = Callable[[Optional[BaseException]], None]


class WebSocketLike(Protocol):
    async def send(self, message: str) -> None: ...
    async def recv(self) -> Any: ...
    async def close(self) -> None: ...


Connector = Callable[[str], Awaitable[WebSocketLike]]


class PushChannel:
    """One WebSocket connection carrying one newHeads subscription."""

    SUBSCRIBE = "eth_subscribe"
    UNSUBSCRIBE = "eth_unsubscribe"
    NOTIFICATION = "eth_subscription"

    def __init__(
        self,
        url: str,
        *,
        connect_timeout: float = 10.0,
        request_timeout: float = 10.0,
        headers: Optional[Mapping[str, str]] = None,
        connector: Optional[Connector] = None,
    ) -> None:
        self.url = url
        self.connect_timeout = connect_timeout
        self.request_timeout = request_timeout
        self._headers = {"User-Agent": f"mixion-sdk-python/{SDK_VERSION}", **dict(headers or {})}
        self._connector = connector or self._default_connect
        self._ids = count(start=1)
        self._ws: Optional[WebSocketLike] = None
        self._reader: Optional[asyncio.Task] = None
        self._pending: Dict[int, asyncio.Future] = {}
        self._sub_id: Optional[str] = None
        self._on_block: Optional[OnBlock] = None
        self._on_closed: Optional[OnClosed] = None
        self._closing = False
        self.blocks_seen = 0

    # ------------- lifecycle -------------------

    @property
    def is_open(self) -> bool:
        return self._ws is not None and not self._closing

    @property
    def subscription_id(self) -> Optional[str]:
        return self._sub_id

    async def open(self, on_block: OnBlock, on_closed: Optional[OnClosed] = None) -> str:
        """Connect, subscribe to newHeads and return the subscription id."""
        if self._ws is not None:
            raise TransportError("push channel already open")
        self._closing = False
        self._on_block = on_block
        self._on_closed = on_closed
        try:
            self._ws = await asyncio.wait_for(self._connector(self.url), timeout=self.connect_timeout)
        except (OSError, asyncio.TimeoutError, ConnectionClosed) as e:
            self._ws = None
            raise RpcError(code=JsonRpcCode.TRANSPORT, message="WS connect failed", data=str(e)) from e
        self._reader = asyncio.create_task(self._reader_loop(), name="PushChannel.reader")
        try:
            res = await self._request(self.SUBSCRIBE, ["newHeads"])
        except BaseException:
            await self.close()
            raise
        self._sub_id = str(res["subscription"]) if isinstance(res, dict) and "subscription" in res else str(res)
        log.debug("subscribed to newHeads on %s (sub=%s)", self.url, self._sub_id)
        return self._sub_id

    def detach(self) -> None:
        """Stop delivering notifications right away; the socket may still be closing."""
        self._closing = True
        self._on_block = None
        self._on_closed = None

    async def close(self) -> None:
        """Detach handlers, cancel the reader and close the socket. Idempotent."""
        self.detach()
        reader, self._reader = self._reader, None
        if reader is not None and not reader.done() and reader is not asyncio.current_task():
            reader.cancel()
            with contextlib.suppress(asyncio.CancelledError, Exception):
                await reader
        ws, self._ws = self._ws, None
        if ws is not None:
            try:
                await ws.close()
            except (OSError, ConnectionClosed):
                log.debug("error closing push socket", exc_info=True)
        self._fail_pending(RpcError(code=JsonRpcCode.TRANSPORT, message="WS closed"))
        self._sub_id = None

    # ------------- RPC primitives --------------

    async def _request(self, method: str, params: list) -> Any:
        assert self._ws is not None
        rid = next(self._ids)
        fut: asyncio.Future = asyncio.get_running_loop().create_future()
        self._pending[rid] = fut
        payload = {"jsonrpc": "2.0", "id": rid, "method": method, "params": params}
        try:
            await asyncio.wait_for(self._ws.send(json.dumps(payload, separators=(",", ":"))),
                                   timeout=self.request_timeout)
            return await asyncio.wait_for(fut, timeout=self.request_timeout)
        except (OSError, asyncio.TimeoutError, ConnectionClosed) as e:
            raise RpcError(code=JsonRpcCode.TRANSPORT, message=f"WS {method} failed", data=str(e),
                           method=method) from e
        finally:
            self._pending.pop(rid, None)

    # ------------- internals --------------------

    async def _default_connect(self, url: str) -> WebSocketLike:
        return await ws_connect(url, additional_headers=self._headers, open_timeout=self.connect_timeout)

    def _fail_pending(self, exc: BaseException) -> None:
        for fut in list(self._pending.values()):
            if not fut.done():
                fut.set_exception(exc)
        self._pending.clear()

    async def _reader_loop(self) -> None:
        """Read frames until the socket dies; never reconnects."""
        assert self._ws is not None
        ws = self._ws
        error: Optional[BaseException] = None
        while True:
            try:
                raw = await ws.recv()
            except asyncio.CancelledError:
                return
            except ConnectionClosed as e:
                error = None if self._closing else e
                break
            except Exception as e:  # noqa: BLE001
                error = e
                break
            self._dispatch(raw)

        if self._closing:
            return
        if error is not None:
            log.warning("push channel %s failed: %s; live updates disabled", self.url, error)
        else:
            log.info("push channel %s closed by peer; live updates disabled", self.url)
        on_closed = self._on_closed
        self._reader = None
        await self.close()
        if on_closed is not None:
            try:
                on_closed(error)
            except Exception:  # noqa: BLE001
                log.warning("push channel on_closed handler failed", exc_info=True)

    def _dispatch(self, raw: Any) -> None:
        try:
            data = json.loads(raw)
        except (TypeError, ValueError):
            log.debug("ignoring non-JSON push frame")
            return
        if not isinstance(data, dict):
            return

        # Response to one of our requests
        if data.get("id") is not None and "method" not in data:
            fut = self._pending.get(data["id"]) if isinstance(data["id"], int) else None
            if fut is not None and not fut.done():
                if data.get("error") is not None:
                    fut.set_exception(from_jsonrpc_error(data["error"], request_id=data["id"]))
                else:
                    fut.set_result(data.get("result"))
            return

        if data.get("method") != self.NOTIFICATION:
            return
        params = data.get("params")
        if not isinstance(params, dict):
            return
        if self._sub_id is not None and str(params.get("subscription")) != self._sub_id:
            return
        handler = self._on_block
        if handler is None:
            return
        self.blocks_seen += 1
        try:
            handler(params.get("result"))
        except Exception:  # noqa: BLE001
            log.warning("push channel on_block handler failed", exc_info=True)


__all__ = ["PushChannel", "WebSocketLike", "Connector", "OnBlock", "OnClosed"]
