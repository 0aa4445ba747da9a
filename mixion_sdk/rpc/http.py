from __future__ import annotations

"""
HTTP JSON-RPC client (async, httpx).

- Retries idempotent RPC calls on transient transport failures and 429/5xx.
- Application errors (a JSON-RPC `error` object) are never retried.
- Accepts an injected `httpx` transport, which keeps unit tests offline.

Example:
    from mixion_sdk.rpc.http import AsyncRpcClient

    async with AsyncRpcClient("https://ethereum-rpc.publicnode.com") as rpc:
        wei = await rpc.request("eth_getBalance", ["0x...", "latest"])
"""

import asyncio
import json
import logging
import random
import time
from dataclasses import dataclass, field
from itertools import count
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple, Union

import httpx

from ..config import SDKConfig
from ..errors import JsonRpcCode, RpcError, from_jsonrpc_error
from ..version import __version__ as SDK_VERSION

log = logging.getLogger("mixion.rpc")

JSON = Union[dict, list, str, int, float, bool, None]
Params = Union[Sequence[Any], Mapping[str, Any], None]


def _now_ms() -> int:
    return int(time.time() * 1000)


def _is_retriable_http(status: int) -> bool:
    # Typical transient HTTP statuses: 429/502/503/504
    return status in (429, 502, 503, 504)


def _jitter_backoff(base: float, factor: float, attempt: int, jitter: float) -> float:
    # Exponential backoff with jitter in [0, jitter]
    return base * (factor ** max(attempt - 1, 0)) + random.random() * jitter


class _Retriable(Exception):
    """Internal marker: the attempt failed in a way worth retrying."""


@dataclass
class AsyncRpcClient:
    """Asynchronous JSON-RPC 2.0 client over HTTP."""

    url: str
    timeout: float = 10.0
    max_retries: int = 3
    backoff_base: float = 0.15
    backoff_factor: float = 1.8
    backoff_jitter: float = 0.2
    headers: Optional[Mapping[str, str]] = None
    transport: Optional[httpx.AsyncBaseTransport] = None
    _id_counter: Iterator[int] = field(default_factory=lambda: count(start=_now_ms()))
    _client: Optional[httpx.AsyncClient] = field(init=False, default=None)

    def __post_init__(self) -> None:
        merged_headers: Dict[str, str] = {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "User-Agent": f"mixion-sdk-python/{SDK_VERSION}",
        }
        if self.headers:
            merged_headers.update(dict(self.headers))
        self._client = httpx.AsyncClient(
            timeout=self.timeout,
            headers=merged_headers,
            transport=self.transport,
        )

    @classmethod
    def from_config(
        cls,
        url: str,
        config: "SDKConfig",
        *,
        chain_id: Optional[int] = None,
        **kwargs: Any,
    ) -> "AsyncRpcClient":
        """
        Client for `url` using the timeouts, retries and headers from `config`.

        `config.rpc_url` replaces `url` when it serves `chain_id`. An override
        not pinned with `rpc_chain_id` is used for every chain, with a warning.
        """
        target = config.rpc_url_for(chain_id, url)
        if target != url and chain_id is not None and config.rpc_chain_id is None:
            log.warning("RPC override %s used for chain %s; set rpc_chain_id to pin it", target, chain_id)
        return cls(
            url=target,
            timeout=config.request_timeout,
            max_retries=config.max_retries,
            backoff_base=config.backoff_factor,
            headers={"User-Agent": config.user_agent},
            **kwargs,
        )

    # --- context manager -------------------------------------------------

    async def __aenter__(self) -> "AsyncRpcClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:  # noqa: ANN001
        await self.aclose()

    async def aclose(self) -> None:
        if self._client is not None:
            client, self._client = self._client, None
            await client.aclose()

    @property
    def closed(self) -> bool:
        return self._client is None

    # --- public API ------------------------------------------------------

    async def request(self, method: str, params: Params = None, *, id: Optional[Union[int, str]] = None) -> JSON:
        """Perform a single JSON-RPC request and return `result` or raise RpcError."""
        payload = self._make_payload(method, params, id)
        resp = await self._send_with_retries(payload, method=method)
        if not isinstance(resp, dict):
            raise RpcError(code=JsonRpcCode.INTERNAL_ERROR, message="Invalid JSON-RPC response type",
                           data=type(resp).__name__, method=method)
        return self._unwrap(resp, method=method)

    async def batch(self, calls: Sequence[Tuple[str, Params]]) -> List[JSON]:
        """Perform a JSON-RPC batch; returns list of results in the same order as `calls`."""
        batch_payload: List[Dict[str, Any]] = []
        id_list: List[Any] = []
        for method, params in calls:
            p = self._make_payload(method, params)
            batch_payload.append(p)
            id_list.append(p["id"])
        resp = await self._send_with_retries(batch_payload, method="batch")
        if not isinstance(resp, list):
            raise RpcError(code=JsonRpcCode.INTERNAL_ERROR, message="Invalid batch response (not a list)", data=resp)

        by_id: Dict[Any, JSON] = {}
        for item in resp:
            if not isinstance(item, dict) or "id" not in item:
                raise RpcError(code=JsonRpcCode.INTERNAL_ERROR, message="Malformed item in batch response", data=item)
            by_id[item["id"]] = self._unwrap(item, method="batch")

        ordered: List[JSON] = []
        for rid in id_list:
            if rid not in by_id:
                raise RpcError(code=JsonRpcCode.INTERNAL_ERROR, message=f"Missing result for id {rid}", data=resp)
            ordered.append(by_id[rid])
        return ordered

    # --- internals -------------------------------------------------------

    def _make_payload(self, method: str, params: Params, id: Optional[Union[int, str]] = None) -> Dict[str, Any]:
        if id is None:
            id = next(self._id_counter)
        if params is None:
            params = []
        elif isinstance(params, Mapping):
            params = dict(params)
        elif isinstance(params, Sequence) and not isinstance(params, (str, bytes, bytearray)):
            params = list(params)
        else:
            # Coerce single param into positional list
            params = [params]  # type: ignore[list-item]
        return {"jsonrpc": "2.0", "id": id, "method": method, "params": params}

    @staticmethod
    def _unwrap(resp: Dict[str, Any], *, method: Optional[str]) -> JSON:
        if resp.get("error") is not None:
            raise from_jsonrpc_error(resp["error"], method=method, request_id=resp.get("id"))
        if "result" not in resp:
            raise RpcError(code=JsonRpcCode.INTERNAL_ERROR, message="Malformed JSON-RPC response",
                           data=resp, method=method)
        return resp["result"]

    async def _send_with_retries(self, payload: Union[Dict[str, Any], List[Dict[str, Any]]], *, method: str) -> JSON:
        last_exc: Optional[Exception] = None
        for attempt in range(1, self.max_retries + 2):  # N retries -> N+1 attempts
            try:
                return await self._send_once(payload, method=method)
            except _Retriable as e:
                last_exc = e
                if attempt > self.max_retries:
                    break
                delay = _jitter_backoff(self.backoff_base, self.backoff_factor, attempt, self.backoff_jitter)
                log.debug("rpc %s attempt %d failed (%s); retrying in %.2fs", method, attempt, e, delay)
                await asyncio.sleep(delay)
        raise RpcError(code=JsonRpcCode.TRANSPORT, message="RPC transport failed", data=str(last_exc), method=method)

    async def _send_once(self, payload: Union[Dict[str, Any], List[Dict[str, Any]]], *, method: str) -> JSON:
        if self._client is None:
            raise RpcError(code=JsonRpcCode.TRANSPORT, message="RPC client is closed", method=method)
        body = json.dumps(payload, separators=(",", ":"), ensure_ascii=False)
        try:
            r = await self._client.post(self.url, content=body)
        except (httpx.TimeoutException, httpx.NetworkError) as e:
            raise _Retriable(f"network error: {e}") from e
        if _is_retriable_http(r.status_code):
            raise _Retriable(f"HTTP {r.status_code}")
        # Avoid raise_for_status() to keep the error body visible below
        try:
            return r.json()
        except ValueError as e:
            raise RpcError(
                code=JsonRpcCode.INTERNAL_ERROR,
                message="Non-JSON response from RPC",
                data=f"HTTP {r.status_code}: {r.text[:256]}",
                method=method,
                http_status=r.status_code,
            ) from e


__all__ = ["AsyncRpcClient", "JSON", "Params"]
