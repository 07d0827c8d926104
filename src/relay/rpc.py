"""
RPC client for relaying requests to a TurtleCoind-style daemon.

Supports:
- The four calls the relay agent forwards (raw transactions, blocks,
  block templates, random outputs)
- Per-call timeout
- Optional retries with backoff
"""

import asyncio
from typing import Any, Optional

import aiohttp
import structlog

logger = structlog.get_logger()


class RPCError(Exception):
    """Daemon call failed (transport, HTTP or JSON-RPC error)."""
    pass


class DaemonClient:
    """
    Async client for a single daemon endpoint.

    Features:
    - Connection pooling via aiohttp
    - JSON-RPC and plain JSON endpoints
    - Retry with exponential backoff
    - Request ID tracking
    """

    def __init__(
        self,
        host: str = "127.0.0.1",
        port: int = 11898,
        timeout: float = 10.0,
        max_retries: int = 1,
        retry_backoff: float = 1.0,
    ):
        self.host = host
        self.port = port
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self.max_retries = max(1, max_retries)
        self.retry_backoff = retry_backoff

        self._request_id = 0
        self._session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self):
        self._session = aiohttp.ClientSession(timeout=self.timeout)
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def close(self) -> None:
        if self._session:
            await self._session.close()
            self._session = None

    @property
    def base_url(self) -> str:
        return f"http://{self.host}:{self.port}"

    @property
    def address(self) -> str:
        """host:port, used as log context."""
        return f"{self.host}:{self.port}"

    def _next_request_id(self) -> int:
        self._request_id += 1
        return self._request_id

    async def _post(self, path: str, body: dict) -> Any:
        """POST a JSON body with retries and return the decoded response."""
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=self.timeout)

        last_error = None

        for attempt in range(self.max_retries):
            try:
                async with self._session.post(f"{self.base_url}{path}", json=body) as resp:
                    if resp.status != 200:
                        raise RPCError(f"HTTP {resp.status}: {await resp.text()}")

                    # TurtleCoind does not always send application/json
                    return await resp.json(content_type=None)

            except (aiohttp.ClientError, asyncio.TimeoutError, ValueError, RPCError) as e:
                last_error = e
                if attempt + 1 >= self.max_retries:
                    break
                wait_time = self.retry_backoff * 2 ** attempt
                logger.warning(
                    "Daemon call failed, retrying",
                    path=path,
                    attempt=attempt + 1,
                    max_retries=self.max_retries,
                    wait_time=wait_time,
                    error=str(e) or type(e).__name__,
                )
                await asyncio.sleep(wait_time)

        if isinstance(last_error, RPCError):
            raise last_error
        if isinstance(last_error, asyncio.TimeoutError):
            raise RPCError(f"Daemon call to {path} timed out")
        raise RPCError(f"Daemon call to {path} failed: {last_error}")

    async def _json_rpc(self, method: str, params: Any) -> dict:
        payload = {
            "jsonrpc": "2.0",
            "method": method,
            "params": params,
            "id": self._next_request_id(),
        }

        data = await self._post("/json_rpc", payload)

        if not isinstance(data, dict):
            raise RPCError(f"Malformed response to {method}")
        if data.get("error"):
            raise RPCError(f"RPC error: {data['error']}")

        return _as_result(data.get("result"), method)

    async def send_raw_transaction(self, tx_as_hex: str) -> dict:
        """Relay a raw transaction blob to the network."""
        data = await self._post("/sendrawtransaction", {"tx_as_hex": tx_as_hex})
        return _as_result(data, "sendrawtransaction")

    async def submit_block(self, block_blob: str) -> dict:
        """Submit a mined block blob."""
        return await self._json_rpc("submitblock", [block_blob])

    async def block_template(self, wallet_address: str, reserve_size: int) -> dict:
        """Get a block template paying to the given wallet address."""
        return await self._json_rpc(
            "getblocktemplate",
            {"wallet_address": wallet_address, "reserve_size": reserve_size},
        )

    async def random_outputs(self, amounts: list[int], mixin: int) -> dict:
        """Get random outputs for the given amounts, for ring signatures."""
        data = await self._post(
            "/getrandom_outs",
            {"amounts": list(amounts), "outs_count": mixin},
        )
        return _as_result(data, "getrandom_outs")


def _as_result(data: Any, method: str) -> dict:
    """Every result carries a status key, even if the daemon omitted it."""
    if not isinstance(data, dict):
        raise RPCError(f"Malformed response to {method}")
    result = dict(data)
    result.setdefault("status", None)
    return result
