#!/usr/bin/env python3
"""Solana JSON-RPC client over a shared aiohttp session, plus the slot websocket feed."""
import asyncio
import json
import logging
from typing import Any, AsyncIterator, Dict, Optional

import aiohttp

from constants import (
    BLOCK_NOT_AVAILABLE_CODE,
    DEFAULT_COMMITMENT,
    DEFAULT_REQUEST_RETRIES,
    DEFAULT_REQUEST_TIMEOUT,
    DEFAULT_RETRY_DELAY,
    SLOT_SKIPPED_CODES,
)
from errors import ChainClientError

logger = logging.getLogger(__name__)


def ws_url_from_rpc(rpc_url: str) -> str:
    """Convert https:// or http:// to wss:// or ws:// for the pubsub endpoint."""
    url = rpc_url.strip()
    if url.startswith("https://"):
        return "wss://" + url[len("https://"):]
    if url.startswith("http://"):
        return "ws://" + url[len("http://"):]
    return url


class SolanaRpcClient:
    def __init__(
        self,
        session: aiohttp.ClientSession,
        *,
        rpc_url: str,
        ws_url: Optional[str] = None,
        commitment: str = DEFAULT_COMMITMENT,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
        retries: int = DEFAULT_REQUEST_RETRIES,
        retry_delay: float = DEFAULT_RETRY_DELAY,
    ) -> None:
        self._session = session
        self.rpc_url = rpc_url
        self.ws_url = ws_url or ws_url_from_rpc(rpc_url)
        self.commitment = commitment
        self._timeout = timeout
        self._retries = max(1, retries)
        self._retry_delay = retry_delay
        self._id_lock = asyncio.Lock()
        self._next_request_id = 1

    async def get_version(self) -> Dict[str, Any]:
        return await self._rpc_call("getVersion", [])

    async def get_balance(self, pubkey: str) -> int:
        result = await self._rpc_call("getBalance", [pubkey, {"commitment": self.commitment}])
        return int(result["value"])

    async def get_block(self, slot: int) -> Optional[Dict[str, Any]]:
        """Block at ``slot``; None when the slot was skipped.

        Slot notifications arrive before the block reaches ``commitment``, so
        "block not available" is retried with the normal policy.
        """
        try:
            return await self._rpc_call(
                "getBlock",
                [
                    slot,
                    {
                        "encoding": "jsonParsed",
                        "transactionDetails": "full",
                        "rewards": False,
                        "maxSupportedTransactionVersion": 0,
                        "commitment": self.commitment,
                    },
                ],
                retry_codes=(BLOCK_NOT_AVAILABLE_CODE,),
            )
        except ChainClientError as exc:
            if exc.code in SLOT_SKIPPED_CODES:
                logger.debug("Slot %s was skipped", slot)
                return None
            raise

    async def get_transaction(self, signature: str) -> Optional[Dict[str, Any]]:
        return await self._rpc_call(
            "getTransaction",
            [
                signature,
                {
                    "encoding": "jsonParsed",
                    "maxSupportedTransactionVersion": 0,
                    "commitment": self.commitment,
                },
            ],
        )

    async def simulate_transaction(self, tx_base64: str) -> Dict[str, Any]:
        """Dry-runs a serialized transaction; returns the RPC ``value`` (``err``, ``logs``, ...)."""
        result = await self._rpc_call(
            "simulateTransaction",
            [
                tx_base64,
                {
                    "encoding": "base64",
                    "sigVerify": False,
                    "replaceRecentBlockhash": True,
                    "commitment": self.commitment,
                },
            ],
        )
        return result["value"]

    async def send_transaction(self, tx_base64: str) -> str:
        # A send is never retried here; a duplicate submission could fill twice.
        return await self._rpc_call(
            "sendTransaction",
            [
                tx_base64,
                {
                    "encoding": "base64",
                    "skipPreflight": True,
                    "preflightCommitment": self.commitment,
                    "maxRetries": 0,
                },
            ],
            retries=1,
        )

    async def subscribe_slots(self) -> AsyncIterator[int]:
        """Yields slot numbers from ``slotSubscribe`` until the socket closes."""
        request_id = await self._get_request_id()
        async with self._session.ws_connect(self.ws_url, heartbeat=30.0) as ws:
            await ws.send_json({"jsonrpc": "2.0", "id": request_id, "method": "slotSubscribe"})
            async for message in ws:
                if message.type == aiohttp.WSMsgType.TEXT:
                    try:
                        payload = json.loads(message.data)
                    except json.JSONDecodeError:
                        continue
                    if payload.get("id") == request_id and "error" in payload:
                        raise ChainClientError(f"slotSubscribe rejected: {payload['error']}")
                    if payload.get("method") != "slotNotification":
                        continue
                    slot = (payload.get("params") or {}).get("result", {}).get("slot")
                    if isinstance(slot, int):
                        yield slot
                elif message.type in (aiohttp.WSMsgType.CLOSED, aiohttp.WSMsgType.ERROR):
                    break
        raise ChainClientError("slot subscription closed")

    async def _rpc_call(
        self,
        method: str,
        params: list,
        retries: Optional[int] = None,
        retry_codes: tuple = (),
    ) -> Any:
        attempts = retries or self._retries
        last_error: Optional[Exception] = None
        for attempt in range(attempts):
            request_id = await self._get_request_id()
            payload = {
                "jsonrpc": "2.0",
                "method": method,
                "params": params,
                "id": request_id,
            }
            try:
                async with self._session.post(self.rpc_url, json=payload, timeout=self._timeout) as response:
                    response.raise_for_status()
                    data = await response.json()
            except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as exc:
                last_error = exc
                logger.warning("RPC %s failed (attempt %s/%s): %s", method, attempt + 1, attempts, exc)
                if attempt < attempts - 1:
                    await asyncio.sleep(self._retry_delay)
                continue
            error = data.get('error')
            if error is not None:
                code = error.get('code') if isinstance(error, dict) else None
                last_error = ChainClientError(f"{method} error: {error}", code=code)
                if code not in retry_codes:
                    raise last_error
                logger.debug("RPC %s returned %s (attempt %s/%s)", method, code, attempt + 1, attempts)
                if attempt < attempts - 1:
                    await asyncio.sleep(self._retry_delay)
                continue
            return data.get('result')
        code = last_error.code if isinstance(last_error, ChainClientError) else None
        raise ChainClientError(f"{method} failed after {attempts} attempts: {last_error}", code=code)

    async def _get_request_id(self) -> int:
        async with self._id_lock:
            request_id = self._next_request_id
            self._next_request_id += 1
        return request_id
