#!/usr/bin/env python3
import asyncio
import base64
import logging
import time
from typing import Any, Dict, Optional

import aiohttp
from solders.keypair import Keypair
from solders.transaction import VersionedTransaction

from constants import (
    DEFAULT_QUOTE_SLIPPAGE_BPS,
    DEFAULT_REQUEST_RETRIES,
    DEFAULT_REQUEST_TIMEOUT,
    DEFAULT_RETRY_DELAY,
    JUPITER_QUOTE_API_BASE_URL,
    JUPITER_TOKEN_API_BASE_URL,
)
from errors import QuoteError, QuoteRejectedError
from services.solana_rpc_client import SolanaRpcClient

logger = logging.getLogger(__name__)


async def api_get(
    url: str,
    session: aiohttp.ClientSession,
    params: Optional[Dict] = None,
    retries: int = DEFAULT_REQUEST_RETRIES,
    timeout: int = DEFAULT_REQUEST_TIMEOUT,
) -> Dict:
    """Makes an async GET request with retries and timeout."""
    for attempt in range(retries):
        try:
            async with session.get(url, params=params, timeout=timeout) as response:
                response.raise_for_status()
                return await response.json()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            if attempt < retries - 1:
                await asyncio.sleep(DEFAULT_RETRY_DELAY)
            else:
                raise QuoteError(f"GET {url} failed after {retries} attempts: {e}") from e
    raise QuoteError(f"GET {url} was not attempted")


async def api_post(
    url: str,
    session: aiohttp.ClientSession,
    json_data: Dict,
    timeout: int = DEFAULT_REQUEST_TIMEOUT,
) -> Dict:
    """Single-shot POST; swap construction is cheap to redo upstream."""
    try:
        async with session.post(url, json=json_data, timeout=timeout) as response:
            response.raise_for_status()
            return await response.json()
    except (aiohttp.ClientError, asyncio.TimeoutError) as e:
        raise QuoteError(f"POST {url} failed: {e}") from e


def sign_transaction(swap_transaction_b64: str, signer: Keypair) -> str:
    """Signs the router-built versioned transaction and re-encodes it for sendTransaction."""
    unsigned = VersionedTransaction.from_bytes(base64.b64decode(swap_transaction_b64))
    signed = VersionedTransaction(unsigned.message, [signer])
    return base64.b64encode(bytes(signed)).decode("ascii")


class JupiterClient:
    """Quote/router service: best-execution quotes and swap submission through Jupiter."""

    def __init__(
        self,
        session: aiohttp.ClientSession,
        rpc_client: SolanaRpcClient,
        *,
        slippage_bps: int = DEFAULT_QUOTE_SLIPPAGE_BPS,
        rate_limit_delay: float = 0.2,
    ):
        self.session = session
        self.rpc_client = rpc_client
        self.slippage_bps = slippage_bps
        self._last_request_time = 0.0
        self._rate_limit_delay = rate_limit_delay

    async def _wait_for_rate_limit(self):
        elapsed = time.time() - self._last_request_time
        if elapsed < self._rate_limit_delay:
            await asyncio.sleep(self._rate_limit_delay - elapsed)
        self._last_request_time = time.time()

    async def token_info(self, mint: str) -> Dict[str, Any]:
        await self._wait_for_rate_limit()
        data = await api_get(f"{JUPITER_TOKEN_API_BASE_URL}/{mint}", self.session)
        if not isinstance(data, dict) or not isinstance(data.get('decimals'), int):
            raise QuoteError(f"Token info for {mint} has no decimals")
        return data

    async def best_quote(
        self,
        input_mint: str,
        output_mint: str,
        amount_raw: int,
        min_out_raw: Optional[int] = None,
    ) -> Dict[str, Any]:
        """Fetches the best route; rejects it when the quoted output is under ``min_out_raw``."""
        await self._wait_for_rate_limit()
        params = {
            'inputMint': input_mint,
            'outputMint': output_mint,
            'amount': str(amount_raw),
            'slippageBps': str(self.slippage_bps),
        }
        quote = await api_get(f"{JUPITER_QUOTE_API_BASE_URL}/quote", self.session, params=params)
        try:
            out_amount = int(quote['outAmount'])
        except (KeyError, TypeError, ValueError) as e:
            raise QuoteError(f"Malformed quote response: {quote!r}") from e

        if min_out_raw is not None and out_amount < min_out_raw:
            raise QuoteRejectedError(
                f"Quoted output {out_amount} is below the minimum {min_out_raw}"
            )
        return quote

    async def build_swap_transaction(
        self,
        quote: Dict[str, Any],
        user_public_key: str,
        priority_fee: Optional[int] = None,
    ) -> str:
        """Returns the unsigned, base64-encoded swap transaction for ``quote``."""
        body: Dict[str, Any] = {
            'quoteResponse': quote,
            'userPublicKey': user_public_key,
            'wrapAndUnwrapSol': True,
        }
        if priority_fee is not None:
            body['computeUnitPriceMicroLamports'] = priority_fee
        data = await api_post(f"{JUPITER_QUOTE_API_BASE_URL}/swap", self.session, json_data=body)
        swap_transaction = data.get('swapTransaction') if isinstance(data, dict) else None
        if not swap_transaction:
            raise QuoteError("Swap response did not include a transaction")
        return swap_transaction

    async def swap(self, quote: Dict[str, Any], signer: Keypair) -> str:
        return await self._sign_and_send(quote, signer, priority_fee=None)

    async def swap_with_priority_fee(self, quote: Dict[str, Any], signer: Keypair, fee: int) -> str:
        return await self._sign_and_send(quote, signer, priority_fee=fee)

    async def _sign_and_send(self, quote: Dict[str, Any], signer: Keypair, priority_fee: Optional[int]) -> str:
        swap_transaction = await self.build_swap_transaction(quote, str(signer.pubkey()), priority_fee)
        signed = sign_transaction(swap_transaction, signer)
        signature = await self.rpc_client.send_transaction(signed)
        logger.info("Submitted swap %s (priority fee: %s)", signature, priority_fee)
        return signature
