#!/usr/bin/env python3
import asyncio
import logging
from contextlib import aclosing
from enum import Enum
from typing import Awaitable, Callable, Dict, Iterable, Optional

from constants import (
    C_BLUE,
    C_GREEN,
    C_RED,
    C_RESET,
    C_YELLOW,
    DEFAULT_RECONNECT_BACKOFF,
    DEX_PROGRAM_IDS,
    KNOWN_MEV_BOTS,
)
from errors import ChainClientError, DecodeError, StreamError
from evaluator.models import SwapTransaction
from listener.swap_decoder import SwapDecoder, format_wallet_address, normalize_swap
from services.solana_rpc_client import SolanaRpcClient

logger = logging.getLogger(__name__)


class StreamState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    SUBSCRIBED = "subscribed"


class SwapStream:
    """Turns the slot feed into SwapTransaction events, reconnecting after every failure.

    Each subscribe/connect failure, or the feed ending, costs exactly one backoff
    wait before the next attempt. ``max_attempts`` bounds consecutive failures;
    the counter resets once a subscription delivers its first slot.
    """

    def __init__(
        self,
        rpc_client: SolanaRpcClient,
        queue: asyncio.Queue,
        *,
        program_ids: Optional[Dict[str, str]] = None,
        backoff: float = DEFAULT_RECONNECT_BACKOFF,
        max_attempts: Optional[int] = None,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
        known_bots: Iterable[str] = KNOWN_MEV_BOTS,
    ):
        self.rpc_client = rpc_client
        self.queue = queue
        self.decoder = SwapDecoder(program_ids or DEX_PROGRAM_IDS)
        self.backoff = backoff
        self.max_attempts = max_attempts
        self._sleep = sleep
        self.known_bots = set(known_bots)
        self.state = StreamState.DISCONNECTED
        self.consecutive_failures = 0
        self.events_emitted = 0

    async def run(self, stop_event: Optional[asyncio.Event] = None) -> None:
        stop_event = stop_event or asyncio.Event()
        while not stop_event.is_set():
            self.state = StreamState.CONNECTING
            try:
                await self._consume(stop_event)
                if stop_event.is_set():
                    break
                error: Exception = ChainClientError("slot feed ended")
            except asyncio.CancelledError:
                self.state = StreamState.DISCONNECTED
                raise
            except Exception as e:
                error = e

            self.state = StreamState.DISCONNECTED
            self.consecutive_failures += 1
            print(f"{C_RED}Swap stream error: {error}. Reconnecting in {self.backoff:.1f}s...{C_RESET}")
            if self.max_attempts is not None and self.consecutive_failures > self.max_attempts:
                raise StreamError(
                    f"Giving up after {self.consecutive_failures} consecutive subscription failures: {error}"
                ) from error
            await self._wait_backoff(stop_event)

        self.state = StreamState.DISCONNECTED
        print(f"{C_YELLOW}Swap stream stopped.{C_RESET}")

    async def _consume(self, stop_event: asyncio.Event) -> None:
        async with aclosing(self.rpc_client.subscribe_slots()) as slots:
            async for slot in slots:
                if self.state != StreamState.SUBSCRIBED:
                    self.state = StreamState.SUBSCRIBED
                    self.consecutive_failures = 0
                    print(f"{C_GREEN}Subscribed to slot updates via {self.rpc_client.ws_url}{C_RESET}")
                if stop_event.is_set():
                    return
                await self._process_slot(slot)

    async def _process_slot(self, slot: int) -> None:
        try:
            block = await self.rpc_client.get_block(slot)
        except ChainClientError as e:
            logger.warning("Skipping slot %s: %s", slot, e)
            return
        if not block:
            return

        for tx in block.get('transactions') or []:
            swap = self.decode_transaction(tx, block.get('blockTime'))
            if swap is None:
                continue
            print(
                f"Swap on {C_BLUE}{swap.pool_name}{C_RESET}: {swap.amount_in:.4f} {swap.token_in} -> "
                f"{swap.estimated_amount_out:.4f} {swap.token_out} "
                f"(wallet {format_wallet_address(swap.wallet_address)}, slot {slot})"
            )
            await self.queue.put(swap)
            self.events_emitted += 1

    def decode_transaction(self, tx: dict, block_time: Optional[int] = None) -> Optional[SwapTransaction]:
        """Decoded swap, or None when the transaction is irrelevant or unreadable."""
        try:
            raw = self.decoder.decode(tx)
        except DecodeError as e:
            logger.debug("Dropping undecodable DEX transaction: %s", e)
            return None
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            logger.warning("Dropping malformed transaction: %r", e)
            return None
        if raw is None:
            return None
        if raw.signer in self.known_bots:
            logger.debug("Ignoring swap from known MEV bot %s", raw.signer)
            return None
        return normalize_swap(raw, block_time)

    async def _wait_backoff(self, stop_event: asyncio.Event) -> None:
        if self._sleep is not None:
            await self._sleep(self.backoff)
            return
        try:
            await asyncio.wait_for(stop_event.wait(), timeout=self.backoff)
        except asyncio.TimeoutError:
            pass
