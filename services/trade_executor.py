"""Simulate-then-commit trade execution against the Jupiter router."""
from __future__ import annotations

import logging
from collections import OrderedDict
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional

from solders.keypair import Keypair

from constants import (
    SANDWICH_LEG_STRATEGIES,
    SANDWICH_PRIORITY_FEE_MICROLAMPORTS,
    SIMULATED_SIGNATURE,
    TOKEN_MINTS,
)
from errors import (
    ChainClientError,
    ExecutionError,
    QuoteError,
    QuoteRejectedError,
    UnknownTokenError,
)
from evaluator.models import TradeDecision
from services.jupiter_client import JupiterClient
from services.solana_rpc_client import SolanaRpcClient

_STATE_HISTORY_LIMIT = 1024


class ExecutionState(str, Enum):
    IDLE = "idle"
    SIMULATING = "simulating"
    SIMULATION_FAILED = "simulation_failed"
    SIMULATION_PASSED = "simulation_passed"
    EXECUTING = "executing"
    COMMITTED = "committed"
    EXECUTION_FAILED = "execution_failed"


@dataclass(slots=True)
class ResolvedTrade:
    input_mint: str
    output_mint: str
    amount_in_raw: int
    min_out_raw: int


class TransactionExecutor:
    """Resolves a trade decision, dry-runs it and, when asked, commits it on chain."""

    def __init__(
        self,
        rpc_client: Optional[SolanaRpcClient],
        quote_client: Optional[JupiterClient],
        signer: Optional[Keypair],
        *,
        dry_run: bool = False,
        priority_fee: int = SANDWICH_PRIORITY_FEE_MICROLAMPORTS,
        token_mints: Optional[Dict[str, str]] = None,
    ) -> None:
        if signer is None and not dry_run:
            raise ValueError("A signing keypair is required unless running in simulation mode.")

        self.rpc_client = rpc_client
        self.quote_client = quote_client
        self.signer = signer
        self.dry_run = dry_run
        self.priority_fee = priority_fee
        self.token_mints = dict(token_mints or TOKEN_MINTS)
        self._decimals_cache: dict[str, int] = {}
        self._states: OrderedDict[str, ExecutionState] = OrderedDict()
        self.logger = logging.getLogger(__name__)

    def state_of(self, decision: TradeDecision) -> ExecutionState:
        return self._states.get(decision.decision_id, ExecutionState.IDLE)

    async def simulate(self, decision: TradeDecision) -> bool:
        """Dry-runs ``decision``; False on an expected rejection, raises on infrastructure errors."""
        self._set_state(decision, ExecutionState.SIMULATING)
        self.logger.info("Simulating %s %s -> %s (%s)", decision.amount_in, decision.token_in, decision.token_out, decision.strategy)
        try:
            resolved = await self._resolve(decision)
            quote = await self.quote_client.best_quote(
                resolved.input_mint,
                resolved.output_mint,
                resolved.amount_in_raw,
                resolved.min_out_raw,
            )
        except QuoteRejectedError as exc:
            self.logger.warning("Simulation rejected for %s: %s", decision.pair_name, exc)
            self._set_state(decision, ExecutionState.SIMULATION_FAILED)
            return False
        except Exception:
            self._set_state(decision, ExecutionState.SIMULATION_FAILED)
            raise

        if self.signer is None:
            # Dry-run without a wallet: the quote check is the whole simulation.
            self._set_state(decision, ExecutionState.SIMULATION_PASSED)
            return True

        try:
            swap_transaction = await self.quote_client.build_swap_transaction(
                quote,
                str(self.signer.pubkey()),
                self._priority_fee_for(decision),
            )
            simulation = await self.rpc_client.simulate_transaction(swap_transaction)
        except Exception:
            self._set_state(decision, ExecutionState.SIMULATION_FAILED)
            raise

        if simulation.get("err") is not None:
            self.logger.error("Transaction simulation failed: %s", simulation.get("err"))
            self._set_state(decision, ExecutionState.SIMULATION_FAILED)
            return False

        self.logger.info("Transaction simulation successful for %s", decision.pair_name)
        self._set_state(decision, ExecutionState.SIMULATION_PASSED)
        return True

    async def execute(self, decision: TradeDecision) -> str:
        """Commits ``decision`` once and returns the transaction signature."""
        if self.dry_run:
            self.logger.info(
                "[SIMULATION] Would execute %s trade for %s %s -> %s",
                decision.strategy,
                decision.amount_in,
                decision.token_in,
                decision.token_out,
            )
            return SIMULATED_SIGNATURE

        if self.state_of(decision) in (
            ExecutionState.EXECUTING,
            ExecutionState.COMMITTED,
            ExecutionState.EXECUTION_FAILED,
        ):
            raise ExecutionError(f"Decision {decision.decision_id} was already submitted")

        self._set_state(decision, ExecutionState.EXECUTING)
        try:
            resolved = await self._resolve(decision)
            quote = await self.quote_client.best_quote(
                resolved.input_mint,
                resolved.output_mint,
                resolved.amount_in_raw,
                resolved.min_out_raw,
            )
            if decision.strategy in SANDWICH_LEG_STRATEGIES:
                signature = await self.quote_client.swap_with_priority_fee(quote, self.signer, self.priority_fee)
            else:
                signature = await self.quote_client.swap(quote, self.signer)
        except (ChainClientError, QuoteError, QuoteRejectedError, UnknownTokenError) as exc:
            self._set_state(decision, ExecutionState.EXECUTION_FAILED)
            raise ExecutionError(f"Trade execution failed for {decision.pair_name}: {exc}") from exc
        except Exception as exc:
            self._set_state(decision, ExecutionState.EXECUTION_FAILED)
            self.logger.error("Unexpected error while executing trade: %s", exc)
            raise ExecutionError(str(exc)) from exc

        self._set_state(decision, ExecutionState.COMMITTED)
        self.logger.info("Trade executed successfully! Signature: %s", signature)
        return signature

    def get_token_mint(self, symbol: str) -> str:
        mint = self.token_mints.get(symbol.upper())
        if mint is None:
            raise UnknownTokenError(symbol)
        return mint

    async def _resolve(self, decision: TradeDecision) -> ResolvedTrade:
        input_mint = self.get_token_mint(decision.token_in)
        output_mint = self.get_token_mint(decision.token_out)
        input_decimals = await self._get_token_decimals(input_mint)
        output_decimals = await self._get_token_decimals(output_mint)
        return ResolvedTrade(
            input_mint=input_mint,
            output_mint=output_mint,
            amount_in_raw=self._to_raw(decision.amount_in, input_decimals),
            min_out_raw=self._to_raw(max(decision.expected_min_out, 0.0), output_decimals),
        )

    async def _get_token_decimals(self, mint: str) -> int:
        if mint not in self._decimals_cache:
            info: Dict[str, Any] = await self.quote_client.token_info(mint)
            self._decimals_cache[mint] = int(info['decimals'])
        return self._decimals_cache[mint]

    def _priority_fee_for(self, decision: TradeDecision) -> Optional[int]:
        return self.priority_fee if decision.strategy in SANDWICH_LEG_STRATEGIES else None

    def _set_state(self, decision: TradeDecision, state: ExecutionState) -> None:
        self._states[decision.decision_id] = state
        self._states.move_to_end(decision.decision_id)
        while len(self._states) > _STATE_HISTORY_LIMIT:
            self._states.popitem(last=False)

    @staticmethod
    def _to_raw(amount: float, decimals: int) -> int:
        scale = Decimal(10) ** decimals
        return int((Decimal(str(amount)) * scale).to_integral_value())

    async def close(self) -> None:
        return None
