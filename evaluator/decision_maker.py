#!/usr/bin/env python3
import logging
from typing import Optional

from evaluator.models import (
    ACTION_ENTER,
    STRATEGY_ARBITRAGE,
    STRATEGY_SANDWICH,
    STRATEGY_SNIPE,
    AgentDecision,
    OpportunityScore,
    SwapTransaction,
    TradeDecision,
)

logger = logging.getLogger(__name__)


class DecisionMaker:
    """Second gate after the scorer; picks a strategy for the surviving opportunities."""

    def __init__(self, min_profitability: float):
        self.min_profitability = min_profitability

    def make_decision(
        self,
        transaction: SwapTransaction,
        score: OpportunityScore,
        agent_decision: AgentDecision,
    ) -> Optional[TradeDecision]:
        if agent_decision.action != ACTION_ENTER:
            logger.debug("Agent decided to skip %s", transaction.pair_name)
            return None

        if score.profitability < self.min_profitability:
            logger.debug("Profitability too low for %s: %s", transaction.pair_name, score.profitability)
            return None

        return TradeDecision(
            token_in=transaction.token_in,
            token_out=transaction.token_out,
            amount_in=transaction.amount_in,
            expected_min_out=self.expected_min_out(transaction),
            confidence_score=score.confidence,
            risk_level=score.risk_level,
            strategy=self.determine_strategy(transaction, score),
        )

    @staticmethod
    def determine_strategy(transaction: SwapTransaction, score: OpportunityScore) -> str:
        if transaction.slippage > 0.03 and transaction.amount_in > 5.0:
            return STRATEGY_SANDWICH
        if score.mev_score > 0.85:
            return STRATEGY_SNIPE
        return STRATEGY_ARBITRAGE

    @staticmethod
    def expected_min_out(transaction: SwapTransaction) -> float:
        """Minimum acceptable output with a 1.5x buffer over the observed slippage."""
        return transaction.estimated_amount_out * (1.0 - transaction.slippage * 1.5)
