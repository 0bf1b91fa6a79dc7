#!/usr/bin/env python3
from evaluator.models import AgentDecision, OpportunityScore, SwapTransaction

RISK_LEVELS = {
    'low': 1,
    'medium': 2,
    'high': 3,
}


class OpportunityScorer:
    """Turns an agent decision into a normalized score and applies the first gate."""

    def __init__(self, min_opportunity_score: float, max_risk_level: int):
        self.min_opportunity_score = min_opportunity_score
        self.max_risk_level = max_risk_level

    def calculate_score(self, transaction: SwapTransaction, agent_decision: AgentDecision) -> OpportunityScore:
        base_score = agent_decision.opportunity_score
        return OpportunityScore(
            mev_score=base_score,
            confidence=self._confidence_for(base_score),
            # Coarse proxy: slippage captured on the victim's size.
            profitability=transaction.slippage * transaction.amount_in * 0.01,
            risk_level=RISK_LEVELS.get(agent_decision.risk_level, 0),
        )

    def should_execute(self, score: OpportunityScore) -> bool:
        return (
            score.mev_score >= self.min_opportunity_score
            and score.risk_level <= self.max_risk_level
        )

    @staticmethod
    def _confidence_for(base_score: float) -> float:
        if base_score > 0.9:
            return 0.95
        if base_score > 0.8:
            return 0.85
        if base_score > 0.7:
            return 0.75
        return 0.5
