#!/usr/bin/env python3
from typing import Optional

from evaluator.models import MarketData, SentimentData, SwapTransaction


class RiskAnalyzer:
    """Rule-based risk level (1-3) from swap size, slippage, sentiment and volatility."""

    def __init__(self, risk_tolerance: int):
        self.risk_tolerance = max(1, min(3, risk_tolerance))

    def analyze_risk(
        self,
        transaction: SwapTransaction,
        sentiment: Optional[SentimentData] = None,
        market_data: Optional[MarketData] = None,
    ) -> int:
        risk_level = 2

        if transaction.amount_in > 100.0:
            risk_level += 1
        elif transaction.amount_in < 10.0:
            risk_level -= 1

        if transaction.slippage > 0.03:
            risk_level += 1
        elif transaction.slippage < 0.01:
            risk_level -= 1

        if sentiment is not None:
            if sentiment.sentiment_score < -0.3:
                risk_level += 1
            elif sentiment.sentiment_score > 0.7:
                risk_level -= 1

        if market_data is not None:
            token_price = market_data.price_for(transaction.token_out)
            if token_price and abs(token_price.change_24h) > 10.0:
                risk_level += 1

        return max(1, min(3, risk_level))

    def is_within_risk_tolerance(self, risk_level: int) -> bool:
        return risk_level <= self.risk_tolerance
