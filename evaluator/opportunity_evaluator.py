#!/usr/bin/env python3
import asyncio
import json
from dataclasses import asdict, dataclass
from typing import Optional

from constants import C_RED, C_RESET
from evaluator.models import AgentDecision, MarketData, SentimentData, SwapTransaction
from services.market_data import MarketDataCollector
from services.scoring_oracle import ScoringOracle
from services.sentiment import SentimentAnalyzer


@dataclass
class Evaluation:
    """Agent decision together with the snapshots it was based on."""
    decision: AgentDecision
    market_data: Optional[MarketData]
    sentiment: Optional[SentimentData]


def serialize_snapshot(snapshot) -> Optional[str]:
    if snapshot is None:
        return None
    return json.dumps(asdict(snapshot))


class OpportunityEvaluator:
    """Fuses market data, sentiment and the scoring oracle into one agent decision."""

    def __init__(
        self,
        market_data_collector: MarketDataCollector,
        sentiment_analyzer: SentimentAnalyzer,
        oracle: ScoringOracle,
    ):
        self.market_data_collector = market_data_collector
        self.sentiment_analyzer = sentiment_analyzer
        self.oracle = oracle

    async def evaluate(self, transaction: SwapTransaction) -> Evaluation:
        market_data, sentiment = await asyncio.gather(
            self.market_data_collector.get_market_data([transaction.token_in, transaction.token_out]),
            self.sentiment_analyzer.get_token_sentiment(transaction.token_out),
            return_exceptions=True,
        )

        if isinstance(market_data, Exception):
            print(f"{C_RED}Failed to get market data for {transaction.pair_name}: {market_data}{C_RESET}")
            market_data = None
        if isinstance(sentiment, Exception):
            print(f"{C_RED}Failed to get sentiment data for {transaction.token_out}: {sentiment}{C_RESET}")
            sentiment = None

        decision = await self.oracle.evaluate(
            transaction,
            serialize_snapshot(market_data),
            serialize_snapshot(sentiment),
        )
        return Evaluation(decision=decision, market_data=market_data, sentiment=sentiment)
