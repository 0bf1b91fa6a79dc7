import json
import random

import pytest

from evaluator.models import AgentDecision, SwapTransaction
from evaluator.opportunity_evaluator import OpportunityEvaluator
from services.market_data import MarketDataCollector
from services.scoring_oracle import HeuristicScoringOracle, ScoringOracle
from services.sentiment import SentimentAnalyzer


def _make_transaction():
    return SwapTransaction(
        token_in="SOL",
        token_out="USDC",
        amount_in=20.0,
        estimated_amount_out=700.0,
        slippage=0.02,
        pool_name="Orca",
        wallet_address="wallet",
        timestamp=0,
    )


class RecordingOracle(ScoringOracle):
    def __init__(self):
        self.calls = []

    async def evaluate(self, transaction, market_data=None, sentiment_data=None):
        self.calls.append((transaction, market_data, sentiment_data))
        return AgentDecision(opportunity_score=0.5, action="skip", risk_level="low", reasoning="recorded")


class FailingMarketData(MarketDataCollector):
    async def get_market_data(self, tokens):
        raise RuntimeError("price feed down")


class FailingSentiment(SentimentAnalyzer):
    async def get_token_sentiment(self, token):
        raise RuntimeError("social api down")


@pytest.mark.asyncio
async def test_oracle_receives_serialized_snapshots():
    oracle = RecordingOracle()
    evaluator = OpportunityEvaluator(
        MarketDataCollector(random.Random(1)),
        SentimentAnalyzer(random.Random(2)),
        oracle,
    )

    evaluation = await evaluator.evaluate(_make_transaction())

    assert evaluation.decision.reasoning == "recorded"
    _, market_json, sentiment_json = oracle.calls[0]
    market = json.loads(market_json)
    assert [price["token"] for price in market["prices"]] == ["SOL", "USDC"]
    assert json.loads(sentiment_json)["token"] == "USDC"
    assert evaluation.market_data is not None
    assert evaluation.sentiment is not None


@pytest.mark.asyncio
async def test_failed_fetches_degrade_to_absent_snapshots():
    oracle = RecordingOracle()
    evaluator = OpportunityEvaluator(FailingMarketData(), FailingSentiment(), oracle)

    evaluation = await evaluator.evaluate(_make_transaction())

    assert evaluation.market_data is None
    assert evaluation.sentiment is None
    assert oracle.calls[0][1] is None
    assert oracle.calls[0][2] is None
    assert evaluation.decision.action == "skip"


@pytest.mark.asyncio
async def test_seeded_heuristic_evaluation_is_reproducible():
    def build(seed):
        rng = random.Random(seed)
        return OpportunityEvaluator(MarketDataCollector(rng), SentimentAnalyzer(rng), HeuristicScoringOracle(rng))

    first = await build(42).evaluate(_make_transaction())
    second = await build(42).evaluate(_make_transaction())

    assert first.decision == second.decision
