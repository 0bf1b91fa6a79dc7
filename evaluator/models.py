#!/usr/bin/env python3
from dataclasses import dataclass, field
from typing import List, Optional
from uuid import uuid4

ACTION_ENTER = 'enter'
ACTION_SKIP = 'skip'

STRATEGY_ARBITRAGE = 'arbitrage'
STRATEGY_SANDWICH = 'sandwich'
STRATEGY_SANDWICH_FRONT = 'sandwich_front'
STRATEGY_SANDWICH_BACK = 'sandwich_back'
STRATEGY_SNIPE = 'snipe'


@dataclass(frozen=True)
class SwapTransaction:
    """A normalized swap observed on one of the watched DEX venues."""
    token_in: str
    token_out: str
    amount_in: float
    estimated_amount_out: float
    slippage: float
    pool_name: str
    wallet_address: str
    timestamp: int

    @property
    def pair_name(self) -> str:
        return f"{self.token_in}/{self.token_out}"


@dataclass
class TokenPrice:
    token: str
    price_usd: float
    change_24h: float
    volume_24h: float


@dataclass
class PoolData:
    pool_name: str
    token_a: str
    token_b: str
    liquidity: float
    volume_24h: float
    fee: float


@dataclass
class MarketData:
    """Price and liquidity snapshot for the tokens of one swap."""
    prices: List[TokenPrice]
    pools: List[PoolData]
    timestamp: int

    def price_for(self, token: str) -> Optional[TokenPrice]:
        return next((price for price in self.prices if price.token == token), None)


@dataclass
class SentimentData:
    token: str
    sentiment_score: float  # -1.0 to 1.0
    volume_change_24h: float
    social_mentions: int
    trending_score: float  # 0.0 to 1.0
    timestamp: int


@dataclass(frozen=True)
class AgentDecision:
    """Output of the scoring oracle for a single transaction."""
    opportunity_score: float
    action: str  # 'enter' or 'skip'
    risk_level: str  # 'low', 'medium' or 'high'
    reasoning: str


@dataclass(frozen=True)
class OpportunityScore:
    mev_score: float
    confidence: float
    profitability: float
    risk_level: int  # 0-3


@dataclass(frozen=True)
class TradeDecision:
    """A trade the executor is asked to simulate and, if it passes, commit."""
    token_in: str
    token_out: str
    amount_in: float
    expected_min_out: float
    confidence_score: float
    risk_level: int
    strategy: str
    decision_id: str = field(default_factory=lambda: uuid4().hex)

    @property
    def pair_name(self) -> str:
        return f"{self.token_in}/{self.token_out}"
