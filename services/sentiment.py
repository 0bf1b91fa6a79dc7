#!/usr/bin/env python3
import random
import time
from typing import Optional

from evaluator.models import SentimentData

# (base sentiment, base trending) per token
_BASELINES = {
    'SOL': (0.6, 0.7),
    'USDC': (0.3, 0.2),
    'BONK': (0.5, 0.8),
}


class SentimentAnalyzer:
    """Simulated social sentiment source, seedable for reproducible runs."""

    def __init__(self, rng: Optional[random.Random] = None):
        self._rng = rng or random.Random()

    async def get_token_sentiment(self, token: str) -> SentimentData:
        base_sentiment, base_trending = _BASELINES.get(token, (0.0, 0.0))
        jitter = self._rng.random() * 0.4 - 0.2
        return SentimentData(
            token=token,
            sentiment_score=max(-1.0, min(1.0, base_sentiment + jitter)),
            volume_change_24h=self._rng.random() * 30.0 - 10.0,
            social_mentions=self._rng.randrange(1000),
            trending_score=max(0.0, min(1.0, base_trending + jitter)),
            timestamp=int(time.time()),
        )
