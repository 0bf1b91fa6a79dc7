#!/usr/bin/env python3
"""Simulated market data collector.

Real acquisition (DEX pool reads, price APIs) is out of scope; the collector
produces plausible snapshots from a seedable random source so the evaluator can
be exercised end to end.
"""
import random
import time
from typing import List, Optional, Sequence

from evaluator.models import MarketData, PoolData, TokenPrice


class MarketDataCollector:
    def __init__(self, rng: Optional[random.Random] = None):
        self._rng = rng or random.Random()

    async def get_market_data(self, tokens: Sequence[str]) -> MarketData:
        prices = [self._simulate_price(token) for token in tokens]
        return MarketData(
            prices=prices,
            pools=self._simulate_pools(tokens),
            timestamp=int(time.time()),
        )

    def _simulate_price(self, token: str) -> TokenPrice:
        rng = self._rng
        if token == 'SOL':
            base_price = 35.0 + (rng.random() * 2.0 - 1.0)
        elif token == 'USDC':
            base_price = 1.0 + (rng.random() * 0.01 - 0.005)
        elif token == 'BONK':
            base_price = 0.00001 + rng.random() * 0.000001
        else:
            base_price = 1.0
        return TokenPrice(
            token=token,
            price_usd=base_price,
            change_24h=rng.random() * 10.0 - 5.0,
            volume_24h=rng.random() * 1_000_000.0,
        )

    @staticmethod
    def _simulate_pools(tokens: Sequence[str]) -> List[PoolData]:
        pools: List[PoolData] = []
        if 'SOL' in tokens and 'USDC' in tokens:
            pools.append(PoolData('Orca SOL/USDC', 'SOL', 'USDC', 5_000_000.0, 1_000_000.0, 0.0025))
            pools.append(PoolData('Raydium SOL/USDC', 'SOL', 'USDC', 4_800_000.0, 950_000.0, 0.003))
        if 'USDC' in tokens and 'BONK' in tokens:
            pools.append(PoolData('Orca BONK/USDC', 'BONK', 'USDC', 1_200_000.0, 350_000.0, 0.003))
        return pools
