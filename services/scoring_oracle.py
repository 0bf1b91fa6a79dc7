# services/scoring_oracle.py
import asyncio
import json
import random
import time
from typing import Dict, Optional

import aiohttp

from constants import (
    C_YELLOW,
    C_RESET,
    DEFAULT_PAIR_FACTOR,
    DEFAULT_REQUEST_RETRIES,
    DEFAULT_RETRY_DELAY,
    DEFAULT_VENUE_FACTOR,
    GEMINI_API_URL,
    PAIR_FACTORS,
    POOL_FACTORS,
)
from errors import OracleError
from evaluator.models import ACTION_ENTER, ACTION_SKIP, AgentDecision, SwapTransaction

_VALID_ACTIONS = {ACTION_ENTER, ACTION_SKIP}
_VALID_RISK_LEVELS = {'low', 'medium', 'high'}


async def api_post(
    url: str,
    session: aiohttp.ClientSession,
    json_data: Dict,
    headers: Optional[Dict] = None,
    retries: int = DEFAULT_REQUEST_RETRIES,
    timeout: int = 30,
) -> Optional[Dict]:
    """Makes an async POST request with bounded retries; None once they are exhausted."""
    for attempt in range(retries):
        try:
            async with session.post(url, json=json_data, headers=headers, timeout=timeout) as response:
                response.raise_for_status()
                return await response.json()
        except (aiohttp.ClientError, asyncio.TimeoutError, json.JSONDecodeError) as e:
            if attempt < retries - 1:
                await asyncio.sleep(DEFAULT_RETRY_DELAY)
            else:
                print(f"API POST request failed after {retries} attempts: {e}")
    return None


def format_context(
    transaction: SwapTransaction,
    market_data: Optional[str],
    sentiment_data: Optional[str],
) -> str:
    """Renders the transaction and its snapshots as the oracle's context block."""
    context = (
        "Transaction Details:\n"
        f"- Token In: {transaction.token_in}\n"
        f"- Token Out: {transaction.token_out}\n"
        f"- Amount: {transaction.amount_in} {transaction.token_in}\n"
        f"- Expected Output: ~ {transaction.estimated_amount_out} {transaction.token_out}\n"
        f"- Slippage: {transaction.slippage * 100.0}%\n"
        f"- DEX: {transaction.pool_name}\n"
        f"- Wallet: {transaction.wallet_address}\n"
    )
    if market_data:
        context += "\nMarket Data:\n" + market_data + "\n"
    if sentiment_data:
        context += "\nSentiment Data:\n" + sentiment_data + "\n"
    return context


class ScoringOracle:
    """Call contract shared by every oracle: transaction + context -> AgentDecision."""

    async def evaluate(
        self,
        transaction: SwapTransaction,
        market_data: Optional[str] = None,
        sentiment_data: Optional[str] = None,
    ) -> AgentDecision:
        raise NotImplementedError


class HeuristicScoringOracle(ScoringOracle):
    """Deterministic (given the rng) weighted-sum scorer used when no remote oracle is usable."""

    def __init__(self, rng: Optional[random.Random] = None):
        self._rng = rng or random.Random()

    async def evaluate(
        self,
        transaction: SwapTransaction,
        market_data: Optional[str] = None,
        sentiment_data: Optional[str] = None,
    ) -> AgentDecision:
        return self.score(transaction)

    def score(self, transaction: SwapTransaction) -> AgentDecision:
        size_factor = min(transaction.amount_in / 100.0, 1.0) * 0.4
        slippage_factor = min(transaction.slippage * 100.0, 1.0) * 0.3
        pool_factor = POOL_FACTORS.get(transaction.pool_name, DEFAULT_VENUE_FACTOR)
        pair_factor = PAIR_FACTORS.get((transaction.token_in, transaction.token_out), DEFAULT_PAIR_FACTOR)

        random_factor = self._rng.random() * 0.2
        raw_score = size_factor + slippage_factor + pool_factor + pair_factor + random_factor
        opportunity_score = max(0.0, min(1.0, raw_score))

        if opportunity_score > 0.85:
            risk_level = 'high'
        elif opportunity_score > 0.75:
            risk_level = 'medium'
        else:
            risk_level = 'low'

        outlook = "potential opportunity" if opportunity_score > 0.7 else "low probability of success"
        reasoning = (
            f"Transaction analysis: {transaction.amount_in} {transaction.token_in} -> "
            f"{transaction.token_out} on {transaction.pool_name}. "
            f"Transaction size and slippage suggest {outlook}."
        )
        return AgentDecision(
            opportunity_score=opportunity_score,
            action=ACTION_ENTER if opportunity_score > 0.7 else ACTION_SKIP,
            risk_level=risk_level,
            reasoning=reasoning,
        )


class RemoteScoringOracle(ScoringOracle):
    """Asks a Gemini model for a decision; any failure falls back to the heuristic."""

    def __init__(
        self,
        session: aiohttp.ClientSession,
        api_key: str,
        fallback: HeuristicScoringOracle,
        rate_limit_delay: float = 10.0,
    ):
        self.session = session
        self.api_key = api_key
        self.fallback = fallback
        self.base_url = GEMINI_API_URL
        self.headers = {'Content-Type': 'application/json', 'x-goog-api-key': self.api_key}
        self._last_request_time = 0.0
        self._rate_limit_delay = rate_limit_delay

    async def _wait_for_rate_limit(self):
        """Ensures requests respect the rate limit by pausing if necessary."""
        elapsed = time.time() - self._last_request_time
        if elapsed < self._rate_limit_delay:
            await asyncio.sleep(self._rate_limit_delay - elapsed)
        self._last_request_time = time.time()

    async def evaluate(
        self,
        transaction: SwapTransaction,
        market_data: Optional[str] = None,
        sentiment_data: Optional[str] = None,
    ) -> AgentDecision:
        try:
            return await self._request_decision(transaction, market_data, sentiment_data)
        except OracleError as e:
            print(f"{C_YELLOW}Scoring oracle fallback used: {e}{C_RESET}")
            return self.fallback.score(transaction)

    async def _request_decision(
        self,
        transaction: SwapTransaction,
        market_data: Optional[str],
        sentiment_data: Optional[str],
    ) -> AgentDecision:
        await self._wait_for_rate_limit()

        request_body = {
            "contents": [{"parts": [{"text": self._build_prompt(transaction, market_data, sentiment_data)}]}],
            "generationConfig": {"responseMimeType": "application/json"},
        }
        response_json = await api_post(self.base_url, self.session, json_data=request_body, headers=self.headers)
        if response_json is None:
            raise OracleError("API response was empty")

        try:
            candidate = response_json['candidates'][0]['content']['parts'][0]['text'].strip()
        except (KeyError, IndexError, TypeError, AttributeError) as e:
            raise OracleError(f"parsing error: {e}") from e

        return self.parse_decision(candidate)

    @staticmethod
    def _build_prompt(
        transaction: SwapTransaction,
        market_data: Optional[str],
        sentiment_data: Optional[str],
    ) -> str:
        return f"""
You are an MEV analyst for Solana DEX swaps. Judge whether the pending swap below can be profitably
sandwiched, arbitraged or sniped.

{format_context(transaction, market_data, sentiment_data)}
Requirements:
1. Return ONLY strict JSON (no markdown) with keys "opportunity_score", "action", "risk_level", "reasoning".
2. "opportunity_score": number between 0 and 1.
3. "action": "enter" or "skip".
4. "risk_level": "low", "medium" or "high".
5. "reasoning": one or two sentences.
"""

    @classmethod
    def parse_decision(cls, raw_text: str) -> AgentDecision:
        text = cls._strip_code_fences(raw_text.strip())
        try:
            payload = json.loads(text)
        except json.JSONDecodeError as e:
            raise OracleError("invalid model output") from e
        if not isinstance(payload, dict):
            raise OracleError("invalid model output")

        score = payload.get('opportunity_score')
        action = payload.get('action')
        risk_level = payload.get('risk_level')
        reasoning = payload.get('reasoning') or ""
        if isinstance(score, bool) or not isinstance(score, (int, float)) or not 0.0 <= score <= 1.0:
            raise OracleError(f"opportunity_score out of range: {score!r}")
        if action not in _VALID_ACTIONS:
            raise OracleError(f"unknown action: {action!r}")
        if risk_level not in _VALID_RISK_LEVELS:
            raise OracleError(f"unknown risk level: {risk_level!r}")

        return AgentDecision(
            opportunity_score=float(score),
            action=action,
            risk_level=risk_level,
            reasoning=str(reasoning).strip(),
        )

    @staticmethod
    def _strip_code_fences(text: str) -> str:
        if text.startswith("```"):
            lines = text.splitlines()
            if len(lines) >= 3 and lines[0].startswith("```") and lines[-1].startswith("```"):
                inner = "\n".join(lines[1:-1]).strip()
                if inner.startswith("json"):
                    inner = inner[4:].strip()
                return inner
        return text


def build_scoring_oracle(
    session: Optional[aiohttp.ClientSession],
    api_key: Optional[str],
    rng: Optional[random.Random] = None,
) -> ScoringOracle:
    """Selects the remote oracle when credentials exist, the heuristic otherwise."""
    heuristic = HeuristicScoringOracle(rng)
    if session is None or not api_key:
        return heuristic
    return RemoteScoringOracle(session, api_key, fallback=heuristic)
