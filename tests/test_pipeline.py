import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from constants import SIMULATED_SIGNATURE
from errors import ExecutionError, QuoteRejectedError
from evaluator.decision_maker import DecisionMaker
from evaluator.models import AgentDecision, SwapTransaction
from evaluator.opportunity_evaluator import Evaluation
from evaluator.risk_analyzer import RiskAnalyzer
from evaluator.scorer import OpportunityScorer
from pipeline import (
    STAGE_BELOW_THRESHOLD,
    STAGE_EXECUTED,
    STAGE_EXECUTION_FAILED,
    STAGE_IGNORED,
    STAGE_NO_DECISION,
    STAGE_RISK_REJECTED,
    STAGE_SIMULATION_FAILED,
    MevPipeline,
)
from services.trade_executor import TransactionExecutor
from storage import TradeLogRepository


class FixedEvaluator:
    def __init__(self, decision, fail_for=None):
        self.decision = decision
        self.fail_for = fail_for
        self.calls = []

    async def evaluate(self, transaction):
        self.calls.append(transaction)
        if self.fail_for and transaction.token_in == self.fail_for:
            raise RuntimeError("oracle exploded")
        return Evaluation(decision=self.decision, market_data=None, sentiment=None)


class FakeQuoteClient:
    def __init__(self, out_amount=2_000_000_000_000):
        self.out_amount = out_amount
        self.quotes = []

    async def token_info(self, mint):
        return {"decimals": 9 if mint.startswith("So1") else 6}

    async def best_quote(self, input_mint, output_mint, amount_raw, min_out_raw=None):
        self.quotes.append((input_mint, output_mint, amount_raw, min_out_raw))
        if min_out_raw is not None and self.out_amount < min_out_raw:
            raise QuoteRejectedError("below minimum")
        return {"outAmount": str(self.out_amount)}


def _victim(token_in="USDC", token_out="SOL"):
    return SwapTransaction(
        token_in=token_in,
        token_out=token_out,
        amount_in=50000.0,
        estimated_amount_out=1400.0,
        slippage=0.05,
        pool_name="Orca",
        wallet_address="9rgeN6mbhCVbnZPpMBg2QCFhYJnuRyGrqnKULNbreAha",
        timestamp=1_700_000_000,
    )


def _agent(score=0.92, action="enter", risk_level="high"):
    return AgentDecision(opportunity_score=score, action=action, risk_level=risk_level, reasoning="large victim swap")


def _pipeline(tmp_path, agent=None, executor=None, quote_client=None, evaluator=None, **kwargs):
    quote_client = quote_client or FakeQuoteClient()
    executor = executor or TransactionExecutor(None, quote_client, None, dry_run=True)
    notifier = MagicMock()
    notifier.notify_opportunity_detected = AsyncMock(return_value=True)
    notifier.notify_trade_executed = AsyncMock(return_value=True)
    pipeline = MevPipeline(
        evaluator or FixedEvaluator(agent or _agent()),
        OpportunityScorer(min_opportunity_score=0.8, max_risk_level=3),
        DecisionMaker(min_profitability=0.5),
        executor,
        notifier=notifier,
        trade_log=TradeLogRepository(tmp_path / "trades.jsonl"),
        **kwargs,
    )
    return pipeline, notifier, quote_client


@pytest.mark.asyncio
async def test_large_victim_swap_becomes_dry_run_sandwich(tmp_path):
    pipeline, notifier, quote_client = _pipeline(tmp_path)
    transaction = _victim()

    result = await pipeline.process_transaction(transaction)

    assert result.stage == STAGE_EXECUTED
    assert pipeline.scorer.should_execute(result.score) is True
    assert result.decision.strategy == "sandwich"
    assert result.decision.expected_min_out == pytest.approx(transaction.estimated_amount_out * 0.925)
    assert result.signature == SIMULATED_SIGNATURE
    # simulation still checks the quote against the minimum output
    assert quote_client.quotes[0][2:] == (50_000_000_000, 1_295_000_000_000)

    notifier.notify_opportunity_detected.assert_awaited_once_with(result.decision)
    notifier.notify_trade_executed.assert_awaited_once_with(result.decision, SIMULATED_SIGNATURE)

    history = await pipeline.trade_log.fetch_history()
    assert len(history) == 1
    assert history[0].success is True
    assert history[0].tx_signature == SIMULATED_SIGNATURE
    assert history[0].strategy == "sandwich"


@pytest.mark.asyncio
async def test_skip_action_stops_before_execution(tmp_path):
    pipeline, notifier, quote_client = _pipeline(tmp_path, agent=_agent(action="skip"))

    result = await pipeline.process_transaction(_victim())

    assert result.stage == STAGE_NO_DECISION
    assert result.decision is None
    assert quote_client.quotes == []
    notifier.notify_opportunity_detected.assert_not_awaited()
    assert await pipeline.trade_log.fetch_history() == []


@pytest.mark.asyncio
async def test_low_score_is_below_threshold(tmp_path):
    pipeline, _, quote_client = _pipeline(tmp_path, agent=_agent(score=0.6))

    result = await pipeline.process_transaction(_victim())

    assert result.stage == STAGE_BELOW_THRESHOLD
    assert quote_client.quotes == []


@pytest.mark.asyncio
async def test_risk_gate_rejects_when_configured(tmp_path):
    pipeline, _, quote_client = _pipeline(tmp_path, risk_analyzer=RiskAnalyzer(2))

    result = await pipeline.process_transaction(_victim())

    assert result.stage == STAGE_RISK_REJECTED
    assert quote_client.quotes == []


@pytest.mark.asyncio
async def test_failed_simulation_is_logged_as_failed_trade(tmp_path):
    quote_client = FakeQuoteClient(out_amount=1)
    pipeline, notifier, _ = _pipeline(tmp_path, quote_client=quote_client)

    result = await pipeline.process_transaction(_victim())

    assert result.stage == STAGE_SIMULATION_FAILED
    notifier.notify_trade_executed.assert_not_awaited()
    history = await pipeline.trade_log.fetch_history()
    assert len(history) == 1
    assert history[0].success is False
    assert history[0].notes == "Simulation failed"


@pytest.mark.asyncio
async def test_unknown_token_aborts_only_that_transaction(tmp_path):
    pipeline, _, _ = _pipeline(tmp_path)

    result = await pipeline.process_transaction(_victim(token_out="WIF"))

    assert result.stage == STAGE_SIMULATION_FAILED
    assert "Unknown token symbol: WIF" in result.reason
    history = await pipeline.trade_log.fetch_history()
    assert history[0].notes == "Error: Unknown token symbol: WIF"


@pytest.mark.asyncio
async def test_execution_failure_is_logged_and_not_retried(tmp_path):
    executor = MagicMock()
    executor.simulate = AsyncMock(return_value=True)
    executor.execute = AsyncMock(side_effect=ExecutionError("send failed"))
    pipeline, notifier, _ = _pipeline(tmp_path, executor=executor)

    result = await pipeline.process_transaction(_victim())

    assert result.stage == STAGE_EXECUTION_FAILED
    assert executor.execute.await_count == 1
    notifier.notify_trade_executed.assert_not_awaited()
    history = await pipeline.trade_log.fetch_history()
    assert history[0].success is False
    assert history[0].notes == "Error: send failed"


@pytest.mark.asyncio
async def test_notifier_failure_does_not_abort(tmp_path):
    pipeline, notifier, _ = _pipeline(tmp_path)
    notifier.notify_opportunity_detected.side_effect = RuntimeError("telegram down")

    result = await pipeline.process_transaction(_victim())

    assert result.stage == STAGE_EXECUTED


@pytest.mark.asyncio
async def test_non_target_pairs_are_ignored(tmp_path):
    pipeline, _, _ = _pipeline(tmp_path, target_tokens=["BONK"])

    result = await pipeline.process_transaction(_victim())

    assert result.stage == STAGE_IGNORED
    assert pipeline.evaluator.calls == []


@pytest.mark.asyncio
async def test_run_isolates_failures_and_stops_between_transactions(tmp_path):
    evaluator = FixedEvaluator(_agent(), fail_for="BONK")
    pipeline, _, _ = _pipeline(tmp_path, evaluator=evaluator)
    queue = asyncio.Queue(maxsize=100)
    stop_event = asyncio.Event()

    await queue.put(_victim(token_in="BONK", token_out="SOL"))
    await queue.put(_victim())

    task = asyncio.create_task(pipeline.run(queue, stop_event, poll_interval=0.01))
    await asyncio.wait_for(queue.join(), timeout=1.0)
    stop_event.set()
    await asyncio.wait_for(task, timeout=1.0)

    assert len(evaluator.calls) == 2
    assert pipeline.processed == 2
    assert pipeline.executed == 1
    assert pipeline.failed == 1
