# pipeline.py
import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable, Optional

from constants import C_BLUE, C_GREEN, C_RED, C_RESET, C_YELLOW
from errors import ExecutionError
from evaluator.decision_maker import DecisionMaker
from evaluator.models import OpportunityScore, SwapTransaction, TradeDecision
from evaluator.opportunity_evaluator import OpportunityEvaluator
from evaluator.risk_analyzer import RiskAnalyzer
from evaluator.scorer import OpportunityScorer
from services.telegram_notifier import TelegramNotifier
from services.trade_executor import TransactionExecutor
from storage import TradeLogRecord, TradeLogRepository

logger = logging.getLogger(__name__)

STAGE_IGNORED = 'ignored'
STAGE_BELOW_THRESHOLD = 'below_threshold'
STAGE_NO_DECISION = 'no_decision'
STAGE_RISK_REJECTED = 'risk_rejected'
STAGE_SIMULATION_FAILED = 'simulation_failed'
STAGE_EXECUTION_FAILED = 'execution_failed'
STAGE_EXECUTED = 'executed'


@dataclass
class TradeResult:
    """Outcome of pushing one swap through the pipeline."""
    stage: str
    transaction: SwapTransaction
    score: Optional[OpportunityScore] = None
    decision: Optional[TradeDecision] = None
    signature: Optional[str] = None
    reason: Optional[str] = None

    @property
    def executed(self) -> bool:
        return self.stage == STAGE_EXECUTED


class MevPipeline:
    """Sequential consumer: every swap is evaluated, gated and (maybe) traded before the next one."""

    def __init__(
        self,
        evaluator: OpportunityEvaluator,
        scorer: OpportunityScorer,
        decision_maker: DecisionMaker,
        executor: TransactionExecutor,
        risk_analyzer: Optional[RiskAnalyzer] = None,
        notifier: Optional[TelegramNotifier] = None,
        trade_log: Optional[TradeLogRepository] = None,
        target_tokens: Optional[Iterable[str]] = None,
    ):
        self.evaluator = evaluator
        self.scorer = scorer
        self.decision_maker = decision_maker
        self.executor = executor
        self.risk_analyzer = risk_analyzer
        self.notifier = notifier
        self.trade_log = trade_log
        self.target_tokens = {token.upper() for token in target_tokens} if target_tokens else None
        self.processed = 0
        self.executed = 0
        self.failed = 0

    async def run(self, queue: asyncio.Queue, stop_event: asyncio.Event, poll_interval: float = 0.5) -> None:
        """Consumes ``queue`` until ``stop_event`` is set; checked only between transactions."""
        print(f"{C_GREEN}MEV pipeline started. Waiting for swaps...{C_RESET}")
        while not stop_event.is_set():
            try:
                transaction = await asyncio.wait_for(queue.get(), timeout=poll_interval)
            except asyncio.TimeoutError:
                continue

            try:
                await self.process_transaction(transaction)
            except Exception as e:
                self.failed += 1
                print(f"{C_RED}Error processing {transaction.pair_name} swap: {e}{C_RESET}")
            finally:
                queue.task_done()

        print(
            f"MEV pipeline stopped. Processed {self.processed} swaps, "
            f"executed {self.executed}, failed {self.failed}."
        )

    async def process_transaction(self, transaction: SwapTransaction) -> TradeResult:
        self.processed += 1
        if not self._is_target(transaction):
            return TradeResult(STAGE_IGNORED, transaction, reason="not a target pair")

        print(
            f"\nEvaluating {C_YELLOW}{transaction.pair_name}{C_RESET} swap on {C_BLUE}{transaction.pool_name}{C_RESET}: "
            f"{transaction.amount_in} {transaction.token_in}, slippage {transaction.slippage * 100:.2f}%"
        )
        evaluation = await self.evaluator.evaluate(transaction)
        agent_decision = evaluation.decision

        score = self.scorer.calculate_score(transaction, agent_decision)
        print(
            f"Opportunity score: {score.mev_score:.2f} (confidence {score.confidence:.2f}, "
            f"risk {score.risk_level}/3, profitability {score.profitability:.4f})"
        )
        if not self.scorer.should_execute(score):
            print(f"Skipping {transaction.pair_name}: score or risk outside thresholds.")
            return TradeResult(STAGE_BELOW_THRESHOLD, transaction, score=score, reason="score or risk outside thresholds")

        decision = self.decision_maker.make_decision(transaction, score, agent_decision)
        if decision is None:
            print(f"Skipping {transaction.pair_name}: no trade decision ({agent_decision.action}).")
            return TradeResult(STAGE_NO_DECISION, transaction, score=score, reason=agent_decision.reasoning)

        if self.risk_analyzer is not None:
            risk = self.risk_analyzer.analyze_risk(transaction, evaluation.sentiment, evaluation.market_data)
            if not self.risk_analyzer.is_within_risk_tolerance(risk):
                print(f"{C_YELLOW}Skipping {transaction.pair_name}: risk {risk}/3 above tolerance.{C_RESET}")
                return TradeResult(
                    STAGE_RISK_REJECTED, transaction, score=score, decision=decision,
                    reason=f"risk {risk} above tolerance {self.risk_analyzer.risk_tolerance}",
                )

        print(
            f"{C_GREEN}Opportunity detected: {decision.strategy} {decision.amount_in} {decision.token_in} -> "
            f"{decision.token_out} (min out {decision.expected_min_out:.4f}){C_RESET}"
        )
        await self._notify(self.notifier.notify_opportunity_detected(decision) if self.notifier else None)

        try:
            passed = await self.executor.simulate(decision)
        except Exception as e:
            self.failed += 1
            print(f"{C_RED}Simulation error for {decision.pair_name}: {e}{C_RESET}")
            await self._record(decision, success=False, notes=f"Error: {e}")
            return TradeResult(STAGE_SIMULATION_FAILED, transaction, score=score, decision=decision, reason=str(e))

        if not passed:
            self.failed += 1
            print(f"{C_YELLOW}Simulation rejected {decision.pair_name}; not executing.{C_RESET}")
            await self._record(decision, success=False, notes="Simulation failed")
            return TradeResult(STAGE_SIMULATION_FAILED, transaction, score=score, decision=decision, reason="simulation failed")

        try:
            signature = await self.executor.execute(decision)
        except ExecutionError as e:
            self.failed += 1
            print(f"{C_RED}Trade execution failed for {decision.pair_name}: {e}{C_RESET}")
            await self._record(decision, success=False, notes=f"Error: {e}")
            return TradeResult(STAGE_EXECUTION_FAILED, transaction, score=score, decision=decision, reason=str(e))

        self.executed += 1
        print(f"{C_GREEN}Trade executed! Signature: {signature}{C_RESET}")
        await self._record(
            decision,
            success=True,
            signature=signature,
            notes=f"Confidence: {decision.confidence_score}",
        )
        await self._notify(self.notifier.notify_trade_executed(decision, signature) if self.notifier else None)
        return TradeResult(STAGE_EXECUTED, transaction, score=score, decision=decision, signature=signature)

    def _is_target(self, transaction: SwapTransaction) -> bool:
        if self.target_tokens is None:
            return True
        return transaction.token_in in self.target_tokens or transaction.token_out in self.target_tokens

    async def _record(
        self,
        decision: TradeDecision,
        success: bool,
        signature: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> None:
        if self.trade_log is None:
            return
        record = TradeLogRecord(
            timestamp=datetime.now(timezone.utc),
            token_in=decision.token_in,
            token_out=decision.token_out,
            amount_in=decision.amount_in,
            amount_out=decision.expected_min_out if success else None,
            strategy=decision.strategy,
            tx_signature=signature,
            success=success,
            notes=notes,
        )
        try:
            await self.trade_log.append(record)
        except OSError as e:
            print(f"{C_RED}Failed to log trade: {e}{C_RESET}")

    @staticmethod
    async def _notify(notification) -> None:
        if notification is None:
            return
        try:
            await notification
        except Exception as e:
            logger.error("Failed to send notification: %s", e)
