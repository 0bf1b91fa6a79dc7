#!/usr/bin/env python3
"""Dry-run walk-throughs of the simple arbitrage flow and a sandwich leg pair."""
import asyncio
import time
from typing import Awaitable, Callable

from constants import C_GREEN, C_RED, C_RESET, C_YELLOW
from errors import MevBotError
from evaluator.models import (
    STRATEGY_SANDWICH_BACK,
    STRATEGY_SANDWICH_FRONT,
    SwapTransaction,
    TradeDecision,
)
from pipeline import MevPipeline, TradeResult
from services.trade_executor import TransactionExecutor

# Thresholds used by the arbitrage walk-through.
ARB_MIN_OPPORTUNITY_SCORE = 0.7
ARB_MAX_RISK_LEVEL = 2
ARB_MIN_PROFITABILITY = 0.1


def sample_arb_transaction() -> SwapTransaction:
    return SwapTransaction(
        token_in='SOL',
        token_out='USDC',
        amount_in=20.0,
        estimated_amount_out=700.0,
        slippage=0.02,
        pool_name='Orca',
        wallet_address='8JUjWjAyXTMB4ZXcV7nk9myvZ1HuZvxV7L6hx9ZYbFcz',
        timestamp=int(time.time()),
    )


def sample_victim_transaction() -> SwapTransaction:
    return SwapTransaction(
        token_in='USDC',
        token_out='SOL',
        amount_in=50000.0,
        estimated_amount_out=1400.0,
        slippage=0.05,
        pool_name='Orca',
        wallet_address='9rgeN6mbhCVbnZPpMBg2QCFhYJnuRyGrqnKULNbreAha',
        timestamp=int(time.time()),
    )


async def run_arb_demo(pipeline: MevPipeline) -> TradeResult:
    transaction = sample_arb_transaction()
    print("Simple Arbitrage Example")
    print("------------------------")
    print(f"Analyzing transaction: {transaction}")

    result = await pipeline.process_transaction(transaction)
    if result.executed:
        print(f"{C_GREEN}Trade executed successfully! Signature: {result.signature}{C_RESET}")
    else:
        print(f"{C_YELLOW}No trade: {result.stage} ({result.reason or 'n/a'}){C_RESET}")
    return result


async def run_sandwich_demo(
    executor: TransactionExecutor,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    victim_delay: float = 2.0,
) -> list[str]:
    """Executes a front and back leg around a sample victim swap; the executor must be in dry-run mode."""
    if not executor.dry_run:
        raise ValueError("The sandwich walk-through only runs in simulation mode.")

    victim = sample_victim_transaction()
    print("Sandwich MEV Example")
    print("-------------------")
    print("Detected victim transaction:")
    print(f"  {victim.amount_in} {victim.token_in} -> {victim.token_out} with {victim.slippage * 100:.1f}% slippage")
    print(f"  Pool: {victim.pool_name}")

    front_run = TradeDecision(
        token_in='SOL',
        token_out='USDC',
        amount_in=50.0,
        expected_min_out=1750.0,
        confidence_score=0.9,
        risk_level=2,
        strategy=STRATEGY_SANDWICH_FRONT,
    )
    back_run = TradeDecision(
        token_in='USDC',
        token_out='SOL',
        amount_in=1800.0,
        expected_min_out=48.0,
        confidence_score=0.9,
        risk_level=2,
        strategy=STRATEGY_SANDWICH_BACK,
    )

    signatures = []
    print("\nExecuting front-running transaction:")
    print(f"  {front_run.amount_in} {front_run.token_in} -> {front_run.token_out}")
    try:
        signatures.append(await executor.execute(front_run))
    except MevBotError as e:
        print(f"{C_RED}  Front-run failed: {e}{C_RESET}")
        return signatures
    print(f"  Front-run successful! Signature: {signatures[-1]}")

    print("\nWaiting for victim transaction to execute...")
    await sleep(victim_delay)

    print("\nExecuting back-running transaction:")
    print(f"  {back_run.amount_in} {back_run.token_in} -> {back_run.token_out}")
    try:
        signatures.append(await executor.execute(back_run))
    except MevBotError as e:
        print(f"{C_RED}  Back-run failed: {e}{C_RESET}")
        return signatures

    print(f"  Back-run successful! Signature: {signatures[-1]}")
    print(f"\n{C_GREEN}Sandwich complete!{C_RESET}")
    return signatures
