#!/usr/bin/env python3
import asyncio
import logging
import random
import signal
from typing import Optional

import constants
from config import AppConfig, load_config
from context import BotContext, load_signer
from demo import (
    ARB_MAX_RISK_LEVEL,
    ARB_MIN_OPPORTUNITY_SCORE,
    ARB_MIN_PROFITABILITY,
    run_arb_demo,
    run_sandwich_demo,
)
from errors import MevBotError
from evaluator.decision_maker import DecisionMaker
from evaluator.opportunity_evaluator import OpportunityEvaluator
from evaluator.risk_analyzer import RiskAnalyzer
from evaluator.scorer import OpportunityScorer
from listener.swap_stream import SwapStream
from pipeline import MevPipeline
from services.market_data import MarketDataCollector
from services.scoring_oracle import build_scoring_oracle
from services.sentiment import SentimentAnalyzer
from services.telegram_notifier import TelegramNotifier
from services.trade_executor import TransactionExecutor
from storage import TradeLogRecord, TradeLogRepository


def build_pipeline(
    context: BotContext,
    *,
    min_opportunity_score: Optional[float] = None,
    max_risk_level: Optional[int] = None,
    min_profitability: Optional[float] = None,
) -> MevPipeline:
    """Wires evaluator, gates, executor, notifier and trade log from the shared context."""
    config = context.config
    rng = random.Random(config.oracle_seed) if config.oracle_seed is not None else random.Random()

    oracle = build_scoring_oracle(context.session, config.gemini_api_key, rng)
    evaluator = OpportunityEvaluator(MarketDataCollector(rng), SentimentAnalyzer(rng), oracle)
    scorer = OpportunityScorer(
        min_opportunity_score if min_opportunity_score is not None else config.min_opportunity_score,
        max_risk_level if max_risk_level is not None else config.max_risk_level,
    )
    decision_maker = DecisionMaker(
        min_profitability if min_profitability is not None else config.min_profit_threshold
    )
    executor = TransactionExecutor(
        context.rpc_client,
        context.quote_client,
        context.signer,
        dry_run=config.simulation_mode,
        priority_fee=config.priority_fee,
    )
    risk_analyzer = RiskAnalyzer(config.max_risk_threshold) if config.max_risk_threshold is not None else None
    notifier = None
    if config.telegram_enabled:
        notifier = TelegramNotifier(config.telegram_bot_token, config.telegram_chat_id)

    return MevPipeline(
        evaluator,
        scorer,
        decision_maker,
        executor,
        risk_analyzer=risk_analyzer,
        notifier=notifier,
        trade_log=TradeLogRepository(config.trade_log_path),
        target_tokens=config.target_tokens,
    )


async def close_pipeline(pipeline: MevPipeline) -> None:
    await pipeline.executor.close()
    if pipeline.notifier:
        await pipeline.notifier.close()
    if pipeline.trade_log:
        await pipeline.trade_log.close()


async def run_bot(config: AppConfig) -> int:
    """Runs the swap stream and the pipeline until a signal arrives; non-zero when the stream dies."""
    try:
        signer = load_signer(config)
    except (OSError, ValueError) as e:
        print(f"{constants.C_RED}Failed to load signing key: {e}{constants.C_RESET}")
        return 1
    if signer is None and not config.simulation_mode:
        print(f"{constants.C_RED}Live trading requires a signing key. Use --sim to run without one.{constants.C_RESET}")
        return 1

    if config.simulation_mode:
        print(f"{constants.C_YELLOW}Running in SIMULATION mode - no real transactions will be submitted.{constants.C_RESET}")
    else:
        print(f"{constants.C_RED}Running in LIVE mode - real transactions will be submitted!{constants.C_RESET}")

    context = BotContext.create(config, signer)
    pipeline = build_pipeline(context)
    queue: asyncio.Queue = asyncio.Queue(maxsize=config.queue_capacity)
    stop_event = asyncio.Event()
    _install_signal_handlers(stop_event)

    stream = SwapStream(
        context.rpc_client,
        queue,
        backoff=config.reconnect_backoff,
        max_attempts=config.max_reconnect_attempts,
    )
    producer = asyncio.create_task(stream.run(stop_event))
    consumer = asyncio.create_task(pipeline.run(queue, stop_event))

    exit_code = 0
    try:
        done, _ = await asyncio.wait({producer, consumer}, return_when=asyncio.FIRST_COMPLETED)
        if producer in done:
            error = producer.exception()
            if error is not None:
                print(f"{constants.C_RED}Swap stream terminated: {error}{constants.C_RESET}")
                exit_code = 1
            stop_event.set()
        await consumer
    finally:
        stop_event.set()
        if not producer.done():
            producer.cancel()
            try:
                await producer
            except asyncio.CancelledError:
                pass
        await close_pipeline(pipeline)
        await context.close()
    return exit_code


def _install_signal_handlers(stop_event: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except (NotImplementedError, RuntimeError):
            # Windows event loops do not support signal handlers.
            pass


async def run_init(config: AppConfig) -> int:
    """Checks node connectivity and the configured wallet."""
    print(f"Connecting to Solana RPC at: {config.rpc_url}")
    context = BotContext.create(config)
    try:
        try:
            version = await context.rpc_client.get_version()
            print(f"{constants.C_GREEN}Connected to Solana node version: {version.get('solana-core', 'unknown')}{constants.C_RESET}")
        except MevBotError as e:
            print(f"{constants.C_YELLOW}Could not connect to Solana RPC: {e}{constants.C_RESET}")

        try:
            signer = load_signer(config)
        except (OSError, ValueError) as e:
            print(f"{constants.C_YELLOW}Could not read wallet at {config.wallet_path}: {e}{constants.C_RESET}")
            return 1
        if signer is None:
            print(f"{constants.C_YELLOW}No wallet found at {config.wallet_path} and {constants.TRADING_PRIVATE_KEY_ENV_VAR} is not set.{constants.C_RESET}")
            return 1

        pubkey = str(signer.pubkey())
        print(f"Using wallet: {pubkey}")
        try:
            lamports = await context.rpc_client.get_balance(pubkey)
        except MevBotError as e:
            print(f"{constants.C_YELLOW}Could not get wallet balance: {e}{constants.C_RESET}")
        else:
            sol_balance = lamports / constants.LAMPORTS_PER_SOL
            print(f"Wallet balance: {sol_balance} SOL")
            if sol_balance < constants.MIN_WALLET_BALANCE_SOL:
                print(f"{constants.C_YELLOW}Wallet balance is low. You might need more SOL for transactions.{constants.C_RESET}")
    finally:
        await context.close()

    print(f"{constants.C_GREEN}Configuration initialized successfully!{constants.C_RESET}")
    return 0


async def run_demo(config: AppConfig) -> None:
    context = BotContext.create(config)
    if config.demo == 'arb':
        pipeline = build_pipeline(
            context,
            min_opportunity_score=ARB_MIN_OPPORTUNITY_SCORE,
            max_risk_level=ARB_MAX_RISK_LEVEL,
            min_profitability=ARB_MIN_PROFITABILITY,
        )
    else:
        pipeline = build_pipeline(context)
    try:
        if config.demo == 'arb':
            await run_arb_demo(pipeline)
        else:
            await run_sandwich_demo(pipeline.executor)
    finally:
        await close_pipeline(pipeline)
        await context.close()


def main() -> None:
    """The main synchronous entry point for the application."""
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )
    config = load_config()

    if config.show_trades:
        repository = TradeLogRepository(config.trade_log_path)
        records = asyncio.run(repository.fetch_history(limit=config.trade_limit))
        _print_trade_records(records, config.trade_limit)
        return

    if config.init_only:
        exit(asyncio.run(run_init(config)))

    if config.demo:
        asyncio.run(run_demo(config))
        return

    try:
        exit_code = asyncio.run(run_bot(config))
    except KeyboardInterrupt:
        exit_code = 0
    if exit_code:
        exit(exit_code)


def _print_trade_records(records: list[TradeLogRecord], limit: int) -> None:
    heading = f"Showing up to {limit} recorded trades"
    print(heading)
    print("=" * len(heading))

    if not records:
        print("No trades recorded.")
        return

    headers = ["Time (UTC)", "Strategy", "Pair", "Amount In", "Amount Out", "Result", "Signature", "Notes"]

    def _format_row(record: TradeLogRecord) -> list[str]:
        signature = record.tx_signature or "-"
        if len(signature) > 16:
            signature = f"{signature[:8]}...{signature[-8:]}"
        return [
            record.timestamp.strftime("%Y-%m-%d %H:%M:%S"),
            record.strategy,
            f"{record.token_in}/{record.token_out}",
            f"{record.amount_in:,.4f}",
            f"{record.amount_out:,.4f}" if record.amount_out is not None else "-",
            "OK" if record.success else "FAILED",
            signature,
            record.notes or "",
        ]

    rows = [_format_row(rec) for rec in records]
    widths = [len(h) for h in headers]
    for row in rows:
        for idx, cell in enumerate(row):
            widths[idx] = max(widths[idx], len(cell))

    def _format_line(row: list[str]) -> str:
        return "  ".join(cell.ljust(widths[idx]) for idx, cell in enumerate(row))

    print(_format_line(headers))
    print("  ".join('-' * w for w in widths))
    for row in rows:
        print(_format_line(row))


if __name__ == "__main__":
    main()
