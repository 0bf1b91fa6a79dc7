#!/usr/bin/env python3
import os
import argparse
from typing import NamedTuple
import constants

class AppConfig(NamedTuple):
    """Typed configuration object."""
    rpc_url: str
    ws_url: str | None
    wallet_path: str
    trading_private_key: str | None
    gemini_api_key: str | None
    telegram_enabled: bool
    telegram_bot_token: str | None
    telegram_chat_id: str | None
    simulation_mode: bool
    init_only: bool
    show_trades: bool
    trade_limit: int
    demo: str | None
    min_opportunity_score: float
    max_risk_level: int
    min_profit_threshold: float
    max_risk_threshold: int | None
    queue_capacity: int
    reconnect_backoff: float
    max_reconnect_attempts: int | None
    priority_fee: int
    oracle_seed: int | None
    trade_log_path: str
    target_tokens: list[str]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Watch Solana DEX swaps for MEV opportunities and optionally trade them.",
        epilog="Example: ./main.py --sim --min-opportunity-score 0.75 --max-risk-level 3"
    )
    # --- Modes ---
    parser.add_argument('--sim', action='store_true', help='Simulation mode: evaluate and simulate, never submit transactions.')
    parser.add_argument('--init', action='store_true', help='Check RPC connectivity and wallet balance, then exit.')
    parser.add_argument('--show-trades', action='store_true', help='Display the recorded trade history and exit.')
    parser.add_argument('--trade-limit', type=int, default=20, help='Number of recent trades to display (default: 20).')
    parser.add_argument('--demo', choices=['arb', 'sandwich'], help='Run a dry-run walk-through of one strategy and exit.')

    # --- Thresholds ---
    parser.add_argument('--min-opportunity-score', type=float, default=0.8, help='Minimum MEV score (0-1) to act on (default: 0.8).')
    parser.add_argument('--max-risk-level', type=int, default=2, choices=[0, 1, 2, 3], help='Maximum oracle risk level to act on (default: 2).')
    parser.add_argument('--min-profit-threshold', type=float, default=0.5, help='Minimum profitability estimate for a trade decision (default: 0.5).')
    parser.add_argument('--max-risk-threshold', type=int, choices=[1, 2, 3], help='Enable the heuristic risk gate with this tolerance (1-3).')

    # --- Stream / execution ---
    parser.add_argument('--queue-capacity', type=int, default=constants.DEFAULT_QUEUE_CAPACITY, help='Swap queue capacity (default: 100).')
    parser.add_argument('--reconnect-backoff', type=float, default=constants.DEFAULT_RECONNECT_BACKOFF, help='Seconds to wait before resubscribing (default: 1.0).')
    parser.add_argument('--max-reconnect-attempts', type=int, help='Give up after this many consecutive subscription failures (default: never).')
    parser.add_argument('--priority-fee', type=int, default=constants.SANDWICH_PRIORITY_FEE_MICROLAMPORTS, help='Priority fee for sandwich legs in micro-lamports per CU (default: 1000).')
    parser.add_argument('--oracle-seed', type=int, help='Seed for the simulated market, sentiment and heuristic oracle.')
    parser.add_argument('--trade-log-path', type=str, default=constants.DEFAULT_TRADE_LOG_PATH, help='Trade log file (default: logs/trades.jsonl).')
    parser.add_argument('--telegram-enabled', action='store_true', help='Enable Telegram notifications.')
    parser.add_argument('--target-tokens', nargs='+', help='Token symbols to watch (default: SOL USDC BONK).')
    return parser


def load_config(argv: list[str] | None = None) -> AppConfig:
    """
    Parses command-line arguments and loads environment variables to create a configuration object.
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.queue_capacity < 1:
        parser.error('--queue-capacity must be at least 1.')
    if args.reconnect_backoff < 0:
        parser.error('--reconnect-backoff must not be negative.')
    if args.max_reconnect_attempts is not None and args.max_reconnect_attempts < 0:
        parser.error('--max-reconnect-attempts must not be negative.')
    if not 0.0 <= args.min_opportunity_score <= 1.0:
        parser.error('--min-opportunity-score must be between 0 and 1.')

    # Load from environment
    rpc_url = os.environ.get(constants.SOLANA_RPC_URL_ENV_VAR) or constants.DEFAULT_RPC_URL
    ws_url = os.environ.get(constants.SOLANA_WS_URL_ENV_VAR)
    wallet_path = os.path.expanduser(os.environ.get(constants.WALLET_PATH_ENV_VAR) or constants.DEFAULT_WALLET_PATH)
    trading_private_key = os.environ.get(constants.TRADING_PRIVATE_KEY_ENV_VAR)
    gemini_api_key = os.environ.get(constants.GEMINI_API_KEY_ENV_VAR) or os.environ.get(constants.RIG_API_KEY_ENV_VAR)
    telegram_bot_token = os.environ.get(constants.TELEGRAM_BOT_TOKEN_ENV_VAR)
    telegram_chat_id = os.environ.get(constants.TELEGRAM_CHAT_ID_ENV_VAR)

    if args.telegram_enabled and not (telegram_bot_token and telegram_chat_id):
        print(f"{constants.C_RED}Telegram is enabled, but {constants.TELEGRAM_BOT_TOKEN_ENV_VAR} or {constants.TELEGRAM_CHAT_ID_ENV_VAR} are not set.{constants.C_RESET}")
        exit(1)

    trading_mode = not (args.sim or args.show_trades or args.demo or args.init)
    if trading_mode and not trading_private_key and not os.path.exists(wallet_path):
        print(
            f"{constants.C_RED}No signing key found: set {constants.TRADING_PRIVATE_KEY_ENV_VAR} or provide a wallet at {wallet_path}"
            f" ({constants.WALLET_PATH_ENV_VAR}). Use --sim to run without one.{constants.C_RESET}"
        )
        exit(1)

    target_tokens = [token.upper() for token in (args.target_tokens or constants.DEFAULT_TARGET_TOKENS)]
    unknown = [token for token in target_tokens if token not in constants.TOKEN_MINTS]
    if unknown:
        parser.error(f"Unknown target token(s): {', '.join(unknown)}")

    return AppConfig(
        rpc_url=rpc_url,
        ws_url=ws_url,
        wallet_path=wallet_path,
        trading_private_key=trading_private_key,
        gemini_api_key=gemini_api_key,
        telegram_enabled=args.telegram_enabled,
        telegram_bot_token=telegram_bot_token,
        telegram_chat_id=telegram_chat_id,
        simulation_mode=args.sim or bool(args.demo),
        init_only=args.init,
        show_trades=args.show_trades,
        trade_limit=args.trade_limit,
        demo=args.demo,
        min_opportunity_score=args.min_opportunity_score,
        max_risk_level=args.max_risk_level,
        min_profit_threshold=args.min_profit_threshold,
        max_risk_threshold=args.max_risk_threshold,
        queue_capacity=args.queue_capacity,
        reconnect_backoff=args.reconnect_backoff,
        max_reconnect_attempts=args.max_reconnect_attempts,
        priority_fee=args.priority_fee,
        oracle_seed=args.oracle_seed,
        trade_log_path=args.trade_log_path,
        target_tokens=target_tokens,
    )
