#!/usr/bin/env python3
from typing import Dict

# --- ANSI Color Codes ---
C_GREEN = '\033[92m'
C_RED = '\033[91m'
C_YELLOW = '\033[93m'
C_BLUE = '\033[94m'
C_RESET = '\033[0m'

# --- API Configuration ---
DEFAULT_RPC_URL = 'https://api.mainnet-beta.solana.com'
JUPITER_QUOTE_API_BASE_URL = 'https://quote-api.jup.ag/v6'
JUPITER_TOKEN_API_BASE_URL = 'https://tokens.jup.ag/token'
GEMINI_API_URL = 'https://generativelanguage.googleapis.com/v1beta/models/gemini-2.5-flash:generateContent'
DEFAULT_COMMITMENT = 'confirmed'

# --- Environment Variable Names ---
SOLANA_RPC_URL_ENV_VAR = 'SOLANA_RPC_URL'
SOLANA_WS_URL_ENV_VAR = 'SOLANA_WS_URL'
WALLET_PATH_ENV_VAR = 'WALLET_PATH'
TRADING_PRIVATE_KEY_ENV_VAR = 'TRADING_PRIVATE_KEY'
GEMINI_API_KEY_ENV_VAR = 'GEMINI_API_KEY'
RIG_API_KEY_ENV_VAR = 'RIG_API_KEY'
TELEGRAM_BOT_TOKEN_ENV_VAR = 'TELEGRAM_BOT_TOKEN'
TELEGRAM_CHAT_ID_ENV_VAR = 'TELEGRAM_CHAT_ID'

DEFAULT_WALLET_PATH = '~/.config/solana/id.json'
DEFAULT_TRADE_LOG_PATH = 'logs/trades.jsonl'

# --- DEX Program IDs (venue name -> program id) ---
DEX_PROGRAM_IDS: Dict[str, str] = {
    'Orca': 'whirLbMiicVdio4qvUfM5KAg6Ct8VwpYzGff3uctyCc',
    'Raydium': '675kPX9MHTjS2zt1qfr1NYHuzeLXfQM9H24wFSUt1Mp8',
    'Jupiter': 'JUP6LkbZbjS1jKKwapdHNy74zcZ3tLUZoi5QNyVTaV4',
}

# --- Token Registry (symbol -> mint) ---
TOKEN_MINTS: Dict[str, str] = {
    'SOL': 'So11111111111111111111111111111111111111112',
    'USDC': 'EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v',
    'BONK': 'DezXAZ8z7PnrnRJjz3wXBoRgixCa6xjnB7YaB1pPB263',
    'USDT': 'Es9vMFrzaCERmJfrF4H2FYD4KCoNkY11McCe8BenwNYB',
    'RAY': '4k3Dyjzvzp8eMZWUXbBCjEvwSkkk59S5iCNLY3QrkX6R',
    'SRM': 'SRMuApVNdxXokk5GT7XD5cUUgXMBCoAz2LHeuAoKWRt',
    'MNGO': 'MangoCzJ36AjZyKwVj3VnYU4GTonjfVEnJmvvWaxLac',
}
MINT_SYMBOLS: Dict[str, str] = {mint: symbol for symbol, mint in TOKEN_MINTS.items()}

DEFAULT_TARGET_TOKENS = ['SOL', 'USDC', 'BONK']

# Wallets whose swaps are never treated as targets (aggregator / known bots)
KNOWN_MEV_BOTS = {
    'JUP2jxvXaqu7NQY1GmNF4m1vodw12LVXYxbFL2uJvfo',
    '9xQeWvG816bUx9EPjHmaT23yvVM2ZWbrrpZb9PusVFin',
}

# --- Stream Defaults ---
DEFAULT_QUEUE_CAPACITY = 100
DEFAULT_RECONNECT_BACKOFF = 1.0
DEFAULT_SLIPPAGE = 0.01

# --- Heuristic Oracle Tables ---
POOL_FACTORS: Dict[str, float] = {
    'Orca': 0.2,
    'Raydium': 0.15,
}
PAIR_FACTORS: Dict[tuple, float] = {
    ('SOL', 'USDC'): 0.2,
    ('USDC', 'BONK'): 0.3,
}
DEFAULT_VENUE_FACTOR = 0.1
DEFAULT_PAIR_FACTOR = 0.1

# --- Execution ---
SIMULATED_SIGNATURE = 'SIM_TX_SIGNATURE'
SANDWICH_PRIORITY_FEE_MICROLAMPORTS = 1000
SANDWICH_LEG_STRATEGIES = {'sandwich_front', 'sandwich_back'}
DEFAULT_QUOTE_SLIPPAGE_BPS = 50
LAMPORTS_PER_SOL = 1_000_000_000
MIN_WALLET_BALANCE_SOL = 0.1

# --- Network Retry Policy ---
DEFAULT_REQUEST_RETRIES = 3
DEFAULT_REQUEST_TIMEOUT = 30
DEFAULT_RETRY_DELAY = 2.0

# --- Solana JSON-RPC error codes ---
BLOCK_NOT_AVAILABLE_CODE = -32004
SLOT_SKIPPED_CODES = {-32007, -32009}
