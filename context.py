#!/usr/bin/env python3
"""Process-wide shared state handed explicitly to every component."""
import json
import os
from dataclasses import dataclass
from typing import Optional

import aiohttp
from solders.keypair import Keypair

from config import AppConfig
from services.jupiter_client import JupiterClient
from services.solana_rpc_client import SolanaRpcClient


def parse_keypair(secret: str) -> Keypair:
    """Accepts a base58 secret key or a JSON array of 64 bytes (solana-keygen format)."""
    raw = secret.strip()
    if raw.startswith("["):
        try:
            values = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ValueError("Keypair JSON is malformed") from e
        if not isinstance(values, list) or len(values) != 64:
            raise ValueError("Keypair JSON must contain 64 bytes")
        return Keypair.from_bytes(bytes(values))
    return Keypair.from_base58_string(raw)


def load_signer(config: AppConfig) -> Optional[Keypair]:
    """The private key from the environment wins over the wallet file; None when neither exists."""
    if config.trading_private_key:
        return parse_keypair(config.trading_private_key)
    if config.wallet_path and os.path.exists(config.wallet_path):
        with open(config.wallet_path, encoding="utf-8") as handle:
            return parse_keypair(handle.read())
    return None


@dataclass
class BotContext:
    config: AppConfig
    session: aiohttp.ClientSession
    rpc_client: SolanaRpcClient
    quote_client: JupiterClient
    signer: Optional[Keypair]

    @classmethod
    def create(cls, config: AppConfig, signer: Optional[Keypair] = None) -> "BotContext":
        session = aiohttp.ClientSession(headers={'User-Agent': 'DexMevOracle/1.0'})
        rpc_client = SolanaRpcClient(session, rpc_url=config.rpc_url, ws_url=config.ws_url)
        quote_client = JupiterClient(session, rpc_client)
        return cls(
            config=config,
            session=session,
            rpc_client=rpc_client,
            quote_client=quote_client,
            signer=signer,
        )

    @property
    def wallet_address(self) -> Optional[str]:
        return str(self.signer.pubkey()) if self.signer else None

    async def close(self) -> None:
        if not self.session.closed:
            await self.session.close()
