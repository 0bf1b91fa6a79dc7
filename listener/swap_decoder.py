#!/usr/bin/env python3
"""Decoding of raw block transactions into normalized swap records.

A transaction is a swap candidate when one of the watched DEX program ids
appears in its account keys. The traded tokens and amounts come from the
signer's token balance deltas (native SOL falls back to the lamport delta);
for Jupiter routes the quoted output amount in the instruction data is used as
the expected-output hint for slippage.
"""
import time
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Tuple

import base58

from constants import DEFAULT_SLIPPAGE, DEX_PROGRAM_IDS, MINT_SYMBOLS, TOKEN_MINTS
from errors import DecodeError
from evaluator.models import SwapTransaction

# Anchor discriminators of Jupiter v6 `route` and `shared_accounts_route`;
# both end with in_amount u64, quoted_out_amount u64, slippage_bps u16, platform_fee_bps u8.
_JUPITER_ROUTE_DISCRIMINATORS = {
    bytes([229, 23, 203, 151, 122, 227, 173, 42]),
    bytes([193, 32, 155, 51, 65, 214, 156, 129]),
}
_ROUTE_TAIL_LEN = 8 + 8 + 2 + 1

SOL_MINT = TOKEN_MINTS['SOL']
SOL_DECIMALS = 9


@dataclass
class RawSwap:
    """Swap facts extracted from a chain transaction, still in raw token units."""
    signature: str
    signer: str
    dex: str
    mint_in: str
    mint_out: str
    amount_in_raw: int
    amount_out_raw: int
    decimals_in: int
    decimals_out: int
    expected_out_raw: Optional[int] = None


def calculate_slippage(expected: Optional[float], actual: float) -> float:
    """Relative deviation of the actual output from the expected one; 1% when unknown."""
    if expected is None or expected <= 0:
        return DEFAULT_SLIPPAGE
    return abs(expected - actual) / expected


def format_wallet_address(address: str) -> str:
    if len(address) > 12:
        return f"{address[:6]}...{address[-6:]}"
    return address


def symbol_for_mint(mint: str) -> str:
    return MINT_SYMBOLS.get(mint, mint)


def normalize_swap(raw: RawSwap, timestamp: Optional[int] = None) -> SwapTransaction:
    amount_in = raw.amount_in_raw / (10 ** raw.decimals_in)
    amount_out = raw.amount_out_raw / (10 ** raw.decimals_out)
    expected_out = None
    if raw.expected_out_raw is not None:
        expected_out = raw.expected_out_raw / (10 ** raw.decimals_out)

    return SwapTransaction(
        token_in=symbol_for_mint(raw.mint_in),
        token_out=symbol_for_mint(raw.mint_out),
        amount_in=amount_in,
        estimated_amount_out=amount_out,
        slippage=calculate_slippage(expected_out, amount_out),
        pool_name=raw.dex,
        wallet_address=raw.signer,
        timestamp=timestamp if timestamp is not None else int(time.time()),
    )


class SwapDecoder:
    def __init__(self, program_ids: Optional[Dict[str, str]] = None):
        program_ids = program_ids or DEX_PROGRAM_IDS
        self._dex_by_program = {program_id: name for name, program_id in program_ids.items()}

    def find_dex(self, tx: Dict[str, Any]) -> Optional[str]:
        for key in self._account_keys(tx):
            dex = self._dex_by_program.get(key)
            if dex:
                return dex
        return None

    def decode(self, tx: Dict[str, Any]) -> Optional[RawSwap]:
        """Returns None for non-DEX transactions; raises DecodeError when a DEX tx is unreadable."""
        dex = self.find_dex(tx)
        if dex is None:
            return None

        meta = tx.get('meta')
        if not isinstance(meta, dict):
            raise DecodeError("transaction has no meta")
        if meta.get('err') is not None:
            raise DecodeError("transaction failed on chain")

        try:
            signature = tx['transaction']['signatures'][0]
        except (KeyError, IndexError, TypeError) as e:
            raise DecodeError("transaction has no signature") from e

        account_keys = self._account_keys(tx)
        if not account_keys:
            raise DecodeError("transaction has no account keys")
        signer = account_keys[0]

        deltas = self._token_deltas(meta, signer)
        self._add_native_delta(deltas, meta)

        spent = [(mint, delta, decimals) for mint, (delta, decimals) in deltas.items() if delta < 0]
        received = [(mint, delta, decimals) for mint, (delta, decimals) in deltas.items() if delta > 0]
        if not spent or not received:
            raise DecodeError(f"no balance movement for signer {format_wallet_address(signer)}")

        mint_in, delta_in, decimals_in = min(spent, key=lambda item: item[1])
        mint_out, delta_out, decimals_out = max(received, key=lambda item: item[1])
        if mint_in == mint_out:
            raise DecodeError("input and output mint are identical")

        return RawSwap(
            signature=signature,
            signer=signer,
            dex=dex,
            mint_in=mint_in,
            mint_out=mint_out,
            amount_in_raw=-delta_in,
            amount_out_raw=delta_out,
            decimals_in=decimals_in,
            decimals_out=decimals_out,
            expected_out_raw=self._jupiter_quoted_out(tx),
        )

    @staticmethod
    def _account_keys(tx: Dict[str, Any]) -> List[str]:
        try:
            keys = tx['transaction']['message']['accountKeys']
        except (KeyError, TypeError):
            return []
        result = []
        for key in keys:
            if isinstance(key, dict):
                key = key.get('pubkey')
            if isinstance(key, str):
                result.append(key)
        loaded = (tx.get('meta') or {}).get('loadedAddresses') or {}
        for group in ('writable', 'readonly'):
            result.extend(addr for addr in loaded.get(group, []) if isinstance(addr, str))
        return result

    @staticmethod
    def _token_deltas(meta: Dict[str, Any], owner: str) -> Dict[str, Tuple[int, int]]:
        def _balances(entries: Iterable[Dict[str, Any]]) -> Dict[str, Tuple[int, int]]:
            balances: Dict[str, Tuple[int, int]] = {}
            for entry in entries or []:
                if entry.get('owner') != owner:
                    continue
                token_amount = entry.get('uiTokenAmount') or {}
                try:
                    amount = int(token_amount['amount'])
                    decimals = int(token_amount['decimals'])
                    mint = entry['mint']
                except (KeyError, TypeError, ValueError):
                    continue
                previous = balances.get(mint, (0, decimals))[0]
                balances[mint] = (previous + amount, decimals)
            return balances

        pre = _balances(meta.get('preTokenBalances'))
        post = _balances(meta.get('postTokenBalances'))
        deltas: Dict[str, Tuple[int, int]] = {}
        for mint in set(pre) | set(post):
            decimals = (post.get(mint) or pre.get(mint))[1]
            delta = post.get(mint, (0, decimals))[0] - pre.get(mint, (0, decimals))[0]
            if delta:
                deltas[mint] = (delta, decimals)
        return deltas

    @staticmethod
    def _add_native_delta(deltas: Dict[str, Tuple[int, int]], meta: Dict[str, Any]) -> None:
        if SOL_MINT in deltas:
            return
        try:
            lamport_delta = int(meta['postBalances'][0]) - int(meta['preBalances'][0]) + int(meta.get('fee') or 0)
        except (KeyError, IndexError, TypeError, ValueError):
            return
        if lamport_delta:
            deltas[SOL_MINT] = (lamport_delta, SOL_DECIMALS)

    def _jupiter_quoted_out(self, tx: Dict[str, Any]) -> Optional[int]:
        jupiter_program = next(
            (program_id for program_id, name in self._dex_by_program.items() if name == 'Jupiter'),
            None,
        )
        if jupiter_program is None:
            return None
        try:
            instructions = tx['transaction']['message']['instructions']
        except (KeyError, TypeError):
            return None
        for instruction in instructions:
            if not isinstance(instruction, dict) or instruction.get('programId') != jupiter_program:
                continue
            data = instruction.get('data')
            if not isinstance(data, str):
                continue
            try:
                raw = base58.b58decode(data)
            except ValueError:
                continue
            if len(raw) < 8 + _ROUTE_TAIL_LEN or raw[:8] not in _JUPITER_ROUTE_DISCRIMINATORS:
                continue
            tail = raw[-_ROUTE_TAIL_LEN:]
            return int.from_bytes(tail[8:16], 'little')
        return None
