#!/usr/bin/env python3
"""Exception hierarchy shared by the stream, evaluator and executor."""
from typing import Optional


class MevBotError(Exception):
    """Base class for every error raised by the bot."""


class ConnectivityError(MevBotError):
    """Network or RPC failure; callers retry or skip, never abort the process."""


class StreamError(ConnectivityError):
    """The swap stream gave up reconnecting."""


class ChainClientError(ConnectivityError):
    """A Solana JSON-RPC call failed or returned an error payload."""

    def __init__(self, message: str, code: Optional[int] = None):
        super().__init__(message)
        self.code = code


class QuoteError(ConnectivityError):
    """The quote/router service failed or returned an unusable quote."""


class DecodeError(MevBotError):
    """A raw chain transaction could not be turned into a swap record."""


class OracleError(MevBotError):
    """The remote scoring oracle was unavailable or returned malformed output."""


class ValidationError(MevBotError):
    """Input for a single transaction was rejected; only that transaction is aborted."""


class UnknownTokenError(ValidationError):
    def __init__(self, symbol: str):
        super().__init__(f"Unknown token symbol: {symbol}")
        self.symbol = symbol


class QuoteRejectedError(ValidationError):
    """A quote came back below the decision's minimum acceptable output."""


class ExecutionError(MevBotError):
    """Simulation or submission of a trade failed; terminal for that decision."""
