"""Storage package providing the persistent trade log."""

from .models import TradeLogRecord
from .trade_log import TradeLogRepository

__all__ = ["TradeLogRecord", "TradeLogRepository"]
