#!/usr/bin/env python3
import html
import logging
from typing import Optional

from telegram import Bot

from evaluator.models import TradeDecision

logger = logging.getLogger(__name__)


class TelegramNotifier:
    """Best-effort Telegram side channel; every method is a no-op when unconfigured."""

    def __init__(self, bot_token: Optional[str], chat_id: Optional[str], bot: Optional[Bot] = None):
        self.chat_id = chat_id
        self.bot = bot
        if self.bot is None and bot_token and chat_id:
            self.bot = Bot(token=bot_token)

    @property
    def enabled(self) -> bool:
        return self.bot is not None and bool(self.chat_id)

    async def send_notification(self, message: str) -> bool:
        if not self.enabled:
            logger.info("Telegram notification skipped: bot token or chat ID not configured")
            return False

        await self.bot.send_message(
            chat_id=self.chat_id,
            text=message,
            parse_mode='HTML'
        )
        logger.info("Telegram notification sent")
        return True

    async def notify_opportunity_detected(self, decision: TradeDecision) -> bool:
        message = (
            "<b>👀 Opportunity Detected</b>\n\n"
            f"{self._decision_lines(decision)}"
        )
        return await self.send_notification(message)

    async def notify_trade_executed(self, decision: TradeDecision, signature: str) -> bool:
        message = (
            "<b>🚀 Trade Executed</b>\n\n"
            f"{self._decision_lines(decision)}\n"
            f"TX: <code>{html.escape(signature)}</code>"
        )
        return await self.send_notification(message)

    @staticmethod
    def _decision_lines(decision: TradeDecision) -> str:
        token_in = html.escape(decision.token_in)
        token_out = html.escape(decision.token_out)
        return (
            f"Strategy: <b>{html.escape(decision.strategy)}</b>\n"
            f"Token Pair: <b>{token_in} → {token_out}</b>\n"
            f"Amount: <b>{decision.amount_in:g} {token_in}</b>\n"
            f"Confidence: <b>{round(decision.confidence_score * 100)}%</b>\n"
            f"Risk Level: <b>{decision.risk_level}/3</b>"
        )

    async def close(self) -> None:
        if self.bot is not None:
            await self.bot.shutdown()
