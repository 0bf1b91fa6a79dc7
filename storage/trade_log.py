"""Append-only trade log stored as one JSON object per line."""
from __future__ import annotations

import asyncio
import json
import logging
import threading
from pathlib import Path
from typing import Optional

from constants import DEFAULT_TRADE_LOG_PATH
from storage.models import TradeLogRecord

logger = logging.getLogger(__name__)


class TradeLogRepository:
    """Provides async-friendly helpers for recording every execution attempt."""

    def __init__(self, log_path: Path | str = Path(DEFAULT_TRADE_LOG_PATH)) -> None:
        self.log_path = Path(log_path)
        self.log_path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    async def append(self, record: TradeLogRecord) -> None:
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._append_sync, record)

    def _append_sync(self, record: TradeLogRecord) -> None:
        line = json.dumps(record.to_dict(), sort_keys=True)
        with self._lock:
            with self.log_path.open("a", encoding="utf-8") as handle:
                handle.write(line + "\n")
        logger.info("Logged %s trade %s/%s (success=%s)", record.strategy, record.token_in, record.token_out, record.success)

    async def fetch_history(self, limit: Optional[int] = None) -> list[TradeLogRecord]:
        """Returns records oldest first; ``limit`` keeps only the most recent ones."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._fetch_history_sync, limit)

    def _fetch_history_sync(self, limit: Optional[int]) -> list[TradeLogRecord]:
        with self._lock:
            if not self.log_path.exists():
                return []
            content = self.log_path.read_text(encoding="utf-8")

        payloads = _parse_log_content(content)
        records = [TradeLogRecord.from_dict(payload) for payload in payloads]
        if limit is not None:
            records = records[-limit:] if limit > 0 else []
        return records

    async def close(self) -> None:
        return None


def _parse_log_content(content: str) -> list[dict]:
    stripped = content.strip()
    if not stripped:
        return []

    if stripped.startswith("["):
        # Legacy format: a JSON array that was never closed.
        if not stripped.endswith("]"):
            stripped += "]"
        return json.loads(stripped)

    payloads = []
    for line_number, line in enumerate(stripped.splitlines(), start=1):
        line = line.strip()
        if not line:
            continue
        try:
            payloads.append(json.loads(line))
        except json.JSONDecodeError as exc:
            logger.warning("Skipping corrupt trade log line %s: %s", line_number, exc)
    return payloads
