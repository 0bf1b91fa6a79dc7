"""Dataclasses representing stored trade outcomes."""
from __future__ import annotations

import re
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, Optional

ISO_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


def _parse_timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, tz=timezone.utc)
    text = str(value)
    try:
        return datetime.strptime(text, ISO_FORMAT).replace(tzinfo=timezone.utc)
    except ValueError:
        # RFC 3339 as older logs wrote it: nanosecond precision, "Z" or an offset.
        text = re.sub(r"(\.\d{6})\d+", r"\1", text)
        return datetime.fromisoformat(text.replace("Z", "+00:00"))


@dataclass(slots=True)
class TradeLogRecord:
    timestamp: datetime
    token_in: str
    token_out: str
    amount_in: float
    strategy: str
    success: bool
    amount_out: Optional[float] = None
    tx_signature: Optional[str] = None
    profit: Optional[float] = None
    notes: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["timestamp"] = self.timestamp.astimezone(timezone.utc).strftime(ISO_FORMAT)
        return payload

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "TradeLogRecord":
        return cls(
            timestamp=_parse_timestamp(payload["timestamp"]),
            token_in=payload["token_in"],
            token_out=payload["token_out"],
            amount_in=float(payload["amount_in"]),
            strategy=payload["strategy"],
            success=bool(payload["success"]),
            amount_out=payload.get("amount_out"),
            tx_signature=payload.get("tx_signature"),
            profit=payload.get("profit"),
            notes=payload.get("notes"),
        )
