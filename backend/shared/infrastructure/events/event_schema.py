"""
Event envelope published on the real-time channels.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, asdict, field
from datetime import datetime, timezone
from typing import Any


@dataclass
class EventEnvelope:
    """
    Wire format shared by the REST API (publisher) and the WebSocket
    gateway (forwarder): ``{event, channel, data, ts}``.
    """

    event: str
    channel: str
    data: dict[str, Any] = field(default_factory=dict)
    ts: str | None = None

    def __post_init__(self) -> None:
        if not self.event or not isinstance(self.event, str):
            raise ValueError("Event name must be a non-empty string")
        if not self.channel or not isinstance(self.channel, str):
            raise ValueError("Event channel must be a non-empty string")
        if self.data is not None and not isinstance(self.data, dict):
            raise ValueError("Event data must be a dict")

    def to_json(self) -> str:
        """Serialize to JSON; Decimal and datetime values become strings."""
        payload = asdict(self)
        payload["data"] = payload["data"] or {}
        payload["ts"] = payload["ts"] or datetime.now(timezone.utc).isoformat()
        return json.dumps(payload, ensure_ascii=False, default=str)

    @classmethod
    def from_json(cls, raw: str | bytes) -> "EventEnvelope":
        data = json.loads(raw)
        return cls(**data)
