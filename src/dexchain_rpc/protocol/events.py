"""Subscription event payloads."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class EventData(BaseModel):
    """Amino-style tagged payload: {"type": "tendermint/event/NewBlock", "value": {...}}."""

    model_config = ConfigDict(extra="allow")

    type: str = ""
    value: Any = None


class ResultEvent(BaseModel):
    """One event delivered on a subscription.

    Example:
        {
            "query": "tm.event='NewBlock'",
            "data": {"type": "tendermint/event/NewBlock", "value": {"block": {...}}},
            "events": {"tm.event": ["NewBlock"]}
        }
    """

    model_config = ConfigDict(extra="allow")

    query: str
    data: EventData = Field(default_factory=EventData)
    events: dict[str, list[str]] = Field(default_factory=dict)

    @property
    def event_type(self) -> str:
        return self.data.type
