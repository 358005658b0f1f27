from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class RelayStatusResponse(BaseModel):
    server_running: bool
    session_state: str
    transport_ready: bool
    reconnect_attempts: int
    max_reconnect_attempts: int
    failed: bool
    queue_depth: int
    destination_configured: bool


class TransportWebhookRequest(BaseModel):
    event: str = Field(..., min_length=1)
    payload: dict[str, Any] = Field(default_factory=dict)


class TransportWebhookResponse(BaseModel):
    accepted: bool
    signal: str
