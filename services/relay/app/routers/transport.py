from __future__ import annotations

import secrets

from fastapi import APIRouter, Depends, Header, HTTPException

from services.relay.app.deps import get_runtime
from services.relay.app.models.relay import TransportWebhookRequest, TransportWebhookResponse
from services.relay.app.relay.runtime import RelayRuntime
from services.relay.app.services.transport_base import TransportError
from services.relay.app.services.transport_http import (
    HttpBridgeTransport,
    UnknownWebhookEventError,
)

router = APIRouter()


@router.post("/v1/transport/webhook", response_model=TransportWebhookResponse)
async def transport_webhook(
    payload: TransportWebhookRequest,
    runtime: RelayRuntime = Depends(get_runtime),
    x_relay_webhook_token: str | None = Header(default=None),
) -> TransportWebhookResponse:
    expected = runtime.config.webhook_token
    if expected and not secrets.compare_digest(x_relay_webhook_token or "", expected):
        raise HTTPException(status_code=401, detail="Invalid webhook token")

    transport = runtime.transport
    if not isinstance(transport, HttpBridgeTransport):
        raise HTTPException(
            status_code=409,
            detail=f"Transport {transport.name} does not accept webhooks",
        )

    try:
        signal = await transport.handle_webhook(payload.event, payload.payload)
    except UnknownWebhookEventError as e:
        raise HTTPException(status_code=422, detail=str(e)) from e
    except TransportError as e:
        raise HTTPException(status_code=503, detail=str(e)) from e

    return TransportWebhookResponse(accepted=True, signal=signal.kind.value)
