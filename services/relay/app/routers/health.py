from __future__ import annotations

from fastapi import APIRouter, Depends

from services.relay.app.deps import get_runtime
from services.relay.app.models.relay import RelayStatusResponse
from services.relay.app.relay.runtime import RelayRuntime

router = APIRouter()


@router.get("/health")
def health() -> dict:
    return {"status": "ok"}


@router.get("/v1/relay/status", response_model=RelayStatusResponse)
def relay_status(runtime: RelayRuntime = Depends(get_runtime)) -> RelayStatusResponse:
    return RelayStatusResponse(**runtime.status())
