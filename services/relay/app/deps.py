from __future__ import annotations

from fastapi import Request

from services.relay.app.relay.runtime import RelayRuntime


def get_runtime(request: Request) -> RelayRuntime:
    return request.app.state.runtime
