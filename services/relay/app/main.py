"""Payment relay service entrypoint."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from services.relay.app.config import RelayConfig
from services.relay.app.relay.runtime import RelayRuntime
from services.relay.app.routers.health import router as health_router
from services.relay.app.routers.transport import router as transport_router


def create_app(runtime: RelayRuntime | None = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        rt: RelayRuntime = app.state.runtime
        owns_runtime = not rt.started
        if owns_runtime:
            await rt.start()
        try:
            yield
        finally:
            if owns_runtime:
                await rt.stop()

    app = FastAPI(title="Payment Relay", lifespan=lifespan)
    app.state.runtime = runtime if runtime is not None else RelayRuntime(RelayConfig.from_env())

    app.include_router(health_router)
    app.include_router(transport_router)
    return app
