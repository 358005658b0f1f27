from __future__ import annotations

import argparse
import asyncio
import logging
from dataclasses import replace

import uvicorn
from dotenv import load_dotenv

from services.relay.app.config import RelayConfig
from services.relay.app.logging_config import configure_logging
from services.relay.app.main import create_app
from services.relay.app.relay.runtime import RelayRuntime
from services.relay.app.services.transport_base import TransportStartupError

logger = logging.getLogger(__name__)


async def serve(config: RelayConfig) -> int:
    runtime = RelayRuntime(config)
    try:
        await runtime.start()
    except TransportStartupError as e:
        logger.error("Failed to start relay: %s", e)
        await runtime.store.close()
        return 1

    server = uvicorn.Server(
        uvicorn.Config(
            create_app(runtime),
            host=config.host,
            port=config.port,
            log_level=config.log_level.lower(),
        )
    )
    try:
        # uvicorn handles SIGINT/SIGTERM and returns once it has shut down.
        await server.serve()
    finally:
        await runtime.stop()
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Relay new payment documents to a chat and accept review commands back"
    )
    parser.add_argument("--env-file", default=".env", help="dotenv file to load (default: .env)")
    parser.add_argument("--host", default=None, help="Override RELAY_HOST")
    parser.add_argument("--port", type=int, default=None, help="Override RELAY_PORT")
    args = parser.parse_args()

    load_dotenv(args.env_file)
    config = RelayConfig.from_env()
    configure_logging(config.log_level)

    overrides = {}
    if args.host:
        overrides["host"] = args.host
    if args.port:
        overrides["port"] = args.port
    if overrides:
        config = replace(config, **overrides)

    return asyncio.run(serve(config))


if __name__ == "__main__":
    raise SystemExit(main())
