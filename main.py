#!/usr/bin/env python3
"""
Signal Relay - Entry Point
WebSocket signaling for consent-gated peer-to-peer audio/video rooms
"""
import logging
from typing import Optional

from aiohttp import web

from signal_relay import config
from signal_relay.api import (
    CHANNEL_KEY, PROTOCOL_KEY, STORE_KEY,
    cors_middleware, health, index, stale_sweep_ctx, ws_signaling
)
from signal_relay.protocol import SessionProtocol
from signal_relay.relay import RelayChannel
from signal_relay.state import MembershipStore

logger = logging.getLogger("signal_relay")


def setup_logging():
    logging.basicConfig(
        level=config.LOG_LEVEL.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )


def create_app(store: Optional[MembershipStore] = None) -> web.Application:
    """Create and configure the aiohttp application"""
    app = web.Application(
        middlewares=[cors_middleware],
        client_max_size=config.MAX_MESSAGE_BYTES,
    )

    # One store and one channel for the whole process lifetime
    store = store if store is not None else MembershipStore()
    channel = RelayChannel()
    app[STORE_KEY] = store
    app[CHANNEL_KEY] = channel
    app[PROTOCOL_KEY] = SessionProtocol(store, channel)

    app.router.add_get("/health", health)
    app.router.add_get("/ws", ws_signaling)

    # Static files
    if config.STATIC_DIR.is_dir():
        app.router.add_get("/", index)
        app.router.add_static("/static", config.STATIC_DIR, name="static")
    else:
        logger.warning(f"Static directory {config.STATIC_DIR} not found, serving API only")

    if config.STALE_SECONDS > 0:
        app.cleanup_ctx.append(stale_sweep_ctx)

    logger.info("📡 Signal relay ready")
    return app


def main():
    setup_logging()
    app = create_app()

    logger.info(f"🚀 Starting server on {config.SERVER_HOST}:{config.PORT}")
    web.run_app(app, host=config.SERVER_HOST, port=config.PORT)


if __name__ == "__main__":
    main()
