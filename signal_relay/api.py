"""
HTTP and WebSocket handlers for the signaling relay.
The websocket endpoint is the connection lifecycle: connect, frames, disconnect.
"""
import asyncio
import logging

from aiohttp import web

from . import config
from .protocol import SessionProtocol
from .relay import Connection, RelayChannel
from .state import MembershipStore
from .utils import generate_connection_id

logger = logging.getLogger("signal_relay")

STORE_KEY = web.AppKey("store", MembershipStore)
CHANNEL_KEY = web.AppKey("channel", RelayChannel)
PROTOCOL_KEY = web.AppKey("protocol", SessionProtocol)

# ============================================================
# WEBSOCKET SIGNALING
# ============================================================

async def ws_signaling(request: web.Request) -> web.WebSocketResponse:
    """One signaling client: every inbound frame is handled to completion in order"""
    ws = web.WebSocketResponse(
        heartbeat=config.WS_HEARTBEAT or None,
        max_msg_size=config.MAX_MESSAGE_BYTES,
    )
    await ws.prepare(request)

    channel = request.app[CHANNEL_KEY]
    protocol = request.app[PROTOCOL_KEY]

    conn = Connection(generate_connection_id(), ws)
    channel.register(conn)
    writer = asyncio.create_task(channel.pump(conn))
    logger.info(f"📡 Client connected: {conn.conn_id} (total: {len(channel.connections)})")

    # Clients need their own id to be addressed by relay signals
    channel.send_to(conn.conn_id, "connected", {"connId": conn.conn_id})

    try:
        async for msg in ws:
            if msg.type == web.WSMsgType.TEXT:
                protocol.handle_frame(conn, msg.data)
            elif msg.type == web.WSMsgType.ERROR:
                logger.debug(f"WebSocket error on {conn.conn_id}: {ws.exception()}")
    finally:
        protocol.disconnect(conn)
        writer.cancel()
        logger.info(f"📡 Client disconnected: {conn.conn_id} (remaining: {len(channel.connections)})")

    return ws

# ============================================================
# HTTP SHELL
# ============================================================

async def health(request: web.Request) -> web.Response:
    return web.Response(text="OK")


async def index(request: web.Request) -> web.FileResponse:
    return web.FileResponse(config.STATIC_DIR / "index.html")


@web.middleware
async def cors_middleware(request, handler):
    """Any origin may call the HTTP endpoints"""
    response = await handler(request)
    if not isinstance(response, web.WebSocketResponse):
        response.headers["Access-Control-Allow-Origin"] = "*"
    return response

# ============================================================
# STALE PARTICIPANT SWEEP
# ============================================================

async def sweep_stale_participants(app: web.Application):
    """Background task evicting participants that stopped sending heartbeats"""
    max_age_ms = int(config.STALE_SECONDS * 1000)
    protocol = app[PROTOCOL_KEY]
    while True:
        await asyncio.sleep(config.SWEEP_INTERVAL)
        try:
            evicted = protocol.evict_stale(max_age_ms)
            if evicted:
                logger.info(f"🧹 Sweep evicted {evicted} stale participant(s)")
        except Exception as e:
            logger.error(f"Cleanup task error: {e}")


async def stale_sweep_ctx(app: web.Application):
    task = asyncio.create_task(sweep_stale_participants(app))
    yield
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass
