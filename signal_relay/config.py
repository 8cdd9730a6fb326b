"""
Environment configuration for the signaling relay
"""
import os
from pathlib import Path

PORT = int(os.environ.get("PORT", 3000))
SERVER_HOST = os.environ.get("SERVER_HOST", "0.0.0.0")
STATIC_DIR = Path(os.environ.get("RELAY_STATIC_DIR", "./public"))

# Inbound websocket frames larger than this are rejected by aiohttp
MAX_MESSAGE_BYTES = int(os.environ.get("RELAY_MAX_MESSAGE_BYTES", 10_000_000))

# Transport-level ping interval (seconds); dead peers are closed after a missed pong
WS_HEARTBEAT = float(os.environ.get("RELAY_WS_HEARTBEAT", 25))

# Participants idle longer than this are evicted. 0 disables the sweep.
STALE_SECONDS = float(os.environ.get("RELAY_STALE_SECONDS", 0))
SWEEP_INTERVAL = float(os.environ.get("RELAY_SWEEP_INTERVAL", 60))

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
