"""
Relay channel: addressable sends over live websocket connections.

Sends never await. Each frame is queued on the destination's outbox and a
per-connection writer task drains it, so the protocol handler finishes an
event without yielding and frames reach every client in handling order.
"""
import asyncio
import logging
from typing import Any, Dict, Optional, Set

from .messages import encode

logger = logging.getLogger("signal_relay")


def room_group(room_id: str) -> str:
    return f"room:{room_id}"


def admin_group(room_id: str) -> str:
    return f"admin:{room_id}"


class Connection:
    """One live websocket plus the small state the protocol keeps for it"""

    def __init__(self, conn_id: str, ws=None):
        self.conn_id = conn_id
        self.ws = ws
        self.outbox: asyncio.Queue = asyncio.Queue()
        # Set once the writer stops; frames for a closed connection are dropped
        self.closed = False

        # Last-write-wins role label: None, "participant" or "admin"
        self.role: Optional[str] = None
        self.room_id: Optional[str] = None
        self.user_id: Optional[str] = None

        # Rooms this connection holds a participant record / admin registration in
        self.participant_rooms: Set[str] = set()
        self.admin_rooms: Set[str] = set()

    def __repr__(self):
        return f"<Connection {self.conn_id} role={self.role} room={self.room_id}>"


class RelayChannel:
    """Connection registry with send-to-id and send-to-group"""

    def __init__(self):
        self.connections: Dict[str, Connection] = {}
        self.groups: Dict[str, Set[str]] = {}

    def register(self, conn: Connection) -> None:
        self.connections[conn.conn_id] = conn

    def unregister(self, conn_id: str) -> None:
        """Forget a connection and drop it from every group"""
        self.connections.pop(conn_id, None)
        empty = []
        for name, members in self.groups.items():
            members.discard(conn_id)
            if not members:
                empty.append(name)
        for name in empty:
            del self.groups[name]

    def join_group(self, conn_id: str, group: str) -> None:
        self.groups.setdefault(group, set()).add(conn_id)

    def group_members(self, group: str) -> Set[str]:
        return set(self.groups.get(group, ()))

    def send_to(self, conn_id: str, event: str, data: Any) -> bool:
        """Queue a frame for one connection; unknown ids are dropped"""
        conn = self.connections.get(conn_id)
        if conn is None or conn.closed:
            logger.debug(f"Dropping {event} for unknown or closed connection {conn_id}")
            return False
        conn.outbox.put_nowait(encode(event, data))
        return True

    def send_to_group(self, group: str, event: str, data: Any) -> int:
        """Queue a frame for every member of a group; returns the member count"""
        members = self.groups.get(group)
        if not members:
            return 0

        message = encode(event, data)
        sent = 0
        for conn_id in members:
            conn = self.connections.get(conn_id)
            if conn is not None and not conn.closed:
                conn.outbox.put_nowait(message)
                sent += 1
        return sent

    async def pump(self, conn: Connection) -> None:
        """Write queued frames to the socket until it fails or the task is cancelled"""
        try:
            while True:
                message = await conn.outbox.get()
                try:
                    await conn.ws.send_str(message)
                except Exception as e:
                    logger.debug(f"Failed to send to {conn.conn_id}: {e}")
                    return
        finally:
            conn.closed = True
            # Pending frames can never be written
            while not conn.outbox.empty():
                conn.outbox.get_nowait()
