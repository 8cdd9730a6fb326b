"""
Session protocol: turns inbound events into membership changes and broadcasts.

Every handler is synchronous. Store mutations, the derived admin view and all
outbound frames for one event are produced before control returns to the
event loop, so no other event can observe a half-applied change.
"""
import logging
from typing import Any, Iterable

from .messages import (
    AdminSubscribe,
    ConsentToggle,
    Heartbeat,
    InboundMessage,
    Join,
    RelayIce,
    RelaySdp,
    decode,
    parse_frame,
)
from .relay import Connection, RelayChannel, admin_group, room_group
from .state import MembershipStore

logger = logging.getLogger("signal_relay")

PARTICIPANT = "participant"
ADMIN = "admin"


class SessionProtocol:
    def __init__(self, store: MembershipStore, channel: RelayChannel):
        self.store = store
        self.channel = channel
        self._handlers = {
            Join: self.on_join,
            Heartbeat: self.on_heartbeat,
            ConsentToggle: self.on_consent,
            AdminSubscribe: self.on_admin_subscribe,
            RelaySdp: self.on_relay_sdp,
            RelayIce: self.on_relay_ice,
        }

    # ============================================================
    # DISPATCH
    # ============================================================

    def handle_frame(self, conn: Connection, raw: str) -> bool:
        """Decode one websocket text frame and handle it; malformed frames are ignored"""
        parsed = parse_frame(raw)
        if parsed is None:
            return False
        event, data = parsed
        return self.handle(conn, event, data)

    def handle(self, conn: Connection, event: str, data: Any) -> bool:
        message = decode(event, data)
        if message is None:
            return False
        self.dispatch(conn, message)
        return True

    def dispatch(self, conn: Connection, message: InboundMessage) -> None:
        self._handlers[type(message)](conn, message)

    # ============================================================
    # PARTICIPANTS
    # ============================================================

    def on_join(self, conn: Connection, msg: Join) -> None:
        room_id = msg.room_id
        conn.role = PARTICIPANT
        conn.room_id = room_id
        conn.user_id = msg.user_id

        self.store.ensure_room(room_id)
        self.channel.join_group(conn.conn_id, room_group(room_id))

        self.store.upsert_participant(room_id, conn.conn_id, {
            "userId": msg.user_id,
            "displayName": msg.display_name or msg.user_id,
        })
        conn.participant_rooms.add(room_id)

        logger.info(
            "✅ %s joined %s as %s (%d participants, %d admins)",
            conn.conn_id, room_id, msg.user_id,
            self.store.participant_count(room_id), len(self.store.list_admins(room_id))
        )

        # Lets a consenting participant dial admins that are already watching
        self.send_admin_list(conn, room_id)
        for admin_conn_id in self.store.list_admins(room_id):
            self.channel.send_to(conn.conn_id, "admin:online", {"adminConnId": admin_conn_id})
        self.broadcast_admin_update(room_id)

    def on_heartbeat(self, conn: Connection, msg: Heartbeat) -> None:
        room_id = conn.room_id
        if not room_id:
            return
        self.store.upsert_participant(room_id, conn.conn_id, {})
        conn.participant_rooms.add(room_id)
        self.broadcast_admin_update(room_id)

    def on_consent(self, conn: Connection, msg: ConsentToggle) -> None:
        room_id = msg.room_id
        self.store.upsert_participant(room_id, conn.conn_id, {
            "userId": msg.user_id,
            "streamAllowed": msg.allow,
        })
        conn.participant_rooms.add(room_id)

        logger.info("🎥 %s in %s set stream consent to %s", conn.conn_id, room_id, msg.allow)

        self.send_admin_list(conn, room_id)
        self.broadcast_admin_update(room_id)

        # Incremental hint for admins already tracking this participant
        self.channel.send_to_group(admin_group(room_id), "participant:streamAllowed", {
            "connId": conn.conn_id,
            "userId": msg.user_id,
            "allow": msg.allow,
        })

    # ============================================================
    # ADMINS
    # ============================================================

    def on_admin_subscribe(self, conn: Connection, msg: AdminSubscribe) -> None:
        room_id = msg.room_id
        conn.role = ADMIN
        conn.room_id = room_id

        self.store.ensure_room(room_id)
        self.store.add_admin(room_id, conn.conn_id)
        conn.admin_rooms.add(room_id)
        self.channel.join_group(conn.conn_id, admin_group(room_id))

        logger.info(
            "👀 Admin %s subscribed to %s (%d admins)",
            conn.conn_id, room_id, len(self.store.list_admins(room_id))
        )

        self.channel.send_to(
            conn.conn_id, "room:update", self.store.list_stream_enabled_participants(room_id)
        )

        # Consenting participants may start a connection to the new admin
        self.channel.send_to_group(room_group(room_id), "admin:online", {
            "adminConnId": conn.conn_id,
        })

    # ============================================================
    # SIGNAL RELAY
    # ============================================================

    def on_relay_sdp(self, conn: Connection, msg: RelaySdp) -> None:
        self.channel.send_to(msg.to, msg.event, {"from": conn.conn_id, "sdp": msg.sdp})

    def on_relay_ice(self, conn: Connection, msg: RelayIce) -> None:
        self.channel.send_to(msg.to, msg.event, {"from": conn.conn_id, "candidate": msg.candidate})

    # ============================================================
    # DISCONNECT / EVICTION
    # ============================================================

    def disconnect(self, conn: Connection) -> None:
        """
        Remove everything a closing connection owns.

        The connection leaves all transport groups first, so it receives none
        of the notifications below. Every admin registration is removed (with
        admin:offline to that room's participants) and every participant
        record it created is deleted; each affected room then gets one admin
        broadcast.
        """
        self.channel.unregister(conn.conn_id)

        affected = set()
        if conn.room_id:
            affected.add(conn.room_id)

        for room_id in sorted(conn.admin_rooms):
            self.store.remove_admin(room_id, conn.conn_id)
            self.channel.send_to_group(room_group(room_id), "admin:offline", {
                "adminConnId": conn.conn_id,
            })
            affected.add(room_id)

        for room_id in sorted(conn.participant_rooms):
            self.store.remove_participant(room_id, conn.conn_id)
            affected.add(room_id)

        conn.admin_rooms.clear()
        conn.participant_rooms.clear()

        if affected:
            logger.info("👋 %s (%s) left %s", conn.conn_id, conn.role, ", ".join(sorted(affected)))

        self.broadcast_rooms(affected)

    def evict_stale(self, max_age_ms: int) -> int:
        """Drop participants idle longer than max_age_ms and refresh admin views"""
        removed = self.store.sweep_stale(max_age_ms)
        for room_id, conn_id in removed:
            logger.info("🧹 Evicted stale participant %s from %s", conn_id, room_id)
            conn = self.channel.connections.get(conn_id)
            if conn is not None:
                conn.participant_rooms.discard(room_id)
        self.broadcast_rooms({room_id for room_id, _ in removed})
        return len(removed)

    # ============================================================
    # BROADCASTS
    # ============================================================

    def send_admin_list(self, conn: Connection, room_id: str) -> None:
        self.channel.send_to(conn.conn_id, "admin:list", {
            "roomId": room_id,
            "admins": self.store.list_admins(room_id),
        })

    def broadcast_admin_update(self, room_id: str) -> int:
        """Send the freshly derived stream-enabled list to every admin of the room"""
        return self.channel.send_to_group(
            admin_group(room_id), "room:update", self.store.list_stream_enabled_participants(room_id)
        )

    def broadcast_rooms(self, room_ids: Iterable[str]) -> None:
        for room_id in sorted(room_ids):
            self.broadcast_admin_update(room_id)
