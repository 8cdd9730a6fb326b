"""
In-memory membership state for rooms, participants and admin observers.

Rooms are implicit: a room exists once a participant or an admin references it
and is never deleted. The store is not thread-safe; callers handle one whole
event (mutations plus the broadcast query) at a time against an instance.
"""
from typing import Callable, Dict, List, Optional, Set, Tuple

from .utils import now_ms


class MembershipStore:
    """Rooms -> participants and rooms -> admin connection ids"""

    def __init__(self, clock: Callable[[], int] = now_ms):
        # Room state: room_id -> {conn_id -> {userId, displayName, streamAllowed, lastSeen}}
        self.rooms: Dict[str, Dict[str, dict]] = {}

        # Admin state: room_id -> {admin conn_id}
        self.room_admins: Dict[str, Set[str]] = {}

        self._clock = clock

    def ensure_room(self, room_id: str) -> None:
        self.rooms.setdefault(room_id, {})
        self.room_admins.setdefault(room_id, set())

    def upsert_participant(self, room_id: str, conn_id: str, patch: dict) -> dict:
        """Merge patch into the participant record and refresh lastSeen"""
        self.ensure_room(room_id)
        room = self.rooms[room_id]
        prev = room.get(conn_id, {})
        # lastSeen never regresses, even if the wall clock steps back
        last_seen = max(self._clock(), prev.get("lastSeen", 0))
        record = {**prev, **patch, "lastSeen": last_seen}
        room[conn_id] = record
        return record

    def remove_participant(self, room_id: str, conn_id: str) -> bool:
        room = self.rooms.get(room_id)
        if room is None or conn_id not in room:
            return False
        del room[conn_id]
        return True

    def get_participant(self, room_id: str, conn_id: str) -> Optional[dict]:
        return self.rooms.get(room_id, {}).get(conn_id)

    def participant_count(self, room_id: str) -> int:
        return len(self.rooms.get(room_id, {}))

    def add_admin(self, room_id: str, conn_id: str) -> None:
        self.ensure_room(room_id)
        self.room_admins[room_id].add(conn_id)

    def remove_admin(self, room_id: str, conn_id: str) -> None:
        self.ensure_room(room_id)
        self.room_admins[room_id].discard(conn_id)

    def list_admins(self, room_id: str) -> List[str]:
        self.ensure_room(room_id)
        return list(self.room_admins[room_id])

    def list_stream_enabled_participants(self, room_id: str) -> List[dict]:
        """
        The only view of a room ever shown to admins.

        Returns every participant with streamAllowed set, most recently seen
        first. Ties keep the room's insertion order. Recomputed on every call.
        """
        self.ensure_room(room_id)
        items = [
            {
                "connId": conn_id,
                "userId": p.get("userId"),
                "displayName": p.get("displayName"),
                "lastSeen": p.get("lastSeen"),
            }
            for conn_id, p in self.rooms[room_id].items()
            if p.get("streamAllowed")
        ]
        items.sort(key=lambda item: item["lastSeen"] or 0, reverse=True)
        return items

    def sweep_stale(self, max_age_ms: int) -> List[Tuple[str, str]]:
        """Remove participants not seen for max_age_ms; returns (room_id, conn_id) pairs"""
        cutoff = self._clock() - max_age_ms
        removed = []
        for room_id, room in self.rooms.items():
            stale = [cid for cid, p in room.items() if p.get("lastSeen", 0) < cutoff]
            for conn_id in stale:
                del room[conn_id]
                removed.append((room_id, conn_id))
        return removed
