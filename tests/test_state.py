"""
Unit tests for MembershipStore
==============================
Room creation, participant upserts, admin sets and the derived
stream-enabled view.
"""

from signal_relay.state import MembershipStore


class TestRooms:
    """Implicit room creation"""

    def test_ensure_room_is_idempotent(self, store):
        store.ensure_room("r1")
        store.upsert_participant("r1", "c1", {"userId": "u1"})
        store.add_admin("r1", "a1")

        store.ensure_room("r1")

        assert store.participant_count("r1") == 1
        assert store.list_admins("r1") == ["a1"]

    def test_queries_create_empty_room(self, store):
        assert store.list_admins("nowhere") == []
        assert store.list_stream_enabled_participants("nowhere") == []
        assert "nowhere" in store.rooms
        assert "nowhere" in store.room_admins

    def test_empty_rooms_are_kept(self, store):
        store.upsert_participant("r1", "c1", {"userId": "u1"})
        store.remove_participant("r1", "c1")

        assert store.rooms == {"r1": {}}


class TestParticipants:
    """Upsert merge semantics and removal"""

    def test_upsert_merges_patch(self, store, clock):
        store.upsert_participant("r1", "c1", {"userId": "u1", "displayName": "Ann"})
        clock.advance(10)
        store.upsert_participant("r1", "c1", {"streamAllowed": True})

        record = store.get_participant("r1", "c1")
        assert record == {
            "userId": "u1",
            "displayName": "Ann",
            "streamAllowed": True,
            "lastSeen": clock.now,
        }

    def test_later_patch_overwrites_user_id(self, store):
        store.upsert_participant("r1", "c1", {"userId": "u1"})
        store.upsert_participant("r1", "c1", {"userId": "u2"})

        assert store.get_participant("r1", "c1")["userId"] == "u2"

    def test_empty_patch_refreshes_last_seen_only(self, store, clock):
        store.upsert_participant("r1", "c1", {"userId": "u1"})
        clock.advance(500)
        store.upsert_participant("r1", "c1", {})

        record = store.get_participant("r1", "c1")
        assert record["userId"] == "u1"
        assert record["lastSeen"] == clock.now

    def test_last_seen_never_regresses(self, store, clock):
        store.upsert_participant("r1", "c1", {"userId": "u1"})
        first = store.get_participant("r1", "c1")["lastSeen"]

        clock.advance(-5000)
        store.upsert_participant("r1", "c1", {})

        assert store.get_participant("r1", "c1")["lastSeen"] == first

    def test_rejoin_does_not_duplicate(self, store):
        store.upsert_participant("r1", "c1", {"userId": "u1"})
        store.upsert_participant("r1", "c1", {"userId": "u1"})

        assert store.participant_count("r1") == 1

    def test_remove_is_idempotent(self, store):
        store.upsert_participant("r1", "c1", {"userId": "u1"})

        assert store.remove_participant("r1", "c1") is True
        assert store.remove_participant("r1", "c1") is False
        assert store.remove_participant("missing", "c1") is False


class TestAdmins:
    """Admin set is independent of participant records"""

    def test_add_admin_is_idempotent(self, store):
        store.add_admin("r1", "a1")
        store.add_admin("r1", "a1")

        assert store.list_admins("r1") == ["a1"]

    def test_removing_admin_keeps_participant_record(self, store):
        store.upsert_participant("r1", "c1", {"userId": "u1"})
        store.add_admin("r1", "c1")

        store.remove_admin("r1", "c1")

        assert store.list_admins("r1") == []
        assert store.get_participant("r1", "c1") is not None

    def test_removing_participant_keeps_admin(self, store):
        store.upsert_participant("r1", "c1", {"userId": "u1"})
        store.add_admin("r1", "c1")

        store.remove_participant("r1", "c1")

        assert store.list_admins("r1") == ["c1"]


class TestStreamEnabledView:
    """Derived list shown to admins"""

    def test_only_consenting_participants_are_listed(self, store):
        store.upsert_participant("r1", "c1", {"userId": "u1", "streamAllowed": True})
        store.upsert_participant("r1", "c2", {"userId": "u2", "streamAllowed": False})
        store.upsert_participant("r1", "c3", {"userId": "u3"})
        store.add_admin("r1", "c3")

        listed = [p["connId"] for p in store.list_stream_enabled_participants("r1")]

        assert listed == ["c1"]

    def test_entry_shape(self, store, clock):
        store.upsert_participant(
            "r1", "c1", {"userId": "u1", "displayName": "Ann", "streamAllowed": True}
        )

        assert store.list_stream_enabled_participants("r1") == [
            {"connId": "c1", "userId": "u1", "displayName": "Ann", "lastSeen": clock.now}
        ]

    def test_most_recently_seen_first(self, store, clock):
        store.upsert_participant("r1", "c1", {"userId": "u1", "streamAllowed": True})
        clock.advance(100)
        store.upsert_participant("r1", "c2", {"userId": "u2", "streamAllowed": True})

        listed = [p["connId"] for p in store.list_stream_enabled_participants("r1")]
        assert listed == ["c2", "c1"]

        clock.advance(100)
        store.upsert_participant("r1", "c1", {})

        listed = [p["connId"] for p in store.list_stream_enabled_participants("r1")]
        assert listed == ["c1", "c2"]

    def test_ties_keep_insertion_order(self, store):
        for conn_id in ("c1", "c2", "c3"):
            store.upsert_participant("r1", conn_id, {"userId": conn_id, "streamAllowed": True})

        listed = [p["connId"] for p in store.list_stream_enabled_participants("r1")]
        assert listed == ["c1", "c2", "c3"]

    def test_view_reflects_removal_immediately(self, store):
        store.upsert_participant("r1", "c1", {"userId": "u1", "streamAllowed": True})
        assert len(store.list_stream_enabled_participants("r1")) == 1

        store.remove_participant("r1", "c1")

        assert store.list_stream_enabled_participants("r1") == []

    def test_rooms_are_isolated(self, store):
        store.upsert_participant("r1", "c1", {"userId": "u1", "streamAllowed": True})
        store.upsert_participant("r2", "c2", {"userId": "u2", "streamAllowed": True})

        assert [p["connId"] for p in store.list_stream_enabled_participants("r2")] == ["c2"]

    def test_default_clock_is_wall_time(self):
        store = MembershipStore()
        record = store.upsert_participant("r1", "c1", {"userId": "u1"})

        assert record["lastSeen"] > 1_600_000_000_000


class TestSweepStale:
    """Optional eviction of idle participants"""

    def test_sweep_removes_only_idle_records(self, store, clock):
        store.upsert_participant("r1", "old", {"userId": "u1"})
        clock.advance(60_000)
        store.upsert_participant("r1", "fresh", {"userId": "u2"})
        store.upsert_participant("r2", "other", {"userId": "u3"})

        removed = store.sweep_stale(30_000)

        assert removed == [("r1", "old")]
        assert store.participant_count("r1") == 1
        assert store.participant_count("r2") == 1

    def test_sweep_leaves_admins(self, store, clock):
        store.add_admin("r1", "a1")
        clock.advance(60_000)

        assert store.sweep_stale(1) == []
        assert store.list_admins("r1") == ["a1"]
