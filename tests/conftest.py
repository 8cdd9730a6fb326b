"""Shared fixtures: a store on a controllable clock, a channel and the protocol."""

import json

import pytest

from signal_relay.protocol import SessionProtocol
from signal_relay.relay import Connection, RelayChannel
from signal_relay.state import MembershipStore


class FakeClock:
    """Millisecond clock that only moves when told to"""

    def __init__(self, start=1_700_000_000_000):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, ms=1):
        self.now += ms
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return MembershipStore(clock=clock)


@pytest.fixture
def channel():
    return RelayChannel()


@pytest.fixture
def protocol(store, channel):
    return SessionProtocol(store, channel)


@pytest.fixture
def connect(channel):
    """Register a connection (no socket) under the given id"""
    def _connect(conn_id):
        conn = Connection(conn_id)
        channel.register(conn)
        return conn
    return _connect


@pytest.fixture
def drain():
    """Pop every queued frame of a connection as (event, data) tuples"""
    def _drain(conn):
        frames = []
        while not conn.outbox.empty():
            frame = json.loads(conn.outbox.get_nowait())
            frames.append((frame["event"], frame["data"]))
        return frames
    return _drain
