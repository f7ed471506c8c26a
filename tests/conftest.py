"""
Pytest configuration and shared fixtures for the Gesture Tower server.
"""

import random
from types import SimpleNamespace

import pytest

from gesture_tower.bridge.commands import CommandBridge
from gesture_tower.game.cards import CardDealer, make_card
from gesture_tower.game.engine import TurnEngine
from gesture_tower.game.service import RoomService
from gesture_tower.game.store import RoomStore
from gesture_tower.realtime.registry import ConnectionRegistry
from gesture_tower.server import create_app


class FakeClock:
    def __init__(self, start=0.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class RecordingMessenger:
    """Stands in for the Socket.IO messenger and records every delivery."""

    def __init__(self):
        self.direct = []
        self.room_events = []
        self.broadcasts = []
        self.probes = []
        self.terminated = []
        self._listeners = []

    def add_room_listener(self, listener):
        self._listeners.append(listener)

    def send_to(self, conn, event, payload):
        if conn is not None and conn.open:
            self.direct.append((conn.id, event, payload))

    def send_to_room(self, room_id, event, payload):
        self.room_events.append((room_id, event, payload))
        for listener in self._listeners:
            listener(room_id, event, payload)

    def broadcast(self, event, payload):
        self.broadcasts.append((event, payload))

    def probe(self, conn):
        self.probes.append(conn.id)

    def terminate(self, conn):
        self.terminated.append(conn.id)

    def events(self, name):
        return [payload for _, event, payload in self.room_events if event == name]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def core(clock):
    """Room store, registry, engine, service and bridge wired to a recording messenger."""
    store = RoomStore()
    registry = ConnectionRegistry(lock=store.lock)
    messenger = RecordingMessenger()
    dealer = CardDealer(rng=random.Random(7))
    engine = TurnEngine(store, messenger, dealer, clock=clock, rng=random.Random(11))
    service = RoomService(store, registry, messenger, engine)
    registry.bind(service.leave_room, probe=messenger.probe, terminate=messenger.terminate)
    bridge = CommandBridge(service, messenger, registry)
    return SimpleNamespace(
        store=store,
        registry=registry,
        messenger=messenger,
        dealer=dealer,
        engine=engine,
        service=service,
        bridge=bridge,
        clock=clock,
    )


def start_two_player_game(core, room_id="R1"):
    core.service.create_room(room_id, "Test")
    core.service.join_room(room_id, "alice", "Alice")
    core.service.join_room(room_id, "bob", "Bob")
    core.service.set_ready(room_id, "alice", True)
    core.service.set_ready(room_id, "bob", True)
    return core.store.get(room_id)


def give_hand(room, player_id, *types):
    room.hands[player_id] = [make_card(t) for t in types]
    return room.hands[player_id]


@pytest.fixture
def playing_room(core):
    room = start_two_player_game(core)
    # Deterministic hands and goals out of reach
    give_hand(room, "alice", "attack", "defend", "build")
    give_hand(room, "bob", "attack", "defend", "build")
    room.game.goal_heights.update({"alice": 10, "bob": 10})
    return room


@pytest.fixture
def app_and_socketio():
    app, socketio = create_app(
        {
            "TESTING": True,
            "SOCKETIO_ASYNC_MODE": "threading",
            "BACKGROUND_TASKS": False,
        }
    )
    return app, socketio


@pytest.fixture
def hub(app_and_socketio):
    app, _ = app_and_socketio
    return app.extensions["gesture_tower"]


@pytest.fixture
def connect(app_and_socketio):
    app, socketio = app_and_socketio
    clients = []

    def _connect():
        client = socketio.test_client(app)
        clients.append(client)
        return client

    yield _connect

    for client in clients:
        if client.is_connected():
            client.disconnect()


def received(client, name):
    return [pkt["args"][0] if pkt["args"] else None for pkt in client.get_received() if pkt["name"] == name]
