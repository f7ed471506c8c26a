from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

from flask_socketio import SocketIO

from .bridge.commands import CommandBridge
from .game.cards import CardDealer
from .game.engine import TurnEngine
from .game.service import RoomService
from .game.store import RoomStore
from .realtime.messaging import Messenger
from .realtime.registry import ConnectionRegistry


@dataclass
class Hub:
    """Every piece of shared state and the components that own it."""

    store: RoomStore
    registry: ConnectionRegistry
    messenger: Messenger
    dealer: CardDealer
    engine: TurnEngine
    service: RoomService
    bridge: CommandBridge

    @classmethod
    def build(cls, socketio: SocketIO, config: Mapping[str, Any]) -> "Hub":
        store = RoomStore()
        registry = ConnectionRegistry(lock=store.lock)
        messenger = Messenger(socketio, registry)
        dealer = CardDealer(hand_size=config["HAND_SIZE"], max_same_type=config["MAX_SAME_TYPE"])
        engine = TurnEngine(
            store,
            messenger,
            dealer,
            round_duration_sec=config["ROUND_DURATION_SEC"],
            min_goal_height=config["MIN_GOAL_HEIGHT"],
            max_goal_height=config["MAX_GOAL_HEIGHT"],
            reset_delay_sec=config["GAME_RESET_DELAY_SEC"],
        )
        service = RoomService(
            store,
            registry,
            messenger,
            engine,
            capacity=config["ROOM_CAPACITY"],
            min_players=config["MIN_PLAYERS"],
        )
        registry.bind(service.leave_room, probe=messenger.probe, terminate=messenger.terminate)
        bridge = CommandBridge(service, messenger, registry)
        return cls(
            store=store,
            registry=registry,
            messenger=messenger,
            dealer=dealer,
            engine=engine,
            service=service,
            bridge=bridge,
        )
