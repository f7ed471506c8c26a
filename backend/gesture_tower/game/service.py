from __future__ import annotations

import logging
from typing import Callable

from ..realtime.messaging import Messenger
from ..realtime.registry import ConnectionRegistry
from .engine import TurnEngine
from .errors import (
    DuplicateRoom,
    GameEnded,
    GameInProgress,
    NotAllReady,
    NotEnoughPlayers,
    NotHost,
    PlayerNotFound,
    RoomFull,
    RoomNotFound,
    ValidationError,
)
from .models import Player, PlayerKind, Room
from .store import RoomStore, now_ms, room_list_item, room_public_state

logger = logging.getLogger(__name__)

VIEWER_PREFIXES = ("admin-", "viewer-")


def infer_kind(player_id: str) -> PlayerKind:
    if player_id.startswith(VIEWER_PREFIXES):
        return "viewer"
    return "device"


class RoomService:
    """Create/join/leave/ready/start for rooms; the waiting -> playing -> ended machine."""

    def __init__(
        self,
        store: RoomStore,
        registry: ConnectionRegistry,
        messenger: Messenger,
        engine: TurnEngine,
        capacity: int = 2,
        min_players: int = 2,
    ) -> None:
        self._store = store
        self._registry = registry
        self._messenger = messenger
        self._engine = engine
        self.capacity = capacity
        self.min_players = min_players
        self._game_start_hooks: list[Callable[[str], None]] = []

    @property
    def store(self) -> RoomStore:
        return self._store

    @property
    def engine(self) -> TurnEngine:
        return self._engine

    def add_game_start_hook(self, hook: Callable[[str], None]) -> None:
        self._game_start_hooks.append(hook)

    # Queries

    def list_rooms(self) -> list[dict]:
        with self._store.lock:
            return [room_list_item(r) for r in self._store.list()]

    def get_room(self, room_id: str) -> Room:
        room = self._store.get(room_id)
        if room is None:
            raise RoomNotFound("Room not found")
        return room

    def room_exists(self, room_id: str) -> bool:
        return self._store.exists(room_id)

    def find_room_id(self, room_id: str) -> str | None:
        return self._store.find_id(room_id)

    # Operations

    def create_room(
        self,
        room_id: str,
        name: str,
        player_id: str | None = None,
        player_name: str | None = None,
        kind: PlayerKind | None = None,
        connection_id: str | None = None,
    ) -> Room:
        room_id = (room_id or "").strip()
        name = (name or "").strip()
        if not room_id or not name:
            raise ValidationError("Invalid room data", code="invalid_room")

        with self._store.lock:
            if self._store.exists(room_id):
                raise DuplicateRoom("Room already exists")

            room = Room(id=room_id, name=name, created_at_ms=now_ms(), capacity=self.capacity)
            self._store.add(room)
            logger.info("Created room: %s - %s", room_id, name)

            if player_id:
                player = self.join_room(room_id, player_id, player_name or player_id, kind, connection_id)
                room.host_id = player.id
            else:
                self._broadcast_room_list()
            return room

    def join_room(
        self,
        room_id: str,
        player_id: str,
        player_name: str,
        kind: PlayerKind | None = None,
        connection_id: str | None = None,
    ) -> Player:
        room_id = (room_id or "").strip()
        player_id = (player_id or "").strip()
        player_name = (player_name or "").strip()
        if not room_id or not player_id or not player_name:
            raise ValidationError("Missing required data")

        with self._store.lock:
            room = self._store.get(room_id)
            if room is None:
                raise RoomNotFound("Room not found")

            player = room.find_player(player_id)
            if player is not None:
                # Reconnect under the same id
                player.name = player_name
            else:
                kind = kind or infer_kind(player_id)
                if kind == "device":
                    if len(room.device_players()) >= room.capacity:
                        raise RoomFull("Room is full")
                    if room.status == "playing":
                        raise GameInProgress("Game is already in progress")
                player = Player(id=player_id, name=player_name, kind=kind)
                room.players.append(player)
                if room.host_id is None and kind == "device":
                    room.host_id = player_id

            if connection_id:
                conn = self._registry.get(connection_id)
                previous = None
                if conn is not None and conn.room_id and (conn.room_id, conn.player_id) != (room_id, player_id):
                    previous = (conn.room_id, conn.player_id)
                self._registry.associate(connection_id, room_id, player_id, player_name)
                if previous is not None:
                    # One connection plays in one room at a time
                    self.leave_room(*previous)

            logger.info("Player %s (%s, %s) joined room %s", player_name, player_id, player.kind, room_id)
            self._notify_room(room)
            self._broadcast_room_list()
            return player

    def leave_room(self, room_id: str, player_id: str) -> bool:
        with self._store.lock:
            room = self._store.get(room_id)
            if room is None:
                return False
            player = room.find_player(player_id)
            if player is None:
                return False

            room.players.remove(player)
            self._registry.dissociate(room_id, player_id)
            logger.info("Player %s left room %s", player.name, room_id)

            if not room.players:
                self._store.delete(room_id)
                logger.info("Room %s is empty, deleted", room_id)
                self._broadcast_room_list()
                return True

            if room.host_id == player_id:
                room.host_id = room.players[0].id

            if room.status == "playing" and room.game is not None and player_id in room.game.tower_heights:
                remaining = [p.id for p in room.device_players() if p.id in room.game.tower_heights]
                if len(remaining) < self.min_players:
                    logger.info("Room %s lost a device player mid-game, ending by forfeit", room_id)
                    self._engine.end_game(room, remaining[0] if remaining else None)

            self._notify_room(room)
            self._broadcast_room_list()
            return True

    def set_ready(self, room_id: str, player_id: str, is_ready: bool) -> Room:
        with self._store.lock:
            room = self._store.get(room_id)
            if room is None:
                raise RoomNotFound("Room not found")
            player = room.find_player(player_id)
            if player is None:
                raise PlayerNotFound("Player not found in room")

            player.is_ready = bool(is_ready)
            logger.info("Player %s in room %s is now %s", player.name, room_id, "ready" if is_ready else "not ready")
            self._notify_room(room)

            devices = room.device_players()
            if (
                is_ready
                and room.status == "waiting"
                and len(devices) >= self.min_players
                and all(p.is_ready for p in devices)
            ):
                logger.info("All players in room %s are ready, starting game", room_id)
                self._start(room)
            return room

    def start_game(self, room_id: str, requesting_player_id: str | None) -> Room:
        with self._store.lock:
            room = self._store.get(room_id)
            if room is None:
                raise RoomNotFound("Room not found")
            if room.status == "playing":
                raise GameInProgress("Game is already in progress")
            if room.status == "ended":
                raise GameEnded("Game has ended, waiting for the room to reset")
            devices = room.device_players()
            if len(devices) < self.min_players:
                raise NotEnoughPlayers(f"Need {self.min_players} players, have {len(devices)}")
            if not all(p.is_ready for p in devices):
                raise NotAllReady("Not all players are ready")
            if requesting_player_id != room.host_id:
                raise NotHost("Only the host can start the game")
            self._start(room)
            return room

    def reset_room(self, room_id: str) -> bool:
        with self._store.lock:
            room = self._store.get(room_id)
            if room is None or room.status != "ended":
                return False
            for p in room.players:
                p.is_ready = False
            room.game = None
            room.hands = None
            room.status = "waiting"
            logger.info("Room %s reset to waiting", room_id)
            self._notify_room(room)
            self._broadcast_room_list()
            return True

    def tick(self, room_id: str, now: float | None = None) -> bool:
        """Fire due deadlines for one room. Returns False once nothing is pending."""
        with self._store.lock:
            room = self._store.get(room_id)
            if room is None:
                return False
            if self._engine.round_due(room, now):
                self._engine.expire_round(room_id, room.game.round_number)
            if room.status == "ended" and room.game is not None and room.game.reset_at is not None:
                current = self._engine.now() if now is None else now
                if current >= room.game.reset_at:
                    self.reset_room(room_id)
            return self._store.exists(room_id) and room.status in ("playing", "ended") and room.game is not None

    def _start(self, room: Room) -> None:
        room.status = "playing"
        self._engine.initialize(room)
        self._messenger.send_to_room(room.id, "game_started", {"roomId": room.id})
        self._notify_room(room)
        self._broadcast_room_list()
        self._engine.start_round(room)
        for hook in self._game_start_hooks:
            hook(room.id)

    def _notify_room(self, room: Room) -> None:
        self._messenger.send_to_room(room.id, "room_updated", {"room": room_public_state(room)})

    def _broadcast_room_list(self) -> None:
        self._messenger.broadcast("room_list", {"rooms": [room_list_item(r) for r in self._store.list()]})
