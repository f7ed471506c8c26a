from __future__ import annotations

import time
from dataclasses import asdict
from threading import RLock

from .models import Card, GameState, Room


def now_ms() -> int:
    return int(time.time() * 1000)


class RoomStore:
    """Authoritative room id -> Room map.

    ``lock`` is shared with every component that mutates rooms so that one
    request runs to completion before the next one touches the same state.
    """

    def __init__(self) -> None:
        self.lock = RLock()
        self._rooms: dict[str, Room] = {}

    def add(self, room: Room) -> Room:
        with self.lock:
            self._rooms[room.id] = room
            return room

    def get(self, room_id: str) -> Room | None:
        with self.lock:
            return self._rooms.get(room_id)

    def exists(self, room_id: str) -> bool:
        with self.lock:
            return room_id in self._rooms

    def delete(self, room_id: str) -> bool:
        with self.lock:
            if room_id in self._rooms:
                del self._rooms[room_id]
                return True
            return False

    def list(self) -> list[Room]:
        with self.lock:
            return list(self._rooms.values())

    def find_id(self, room_id: str) -> str | None:
        """Case-insensitive lookup of a room id."""
        with self.lock:
            if room_id in self._rooms:
                return room_id
            wanted = room_id.lower()
            for rid in self._rooms:
                if rid.lower() == wanted:
                    return rid
            return None

    def __len__(self) -> int:
        with self.lock:
            return len(self._rooms)


def card_payload(card: Card) -> dict:
    return asdict(card)


def game_state_payload(game: GameState) -> dict:
    return {
        "towerHeights": dict(game.tower_heights),
        "goalHeights": dict(game.goal_heights),
        "playerShields": dict(game.shields),
        "playerMoves": dict(game.submitted),
        "roundNumber": game.round_number,
        "currentTurn": game.current_turn,
        "winnerId": game.winner_id,
    }


def room_list_item(room: Room) -> dict:
    return {
        "id": room.id,
        "name": room.name,
        "playerCount": len(room.device_players()),
        "maxPlayers": room.capacity,
        "status": room.status,
    }


def room_public_state(room: Room) -> dict:
    players = [
        {
            "id": p.id,
            "name": p.name,
            "isReady": p.is_ready,
            "playerType": p.kind,
        }
        for p in room.players
    ]
    payload = {
        "id": room.id,
        "name": room.name,
        "createdAt": room.created_at_ms,
        "hostId": room.host_id,
        "players": players,
        "maxPlayers": room.capacity,
        "status": room.status,
    }
    if room.game is not None:
        payload["gameState"] = game_state_payload(room.game)
    return payload
