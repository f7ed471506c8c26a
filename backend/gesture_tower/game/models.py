from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal


RoomStatus = Literal["waiting", "playing", "ended"]
PlayerKind = Literal["device", "viewer"]
ActionType = Literal["attack", "defend", "build"]

ACTION_TYPES: tuple[ActionType, ...] = ("attack", "defend", "build")


@dataclass
class Player:
    id: str
    name: str
    kind: PlayerKind = "device"
    is_ready: bool = False


@dataclass
class Card:
    id: str
    type: ActionType
    name: str
    description: str = ""


@dataclass
class GameState:
    tower_heights: dict[str, int] = field(default_factory=dict)
    goal_heights: dict[str, int] = field(default_factory=dict)
    shields: dict[str, bool] = field(default_factory=dict)
    submitted: dict[str, bool] = field(default_factory=dict)
    round_number: int = 1
    current_turn: str | None = None
    winner_id: str | None = None
    # Monotonic deadlines
    round_started_at: float | None = None
    round_deadline: float | None = None
    reset_at: float | None = None


@dataclass
class Room:
    id: str
    name: str
    created_at_ms: int
    host_id: str | None = None
    players: list[Player] = field(default_factory=list)
    capacity: int = 2
    status: RoomStatus = "waiting"
    hands: dict[str, list[Card]] | None = None
    game: GameState | None = None

    def find_player(self, player_id: str) -> Player | None:
        for p in self.players:
            if p.id == player_id:
                return p
        return None

    def device_players(self) -> list[Player]:
        return [p for p in self.players if p.kind == "device"]
