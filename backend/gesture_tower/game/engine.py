from __future__ import annotations

import logging
import random
import time
from typing import Callable

from ..realtime.messaging import Messenger
from .cards import CardDealer
from .errors import AlreadySubmitted, PlayerNotFound, RoomNotFound
from .models import ActionType, GameState, Room
from .store import RoomStore, card_payload, game_state_payload, room_list_item

logger = logging.getLogger(__name__)


class TurnEngine:
    """Per-room round state machine for playing rooms.

    Actions apply immediately against the shared state; a round resolves as
    soon as every device player has submitted or its deadline passes.
    """

    def __init__(
        self,
        store: RoomStore,
        messenger: Messenger,
        dealer: CardDealer,
        round_duration_sec: int = 30,
        min_goal_height: int = 5,
        max_goal_height: int = 10,
        reset_delay_sec: int = 30,
        clock: Callable[[], float] = time.monotonic,
        rng: random.Random | None = None,
    ) -> None:
        self._store = store
        self._messenger = messenger
        self._dealer = dealer
        self.round_duration_sec = round_duration_sec
        self.min_goal_height = min_goal_height
        self.max_goal_height = max_goal_height
        self.reset_delay_sec = reset_delay_sec
        self._clock = clock
        self._rng = rng or random.Random()

    def initialize(self, room: Room) -> GameState:
        with self._store.lock:
            game = GameState()
            for p in room.device_players():
                game.tower_heights[p.id] = 0
                game.goal_heights[p.id] = self._rng.randint(self.min_goal_height, self.max_goal_height)
                game.shields[p.id] = False
                game.submitted[p.id] = False
                logger.info("Player %s (%s) - tower 0, goal %s", p.name, p.id, game.goal_heights[p.id])
            game.current_turn = next(iter(game.tower_heights), None)
            room.game = game
            self._dealer.deal_room(room)

            self._messenger.send_to_room(
                room.id,
                "game_state_update",
                {"roomId": room.id, "gameState": game_state_payload(game), "message": "Game initialized"},
            )
            return game

    def start_round(self, room: Room) -> None:
        with self._store.lock:
            game = room.game
            if game is None:
                return
            for pid in game.submitted:
                game.submitted[pid] = False
            game.round_started_at = self._clock()
            game.round_deadline = game.round_started_at + self.round_duration_sec
            logger.info("Round %s started in room %s", game.round_number, room.id)
            self._messenger.send_to_room(room.id, "round_start", self.round_payload(room))

    def round_payload(self, room: Room) -> dict:
        game = room.game
        remaining = 0.0
        if game.round_deadline is not None:
            remaining = max(0.0, game.round_deadline - self._clock())
        hands = room.hands or {}
        return {
            "roomId": room.id,
            "roundNumber": game.round_number,
            "timeRemaining": round(remaining, 3),
            "playerCards": {pid: [card_payload(c) for c in cards] for pid, cards in hands.items()},
            "gameState": game_state_payload(game),
        }

    def submit_action(
        self,
        room_id: str,
        player_id: str,
        action: ActionType,
        card_id: str | None = None,
        confidence: float = 1.0,
    ) -> int | None:
        """Apply one action. Returns the round number it counted for, or None if dropped."""
        with self._store.lock:
            room = self._store.get(room_id)
            if room is None:
                raise RoomNotFound(f"Room {room_id} not found")
            game = room.game
            if room.status != "playing" or game is None:
                logger.warning("Dropped %s from %s: room %s is %s", action, player_id, room_id, room.status)
                return None
            if player_id not in game.tower_heights:
                raise PlayerNotFound(f"Player {player_id} is not playing in room {room_id}")
            if game.submitted.get(player_id):
                raise AlreadySubmitted(f"Player {player_id} already moved in round {game.round_number}")

            if not card_id:
                card_id = self._dealer.find_card_for(room, player_id, action)
            self._dealer.validate_and_consume(room, player_id, card_id, action)

            round_number = game.round_number
            game.submitted[player_id] = True
            self._apply(game, player_id, action)

            self._messenger.send_to_room(
                room_id,
                "gesture_event",
                {
                    "roomId": room_id,
                    "playerId": player_id,
                    "gesture": action,
                    "confidence": confidence,
                    "cardId": card_id,
                    "roundNumber": round_number,
                },
            )
            self._messenger.send_to_room(
                room_id, "game_state_update", {"roomId": room_id, "gameState": game_state_payload(game)}
            )

            winner = self.check_winner(game)
            if winner is not None:
                self.end_game(room, winner)
            elif all(game.submitted.values()):
                self.resolve_round(room_id, round_number)
            return round_number

    def _apply(self, game: GameState, player_id: str, action: ActionType) -> None:
        if action == "attack":
            target = next((pid for pid in game.tower_heights if pid != player_id), None)
            if target is None:
                logger.warning("No target for attack from %s", player_id)
                return
            if game.shields.get(target):
                logger.info("Attack from %s blocked by %s's shield", player_id, target)
                return
            game.tower_heights[target] = max(0, game.tower_heights[target] - 1)
        elif action == "defend":
            game.shields[player_id] = True
        elif action == "build":
            game.tower_heights[player_id] += 1

    @staticmethod
    def check_winner(game: GameState) -> str | None:
        for pid, height in game.tower_heights.items():
            if height >= game.goal_heights.get(pid, 0):
                return pid
        return None

    def resolve_round(self, room_id: str, round_number: int) -> bool:
        """Close ``round_number``. A stale round number is ignored."""
        with self._store.lock:
            room = self._store.get(room_id)
            if room is None or room.status != "playing" or room.game is None:
                return False
            game = room.game
            if game.round_number != round_number:
                logger.debug("Ignoring stale resolution of round %s in %s", round_number, room_id)
                return False

            for pid in game.shields:
                game.shields[pid] = False

            winner = self.check_winner(game)
            if winner is not None:
                self.end_game(room, winner)
                return True

            game.round_number += 1
            game.current_turn = self._next_turn(game)
            logger.info("Round %s resolved in room %s", round_number, room_id)
            self._messenger.send_to_room(
                room_id,
                "round_end",
                {
                    "roomId": room_id,
                    "roundNumber": round_number,
                    "gameState": game_state_payload(game),
                    "shouldContinue": True,
                },
            )
            self.start_round(room)
            return True

    def expire_round(self, room_id: str, round_number: int) -> bool:
        with self._store.lock:
            room = self._store.get(room_id)
            if room is not None and room.game is not None and room.game.round_number == round_number:
                missing = [pid for pid, done in room.game.submitted.items() if not done]
                logger.info("Round %s deadline in room %s, no action from %s", round_number, room_id, missing)
            return self.resolve_round(room_id, round_number)

    def now(self) -> float:
        return self._clock()

    def round_due(self, room: Room, now: float | None = None) -> bool:
        if room.status != "playing" or room.game is None or room.game.round_deadline is None:
            return False
        return (self._clock() if now is None else now) >= room.game.round_deadline

    def end_game(self, room: Room, winner_id: str | None) -> None:
        with self._store.lock:
            game = room.game
            room.status = "ended"
            if game is not None:
                game.winner_id = winner_id
                game.round_deadline = None
                game.reset_at = self._clock() + self.reset_delay_sec

            winner = room.find_player(winner_id) if winner_id else None
            logger.info("Game ended in room %s, winner %s", room.id, winner_id)
            self._messenger.send_to_room(
                room.id,
                "game_ended",
                {
                    "roomId": room.id,
                    "winnerId": winner_id,
                    "winnerName": winner.name if winner else None,
                    "gameState": game_state_payload(game) if game else None,
                },
            )
            self._messenger.broadcast("room_list", {"rooms": [room_list_item(r) for r in self._store.list()]})

    def _next_turn(self, game: GameState) -> str | None:
        order = list(game.tower_heights)
        if not order:
            return None
        if game.current_turn not in order:
            return order[0]
        return order[(order.index(game.current_turn) + 1) % len(order)]
