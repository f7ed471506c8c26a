from __future__ import annotations

import logging
import random
import uuid

from .errors import CardNotFound, PlayerNotFound, TypeMismatch
from .models import ACTION_TYPES, ActionType, Card, Room

logger = logging.getLogger(__name__)


CARD_TEMPLATES: dict[str, tuple[str, str]] = {
    "attack": ("Basic Attack", "A standard attack that deals damage to the opponent's tower"),
    "defend": ("Basic Shield", "Blocks the next attack"),
    "build": ("Basic Block", "Adds one block to your tower"),
}


def make_card(action: ActionType) -> Card:
    name, description = CARD_TEMPLATES[action]
    return Card(id=uuid.uuid4().hex, type=action, name=name, description=description)


class CardDealer:
    def __init__(self, hand_size: int = 3, max_same_type: int = 2, rng: random.Random | None = None) -> None:
        self.hand_size = hand_size
        self.max_same_type = max_same_type
        self._rng = rng or random.Random()

    def deal_initial_hand(self, player_id: str) -> list[Card]:
        counts = {t: 0 for t in ACTION_TYPES}
        hand: list[Card] = []
        while len(hand) < self.hand_size:
            action = self._rng.choice(ACTION_TYPES)
            if counts[action] >= self.max_same_type:
                continue
            counts[action] += 1
            hand.append(make_card(action))
        logger.debug("Dealt %s to %s", [c.type for c in hand], player_id)
        return hand

    def draw_card(self) -> Card:
        return make_card(self._rng.choice(ACTION_TYPES))

    def deal_room(self, room: Room) -> None:
        room.hands = {p.id: self.deal_initial_hand(p.id) for p in room.device_players()}

    def find_card_for(self, room: Room, player_id: str, action: ActionType) -> str:
        """Id of the first card in the player's hand matching ``action``."""
        for card in self._hand(room, player_id):
            if card.type == action:
                return card.id
        raise CardNotFound(f"No {action} card in hand")

    def validate(self, room: Room, player_id: str, card_id: str, action: ActionType) -> int:
        hand = self._hand(room, player_id)
        for idx, card in enumerate(hand):
            if card.id == card_id:
                if card.type != action:
                    raise TypeMismatch(f"Card {card_id} is not of type {action}")
                return idx
        raise CardNotFound(f"Card {card_id} not found")

    def validate_and_consume(self, room: Room, player_id: str, card_id: str, action: ActionType) -> Card:
        """Remove the played card and append a fresh one. Returns the new card."""
        idx = self.validate(room, player_id, card_id, action)
        hand = self._hand(room, player_id)
        used = hand.pop(idx)
        new_card = self.draw_card()
        hand.append(new_card)
        logger.info("Player %s used %s (%s), drew %s", player_id, used.name, used.id, new_card.type)
        return new_card

    def _hand(self, room: Room, player_id: str) -> list[Card]:
        if not room.hands or player_id not in room.hands:
            raise PlayerNotFound(f"No cards found for player {player_id}")
        return room.hands[player_id]
