from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from ..game.errors import ValidationError
from ..game.models import ACTION_TYPES, ActionType, PlayerKind


def _str(payload: dict, key: str, required: bool = True) -> str | None:
    raw = payload.get(key)
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        if required:
            raise ValidationError(f"Missing {key}")
        return None
    if not isinstance(raw, (str, int)):
        raise ValidationError(f"Invalid {key}")
    return str(raw).strip()


def _int(payload: dict, key: str) -> int | None:
    raw = payload.get(key)
    if raw is None:
        return None
    try:
        return int(raw)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid {key}")


def _kind(raw: Any) -> PlayerKind | None:
    if raw in (None, ""):
        return None
    # Older clients send the hardware/web labels
    aliases = {"device": "device", "beagleboard": "device", "viewer": "viewer", "webviewer": "viewer"}
    if raw not in aliases:
        raise ValidationError("Invalid playerType")
    return aliases[raw]


def as_payload(data: Any) -> dict:
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Payload must be an object")
    return data


def action_from_gesture(gesture: str) -> ActionType | None:
    """Map a gesture label onto a game action (``"basic attack"`` -> ``"attack"``)."""
    label = (gesture or "").strip().lower()
    if label in ACTION_TYPES:
        return label  # type: ignore[return-value]
    for action in ACTION_TYPES:
        if action in label:
            return action
    return None


@dataclass
class CreateRoom:
    room_id: str
    name: str
    player_id: str | None = None
    player_name: str | None = None
    kind: PlayerKind | None = None

    @classmethod
    def parse(cls, data: Any) -> "CreateRoom":
        payload = as_payload(data)
        # Accept both the flat form and {room: {id, name, hostId}, playerId}
        room = payload.get("room") if isinstance(payload.get("room"), dict) else {}
        room_id = _str(payload, "roomId", required=False) or _str(room, "id", required=False)
        name = _str(payload, "name", required=False) or _str(room, "name", required=False)
        if not room_id or not name:
            raise ValidationError("Invalid room data", code="invalid_room")
        player_id = _str(payload, "playerId", required=False) or _str(room, "hostId", required=False)
        return cls(
            room_id=room_id,
            name=name,
            player_id=player_id,
            player_name=_str(payload, "playerName", required=False),
            kind=_kind(payload.get("playerType")),
        )


@dataclass
class JoinRoom:
    room_id: str
    player_id: str
    player_name: str
    kind: PlayerKind | None = None

    @classmethod
    def parse(cls, data: Any) -> "JoinRoom":
        payload = as_payload(data)
        return cls(
            room_id=_str(payload, "roomId"),
            player_id=_str(payload, "playerId"),
            player_name=_str(payload, "playerName"),
            kind=_kind(payload.get("playerType")),
        )


@dataclass
class LeaveRoom:
    room_id: str | None
    player_id: str | None

    @classmethod
    def parse(cls, data: Any) -> "LeaveRoom":
        payload = as_payload(data)
        return cls(room_id=_str(payload, "roomId", required=False), player_id=_str(payload, "playerId", required=False))


@dataclass
class PlayerReady:
    room_id: str | None
    player_id: str | None
    is_ready: bool

    @classmethod
    def parse(cls, data: Any) -> "PlayerReady":
        payload = as_payload(data)
        raw = payload.get("isReady", True)
        if isinstance(raw, str):
            is_ready = raw.strip().lower() in ("true", "1")
        else:
            is_ready = bool(raw)
        return cls(
            room_id=_str(payload, "roomId", required=False),
            player_id=_str(payload, "playerId", required=False),
            is_ready=is_ready,
        )


@dataclass
class RoomRef:
    """Payload carrying a room id plus optional player/round fields."""

    room_id: str
    player_id: str | None = None
    round_number: int | None = None

    @classmethod
    def parse(cls, data: Any) -> "RoomRef":
        payload = as_payload(data)
        return cls(
            room_id=_str(payload, "roomId"),
            player_id=_str(payload, "playerId", required=False),
            round_number=_int(payload, "roundNumber"),
        )


@dataclass
class GestureEvent:
    room_id: str
    player_id: str
    gesture: str
    confidence: float = 1.0
    card_id: str | None = None

    @property
    def action(self) -> ActionType | None:
        return action_from_gesture(self.gesture)

    @classmethod
    def parse(cls, data: Any) -> "GestureEvent":
        payload = as_payload(data)
        raw_conf = payload.get("confidence")
        try:
            confidence = float(raw_conf) if raw_conf is not None else 1.0
        except (TypeError, ValueError):
            raise ValidationError("Invalid confidence")
        return cls(
            room_id=_str(payload, "roomId"),
            player_id=_str(payload, "playerId"),
            gesture=_str(payload, "gesture"),
            confidence=confidence,
            card_id=_str(payload, "cardId", required=False),
        )


@dataclass
class DeviceCommand:
    command: str
    device_id: str
    params: dict[str, str]

    def to_line(self) -> str:
        parts = [f"CMD:{self.command}", f"DeviceID:{self.device_id}"]
        parts.extend(f"{k}:{v}" for k, v in self.params.items())
        return "|".join(parts)

    @classmethod
    def parse(cls, data: Any) -> "DeviceCommand":
        payload = dict(as_payload(data))
        command = _str(payload, "command")
        device_id = _str(payload, "deviceId")
        payload.pop("command", None)
        payload.pop("deviceId", None)
        return cls(command=command, device_id=device_id, params={k: str(v) for k, v in payload.items()})
