from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Callable

from ..game.errors import GameError, ProtocolError, RoomNotFound, ValidationError
from ..game.service import RoomService
from ..game.store import card_payload
from ..realtime.events import action_from_gesture
from ..realtime.messaging import Messenger
from ..realtime.registry import ConnectionRegistry
from .protocol import ERROR, SUCCESS, CommandLine, GestureLine, format_response, parse_line

logger = logging.getLogger(__name__)

Reply = Callable[[str], None]


@dataclass
class DeviceBinding:
    device_id: str
    reply: Reply
    room_id: str | None = None
    player_name: str | None = None
    connection_id: str | None = None


class CommandBridge:
    """Maps device text lines onto the room service and turn engine.

    A device's player id is its device id, so a bound device is resolved to
    its player by id within the tracked room.
    """

    def __init__(self, service: RoomService, messenger: Messenger, registry: ConnectionRegistry) -> None:
        self._service = service
        self._messenger = messenger
        self._registry = registry
        self._devices: dict[str, DeviceBinding] = {}
        self._handlers: dict[str, Callable[[DeviceBinding, CommandLine], str]] = {
            "LIST_ROOMS": self._list_rooms,
            "CREATE_ROOM": self._create_room,
            "JOIN_ROOM": self._join_room,
            "LEAVE_ROOM": self._leave_room,
            "SET_READY": self._set_ready,
        }
        messenger.add_room_listener(self.on_room_event)

    @property
    def lock(self):
        return self._service.store.lock

    def binding(self, device_id: str) -> DeviceBinding | None:
        with self.lock:
            return self._devices.get(device_id)

    def devices(self) -> list[DeviceBinding]:
        with self.lock:
            return list(self._devices.values())

    def handle_line(self, line: str, reply: Reply, connection_id: str | None = None) -> str | None:
        """Process one line; the response (if any) is passed to ``reply`` and returned."""
        try:
            parsed = parse_line(line)
        except ProtocolError as e:
            logger.warning("Dropped device line: %s", e.message)
            return None

        with self.lock:
            binding = self._bind(parsed.device_id, reply, connection_id)
            if isinstance(parsed, GestureLine):
                response = self._gesture(binding, parsed)
            else:
                response = self._command(binding, parsed)

        if response is not None:
            self._send(reply, response)
        return response

    def _bind(self, device_id: str, reply: Reply, connection_id: str | None) -> DeviceBinding:
        binding = self._devices.get(device_id)
        if binding is None:
            binding = DeviceBinding(device_id=device_id, reply=reply)
            self._devices[device_id] = binding
            logger.info("Registered device %s", device_id)
        binding.reply = reply
        if connection_id:
            binding.connection_id = connection_id
            conn = self._registry.get(connection_id)
            if conn is not None:
                conn.device_id = device_id

        # The room may have moved on without this device (deleted, or left via another channel).
        if binding.room_id is not None:
            room = self._service.store.get(binding.room_id)
            if room is None or room.find_player(device_id) is None:
                binding.room_id = None
        return binding

    def _command(self, binding: DeviceBinding, cmd: CommandLine) -> str:
        logger.info("Received command %s from device %s", cmd.command, cmd.device_id)
        handler = self._handlers.get(cmd.command)
        try:
            if handler is None:
                raise GameError(f"Unknown command: {cmd.command}", code="unknown_command")
            message = handler(binding, cmd)
        except GameError as e:
            logger.warning("Command %s from %s failed: %s", cmd.command, cmd.device_id, e.message)
            return format_response(cmd.command, cmd.device_id, ERROR, e.message)
        except Exception:
            logger.exception("Command %s from %s crashed", cmd.command, cmd.device_id)
            return format_response(cmd.command, cmd.device_id, ERROR, "Internal server error")
        return format_response(cmd.command, cmd.device_id, SUCCESS, message)

    def _list_rooms(self, binding: DeviceBinding, cmd: CommandLine) -> str:
        return json.dumps(self._service.list_rooms())

    def _create_room(self, binding: DeviceBinding, cmd: CommandLine) -> str:
        room_id = cmd.params.get("RoomID")
        room_name = cmd.params.get("RoomName")
        player_name = cmd.params.get("PlayerName")
        if not room_id or not room_name or not player_name:
            raise ValidationError("Missing RoomID, RoomName or PlayerName")

        previous = binding.room_id
        self._service.create_room(
            room_id,
            room_name,
            player_id=binding.device_id,
            player_name=player_name,
            kind="device",
            connection_id=binding.connection_id,
        )
        if previous is not None:
            self._service.leave_room(previous, binding.device_id)
        binding.room_id = room_id
        binding.player_name = player_name
        return f"Created room {room_id} successfully"

    def _join_room(self, binding: DeviceBinding, cmd: CommandLine) -> str:
        requested = cmd.params.get("RoomID")
        player_name = cmd.params.get("PlayerName")
        if not requested or not player_name:
            raise ValidationError("Missing RoomID or PlayerName")

        room_id = self._service.find_room_id(requested)
        if room_id is None:
            raise RoomNotFound(f"Room {requested} not found")

        previous = binding.room_id
        self._service.join_room(
            room_id, binding.device_id, player_name, kind="device", connection_id=binding.connection_id
        )
        if previous is not None and previous != room_id:
            self._service.leave_room(previous, binding.device_id)
        binding.room_id = room_id
        binding.player_name = player_name
        return f"Joined room {room_id}"

    def _leave_room(self, binding: DeviceBinding, cmd: CommandLine) -> str:
        if binding.room_id is None:
            raise ValidationError("Not in a room", code="not_in_room")
        room_id = binding.room_id
        self._leave_current(binding)
        return f"Left room {room_id}"

    def _set_ready(self, binding: DeviceBinding, cmd: CommandLine) -> str:
        if binding.room_id is None:
            raise ValidationError("Not in a room", code="not_in_room")
        is_ready = cmd.params.get("Ready", "").strip().lower() in ("true", "1")
        self._service.set_ready(binding.room_id, binding.device_id, is_ready)
        return f"Ready status set to {'true' if is_ready else 'false'}"

    def _leave_current(self, binding: DeviceBinding) -> None:
        if binding.room_id is not None:
            self._service.leave_room(binding.room_id, binding.device_id)
            binding.room_id = None

    def _gesture(self, binding: DeviceBinding, gesture: GestureLine) -> str | None:
        if binding.room_id is None:
            logger.warning("Gesture from device %s which is not in a room", gesture.device_id)
            return None

        room_id = binding.room_id
        action = action_from_gesture(gesture.gesture)
        if action is None:
            # Display-only gesture
            self._messenger.send_to_room(
                room_id,
                "gesture_event",
                {
                    "roomId": room_id,
                    "playerId": binding.device_id,
                    "gesture": gesture.gesture,
                    "confidence": gesture.confidence,
                    "cardId": gesture.card_id,
                },
            )
            return None

        try:
            round_number = self._service.engine.submit_action(
                room_id, binding.device_id, action, gesture.card_id, gesture.confidence
            )
        except GameError as e:
            logger.warning("Gesture %s from %s rejected: %s", action, gesture.device_id, e.message)
            return format_response("GESTURE", gesture.device_id, ERROR, e.message)

        if round_number is None:
            return None
        self._push_hand(binding)
        return format_response("GESTURE", gesture.device_id, SUCCESS, f"{action} accepted for round {round_number}")

    def _push_hand(self, binding: DeviceBinding, cards: list[dict] | None = None) -> None:
        if cards is None:
            room = self._service.store.get(binding.room_id) if binding.room_id else None
            if room is None or not room.hands or binding.device_id not in room.hands:
                return
            cards = [card_payload(c) for c in room.hands[binding.device_id]]
        self._send(binding.reply, format_response("CARDS", binding.device_id, SUCCESS, json.dumps(cards)))

    def on_room_event(self, room_id: str, event: str, payload: dict) -> None:
        if event not in ("round_start", "game_ended"):
            return
        with self.lock:
            bound = [b for b in self._devices.values() if b.room_id == room_id]
            for binding in bound:
                if event == "round_start":
                    cards = (payload.get("playerCards") or {}).get(binding.device_id)
                    if cards is not None:
                        self._push_hand(binding, cards)
                else:
                    winner = payload.get("winnerId") or ""
                    self._send(binding.reply, format_response("GAME_ENDED", binding.device_id, SUCCESS, winner))

    def _send(self, reply: Reply, line: str) -> None:
        try:
            reply(line)
        except Exception:
            logger.warning("Could not deliver %r", line[:64])
