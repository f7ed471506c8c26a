from __future__ import annotations

import functools
import logging

from flask import request
from flask_socketio import SocketIO

from ..game.errors import ConflictError, GameError, InternalError, NotFoundError, PlayerNotFound, ValidationError
from ..game.store import game_state_payload, room_public_state
from ..hub import Hub
from .events import CreateRoom, DeviceCommand, GestureEvent, JoinRoom, LeaveRoom, PlayerReady, RoomRef, as_payload
from .registry import Connection
from .tasks import BackgroundTasks

logger = logging.getLogger(__name__)


def register_socketio_handlers(socketio: SocketIO, hub: Hub, tasks: BackgroundTasks) -> None:
    registry = hub.registry
    messenger = hub.messenger
    service = hub.service
    engine = hub.engine

    def _connection() -> Connection | None:
        return registry.by_sid(request.sid)

    def _reply(event: str, payload: dict) -> None:
        messenger.send_to(_connection(), event, payload)

    def guarded(fn):
        """Run one request to completion; errors go back to the requester only."""

        @functools.wraps(fn)
        def wrapper(data=None):
            conn = _connection()
            if conn is not None:
                registry.mark_alive(conn.id)
            try:
                return fn(data)
            except GameError as e:
                logger.info("%s from %s rejected: %s", fn.__name__, request.sid, e.message)
                _reply("error", e.to_payload())
            except Exception:
                logger.exception("Unhandled error in %s", fn.__name__)
                _reply("error", InternalError().to_payload())
            return None

        return wrapper

    @socketio.on("connect")
    def on_connect(auth=None):
        conn = registry.register(request.sid)
        messenger.send_to(conn, "room_list", {"rooms": service.list_rooms()})
        tasks.start_heartbeat()

    @socketio.on("disconnect")
    def on_disconnect(*args):
        conn = _connection()
        if conn is None:
            return
        try:
            registry.unregister(conn.id)
        except Exception:
            logger.exception("Cleanup failed for connection %s", conn.id)

    @socketio.on("heartbeat")
    @guarded
    def heartbeat(data):
        return None

    @socketio.on("room_list")
    @guarded
    def room_list(data):
        _reply("room_list", {"rooms": service.list_rooms()})

    @socketio.on("get_room")
    @guarded
    def get_room(data):
        ref = RoomRef.parse(data)
        room = service.get_room(ref.room_id)
        _reply("room_data", {"room": room_public_state(room)})

    @socketio.on("create_room")
    @guarded
    def create_room(data):
        ev = CreateRoom.parse(data)
        conn = _connection()
        room = service.create_room(
            ev.room_id,
            ev.name,
            player_id=ev.player_id,
            player_name=ev.player_name,
            kind=ev.kind,
            connection_id=conn.id if conn else None,
        )
        _reply("room_updated", {"room": room_public_state(room)})

    @socketio.on("join_room")
    @guarded
    def join_room(data):
        ev = JoinRoom.parse(data)
        conn = _connection()
        service.join_room(ev.room_id, ev.player_id, ev.player_name, ev.kind, connection_id=conn.id if conn else None)

    @socketio.on("leave_room")
    @guarded
    def leave_room(data):
        ev = LeaveRoom.parse(data)
        conn = _connection()
        room_id = ev.room_id or (conn.room_id if conn else None)
        if not room_id:
            raise ValidationError("Missing room ID")
        player_id = ev.player_id or (conn.player_id if conn else None)
        if not player_id:
            return
        service.leave_room(room_id, player_id)

    @socketio.on("player_ready")
    @guarded
    def player_ready(data):
        ev = PlayerReady.parse(data)
        conn = _connection()
        room_id = ev.room_id or (conn.room_id if conn else None)
        player_id = ev.player_id or (conn.player_id if conn else None)
        if not room_id or not player_id:
            raise ValidationError("Missing required data")
        service.set_ready(room_id, player_id, ev.is_ready)

    @socketio.on("game_started")
    @guarded
    def game_started(data):
        ref = RoomRef.parse(data)
        conn = _connection()
        requester = ref.player_id or (conn.player_id if conn else None)
        service.start_game(ref.room_id, requester)

    @socketio.on("gesture_event")
    @guarded
    def gesture_event(data):
        ev = GestureEvent.parse(data)
        room = service.get_room(ev.room_id)
        if room.find_player(ev.player_id) is None:
            raise PlayerNotFound("Player not found in room")

        action = ev.action
        if action is None:
            logger.info("Non-gameplay gesture %s from %s", ev.gesture, ev.player_id)
            messenger.send_to_room(
                ev.room_id,
                "gesture_event",
                {
                    "roomId": ev.room_id,
                    "playerId": ev.player_id,
                    "gesture": ev.gesture,
                    "confidence": ev.confidence,
                    "cardId": ev.card_id,
                },
            )
            _reply("move_status", {"status": "accepted", "reason": "Non-gameplay gesture"})
            return

        round_number = engine.submit_action(ev.room_id, ev.player_id, action, ev.card_id, ev.confidence)
        if round_number is not None:
            _reply("move_status", {"status": "accepted", "roundNumber": round_number})

    @socketio.on("get_game_state")
    @guarded
    def get_game_state(data):
        ref = RoomRef.parse(data)
        room = service.get_room(ref.room_id)
        if room.game is None:
            raise NotFoundError("Game state not found", code="game_state_not_found")
        _reply("game_state_update", {"roomId": room.id, "gameState": game_state_payload(room.game)})

    @socketio.on("game_ready")
    @guarded
    def game_ready(data):
        ref = RoomRef.parse(data)
        room = service.get_room(ref.room_id)
        devices = len(room.device_players())
        if devices < service.min_players:
            messenger.send_to_room(
                room.id,
                "game_state_update",
                {
                    "roomId": room.id,
                    "message": f"Waiting for players. Have {devices}/{service.min_players} players.",
                    "needMorePlayers": True,
                },
            )
            return
        payload = {"roomId": room.id, "message": "Game is ready", "serverReady": True}
        if room.game is not None:
            payload["gameState"] = game_state_payload(room.game)
        messenger.send_to_room(room.id, "game_state_update", payload)

    def _resync_round(ref: RoomRef) -> None:
        room = service.get_room(ref.room_id)
        if room.status != "playing" or room.game is None:
            raise ConflictError("Game not in progress", code="game_not_in_progress")
        current = room.game.round_number
        if ref.round_number is not None and ref.round_number < current:
            raise ConflictError(
                f"Cannot start round {ref.round_number}, already at round {current}", code="stale_round"
            )
        _reply("round_start", engine.round_payload(room))

    @socketio.on("round_start")
    @guarded
    def round_start(data):
        # Rounds are server driven; a client request resyncs the current round.
        _resync_round(RoomRef.parse(data))

    @socketio.on("next_round_ready")
    @guarded
    def next_round_ready(data):
        _resync_round(RoomRef.parse(data))

    @socketio.on("round_end_ack")
    @guarded
    def round_end_ack(data):
        ref = RoomRef.parse(data)
        room = service.get_room(ref.room_id)
        messenger.send_to_room(
            room.id,
            "round_end_ack",
            {
                "roomId": room.id,
                "playerId": ref.player_id,
                "roundNumber": ref.round_number,
                "nextRoundNumber": room.game.round_number if room.game else 0,
            },
        )

    @socketio.on("beagleboard_command")
    @guarded
    def beagleboard_command(data):
        conn = _connection()
        payload = as_payload(data)
        if isinstance(payload.get("line"), str):
            line = payload["line"]
        else:
            line = DeviceCommand.parse(payload).to_line()

        def reply(text: str) -> None:
            messenger.send_to(conn, "beagle_board_command", {"message": text})

        hub.bridge.handle_line(line, reply, connection_id=conn.id if conn else None)
