from __future__ import annotations

import logging
import time
from typing import Any, Callable

from flask_socketio import SocketIO

from .registry import Connection, ConnectionRegistry

logger = logging.getLogger(__name__)

RoomListener = Callable[[str, str, dict], None]


class Messenger:
    """Best-effort delivery of ``(event, payload)`` pairs to connections.

    Only open connections are written to; nothing is queued or retried.
    """

    def __init__(self, socketio: SocketIO, registry: ConnectionRegistry) -> None:
        self._socketio = socketio
        self._registry = registry
        self._room_listeners: list[RoomListener] = []

    def add_room_listener(self, listener: RoomListener) -> None:
        self._room_listeners.append(listener)

    def send_to(self, conn: Connection | None, event: str, payload: Any) -> None:
        if conn is None or not conn.open:
            return
        self._emit(conn.sid, event, payload)

    def send_to_room(self, room_id: str, event: str, payload: dict) -> None:
        for conn in self._registry.in_room(room_id):
            self.send_to(conn, event, payload)
        for listener in self._room_listeners:
            try:
                listener(room_id, event, payload)
            except Exception:
                logger.exception("Room listener failed for %s in room %s", event, room_id)

    def broadcast(self, event: str, payload: Any) -> None:
        for conn in self._registry.all():
            self.send_to(conn, event, payload)

    def probe(self, conn: Connection) -> None:
        self.send_to(conn, "heartbeat", {"timestamp": int(time.time() * 1000)})

    def terminate(self, conn: Connection) -> None:
        try:
            self._socketio.server.disconnect(conn.sid, namespace="/")
        except Exception:
            logger.warning("Could not close socket %s", conn.sid)

    def _emit(self, sid: str, event: str, payload: Any) -> None:
        try:
            self._socketio.emit(event, payload, to=sid)
        except Exception:
            logger.warning("Failed to deliver %s to %s", event, sid)
