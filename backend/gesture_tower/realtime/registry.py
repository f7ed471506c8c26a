from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from threading import RLock
from typing import Callable

logger = logging.getLogger(__name__)


@dataclass
class Connection:
    id: str
    sid: str
    alive: bool = True
    open: bool = True
    room_id: str | None = None
    player_id: str | None = None
    player_name: str | None = None
    device_id: str | None = None


class ConnectionRegistry:
    """Bookkeeping for live primary-channel connections.

    Room state is never touched here; evictions call the bound ``leave_room``.
    """

    def __init__(self, lock: RLock | None = None) -> None:
        self.lock = lock or RLock()
        self._connections: dict[str, Connection] = {}
        self._by_sid: dict[str, str] = {}
        self._leave_room: Callable[[str, str], None] | None = None
        self._probe: Callable[[Connection], None] | None = None
        self._terminate: Callable[[Connection], None] | None = None

    def bind(
        self,
        leave_room: Callable[[str, str], None],
        probe: Callable[[Connection], None] | None = None,
        terminate: Callable[[Connection], None] | None = None,
    ) -> None:
        self._leave_room = leave_room
        self._probe = probe
        self._terminate = terminate

    def register(self, sid: str) -> Connection:
        with self.lock:
            conn_id = uuid.uuid4().hex
            while conn_id in self._connections:
                conn_id = uuid.uuid4().hex
            conn = Connection(id=conn_id, sid=sid)
            self._connections[conn_id] = conn
            self._by_sid[sid] = conn_id
            logger.info("Client connected: %s (sid=%s)", conn_id, sid)
            return conn

    def get(self, connection_id: str) -> Connection | None:
        with self.lock:
            return self._connections.get(connection_id)

    def by_sid(self, sid: str) -> Connection | None:
        with self.lock:
            conn_id = self._by_sid.get(sid)
            return self._connections.get(conn_id) if conn_id else None

    def all(self) -> list[Connection]:
        with self.lock:
            return list(self._connections.values())

    def in_room(self, room_id: str) -> list[Connection]:
        with self.lock:
            return [c for c in self._connections.values() if c.room_id == room_id]

    def find_player(self, room_id: str, player_id: str) -> Connection | None:
        with self.lock:
            for c in self._connections.values():
                if c.room_id == room_id and c.player_id == player_id:
                    return c
            return None

    def mark_alive(self, connection_id: str) -> None:
        with self.lock:
            conn = self._connections.get(connection_id)
            if conn is not None:
                conn.alive = True

    def associate(self, connection_id: str, room_id: str, player_id: str, player_name: str | None = None) -> None:
        """Point a connection at a player. A player is held by at most one connection."""
        with self.lock:
            conn = self._connections.get(connection_id)
            if conn is None:
                return
            for other in self._connections.values():
                if other is not conn and other.room_id == room_id and other.player_id == player_id:
                    logger.info("Player %s in room %s moved from %s to %s", player_id, room_id, other.id, conn.id)
                    self._clear(other)
            conn.room_id = room_id
            conn.player_id = player_id
            conn.player_name = player_name

    def dissociate(self, room_id: str, player_id: str) -> None:
        """Clear the room association of whichever connection holds this player."""
        with self.lock:
            for c in self._connections.values():
                if c.room_id == room_id and c.player_id == player_id:
                    self._clear(c)

    def unregister(self, connection_id: str) -> Connection | None:
        with self.lock:
            conn = self._remove(connection_id)
            if conn is None:
                return None
            logger.info("Client disconnected: %s", conn.id)
            self._force_leave(conn)
            return conn

    def sweep(self) -> list[Connection]:
        """Evict connections that missed the last probe; probe the rest."""
        with self.lock:
            evicted: list[Connection] = []
            for conn in list(self._connections.values()):
                if not conn.alive:
                    logger.warning("Client %s timed out", conn.id)
                    self._remove(conn.id)
                    self._force_leave(conn)
                    evicted.append(conn)
                    if self._terminate is not None:
                        self._terminate(conn)
                    continue
                conn.alive = False
                if self._probe is not None:
                    self._probe(conn)
            return evicted

    def __len__(self) -> int:
        with self.lock:
            return len(self._connections)

    def _remove(self, connection_id: str) -> Connection | None:
        conn = self._connections.pop(connection_id, None)
        if conn is None:
            return None
        conn.open = False
        if self._by_sid.get(conn.sid) == connection_id:
            del self._by_sid[conn.sid]
        return conn

    @staticmethod
    def _clear(conn: Connection) -> None:
        conn.room_id = None
        conn.player_id = None
        conn.player_name = None

    def _force_leave(self, conn: Connection) -> None:
        if conn.room_id and conn.player_id and self._leave_room is not None:
            self._leave_room(conn.room_id, conn.player_id)
