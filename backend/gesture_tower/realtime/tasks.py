from __future__ import annotations

import logging
from threading import Lock

from flask_socketio import SocketIO

from ..bridge.udp import UdpListener
from ..hub import Hub

logger = logging.getLogger(__name__)


class BackgroundTasks:
    """Heartbeat sweep, per-room deadline tickers and the device listener."""

    def __init__(self, socketio: SocketIO, hub: Hub, config) -> None:
        self._socketio = socketio
        self._hub = hub
        self._enabled = bool(config["BACKGROUND_TASKS"])
        self._heartbeat_sec = config["HEARTBEAT_INTERVAL_SEC"]
        self._tick_sec = config["ROOM_TICK_SEC"]
        self._udp_host = config["UDP_HOST"]
        self._udp_port = config["UDP_PORT"]
        self._lock = Lock()
        self._room_tasks: dict[str, bool] = {}
        self._heartbeat_started = False
        self.udp: UdpListener | None = None

    def start(self) -> None:
        if not self._enabled:
            return
        self.start_heartbeat()
        self.start_udp()

    def start_heartbeat(self) -> None:
        if not self._enabled or self._heartbeat_sec <= 0:
            return
        with self._lock:
            if self._heartbeat_started:
                return
            self._heartbeat_started = True

        def _runner() -> None:
            while True:
                self._socketio.sleep(self._heartbeat_sec)
                try:
                    evicted = self._hub.registry.sweep()
                    if evicted:
                        logger.info("Heartbeat sweep evicted %d connection(s)", len(evicted))
                except Exception:
                    logger.exception("Heartbeat sweep failed")

        self._socketio.start_background_task(_runner)

    def start_udp(self) -> None:
        if not self._enabled or self._udp_port <= 0 or self.udp is not None:
            return
        self.udp = UdpListener(self._hub.bridge, self._udp_host, self._udp_port)
        self.udp.bind()
        self._socketio.start_background_task(self.udp.serve_forever)

    def ensure_room(self, room_id: str) -> None:
        if not self._enabled:
            return
        with self._lock:
            if self._room_tasks.get(room_id):
                return
            self._room_tasks[room_id] = True

        def _runner() -> None:
            while True:
                try:
                    pending = self._hub.service.tick(room_id)
                except Exception:
                    logger.exception("Room ticker failed for %s", room_id)
                    pending = True
                if not pending:
                    break
                self._socketio.sleep(self._tick_sec)

            with self._lock:
                self._room_tasks.pop(room_id, None)

        self._socketio.start_background_task(_runner)
