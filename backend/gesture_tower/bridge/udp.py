from __future__ import annotations

import logging
import socket

from .commands import CommandBridge

logger = logging.getLogger(__name__)

MAX_DATAGRAM = 4096


class UdpListener:
    """Serves the device text protocol over a datagram socket."""

    def __init__(self, bridge: CommandBridge, host: str, port: int) -> None:
        self._bridge = bridge
        self._host = host
        self._port = port
        self._sock: socket.socket | None = None
        self._running = False

    @property
    def address(self) -> tuple[str, int] | None:
        return self._sock.getsockname() if self._sock is not None else None

    def bind(self) -> None:
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM, socket.IPPROTO_UDP)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind((self._host, self._port))
        # Short timeout so stop() is noticed
        sock.settimeout(0.5)
        self._sock = sock
        logger.info("Device channel listening on udp://%s:%s", *sock.getsockname()[:2])

    def serve_forever(self) -> None:
        if self._sock is None:
            self.bind()
        self._running = True
        while self._running:
            try:
                data, addr = self._sock.recvfrom(MAX_DATAGRAM)
            except socket.timeout:
                continue
            except OSError as e:
                if self._running:
                    logger.error("Device channel receive failed: %s", e)
                break
            self.handle_datagram(data, addr)

    def handle_datagram(self, data: bytes, addr) -> None:
        text = data.decode("utf-8", errors="replace")

        def reply(line: str) -> None:
            self._sock.sendto((line + "\n").encode("utf-8"), addr)

        for line in text.splitlines():
            if not line.strip():
                continue
            try:
                self._bridge.handle_line(line, reply)
            except Exception:
                logger.exception("Error handling datagram from %s", addr)

    def stop(self) -> None:
        self._running = False
        if self._sock is not None:
            self._sock.close()
            self._sock = None
