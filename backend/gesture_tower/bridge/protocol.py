"""Text-line protocol spoken by hardware devices.

Commands::

    CMD:<COMMAND>|DeviceID:<id>|<key>:<value>|...

Responses::

    RESPONSE:<COMMAND>|DeviceID:<id>|status:<SUCCESS|ERROR>|message:<text>

Gesture reports::

    GESTURE|<deviceId>|<gestureType>|<confidence>|<cardId?>
"""

from __future__ import annotations

from dataclasses import dataclass, field

from ..game.errors import ProtocolError

SUCCESS = "SUCCESS"
ERROR = "ERROR"


@dataclass
class CommandLine:
    command: str
    device_id: str
    params: dict[str, str] = field(default_factory=dict)


@dataclass
class GestureLine:
    device_id: str
    gesture: str
    confidence: float = 1.0
    card_id: str | None = None


def parse_command(line: str) -> CommandLine:
    text = line.strip()
    if not text.startswith("CMD:"):
        raise ProtocolError(f"Not a command: {text!r}")

    parts = text.split("|")
    command = parts[0][len("CMD:"):].strip().upper()
    if not command:
        raise ProtocolError("Empty command")

    if len(parts) < 2 or not parts[1].startswith("DeviceID:"):
        raise ProtocolError(f"Missing DeviceID in {text!r}")
    device_id = parts[1][len("DeviceID:"):].strip()
    if not device_id:
        raise ProtocolError("Empty DeviceID")

    params: dict[str, str] = {}
    for part in parts[2:]:
        key, sep, value = part.partition(":")
        if sep and key.strip():
            params[key.strip()] = value.strip()
    return CommandLine(command=command, device_id=device_id, params=params)


def parse_gesture(line: str) -> GestureLine:
    text = line.strip()
    parts = text.split("|")
    if parts[0] != "GESTURE" or len(parts) < 4:
        raise ProtocolError(f"Malformed gesture: {text!r}")

    device_id, gesture, raw_confidence = (p.strip() for p in parts[1:4])
    if not device_id or not gesture:
        raise ProtocolError(f"Malformed gesture: {text!r}")
    try:
        confidence = float(raw_confidence) if raw_confidence else 1.0
    except ValueError:
        raise ProtocolError(f"Bad confidence {raw_confidence!r}")

    card_id = parts[4].strip() if len(parts) > 4 and parts[4].strip() else None
    return GestureLine(device_id=device_id, gesture=gesture, confidence=confidence, card_id=card_id)


def parse_line(line: str) -> CommandLine | GestureLine:
    text = line.strip()
    if text.startswith("CMD:"):
        return parse_command(text)
    if text.startswith("GESTURE|"):
        return parse_gesture(text)
    raise ProtocolError(f"Unrecognized line: {text[:64]!r}")


def format_response(command: str, device_id: str, status: str, message: str) -> str:
    text = " ".join(str(message).splitlines())
    return f"RESPONSE:{command}|DeviceID:{device_id}|status:{status}|message:{text}"
