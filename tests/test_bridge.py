import json

import pytest

from gesture_tower.bridge.protocol import format_response, parse_command, parse_gesture, parse_line
from gesture_tower.bridge.udp import UdpListener
from gesture_tower.game.errors import ProtocolError

from conftest import give_hand


class Device:
    def __init__(self, bridge, device_id):
        self.bridge = bridge
        self.device_id = device_id
        self.lines = []

    def send(self, line):
        return self.bridge.handle_line(line, self.lines.append)

    def cmd(self, command, **params):
        parts = [f"CMD:{command}", f"DeviceID:{self.device_id}"]
        parts.extend(f"{k}:{v}" for k, v in params.items())
        return self.send("|".join(parts))

    def gesture(self, gesture, card_id=""):
        return self.send(f"GESTURE|{self.device_id}|{gesture}|0.9|{card_id}")

    def responses(self, command):
        return [line for line in self.lines if line.startswith(f"RESPONSE:{command}|")]


@pytest.fixture
def devices(core):
    return Device(core.bridge, "BB1"), Device(core.bridge, "BB2")


def test_parse_command():
    cmd = parse_command("CMD:join_room|DeviceID:BB1|RoomID:T1|PlayerName:Al:ice")
    assert cmd.command == "JOIN_ROOM"
    assert cmd.device_id == "BB1"
    assert cmd.params == {"RoomID": "T1", "PlayerName": "Al:ice"}


@pytest.mark.parametrize(
    "line",
    ["CMD:JOIN_ROOM", "CMD:|DeviceID:BB1", "CMD:LIST_ROOMS|RoomID:T1", "GESTURE|BB1|attack", "GESTURE|BB1|attack|high", "hello"],
)
def test_malformed_lines_raise(line):
    with pytest.raises(ProtocolError):
        parse_line(line)


def test_parse_gesture_optional_card():
    assert parse_gesture("GESTURE|BB1|attack|0.8|").card_id is None
    g = parse_gesture("GESTURE|BB1|basic attack|0.8|c1")
    assert (g.device_id, g.gesture, g.confidence, g.card_id) == ("BB1", "basic attack", 0.8, "c1")


def test_format_response():
    assert format_response("LIST_ROOMS", "BB1", "SUCCESS", "[]") == "RESPONSE:LIST_ROOMS|DeviceID:BB1|status:SUCCESS|message:[]"


def test_malformed_line_is_dropped(core):
    sent = []
    assert core.bridge.handle_line("garbage", sent.append) is None
    assert sent == []


def test_create_join_and_list(core, devices):
    bb1, bb2 = devices

    assert bb1.cmd("CREATE_ROOM", RoomID="T1", RoomName="Tower", PlayerName="Alice") == (
        "RESPONSE:CREATE_ROOM|DeviceID:BB1|status:SUCCESS|message:Created room T1 successfully"
    )
    assert bb2.cmd("JOIN_ROOM", RoomID="t1", PlayerName="Bob").endswith("status:SUCCESS|message:Joined room T1")

    room = core.store.get("T1")
    assert [p.id for p in room.players] == ["BB1", "BB2"]
    assert room.host_id == "BB1"

    listing = bb1.cmd("LIST_ROOMS")
    rooms = json.loads(listing.split("|message:", 1)[1])
    assert rooms == [{"id": "T1", "name": "Tower", "playerCount": 2, "maxPlayers": 2, "status": "waiting"}]


def test_same_display_name_on_two_devices(core, devices):
    bb1, bb2 = devices
    bb1.cmd("CREATE_ROOM", RoomID="T1", RoomName="Tower", PlayerName="Sam")
    bb2.cmd("JOIN_ROOM", RoomID="T1", PlayerName="Sam")

    bb2.cmd("SET_READY", Ready="true")

    room = core.store.get("T1")
    assert room.find_player("BB2").is_ready is True
    assert room.find_player("BB1").is_ready is False


def test_command_errors(core, devices):
    bb1, _ = devices

    assert bb1.cmd("JOIN_ROOM", RoomID="missing", PlayerName="Alice").endswith(
        "status:ERROR|message:Room missing not found"
    )
    assert bb1.cmd("LEAVE_ROOM").endswith("status:ERROR|message:Not in a room")
    assert bb1.cmd("DANCE").endswith("status:ERROR|message:Unknown command: DANCE")
    assert bb1.cmd("CREATE_ROOM", RoomID="T1").endswith("status:ERROR|message:Missing RoomID, RoomName or PlayerName")


def test_failed_join_keeps_current_room(core, devices):
    bb1, bb2 = devices
    bb1.cmd("CREATE_ROOM", RoomID="T1", RoomName="Tower", PlayerName="Alice")
    bb2.cmd("CREATE_ROOM", RoomID="T2", RoomName="Other", PlayerName="Bob")
    core.service.join_room("T2", "BB3", "Carol")

    assert "status:ERROR" in bb1.cmd("JOIN_ROOM", RoomID="T2", PlayerName="Alice")
    assert core.store.get("T1").find_player("BB1") is not None


def test_switching_rooms_leaves_previous(core, devices):
    bb1, bb2 = devices
    bb1.cmd("CREATE_ROOM", RoomID="T1", RoomName="Tower", PlayerName="Alice")
    bb2.cmd("CREATE_ROOM", RoomID="T2", RoomName="Other", PlayerName="Bob")

    bb1.cmd("JOIN_ROOM", RoomID="T2", PlayerName="Alice")

    assert core.store.get("T1") is None
    assert core.bridge.binding("BB1").room_id == "T2"


def test_leave_room(core, devices):
    bb1, bb2 = devices
    bb1.cmd("CREATE_ROOM", RoomID="T1", RoomName="Tower", PlayerName="Alice")
    bb2.cmd("JOIN_ROOM", RoomID="T1", PlayerName="Bob")

    assert bb1.cmd("LEAVE_ROOM").endswith("status:SUCCESS|message:Left room T1")
    assert core.store.get("T1").host_id == "BB2"
    assert core.bridge.binding("BB1").room_id is None


def _start(bb1, bb2):
    bb1.cmd("CREATE_ROOM", RoomID="T1", RoomName="Tower", PlayerName="Alice")
    bb2.cmd("JOIN_ROOM", RoomID="T1", PlayerName="Bob")
    bb1.cmd("SET_READY", Ready="true")
    bb2.cmd("SET_READY", Ready="1")


def test_ready_starts_game_and_pushes_cards(core, devices):
    bb1, bb2 = devices
    _start(bb1, bb2)

    room = core.store.get("T1")
    assert room.status == "playing"
    cards = bb1.responses("CARDS")
    assert len(cards) == 1
    pushed = json.loads(cards[0].split("|message:", 1)[1])
    assert [c["id"] for c in pushed] == [c.id for c in room.hands["BB1"]]


def test_gesture_applies_action(core, devices):
    bb1, bb2 = devices
    _start(bb1, bb2)
    room = core.store.get("T1")
    room.game.goal_heights.update({"BB1": 10, "BB2": 10})
    hand = give_hand(room, "BB1", "build", "attack", "attack")

    response = bb1.gesture("build", hand[0].id)

    assert response == "RESPONSE:GESTURE|DeviceID:BB1|status:SUCCESS|message:build accepted for round 1"
    assert room.game.tower_heights["BB1"] == 1
    assert len(bb1.responses("CARDS")) == 2
    assert "status:ERROR" in bb1.gesture("attack")


def test_gesture_without_card_uses_matching_card(core, devices):
    bb1, bb2 = devices
    _start(bb1, bb2)
    room = core.store.get("T1")
    room.game.goal_heights.update({"BB1": 10, "BB2": 10})
    give_hand(room, "BB2", "build", "build", "defend")

    bb2.gesture("Basic Shield Defend")

    assert room.game.shields["BB2"] is True
    assert [c.type for c in room.hands["BB2"]][:2] == ["build", "build"]


def test_gesture_with_wrong_card_is_rejected(core, devices):
    bb1, bb2 = devices
    _start(bb1, bb2)
    room = core.store.get("T1")
    hand = give_hand(room, "BB1", "build", "defend", "defend")

    assert bb1.gesture("attack", hand[0].id).endswith("status:ERROR|message:Card %s is not of type attack" % hand[0].id)
    assert room.game.tower_heights == {"BB1": 0, "BB2": 0}


def test_display_gesture_is_relayed(core, devices):
    bb1, bb2 = devices
    _start(bb1, bb2)

    assert bb1.gesture("wave") is None
    relayed = core.messenger.events("gesture_event")
    assert relayed[-1]["gesture"] == "wave"
    assert relayed[-1]["playerId"] == "BB1"


def test_gesture_outside_room_is_ignored(core, devices):
    bb1, _ = devices
    assert bb1.gesture("attack") is None
    assert bb1.lines == []


def test_game_end_is_pushed_to_devices(core, devices):
    bb1, bb2 = devices
    _start(bb1, bb2)
    room = core.store.get("T1")
    room.game.goal_heights["BB2"] = 1
    give_hand(room, "BB2", "build", "build", "attack")

    bb2.gesture("build")

    expected = "RESPONSE:GAME_ENDED|DeviceID:BB1|status:SUCCESS|message:BB2"
    assert expected in bb1.lines
    assert room.status == "ended"


def test_binding_cleared_when_room_goes_away(core, devices):
    bb1, _ = devices
    bb1.cmd("CREATE_ROOM", RoomID="T1", RoomName="Tower", PlayerName="Alice")
    core.service.leave_room("T1", "BB1")

    assert bb1.cmd("SET_READY", Ready="true").endswith("status:ERROR|message:Not in a room")


class FakeSocket:
    def __init__(self):
        self.sent = []

    def sendto(self, data, addr):
        self.sent.append((data, addr))


def test_udp_datagram_replies_to_sender(core):
    listener = UdpListener(core.bridge, "127.0.0.1", 0)
    listener._sock = FakeSocket()

    listener.handle_datagram(b"CMD:LIST_ROOMS|DeviceID:BB9\n\nnot a command\n", ("10.0.0.5", 4000))

    assert listener._sock.sent == [
        (b"RESPONSE:LIST_ROOMS|DeviceID:BB9|status:SUCCESS|message:[]\n", ("10.0.0.5", 4000))
    ]


def test_udp_listener_binds_ephemeral_port(core):
    listener = UdpListener(core.bridge, "127.0.0.1", 0)
    assert listener.address is None

    listener.bind()
    try:
        host, port = listener.address
        assert host == "127.0.0.1"
        assert port > 0
    finally:
        listener.stop()
    assert listener.address is None
