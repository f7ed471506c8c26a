import pytest

from gesture_tower.game.errors import (
    DuplicateRoom,
    GameEnded,
    GameInProgress,
    NotAllReady,
    NotEnoughPlayers,
    NotHost,
    PlayerNotFound,
    RoomFull,
    RoomNotFound,
    ValidationError,
)
from gesture_tower.game.service import infer_kind

from conftest import give_hand, start_two_player_game


def test_create_room_validates_and_rejects_duplicates(core):
    with pytest.raises(ValidationError) as exc:
        core.service.create_room("", "Name")
    assert exc.value.code == "invalid_room"

    core.service.create_room("R1", "First")
    with pytest.raises(DuplicateRoom):
        core.service.create_room("R1", "Second")
    assert core.store.get("R1").name == "First"


def test_create_room_with_creator_sets_host(core):
    room = core.service.create_room("R1", "Room", player_id="alice", player_name="Alice")

    assert room.host_id == "alice"
    assert [p.id for p in room.players] == ["alice"]
    assert core.service.list_rooms() == [
        {"id": "R1", "name": "Room", "playerCount": 1, "maxPlayers": 2, "status": "waiting"}
    ]


def test_first_device_becomes_host_and_viewers_do_not_count(core):
    core.service.create_room("R1", "Room")
    core.service.join_room("R1", "viewer-1", "Screen")
    core.service.join_room("R1", "alice", "Alice")
    core.service.join_room("R1", "bob", "Bob")
    # Viewers never take a device slot
    core.service.join_room("R1", "admin-2", "Admin")

    room = core.store.get("R1")
    assert room.host_id == "alice"
    assert len(room.device_players()) == 2
    assert core.service.list_rooms()[0]["playerCount"] == 2

    with pytest.raises(RoomFull):
        core.service.join_room("R1", "carol", "Carol")


def test_join_errors(core):
    with pytest.raises(RoomNotFound):
        core.service.join_room("nope", "alice", "Alice")
    core.service.create_room("R1", "Room")
    with pytest.raises(ValidationError):
        core.service.join_room("R1", "alice", "")


def test_rejoin_does_not_duplicate(core):
    core.service.create_room("R1", "Room")
    core.service.join_room("R1", "alice", "Alice")
    core.service.join_room("R1", "alice", "Alice 2")

    room = core.store.get("R1")
    assert [p.name for p in room.players] == ["Alice 2"]


def test_infer_kind():
    assert infer_kind("viewer-abc") == "viewer"
    assert infer_kind("admin-1") == "viewer"
    assert infer_kind("BB-42") == "device"


def test_leave_reassigns_host_and_deletes_empty_room(core):
    core.service.create_room("R1", "Room")
    core.service.join_room("R1", "alice", "Alice")
    core.service.join_room("R1", "bob", "Bob")

    assert core.service.leave_room("R1", "alice") is True
    assert core.store.get("R1").host_id == "bob"

    # Leaving twice is harmless
    assert core.service.leave_room("R1", "alice") is False

    assert core.service.room_exists("R1")
    core.service.leave_room("R1", "bob")
    assert not core.service.room_exists("R1")
    assert core.service.leave_room("R1", "bob") is False


def test_all_ready_starts_game_once(core):
    room = start_two_player_game(core)

    assert room.status == "playing"
    assert len(core.messenger.events("game_started")) == 1

    with pytest.raises(GameInProgress):
        core.service.start_game("R1", "alice")
    # A late ready toggle does not restart the game
    core.service.set_ready("R1", "alice", True)
    assert len(core.messenger.events("game_started")) == 1


def test_single_ready_player_does_not_start(core):
    core.service.create_room("R1", "Room")
    core.service.join_room("R1", "alice", "Alice")
    core.service.set_ready("R1", "alice", True)

    assert core.store.get("R1").status == "waiting"
    assert core.messenger.events("game_started") == []


def test_set_ready_errors(core):
    with pytest.raises(RoomNotFound):
        core.service.set_ready("nope", "alice", True)
    core.service.create_room("R1", "Room")
    with pytest.raises(PlayerNotFound):
        core.service.set_ready("R1", "ghost", True)


def test_start_game_preconditions(core):
    core.service.create_room("R1", "Room")
    core.service.join_room("R1", "alice", "Alice")
    with pytest.raises(NotEnoughPlayers):
        core.service.start_game("R1", "alice")

    core.service.join_room("R1", "bob", "Bob")
    with pytest.raises(NotAllReady):
        core.service.start_game("R1", "alice")

    room = core.store.get("R1")
    for p in room.players:
        p.is_ready = True
    with pytest.raises(NotHost):
        core.service.start_game("R1", "bob")

    core.service.start_game("R1", "alice")
    assert room.status == "playing"


def test_join_during_game(core):
    start_two_player_game(core)
    core.store.get("R1").capacity = 3

    with pytest.raises(GameInProgress):
        core.service.join_room("R1", "carol", "Carol")
    # Spectators may still watch
    core.service.join_room("R1", "viewer-1", "Screen")


def test_device_leaving_mid_game_forfeits(core):
    room = start_two_player_game(core)

    core.service.leave_room("R1", "bob")

    assert room.status == "ended"
    assert room.game.winner_id == "alice"
    assert core.messenger.events("game_ended")[0]["winnerId"] == "alice"


def test_room_resets_after_delay(core, clock):
    room = start_two_player_game(core)
    room.game.goal_heights["alice"] = 1
    give_hand(room, "alice", "build")
    core.engine.submit_action("R1", "alice", "build")
    assert room.status == "ended"

    clock.advance(29)
    assert core.service.tick("R1") is True
    assert room.status == "ended"

    clock.advance(1)
    assert core.service.tick("R1") is False
    assert room.status == "waiting"
    assert room.game is None
    assert all(not p.is_ready for p in room.players)


def test_ready_toggle_in_ended_room_waits_for_reset(core, clock):
    room = start_two_player_game(core)
    core.service.leave_room("R1", "bob")
    core.service.join_room("R1", "bob", "Bob")
    assert room.status == "ended"

    core.service.set_ready("R1", "bob", True)
    core.service.set_ready("R1", "alice", True)

    assert room.status == "ended"
    assert len(core.messenger.events("game_started")) == 1
    with pytest.raises(GameEnded):
        core.service.start_game("R1", "alice")

    clock.advance(30)
    core.service.tick("R1")
    assert room.status == "waiting"


def test_switching_rooms_on_one_connection_leaves_the_first(core):
    core.service.create_room("A", "First")
    core.service.create_room("B", "Second")
    conn = core.registry.register("sid-1")
    core.service.join_room("A", "alice", "Alice", connection_id=conn.id)

    core.service.join_room("B", "alice", "Alice", connection_id=conn.id)

    assert not core.service.room_exists("A")
    assert (conn.room_id, conn.player_id) == ("B", "alice")

    core.registry.unregister(conn.id)
    assert not core.service.room_exists("B")


def test_create_room_from_a_connection_in_another_room(core):
    core.service.create_room("A", "First")
    core.service.join_room("A", "bob", "Bob")
    conn = core.registry.register("sid-1")
    core.service.join_room("A", "alice", "Alice", connection_id=conn.id)

    core.service.create_room("B", "Second", player_id="alice", player_name="Alice", connection_id=conn.id)

    assert [p.id for p in core.store.get("A").players] == ["bob"]
    assert core.store.get("A").host_id == "bob"
    assert core.store.get("B").host_id == "alice"


def test_find_room_id_is_case_insensitive(core):
    core.service.create_room("Tower1", "Room")
    assert core.service.find_room_id("tower1") == "Tower1"
    assert core.service.find_room_id("other") is None
