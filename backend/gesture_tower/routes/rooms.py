from __future__ import annotations

from flask import Blueprint, current_app, jsonify

from ..game.store import room_public_state

bp = Blueprint("rooms", __name__)


def _hub():
    return current_app.extensions["gesture_tower"]


@bp.get("/rooms")
def list_rooms():
    return jsonify({"rooms": _hub().service.list_rooms()})


@bp.get("/rooms/<room_id>")
def get_room(room_id: str):
    room = _hub().store.get(room_id)
    if not room:
        return jsonify({"error": "room_not_found"}), 404
    return jsonify(room_public_state(room))
