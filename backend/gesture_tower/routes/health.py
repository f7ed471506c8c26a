from __future__ import annotations

from datetime import datetime, timezone

from flask import Blueprint, current_app, jsonify

bp = Blueprint("health", __name__)


@bp.get("/health")
def health():
    hub = current_app.extensions["gesture_tower"]
    return jsonify(
        {
            "status": "UP",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "connections": len(hub.registry),
            "devices": len(hub.bridge.devices()),
            "rooms": len(hub.store),
        }
    )
