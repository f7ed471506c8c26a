try:
    from backend.gesture_tower.server import create_app
except ImportError:  # pragma: no cover
    from gesture_tower.server import create_app

app, socketio = create_app()
app.extensions["gesture_tower.tasks"].start()
