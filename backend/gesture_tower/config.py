import os


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev")

    # CORS
    CORS_ORIGINS = os.environ.get("CORS_ORIGINS", "*")

    # Reverse proxy / IP headers
    TRUST_PROXY_HEADERS = os.environ.get("TRUST_PROXY_HEADERS", "1") == "1"

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Rooms
    ROOM_CAPACITY = int(os.environ.get("ROOM_CAPACITY", "2"))
    MIN_PLAYERS = int(os.environ.get("MIN_PLAYERS", "2"))

    # Game
    ROUND_DURATION_SEC = int(os.environ.get("ROUND_DURATION_SEC", "30"))
    MIN_GOAL_HEIGHT = int(os.environ.get("MIN_GOAL_HEIGHT", "5"))
    MAX_GOAL_HEIGHT = int(os.environ.get("MAX_GOAL_HEIGHT", "10"))
    GAME_RESET_DELAY_SEC = int(os.environ.get("GAME_RESET_DELAY_SEC", "30"))

    # Cards
    HAND_SIZE = int(os.environ.get("HAND_SIZE", "3"))
    MAX_SAME_TYPE = int(os.environ.get("MAX_SAME_TYPE", "2"))

    # Background loops
    BACKGROUND_TASKS = os.environ.get("BACKGROUND_TASKS", "1") == "1"
    HEARTBEAT_INTERVAL_SEC = int(os.environ.get("HEARTBEAT_INTERVAL_SEC", "30"))
    ROOM_TICK_SEC = float(os.environ.get("ROOM_TICK_SEC", "0.25"))

    # Secondary (datagram) channel; port 0 disables the listener
    UDP_HOST = os.environ.get("UDP_HOST", "0.0.0.0")
    UDP_PORT = int(os.environ.get("UDP_PORT", "0"))
