from __future__ import annotations


class GameError(Exception):
    """Request-scoped failure reported to the requester only."""

    code = "error"

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        if code:
            self.code = code

    def to_payload(self) -> dict:
        return {"error": self.message, "code": self.code}


class ValidationError(GameError):
    code = "invalid_payload"


class NotFoundError(GameError):
    code = "not_found"


class RoomNotFound(NotFoundError):
    code = "room_not_found"


class PlayerNotFound(NotFoundError):
    code = "player_not_found"


class CardNotFound(NotFoundError):
    code = "card_not_found"


class ConflictError(GameError):
    code = "conflict"


class DuplicateRoom(ConflictError):
    code = "duplicate_room"


class RoomFull(ConflictError):
    code = "room_full"


class GameInProgress(ConflictError):
    code = "game_in_progress"


class GameEnded(ConflictError):
    code = "game_ended"


class NotAllReady(ConflictError):
    code = "not_all_ready"


class NotEnoughPlayers(ConflictError):
    code = "not_enough_players"


class NotHost(ConflictError):
    code = "not_host"


class TypeMismatch(ConflictError):
    code = "type_mismatch"


class AlreadySubmitted(ConflictError):
    code = "already_submitted"


class ProtocolError(GameError):
    code = "protocol_error"


class InternalError(GameError):
    code = "internal_error"

    def __init__(self, message: str = "Internal server error") -> None:
        super().__init__(message)
