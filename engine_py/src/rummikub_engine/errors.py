# engine_py/src/rummikub_engine/errors.py

from .constants import (
    ERROR_ACTION_NOT_ALLOWED,
    ERROR_CONFLICT,
    ERROR_GAME_IN_PROGRESS,
    ERROR_GAME_NOT_IN_PROGRESS,
    ERROR_INTERNAL,
    ERROR_INVALID_QUEUED_TURN,
    ERROR_INVALID_ROOM_STYLE,
    ERROR_INVALID_SPLIT,
    ERROR_INVALID_TURN,
    ERROR_NOT_ENOUGH_PLAYERS,
    ERROR_NOT_HOST,
    ERROR_NOT_YOUR_TURN,
    ERROR_PLAYER_NOT_FOUND,
    ERROR_ROOM_FULL,
    ERROR_ROOM_NOT_FOUND,
    ERROR_STALE_QUEUED_TURN,
    ERROR_TILE_MISMATCH,
)


class GameError(Exception):
    """Base exception for game-related errors."""
    def __init__(self, code: str, message: str):
        self.code = code
        self.message = message
        super().__init__(f"[{code}] {message}")


# Specific error codes
INVALID_TURN = ERROR_INVALID_TURN
NOT_YOUR_TURN = ERROR_NOT_YOUR_TURN
ROOM_NOT_FOUND = ERROR_ROOM_NOT_FOUND
GAME_NOT_IN_PROGRESS = ERROR_GAME_NOT_IN_PROGRESS
GAME_IN_PROGRESS = ERROR_GAME_IN_PROGRESS
STALE_QUEUED_TURN = ERROR_STALE_QUEUED_TURN
INVALID_QUEUED_TURN = ERROR_INVALID_QUEUED_TURN
CONFLICT = ERROR_CONFLICT
ROOM_FULL = ERROR_ROOM_FULL
NOT_HOST = ERROR_NOT_HOST
NOT_ENOUGH_PLAYERS = ERROR_NOT_ENOUGH_PLAYERS
PLAYER_NOT_FOUND = ERROR_PLAYER_NOT_FOUND
TILE_MISMATCH = ERROR_TILE_MISMATCH
INVALID_SPLIT = ERROR_INVALID_SPLIT
ACTION_NOT_ALLOWED = ERROR_ACTION_NOT_ALLOWED
INVALID_ROOM_STYLE = ERROR_INVALID_ROOM_STYLE
INTERNAL_ERROR = ERROR_INTERNAL

# Failures a caller can recover from by retrying or redirecting
RECOVERABLE = frozenset({
    INVALID_TURN, NOT_YOUR_TURN, ROOM_NOT_FOUND, GAME_NOT_IN_PROGRESS,
    GAME_IN_PROGRESS, STALE_QUEUED_TURN, INVALID_QUEUED_TURN, CONFLICT,
    ROOM_FULL, NOT_HOST, NOT_ENOUGH_PLAYERS, PLAYER_NOT_FOUND, TILE_MISMATCH,
    INVALID_SPLIT, ACTION_NOT_ALLOWED, INVALID_ROOM_STYLE,
})


# Helper function to raise common errors
def raise_error(code: str, message: str):
    raise GameError(code, message)
