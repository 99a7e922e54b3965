"""Game constants and utilities"""

from typing import List

# Tile colors, in display/assignment order
COLOR_RED = "red"
COLOR_BLUE = "blue"
COLOR_YELLOW = "yellow"
COLOR_BLACK = "black"
COLORS: List[str] = [COLOR_RED, COLOR_BLUE, COLOR_YELLOW, COLOR_BLACK]

MIN_NUMBER = 1
MAX_NUMBER = 13
COPIES_PER_TILE = 2
JOKER_COUNT = 2
JOKER_NUMBER = 0
JOKER_PENALTY = 30

MIN_SET_SIZE = 3
MAX_SET_SIZE = 4
MIN_RUN_SIZE = 3

# Game phases
PHASE_LOBBY = "lobby"
PHASE_PLAYING = "playing"
PHASE_ENDED = "ended"

# Rule modes
MODE_STANDARD = "standard"
MODE_LARGE = "large"

STANDARD_HAND_SIZE = 14
STANDARD_MELD_POINTS = 30
LARGE_GAME_HAND_SIZE = 12
LARGE_GAME_MELD_POINTS = 25
MIN_PLAYERS = 2
MAX_PLAYERS = 6
LARGE_GAME_THRESHOLD = 5

# Why a game ended
END_REASON_OUT = "out"
END_REASON_STALEMATE = "stalemate"

# Room codes and player codes
ROOM_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ"
ROOM_CODE_LENGTH = 4
PLAYER_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
PLAYER_CODE_LENGTH = 6

ROOM_TTL_SECONDS = 30 * 24 * 60 * 60
APP_URL = "http://localhost:3000"

ROOM_STYLES = ["classic", "ocean", "forest", "sunset", "neon"]
DEFAULT_ROOM_STYLE = "classic"

# Queued turn outcomes
QUEUE_APPLIED = "applied"
QUEUE_STALE = "stale"
QUEUE_INVALID = "invalid"

# Turn validation reasons
REASON_WORKING_AREA = "working area not empty"
REASON_TABLE_TILE_IN_HAND = "table tile taken into hand"
REASON_INVALID_MELD = "invalid meld on table"
REASON_NO_TILES_PLAYED = "no tiles played"
REASON_INITIAL_MELD = "initial meld threshold not met"

# Error codes
ERROR_INVALID_TURN = "INVALID_TURN"
ERROR_NOT_YOUR_TURN = "NOT_YOUR_TURN"
ERROR_ROOM_NOT_FOUND = "ROOM_NOT_FOUND"
ERROR_GAME_NOT_IN_PROGRESS = "GAME_NOT_IN_PROGRESS"
ERROR_GAME_IN_PROGRESS = "GAME_IN_PROGRESS"
ERROR_STALE_QUEUED_TURN = "STALE_QUEUED_TURN"
ERROR_INVALID_QUEUED_TURN = "INVALID_QUEUED_TURN"
ERROR_CONFLICT = "CONFLICT"
ERROR_ROOM_FULL = "ROOM_FULL"
ERROR_NOT_HOST = "NOT_HOST"
ERROR_NOT_ENOUGH_PLAYERS = "NOT_ENOUGH_PLAYERS"
ERROR_PLAYER_NOT_FOUND = "PLAYER_NOT_FOUND"
ERROR_TILE_MISMATCH = "TILE_MISMATCH"
ERROR_INVALID_SPLIT = "INVALID_SPLIT"
ERROR_ACTION_NOT_ALLOWED = "ACTION_NOT_ALLOWED"
ERROR_INVALID_ROOM_STYLE = "INVALID_ROOM_STYLE"
ERROR_INTERNAL = "INTERNAL_ERROR"
