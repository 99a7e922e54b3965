"""
Room service: load a room, run an engine operation under the room's lock,
persist the result and send notifications.
"""

import logging
import threading
import time
from collections import defaultdict
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from . import engine
from .codes import generate_id, generate_room_code, generate_unique_code, normalize_code
from .constants import (
    APP_URL,
    ERROR_INVALID_ROOM_STYLE,
    ERROR_NOT_HOST,
    ERROR_PLAYER_NOT_FOUND,
    ERROR_ROOM_NOT_FOUND,
    ERROR_TILE_MISMATCH,
    PHASE_ENDED,
    ROOM_STYLES,
)
from .engine import EngineResult
from .errors import raise_error
from .models import GameState, Meld, Player, Room, Tile
from .notifications import LoggingNotifier, Notifier
from .queued import outcome_to_dict
from .rules import RuleTable, default_rule_table
from .scoring import final_scores, player_standings
from .serialization import sanitize_state
from .store import InMemoryRoomStore, RoomStore

logger = logging.getLogger(__name__)

MeldSpec = Dict[str, Any]  # {"id": optional str, "tile_ids": [str, ...]}


def _resolve(known: Dict[str, Tile], ids: Sequence[str]) -> Optional[List[Tile]]:
    tiles = []
    for tile_id in ids:
        tile = known.get(tile_id)
        if tile is None:
            return None
        tiles.append(tile)
    return tiles


def build_arrangement(
    known: Dict[str, Tile],
    melds: Sequence[MeldSpec],
    hand: Sequence[str],
    working_area: Sequence[str]
) -> Optional[Tuple[List[Meld], List[Tile], List[Tile]]]:
    """
    Turn client-supplied tile ids into tiles the server already knows.

    Returns None if any id is unknown, so clients can never invent tiles or
    change a tile's face.
    """
    built = []
    for spec in melds:
        tiles = _resolve(known, spec.get("tile_ids", []))
        if tiles is None:
            return None
        built.append(Meld(id=spec.get("id") or generate_id(), tiles=tiles))

    hand_tiles = _resolve(known, hand)
    working_tiles = _resolve(known, working_area)
    if hand_tiles is None or working_tiles is None:
        return None
    return built, hand_tiles, working_tiles


def _known_tiles(state: GameState, player_id: str, include_working_area: bool) -> Dict[str, Tile]:
    known = {t.id: t for meld in state.melds for t in meld.tiles}
    player = state.get_player(player_id)
    if player is not None:
        known.update((t.id, t) for t in player.hand)
    if include_working_area:
        known.update((t.id, t) for t in state.working_area)
    return known


class GameManager:
    """Serializes access to each room and applies engine operations to it."""

    def __init__(
        self,
        store: Optional[RoomStore] = None,
        notifier: Optional[Notifier] = None,
        rule_table: RuleTable = default_rule_table,
        clock: Callable[[], float] = time.time,
        app_url: str = APP_URL
    ):
        self.store = store if store is not None else InMemoryRoomStore()
        self.notifier = notifier if notifier is not None else LoggingNotifier()
        self.rule_table = rule_table
        self.room_locks = defaultdict(threading.Lock)
        self._clock = clock
        self.app_url = app_url.rstrip("/")

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    def _load(self, code: str) -> Room:
        room = self.store.load(code)
        if room is None:
            raise_error(ERROR_ROOM_NOT_FOUND, f"Room {normalize_code(code)} not found")
        return room

    def _apply(self, code: str, action: str, operation: Callable[[GameState], EngineResult]) -> EngineResult:
        """Run one engine operation on a room and persist it if it succeeded."""
        key = normalize_code(code)
        with self.room_locks[key]:
            room = self._load(key)
            before = room.game_state
            result = operation(before)

            if not result.success:
                logger.warning(f"[{key}] {action} rejected: {result.error_code} {result.error_message}")
                return result

            room.game_state = result.state
            if result.data.get("all_disconnected"):
                self.store.delete(key)
                logger.info(f"[{key}] Everyone left, room removed")
            else:
                self.store.save(room)
            logger.info(f"[{key}] {action} ok (revision {result.state.revision})")

        result.data["room_code"] = key
        self._notify(key, before, result.state, result)
        return result

    def game_url(self, code: str, player_code: str) -> str:
        """Link that opens the game as the given player."""
        return f"{self.app_url}/game/{code}?p={player_code}"

    def _contact(self, code: str, player: Optional[Player]) -> Dict[str, Any]:
        if player is None:
            return {"email": None, "player_code": None, "game_url": None}
        return {
            "email": player.email,
            "player_code": player.player_code,
            "game_url": self.game_url(code, player.player_code),
        }

    def _notify(self, code: str, before: GameState, after: GameState, result: EngineResult):
        for outcome in result.queue_outcomes:
            payload = outcome_to_dict(outcome)
            payload.update(self._contact(code, after.get_player(outcome.player_id)))
            if outcome.applied:
                self.notifier.queued_turn_autoplayed(code, payload)
            else:
                self.notifier.queued_turn_failed(code, payload)

        if after.phase == PHASE_ENDED and before.phase != PHASE_ENDED:
            scores = [
                dict(score, **self._contact(code, after.get_player(score["player_id"])))
                for score in final_scores(after)
            ]
            self.notifier.game_results(code, scores, after.end_reason)
            return

        current = after.current_player()
        if result.data.get("turn_passed") and current is not None:
            player = {"id": current.id, "name": current.name}
            player.update(self._contact(code, current))
            self.notifier.turn_started(code, player, player_standings(after))

    # ------------------------------------------------------------------
    # Rooms
    # ------------------------------------------------------------------

    def create_room(self, host_name: str, email: Optional[str] = None) -> EngineResult:
        result = engine.create_game_state(host_name, email)
        code = generate_unique_code(generate_room_code, self.store.exists)
        room = Room(code=code, game_state=result.state, created_at=int(self._clock() * 1000))
        with self.room_locks[code]:
            self.store.save(room)
        logger.info(f"[{code}] Room created by {host_name}")
        result.data["room_code"] = code
        return result

    def get_room(self, code: str) -> Room:
        return self._load(code)

    def get_state(self, code: str, player_id: Optional[str] = None) -> Dict[str, Any]:
        """Sanitized view of a room for one player."""
        room = self._load(code)
        view = sanitize_state(room.game_state, player_id)
        view["room_code"] = room.code
        view["room_style_id"] = room.room_style_id
        return view

    def join_room(self, code: str, name: str, email: Optional[str] = None,
                  expected_revision: Optional[int] = None) -> EngineResult:
        return self._apply(code, "join", lambda state: engine.add_player(
            state, name, email, self.rule_table, expected_revision))

    def rejoin(self, code: str, player_code: str) -> EngineResult:
        return self._apply(code, "rejoin", lambda state: engine.rejoin_player(state, player_code))

    def leave(self, code: str, player_id: str) -> EngineResult:
        return self._apply(code, "leave", lambda state: engine.disconnect_player(state, player_id))

    def set_room_style(self, code: str, player_id: str, style_id: str) -> EngineResult:
        """Host-only cosmetic setting; the game revision is not affected."""
        key = normalize_code(code)
        with self.room_locks[key]:
            room = self._load(key)
            player = room.game_state.get_player(player_id)
            if player is None:
                return EngineResult.error(ERROR_PLAYER_NOT_FOUND, "Player not found")
            if not player.is_host:
                return EngineResult.error(ERROR_NOT_HOST, "Only the host can change the room style")
            if style_id not in ROOM_STYLES:
                return EngineResult.error(ERROR_INVALID_ROOM_STYLE, f"Unknown room style: {style_id}")
            room.room_style_id = style_id
            self.store.save(room)
        return EngineResult.ok(room.game_state, room_code=key, room_style_id=style_id)

    # ------------------------------------------------------------------
    # Game
    # ------------------------------------------------------------------

    def start_game(self, code: str, player_id: str, expected_revision: Optional[int] = None,
                   seed: Optional[int] = None) -> EngineResult:
        return self._apply(code, "start_game", lambda state: engine.start_game(
            state, player_id, self.rule_table, seed, expected_revision))

    def end_game(self, code: str, player_id: str, expected_revision: Optional[int] = None) -> EngineResult:
        return self._apply(code, "end_game", lambda state: engine.end_game(state, player_id, expected_revision))

    def play_tiles(self, code: str, player_id: str, melds: Sequence[MeldSpec], hand: Sequence[str],
                   working_area: Sequence[str] = (), expected_revision: Optional[int] = None) -> EngineResult:
        def operation(state):
            arrangement = build_arrangement(_known_tiles(state, player_id, True), melds, hand, working_area)
            if arrangement is None:
                return EngineResult.error(ERROR_TILE_MISMATCH, "Unknown tile")
            return engine.play_tiles(state, player_id, *arrangement, expected_revision=expected_revision)

        return self._apply(code, "play_tiles", operation)

    def draw_tile(self, code: str, player_id: str, expected_revision: Optional[int] = None) -> EngineResult:
        return self._apply(code, "draw_tile", lambda state: engine.draw_and_pass(state, player_id, expected_revision))

    def end_turn(self, code: str, player_id: str, expected_revision: Optional[int] = None) -> EngineResult:
        return self._apply(code, "end_turn", lambda state: engine.end_turn(state, player_id, expected_revision))

    def reset_turn(self, code: str, player_id: str, expected_revision: Optional[int] = None) -> EngineResult:
        return self._apply(code, "reset_turn", lambda state: engine.reset_turn(state, player_id, expected_revision))

    def split_run(self, code: str, player_id: str, meld_id: str,
                  expected_revision: Optional[int] = None) -> EngineResult:
        return self._apply(code, "split_run", lambda state: engine.split_run(
            state, player_id, meld_id, expected_revision))

    def rearrange_table(self, code: str, player_id: str, expected_revision: Optional[int] = None) -> EngineResult:
        return self._apply(code, "rearrange_table", lambda state: engine.rearrange_table(
            state, player_id, expected_revision))

    def queue_turn(self, code: str, player_id: str, melds: Sequence[MeldSpec], hand: Sequence[str],
                   working_area: Sequence[str] = (), expected_revision: Optional[int] = None) -> EngineResult:
        def operation(state):
            arrangement = build_arrangement(_known_tiles(state, player_id, False), melds, hand, working_area)
            if arrangement is None:
                return EngineResult.error(ERROR_TILE_MISMATCH, "Unknown tile")
            return engine.queue_turn(state, player_id, *arrangement, expected_revision=expected_revision,
                                     now_ms=int(self._clock() * 1000))

        return self._apply(code, "queue_turn", operation)

    def clear_queued_turn(self, code: str, player_id: str) -> EngineResult:
        return self._apply(code, "clear_queued_turn", lambda state: engine.clear_queued_turn(state, player_id))
