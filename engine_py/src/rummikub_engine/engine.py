"""
Game engine: lobby, turns and queued turns as pure state transitions.

Every operation takes a GameState and returns an EngineResult holding a new
state; the input is never modified. Each committed change bumps
``GameState.revision`` once. Operations that take ``expected_revision``
refuse to act on a state that has moved on since the caller read it.
"""

import copy
import logging
import random
import time
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from .arrange import reshuffle_table
from .codes import generate_id, generate_player_code, normalize_code
from .constants import (
    END_REASON_OUT,
    END_REASON_STALEMATE,
    ERROR_ACTION_NOT_ALLOWED,
    ERROR_CONFLICT,
    ERROR_GAME_IN_PROGRESS,
    ERROR_GAME_NOT_IN_PROGRESS,
    ERROR_INVALID_SPLIT,
    ERROR_INVALID_TURN,
    ERROR_NOT_ENOUGH_PLAYERS,
    ERROR_NOT_HOST,
    ERROR_NOT_YOUR_TURN,
    ERROR_PLAYER_NOT_FOUND,
    ERROR_ROOM_FULL,
    ERROR_TILE_MISMATCH,
    PHASE_ENDED,
    PHASE_LOBBY,
    PHASE_PLAYING,
    REASON_INITIAL_MELD,
)
from .melds import split_meld
from .models import GameState, Meld, Player, Tile
from .queued import (
    QueueOutcome,
    applied_outcome,
    check_queued_turn,
    failed_outcome,
    stage_queued_turn,
    strip_melds,
)
from .rules import GameRules, RuleTable, default_rule_table
from .scoring import calculate_hand_points
from .shuffle import deal_tiles, new_shuffled_pool
from .validate import can_end_turn, validate_tile_conservation

logger = logging.getLogger(__name__)

Seed = Union[random.Random, int, None]


class EngineResult:
    """Outcome of an engine operation."""

    def __init__(
        self,
        success: bool,
        state: Optional[GameState] = None,
        error_code: Optional[str] = None,
        error_message: Optional[str] = None,
        data: Optional[Dict[str, Any]] = None
    ):
        self.success = success
        self.state = state
        self.error_code = error_code
        self.error_message = error_message
        self.data = data or {}

    @classmethod
    def ok(cls, state: GameState, **data) -> 'EngineResult':
        return cls(success=True, state=state, data=data)

    @classmethod
    def error(cls, error_code: str, error_message: str, **data) -> 'EngineResult':
        return cls(success=False, error_code=error_code, error_message=error_message, data=data)

    @property
    def queue_outcomes(self) -> List[QueueOutcome]:
        return self.data.get("queue_outcomes", [])

    def __repr__(self) -> str:
        if self.success:
            return f"EngineResult(success=True, revision={self.state.revision if self.state else None})"
        return f"EngineResult(success=False, error_code={self.error_code!r}, error_message={self.error_message!r})"


def _now_ms() -> int:
    return int(time.time() * 1000)


def _strip(tiles: Sequence[Tile]) -> List[Tile]:
    return [t.without_assignment() for t in tiles]


# ---------------------------------------------------------------------------
# Primitive transitions
# ---------------------------------------------------------------------------

def new_player(name: str, email: Optional[str] = None, is_host: bool = False,
               taken_codes: Sequence[str] = ()) -> Player:
    code = generate_player_code()
    while code in taken_codes:
        code = generate_player_code()
    return Player(
        id=generate_id(),
        name=name,
        player_code=code,
        is_host=is_host,
        email=email or None,
    )


def initialize_game(players: Sequence[Player], rules: GameRules, seed: Seed = None) -> GameState:
    """
    Deal a fresh game.

    Players keep their identity, host flag, e-mail and player code (a code is
    assigned if missing); hands, initial-meld flags and queued turns are
    reset. The pool is shuffled once here and never again.
    """
    pool = new_shuffled_pool(seed)
    dealt = [
        Player(
            id=p.id,
            name=p.name,
            player_code=p.player_code or generate_player_code(),
            is_host=p.is_host,
            is_connected=p.is_connected,
            email=p.email,
        )
        for p in players
    ]
    hands = deal_tiles(pool, dealt, rules.starting_hand_size)
    for player in dealt:
        player.hand = hands[player.id]

    return GameState(
        phase=PHASE_PLAYING,
        players=dealt,
        current_player_index=0,
        melds=[],
        tile_pool=pool,
        winner=None,
        turn_start_melds=[],
        turn_start_hand=[],
        working_area=[],
        rules=rules,
    )


def draw_tile(state: GameState) -> Optional[Tile]:
    """Take the tile at the end of the pool, or None when it is empty."""
    if not state.tile_pool:
        return None
    return state.tile_pool.pop()


def next_player(state: GameState) -> int:
    """Index of the next connected player, or the current index if nobody is connected."""
    if not state.connected_players():
        return state.current_player_index

    count = len(state.players)
    index = (state.current_player_index + 1) % count
    while not state.players[index].is_connected:
        index = (index + 1) % count
    return index


def check_game_end(state: GameState) -> Tuple[bool, Optional[str]]:
    """The game ends as soon as any player has no tiles left."""
    for player in state.players:
        if len(player.hand) == 0:
            return True, player.id
    return False, None


def stalemate_winner(state: GameState) -> Optional[str]:
    """Player with the fewest penalty points, then fewest tiles, then earliest seat."""
    if not state.players:
        return None
    best = min(
        enumerate(state.players),
        key=lambda item: (calculate_hand_points(item[1].hand), len(item[1].hand), item[0]),
    )
    return best[1].id


def _finish_game(state: GameState, winner: Optional[str], reason: str):
    state.phase = PHASE_ENDED
    state.winner = winner
    state.end_reason = reason
    state.working_area = []
    for player in state.players:
        player.queued_turn = None
    logger.info(f"Game ended ({reason}), winner {winner}")


def _hand_off(state: GameState, outcomes: List[QueueOutcome], now_ms: int):
    """Pass the turn on and replay the incoming player's queued turn if there is one."""
    state.current_player_index = next_player(state)
    state.working_area = []
    state.snapshot_turn()

    incoming = state.current_player()
    if incoming is not None and incoming.queued_turn is not None:
        _reconcile(state, incoming, outcomes, now_ms)


def _commit_turn(state: GameState, player: Player, outcomes: List[QueueOutcome], now_ms: int):
    """Apply a successful end of turn for the current player."""
    player.has_initial_meld = True
    player.last_seen_meld_tile_ids = [t.id for meld in state.melds for t in meld.tiles]
    state.consecutive_empty_draws = 0

    ended, winner = check_game_end(state)
    if ended:
        _finish_game(state, winner, END_REASON_OUT)
        return

    _hand_off(state, outcomes, now_ms)


def _reconcile(state: GameState, player: Player, outcomes: List[QueueOutcome], now_ms: int):
    result = check_queued_turn(state, player)
    if not result:
        outcomes.append(failed_outcome(state, player, result))
        player.queued_turn = None
        return

    queued = player.queued_turn
    player.queued_turn = None

    # The replay is a play followed by an end of turn, one revision each
    state.melds = copy.deepcopy(queued.planned_melds)
    player.hand = list(queued.planned_hand)
    state.working_area = []
    state.increment_revision()

    outcomes.append(applied_outcome(state, player, queued))
    _commit_turn(state, player, outcomes, now_ms)
    state.increment_revision()


def reconcile_queued_turn(state: GameState, player_id: str, now_ms: Optional[int] = None) -> EngineResult:
    """
    Replay or reject the queued turn of the player who holds the turn.

    Normally this runs as part of every hand-off; it is exposed for callers
    that restore a room and want to settle a pending queued turn.
    """
    guard = _guard_turn(state, player_id, None)
    if guard:
        return guard

    new_state = copy.deepcopy(state)
    player = new_state.get_player(player_id)
    if player.queued_turn is None:
        return EngineResult.error(ERROR_ACTION_NOT_ALLOWED, "No queued turn")

    outcomes: List[QueueOutcome] = []
    _reconcile(new_state, player, outcomes, now_ms or _now_ms())
    passed = any(o.applied for o in outcomes)
    return EngineResult.ok(new_state, queue_outcomes=outcomes, **_turn_data(new_state, passed))


# ---------------------------------------------------------------------------
# Guards
# ---------------------------------------------------------------------------

def _check_revision(state: GameState, expected_revision: Optional[int]) -> Optional[EngineResult]:
    if expected_revision is not None and expected_revision != state.revision:
        return EngineResult.error(
            ERROR_CONFLICT,
            f"Game changed (expected revision {expected_revision}, current {state.revision})",
            revision=state.revision,
        )
    return None


def _guard_turn(state: GameState, player_id: str, expected_revision: Optional[int]) -> Optional[EngineResult]:
    if state.phase != PHASE_PLAYING:
        return EngineResult.error(ERROR_GAME_NOT_IN_PROGRESS, "Game not in progress")
    if state.get_player(player_id) is None:
        return EngineResult.error(ERROR_PLAYER_NOT_FOUND, "Player not found")
    current = state.current_player()
    if current is None or current.id != player_id:
        return EngineResult.error(ERROR_NOT_YOUR_TURN, "Not your turn")
    return _check_revision(state, expected_revision)


def _turn_data(state: GameState, turn_passed: bool = False) -> Dict[str, Any]:
    current = state.current_player()
    return {
        "turn_passed": turn_passed and state.phase == PHASE_PLAYING,
        "game_ended": state.phase == PHASE_ENDED,
        "winner": state.winner,
        "end_reason": state.end_reason,
        "next_player_id": current.id if current and state.phase == PHASE_PLAYING else None,
    }


# ---------------------------------------------------------------------------
# Lobby
# ---------------------------------------------------------------------------

def create_game_state(host_name: str, email: Optional[str] = None) -> EngineResult:
    """New lobby with its host as the only player."""
    host = new_player(host_name, email, is_host=True)
    state = GameState(phase=PHASE_LOBBY, players=[host])
    return EngineResult.ok(state, player_id=host.id, player_code=host.player_code)


def add_player(
    state: GameState,
    name: str,
    email: Optional[str] = None,
    rule_table: RuleTable = default_rule_table,
    expected_revision: Optional[int] = None
) -> EngineResult:
    if state.phase != PHASE_LOBBY:
        return EngineResult.error(ERROR_GAME_IN_PROGRESS, "Game already in progress")
    if len(state.players) >= rule_table.max_players:
        return EngineResult.error(ERROR_ROOM_FULL, "Room is full")
    conflict = _check_revision(state, expected_revision)
    if conflict:
        return conflict

    new_state = copy.deepcopy(state)
    player = new_player(name, email, taken_codes=[p.player_code for p in new_state.players])
    new_state.players.append(player)
    new_state.increment_revision()
    return EngineResult.ok(new_state, player_id=player.id, player_code=player.player_code)


def rejoin_player(state: GameState, player_code: str) -> EngineResult:
    """Re-authenticate a player by their player code, e.g. from another device."""
    code = normalize_code(player_code)
    new_state = copy.deepcopy(state)
    for player in new_state.players:
        if player.player_code == code:
            player.is_connected = True
            return EngineResult.ok(new_state, player_id=player.id, player_code=player.player_code)
    return EngineResult.error(ERROR_PLAYER_NOT_FOUND, "No player with that code")


def start_game(
    state: GameState,
    player_id: str,
    rule_table: RuleTable = default_rule_table,
    seed: Seed = None,
    expected_revision: Optional[int] = None
) -> EngineResult:
    """Host starts the game: rules follow the player count, player 0 moves first."""
    player = state.get_player(player_id)
    if player is None:
        return EngineResult.error(ERROR_PLAYER_NOT_FOUND, "Player not found")
    if not player.is_host:
        return EngineResult.error(ERROR_NOT_HOST, "Only the host can start the game")
    if state.phase == PHASE_PLAYING:
        return EngineResult.error(ERROR_GAME_IN_PROGRESS, "Game already in progress")
    if len(state.players) < rule_table.min_players:
        return EngineResult.error(
            ERROR_NOT_ENOUGH_PLAYERS,
            f"Need at least {rule_table.min_players} players to start",
        )
    conflict = _check_revision(state, expected_revision)
    if conflict:
        return conflict

    rules = rule_table.rules_for(len(state.players))
    new_state = initialize_game(state.players, rules, seed)
    new_state.revision = state.revision
    new_state.snapshot_turn()
    new_state.increment_revision()
    logger.info(f"Game started with {len(new_state.players)} players ({rules.mode} rules)")
    return EngineResult.ok(new_state, **_turn_data(new_state, turn_passed=True))


def end_game(state: GameState, player_id: str, expected_revision: Optional[int] = None) -> EngineResult:
    """Host aborts the game; everyone returns to the lobby keeping their seat and code."""
    player = state.get_player(player_id)
    if player is None:
        return EngineResult.error(ERROR_PLAYER_NOT_FOUND, "Player not found")
    if not player.is_host:
        return EngineResult.error(ERROR_NOT_HOST, "Only the host can end the game")
    conflict = _check_revision(state, expected_revision)
    if conflict:
        return conflict

    new_state = copy.deepcopy(state)
    new_state.phase = PHASE_LOBBY
    new_state.melds = []
    new_state.tile_pool = []
    new_state.current_player_index = 0
    new_state.winner = None
    new_state.end_reason = None
    new_state.turn_start_melds = []
    new_state.turn_start_hand = []
    new_state.working_area = []
    new_state.consecutive_empty_draws = 0
    for p in new_state.players:
        p.hand = []
        p.has_initial_meld = False
        p.queued_turn = None
        p.last_seen_meld_tile_ids = []
    new_state.increment_revision()
    return EngineResult.ok(new_state)


def disconnect_player(state: GameState, player_id: str) -> EngineResult:
    """
    Mark a player as gone.

    If they held the turn, their unfinished changes are discarded and the
    turn moves on so the table is not left waiting.
    """
    if state.get_player(player_id) is None:
        return EngineResult.error(ERROR_PLAYER_NOT_FOUND, "Player not found")

    new_state = copy.deepcopy(state)
    player = new_state.get_player(player_id)
    player.is_connected = False

    outcomes: List[QueueOutcome] = []
    current = new_state.current_player()
    handed_off = False
    if new_state.phase == PHASE_PLAYING and current is not None and current.id == player_id:
        new_state.restore_turn()
        if new_state.connected_players():
            _hand_off(new_state, outcomes, _now_ms())
            handed_off = True
        new_state.increment_revision()

    return EngineResult.ok(
        new_state,
        all_disconnected=not new_state.connected_players(),
        queue_outcomes=outcomes,
        **_turn_data(new_state, handed_off),
    )


# ---------------------------------------------------------------------------
# Turns
# ---------------------------------------------------------------------------

def play_tiles(
    state: GameState,
    player_id: str,
    melds: Sequence[Meld],
    hand: Sequence[Tile],
    working_area: Sequence[Tile] = (),
    expected_revision: Optional[int] = None
) -> EngineResult:
    """
    Store the current player's in-progress arrangement.

    Nothing is validated beyond tile conservation; legality is checked when
    the turn ends.
    """
    guard = _guard_turn(state, player_id, expected_revision)
    if guard:
        return guard

    player = state.get_player(player_id)
    conservation = validate_tile_conservation(
        state.melds, player.hand, state.working_area, melds, hand, working_area
    )
    if not conservation:
        return EngineResult.error(ERROR_TILE_MISMATCH, conservation.reason)

    new_state = copy.deepcopy(state)
    new_state.melds = strip_melds(melds)
    new_state.get_player(player_id).hand = _strip(hand)
    new_state.working_area = _strip(working_area)
    new_state.increment_revision()
    return EngineResult.ok(new_state)


def split_run(
    state: GameState,
    player_id: str,
    meld_id: str,
    expected_revision: Optional[int] = None
) -> EngineResult:
    """Break a long run on the table into two runs at its first valid split point."""
    guard = _guard_turn(state, player_id, expected_revision)
    if guard:
        return guard

    index = next((i for i, m in enumerate(state.melds) if m.id == meld_id), None)
    if index is None:
        return EngineResult.error(ERROR_INVALID_SPLIT, "Meld not found")

    halves = split_meld(state.melds[index])
    if halves is None:
        return EngineResult.error(ERROR_INVALID_SPLIT, "This meld cannot be split into two valid runs")

    new_state = copy.deepcopy(state)
    new_state.melds[index:index + 1] = list(halves)
    new_state.increment_revision()
    return EngineResult.ok(new_state, meld_ids=[m.id for m in halves])


def end_turn(
    state: GameState,
    player_id: str,
    expected_revision: Optional[int] = None,
    now_ms: Optional[int] = None
) -> EngineResult:
    """
    Commit the current player's turn.

    On a validation failure the state is left as it is and the reason is
    returned for the player. On success the turn passes to the next
    connected player, whose queued turn (if any) is replayed.
    """
    guard = _guard_turn(state, player_id, expected_revision)
    if guard:
        return guard

    player = state.get_player(player_id)
    validation = can_end_turn(
        player,
        state.melds,
        state.turn_start_hand,
        state.turn_start_melds,
        state.working_area,
        state.rules,
    )
    if not validation:
        message = validation.reason
        if validation.reason == REASON_INITIAL_MELD:
            threshold = (state.rules or GameRules()).initial_meld_threshold
            message = f"{validation.reason} ({validation.points} of {threshold} points)"
        return EngineResult.error(
            validation.error_code or ERROR_INVALID_TURN, message, reason=validation.reason
        )

    new_state = copy.deepcopy(state)
    outcomes: List[QueueOutcome] = []
    _commit_turn(new_state, new_state.get_player(player_id), outcomes, now_ms or _now_ms())
    new_state.increment_revision()
    return EngineResult.ok(new_state, queue_outcomes=outcomes, **_turn_data(new_state, turn_passed=True))


def draw_and_pass(
    state: GameState,
    player_id: str,
    expected_revision: Optional[int] = None,
    now_ms: Optional[int] = None
) -> EngineResult:
    """
    Undo the turn so far, draw one tile and pass.

    Drawing from an empty pool still passes. Once every connected player
    has passed in a row with nothing to draw, the game ends in a stalemate
    won by the lowest hand.
    """
    guard = _guard_turn(state, player_id, expected_revision)
    if guard:
        return guard

    new_state = copy.deepcopy(state)
    new_state.restore_turn()
    player = new_state.get_player(player_id)

    tile = draw_tile(new_state)
    outcomes: List[QueueOutcome] = []
    if tile is not None:
        player.hand.append(tile)
        new_state.consecutive_empty_draws = 0
    else:
        new_state.consecutive_empty_draws += 1

    if tile is None and new_state.consecutive_empty_draws >= len(new_state.connected_players()):
        _finish_game(new_state, stalemate_winner(new_state), END_REASON_STALEMATE)
    else:
        _hand_off(new_state, outcomes, now_ms or _now_ms())

    new_state.increment_revision()
    return EngineResult.ok(
        new_state, drawn_tile=tile, queue_outcomes=outcomes, **_turn_data(new_state, turn_passed=True)
    )


def reset_turn(state: GameState, player_id: str, expected_revision: Optional[int] = None) -> EngineResult:
    """Put the hand and table back as they were when the turn began."""
    guard = _guard_turn(state, player_id, expected_revision)
    if guard:
        return guard

    new_state = copy.deepcopy(state)
    new_state.restore_turn()
    new_state.increment_revision()
    return EngineResult.ok(new_state)


# ---------------------------------------------------------------------------
# Queued turns
# ---------------------------------------------------------------------------

def queue_turn(
    state: GameState,
    player_id: str,
    melds: Sequence[Meld],
    hand: Sequence[Tile],
    working_area: Sequence[Tile] = (),
    expected_revision: Optional[int] = None,
    now_ms: Optional[int] = None
) -> EngineResult:
    """
    Plan a turn while waiting for it.

    The plan is tagged with the current revision and does not change the
    table, so the revision is not bumped.
    """
    if state.phase != PHASE_PLAYING:
        return EngineResult.error(ERROR_GAME_NOT_IN_PROGRESS, "Game not in progress")
    player = state.get_player(player_id)
    if player is None:
        return EngineResult.error(ERROR_PLAYER_NOT_FOUND, "Player not found")
    current = state.current_player()
    if current is not None and current.id == player_id:
        return EngineResult.error(ERROR_ACTION_NOT_ALLOWED, "It is already your turn")
    conflict = _check_revision(state, expected_revision)
    if conflict:
        return conflict

    conservation = validate_tile_conservation(state.melds, player.hand, (), melds, hand, working_area)
    if not conservation:
        return EngineResult.error(ERROR_TILE_MISMATCH, conservation.reason)

    new_state = copy.deepcopy(state)
    queuer = new_state.get_player(player_id)
    queuer.queued_turn = stage_queued_turn(
        new_state, queuer, melds, hand, working_area, now_ms or _now_ms()
    )
    return EngineResult.ok(new_state, queued_turn_id=queuer.queued_turn.id,
                           base_revision=queuer.queued_turn.base_revision)


def clear_queued_turn(state: GameState, player_id: str) -> EngineResult:
    if state.get_player(player_id) is None:
        return EngineResult.error(ERROR_PLAYER_NOT_FOUND, "Player not found")

    new_state = copy.deepcopy(state)
    new_state.get_player(player_id).queued_turn = None
    return EngineResult.ok(new_state)


def rearrange_table(
    state: GameState,
    player_id: str,
    expected_revision: Optional[int] = None,
    rng: Optional[random.Random] = None
) -> EngineResult:
    """Lay out the table and working area as valid melds if that is possible."""
    guard = _guard_turn(state, player_id, expected_revision)
    if guard:
        return guard

    arranged = reshuffle_table(state.melds, state.working_area, rng)
    if not arranged:
        return EngineResult.error(ERROR_INVALID_TURN, "No valid arrangement of the table was found")

    new_state = copy.deepcopy(state)
    new_state.melds = arranged.melds
    new_state.working_area = []
    new_state.increment_revision()
    return EngineResult.ok(new_state)
