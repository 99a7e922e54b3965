"""
Tests for the game engine: lobby, turns, queued turns and game end.
"""

import copy

from rummikub_engine.constants import (
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
    ERROR_STALE_QUEUED_TURN,
    ERROR_TILE_MISMATCH,
    PHASE_ENDED,
    PHASE_LOBBY,
    PHASE_PLAYING,
    QUEUE_APPLIED,
    QUEUE_INVALID,
    QUEUE_STALE,
    REASON_INITIAL_MELD,
    REASON_TABLE_TILE_IN_HAND,
)
from rummikub_engine.diff import board_signature, compute_board_changes
from rummikub_engine.engine import (
    add_player,
    check_game_end,
    clear_queued_turn,
    create_game_state,
    disconnect_player,
    draw_and_pass,
    end_game,
    end_turn,
    next_player,
    play_tiles,
    queue_turn,
    rearrange_table,
    reconcile_queued_turn,
    rejoin_player,
    reset_turn,
    split_run,
    start_game,
)
from rummikub_engine.melds import is_valid_meld
from rummikub_engine.models import GameState, Meld, Player, Tile
from rummikub_engine.queued import stage_queued_turn
from rummikub_engine.rules import GameRules
from rummikub_engine.shuffle import validate_tile_integrity


def tile(color, number, copy=0):
    return Tile(id=f"{color}-{number}-{copy}", color=color, number=number)


def joker(n=0):
    return Tile(id=f"joker-{n}", color="red", number=0, is_joker=True)


def set_of(number, colors=("red", "blue", "black")):
    return [tile(c, number) for c in colors]


def playing_state(hands, revision=0, pool=None, has_initial_meld=False):
    """A game in progress with known hands, player 1 to move."""
    players = [
        Player(
            id=f"p{i + 1}",
            name=f"Player {i + 1}",
            player_code=f"CODE{i + 1}A",
            is_host=i == 0,
            hand=list(hand),
            has_initial_meld=has_initial_meld,
        )
        for i, hand in enumerate(hands)
    ]
    state = GameState(
        phase=PHASE_PLAYING,
        players=players,
        tile_pool=list(pool) if pool is not None else [tile("yellow", 13, 1), tile("blue", 13, 1)],
        rules=GameRules(),
        revision=revision,
    )
    state.snapshot_turn()
    return state


def lobby_with(count):
    result = create_game_state("Host")
    state = result.state
    for i in range(count - 1):
        state = add_player(state, f"Guest {i}").state
    return state, result.data["player_id"]


# ---------------------------------------------------------------------------
# Lobby
# ---------------------------------------------------------------------------

def test_create_game_state_has_host():
    """The creator is the host and gets a player code."""
    result = create_game_state("Alice", "alice@example.com")

    assert result.success
    state = result.state
    assert state.phase == PHASE_LOBBY
    assert len(state.players) == 1
    host = state.players[0]
    assert host.is_host
    assert host.email == "alice@example.com"
    assert result.data["player_code"] == host.player_code
    assert len(host.player_code) == 6


def test_add_player_bumps_revision():
    """Joining is a committed change."""
    state = create_game_state("Alice").state
    result = add_player(state, "Bob")

    assert result.success
    assert len(result.state.players) == 2
    assert result.state.revision == state.revision + 1
    assert len(state.players) == 1


def test_room_full():
    """The seventh player is turned away."""
    state, _ = lobby_with(6)
    result = add_player(state, "Late")
    assert not result.success
    assert result.error_code == ERROR_ROOM_FULL


def test_cannot_join_running_game():
    """Joining is only possible in the lobby."""
    state = playing_state([[tile("red", 1)], [tile("red", 2)]])
    result = add_player(state, "Late")
    assert result.error_code == ERROR_GAME_IN_PROGRESS


def test_start_game_requires_host():
    """Only the host may start."""
    state, _ = lobby_with(2)
    guest = state.players[1]
    assert start_game(state, guest.id).error_code == ERROR_NOT_HOST


def test_start_game_requires_two_players():
    """A lone host cannot start."""
    state, host_id = lobby_with(1)
    assert start_game(state, host_id).error_code == ERROR_NOT_ENOUGH_PLAYERS


def test_start_standard_game():
    """Two to four players get 14 tiles each and need 30 points to open."""
    state, host_id = lobby_with(3)
    result = start_game(state, host_id, seed=42)

    assert result.success
    new_state = result.state
    assert new_state.phase == PHASE_PLAYING
    assert new_state.current_player_index == 0
    assert new_state.rules.mode == "standard"
    assert new_state.rules.initial_meld_threshold == 30
    assert all(len(p.hand) == 14 for p in new_state.players)
    assert len(new_state.tile_pool) == 106 - 42
    assert new_state.turn_start_hand == new_state.players[0].hand
    assert new_state.revision == state.revision + 1
    assert [p.player_code for p in new_state.players] == [p.player_code for p in state.players]

    everything = new_state.tile_pool + [t for p in new_state.players for t in p.hand]
    assert validate_tile_integrity(everything)


def test_start_large_game():
    """Five or more players get smaller hands and a lower threshold."""
    state, host_id = lobby_with(5)
    result = start_game(state, host_id, seed=1)

    assert result.state.rules.mode == "large"
    assert result.state.rules.initial_meld_threshold == 25
    assert all(len(p.hand) == 12 for p in result.state.players)


def test_start_game_twice():
    """A running game cannot be restarted."""
    state, host_id = lobby_with(2)
    started = start_game(state, host_id, seed=1).state
    assert start_game(started, host_id).error_code == ERROR_GAME_IN_PROGRESS


def test_rejoin_by_player_code():
    """A player code re-authenticates regardless of case."""
    state = playing_state([[tile("red", 1)], [tile("red", 2)]])
    state.players[1].is_connected = False

    result = rejoin_player(state, "code2a")
    assert result.success
    assert result.data["player_id"] == "p2"
    assert result.state.players[1].is_connected
    assert result.state.revision == state.revision

    assert rejoin_player(state, "NOPE99").error_code == ERROR_PLAYER_NOT_FOUND


# ---------------------------------------------------------------------------
# Primitives
# ---------------------------------------------------------------------------

def test_next_player_wraps_and_skips_disconnected():
    """Turn order is circular and skips players who are away."""
    state = playing_state([[tile("red", 1)]] * 4)
    assert next_player(state) == 1

    state.players[1].is_connected = False
    state.players[2].is_connected = False
    assert next_player(state) == 3

    state.current_player_index = 3
    assert next_player(state) == 0


def test_next_player_with_everyone_away():
    """With nobody connected the index does not move."""
    state = playing_state([[tile("red", 1)]] * 3)
    state.current_player_index = 2
    for p in state.players:
        p.is_connected = False
    assert next_player(state) == 2


def test_check_game_end():
    """An empty hand ends the game."""
    state = playing_state([[tile("red", 1)], []])
    assert check_game_end(state) == (True, "p2")
    state.players[1].hand = [tile("red", 2)]
    assert check_game_end(state) == (False, None)


# ---------------------------------------------------------------------------
# Turns
# ---------------------------------------------------------------------------

def test_turn_actions_need_the_turn():
    """Only the current player may act, and only during play."""
    state = playing_state([[tile("red", 1)], [tile("red", 2)]])
    assert end_turn(state, "p2").error_code == ERROR_NOT_YOUR_TURN
    assert draw_and_pass(state, "p2").error_code == ERROR_NOT_YOUR_TURN
    assert reset_turn(state, "p2").error_code == ERROR_NOT_YOUR_TURN

    lobby, host_id = lobby_with(2)
    assert end_turn(lobby, host_id).error_code == ERROR_GAME_NOT_IN_PROGRESS


def test_play_then_end_turn():
    """An opening set of 30 points commits and passes the turn."""
    hand = set_of(10) + [tile("yellow", 2)]
    state = playing_state([hand, [tile("red", 1)]])
    meld = Meld(id="m1", tiles=set_of(10))

    played = play_tiles(state, "p1", [meld], [tile("yellow", 2)], [], expected_revision=0)
    assert played.success
    assert played.state.revision == 1
    assert len(played.state.melds) == 1

    ended = end_turn(played.state, "p1", expected_revision=1)
    assert ended.success
    new_state = ended.state
    assert new_state.revision == 2
    assert new_state.current_player_index == 1
    assert new_state.players[0].has_initial_meld
    assert sorted(new_state.players[0].last_seen_meld_tile_ids) == sorted(t.id for t in set_of(10))
    assert new_state.turn_start_hand == new_state.players[1].hand
    assert ended.data["next_player_id"] == "p2"
    assert not ended.data["game_ended"]


def test_end_turn_below_threshold_is_rejected():
    """The failure carries the points found and leaves the state alone."""
    hand = set_of(9) + [tile("yellow", 2)]
    state = playing_state([hand, [tile("red", 1)]])
    played = play_tiles(state, "p1", [Meld(id="m1", tiles=set_of(9))], [tile("yellow", 2)]).state
    snapshot = copy.deepcopy(played)

    result = end_turn(played, "p1")
    assert not result.success
    assert result.error_code == ERROR_INVALID_TURN
    assert result.data["reason"] == REASON_INITIAL_MELD
    assert "27 of 30" in result.error_message
    assert played == snapshot


def test_table_tiles_cannot_be_taken_into_hand():
    """A tile lifted off the table has to end the turn in a meld."""
    blues = [tile("blue", 5), tile("blue", 6), tile("blue", 7)]
    state = playing_state([blues + [tile("yellow", 9)], [tile("red", 8)]], has_initial_meld=True)
    state.melds = [Meld(id="t", tiles=[tile("red", 1), joker(), tile("red", 3), tile("red", 4)])]
    state.snapshot_turn()

    played = play_tiles(
        state, "p1",
        [Meld(id="t", tiles=[joker(), tile("red", 3), tile("red", 4)]), Meld(id="b", tiles=blues)],
        [tile("yellow", 9), tile("red", 1)],
    )
    assert played.success

    result = end_turn(played.state, "p1")
    assert not result.success
    assert result.error_code == ERROR_INVALID_TURN
    assert result.data["reason"] == REASON_TABLE_TILE_IN_HAND
    assert played.state.current_player_index == 0

def test_play_tiles_checks_conservation():
    """Tiles that are not yours cannot be played."""
    state = playing_state([[tile("red", 1)], [tile("red", 2)]])
    result = play_tiles(state, "p1", [Meld(id="m", tiles=[tile("red", 2)])], [tile("red", 1)])
    assert result.error_code == ERROR_TILE_MISMATCH


def test_play_tiles_strips_joker_assignments():
    """Assignments sent by a client are not stored."""
    assigned = Tile(id="joker-0", color="red", number=0, is_joker=True, assigned_number=2, assigned_color="red")
    state = playing_state([[tile("red", 1), joker(), tile("red", 3)], [tile("red", 2)]])
    result = play_tiles(state, "p1", [Meld(id="m", tiles=[tile("red", 1), assigned, tile("red", 3)])], [])
    assert result.success
    assert all(t.assigned_number is None for t in result.state.melds[0].tiles)


def test_stale_expected_revision_conflicts():
    """A caller working from an old revision is refused."""
    state = playing_state([[tile("red", 1)], [tile("red", 2)]], revision=3)
    result = draw_and_pass(state, "p1", expected_revision=2)
    assert result.error_code == ERROR_CONFLICT


def test_draw_and_pass_reverts_and_draws():
    """Drawing undoes the turn, adds the last pool tile and passes."""
    hand = set_of(10) + [tile("yellow", 2)]
    pool = [tile("blue", 5, 1), tile("black", 6, 1)]
    state = playing_state([hand, [tile("red", 1)]], pool=pool)
    played = play_tiles(state, "p1", [Meld(id="m", tiles=set_of(10))], [tile("yellow", 2)]).state

    result = draw_and_pass(played, "p1")
    assert result.success
    new_state = result.state
    assert new_state.melds == []
    assert new_state.players[0].hand == hand + [tile("black", 6, 1)]
    assert result.data["drawn_tile"] == tile("black", 6, 1)
    assert new_state.tile_pool == [tile("blue", 5, 1)]
    assert new_state.current_player_index == 1
    assert new_state.revision == played.revision + 1


def test_reset_turn_restores_snapshot():
    """Reset puts everything back without passing."""
    hand = set_of(10) + [tile("yellow", 2)]
    state = playing_state([hand, [tile("red", 1)]])
    played = play_tiles(state, "p1", [Meld(id="m", tiles=set_of(10))], [tile("yellow", 2)]).state

    result = reset_turn(played, "p1")
    assert result.success
    assert result.state.melds == []
    assert result.state.players[0].hand == hand
    assert result.state.current_player_index == 0
    assert result.state.revision == played.revision + 1


def test_emptying_hand_wins():
    """Playing the last tile ends the game."""
    state = playing_state([set_of(10), [tile("red", 1)]])
    played = play_tiles(state, "p1", [Meld(id="m", tiles=set_of(10))], []).state

    result = end_turn(played, "p1")
    assert result.success
    assert result.state.phase == PHASE_ENDED
    assert result.state.winner == "p1"
    assert result.state.end_reason == END_REASON_OUT
    assert result.data["game_ended"]


def test_split_run():
    """A long run on the table splits into two valid runs."""
    long_run = [tile("red", n) for n in range(2, 9)]
    state = playing_state([[tile("blue", 1)], [tile("blue", 2)]])
    state.melds = [Meld(id="run", tiles=long_run)]
    state.snapshot_turn()

    result = split_run(state, "p1", "run")
    assert result.success
    assert len(result.state.melds) == 2
    assert all(is_valid_meld(m) for m in result.state.melds)
    assert result.state.revision == state.revision + 1


def test_split_run_rejects_short_meld():
    """Short or unknown melds cannot be split."""
    state = playing_state([[tile("blue", 1)], [tile("blue", 2)]])
    state.melds = [Meld(id="run", tiles=[tile("red", n) for n in range(2, 7)])]
    assert split_run(state, "p1", "run").error_code == ERROR_INVALID_SPLIT
    assert split_run(state, "p1", "missing").error_code == ERROR_INVALID_SPLIT


def test_rearrange_table_places_working_area():
    """Loose tiles are folded back into valid melds."""
    state = playing_state([[tile("blue", 1)], [tile("blue", 2)]])
    state.melds = [Meld(id="a", tiles=[tile("red", 1), tile("red", 2), tile("red", 3)])]
    state.working_area = [tile("red", 4)]

    result = rearrange_table(state, "p1")
    assert result.success
    assert result.state.working_area == []
    placed = sorted(t.id for m in result.state.melds for t in m.tiles)
    assert placed == sorted([tile("red", n).id for n in range(1, 5)])
    assert all(is_valid_meld(m) for m in result.state.melds)


# ---------------------------------------------------------------------------
# Stalemate and end of game
# ---------------------------------------------------------------------------

def test_stalemate_when_nobody_can_draw():
    """A full round of empty draws ends the game for the lowest hand."""
    state = playing_state([[tile("red", 5)], [joker()]], pool=[])

    first = draw_and_pass(state, "p1")
    assert first.success
    assert first.state.phase == PHASE_PLAYING
    assert first.state.consecutive_empty_draws == 1
    assert first.data["drawn_tile"] is None

    second = draw_and_pass(first.state, "p2")
    assert second.state.phase == PHASE_ENDED
    assert second.state.end_reason == END_REASON_STALEMATE
    assert second.state.winner == "p1"


def test_successful_turn_resets_empty_draws():
    """Any completed turn breaks a run of empty draws."""
    state = playing_state([[tile("red", 5)], set_of(10) + [tile("red", 1)]], pool=[], has_initial_meld=True)
    after_draw = draw_and_pass(state, "p1").state
    assert after_draw.consecutive_empty_draws == 1

    played = play_tiles(after_draw, "p2", [Meld(id="m", tiles=set_of(10))], [tile("red", 1)]).state
    ended = end_turn(played, "p2").state
    assert ended.consecutive_empty_draws == 0
    assert ended.phase == PHASE_PLAYING


def test_end_game_returns_to_lobby():
    """The host can abort; players keep their seats and codes."""
    state = playing_state([[tile("red", 1)], [tile("red", 2)]])
    codes = [p.player_code for p in state.players]

    assert end_game(state, "p2").error_code == ERROR_NOT_HOST

    result = end_game(state, "p1")
    assert result.success
    new_state = result.state
    assert new_state.phase == PHASE_LOBBY
    assert new_state.melds == [] and new_state.tile_pool == []
    assert all(p.hand == [] and not p.has_initial_meld for p in new_state.players)
    assert [p.player_code for p in new_state.players] == codes
    assert new_state.revision == state.revision + 1


# ---------------------------------------------------------------------------
# Disconnects
# ---------------------------------------------------------------------------

def test_disconnect_current_player_hands_off():
    """Leaving mid-turn discards the turn and moves on."""
    hand = set_of(10) + [tile("yellow", 2)]
    state = playing_state([hand, [tile("red", 1)], [tile("red", 2)]])
    played = play_tiles(state, "p1", [Meld(id="m", tiles=set_of(10))], [tile("yellow", 2)]).state

    result = disconnect_player(played, "p1")
    assert result.success
    new_state = result.state
    assert not new_state.players[0].is_connected
    assert new_state.melds == []
    assert new_state.players[0].hand == hand
    assert new_state.current_player_index == 1
    assert new_state.revision == played.revision + 1
    assert not result.data["all_disconnected"]


def test_disconnect_other_player_keeps_revision():
    """A waiting player leaving does not touch the table."""
    state = playing_state([[tile("red", 1)], [tile("red", 2)]])
    result = disconnect_player(state, "p2")
    assert result.state.revision == state.revision
    assert result.state.current_player_index == 0
    assert next_player(result.state) == 0


def test_last_player_leaving():
    """The result reports when nobody is left."""
    state = playing_state([[tile("red", 1)], [tile("red", 2)]])
    state = disconnect_player(state, "p2").state
    result = disconnect_player(state, "p1")
    assert result.data["all_disconnected"]


# ---------------------------------------------------------------------------
# Queued turns
# ---------------------------------------------------------------------------

def queued_game(revision=5, plan_number=11):
    """Player 2 plans to open with a set while player 1 is moving."""
    p1_hand = set_of(10) + [tile("yellow", 2)]
    p2_hand = set_of(plan_number) + [tile("yellow", 3)]
    state = playing_state([p1_hand, p2_hand], revision=revision)

    result = queue_turn(
        state, "p2",
        [Meld(id="q", tiles=set_of(plan_number))],
        [tile("yellow", 3)],
        [],
        expected_revision=revision,
        now_ms=1000,
    )
    assert result.success
    return result.state


def test_queue_turn_does_not_change_revision():
    """Queueing only records a plan."""
    state = queued_game()
    queued = state.players[1].queued_turn
    assert state.revision == 5
    assert queued.base_revision == 5
    assert queued.queued_at == 1000
    assert state.melds == []


def test_queue_turn_not_for_current_player():
    """The player holding the turn plays it directly."""
    state = playing_state([[tile("red", 1)], [tile("red", 2)]])
    result = queue_turn(state, "p1", [], [tile("red", 1)], [])
    assert result.error_code == ERROR_ACTION_NOT_ALLOWED


def test_queue_turn_checks_tiles():
    """A plan cannot use tiles the player does not hold."""
    state = playing_state([[tile("red", 1)], [tile("red", 2)]])
    result = queue_turn(state, "p2", [Meld(id="m", tiles=[tile("red", 1)])], [tile("red", 2)], [])
    assert result.error_code == ERROR_TILE_MISMATCH


def test_clear_queued_turn():
    """Clearing removes the plan without bumping the revision."""
    state = queued_game()
    result = clear_queued_turn(state, "p2")
    assert result.success
    assert result.state.players[1].queued_turn is None
    assert result.state.revision == state.revision


def test_staged_turn_records_board_signature():
    """The table fingerprint at staging time is kept with the plan."""
    state = playing_state([[tile("red", 1)], [tile("red", 2)]])
    state.melds = [Meld(id="a", tiles=set_of(7))]
    queued = stage_queued_turn(state, state.players[1], [], [tile("red", 2)], [], now_ms=1)
    assert queued.base_board_signature == board_signature(state.melds)


def test_board_changes_flag_regrouped_tiles():
    """Same tiles in new groups count as a rearrangement, judged against the stored signature."""
    long_run = [tile("red", n) for n in range(1, 7)]
    before = [Meld(id="a", tiles=long_run)]
    after = [Meld(id="b", tiles=long_run[:3]), Meld(id="c", tiles=long_run[3:])]

    changes = compute_board_changes(before, after)
    assert changes["rearranged"]
    assert changes["added"] == [] and changes["removed"] == []

    assert not compute_board_changes(before, after, board_signature(after))["rearranged"]

def test_queued_turn_goes_stale_when_board_changes():
    """Planned at revision 5, the table moves to 6: the plan is not applied."""
    state = queued_game(revision=5)
    played = play_tiles(state, "p1", [Meld(id="m", tiles=set_of(10))], [tile("yellow", 2)])
    assert played.state.revision == 6

    result = end_turn(played.state, "p1")
    assert result.success
    outcomes = result.queue_outcomes
    assert len(outcomes) == 1
    outcome = outcomes[0]
    assert outcome.status == QUEUE_STALE
    assert outcome.error_code == ERROR_STALE_QUEUED_TURN
    assert outcome.base_revision == 5
    assert outcome.current_revision == 6
    assert sorted(outcome.board_changes["added"]) == sorted(["red 10", "blue 10", "black 10"])
    assert outcome.board_changes["removed"] == []

    new_state = result.state
    assert new_state.current_player_index == 1
    assert new_state.players[1].queued_turn is None
    assert len(new_state.players[1].hand) == 4
    assert len(new_state.melds) == 1
    assert new_state.phase == PHASE_PLAYING


def test_queued_turn_auto_plays_when_board_unchanged():
    """A draw leaves the table alone, so the plan is replayed."""
    state = queued_game(revision=5)

    result = draw_and_pass(state, "p1")
    assert result.success
    outcome = result.queue_outcomes[0]
    assert outcome.status == QUEUE_APPLIED
    assert outcome.applied

    new_state = result.state
    assert new_state.players[1].hand == [tile("yellow", 3)]
    assert new_state.players[1].has_initial_meld
    assert new_state.players[1].queued_turn is None
    assert len(new_state.melds) == 1
    assert new_state.current_player_index == 0
    # play and end of the replayed turn, then the draw itself
    assert new_state.revision == 8


def test_queued_turn_invalid_below_threshold():
    """A plan that would not pass validation is rejected with the reason."""
    state = queued_game(revision=5, plan_number=9)

    result = draw_and_pass(state, "p1")
    outcome = result.queue_outcomes[0]
    assert outcome.status == QUEUE_INVALID
    assert outcome.reason == REASON_INITIAL_MELD

    new_state = result.state
    assert new_state.current_player_index == 1
    assert len(new_state.players[1].hand) == 4
    assert new_state.revision == 6


def test_queued_turns_cascade():
    """An auto-play bumps the revision, so the next plan in line is stale."""
    p1_hand = [tile("yellow", 2)]
    p2_hand = set_of(11) + [tile("yellow", 3)]
    p3_hand = set_of(12) + [tile("yellow", 4)]
    state = playing_state([p1_hand, p2_hand, p3_hand], revision=5)
    state = queue_turn(state, "p2", [Meld(id="a", tiles=set_of(11))], [tile("yellow", 3)], []).state
    state = queue_turn(state, "p3", [Meld(id="b", tiles=set_of(12))], [tile("yellow", 4)], []).state

    result = draw_and_pass(state, "p1")
    statuses = [(o.player_id, o.status) for o in result.queue_outcomes]
    assert statuses == [("p2", QUEUE_APPLIED), ("p3", QUEUE_STALE)]
    assert result.state.current_player_index == 2


def test_reconcile_queued_turn_directly():
    """A pending plan for the current player can be settled on demand."""
    state = queued_game(revision=5)
    state.current_player_index = 1
    state.snapshot_turn()

    result = reconcile_queued_turn(state, "p2", now_ms=2000)
    assert result.success
    assert result.queue_outcomes[0].applied
    assert result.state.current_player_index == 0

    assert reconcile_queued_turn(result.state, "p1").error_code == ERROR_ACTION_NOT_ALLOWED
