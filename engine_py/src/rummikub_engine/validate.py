"""
End-of-turn validation.
"""

from collections import Counter
from typing import Iterable, Optional, Sequence

from .constants import (
    ERROR_INVALID_TURN,
    ERROR_TILE_MISMATCH,
    REASON_INITIAL_MELD,
    REASON_INVALID_MELD,
    REASON_NO_TILES_PLAYED,
    REASON_TABLE_TILE_IN_HAND,
    REASON_WORKING_AREA,
)
from .melds import validate_all_melds
from .models import Meld, Player, Tile
from .rules import GameRules
from .scoring import calculate_processed_meld_points


class ValidationResult:
    """Result of turn validation."""

    def __init__(
        self,
        valid: bool,
        error_code: Optional[str] = None,
        reason: Optional[str] = None,
        points: Optional[int] = None
    ):
        self.valid = valid
        self.error_code = error_code
        self.reason = reason
        self.points = points

    @classmethod
    def success(cls, points: Optional[int] = None) -> 'ValidationResult':
        """Create a successful validation result."""
        return cls(valid=True, points=points)

    @classmethod
    def error(cls, reason: str, error_code: str = ERROR_INVALID_TURN, points: Optional[int] = None) -> 'ValidationResult':
        """Create an error validation result."""
        return cls(valid=False, error_code=error_code, reason=reason, points=points)

    def __bool__(self) -> bool:
        return self.valid

    def __repr__(self) -> str:
        if self.valid:
            return "ValidationResult(valid=True)"
        return f"ValidationResult(valid=False, reason={self.reason!r})"


def new_tile_ids(turn_start_hand: Sequence[Tile], hand: Sequence[Tile]) -> set:
    """Ids of tiles that left the hand this turn."""
    in_hand = {t.id for t in hand}
    return {t.id for t in turn_start_hand if t.id not in in_hand}


def initial_meld_points(melds: Sequence[Meld], played_ids: set) -> int:
    """Points from melds made entirely of tiles played this turn."""
    total = 0
    for meld in melds:
        if meld.tiles and all(t.id in played_ids for t in meld.tiles):
            total += calculate_processed_meld_points(meld)
    return total


def can_end_turn(
    player: Player,
    melds: Sequence[Meld],
    turn_start_hand: Sequence[Tile],
    turn_start_melds: Sequence[Meld],
    working_area: Sequence[Tile] = (),
    rules: Optional[GameRules] = None
) -> ValidationResult:
    """
    Check whether the player may end their turn with the table as it stands.

    Args:
        player: Player ending the turn, with their current hand
        melds: Table as it would be committed
        turn_start_hand: Player's hand when the turn started
        turn_start_melds: Table when the turn started
        working_area: Tiles taken off the table and not yet placed
        rules: Rules in force (default rules if omitted)

    Returns:
        ValidationResult; failures carry a stable reason string
    """
    rules = rules or GameRules()

    if len(working_area) > 0:
        return ValidationResult.error(REASON_WORKING_AREA)

    # Tiles only ever leave the hand during a turn
    start_ids = {t.id for t in turn_start_hand}
    if any(t.id not in start_ids for t in player.hand):
        return ValidationResult.error(REASON_TABLE_TILE_IN_HAND)

    if not validate_all_melds(melds):
        return ValidationResult.error(REASON_INVALID_MELD)

    tiles_played = len(turn_start_hand) - len(player.hand)
    if tiles_played <= 0:
        return ValidationResult.error(REASON_NO_TILES_PLAYED)

    if not player.has_initial_meld:
        points = initial_meld_points(melds, new_tile_ids(turn_start_hand, player.hand))
        if points < rules.initial_meld_threshold:
            return ValidationResult.error(REASON_INITIAL_MELD, points=points)
        return ValidationResult.success(points=points)

    return ValidationResult.success()


def _ids(groups: Iterable[Iterable[Tile]]) -> Counter:
    counter = Counter()
    for group in groups:
        counter.update(t.id for t in group)
    return counter


def validate_tile_conservation(
    before_melds: Sequence[Meld],
    before_hand: Sequence[Tile],
    before_working_area: Sequence[Tile],
    after_melds: Sequence[Meld],
    after_hand: Sequence[Tile],
    after_working_area: Sequence[Tile]
) -> ValidationResult:
    """
    Check that a rearrangement only moved tiles around.

    The same tile ids must be present across table, hand and working area
    before and after, each exactly once.
    """
    before = _ids([m.tiles for m in before_melds] + [before_hand, before_working_area])
    after = _ids([m.tiles for m in after_melds] + [after_hand, after_working_area])

    if any(count > 1 for count in after.values()):
        return ValidationResult.error("a tile appears more than once", ERROR_TILE_MISMATCH)
    if before != after:
        return ValidationResult.error("tiles do not match the table and hand", ERROR_TILE_MISMATCH)
    return ValidationResult.success()

