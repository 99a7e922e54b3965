"""
Queued turns: a turn planned while waiting, replayed when the turn arrives.

A queued turn records the game revision it was planned against. When the
player's turn comes round the plan is only replayed if the revision is
unchanged and the plan still passes end-of-turn validation against the
live table; otherwise it fails and the player plays manually.
"""

import copy
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from .codes import generate_id
from .constants import (
    ERROR_INVALID_QUEUED_TURN,
    ERROR_STALE_QUEUED_TURN,
    QUEUE_APPLIED,
    QUEUE_INVALID,
    QUEUE_STALE,
)
from .diff import board_signature, compute_board_changes
from .models import GameState, Meld, Player, QueuedTurn, Tile
from .validate import ValidationResult, can_end_turn, validate_tile_conservation

logger = logging.getLogger(__name__)


@dataclass
class QueueOutcome:
    """What happened to a queued turn when its player's turn arrived."""
    player_id: str
    player_name: str
    status: str  # applied|stale|invalid
    queued_at: int
    base_revision: int
    current_revision: int
    reason: Optional[str] = None
    board_changes: Dict[str, Any] = field(default_factory=dict)
    melds: List[Meld] = field(default_factory=list)  # table after an auto-play

    @property
    def applied(self) -> bool:
        return self.status == QUEUE_APPLIED

    @property
    def error_code(self) -> Optional[str]:
        if self.status == QUEUE_STALE:
            return ERROR_STALE_QUEUED_TURN
        if self.status == QUEUE_INVALID:
            return ERROR_INVALID_QUEUED_TURN
        return None


def _strip(tiles: Sequence[Tile]) -> List[Tile]:
    return [t.without_assignment() for t in tiles]


def strip_melds(melds: Sequence[Meld]) -> List[Meld]:
    """Copy melds with joker assignments removed, ready to store."""
    return [Meld(id=m.id, tiles=_strip(m.tiles)) for m in melds]


def stage_queued_turn(
    state: GameState,
    player: Player,
    melds: Sequence[Meld],
    hand: Sequence[Tile],
    working_area: Sequence[Tile],
    now_ms: int
) -> QueuedTurn:
    """Build a queued turn planned against the table as it is now."""
    return QueuedTurn(
        id=generate_id(),
        queued_at=now_ms,
        base_revision=state.revision,
        planned_melds=strip_melds(melds),
        planned_hand=_strip(hand),
        planned_working_area=_strip(working_area),
        base_board_signature=board_signature(state.melds),
        base_melds=copy.deepcopy(state.melds),
    )


def check_queued_turn(state: GameState, player: Player) -> ValidationResult:
    """
    Decide whether a player's queued turn can be replayed now.

    The player must hold the turn. The revision check comes first; a plan
    made against an older revision is stale even if it would still validate.
    """
    queued = player.queued_turn
    if queued is None:
        return ValidationResult.error("no queued turn", ERROR_INVALID_QUEUED_TURN)

    if queued.base_revision != state.revision:
        return ValidationResult.error(
            f"board changed since the turn was queued (revision {queued.base_revision} -> {state.revision})",
            ERROR_STALE_QUEUED_TURN,
        )

    conservation = validate_tile_conservation(
        state.melds, player.hand, state.working_area,
        queued.planned_melds, queued.planned_hand, queued.planned_working_area,
    )
    if not conservation:
        return ValidationResult.error(conservation.reason, ERROR_INVALID_QUEUED_TURN)

    planned_player = copy.copy(player)
    planned_player.hand = list(queued.planned_hand)
    result = can_end_turn(
        planned_player,
        queued.planned_melds,
        state.turn_start_hand,
        state.turn_start_melds,
        queued.planned_working_area,
        state.rules,
    )
    if not result:
        return ValidationResult.error(result.reason, ERROR_INVALID_QUEUED_TURN, points=result.points)
    return result


def failed_outcome(state: GameState, player: Player, result: ValidationResult) -> QueueOutcome:
    queued = player.queued_turn
    status = QUEUE_STALE if result.error_code == ERROR_STALE_QUEUED_TURN else QUEUE_INVALID
    outcome = QueueOutcome(
        player_id=player.id,
        player_name=player.name,
        status=status,
        queued_at=queued.queued_at,
        base_revision=queued.base_revision,
        current_revision=state.revision,
        reason=result.reason,
        board_changes=compute_board_changes(
            queued.base_melds, state.melds, queued.base_board_signature or None
        ),
    )
    logger.info(f"Queued turn for {player.name} failed ({status}): {result.reason}")
    return outcome


def applied_outcome(state: GameState, player: Player, queued: QueuedTurn) -> QueueOutcome:
    logger.info(f"Queued turn for {player.name} auto-played")
    return QueueOutcome(
        player_id=player.id,
        player_name=player.name,
        status=QUEUE_APPLIED,
        queued_at=queued.queued_at,
        base_revision=queued.base_revision,
        current_revision=state.revision,
        melds=copy.deepcopy(state.melds),
    )


def outcome_to_dict(outcome: QueueOutcome) -> Dict[str, Any]:
    """Plain summary of an outcome for clients and notifications."""
    return {
        "player_id": outcome.player_id,
        "player_name": outcome.player_name,
        "status": outcome.status,
        "error_code": outcome.error_code,
        "reason": outcome.reason,
        "queued_at": outcome.queued_at,
        "base_revision": outcome.base_revision,
        "current_revision": outcome.current_revision,
        "board_changes": dict(outcome.board_changes),
        "meld_count": len(outcome.melds),
    }
