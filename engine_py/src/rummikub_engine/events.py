"""
Action models for the HTTP API.
"""

from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field


class ActionType(str, Enum):
    """Inbound action types."""
    CREATE_ROOM = "create_room"
    JOIN_ROOM = "join_room"
    REJOIN = "rejoin"
    GET_STATE = "get_state"
    START_GAME = "start_game"
    PLAY_TILES = "play_tiles"
    DRAW_TILE = "draw_tile"
    END_TURN = "end_turn"
    RESET_TURN = "reset_turn"
    SPLIT_RUN = "split_run"
    REARRANGE_TABLE = "rearrange_table"
    QUEUE_TURN = "queue_turn"
    CLEAR_QUEUED_TURN = "clear_queued_turn"
    END_GAME = "end_game"
    LEAVE = "leave"
    SET_ROOM_STYLE = "set_room_style"


class BaseAction(BaseModel):
    """Base action model."""
    action: ActionType


class RoomAction(BaseAction):
    """Action on an existing room."""
    room_code: str = Field(..., min_length=1, max_length=10)


class PlayerAction(RoomAction):
    """Action by a known player, optionally pinned to a revision."""
    player_id: str = Field(..., min_length=1)
    expected_revision: Optional[int] = None


class MeldInput(BaseModel):
    """A meld as tile ids; the server supplies the tiles."""
    id: Optional[str] = None
    tile_ids: List[str] = Field(..., min_length=1)


class CreateRoomAction(BaseAction):
    action: ActionType = ActionType.CREATE_ROOM
    name: str = Field(..., min_length=1, max_length=30)
    email: Optional[str] = Field(default=None, max_length=254)


class JoinRoomAction(RoomAction):
    action: ActionType = ActionType.JOIN_ROOM
    name: str = Field(..., min_length=1, max_length=30)
    email: Optional[str] = Field(default=None, max_length=254)
    expected_revision: Optional[int] = None


class RejoinAction(RoomAction):
    action: ActionType = ActionType.REJOIN
    player_code: str = Field(..., min_length=1, max_length=10)


class GetStateAction(RoomAction):
    action: ActionType = ActionType.GET_STATE
    player_id: Optional[str] = None


class StartGameAction(PlayerAction):
    action: ActionType = ActionType.START_GAME
    seed: Optional[int] = None


class PlayTilesAction(PlayerAction):
    action: ActionType = ActionType.PLAY_TILES
    melds: List[MeldInput] = Field(default_factory=list)
    hand: List[str] = Field(default_factory=list)
    working_area: List[str] = Field(default_factory=list)


class DrawTileAction(PlayerAction):
    action: ActionType = ActionType.DRAW_TILE


class EndTurnAction(PlayerAction):
    action: ActionType = ActionType.END_TURN


class ResetTurnAction(PlayerAction):
    action: ActionType = ActionType.RESET_TURN


class SplitRunAction(PlayerAction):
    action: ActionType = ActionType.SPLIT_RUN
    meld_id: str = Field(..., min_length=1)


class RearrangeTableAction(PlayerAction):
    action: ActionType = ActionType.REARRANGE_TABLE


class QueueTurnAction(PlayerAction):
    action: ActionType = ActionType.QUEUE_TURN
    melds: List[MeldInput] = Field(default_factory=list)
    hand: List[str] = Field(default_factory=list)
    working_area: List[str] = Field(default_factory=list)


class ClearQueuedTurnAction(PlayerAction):
    action: ActionType = ActionType.CLEAR_QUEUED_TURN


class EndGameAction(PlayerAction):
    action: ActionType = ActionType.END_GAME


class LeaveAction(PlayerAction):
    action: ActionType = ActionType.LEAVE


class SetRoomStyleAction(PlayerAction):
    action: ActionType = ActionType.SET_ROOM_STYLE
    style_id: str = Field(..., min_length=1)


InboundAction = Union[
    CreateRoomAction,
    JoinRoomAction,
    RejoinAction,
    GetStateAction,
    StartGameAction,
    PlayTilesAction,
    DrawTileAction,
    EndTurnAction,
    ResetTurnAction,
    SplitRunAction,
    RearrangeTableAction,
    QueueTurnAction,
    ClearQueuedTurnAction,
    EndGameAction,
    LeaveAction,
    SetRoomStyleAction,
]

ACTION_MODELS = {
    ActionType.CREATE_ROOM: CreateRoomAction,
    ActionType.JOIN_ROOM: JoinRoomAction,
    ActionType.REJOIN: RejoinAction,
    ActionType.GET_STATE: GetStateAction,
    ActionType.START_GAME: StartGameAction,
    ActionType.PLAY_TILES: PlayTilesAction,
    ActionType.DRAW_TILE: DrawTileAction,
    ActionType.END_TURN: EndTurnAction,
    ActionType.RESET_TURN: ResetTurnAction,
    ActionType.SPLIT_RUN: SplitRunAction,
    ActionType.REARRANGE_TABLE: RearrangeTableAction,
    ActionType.QUEUE_TURN: QueueTurnAction,
    ActionType.CLEAR_QUEUED_TURN: ClearQueuedTurnAction,
    ActionType.END_GAME: EndGameAction,
    ActionType.LEAVE: LeaveAction,
    ActionType.SET_ROOM_STYLE: SetRoomStyleAction,
}


def parse_action(data: Dict[str, Any]) -> InboundAction:
    """
    Parse a raw request body into the matching action model.

    Args:
        data: Decoded JSON body

    Returns:
        Parsed action model

    Raises:
        ValueError: If the action is missing, unknown or malformed
    """
    if not isinstance(data, dict):
        raise ValueError("Request body must be an object")

    action = data.get("action")

    if not action:
        raise ValueError("Missing action")

    try:
        action = ActionType(action)
    except ValueError:
        raise ValueError(f"Invalid action: {action}")

    try:
        return ACTION_MODELS[action](**data)
    except Exception as e:
        raise ValueError(f"Invalid action data: {str(e)}")


def meld_specs(melds: List[MeldInput]) -> List[Dict[str, Any]]:
    return [{"id": m.id, "tile_ids": list(m.tile_ids)} for m in melds]
