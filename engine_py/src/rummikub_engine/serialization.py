"""
State serialization and sanitization utilities.

Rooms are stored as JSON (orjson) and must round-trip every field,
including the revision and queued turns. Clients only ever see the
sanitized view built by ``sanitize_state``.
"""

from typing import Any, Dict, List, Optional

import orjson

from .melds import process_meld
from .models import GameState, Meld, Player, QueuedTurn, Room, Tile
from .rules import GameRules


def tile_to_dict(tile: Tile) -> Dict[str, Any]:
    data = {
        "id": tile.id,
        "color": tile.color,
        "number": tile.number,
        "is_joker": tile.is_joker,
    }
    if tile.assigned_number is not None:
        data["assigned_number"] = tile.assigned_number
    if tile.assigned_color is not None:
        data["assigned_color"] = tile.assigned_color
    return data


def tile_from_dict(data: Dict[str, Any]) -> Tile:
    return Tile(
        id=data["id"],
        color=data["color"],
        number=data["number"],
        is_joker=data.get("is_joker", False),
        assigned_number=data.get("assigned_number"),
        assigned_color=data.get("assigned_color"),
    )


def meld_to_dict(meld: Meld) -> Dict[str, Any]:
    return {"id": meld.id, "tiles": [tile_to_dict(t) for t in meld.tiles]}


def meld_from_dict(data: Dict[str, Any]) -> Meld:
    return Meld(id=data["id"], tiles=[tile_from_dict(t) for t in data.get("tiles", [])])


def _tiles(data: Optional[List[Dict[str, Any]]]) -> List[Tile]:
    return [tile_from_dict(t) for t in data or []]


def _melds(data: Optional[List[Dict[str, Any]]]) -> List[Meld]:
    return [meld_from_dict(m) for m in data or []]


def queued_turn_to_dict(queued: QueuedTurn) -> Dict[str, Any]:
    return {
        "id": queued.id,
        "queued_at": queued.queued_at,
        "base_revision": queued.base_revision,
        "planned_melds": [meld_to_dict(m) for m in queued.planned_melds],
        "planned_hand": [tile_to_dict(t) for t in queued.planned_hand],
        "planned_working_area": [tile_to_dict(t) for t in queued.planned_working_area],
        "base_board_signature": queued.base_board_signature,
        "base_melds": [meld_to_dict(m) for m in queued.base_melds],
    }


def queued_turn_from_dict(data: Dict[str, Any]) -> QueuedTurn:
    return QueuedTurn(
        id=data["id"],
        queued_at=data["queued_at"],
        base_revision=data["base_revision"],
        planned_melds=_melds(data.get("planned_melds")),
        planned_hand=_tiles(data.get("planned_hand")),
        planned_working_area=_tiles(data.get("planned_working_area")),
        base_board_signature=data.get("base_board_signature", ""),
        base_melds=_melds(data.get("base_melds")),
    )


def player_to_dict(player: Player) -> Dict[str, Any]:
    return {
        "id": player.id,
        "name": player.name,
        "player_code": player.player_code,
        "is_host": player.is_host,
        "hand": [tile_to_dict(t) for t in player.hand],
        "has_initial_meld": player.has_initial_meld,
        "is_connected": player.is_connected,
        "email": player.email,
        "queued_turn": queued_turn_to_dict(player.queued_turn) if player.queued_turn else None,
        "last_seen_meld_tile_ids": list(player.last_seen_meld_tile_ids),
    }


def player_from_dict(data: Dict[str, Any]) -> Player:
    queued = data.get("queued_turn")
    return Player(
        id=data["id"],
        name=data["name"],
        player_code=data["player_code"],
        is_host=data.get("is_host", False),
        hand=_tiles(data.get("hand")),
        has_initial_meld=data.get("has_initial_meld", False),
        is_connected=data.get("is_connected", True),
        email=data.get("email"),
        queued_turn=queued_turn_from_dict(queued) if queued else None,
        last_seen_meld_tile_ids=list(data.get("last_seen_meld_tile_ids", [])),
    )


def state_to_dict(state: GameState) -> Dict[str, Any]:
    return {
        "phase": state.phase,
        "players": [player_to_dict(p) for p in state.players],
        "current_player_index": state.current_player_index,
        "melds": [meld_to_dict(m) for m in state.melds],
        "tile_pool": [tile_to_dict(t) for t in state.tile_pool],
        "winner": state.winner,
        "turn_start_melds": [meld_to_dict(m) for m in state.turn_start_melds],
        "turn_start_hand": [tile_to_dict(t) for t in state.turn_start_hand],
        "working_area": [tile_to_dict(t) for t in state.working_area],
        "rules": state.rules.model_dump() if state.rules else None,
        "revision": state.revision,
        "consecutive_empty_draws": state.consecutive_empty_draws,
        "end_reason": state.end_reason,
    }


def state_from_dict(data: Dict[str, Any]) -> GameState:
    rules = data.get("rules")
    return GameState(
        phase=data["phase"],
        players=[player_from_dict(p) for p in data.get("players", [])],
        current_player_index=data.get("current_player_index", 0),
        melds=_melds(data.get("melds")),
        tile_pool=_tiles(data.get("tile_pool")),
        winner=data.get("winner"),
        turn_start_melds=_melds(data.get("turn_start_melds")),
        turn_start_hand=_tiles(data.get("turn_start_hand")),
        working_area=_tiles(data.get("working_area")),
        rules=GameRules(**rules) if rules else None,
        revision=data.get("revision", 0),
        consecutive_empty_draws=data.get("consecutive_empty_draws", 0),
        end_reason=data.get("end_reason"),
    )


def room_to_dict(room: Room) -> Dict[str, Any]:
    return {
        "code": room.code,
        "game_state": state_to_dict(room.game_state),
        "created_at": room.created_at,
        "room_style_id": room.room_style_id,
    }


def room_from_dict(data: Dict[str, Any]) -> Room:
    room = Room(
        code=data["code"],
        game_state=state_from_dict(data["game_state"]),
        created_at=data["created_at"],
    )
    if data.get("room_style_id"):
        room.room_style_id = data["room_style_id"]
    return room


def dumps_room(room: Room) -> bytes:
    return orjson.dumps(room_to_dict(room))


def loads_room(raw) -> Room:
    return room_from_dict(orjson.loads(raw))


def sanitize_state(state: GameState, viewer_id: Optional[str] = None) -> Dict[str, Any]:
    """
    Sanitize game state for transmission to clients.

    Args:
        state: Game state to sanitize
        viewer_id: ID of the player viewing the state (to show their tiles)

    Returns:
        Sanitized state dictionary safe for JSON transmission. Other players'
        hands are replaced by a count, the pool by its size, and table melds
        are processed so jokers carry their resolved values.
    """
    current = state.current_player()
    viewer_is_current = current is not None and current.id == viewer_id

    sanitized = {
        "phase": state.phase,
        "revision": state.revision,
        "current_player_index": state.current_player_index,
        "current_player_id": current.id if current else None,
        "melds": [meld_to_dict(process_meld(m)) for m in state.melds],
        "pool_count": len(state.tile_pool),
        "winner": state.winner,
        "end_reason": state.end_reason,
        "rules": state.rules.model_dump() if state.rules else None,
        "players": [],
    }

    # Only the player holding the turn sees tiles lifted off the table
    if viewer_is_current:
        sanitized["working_area"] = [tile_to_dict(t) for t in state.working_area]
    else:
        sanitized["working_area_count"] = len(state.working_area)

    for player in state.players:
        sanitized_player = {
            "id": player.id,
            "name": player.name,
            "is_host": player.is_host,
            "is_connected": player.is_connected,
            "has_initial_meld": player.has_initial_meld,
            "hand_count": len(player.hand),
        }

        if player.id == viewer_id:
            sanitized_player["hand"] = [tile_to_dict(t) for t in player.hand]
            sanitized_player["player_code"] = player.player_code
            sanitized_player["last_seen_meld_tile_ids"] = list(player.last_seen_meld_tile_ids)
            sanitized_player["queued_turn"] = (
                queued_turn_to_dict(player.queued_turn) if player.queued_turn else None
            )

        sanitized["players"].append(sanitized_player)

    return sanitized


def get_public_room_info(room: Room) -> Dict[str, Any]:
    """Get public information about a room for listings."""
    state = room.game_state
    return {
        "code": room.code,
        "phase": state.phase,
        "room_style_id": room.room_style_id,
        "player_count": len(state.players),
        "players": [
            {"id": p.id, "name": p.name, "is_host": p.is_host, "is_connected": p.is_connected}
            for p in state.players
        ],
    }
