"""
Point calculation for melds and hands.
"""

from typing import Any, Dict, List, Sequence

from .constants import JOKER_PENALTY
from .melds import process_meld
from .models import GameState, Meld, Tile


def calculate_meld_points(tiles: Sequence[Tile]) -> int:
    """Sum of tile numbers; a joker counts its assigned number, or 0 if unresolved."""
    total = 0
    for tile in tiles:
        if tile.is_joker:
            total += tile.assigned_number or 0
        else:
            total += tile.number
    return total


def calculate_processed_meld_points(meld: Meld) -> int:
    """Points of a meld after its jokers have been resolved."""
    return calculate_meld_points(process_meld(meld).tiles)


def calculate_hand_points(hand: Sequence[Tile]) -> int:
    """End-of-game penalty points: face value, jokers 30 each."""
    return sum(JOKER_PENALTY if tile.is_joker else tile.number for tile in hand)


def player_standings(state: GameState) -> List[Dict[str, Any]]:
    """Tile counts per player in seat order, for turn notifications."""
    return [{"name": p.name, "tile_count": len(p.hand)} for p in state.players]


def final_scores(state: GameState) -> List[Dict[str, Any]]:
    """
    Final standings for the game-results notification.

    Returns:
        One entry per player, winner first, then by ascending hand points
    """
    scores = []
    for seat, player in enumerate(state.players):
        scores.append({
            "player_id": player.id,
            "name": player.name,
            "email": player.email,
            "tile_count": len(player.hand),
            "hand_points": calculate_hand_points(player.hand),
            "is_winner": player.id == state.winner,
            "seat": seat,
        })

    scores.sort(key=lambda s: (not s["is_winner"], s["hand_points"], s["tile_count"], s["seat"]))
    return scores
