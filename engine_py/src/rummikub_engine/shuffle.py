"""
Tile set creation, shuffling and dealing utilities.
"""

import random
from typing import Dict, List, Optional, Union

from .codes import generate_id
from .constants import (
    COLOR_BLACK,
    COLOR_RED,
    COLORS,
    COPIES_PER_TILE,
    JOKER_COUNT,
    JOKER_NUMBER,
    MAX_NUMBER,
    MIN_NUMBER,
)
from .models import Player, Tile

RandomSource = Union[random.Random, int, None]


def _rng(source: RandomSource) -> random.Random:
    if isinstance(source, random.Random):
        return source
    if source is not None:
        return random.Random(source)
    return random.Random()


def create_tile_set() -> List[Tile]:
    """Create the full 106-tile set: two copies of 1-13 in each color plus two jokers."""
    tiles = []

    for _ in range(COPIES_PER_TILE):
        for color in COLORS:
            for number in range(MIN_NUMBER, MAX_NUMBER + 1):
                tiles.append(Tile(id=generate_id(), color=color, number=number))

    # Joker colors are cosmetic only
    tiles.append(Tile(id=generate_id(), color=COLOR_RED, number=JOKER_NUMBER, is_joker=True))
    tiles.append(Tile(id=generate_id(), color=COLOR_BLACK, number=JOKER_NUMBER, is_joker=True))

    return tiles


def shuffle(tiles: List[Tile], seed: RandomSource = None) -> List[Tile]:
    """
    Fisher-Yates shuffle in place.

    Args:
        tiles: Tiles to permute
        seed: Optional seed or Random instance for deterministic shuffling

    Returns:
        The same list, permuted
    """
    rng = _rng(seed)
    for i in range(len(tiles) - 1, 0, -1):
        j = rng.randint(0, i)
        tiles[i], tiles[j] = tiles[j], tiles[i]
    return tiles


def deal_tiles(pool: List[Tile], players: List[Player], hand_size: int) -> Dict[str, List[Tile]]:
    """
    Deal ``hand_size`` tiles to each player in seat order.

    Tiles are taken from the front of the pool; draws later pop from the
    back, so the pool's order is fixed by the single shuffle at game start.

    Returns:
        Dictionary mapping player_id to their dealt tiles
    """
    if hand_size * len(players) > len(pool):
        raise ValueError(
            f"Cannot deal {hand_size} tiles to {len(players)} players from a pool of {len(pool)}"
        )

    hands = {}
    for player in players:
        hands[player.id] = pool[:hand_size]
        del pool[:hand_size]

    return hands


def new_shuffled_pool(seed: RandomSource = None) -> List[Tile]:
    return shuffle(create_tile_set(), seed)


def validate_tile_integrity(tiles: List[Tile]) -> bool:
    """
    Check that a collection holds exactly one complete tile set.

    Returns:
        True if there are 106 distinct ids, two jokers and two of each
        (color, number) pair
    """
    if len({t.id for t in tiles}) != len(tiles):
        return False

    jokers = sum(1 for t in tiles if t.is_joker)
    counts: Dict[tuple, int] = {}
    for tile in tiles:
        if not tile.is_joker:
            key = (tile.color, tile.number)
            counts[key] = counts.get(key, 0) + 1

    expected_pairs = len(COLORS) * (MAX_NUMBER - MIN_NUMBER + 1)
    return (
        jokers == JOKER_COUNT
        and len(counts) == expected_pairs
        and all(count == COPIES_PER_TILE for count in counts.values())
    )

