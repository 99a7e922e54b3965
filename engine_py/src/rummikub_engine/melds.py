"""
Meld validation and joker resolution.

A meld is either a Set (one number, distinct colors, 3-4 tiles) or a Run
(one color, consecutive numbers within 1-13, 3+ tiles). Jokers fill any
missing slot. Validation never depends on tile order; processing returns a
new meld in canonical display order with every joker's value resolved.
"""

from dataclasses import replace
from typing import List, Optional, Sequence, Tuple, Union

from .codes import generate_id
from .constants import (
    COLORS,
    MAX_NUMBER,
    MAX_SET_SIZE,
    MIN_NUMBER,
    MIN_RUN_SIZE,
    MIN_SET_SIZE,
)
from .models import Meld, Tile

TilesOrMeld = Union[Meld, Sequence[Tile]]


def _tiles_of(meld: TilesOrMeld) -> Sequence[Tile]:
    return meld.tiles if isinstance(meld, Meld) else meld


def _split_jokers(tiles: Sequence[Tile]) -> Tuple[List[Tile], List[Tile]]:
    non_jokers = [t for t in tiles if not t.is_joker]
    jokers = [t for t in tiles if t.is_joker]
    return non_jokers, jokers


def is_valid_set(tiles: Sequence[Tile]) -> bool:
    """Check if tiles form a valid set (same number, different colors)."""
    if not MIN_SET_SIZE <= len(tiles) <= MAX_SET_SIZE:
        return False

    non_jokers, _ = _split_jokers(tiles)
    if not non_jokers:
        return False

    target_number = non_jokers[0].number
    colors = set()
    for tile in non_jokers:
        if tile.number != target_number or tile.color in colors:
            return False
        colors.add(tile.color)

    return True


def is_valid_run(tiles: Sequence[Tile]) -> bool:
    """Check if tiles form a valid run (consecutive numbers, same color)."""
    if len(tiles) < MIN_RUN_SIZE:
        return False

    non_jokers, jokers = _split_jokers(tiles)
    if not non_jokers:
        return False

    target_color = non_jokers[0].color
    if any(t.color != target_color for t in non_jokers):
        return False

    if jokers and all(j.is_assigned for j in jokers):
        return _is_consecutive_with_assignments(non_jokers, jokers, target_color)
    return _fits_with_free_jokers(non_jokers, len(jokers))


def _is_consecutive_with_assignments(non_jokers: List[Tile], jokers: List[Tile], color: str) -> bool:
    if any(j.assigned_color != color for j in jokers):
        return False

    numbers = sorted([t.number for t in non_jokers] + [j.assigned_number for j in jokers])
    if numbers[0] < MIN_NUMBER or numbers[-1] > MAX_NUMBER:
        return False
    return all(b == a + 1 for a, b in zip(numbers, numbers[1:]))


def _fits_with_free_jokers(non_jokers: List[Tile], joker_count: int) -> bool:
    # Walk up from the lowest number, spending a joker on every gap
    numbers = sorted(t.number for t in non_jokers)
    if len(set(numbers)) != len(numbers):
        return False

    current = numbers[0]
    index = 0
    for _ in range(len(numbers) + joker_count):
        if current > MAX_NUMBER:
            return False
        if index < len(numbers) and numbers[index] == current:
            index += 1
        elif joker_count > 0:
            joker_count -= 1
        else:
            return False
        current += 1

    return True


def is_valid_meld(meld: TilesOrMeld) -> bool:
    """Check if a meld is valid (either a set or a run)."""
    tiles = _tiles_of(meld)
    if len(tiles) < MIN_SET_SIZE:
        return False
    return is_valid_set(tiles) or is_valid_run(tiles)


def validate_all_melds(melds: Sequence[Meld]) -> bool:
    return all(is_valid_meld(meld) for meld in melds)


def _color_key(tile: Tile) -> int:
    return COLORS.index(tile.color)


def _display_order(tiles: Sequence[Tile]) -> List[Tile]:
    non_jokers, jokers = _split_jokers(tiles)
    ordered = sorted(non_jokers, key=lambda t: (t.number, _color_key(t), t.id))
    return ordered + sorted(jokers, key=lambda t: t.id)


def _assign_jokers_in_run(tiles: Sequence[Tile]) -> List[Tile]:
    non_jokers, jokers = _split_jokers(tiles)
    non_jokers.sort(key=lambda t: t.number)
    remaining = iter(sorted(jokers, key=lambda t: t.id))

    color = non_jokers[0].color
    start = non_jokers[0].number

    # A valid run always fits walking up from its lowest tile
    sequence = []
    index = 0
    for number in range(start, start + len(tiles)):
        if index < len(non_jokers) and non_jokers[index].number == number:
            sequence.append(non_jokers[index])
            index += 1
        else:
            sequence.append(replace(next(remaining), assigned_number=number, assigned_color=color))

    return sequence


def _assign_jokers_in_set(tiles: Sequence[Tile]) -> List[Tile]:
    non_jokers, jokers = _split_jokers(tiles)
    target_number = non_jokers[0].number
    used_colors = {t.color for t in non_jokers}
    available = [c for c in COLORS if c not in used_colors]

    assigned = [
        replace(joker, assigned_number=target_number, assigned_color=color)
        for joker, color in zip(sorted(jokers, key=lambda t: t.id), available)
    ]
    return sorted(non_jokers + assigned, key=lambda t: COLORS.index(t.assigned_color or t.color))


def process_meld(meld: Meld) -> Meld:
    """
    Resolve joker values and put the tiles in display order.

    The input meld is not modified. Assignments depend only on which tiles
    the meld holds, so processing an already-processed meld gives the same
    tiles back.

    Args:
        meld: Meld as stored on the table

    Returns:
        New meld with the same id whose jokers carry assigned_number and
        assigned_color when the meld is a valid run or set
    """
    tiles = [t.without_assignment() for t in meld.tiles]

    if is_valid_run(tiles):
        ordered = _assign_jokers_in_run(tiles)
    elif is_valid_set(tiles):
        ordered = _assign_jokers_in_set(tiles)
    else:
        ordered = _display_order(tiles)

    return Meld(id=meld.id, tiles=ordered)


def find_valid_split_point(meld: Meld) -> Optional[int]:
    """
    Find where a long run can be broken into two valid runs.

    Only runs of six or more tiles can be split. The index refers to the
    processed (canonical) tile order.

    Returns:
        First index i in 3..len-3 where tiles[:i] and tiles[i:] both
        validate, or None
    """
    if len(meld.tiles) < 2 * MIN_RUN_SIZE or not is_valid_run([t.without_assignment() for t in meld.tiles]):
        return None

    tiles = process_meld(meld).tiles
    for index in range(MIN_RUN_SIZE, len(tiles) - MIN_RUN_SIZE + 1):
        if is_valid_meld(tiles[:index]) and is_valid_meld(tiles[index:]):
            return index

    return None


def split_meld(meld: Meld) -> Optional[Tuple[Meld, Meld]]:
    """Split a long run at its first valid split point into two new melds."""
    index = find_valid_split_point(meld)
    if index is None:
        return None

    tiles = [t.without_assignment() for t in process_meld(meld).tiles]
    return (
        Meld(id=generate_id(), tiles=tiles[:index]),
        Meld(id=generate_id(), tiles=tiles[index:]),
    )
