"""
Board diff computation for queued-turn conflict reports.
"""

from typing import Any, Dict, List, Optional, Sequence

from .constants import COLORS
from .models import Meld, Tile


def board_signature(melds: Sequence[Meld]) -> str:
    """
    Order-independent fingerprint of the table.

    Two tables have the same signature when they hold the same groups of
    tiles, regardless of meld order, meld ids or tile order within a meld.
    """
    groups = sorted(",".join(sorted(t.id for t in meld.tiles)) for meld in melds)
    return "|".join(groups)


def _tiles_by_id(melds: Sequence[Meld]) -> Dict[str, Tile]:
    return {t.id: t for meld in melds for t in meld.tiles}


def _sort_key(tile: Tile):
    if tile.is_joker:
        return (1, 0, 0)
    return (0, COLORS.index(tile.color), tile.number)


def describe_tiles(tiles: Sequence[Tile]) -> List[str]:
    return [t.describe() for t in sorted(tiles, key=_sort_key)]


def compute_board_changes(
    before: Sequence[Meld],
    after: Sequence[Meld],
    before_signature: Optional[str] = None
) -> Dict[str, Any]:
    """
    Compute what changed on the table between two snapshots.

    Args:
        before: Table when the queued turn was staged
        after: Table now
        before_signature: Signature recorded with the before snapshot, if any

    Returns:
        Dictionary with "added" and "removed" tile descriptions and a
        "rearranged" flag for tables that hold the same tiles in different
        groups
    """
    if before_signature is None:
        before_signature = board_signature(before)
    old_tiles = _tiles_by_id(before)
    new_tiles = _tiles_by_id(after)

    added = [t for tile_id, t in new_tiles.items() if tile_id not in old_tiles]
    removed = [t for tile_id, t in old_tiles.items() if tile_id not in new_tiles]

    return {
        "added": describe_tiles(added),
        "removed": describe_tiles(removed),
        "rearranged": not added and not removed and before_signature != board_signature(after),
    }
