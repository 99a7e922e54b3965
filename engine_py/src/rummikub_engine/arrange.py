"""
Table arrangement solver.

Given every tile on the table plus the working area, search for a way to
lay all of them out as valid melds. Used by the "rearrange table" action so
a player who has pulled melds apart can ask for a legal layout.

The search works on tile kinds (color and number, or joker) rather than
tile ids, so the two copies of a tile are interchangeable.
"""

import logging
import random
from collections import Counter
from itertools import combinations
from typing import Dict, List, Optional, Sequence, Tuple

from .codes import generate_id
from .constants import (
    COLORS,
    MAX_NUMBER,
    MAX_SET_SIZE,
    MIN_RUN_SIZE,
    MIN_SET_SIZE,
)
from .melds import is_valid_meld, process_meld
from .models import Meld, Tile

logger = logging.getLogger(__name__)

# Upper bound on search nodes so a hopeless table fails quickly
MAX_SEARCH_STEPS = 20000

JOKER_KIND = ("joker", 0)

Kind = Tuple[str, int]


class ArrangeResult:
    """Outcome of a table rearrangement."""

    def __init__(self, success: bool, melds: List[Meld], remaining: List[Tile]):
        self.success = success
        self.melds = melds
        self.remaining = remaining

    def __bool__(self) -> bool:
        return self.success

    def __repr__(self) -> str:
        return f"ArrangeResult(success={self.success}, melds={len(self.melds)}, remaining={len(self.remaining)})"


def kind_of(tile: Tile) -> Kind:
    return JOKER_KIND if tile.is_joker else (tile.color, tile.number)


def _is_valid_group(kinds: Sequence[Kind]) -> bool:
    tiles = [
        Tile(id=str(i), color=kind[0], number=kind[1], is_joker=kind == JOKER_KIND)
        for i, kind in enumerate(kinds)
    ]
    return is_valid_meld(tiles)


def _run_candidates(available: Counter) -> List[Tuple[Kind, ...]]:
    """Runs starting at a real tile, gaps and the top end filled by jokers."""
    jokers = available[JOKER_KIND]
    candidates = []
    for color in COLORS:
        numbers = {n for (c, n) in available if c == color}
        for start in sorted(numbers):
            group: List[Kind] = []
            used = 0
            number = start
            while number <= MAX_NUMBER:
                if number in numbers:
                    group.append((color, number))
                elif used < jokers:
                    group.append(JOKER_KIND)
                    used += 1
                else:
                    break
                if len(group) >= MIN_RUN_SIZE and _is_valid_group(group):
                    candidates.append(tuple(group))
                number += 1
    return candidates


def _set_candidates(available: Counter) -> List[Tuple[Kind, ...]]:
    """Sets of distinct colors, topped up with jokers where short."""
    jokers = available[JOKER_KIND]
    by_number: Dict[int, List[Kind]] = {}
    for kind in available:
        if kind != JOKER_KIND:
            by_number.setdefault(kind[1], []).append(kind)

    candidates = []
    for kinds in by_number.values():
        kinds.sort(key=lambda k: COLORS.index(k[0]))
        for size in range(MIN_SET_SIZE, MAX_SET_SIZE + 1):
            for joker_count in range(0, min(jokers, size - 1) + 1):
                for group in combinations(kinds, size - joker_count):
                    candidates.append(group + (JOKER_KIND,) * joker_count)
    return candidates


def find_candidate_melds(tiles: Sequence[Tile]) -> List[Tuple[Kind, ...]]:
    """Every run and set (as tile kinds) that can be formed from the given tiles."""
    available = Counter(kind_of(t) for t in tiles)
    return _run_candidates(available) + _set_candidates(available)


def _search(remaining: Counter, candidates, chosen, budget) -> Optional[List[Tuple[Kind, ...]]]:
    if not remaining:
        return chosen
    budget[0] -= 1
    if budget[0] <= 0:
        return None

    real = [kind for kind in remaining if kind != JOKER_KIND]
    if not real:
        return None

    # Every tile must end up somewhere, so branch on one of them
    first = min(real)
    for group in candidates:
        if first not in group:
            continue
        needed = Counter(group)
        if any(remaining[kind] < count for kind, count in needed.items()):
            continue
        found = _search(remaining - needed, candidates, chosen + [group], budget)
        if found is not None:
            return found
    return None


def reshuffle_table(
    melds: Sequence[Meld],
    working_area: Sequence[Tile] = (),
    rng: Optional[random.Random] = None
) -> ArrangeResult:
    """
    Rearrange every tile on the table and in the working area into valid melds.

    Args:
        melds: Current table
        working_area: Tiles lifted off the table
        rng: Optional random source to vary which solution is found

    Returns:
        ArrangeResult. On failure the input table and working area are
        returned untouched.
    """
    tiles = [t.without_assignment() for m in melds for t in m.tiles]
    tiles += [t.without_assignment() for t in working_area]
    if not tiles:
        return ArrangeResult(True, [], [])

    candidates = find_candidate_melds(tiles)
    if rng is not None:
        rng.shuffle(candidates)
    # Prefer larger groups so fewer branches are explored
    candidates.sort(key=len, reverse=True)

    found = _search(Counter(kind_of(t) for t in tiles), candidates, [], [MAX_SEARCH_STEPS])
    if found is None:
        logger.debug(f"No arrangement found for {len(tiles)} tiles")
        return ArrangeResult(False, list(melds), list(working_area))

    pools: Dict[Kind, List[Tile]] = {}
    for tile in sorted(tiles, key=lambda t: t.id):
        pools.setdefault(kind_of(tile), []).append(tile)

    arranged = []
    for group in found:
        group_tiles = [pools[kind].pop() for kind in group]
        ordered = process_meld(Meld(id=generate_id(), tiles=group_tiles))
        arranged.append(Meld(id=ordered.id, tiles=[t.without_assignment() for t in ordered.tiles]))
    return ArrangeResult(True, arranged, [])
