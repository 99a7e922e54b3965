"""
Identifier and human-enterable code generation.
"""

import random
import uuid
from typing import Callable, Optional

from .constants import (
    PLAYER_CODE_ALPHABET,
    PLAYER_CODE_LENGTH,
    ROOM_CODE_ALPHABET,
    ROOM_CODE_LENGTH,
)

_system_random = random.SystemRandom()


def generate_id() -> str:
    """Opaque unique id for tiles, melds, players and queued turns."""
    return uuid.uuid4().hex[:12]


def _random_code(alphabet: str, length: int, rng: Optional[random.Random]) -> str:
    rng = rng or _system_random
    return "".join(rng.choice(alphabet) for _ in range(length))


def generate_room_code(rng: Optional[random.Random] = None) -> str:
    """Four letters, no I or O."""
    return _random_code(ROOM_CODE_ALPHABET, ROOM_CODE_LENGTH, rng)


def generate_player_code(rng: Optional[random.Random] = None) -> str:
    """Six characters, no 0/O or 1/I, used to re-join from another device."""
    return _random_code(PLAYER_CODE_ALPHABET, PLAYER_CODE_LENGTH, rng)


def generate_unique_code(
    generate: Callable[[], str],
    taken: Callable[[str], bool],
    attempts: int = 20,
) -> str:
    """Draw codes until one is free."""
    for _ in range(attempts):
        code = generate()
        if not taken(code):
            return code
    raise RuntimeError(f"Could not generate a free code after {attempts} attempts")


def normalize_code(code: str) -> str:
    return code.strip().upper()
