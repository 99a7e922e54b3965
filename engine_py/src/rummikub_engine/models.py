"""Game models and data structures"""

import copy
from dataclasses import dataclass, field, replace
from typing import List, Optional

from .constants import DEFAULT_ROOM_STYLE, PHASE_LOBBY
from .rules import GameRules


@dataclass
class Tile:
    id: str
    color: str  # red|blue|yellow|black
    number: int  # 1-13, 0 for jokers
    is_joker: bool = False
    # Only set on display copies returned by process_meld, never stored
    assigned_number: Optional[int] = None
    assigned_color: Optional[str] = None

    @property
    def is_assigned(self) -> bool:
        return self.is_joker and self.assigned_number is not None

    def without_assignment(self) -> "Tile":
        if self.assigned_number is None and self.assigned_color is None:
            return self
        return replace(self, assigned_number=None, assigned_color=None)

    def describe(self) -> str:
        """Short human-readable label, e.g. "red 7" or "joker"."""
        if self.is_joker:
            return "joker"
        return f"{self.color} {self.number}"


@dataclass
class Meld:
    id: str
    tiles: List[Tile] = field(default_factory=list)

    def tile_ids(self) -> List[str]:
        return [t.id for t in self.tiles]


@dataclass
class QueuedTurn:
    id: str
    queued_at: int  # epoch milliseconds
    base_revision: int
    planned_melds: List[Meld] = field(default_factory=list)
    planned_hand: List[Tile] = field(default_factory=list)
    planned_working_area: List[Tile] = field(default_factory=list)
    base_board_signature: str = ""
    base_melds: List[Meld] = field(default_factory=list)  # table when queued


@dataclass
class Player:
    id: str
    name: str
    player_code: str
    is_host: bool = False
    hand: List[Tile] = field(default_factory=list)
    has_initial_meld: bool = False
    is_connected: bool = True
    email: Optional[str] = None
    queued_turn: Optional[QueuedTurn] = None
    last_seen_meld_tile_ids: List[str] = field(default_factory=list)


@dataclass
class GameState:
    phase: str = PHASE_LOBBY  # lobby|playing|ended
    players: List[Player] = field(default_factory=list)
    current_player_index: int = 0
    melds: List[Meld] = field(default_factory=list)
    tile_pool: List[Tile] = field(default_factory=list)
    winner: Optional[str] = None
    turn_start_melds: List[Meld] = field(default_factory=list)
    turn_start_hand: List[Tile] = field(default_factory=list)
    working_area: List[Tile] = field(default_factory=list)
    rules: Optional[GameRules] = None
    revision: int = 0
    # Draws from an empty pool since the last successful turn
    consecutive_empty_draws: int = 0
    end_reason: Optional[str] = None

    def get_player(self, player_id: str) -> Optional[Player]:
        for player in self.players:
            if player.id == player_id:
                return player
        return None

    def current_player(self) -> Optional[Player]:
        if not self.players or not 0 <= self.current_player_index < len(self.players):
            return None
        return self.players[self.current_player_index]

    def host(self) -> Optional[Player]:
        return next((p for p in self.players if p.is_host), None)

    def connected_players(self) -> List[Player]:
        return [p for p in self.players if p.is_connected]

    def increment_revision(self):
        self.revision += 1

    def snapshot_turn(self):
        """Capture the current player's hand and the table for reset/validation."""
        player = self.current_player()
        self.turn_start_hand = list(player.hand) if player else []
        self.turn_start_melds = copy.deepcopy(self.melds)

    def restore_turn(self):
        """Revert the current player's hand and the table to the turn snapshot."""
        player = self.current_player()
        if player:
            player.hand = list(self.turn_start_hand)
        self.melds = copy.deepcopy(self.turn_start_melds)
        self.working_area = []


@dataclass
class Room:
    code: str
    game_state: GameState
    created_at: int  # epoch milliseconds
    room_style_id: str = DEFAULT_ROOM_STYLE
