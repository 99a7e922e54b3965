"""
Game rule configuration and validation.
"""

from typing import Literal

from pydantic import BaseModel, Field, field_validator

from .constants import (
    LARGE_GAME_HAND_SIZE,
    LARGE_GAME_MELD_POINTS,
    LARGE_GAME_THRESHOLD,
    MAX_PLAYERS,
    MIN_PLAYERS,
    MODE_LARGE,
    MODE_STANDARD,
    STANDARD_HAND_SIZE,
    STANDARD_MELD_POINTS,
)


class GameRules(BaseModel):
    """Rules in force for one game, fixed when the game starts."""

    mode: Literal["standard", "large"] = MODE_STANDARD
    starting_hand_size: int = Field(default=STANDARD_HAND_SIZE, ge=1, le=40)
    initial_meld_threshold: int = Field(default=STANDARD_MELD_POINTS, ge=0)


class RuleTable(BaseModel):
    """Maps player counts to game rules.

    Large games (``large_game_threshold`` players or more) deal a smaller
    hand and lower the initial meld requirement.
    """

    min_players: int = Field(
        default=MIN_PLAYERS,
        ge=2,
        le=6,
        description="Minimum number of players required to start"
    )
    max_players: int = Field(
        default=MAX_PLAYERS,
        ge=2,
        le=8,
        description="Maximum number of players allowed in a room"
    )
    large_game_threshold: int = Field(
        default=LARGE_GAME_THRESHOLD,
        ge=2,
        description="Player count at which large-game rules apply"
    )
    standard_hand_size: int = Field(default=STANDARD_HAND_SIZE, ge=1, le=40)
    standard_meld_points: int = Field(default=STANDARD_MELD_POINTS, ge=0)
    large_hand_size: int = Field(default=LARGE_GAME_HAND_SIZE, ge=1, le=40)
    large_meld_points: int = Field(default=LARGE_GAME_MELD_POINTS, ge=0)

    @field_validator('max_players')
    @classmethod
    def validate_max_players(cls, v, info):
        """Validate maximum players doesn't fall below minimum."""
        min_players = info.data.get('min_players', MIN_PLAYERS)
        if v < min_players:
            raise ValueError(f'max_players ({v}) must be >= min_players ({min_players})')
        return v

    def validate_player_count(self, player_count: int) -> bool:
        """Check if a player count is valid for this configuration."""
        return self.min_players <= player_count <= self.max_players

    def rules_for(self, player_count: int) -> GameRules:
        if player_count >= self.large_game_threshold:
            return GameRules(
                mode=MODE_LARGE,
                starting_hand_size=self.large_hand_size,
                initial_meld_threshold=self.large_meld_points,
            )
        return GameRules(
            mode=MODE_STANDARD,
            starting_hand_size=self.standard_hand_size,
            initial_meld_threshold=self.standard_meld_points,
        )


# Default configuration instance
default_rule_table = RuleTable()


def create_rule_table(**overrides) -> RuleTable:
    """Create a RuleTable with optional overrides."""
    config_dict = default_rule_table.model_dump()
    config_dict.update(overrides)
    return RuleTable(**config_dict)


def get_rules_for_player_count(player_count: int, table: RuleTable = default_rule_table) -> GameRules:
    return table.rules_for(player_count)
