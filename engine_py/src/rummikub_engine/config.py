"""
Service configuration read from the environment.
"""

import os
from typing import List

from pydantic import BaseModel, Field, field_validator

from .constants import APP_URL, LARGE_GAME_THRESHOLD, MAX_PLAYERS, MIN_PLAYERS, ROOM_TTL_SECONDS
from .rules import RuleTable, create_rule_table


class Settings(BaseModel):
    """Runtime settings for the game service."""

    host: str = "0.0.0.0"
    port: int = Field(default=8000, ge=1, le=65535)
    log_level: str = "info"
    reload: bool = False
    room_ttl_seconds: int = Field(
        default=ROOM_TTL_SECONDS,
        ge=60,
        description="How long an idle room is kept"
    )
    app_url: str = Field(
        default=APP_URL,
        description="Public URL of the client, used in notification links"
    )
    cors_origins: List[str] = Field(default_factory=lambda: ["*"])
    min_players: int = Field(default=MIN_PLAYERS, ge=2)
    max_players: int = Field(default=MAX_PLAYERS, ge=2)
    large_game_threshold: int = Field(default=LARGE_GAME_THRESHOLD, ge=2)

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v):
        level = v.lower()
        if level not in ("critical", "error", "warning", "info", "debug"):
            raise ValueError(f"Unknown log level: {v}")
        return level

    @classmethod
    def from_env(cls) -> "Settings":
        origins = os.getenv("CORS_ORIGINS", "*")
        return cls(
            host=os.getenv("HOST", "0.0.0.0"),
            port=int(os.getenv("PORT", 8000)),
            log_level=os.getenv("LOG_LEVEL", "info"),
            reload=os.getenv("RELOAD", "false").lower() == "true",
            room_ttl_seconds=int(os.getenv("ROOM_TTL_SECONDS", ROOM_TTL_SECONDS)),
            app_url=os.getenv("APP_URL", APP_URL),
            cors_origins=[o.strip() for o in origins.split(",") if o.strip()],
            min_players=int(os.getenv("MIN_PLAYERS", MIN_PLAYERS)),
            max_players=int(os.getenv("MAX_PLAYERS", MAX_PLAYERS)),
            large_game_threshold=int(os.getenv("LARGE_GAME_THRESHOLD", LARGE_GAME_THRESHOLD)),
        )

    def rule_table(self) -> RuleTable:
        return create_rule_table(
            min_players=self.min_players,
            max_players=self.max_players,
            large_game_threshold=self.large_game_threshold,
        )
