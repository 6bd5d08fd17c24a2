"""Centralized application configuration.

All settings are read from environment variables (or a .env.razor file).
Every field has a default, so the app starts with the in-process search
engine and a local SQLite profile store when nothing is configured.
"""

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env.razor", env_file_encoding="utf-8",
    )

    # Search backend: "local" (in-process minimax) or "stockfish" (UCI process)
    engine_backend: Literal["local", "stockfish"] = "local"
    search_depth: int = Field(default=3, ge=1, le=8)
    search_timeout: float = Field(default=5.0, gt=0)

    # Stockfish
    stockfish_path: str = "stockfish"
    stockfish_hash_mb: int = 64

    # Persistence
    profile_db_path: str = "data/profiles.db"
    game_history_limit: int = Field(default=100, ge=1)

    # Sessions
    default_personality: str = "mentor"

    log_level: str = "INFO"
