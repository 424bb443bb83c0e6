"""Runtime settings, overridable through DIAMONDS_* environment variables."""
from __future__ import annotations
from functools import lru_cache
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="DIAMONDS_", env_file=".env", extra="ignore")

    # Server
    host: str = "0.0.0.0"
    port: int = 5001
    cors_origins: List[str] = ["http://localhost:5173"]
    log_level: str = "INFO"

    # Roster
    max_players: int = 5
    min_players: int = 1

    # Timing (seconds). One timer tick lasts tick_seconds.
    countdown_seconds: int = 3
    round_time_limit: int = 60
    next_round_delay: int = 10
    tick_seconds: float = 1.0
    ready_smoothing_delay: float = 0.1

    # Scoring: penalties are signed point deltas
    elimination_score: int = -10
    timeout_penalty: int = -2
    duplicate_penalty: int = -1
    perfect_target_penalty: int = -2
    not_closest_penalty: int = -1
    timeout_elimination_threshold: int = 2
    target_ratio: float = 0.8

    # Rule activation, counted in eliminations
    duplicate_rule_threshold: int = 1
    perfect_target_rule_threshold: int = 2

    # Bots
    bot_start_delay: float = 2.0
    bot_delay_min: float = 3.0
    bot_delay_max: float = 15.0
    proxy_delay_cap: float = 1.0

    # Session directory
    room_code_length: int = 6
    sweep_interval: float = 300.0


@lru_cache
def get_settings() -> Settings:
    return Settings()
