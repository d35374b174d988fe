# src/tradearena/config.py

"""Runtime configuration for TradeArena.

All values come from environment variables so the same image can run in
development (SQLite) and production (PostgreSQL) without code changes.
"""

import os
from dataclasses import dataclass
from functools import lru_cache

# Match durations per game mode, in seconds
GAME_MODE_DURATIONS = {
    "sprint": 300,
    "standard": 900,
    "marathon": 1800,
}


def _env_int(name: str, default: int) -> int:
    return int(os.getenv(name, str(default)))


def _env_bool(name: str, default: bool) -> bool:
    return os.getenv(name, "true" if default else "false").lower() == "true"


@dataclass(frozen=True)
class Settings:
    """Matchmaking, rating and battle parameters.

    Attributes:
        scan_interval_ms: Delay between two matchmaking scans
        expansion_interval_ms: Wait time that earns one range expansion
        expansion_step: Rating points added to each side of the range per expansion
        initial_rating_range: Half-width of a new queue entry's acceptable range
        match_grace_period_ms: How long matched queue entries stay visible to
            status polls before the scan purges them
        elo_k_factor: Elo K constant
        min_rating: Floor applied to every rating update
        default_rating: Rating given to a new player in every game mode
    """

    database_url: str = "sqlite+aiosqlite:///./tradearena.db"
    scan_interval_ms: int = 5000
    expansion_interval_ms: int = 15000
    expansion_step: int = 50
    initial_rating_range: int = 100
    match_grace_period_ms: int = 5 * 60 * 1000
    elo_k_factor: int = 32
    min_rating: int = 100
    default_rating: int = 1200
    starting_capital: float = 100_000.0
    default_market: str = "SPY"
    history_window_start_days: int = 365
    history_window_end_days: int = 30
    matchmaking_enabled: bool = True
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from the process environment."""
        return cls(
            database_url=os.getenv("DATABASE_URL", cls.database_url),
            scan_interval_ms=_env_int("SCAN_INTERVAL_MS", cls.scan_interval_ms),
            expansion_interval_ms=_env_int(
                "EXPANSION_INTERVAL_MS", cls.expansion_interval_ms
            ),
            expansion_step=_env_int("EXPANSION_STEP", cls.expansion_step),
            initial_rating_range=_env_int(
                "INITIAL_RATING_RANGE", cls.initial_rating_range
            ),
            match_grace_period_ms=_env_int(
                "MATCH_GRACE_PERIOD_MS", cls.match_grace_period_ms
            ),
            elo_k_factor=_env_int("ELO_K_FACTOR", cls.elo_k_factor),
            min_rating=_env_int("MIN_RATING", cls.min_rating),
            default_rating=_env_int("DEFAULT_RATING", cls.default_rating),
            starting_capital=float(
                os.getenv("STARTING_CAPITAL", str(cls.starting_capital))
            ),
            default_market=os.getenv("DEFAULT_MARKET", cls.default_market),
            matchmaking_enabled=_env_bool(
                "MATCHMAKING_ENABLED", cls.matchmaking_enabled
            ),
            log_level=os.getenv("LOG_LEVEL", cls.log_level).upper(),
        )


@lru_cache
def get_settings() -> Settings:
    """Return the process-wide settings (read once)."""
    return Settings.from_env()
