import logging
import os
from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    # Service settings
    DEBUG: bool = False
    PROJECT_NAME: str = "chatbridge"
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"
    HOST: str = "127.0.0.1"
    PORT: int = 8000

    # Message store (read-only)
    CHAT_DB_PATH: str = "~/Library/Messages/chat.db"

    # Change detection
    POLL_INTERVAL_SECONDS: float = 0.5  # Scheduled poll, hints only add to this
    POLL_BATCH_LIMIT: int = 20  # Max rows per stream per poll
    POLL_RESTART_DELAY_SECONDS: float = 3.0
    CHANGE_HINTS_ENABLED: bool = True
    HINT_CHECK_INTERVAL_SECONDS: float = 0.25  # How often the db file is stat'ed

    # Tapback reconciliation
    TAPBACK_HISTORY_MAX_TARGETS: int = 5000  # Target messages with retained history

    # Enrichment
    EMOJI_ONLY_MAX_COUNT: int = 5

    # Pinned conversations
    PINS_ENABLED: bool = True
    PIN_POLL_INTERVAL_SECONDS: float = 60.0
    PIN_CONFIRMATION_DELAY_SECONDS: float = 0.5  # Lets the sidebar animation settle
    PIN_CONVERSATION_FETCH_LIMIT: int = 200
    PIN_SNAPSHOT_TIMEOUT_SECONDS: float = 15.0

    # Broadcast
    SUBSCRIBER_QUEUE_SIZE: int = 1000

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
    )

    @property
    def CHAT_DB_FILE_PATH(self) -> str:
        """Chat database path with the user directory expanded"""
        return os.path.expanduser(self.CHAT_DB_PATH)

    @field_validator(
        "POLL_INTERVAL_SECONDS",
        "POLL_RESTART_DELAY_SECONDS",
        "HINT_CHECK_INTERVAL_SECONDS",
        "PIN_POLL_INTERVAL_SECONDS",
        "PIN_SNAPSHOT_TIMEOUT_SECONDS",
    )
    @classmethod
    def validate_positive_interval(cls, v: float) -> float:
        """Reject intervals that would spin the event loop.

        Raises:
            ValueError: If the interval is zero or negative
        """
        if v <= 0:
            raise ValueError("Interval must be greater than zero")
        return v

    @field_validator("PIN_CONFIRMATION_DELAY_SECONDS")
    @classmethod
    def validate_confirmation_delay(cls, v: float) -> float:
        if v < 0:
            raise ValueError("PIN_CONFIRMATION_DELAY_SECONDS must not be negative")
        return v

    @field_validator(
        "POLL_BATCH_LIMIT",
        "TAPBACK_HISTORY_MAX_TARGETS",
        "EMOJI_ONLY_MAX_COUNT",
        "PIN_CONVERSATION_FETCH_LIMIT",
        "SUBSCRIBER_QUEUE_SIZE",
    )
    @classmethod
    def validate_positive_limit(cls, v: int) -> int:
        """Batch and cache limits must allow at least one entry."""
        if v < 1:
            raise ValueError("Limit must be at least 1")
        return v

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.strip().upper()
        if level not in logging.getLevelNamesMapping():
            raise ValueError(f"Unknown log level: {v}")
        return level


# Thread-safe lazy initialization using lru_cache
@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached application settings instance with lazy initialization.

    Settings are only created once on first access, then cached for subsequent calls.
    This prevents module-level side effects and allows testing without environment variables.

    Returns:
        Settings: Application settings object
    """
    return Settings()
